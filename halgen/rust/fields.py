"""Rust expressions for register and bit-field access.

Every generated access goes through the private register primitives the
peripheral unit defines (``read_<reg>`` / ``write_<reg>``). The helpers
here only compose those calls with shifts and masks, following the write
method the access planner chose for each field.

WRITE METHODS:
- bitwise: store the action bits; plain fields sharing the register are
  preserved by a read-modify-write
- whole: store the value as the whole register
- rmw: read, clear the field and any write-1 action bits, merge, store
- fill: store the value merged into the other bits' reset values
"""

from __future__ import annotations

from halgen.core.model import BitField, Register
from halgen.core.planner import AccessPlan, AccessStrategy, WriteMethod
from halgen.rust.consts import UINT_TYPES, fn_name, hex_literal, uint_for_width


def reg_type(reg: Register) -> str:
    return UINT_TYPES[reg.width]


def field_type(field: BitField) -> str:
    return uint_for_width(field.bit_width)


def read_primitive(reg: Register) -> str:
    return fn_name("read", reg.name)


def write_primitive(reg: Register) -> str:
    return fn_name("write", reg.name)


def read_register(reg: Register) -> str:
    return f"self.{read_primitive(reg)}()"


def read_field(reg: Register, field: BitField, as_type: str | None = None) -> str:
    """Expression yielding the field value, shifted down to bit 0."""
    as_type = as_type or field_type(field)
    if reg.spans_register(field):
        value = read_register(reg)
    elif field.bit_offset == 0:
        value = f"({read_register(reg)} & {hex_literal(field.max_value, reg.width)})"
    else:
        value = (
            f"(({read_register(reg)} >> {field.bit_offset}) "
            f"& {hex_literal(field.max_value, reg.width)})"
        )
    if as_type == reg_type(reg):
        return value
    return f"{value} as {as_type}"


def field_is_set(reg: Register, field: BitField, invert: bool = False) -> str:
    """Boolean expression: is any bit of the field set (or none, inverted)."""
    op = "==" if invert else "!="
    return f"{read_register(reg)} & {hex_literal(field.mask, reg.width)} {op} 0"


def write_field(reg: Register, field: BitField, plan: AccessPlan, value: str) -> list[str]:
    """Statements storing ``value`` into the field.

    ``value`` is any integer expression; it is cast to the register type
    and masked to the field width.

    Raises:
        ValueError: if the plan gives the field no write method
    """
    field_plan = plan.field_plan(field.name)
    method = field_plan.write if field_plan is not None else WriteMethod.NONE
    rtype = reg_type(reg)
    write = f"self.{write_primitive(reg)}"
    mask = hex_literal(field.mask, reg.width)

    if method is WriteMethod.WHOLE:
        return [f"{write}({_cast(value, rtype)});"]

    shifted = f"(({_cast(value, rtype)} << {field.bit_offset}) & {mask})"
    if field.bit_offset == 0:
        shifted = f"({_cast(value, rtype)} & {mask})"

    if method is WriteMethod.BITWISE:
        return [f"{write}({shifted});"]
    if method is WriteMethod.RMW:
        keep = ~(field.mask | plan.write_zero_mask) & reg.full_mask
        return [
            f"let value = ({read_register(reg)} & {hex_literal(keep, reg.width)}) | {shifted};",
            f"{write}(value);",
        ]
    if method is WriteMethod.FILL:
        assert field_plan is not None
        fill = (field_plan.fill_value or 0) & ~field.mask & reg.full_mask
        return [f"{write}({hex_literal(fill, reg.width)} | {shifted});"]
    raise ValueError(f"{reg.name}.{field.name} has no write method")


def pulse_field(reg: Register, field: BitField, plan: AccessPlan) -> list[str]:
    """Statements writing 1 to every action bit of the field.

    Plain fields sharing a read-modify-write register keep their value;
    every other action bit is written as 0.
    """
    mask = hex_literal(field.mask, reg.width)
    if plan.strategy is not AccessStrategy.READ_MODIFY_WRITE:
        return [f"self.{write_primitive(reg)}({mask});"]
    keep = ~(field.mask | plan.write_zero_mask) & reg.full_mask
    return [
        f"let value = ({read_register(reg)} & {hex_literal(keep, reg.width)}) | {mask};",
        f"self.{write_primitive(reg)}(value);",
    ]


def toggle_field(reg: Register, field: BitField, plan: AccessPlan) -> list[str]:
    """Invert a plain read-write field through its write method."""
    read = read_field(reg, field, as_type=reg_type(reg))
    return write_field(reg, field, plan, f"!{read}")


def _cast(value: str, rtype: str) -> str:
    if value.startswith("0x"):
        return value
    if value.isidentifier() or value.isdigit():
        return f"({value} as {rtype})"
    return f"(({value}) as {rtype})"
