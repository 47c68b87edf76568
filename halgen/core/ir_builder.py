"""Description IR builder.

Converts a validated, already-parsed openPID peripheral description (a
plain mapping handed over by the external loader) into an immutable
PeripheralModel.

The description is assumed to be schema-checked upstream. What the builder
does check is internal consistency, which a schema cannot express:

- registers must not overlap in address range
- bit-fields must not overlap and must lie inside their register
- widths must be sensible (non-zero fields, 8/16/32/64-bit registers)
- register names, and field names within a register, must be unique
- no two registers or fields may map to the same accessor name

Any violation raises ModelError naming the offending registers/fields.
Declaration order of registers and fields is preserved because it drives
deterministic matching and emission later on.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from halgen.core.exceptions import ModelError
from halgen.core.model import (
    VALID_REGISTER_WIDTHS,
    AccessMode,
    BitField,
    Endianness,
    PeripheralModel,
    Register,
    WriteAction,
)
from halgen.utils.naming import to_snake_case

logger = logging.getLogger(__name__)

DEFAULT_WORD_SIZE = 32
VALID_WORD_SIZES = (8, 16, 32, 64)

# Verbs generated accessors put in front of register and field names
REGISTER_VERBS = ("", "set", "read", "write")
FIELD_VERBS = ("", "set", "clear", "toggle")
# Methods every peripheral handle already defines
HANDLE_METHODS = ("steal",)


def build_model(
    description: Mapping[str, Any], word_size: Optional[int] = None
) -> PeripheralModel:
    """Build a PeripheralModel from a parsed description.

    Args:
        description: Parsed openPID peripheral description
        word_size: Target word size in bits. Overrides the description's
            ``word_size``; defaults to 32 when neither is given.

    Returns:
        The validated, immutable hardware model.

    Raises:
        ModelError: If the description is internally inconsistent.
    """
    name = _require(description, "name", context="peripheral")

    try:
        base_address = int(description.get("base_address", 0))
        resolved_word_size = int(
            word_size
            if word_size is not None
            else description.get("word_size", DEFAULT_WORD_SIZE)
        )
        endianness = Endianness(description.get("endianness", Endianness.LITTLE.value))
    except (TypeError, ValueError) as exc:
        raise ModelError(f"Invalid peripheral attribute: {exc}", peripheral=name) from exc

    if base_address < 0:
        raise ModelError("Base address must not be negative", peripheral=name)
    if resolved_word_size not in VALID_WORD_SIZES:
        raise ModelError(
            f"Word size {resolved_word_size} must be one of {VALID_WORD_SIZES}",
            peripheral=name,
        )

    raw_registers = description.get("registers") or []
    registers = tuple(_build_register(name, raw) for raw in raw_registers)

    _validate_register_names(name, registers)
    _validate_register_overlap(name, registers)
    _validate_accessor_names(name, registers)

    hints = tuple(str(h) for h in description.get("capabilities") or ())
    version = description.get("version")

    model = PeripheralModel(
        name=str(name),
        base_address=base_address,
        registers=registers,
        capability_hints=hints,
        word_size=resolved_word_size,
        endianness=endianness,
        version=str(version) if version is not None else None,
        description=str(description.get("description", "")),
    )
    logger.debug(
        f"Built model for {model.name}: {len(model.registers)} registers, "
        f"{sum(len(r.fields) for r in model.registers)} fields"
    )
    return model


# Private helpers -------------------------------------------------------


def _require(raw: Mapping[str, Any], key: str, context: str, **ids: Any) -> Any:
    try:
        return raw[key]
    except KeyError as exc:
        raise ModelError(f"Missing required key '{key}' in {context}", **ids) from exc
    except TypeError as exc:
        raise ModelError(f"Expected a mapping for {context}", **ids) from exc


def _build_register(periph: str, raw: Mapping[str, Any]) -> Register:
    reg_name = str(_require(raw, "name", context="register", peripheral=periph))
    ids = {"peripheral": periph, "registers": (reg_name,)}

    try:
        offset = int(_require(raw, "offset", context=f"register {reg_name}", **ids))
        width = int(raw.get("width", 32))
        access = AccessMode(raw.get("access", AccessMode.READ_WRITE.value))
        reset_value = raw.get("reset_value")
        reset_value = int(reset_value) if reset_value is not None else None
    except (TypeError, ValueError) as exc:
        raise ModelError(f"Invalid attribute in register {reg_name}: {exc}", **ids) from exc

    if offset < 0:
        raise ModelError(f"Register {reg_name} has a negative offset", **ids)
    if width not in VALID_REGISTER_WIDTHS:
        raise ModelError(
            f"Register {reg_name} has width {width}; must be one of {VALID_REGISTER_WIDTHS}",
            **ids,
        )

    fields = tuple(
        _build_field(periph, reg_name, width, access, f) for f in raw.get("fields") or ()
    )
    _validate_fields(periph, reg_name, fields)

    return Register(
        name=reg_name,
        offset=offset,
        width=width,
        access=access,
        fields=fields,
        volatile=bool(raw.get("volatile", False)),
        reset_value=reset_value,
        read_side_effects=bool(raw.get("read_side_effects", False)),
        description=str(raw.get("description", "")),
    )


def _build_field(
    periph: str, reg_name: str, reg_width: int, reg_access: AccessMode, raw: Mapping[str, Any]
) -> BitField:
    field_name = str(
        _require(
            raw, "name", context=f"field of {reg_name}", peripheral=periph, registers=(reg_name,)
        )
    )
    ids = {"peripheral": periph, "registers": (reg_name,), "fields": (field_name,)}

    try:
        bit_offset = int(
            _require(raw, "bit_offset", context=f"field {reg_name}.{field_name}", **ids)
        )
        bit_width = int(raw.get("bit_width", 1))
        access = raw.get("access")
        access = AccessMode(access) if access is not None else None
        write_action = raw.get("write_action")
        write_action = WriteAction(write_action) if write_action is not None else None
        reset_value = raw.get("reset_value")
        reset_value = int(reset_value) if reset_value is not None else None
    except (TypeError, ValueError) as exc:
        raise ModelError(
            f"Invalid attribute in field {reg_name}.{field_name}: {exc}", **ids
        ) from exc

    if bit_width <= 0:
        raise ModelError(f"Field {reg_name}.{field_name} has zero width", **ids)
    if bit_offset < 0 or bit_offset + bit_width > reg_width:
        raise ModelError(
            f"Field {reg_name}.{field_name} (bits {bit_offset}..{bit_offset + bit_width - 1}) "
            f"exceeds the {reg_width}-bit register",
            **ids,
        )
    if reset_value is not None and not 0 <= reset_value < (1 << bit_width):
        raise ModelError(
            f"Reset value 0x{reset_value:X} does not fit field {reg_name}.{field_name}",
            **ids,
        )
    if access is not None and (
        (access.readable and not reg_access.readable)
        or (access.writable and not reg_access.writable)
    ):
        raise ModelError(
            f"Field {reg_name}.{field_name} is {access.value} inside a "
            f"{reg_access.value} register",
            **ids,
        )
    if write_action is not None and not (access or reg_access).writable:
        raise ModelError(
            f"Field {reg_name}.{field_name} has write action '{write_action.value}' but is "
            f"{(access or reg_access).value}",
            **ids,
        )

    role = raw.get("role")
    signal = raw.get("signal")
    return BitField(
        name=field_name,
        bit_offset=bit_offset,
        bit_width=bit_width,
        role=str(role) if role is not None else None,
        reset_value=reset_value,
        access=access,
        write_action=write_action,
        signal=str(signal) if signal is not None else None,
        description=str(raw.get("description", "")),
    )


def _validate_fields(periph: str, reg_name: str, fields: tuple[BitField, ...]) -> None:
    seen: dict[str, BitField] = {}
    for field in fields:
        key = to_snake_case(field.name)
        if key in seen:
            raise ModelError(
                f"Duplicate field name in {reg_name}: {seen[key].name!r} and {field.name!r}",
                peripheral=periph,
                registers=(reg_name,),
                fields=(seen[key].name, field.name),
            )
        seen[key] = field

    ordered = sorted(fields, key=lambda f: f.bit_offset)
    for lower, upper in zip(ordered, ordered[1:]):
        if upper.bit_offset <= lower.msb:
            raise ModelError(
                f"Fields {reg_name}.{lower.name} and {reg_name}.{upper.name} overlap",
                peripheral=periph,
                registers=(reg_name,),
                fields=(lower.name, upper.name),
            )


def _validate_register_names(periph: str, registers: tuple[Register, ...]) -> None:
    seen: dict[str, Register] = {}
    for reg in registers:
        key = to_snake_case(reg.name)
        if key in seen:
            raise ModelError(
                f"Duplicate register name: {seen[key].name!r} and {reg.name!r}",
                peripheral=periph,
                registers=(seen[key].name, reg.name),
            )
        seen[key] = reg


def _validate_register_overlap(periph: str, registers: tuple[Register, ...]) -> None:
    """Fail fast when two registers share any byte of address space."""
    ordered = sorted(registers, key=lambda r: r.offset)
    widest: Optional[Register] = None
    for reg in ordered:
        if widest is not None and reg.offset < widest.end:
            raise ModelError(
                f"Registers {widest.name} (0x{widest.offset:X}..0x{widest.end - 1:X}) and "
                f"{reg.name} (0x{reg.offset:X}..0x{reg.end - 1:X}) overlap",
                peripheral=periph,
                registers=(widest.name, reg.name),
            )
        if widest is None or reg.end > widest.end:
            widest = reg


def _validate_accessor_names(periph: str, registers: tuple[Register, ...]) -> None:
    """Reject registers and fields whose accessor names coincide.

    Register CTRL with field EN and a register CTRL_EN both map to
    ``ctrl_en``; generated code could not define both.
    """
    owners: dict[str, tuple[str, ...]] = {name: () for name in HANDLE_METHODS}
    for reg in registers:
        reg_key = to_snake_case(reg.name)
        names: list[tuple[tuple[str, ...], str, str]] = [
            ((reg.name,), verb, reg_key) for verb in REGISTER_VERBS
        ]
        for field in reg.fields:
            key = f"{reg_key}_{to_snake_case(field.name)}"
            names.extend(((reg.name, field.name), verb, key) for verb in FIELD_VERBS)

        for owner, verb, key in names:
            ident = f"{verb}_{key}" if verb else key
            other = owners.setdefault(ident, owner)
            if other == owner:
                continue
            both = (other, owner)
            described = [".".join(o) if o else "the peripheral handle" for o in both]
            raise ModelError(
                f"{described[0]} and {described[1]} both generate accessor '{ident}'",
                peripheral=periph,
                registers=tuple(dict.fromkeys(o[0] for o in both if o)),
                fields=tuple(o[1] for o in both if len(o) == 2),
            )
