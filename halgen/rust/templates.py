"""Trait implementation templates.

A contract names the template that renders it. Each template turns the
bindings of a Full match into the body of one ``impl <Trait> for <Type>``
block, plus any private helpers the impl needs.

TEMPLATE CONTRACT:
- Input is always a Full match; every operation has a binding
- Output is a list of source lines at indent level 0 and the Vars the
  trait methods take and return
- Templates never emit ErrorType impls; the backend does that once per
  error trait
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable

from halgen.core.model import BitField, Register
from halgen.core.planner import AccessPlan
from halgen.interfaces.backend import EmissionContext, Var
from halgen.interfaces.capability import (
    CapabilityContract,
    MatchResult,
    OperationKind,
    OperationRequirement,
)
from halgen.rust.consts import fn_name, hex_literal
from halgen.rust.fields import (
    field_is_set,
    field_type,
    pulse_field,
    read_field,
    toggle_field,
    write_field,
)

SPIN = "core::hint::spin_loop();"

_WRITE_KINDS = (
    OperationKind.SET,
    OperationKind.CLEAR,
    OperationKind.TOGGLE,
    OperationKind.WRITE_VALUE,
)


@dataclass(frozen=True)
class BoundOperation:
    """An operation together with the register, field and plan it binds."""

    op: OperationRequirement
    register: Register
    field: BitField
    plan: AccessPlan

    @property
    def value_type(self) -> str:
        return self.op.value_type or field_type(self.field)


@dataclass(frozen=True)
class TemplateOutput:
    lines: list[str]
    inputs: tuple[Var, ...] = ()
    outputs: tuple[Var, ...] = ()


def resolve(
    ctx: EmissionContext, contract: CapabilityContract, match: MatchResult
) -> dict[str, BoundOperation]:
    """Look up the register, field and plan behind every binding."""
    bound = {}
    for op in contract.operations:
        binding = match.binding_for(op.name)
        if binding is None:
            raise ValueError(f"{contract.id}: operation {op.name} is not bound")
        reg = ctx.model.get_register(binding.register)
        field = reg.get_field(binding.field) if reg is not None else None
        if reg is None or field is None:
            raise ValueError(
                f"{contract.id}: binding {binding.register}.{binding.field} is not in the model"
            )
        bound[op.name] = BoundOperation(op, reg, field, ctx.plans.get(reg.name))
    return bound


def operation_statements(bound: BoundOperation) -> tuple[list[str], str | None]:
    """Statements and result expression carrying out one operation.

    The result expression is None for operations that return nothing.
    """
    op, reg, field, plan = bound.op, bound.register, bound.field, bound.plan
    action = reg.field_write_action(field)

    if op.kind is OperationKind.SET:
        if action is not None:
            return pulse_field(reg, field, plan), None
        return write_field(reg, field, plan, hex_literal(field.max_value, reg.width)), None
    if op.kind is OperationKind.CLEAR:
        if action is not None:
            return pulse_field(reg, field, plan), None
        return write_field(reg, field, plan, "0"), None
    if op.kind is OperationKind.TOGGLE:
        if action is not None:
            return pulse_field(reg, field, plan), None
        return toggle_field(reg, field, plan), None
    if op.kind is OperationKind.READ:
        return [], field_is_set(reg, field, invert=op.invert)
    if op.kind is OperationKind.READ_VALUE:
        return [], read_field(reg, field, as_type=bound.value_type)
    if op.kind is OperationKind.WRITE_VALUE:
        return write_field(reg, field, plan, op.argument or "value"), None
    if op.kind is OperationKind.MAX_VALUE:
        return [], hex_literal(field.max_value, field.bit_width)
    raise ValueError(f"Unknown operation kind {op.kind!r}")


def render_methods(
    ctx: EmissionContext,
    contract: CapabilityContract,
    match: MatchResult,
    self_type: str,
    indent: str,
) -> TemplateOutput:
    """One trait method per operation, using the contract's signatures."""
    bound = resolve(ctx, contract, match)
    lines = [f"impl {contract.trait} for {self_type} {{"]
    inputs = []
    outputs = []

    for i, op in enumerate(contract.operations):
        b = bound[op.name]
        signature = op.method or _default_signature(b)
        fallible = "-> Result<" in signature
        statements, result = operation_statements(b)

        if i:
            lines.append("")
        lines.extend(_serialization_doc(b, indent))
        lines.append(f"{indent}{signature} {{")
        for stmt in statements:
            lines.append(f"{indent * 2}{stmt}")
        if fallible:
            lines.append(f"{indent * 2}Ok({result if result is not None else '()'})")
        elif result is not None:
            lines.append(f"{indent * 2}{result}")
        lines.append(f"{indent}}}")

        if op.kind is OperationKind.WRITE_VALUE:
            inputs.append(Var(op.argument or "value", b.value_type, b.field.description or None))
        if result is not None:
            kind = "bool" if op.kind is OperationKind.READ else b.value_type
            outputs.append(Var(op.name, kind, b.field.description or None))

    lines.append("}")
    return TemplateOutput(lines, tuple(inputs), tuple(outputs))


def render_spi_bus(
    ctx: EmissionContext,
    contract: CapabilityContract,
    match: MatchResult,
    self_type: str,
    indent: str,
) -> TemplateOutput:
    """Blocking, polled SpiBus<u8> built on one byte exchange helper."""
    bound = resolve(ctx, contract, match)
    exchange = fn_name(contract.id, "exchange")
    write_stmts, _ = operation_statements(_with_argument(bound["write_data"], "byte"))
    _, read_expr = operation_statements(bound["read_data"])
    _, tx_ready = operation_statements(bound["tx_ready"])
    _, rx_ready = operation_statements(bound["rx_ready"])
    _, idle = operation_statements(bound["idle"])
    i1, i2, i3 = indent, indent * 2, indent * 3

    lines = [f"impl {self_type} {{"]
    lines.append(f"{i1}/// Shift one byte out and return the byte shifted in.")
    lines.extend(_serialization_doc(bound["write_data"], indent, after_summary=True))
    lines.append(f"{i1}fn {exchange}(&mut self, byte: u8) -> u8 {{")
    lines.extend(_spin_until(tx_ready, indent, level=2))
    lines.extend(f"{i2}{s}" for s in write_stmts)
    lines.extend(_spin_until(rx_ready, indent, level=2))
    lines.append(f"{i2}{read_expr}")
    lines.append(f"{i1}}}")
    lines.append("}")
    lines.append("")
    lines.append(f"impl {contract.trait} for {self_type} {{")
    lines.append(f"{i1}fn read(&mut self, words: &mut [u8]) -> Result<(), Self::Error> {{")
    lines.append(f"{i2}for word in words.iter_mut() {{")
    lines.append(f"{i3}*word = self.{exchange}(0x00);")
    lines.append(f"{i2}}}")
    lines.append(f"{i2}Ok(())")
    lines.append(f"{i1}}}")
    lines.append("")
    lines.append(f"{i1}fn write(&mut self, words: &[u8]) -> Result<(), Self::Error> {{")
    lines.append(f"{i2}for &word in words {{")
    lines.append(f"{i3}self.{exchange}(word);")
    lines.append(f"{i2}}}")
    lines.append(f"{i2}Ok(())")
    lines.append(f"{i1}}}")
    lines.append("")
    lines.append(
        f"{i1}fn transfer(&mut self, read: &mut [u8], write: &[u8]) -> Result<(), Self::Error> {{"
    )
    lines.append(f"{i2}for i in 0..read.len().max(write.len()) {{")
    lines.append(f"{i3}let byte = self.{exchange}(write.get(i).copied().unwrap_or(0x00));")
    lines.append(f"{i3}if let Some(slot) = read.get_mut(i) {{")
    lines.append(f"{i3}{indent}*slot = byte;")
    lines.append(f"{i3}}}")
    lines.append(f"{i2}}}")
    lines.append(f"{i2}Ok(())")
    lines.append(f"{i1}}}")
    lines.append("")
    lines.append(
        f"{i1}fn transfer_in_place(&mut self, words: &mut [u8]) -> Result<(), Self::Error> {{"
    )
    lines.append(f"{i2}for word in words.iter_mut() {{")
    lines.append(f"{i3}*word = self.{exchange}(*word);")
    lines.append(f"{i2}}}")
    lines.append(f"{i2}Ok(())")
    lines.append(f"{i1}}}")
    lines.append("")
    lines.append(f"{i1}fn flush(&mut self) -> Result<(), Self::Error> {{")
    lines.extend(_spin_until(idle, indent, level=2))
    lines.append(f"{i2}Ok(())")
    lines.append(f"{i1}}}")
    lines.append("}")

    return TemplateOutput(
        lines,
        inputs=(Var("words", "&[u8]", "bytes shifted out"),),
        outputs=(Var("words", "&mut [u8]", "bytes shifted in"),),
    )


def render_io_write(
    ctx: EmissionContext,
    contract: CapabilityContract,
    match: MatchResult,
    self_type: str,
    indent: str,
) -> TemplateOutput:
    """Blocking embedded_io::Write that polls the transmit-empty flag."""
    bound = resolve(ctx, contract, match)
    write_byte = fn_name(contract.id, "byte")
    write_stmts, _ = operation_statements(_with_argument(bound["write_data"], "byte"))
    _, tx_ready = operation_statements(bound["tx_ready"])
    _, tx_done = operation_statements(bound["tx_done"])
    i1, i2, i3 = indent, indent * 2, indent * 3

    lines = [f"impl {self_type} {{"]
    lines.append(f"{i1}/// Wait until the transmitter has room, then queue one byte.")
    lines.extend(_serialization_doc(bound["write_data"], indent, after_summary=True))
    lines.append(f"{i1}fn {write_byte}(&mut self, byte: u8) {{")
    lines.extend(_spin_until(tx_ready, indent, level=2))
    lines.extend(f"{i2}{s}" for s in write_stmts)
    lines.append(f"{i1}}}")
    lines.append("}")
    lines.append("")
    lines.append(f"impl {contract.trait} for {self_type} {{")
    lines.append(f"{i1}fn write(&mut self, buf: &[u8]) -> Result<usize, Self::Error> {{")
    lines.append(f"{i2}for &byte in buf {{")
    lines.append(f"{i3}self.{write_byte}(byte);")
    lines.append(f"{i2}}}")
    lines.append(f"{i2}Ok(buf.len())")
    lines.append(f"{i1}}}")
    lines.append("")
    lines.append(f"{i1}fn flush(&mut self) -> Result<(), Self::Error> {{")
    lines.extend(_spin_until(tx_done, indent, level=2))
    lines.append(f"{i2}Ok(())")
    lines.append(f"{i1}}}")
    lines.append("}")

    return TemplateOutput(
        lines,
        inputs=(Var("buf", "&[u8]", "bytes to transmit"),),
        outputs=(Var("written", "usize", "number of bytes transmitted"),),
    )


def render_io_read(
    ctx: EmissionContext,
    contract: CapabilityContract,
    match: MatchResult,
    self_type: str,
    indent: str,
) -> TemplateOutput:
    """Blocking embedded_io::Read: wait for one byte, then drain what is ready."""
    bound = resolve(ctx, contract, match)
    _, read_expr = operation_statements(bound["read_data"])
    _, rx_ready = operation_statements(bound["rx_ready"])
    i1, i2, i3 = indent, indent * 2, indent * 3

    lines = [f"impl {contract.trait} for {self_type} {{"]
    lines.append(f"{i1}fn read(&mut self, buf: &mut [u8]) -> Result<usize, Self::Error> {{")
    lines.append(f"{i2}if buf.is_empty() {{")
    lines.append(f"{i3}return Ok(0);")
    lines.append(f"{i2}}}")
    lines.extend(_spin_until(rx_ready, indent, level=2))
    lines.append(f"{i2}let mut count = 0;")
    lines.append(f"{i2}while count < buf.len() && ({rx_ready}) {{")
    lines.append(f"{i3}buf[count] = {read_expr};")
    lines.append(f"{i3}count += 1;")
    lines.append(f"{i2}}}")
    lines.append(f"{i2}Ok(count)")
    lines.append(f"{i1}}}")
    lines.append("}")

    return TemplateOutput(
        lines,
        inputs=(Var("buf", "&mut [u8]", "receive buffer"),),
        outputs=(Var("count", "usize", "number of bytes received"),),
    )


TemplateFn = Callable[
    [EmissionContext, CapabilityContract, MatchResult, str, str], TemplateOutput
]

TEMPLATES: dict[str, TemplateFn] = {
    "methods": render_methods,
    "spi-bus": render_spi_bus,
    "io-write": render_io_write,
    "io-read": render_io_read,
}


def get_template(name: str) -> TemplateFn:
    if name not in TEMPLATES:
        raise ValueError(f"Unknown template '{name}'. Available: {list(TEMPLATES.keys())}")
    return TEMPLATES[name]


# Private helpers -------------------------------------------------------


def _default_signature(bound: BoundOperation) -> str:
    name = fn_name(bound.op.name)
    kind = bound.op.kind
    if kind is OperationKind.READ:
        return f"fn {name}(&mut self) -> Result<bool, Self::Error>"
    if kind is OperationKind.READ_VALUE:
        return f"fn {name}(&mut self) -> Result<{bound.value_type}, Self::Error>"
    if kind is OperationKind.WRITE_VALUE:
        arg = bound.op.argument or "value"
        return f"fn {name}(&mut self, {arg}: {bound.value_type}) -> Result<(), Self::Error>"
    if kind is OperationKind.MAX_VALUE:
        return f"fn {name}(&self) -> {bound.value_type}"
    return f"fn {name}(&mut self) -> Result<(), Self::Error>"


def _with_argument(bound: BoundOperation, argument: str) -> BoundOperation:
    return replace(bound, op=replace(bound.op, argument=argument))


def _spin_until(condition: str, indent: str, level: int) -> list[str]:
    pad = indent * level
    return [f"{pad}while !({condition}) {{", f"{pad}{indent}{SPIN}", f"{pad}}}"]


def _serialization_doc(
    bound: BoundOperation, indent: str, after_summary: bool = False
) -> list[str]:
    """Concurrency note for writes that are not a single bus access."""
    if bound.op.kind not in _WRITE_KINDS or not bound.plan.requires_serialization:
        return []
    lines = [f"{indent}///"] if after_summary else []
    lines += [
        f"{indent}/// # Concurrency",
        f"{indent}///",
        f"{indent}/// Writes {bound.register.name} with a sequence that is not a single",
        f"{indent}/// bus access. Callers sharing this peripheral between execution",
        f"{indent}/// contexts must serialise access, e.g. inside a critical section.",
    ]
    return lines
