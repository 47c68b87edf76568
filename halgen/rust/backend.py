"""Rust embedded-hal backend.

Renders emission units as Rust source for ``no_std`` targets:

- peripheral unit: the handle struct, its base address and one private
  volatile read/write primitive per register
- raw accessor units: public whole-register and per-field access, one
  ``impl`` block per register
- capability units: one trait implementation per Full match, rendered by
  the contract's template, preceded by the ``ErrorType`` impl the first
  time an error trait is needed

All register traffic goes through the primitives, so volatility, byte-wise
access to unaligned registers and compiler fences live in one place.
"""

from __future__ import annotations

import logging
from typing import Optional

from halgen.core.model import BitField, Endianness, PeripheralModel, Register
from halgen.core.planner import AccessPlan, WriteMethod
from halgen.interfaces.backend import EmissionContext, EmissionUnit, UnitKind, Var
from halgen.interfaces.capability import CapabilityContract, MatchResult
from halgen.rust.consts import (
    CORE_FENCE,
    CORE_PTR,
    EMBEDDED_HAL_VERSION,
    EMBEDDED_IO_VERSION,
    INFALLIBLE,
    SEQ_CST,
    doc_comment,
    fn_name,
    hex_literal,
    type_name,
)
from halgen.rust.fields import (
    field_type,
    pulse_field,
    read_field,
    read_primitive,
    reg_type,
    write_field,
    write_primitive,
)
from halgen.rust.templates import get_template
from halgen.utils.config_loader import GeneratorConfig, get_config
from halgen.utils.naming import doc_lines, to_snake_case

logger = logging.getLogger(__name__)


class RustBackend:
    """CodeBackend producing Rust for embedded-hal 1.0 / embedded-io 0.6."""

    def __init__(self, config: Optional[GeneratorConfig] = None):
        self.config = config if config is not None else get_config()
        self.indent = self.config.indent

    def render_peripheral(self, ctx: EmissionContext) -> EmissionUnit:
        model = ctx.model
        name = type_name(model.name)
        version = model.version or self.config.default_version
        i1, i2 = self.indent, self.indent * 2

        lines = [f"//! {model.name} peripheral driver."]
        if model.description:
            lines.append("//!")
            lines.extend(f"//!{' ' + ln if ln else ''}" for ln in doc_lines(model.description))
        lines.append("//!")
        lines.append(
            f"//! Generated for embedded-hal {EMBEDDED_HAL_VERSION} and embedded-io "
            f"{EMBEDDED_IO_VERSION} from document version {version}."
        )
        lines.append("")
        lines.extend(doc_comment(model.description or f"{model.name} register block."))
        lines.append(f"pub struct {name} {{")
        lines.append(f"{i1}base: usize,")
        lines.append("}")
        lines.append("")
        lines.append(f"impl {name} {{")
        lines.append(f"{i1}/// Base address of the {model.name} register block.")
        lines.append(
            f"{i1}pub const BASE_ADDRESS: usize = "
            f"{hex_literal(model.base_address, model.word_size)};"
        )
        lines.append("")
        lines.append(f"{i1}/// Take the {model.name} handle.")
        lines.append(f"{i1}///")
        lines.append(f"{i1}/// # Safety")
        lines.append(f"{i1}///")
        lines.append(f"{i1}/// At most one handle may exist at a time. Generated methods assume")
        lines.append(f"{i1}/// exclusive access to the register block.")
        lines.append(f"{i1}pub const unsafe fn steal() -> Self {{")
        lines.append(f"{i2}Self {{ base: Self::BASE_ADDRESS }}")
        lines.append(f"{i1}}}")
        lines.append("}")
        lines.append("")
        lines.append("#[allow(dead_code)]")
        lines.append(f"impl {name} {{")
        for i, reg in enumerate(model.registers):
            if i:
                lines.append("")
            lines.extend(self._primitives(ctx, reg))
        lines.append("}")

        return EmissionUnit(
            kind=UnitKind.PERIPHERAL,
            provenance=model.name,
            module=self._module(UnitKind.PERIPHERAL, ctx),
            source=self._finish(lines),
            outputs=(Var(to_snake_case(model.name), name, model.description or None),),
        )

    def render_raw_accessor(self, ctx: EmissionContext, reg: Register) -> EmissionUnit:
        model = ctx.model
        plan = ctx.plans.get(reg.name)
        name = type_name(model.name)
        rtype = reg_type(reg)
        i1, i2 = self.indent, self.indent * 2
        inputs: list[Var] = []
        outputs: list[Var] = []

        lines = doc_comment(f"{reg.name}: {reg.description}" if reg.description else reg.name)
        lines.append("///")
        lines.append(f"/// Offset 0x{reg.offset:X}, {reg.width} bits, {reg.access.value}.")
        lines.append(f"/// Access pattern: {plan.strategy.value}.")
        if plan.requires_serialization:
            lines.append("///")
            lines.append("/// # Concurrency")
            lines.append("///")
            if plan.issues_reads_on_write:
                lines.append("/// Field setters read, modify and write back the register.")
            else:
                lines.append("/// Writes are not a single bus access.")
            lines.append("/// Callers sharing this peripheral between execution contexts must")
            lines.append("/// serialise writes, e.g. inside a critical section.")
        if plan.caveats:
            lines.append("///")
            lines.append("/// # Caveats")
            lines.append("///")
            lines.extend(f"/// - {c}" for c in plan.caveats)
        lines.append(f"impl {name} {{")

        methods: list[list[str]] = []
        if reg.readable:
            doc = [f"{i1}/// Read the whole {reg.name} register."]
            if reg.destructive_reads:
                doc.append(f"{i1}///")
                doc.append(f"{i1}/// Reading has side effects on the hardware.")
            methods.append(
                doc
                + [
                    f"{i1}pub fn {fn_name(reg.name)}(&self) -> {rtype} {{",
                    f"{i2}self.{read_primitive(reg)}()",
                    f"{i1}}}",
                ]
            )
            outputs.append(Var(reg.name, rtype, reg.description or None))
        if reg.writable:
            doc = [f"{i1}/// Write the whole {reg.name} register."]
            action_bits = reg.action_mask()
            if action_bits:
                doc.append(f"{i1}///")
                doc.append(
                    f"{i1}/// Bits {hex_literal(action_bits, reg.width)} act when written as 1."
                )
            if reg.access.write_once:
                doc.append(f"{i1}///")
                doc.append(f"{i1}/// Takes effect only once after reset.")
            methods.append(
                doc
                + [
                    f"{i1}pub fn {fn_name('set', reg.name)}(&mut self, value: {rtype}) {{",
                    f"{i2}self.{write_primitive(reg)}(value);",
                    f"{i1}}}",
                ]
            )
            inputs.append(Var("value", rtype, f"new {reg.name} value"))

        for field in reg.fields:
            methods.extend(self._field_methods(reg, field, plan, inputs, outputs))

        for i, method in enumerate(methods):
            if i:
                lines.append("")
            lines.extend(method)
        lines.append("}")

        return EmissionUnit(
            kind=UnitKind.RAW_ACCESSOR,
            provenance=reg.name,
            module=self._module(UnitKind.RAW_ACCESSOR, ctx),
            source=self._finish(lines),
            inputs=tuple(inputs),
            outputs=tuple(outputs),
        )

    def render_capability(
        self, ctx: EmissionContext, contract: CapabilityContract, match: MatchResult
    ) -> EmissionUnit:
        if not match.is_full:
            raise ValueError(f"Refusing to render {contract.id}: match is {match.status.value}")

        name = type_name(ctx.model.name)
        template = get_template(contract.template)

        lines = [f"// {contract.id}: {contract.trait}"]
        lines.extend(f"// {ln}" if ln else "//" for ln in doc_lines(contract.description))
        for binding in match.bindings:
            lines.append(f"// {binding.operation} -> {binding.register}.{binding.field}")

        if contract.error_trait and self._owns_error_trait(ctx, contract):
            lines.append("")
            lines.append(f"impl {contract.error_trait} for {name} {{")
            lines.append(f"{self.indent}type Error = {INFALLIBLE};")
            lines.append("}")

        rendered = template(ctx, contract, match, name, self.indent)
        lines.append("")
        lines.extend(rendered.lines)
        logger.debug(f"{ctx.model.name}: rendered {contract.id} with template {contract.template}")

        return EmissionUnit(
            kind=UnitKind.CAPABILITY,
            provenance=contract.id,
            module=self._module(UnitKind.CAPABILITY, ctx),
            source=self._finish(lines),
            inputs=rendered.inputs,
            outputs=rendered.outputs,
        )

    def _module(self, kind: UnitKind, ctx: EmissionContext) -> str:
        return self.config.module_for(kind.value, to_snake_case(ctx.model.name))

    def _finish(self, lines: list[str]) -> str:
        if not self.config.emit_docs:
            lines = [ln for ln in lines if not ln.lstrip().startswith(("///", "//!", "// "))]
            lines = [ln for ln in lines if ln.strip() != "//"]
        return "\n".join(lines).rstrip() + "\n"

    def _owns_error_trait(self, ctx: EmissionContext, contract: CapabilityContract) -> bool:
        """True when contract is the first emitted one needing its error trait."""
        for contract_id in ctx.emitted_contracts:
            if ctx.contracts[contract_id].error_trait == contract.error_trait:
                return contract_id == contract.id
        return False

    def _primitives(self, ctx: EmissionContext, reg: Register) -> list[str]:
        """Private volatile read/write functions for one register."""
        model = ctx.model
        plan = ctx.plans.get(reg.name)
        rtype = reg_type(reg)
        offset = f"0x{reg.offset:X}"
        aligned = model.is_aligned(reg)
        i1, i2, i3 = self.indent, self.indent * 2, self.indent * 3
        lines: list[str] = []

        if reg.readable:
            lines.append(f"{i1}#[inline(always)]")
            lines.append(f"{i1}fn {read_primitive(reg)}(&self) -> {rtype} {{")
            if aligned:
                lines.append(
                    f"{i2}let value = unsafe {{ {CORE_PTR}::read_volatile("
                    f"(self.base + {offset}) as *const {rtype}) }};"
                )
            else:
                lines.append(f"{i2}let mut value: {rtype} = 0;")
                lines.append(f"{i2}for i in 0..{reg.size} {{")
                lines.append(
                    f"{i3}let byte = unsafe {{ {CORE_PTR}::read_volatile("
                    f"(self.base + {offset} + i) as *const u8) }};"
                )
                lines.append(f"{i3}value |= ({_byte_cast('byte', rtype)}) << {_shift(model, reg)};")
                lines.append(f"{i2}}}")
            if plan.uncached_reads:
                lines.append(f"{i2}{CORE_FENCE}({SEQ_CST});")
            lines.append(f"{i2}value")
            lines.append(f"{i1}}}")

        if reg.writable:
            if lines:
                lines.append("")
            lines.append(f"{i1}#[inline(always)]")
            lines.append(f"{i1}fn {write_primitive(reg)}(&mut self, value: {rtype}) {{")
            if aligned:
                lines.append(
                    f"{i2}unsafe {{ {CORE_PTR}::write_volatile("
                    f"(self.base + {offset}) as *mut {rtype}, value) }}"
                )
            else:
                lines.append(f"{i2}for i in 0..{reg.size} {{")
                lines.append(f"{i3}let byte = (value >> {_shift(model, reg)}) as u8;")
                lines.append(
                    f"{i3}unsafe {{ {CORE_PTR}::write_volatile("
                    f"(self.base + {offset} + i) as *mut u8, byte) }}"
                )
                lines.append(f"{i2}}}")
            lines.append(f"{i1}}}")
        return lines

    def _field_methods(
        self,
        reg: Register,
        field: BitField,
        plan: AccessPlan,
        inputs: list[Var],
        outputs: list[Var],
    ) -> list[list[str]]:
        i1, i2 = self.indent, self.indent * 2
        ftype = field_type(field)
        access = reg.field_access(field)
        action = reg.field_write_action(field)
        field_plan = plan.field_plan(field.name)
        summary = f"{field.name}: {field.description}" if field.description else field.name
        doc = [f"{i1}{ln}" for ln in doc_comment(summary)]
        doc.append(f"{i1}///")
        doc.append(f"{i1}/// Bits {field.msb}:{field.bit_offset}.")

        methods = []
        if reg.readable and access.readable:
            methods.append(
                doc
                + [
                    f"{i1}pub fn {fn_name(reg.name, field.name)}(&self) -> {ftype} {{",
                    f"{i2}{read_field(reg, field)}",
                    f"{i1}}}",
                ]
            )
            outputs.append(Var(f"{reg.name}.{field.name}", ftype, field.description or None))

        if field_plan is None or not reg.writable:
            return methods
        if action is not None:
            body = pulse_field(reg, field, plan)
            methods.append(
                doc
                + [f"{i1}/// Writing 1 performs {action.value}; there is no value to pass."]
                + [f"{i1}pub fn {fn_name(action.value, reg.name, field.name)}(&mut self) {{"]
                + [f"{i2}{stmt}" for stmt in body]
                + [f"{i1}}}"]
            )
        elif field_plan.write is not WriteMethod.NONE:
            body = write_field(reg, field, plan, "value")
            extra = []
            if access.write_once:
                extra.append(f"{i1}/// Takes effect only once after reset.")
            methods.append(
                doc
                + extra
                + [
                    f"{i1}pub fn {fn_name('set', reg.name, field.name)}"
                    f"(&mut self, value: {ftype}) {{"
                ]
                + [f"{i2}{stmt}" for stmt in body]
                + [f"{i1}}}"]
            )
            inputs.append(Var(f"{reg.name}.{field.name}", ftype, field.description or None))
        return methods


# Private helpers -------------------------------------------------------


def _byte_cast(var: str, rtype: str) -> str:
    return var if rtype == "u8" else f"{var} as {rtype}"


def _shift(model: PeripheralModel, reg: Register) -> str:
    if model.endianness is Endianness.BIG:
        return f"(8 * ({reg.size - 1} - i))"
    return "(8 * i)"
