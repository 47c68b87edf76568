"""Code emitter.

Selects and orders the emission units for one peripheral, then asks a
backend to render each of them. Ordering is fixed for determinism:

1. the peripheral unit (handle and register primitives)
2. raw accessor units, in register declaration order, for every register
   not fully covered by Full matches
3. capability units, in contract declaration order, for Full matches only

Partial and None matches never produce trait code: a partial trait
implementation would break the trait's contract. Their fields stay
reachable through the raw accessors, and the mismatch goes to the report.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

from halgen.core.matcher import apply_supertraits
from halgen.core.model import PeripheralModel, Register
from halgen.core.planner import PlanSet
from halgen.core.report import CapabilityReport, EmissionReport, Reach, RegisterReport
from halgen.interfaces.backend import CodeBackend, EmissionContext, EmissionUnit, UnitKind
from halgen.interfaces.capability import CapabilityContract, MatchResult

logger = logging.getLogger(__name__)


def covered_fields(
    matches: Mapping[str, MatchResult], contract_ids: Iterable[str]
) -> set[tuple[str, str]]:
    """(register, field) pairs bound by the given contracts."""
    covered = set()
    for contract_id in contract_ids:
        for binding in matches[contract_id].bindings:
            covered.add((binding.register, binding.field))
    return covered


def needs_raw_accessor(reg: Register, covered: set[tuple[str, str]]) -> bool:
    """True unless every field of the register is bound by an emitted trait."""
    if not reg.fields:
        return True
    return any((reg.name, f.name) not in covered for f in reg.fields)


def emit(
    model: PeripheralModel,
    matches: Mapping[str, MatchResult],
    plans: PlanSet,
    contracts: Iterable[CapabilityContract],
    backend: Optional[CodeBackend] = None,
) -> list[EmissionUnit]:
    """Render the ordered emission units for one peripheral.

    Args:
        model: Hardware model
        matches: Matcher results (demotion by the plan is applied here too)
        plans: Planner output for the same model
        contracts: Contracts in declaration order
        backend: Renderer to use; defaults to the Rust embedded-hal backend

    Returns:
        Units in peripheral / register / capability order.
    """
    if backend is None:
        from halgen.rust.backend import RustBackend

        backend = RustBackend()

    return render_units(build_context(model, matches, plans, contracts), backend)


def render_units(ctx: EmissionContext, backend: CodeBackend) -> list[EmissionUnit]:
    """Render the ordered units for an already built context."""
    model = ctx.model
    covered = covered_fields(ctx.matches, ctx.emitted_contracts)

    units = [backend.render_peripheral(ctx)]
    for reg in model.registers:
        if needs_raw_accessor(reg, covered):
            units.append(backend.render_raw_accessor(ctx, reg))
    for contract_id in ctx.emitted_contracts:
        match = ctx.matches[contract_id]
        assert match.is_full, f"{contract_id} is not a Full match"
        units.append(backend.render_capability(ctx, ctx.contracts[contract_id], match))

    logger.debug(f"{model.name}: emitted {len(units)} units")
    return units


def build_context(
    model: PeripheralModel,
    matches: Mapping[str, MatchResult],
    plans: PlanSet,
    contracts: Iterable[CapabilityContract],
) -> EmissionContext:
    """Apply plan demotion and supertraits, then fix the set of emitted contracts."""
    ordered = {c.id: c for c in contracts}
    final = plans.demote(matches)
    # a demoted parent takes its subtraits down with it
    known = [c for c in ordered.values() if c.id in final]
    final = {**final, **apply_supertraits(known, {c.id: final[c.id] for c in known})}
    emitted = tuple(cid for cid in ordered if cid in final and final[cid].is_full)
    return EmissionContext(
        model=model,
        matches=final,
        plans=plans,
        contracts=ordered,
        emitted_contracts=emitted,
    )


def build_report(
    model: PeripheralModel,
    ctx: EmissionContext,
    units: Iterable[EmissionUnit],
) -> EmissionReport:
    """Summarise match and access decisions for the diagnostics layer."""
    units = list(units)
    raw_registers = {u.provenance for u in units if u.kind is UnitKind.RAW_ACCESSOR}
    hints = set(model.capability_hints)

    capabilities = []
    for contract_id, contract in ctx.contracts.items():
        match = ctx.matches.get(contract_id)
        if match is None:
            continue
        capabilities.append(
            CapabilityReport(
                contract_id=contract_id,
                trait=contract.trait,
                status=match.status.value,
                unmet=match.unmet,
                hinted=contract_id in hints,
                emitted=contract_id in ctx.emitted_contracts,
            )
        )

    registers = []
    for reg in model.registers:
        plan = ctx.plans.get(reg.name)
        via_trait = bool(ctx.contract_users(reg.name))
        via_raw = reg.name in raw_registers
        if via_trait and via_raw:
            reach = Reach.BOTH
        elif via_trait:
            reach = Reach.TRAIT
        else:
            reach = Reach.RAW
        registers.append(
            RegisterReport(
                register=reg.name,
                strategy=plan.strategy.value,
                reached_via=reach,
                requires_serialization=plan.requires_serialization,
                caveats=plan.caveats,
            )
        )

    return EmissionReport(
        peripheral=model.name,
        version=model.version,
        capabilities=tuple(capabilities),
        registers=tuple(registers),
        plan_errors=tuple(str(e) for e in ctx.plans.errors),
    )
