"""Capability matcher.

Decides, for every known capability contract, whether a peripheral model
can implement it fully, partially or not at all.

For each operation the matcher collects candidate fields whose role,
access mode and bit width fit the operation's required shape. Candidates
rank by role quality (exact role, then compatible role, then untagged
field matched by shape only where the operation allows it) and then by
declaration order, so the result is a pure, reproducible function of the
model and the contract.

Contracts flagged ``same_signal`` must bind every operation to fields of
one logical signal (a set/clear register pair, or one read-write bit). The
signal is chosen to maximise the number of matched operations, then the
number of exact-role bindings, then the earliest declaration. A subtrait
that is also ``same_signal`` is held to the signal its supertrait bound.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from halgen.core.model import BitField, PeripheralModel, Register, WriteAction
from halgen.interfaces.capability import (
    Binding,
    CapabilityContract,
    MatchResult,
    MatchStatus,
    OperationKind,
    OperationRequirement,
)

logger = logging.getLogger(__name__)

# Role quality, lower is better
_EXACT = 0
_COMPATIBLE = 1
_SHAPE_ONLY = 2


@dataclass(frozen=True)
class _Candidate:
    quality: int
    order: int
    register: Register
    field: BitField

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.quality, self.order)

    def to_binding(self, op: OperationRequirement) -> Binding:
        return Binding(
            operation=op.name,
            kind=op.kind,
            register=self.register.name,
            field=self.field.name,
            exact_role=self.quality == _EXACT,
        )


def match_capabilities(
    model: PeripheralModel, contracts: Iterable[CapabilityContract]
) -> dict[str, MatchResult]:
    """Match every contract against the model.

    A ``same_signal`` contract whose supertrait is also ``same_signal`` is
    matched on the signal its Full supertrait bound, so a subtrait never
    observes a different line than the trait it extends.

    Args:
        model: Hardware model to inspect
        contracts: Known contracts, in declaration order

    Returns:
        Mapping of contract id to MatchResult, in contract order.
    """
    contracts = list(contracts)
    by_id = {c.id: c for c in contracts}
    matched: dict[str, MatchResult] = {}

    def match_one(contract: CapabilityContract, stack: tuple[str, ...]) -> MatchResult:
        if contract.id in matched:
            return matched[contract.id]
        signal = None
        if contract.same_signal:
            for parent_id in contract.supertraits:
                parent = by_id.get(parent_id)
                if parent is None or not parent.same_signal or parent_id in stack:
                    continue
                parent_result = match_one(parent, stack + (contract.id,))
                if parent_result.is_full:
                    signal = bound_signal(model, parent_result)
                    break
        matched[contract.id] = match_contract(model, contract, signal=signal)
        return matched[contract.id]

    for contract in contracts:
        match_one(contract, ())
    results = apply_supertraits(contracts, {c.id: matched[c.id] for c in contracts})

    for result in results.values():
        logger.debug(f"{model.name}: {result.contract_id} -> {result.status.value}")
    return results


def match_contract(
    model: PeripheralModel, contract: CapabilityContract, signal: Optional[str] = None
) -> MatchResult:
    """Match a single contract, ignoring supertrait requirements.

    Args:
        model: Hardware model to inspect
        contract: Contract to match
        signal: Restrict candidates to fields of this logical signal

    Returns:
        The contract's MatchResult.
    """
    candidates = {op.name: _candidates(model, op) for op in contract.operations}
    if signal is not None:
        candidates = {
            name: [c for c in cands if c.field.signal_name == signal]
            for name, cands in candidates.items()
        }

    if contract.same_signal:
        chosen = _choose_by_signal(contract, candidates)
    else:
        chosen = {name: cands[0] for name, cands in candidates.items() if cands}

    bindings = tuple(
        chosen[op.name].to_binding(op) for op in contract.operations if op.name in chosen
    )
    unmet = tuple(
        _describe_unmet(model, op, signal)
        for op in contract.operations
        if op.name not in chosen
    )

    if not unmet:
        status = MatchStatus.FULL
    elif bindings:
        status = MatchStatus.PARTIAL
    else:
        status = MatchStatus.NONE

    return MatchResult(
        contract_id=contract.id, status=status, bindings=bindings, unmet=unmet
    )


def bound_signal(model: PeripheralModel, result: MatchResult) -> Optional[str]:
    """Logical signal of the first field a match binds, if any."""
    for binding in result.bindings:
        reg = model.get_register(binding.register)
        field = reg.get_field(binding.field) if reg is not None else None
        if field is not None:
            return field.signal_name
    return None


def role_quality(field: BitField, op: OperationRequirement) -> Optional[int]:
    """Rank how well a field's role names an operation's role.

    Returns None when the field carries a different, explicit role.
    """
    if field.role is None:
        return _SHAPE_ONLY if op.allow_untagged else None
    if field.role == op.role:
        return _EXACT
    if field.role in op.compatible_roles:
        return _COMPATIBLE
    return None


def access_sufficient(reg: Register, field: BitField, kind: OperationKind) -> bool:
    """Check whether a field's access mode supports an operation kind."""
    access = reg.field_access(field)
    # write actions only exist on writable fields
    action = reg.field_write_action(field) if access.writable else None
    plain_writable = access.writable and not access.write_once and action is None

    if kind is OperationKind.SET:
        return action is WriteAction.SET or plain_writable
    if kind is OperationKind.CLEAR:
        return action is WriteAction.CLEAR or plain_writable
    if kind is OperationKind.TOGGLE:
        return action is WriteAction.TOGGLE or (plain_writable and access.readable)
    if kind in (OperationKind.READ, OperationKind.READ_VALUE):
        return access.readable
    if kind is OperationKind.WRITE_VALUE:
        return plain_writable
    if kind is OperationKind.MAX_VALUE:
        return True
    raise ValueError(f"Unknown operation kind {kind!r}")


def apply_supertraits(
    contracts: list[CapabilityContract], results: dict[str, MatchResult]
) -> dict[str, MatchResult]:
    """Downgrade Full matches whose supertrait contracts are not Full."""
    by_id = {c.id: c for c in contracts}
    resolved: dict[str, MatchResult] = {}

    def resolve(contract_id: str, stack: tuple[str, ...]) -> MatchResult:
        if contract_id in resolved:
            return resolved[contract_id]
        result = results[contract_id]
        contract = by_id[contract_id]
        missing = []
        for parent in contract.supertraits:
            if parent in stack:
                missing.append(f"supertrait {parent} is cyclic")
            elif parent not in results:
                missing.append(f"supertrait {parent} is not a known contract")
            elif not resolve(parent, stack + (contract_id,)).is_full:
                missing.append(f"supertrait {parent} is not fully supported")
        missing = [m for m in missing if m not in result.unmet]
        if missing and result.status is MatchStatus.FULL:
            result = replace(
                result, status=MatchStatus.PARTIAL, unmet=result.unmet + tuple(missing)
            )
        elif missing:
            result = replace(result, unmet=result.unmet + tuple(missing))
        resolved[contract_id] = result
        return result

    for contract in contracts:
        resolve(contract.id, ())
    return {cid: resolved[cid] for cid in results}


# Private helpers -------------------------------------------------------


def _candidates(model: PeripheralModel, op: OperationRequirement) -> list[_Candidate]:
    found = []
    for order, (reg, field) in enumerate(model.iter_fields()):
        quality = role_quality(field, op)
        if quality is None:
            continue
        if not op.accepts_width(field.bit_width):
            continue
        if not access_sufficient(reg, field, op.kind):
            continue
        found.append(_Candidate(quality=quality, order=order, register=reg, field=field))
    found.sort(key=lambda c: c.sort_key)
    return found


def _choose_by_signal(
    contract: CapabilityContract, candidates: dict[str, list[_Candidate]]
) -> dict[str, _Candidate]:
    """Pick the one signal that satisfies the most operations."""
    signal_order: dict[str, int] = {}
    for op in contract.operations:
        for cand in candidates[op.name]:
            signal = cand.field.signal_name
            if signal not in signal_order or cand.order < signal_order[signal]:
                signal_order[signal] = cand.order

    best: dict[str, _Candidate] = {}
    best_key: Optional[tuple[int, int, int]] = None
    for signal, first_order in signal_order.items():
        picked = {}
        for op in contract.operations:
            for cand in candidates[op.name]:
                if cand.field.signal_name == signal:
                    picked[op.name] = cand
                    break
        exact = sum(1 for c in picked.values() if c.quality == _EXACT)
        key = (-len(picked), -exact, first_order)
        if best_key is None or key < best_key:
            best, best_key = picked, key
    return best


def _describe_unmet(
    model: PeripheralModel, op: OperationRequirement, signal: Optional[str] = None
) -> str:
    """Explain why no field satisfies an operation."""
    if signal is not None:
        return f"{op.name}: signal '{signal}' bound by the supertrait has no suitable field"

    role_hits = [
        (reg, field)
        for reg, field in model.iter_fields()
        if role_quality(field, op) in (_EXACT, _COMPATIBLE)
    ]
    if not role_hits:
        return f"{op.name}: no field with role '{op.role}'"

    for reg, field in role_hits:
        if not op.accepts_width(field.bit_width):
            continue
        if not access_sufficient(reg, field, op.kind):
            access = reg.field_access(field).value
            return (
                f"{op.name}: field {reg.name}.{field.name} is {access}, "
                f"insufficient for {op.kind.value}"
            )
    for reg, field in role_hits:
        if not op.accepts_width(field.bit_width):
            return (
                f"{op.name}: field {reg.name}.{field.name} is {field.bit_width} bits wide, "
                f"outside [{op.min_width}, {op.max_width if op.max_width is not None else 'any'}]"
            )
    return f"{op.name}: no field with role '{op.role}' on the chosen signal"
