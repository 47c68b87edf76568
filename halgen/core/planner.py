"""Register access planner.

Derives, for every register, the access pattern generated code must use:

- READ_ONLY: the register is never written
- DIRECT_WRITE: writes never read the register first (write-only registers,
  set/clear idioms, registers whose reads have side effects)
- READ_WRITE: the whole register is one value, loaded and stored as is
- READ_MODIFY_WRITE: several fields share the register; a field write must
  read, mask and write back, and concurrent writers must serialise

Per field, the plan also picks how a write is performed (bitwise action,
whole-register store, read-modify-write, or a store that fills the other
bits with their reset values).

RUNTIME CONTRACT:
The serialisation requirement recorded here applies to the generated code,
not to the generator. The emitter must surface it; it does not insert
locks itself.

Registers whose needs cannot be met are demoted to raw fallback access
with a caveat. The PlanError is collected, never raised out of
plan_access().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping, Optional

from halgen.core.exceptions import PlanError
from halgen.core.model import PeripheralModel, Register
from halgen.interfaces.capability import MatchResult, MatchStatus

logger = logging.getLogger(__name__)


class AccessStrategy(str, Enum):
    READ_ONLY = "read-only"
    DIRECT_WRITE = "direct-write"
    READ_WRITE = "read-write"
    READ_MODIFY_WRITE = "read-modify-write"


class WriteMethod(str, Enum):
    """How a single field write is carried out."""

    NONE = "none"
    BITWISE = "bitwise"
    WHOLE = "whole"
    RMW = "rmw"
    FILL = "fill"


@dataclass(frozen=True)
class FieldPlan:
    field: str
    write: WriteMethod
    fill_value: Optional[int] = None


@dataclass(frozen=True)
class AccessPlan:
    """Chosen access pattern for one register."""

    register: str
    strategy: AccessStrategy
    fields: tuple[FieldPlan, ...] = ()
    atomic: bool = True
    uncached_reads: bool = False
    destructive_reads: bool = False
    requires_serialization: bool = False
    write_zero_mask: int = 0
    users: tuple[str, ...] = ()
    caveats: tuple[str, ...] = ()
    demoted: bool = False

    @property
    def issues_reads_on_write(self) -> bool:
        """True when some field write reads the register first.

        Action bits in a read-modify-write register are pulsed through a
        read-modify-write too, so plain fields sharing them keep their value.
        """
        if any(f.write is WriteMethod.RMW for f in self.fields):
            return True
        return self.strategy is AccessStrategy.READ_MODIFY_WRITE and any(
            f.write is WriteMethod.BITWISE for f in self.fields
        )

    def field_plan(self, name: str) -> Optional[FieldPlan]:
        for plan in self.fields:
            if plan.field == name:
                return plan
        return None


@dataclass(frozen=True)
class PlanSet:
    """Access plans for every register of one model, plus plan errors."""

    plans: tuple[AccessPlan, ...]
    errors: tuple[PlanError, ...] = ()

    def get(self, register: str) -> AccessPlan:
        for plan in self.plans:
            if plan.register == register:
                return plan
        raise KeyError(register)

    def demoted_registers(self) -> tuple[str, ...]:
        return tuple(p.register for p in self.plans if p.demoted)

    def demote(self, matches: Mapping[str, MatchResult]) -> dict[str, MatchResult]:
        """Downgrade matches that depend on a demoted register.

        A Full match binding a demoted register becomes Partial: the
        contract cannot be satisfied and its registers fall back to raw
        access. The plan error is added to the unmet requirements once, so
        demoting twice gives the same result.
        """
        reasons = {}
        for err in self.errors:
            reasons.setdefault(err.register, str(err))

        updated: dict[str, MatchResult] = {}
        for contract_id, result in matches.items():
            blocked = [
                reasons[r]
                for r in result.registers()
                if r in reasons and reasons[r] not in result.unmet
            ]
            if blocked:
                status = result.status
                if status is MatchStatus.FULL:
                    status = MatchStatus.PARTIAL
                    logger.warning(f"{contract_id} demoted: {blocked[0]}")
                result = replace(result, status=status, unmet=result.unmet + tuple(blocked))
            updated[contract_id] = result
        return updated


def plan_access(model: PeripheralModel, matches: Mapping[str, MatchResult]) -> PlanSet:
    """Plan access for every register of the model.

    Args:
        model: Hardware model
        matches: Matcher output; Full and Partial bindings mark the fields
            that capability code needs to reach

    Returns:
        One AccessPlan per register in declaration order, plus the
        PlanErrors hit on the way.
    """
    users: dict[str, list[str]] = {}
    write_needs: dict[str, set[str]] = {}
    for contract_id, result in matches.items():
        if result.status is MatchStatus.NONE:
            continue
        for binding in result.bindings:
            reg_users = users.setdefault(binding.register, [])
            if contract_id not in reg_users:
                reg_users.append(contract_id)
            if binding.writes:
                write_needs.setdefault(binding.register, set()).add(binding.field)

    plans = []
    errors = []
    for reg in model.registers:
        reg_users = tuple(users.get(reg.name, ()))
        try:
            plan = _plan_register(model, reg, reg_users, write_needs.get(reg.name, set()))
        except PlanError as err:
            logger.warning(str(err))
            errors.append(err)
            plan = _fallback_plan(model, reg, reg_users, err)
        plans.append(plan)

    return PlanSet(plans=tuple(plans), errors=tuple(errors))


def base_strategy(reg: Register) -> AccessStrategy:
    """Strategy implied by the register's own shape."""
    if not reg.writable:
        return AccessStrategy.READ_ONLY
    if not reg.readable:
        return AccessStrategy.DIRECT_WRITE
    if reg.fields and all(reg.field_write_action(f) is not None for f in reg.fields):
        return AccessStrategy.DIRECT_WRITE
    if not reg.fields or (len(reg.fields) == 1 and reg.spans_register(reg.fields[0])):
        return AccessStrategy.READ_WRITE
    if reg.destructive_reads:
        return AccessStrategy.DIRECT_WRITE
    return AccessStrategy.READ_MODIFY_WRITE


# Private helpers -------------------------------------------------------


def _plan_register(
    model: PeripheralModel,
    reg: Register,
    users: tuple[str, ...],
    write_needs: set[str],
) -> AccessPlan:
    aligned = model.is_aligned(reg)
    if not aligned and users:
        raise PlanError(
            reg.name,
            f"address 0x{model.base_address + reg.offset:X} is not aligned to its "
            f"{reg.width}-bit width",
        )

    strategy = base_strategy(reg)
    caveats = _shape_caveats(model, reg, aligned)

    field_plans = []
    for field in reg.fields:
        access = reg.field_access(field)
        if not access.writable:
            field_plans.append(FieldPlan(field.name, WriteMethod.NONE))
        elif reg.field_write_action(field) is not None:
            field_plans.append(FieldPlan(field.name, WriteMethod.BITWISE))
        elif reg.spans_register(field):
            field_plans.append(FieldPlan(field.name, WriteMethod.WHOLE))
        elif strategy is AccessStrategy.READ_MODIFY_WRITE:
            field_plans.append(FieldPlan(field.name, WriteMethod.RMW))
        else:
            fill = reg.known_reset_value(exclude=field)
            if fill is not None:
                field_plans.append(FieldPlan(field.name, WriteMethod.FILL, fill & reg.full_mask))
                caveats.append(
                    f"writing {field.name} also writes the reset value to the other bits"
                )
            elif field.name in write_needs:
                raise PlanError(
                    reg.name,
                    "register cannot be read back and the other bits have unknown reset "
                    "values, so the field cannot be written on its own",
                    field=field.name,
                )
            else:
                field_plans.append(FieldPlan(field.name, WriteMethod.NONE))
                caveats.append(
                    f"{field.name} is not individually writable; write the whole register"
                )

    rmw = strategy is AccessStrategy.READ_MODIFY_WRITE
    atomic = aligned and reg.width <= model.word_size
    return AccessPlan(
        register=reg.name,
        strategy=strategy,
        fields=tuple(field_plans),
        atomic=atomic,
        uncached_reads=reg.volatile or reg.destructive_reads,
        destructive_reads=reg.destructive_reads,
        requires_serialization=rmw or (reg.writable and not atomic),
        write_zero_mask=reg.action_mask() if rmw else 0,
        users=users,
        caveats=tuple(caveats),
    )


def _shape_caveats(model: PeripheralModel, reg: Register, aligned: bool) -> list[str]:
    caveats = []
    if not aligned:
        caveats.append("register is not aligned to its width and is accessed byte by byte")
    elif reg.width > model.word_size:
        caveats.append(
            f"{reg.width}-bit access is split into several bus transactions on a "
            f"{model.word_size}-bit target"
        )
    if reg.destructive_reads:
        caveats.append("reads have side effects; every read is observable by the hardware")
    return caveats


def _fallback_plan(
    model: PeripheralModel, reg: Register, users: tuple[str, ...], err: PlanError
) -> AccessPlan:
    """Whole-register raw access only, with the plan error as caveat."""
    aligned = model.is_aligned(reg)
    strategy = base_strategy(reg)
    if strategy is AccessStrategy.READ_MODIFY_WRITE:
        strategy = AccessStrategy.READ_WRITE
    caveats = _shape_caveats(model, reg, aligned) + [err.reason]
    return AccessPlan(
        register=reg.name,
        strategy=strategy,
        fields=tuple(FieldPlan(f.name, WriteMethod.NONE) for f in reg.fields),
        atomic=aligned and reg.width <= model.word_size,
        uncached_reads=reg.volatile or reg.destructive_reads,
        destructive_reads=reg.destructive_reads,
        requires_serialization=reg.writable,
        users=users,
        caveats=tuple(caveats),
        demoted=True,
    )
