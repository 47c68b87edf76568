"""Code backend protocol and emission units.

The emitter decides WHAT to generate (which units, in which order); a
CodeBackend decides HOW each unit reads in the target language. The Rust
embedded-hal backend in halgen.rust is the only implementation shipped.

PROTOCOL CONTRACT:
- Backends are pure: rendering never mutates the context
- Each render call returns exactly one EmissionUnit
- render_capability() is only ever called for Full matches
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Protocol

from halgen.core.model import PeripheralModel, Register
from halgen.core.planner import PlanSet
from halgen.interfaces.capability import CapabilityContract, MatchResult


class UnitKind(str, Enum):
    PERIPHERAL = "peripheral"
    RAW_ACCESSOR = "raw-accessor"
    CAPABILITY = "capability"


@dataclass(frozen=True)
class Var:
    """A variable a generated fragment consumes or produces."""

    name: str
    datatype: str
    description: Optional[str] = None


@dataclass(frozen=True)
class EmissionUnit:
    """One generated source fragment and where it came from.

    provenance is the register name for raw accessors, the contract id for
    capability units and the peripheral name for the peripheral unit.
    """

    kind: UnitKind
    provenance: str
    module: str
    source: str
    inputs: tuple[Var, ...] = ()
    outputs: tuple[Var, ...] = ()


@dataclass(frozen=True)
class EmissionContext:
    """Everything a backend may consult while rendering."""

    model: PeripheralModel
    matches: Mapping[str, MatchResult]
    plans: PlanSet
    contracts: Mapping[str, CapabilityContract]
    emitted_contracts: tuple[str, ...]

    def contract_users(self, register: str) -> tuple[str, ...]:
        """Emitted contracts that reach the register."""
        return tuple(
            cid for cid in self.emitted_contracts if register in self.matches[cid].registers()
        )


class CodeBackend(Protocol):
    """Renders emission units for one target language."""

    def render_peripheral(self, ctx: EmissionContext) -> EmissionUnit:
        """Render the peripheral handle and its register primitives."""
        ...

    def render_raw_accessor(self, ctx: EmissionContext, reg: Register) -> EmissionUnit:
        """Render direct get/set access to one register and its fields."""
        ...

    def render_capability(
        self, ctx: EmissionContext, contract: CapabilityContract, match: MatchResult
    ) -> EmissionUnit:
        """Render the trait implementation for one Full match."""
        ...
