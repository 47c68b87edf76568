"""Capability contracts and match results.

A CapabilityContract describes what an abstraction-layer trait needs from
the hardware: a list of operations, each with a required access shape.
Contracts are plain immutable records, not subclasses; supporting a new
trait means adding a contract, never changing the matcher.

CONTRACT SHAPE:
- kind: what the operation does to its field (set, clear, read, ...)
- role: the semantic role that names the operation's field exactly
- compatible_roles: other roles accepted for the same operation
- min_width / max_width: bit-width bounds of the bound field

Untagged fields (no role) are accepted by shape alone, ranking below any
role match, only when the operation sets allow_untagged.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OperationKind(str, Enum):
    """What a contract operation does to the field it binds."""

    SET = "set"
    """Drive the field to all ones."""

    CLEAR = "clear"
    """Drive the field to zero."""

    TOGGLE = "toggle"
    """Invert the field."""

    READ = "read"
    """Test whether the field is non-zero."""

    READ_VALUE = "read-value"
    """Read the field as an integer."""

    WRITE_VALUE = "write-value"
    """Write an integer to the field."""

    MAX_VALUE = "max-value"
    """Report the largest value the field can hold. Needs no access."""


class MatchStatus(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"

    @property
    def rank(self) -> int:
        return {MatchStatus.NONE: 0, MatchStatus.PARTIAL: 1, MatchStatus.FULL: 2}[self]


@dataclass(frozen=True)
class OperationRequirement:
    """One required operation of a contract and its access shape."""

    name: str
    kind: OperationKind
    role: str
    compatible_roles: tuple[str, ...] = ()
    min_width: int = 1
    max_width: Optional[int] = None
    method: Optional[str] = None
    argument: Optional[str] = None
    value_type: Optional[str] = None
    invert: bool = False
    allow_untagged: bool = False

    def accepts_width(self, bit_width: int) -> bool:
        if bit_width < self.min_width:
            return False
        if self.max_width is not None and bit_width > self.max_width:
            return False
        return True


@dataclass(frozen=True)
class CapabilityContract:
    """Process-wide, read-only description of one abstraction trait."""

    id: str
    trait: str
    operations: tuple[OperationRequirement, ...]
    error_trait: Optional[str] = None
    supertraits: tuple[str, ...] = ()
    same_signal: bool = False
    template: str = "methods"
    description: str = ""

    def get_operation(self, name: str) -> Optional[OperationRequirement]:
        for op in self.operations:
            if op.name == name:
                return op
        return None


@dataclass(frozen=True)
class Binding:
    """The field chosen to satisfy one operation."""

    operation: str
    kind: OperationKind
    register: str
    field: str
    exact_role: bool

    @property
    def writes(self) -> bool:
        return self.kind in (
            OperationKind.SET,
            OperationKind.CLEAR,
            OperationKind.TOGGLE,
            OperationKind.WRITE_VALUE,
        )

    @property
    def reads(self) -> bool:
        return self.kind in (
            OperationKind.READ,
            OperationKind.READ_VALUE,
            OperationKind.TOGGLE,
        )


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one contract against one peripheral."""

    contract_id: str
    status: MatchStatus
    bindings: tuple[Binding, ...] = ()
    unmet: tuple[str, ...] = ()

    @property
    def is_full(self) -> bool:
        return self.status is MatchStatus.FULL

    def binding_for(self, operation: str) -> Optional[Binding]:
        for binding in self.bindings:
            if binding.operation == operation:
                return binding
        return None

    def registers(self) -> tuple[str, ...]:
        """Registers referenced by the bindings, in first-use order."""
        seen: list[str] = []
        for binding in self.bindings:
            if binding.register not in seen:
                seen.append(binding.register)
        return tuple(seen)
