"""Interface abstractions for the generator.

- CapabilityContract, OperationRequirement: what a trait needs from hardware
- MatchResult, Binding: what the matcher found
- CodeBackend: how emission units are rendered for a target language
"""

from halgen.interfaces.capability import (
    Binding,
    CapabilityContract,
    MatchResult,
    MatchStatus,
    OperationKind,
    OperationRequirement,
)
from halgen.interfaces.backend import (
    CodeBackend,
    EmissionContext,
    EmissionUnit,
    UnitKind,
    Var,
)

__all__ = [
    "Binding",
    "CapabilityContract",
    "MatchResult",
    "MatchStatus",
    "OperationKind",
    "OperationRequirement",
    "CodeBackend",
    "EmissionContext",
    "EmissionUnit",
    "UnitKind",
    "Var",
]
