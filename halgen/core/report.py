"""Emission report.

A purely informational record of what the generator decided: the match
status of every capability contract and how every register ended up being
reached. It is built for the external diagnostics/CLI layer and is never
read back by the core.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class Reach(str, Enum):
    """How generated code reaches a register."""

    TRAIT = "trait"
    RAW = "raw"
    BOTH = "both"


@dataclass(frozen=True)
class CapabilityReport:
    contract_id: str
    trait: str
    status: str
    unmet: tuple[str, ...] = ()
    hinted: bool = False
    emitted: bool = False


@dataclass(frozen=True)
class RegisterReport:
    register: str
    strategy: str
    reached_via: Reach
    requires_serialization: bool = False
    caveats: tuple[str, ...] = ()


@dataclass(frozen=True)
class EmissionReport:
    peripheral: str
    version: Optional[str]
    capabilities: tuple[CapabilityReport, ...]
    registers: tuple[RegisterReport, ...]
    plan_errors: tuple[str, ...] = ()

    def capability(self, contract_id: str) -> CapabilityReport:
        for cap in self.capabilities:
            if cap.contract_id == contract_id:
                return cap
        raise KeyError(contract_id)

    def register(self, name: str) -> RegisterReport:
        for reg in self.registers:
            if reg.register == name:
                return reg
        raise KeyError(name)

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form, suitable for JSON/YAML dumping."""
        return {
            "peripheral": self.peripheral,
            "version": self.version,
            "capabilities": [
                {
                    "id": cap.contract_id,
                    "trait": cap.trait,
                    "status": cap.status,
                    "unmet": list(cap.unmet),
                    "hinted": cap.hinted,
                    "emitted": cap.emitted,
                }
                for cap in self.capabilities
            ],
            "registers": [
                {
                    "name": reg.register,
                    "strategy": reg.strategy,
                    "reached_via": reg.reached_via.value,
                    "requires_serialization": reg.requires_serialization,
                    "caveats": list(reg.caveats),
                }
                for reg in self.registers
            ],
            "plan_errors": list(self.plan_errors),
        }

    def summary(self) -> list[str]:
        """Human-readable one-line-per-item summary."""
        lines = [f"{self.peripheral}:"]
        for cap in self.capabilities:
            line = f"  {cap.contract_id} ({cap.trait}): {cap.status}"
            if cap.unmet:
                line += f" [{'; '.join(cap.unmet)}]"
            lines.append(line)
        for reg in self.registers:
            line = f"  {reg.register}: {reg.strategy} via {reg.reached_via.value}"
            if reg.caveats:
                line += f" ({'; '.join(reg.caveats)})"
            lines.append(line)
        return lines
