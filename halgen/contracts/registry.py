"""Capability contract registry.

Holds the versioned, ordered set of capability contracts the matcher runs
against. A registry is immutable once built; with_contract() returns an
extended copy, so the bundled registry can be shared process-wide.

Contracts are loaded from YAML. The bundled file,
halgen/contracts/embedded_hal.yaml, covers the embedded-hal 1.0 and
embedded-io traits the Rust backend knows how to render.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from halgen.core.exceptions import ConfigurationError
from halgen.interfaces.capability import (
    CapabilityContract,
    OperationKind,
    OperationRequirement,
)
from halgen.utils.config_loader import _load_yaml_file

BUNDLED_REGISTRY = Path(__file__).parent / "embedded_hal.yaml"


class ContractRegistry:
    """Ordered registry of capability contracts.

    Declaration order is preserved: it is the order contracts are matched,
    emitted and reported in.
    """

    def __init__(self, contracts: Iterable[CapabilityContract] = (), version: str = "0"):
        self._contracts: dict[str, CapabilityContract] = {}
        self.version = version
        for contract in contracts:
            if contract.id in self._contracts:
                raise ValueError(f"Contract '{contract.id}' already registered")
            self._contracts[contract.id] = contract

    def get(self, contract_id: str) -> CapabilityContract:
        """Get a contract by id."""
        if contract_id not in self._contracts:
            raise ValueError(
                f"Unknown contract '{contract_id}'. Available: {list(self._contracts.keys())}"
            )
        return self._contracts[contract_id]

    def list_contracts(self) -> list[str]:
        """List all registered contract ids."""
        return list(self._contracts.keys())

    def with_contract(self, contract: CapabilityContract) -> ContractRegistry:
        """Return a new registry with one more contract appended."""
        return ContractRegistry([*self._contracts.values(), contract], version=self.version)

    def __iter__(self) -> Iterator[CapabilityContract]:
        return iter(self._contracts.values())

    def __len__(self) -> int:
        return len(self._contracts)

    def __contains__(self, contract_id: object) -> bool:
        return contract_id in self._contracts


# Bundled registry cache
_REGISTRY_CACHE: dict[str, ContractRegistry] = {}
_CACHE_LOCK = threading.RLock()


def _build_operation(contract_id: str, raw: dict[str, Any]) -> OperationRequirement:
    try:
        max_width = raw.get("max_width")
        return OperationRequirement(
            name=str(raw["name"]),
            kind=OperationKind(raw["kind"]),
            role=str(raw["role"]),
            compatible_roles=tuple(str(r) for r in raw.get("compatible_roles", ())),
            min_width=int(raw.get("min_width", 1)),
            max_width=int(max_width) if max_width is not None else None,
            method=raw.get("method"),
            argument=raw.get("argument"),
            value_type=raw.get("value_type"),
            invert=bool(raw.get("invert", False)),
            allow_untagged=bool(raw.get("allow_untagged", False)),
        )
    except KeyError as exc:
        raise ConfigurationError(
            f"contracts.{contract_id}", f"operation is missing required key {exc}"
        ) from exc
    except ValueError as exc:
        raise ConfigurationError(f"contracts.{contract_id}", str(exc)) from exc


def _build_contract(raw: dict[str, Any]) -> CapabilityContract:
    try:
        contract_id = str(raw["id"])
        operations = raw["operations"]
        trait = str(raw["trait"])
    except KeyError as exc:
        raise ConfigurationError(f"Contract is missing required key {exc}") from exc

    if not operations:
        raise ConfigurationError(f"contracts.{contract_id}", "needs at least one operation")

    ops = tuple(_build_operation(contract_id, op) for op in operations)
    names = [op.name for op in ops]
    if len(set(names)) != len(names):
        raise ConfigurationError(f"contracts.{contract_id}", "duplicate operation names")

    return CapabilityContract(
        id=contract_id,
        trait=trait,
        operations=ops,
        error_trait=raw.get("error_trait"),
        supertraits=tuple(str(s) for s in raw.get("supertraits", ())),
        same_signal=bool(raw.get("same_signal", False)),
        template=str(raw.get("template", "methods")),
        description=str(raw.get("description", "")),
    )


def registry_from_dict(raw: dict[str, Any]) -> ContractRegistry:
    """Build a registry from its YAML form.

    Raises:
        ConfigurationError: on missing keys, bad values or duplicate ids
    """
    contracts = [_build_contract(c) for c in raw.get("contracts") or ()]
    try:
        registry = ContractRegistry(contracts, version=str(raw.get("version", "0")))
    except ValueError as exc:
        raise ConfigurationError("contracts", str(exc)) from exc

    for contract in registry:
        for parent in contract.supertraits:
            if parent not in registry:
                raise ConfigurationError(
                    f"contracts.{contract.id}", f"unknown supertrait '{parent}'"
                )
    return registry


def load_registry(path: Optional[str] = None) -> ContractRegistry:
    """Load a contract registry from YAML (the bundled one by default)."""
    p = Path(path) if path is not None else BUNDLED_REGISTRY
    return registry_from_dict(_load_yaml_file(p))


def default_registry() -> ContractRegistry:
    """Return the bundled registry, loading it once.

    THREAD SAFETY: This function is thread-safe.
    """
    key = str(BUNDLED_REGISTRY)
    with _CACHE_LOCK:
        if key not in _REGISTRY_CACHE:
            _REGISTRY_CACHE[key] = load_registry()
        return _REGISTRY_CACHE[key]
