"""Capability contract registry and the bundled embedded-hal contracts."""

from halgen.contracts.registry import (
    ContractRegistry,
    default_registry,
    load_registry,
    registry_from_dict,
)

__all__ = [
    "ContractRegistry",
    "default_registry",
    "load_registry",
    "registry_from_dict",
]
