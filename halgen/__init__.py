"""openPID hardware-abstraction code generator.

Translates a platform-neutral peripheral description (register map,
bit-field layout, capability hints) into Rust driver code implementing
embedded-hal / embedded-io traits, falling back to raw register access
wherever no trait can express the hardware faithfully.

Getting started:
    from halgen import generate

    result = generate(
        {
            "name": "GPIOA",
            "base_address": 0x4002_0000,
            "registers": [...],
        }
    )
    for unit in result.units:
        print(unit.source)
"""

from halgen.contracts import ContractRegistry, default_registry, load_registry
from halgen.core.exceptions import ConfigurationError, HalGenError, ModelError, PlanError
from halgen.core.ir_builder import build_model
from halgen.core.pipeline import GenerationResult, generate
from halgen.utils.config_loader import GeneratorConfig, get_config, load_config

__all__ = [
    # Pipeline
    "generate",
    "GenerationResult",
    "build_model",
    # Contracts
    "ContractRegistry",
    "default_registry",
    "load_registry",
    # Configuration
    "GeneratorConfig",
    "get_config",
    "load_config",
    # Errors
    "HalGenError",
    "ConfigurationError",
    "ModelError",
    "PlanError",
]
