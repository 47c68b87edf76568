"""Generation pipeline.

Runs the stages strictly in sequence for one peripheral:

    description -> build_model -> match_capabilities -> plan_access
                -> emit -> build_report

Nothing is shared between runs except the lock-guarded, read-only
config and registry caches, so concurrent generate() calls for different
peripherals are safe.

Getting started:
    from halgen import generate

    result = generate(description)
    for unit in result.units:
        print(unit.module, unit.provenance)
    print("\\n".join(result.report.summary()))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from halgen.contracts.registry import ContractRegistry, default_registry
from halgen.core.emitter import build_context, build_report, render_units
from halgen.core.ir_builder import build_model
from halgen.core.matcher import match_capabilities
from halgen.core.model import PeripheralModel
from halgen.core.planner import plan_access
from halgen.core.report import EmissionReport
from halgen.interfaces.backend import CodeBackend, EmissionUnit
from halgen.utils.config_loader import GeneratorConfig, get_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    """Everything one generation run produced."""

    units: tuple[EmissionUnit, ...]
    report: EmissionReport
    model: PeripheralModel

    def source_for(self, module: str) -> str:
        """Concatenate the units targeting one module, in emission order."""
        return "\n".join(u.source for u in self.units if u.module == module)

    def modules(self) -> list[str]:
        """Target modules in first-use order."""
        seen: list[str] = []
        for unit in self.units:
            if unit.module not in seen:
                seen.append(unit.module)
        return seen


def generate(
    description: Union[Mapping[str, Any], PeripheralModel],
    *,
    registry: Optional[ContractRegistry] = None,
    config: Optional[GeneratorConfig] = None,
    backend: Optional[CodeBackend] = None,
) -> GenerationResult:
    """Generate driver code for one peripheral.

    Args:
        description: Parsed openPID description, or an already built model
        registry: Capability contracts; defaults to the bundled registry
        config: Generator settings; defaults to the bundled config.yaml
        backend: Code backend; defaults to RustBackend(config)

    Returns:
        GenerationResult with the ordered units, the report and the model

    Raises:
        ModelError: If the description is internally inconsistent
    """
    config = config if config is not None else get_config()
    registry = registry if registry is not None else default_registry()
    if backend is None:
        from halgen.rust.backend import RustBackend

        backend = RustBackend(config)

    if isinstance(description, PeripheralModel):
        model = description
    else:
        model = build_model(description, word_size=_word_size(description, config))

    if model.version is None:
        logger.warning(
            f"{model.name}: no document version provided; generated code states "
            f"version {config.default_version}"
        )

    contracts = list(registry)
    matches = match_capabilities(model, contracts)
    plans = plan_access(model, matches)
    ctx = build_context(model, matches, plans, contracts)
    units = render_units(ctx, backend)
    report = build_report(model, ctx, units)

    for hint in model.capability_hints:
        if hint not in registry:
            logger.warning(f"{model.name}: capability hint '{hint}' names no known contract")
            continue
        cap = report.capability(hint)
        if not cap.emitted:
            logger.warning(
                f"{model.name}: hinted capability '{hint}' is {cap.status}: "
                f"{'; '.join(cap.unmet) or 'not emitted'}"
            )

    for line in report.summary():
        logger.info(line)

    return GenerationResult(units=tuple(units), report=report, model=model)


# Private helpers -------------------------------------------------------


def _word_size(description: Mapping[str, Any], config: GeneratorConfig) -> Optional[int]:
    """Configured word size, unless the description names its own."""
    if "word_size" in description:
        return None
    return config.word_size
