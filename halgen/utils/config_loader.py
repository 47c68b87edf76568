"""Helpers for loading and validating generator configuration."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml  # type: ignore[import-untyped]

from halgen.core.exceptions import ConfigurationError

DEFAULT_MODULES = {
    "peripheral": "{peripheral}/mod.rs",
    "raw-accessor": "{peripheral}/registers.rs",
    "capability": "{peripheral}/hal.rs",
}


@dataclass(frozen=True)
class GeneratorConfig:
    """Generator-wide settings.

    word_size is the default target word size in bits, used when neither
    the caller nor the description names one. modules maps each emission
    unit kind to its target module pattern; it is stored as sorted pairs so
    the config stays hashable.
    """

    word_size: int = 32
    indent: str = "    "
    emit_docs: bool = True
    default_version: str = "0.1.0"
    modules: Union[Mapping[str, str], tuple[tuple[str, str], ...]] = tuple(
        sorted(DEFAULT_MODULES.items())
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "modules", tuple(sorted(dict(self.modules).items())))

    def module_for(self, kind: str, peripheral: str) -> str:
        return dict(self.modules)[kind].format(peripheral=peripheral)


# Configuration cache with thread safety
_LOADER_CACHE: dict[str, GeneratorConfig] = {}
_CACHE_LOCK = threading.RLock()


def _get_config_path(path: Optional[str] = None) -> str:
    if path is None:
        # Bundled defaults live next to the package
        path = str(Path(__file__).parent.parent / "config.yaml")
    return path


def _load_yaml_file(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except Exception as exc:
        raise ConfigurationError(f"Failed to parse {path}: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return raw


def _parse_generator_cfg_from_dict(raw: dict[str, Any]) -> GeneratorConfig:
    generator = raw.get("generator", {})
    if not isinstance(generator, dict):
        raise ConfigurationError("generator", "must be a mapping")

    modules = dict(DEFAULT_MODULES)
    try:
        modules.update({str(k): str(v) for k, v in generator.get("modules", {}).items()})
        cfg = GeneratorConfig(
            word_size=int(generator.get("word_size", 32)),
            indent=str(generator.get("indent", "    ")),
            emit_docs=bool(generator.get("emit_docs", True)),
            default_version=str(generator.get("default_version", "0.1.0")),
            modules=modules,
        )
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigurationError(f"Invalid config schema: {exc}") from exc

    _validate_generator_config(cfg)
    return cfg


def _validate_generator_config(cfg: GeneratorConfig) -> None:
    """Basic sanity checks to fail fast on bad configs."""
    if cfg.word_size not in (8, 16, 32, 64):
        raise ConfigurationError("word_size", "must be one of 8, 16, 32, 64")

    if not cfg.indent or cfg.indent.strip():
        raise ConfigurationError("indent", "must be non-empty whitespace")

    modules = dict(cfg.modules)
    unknown = set(modules) - set(DEFAULT_MODULES)
    if unknown:
        raise ConfigurationError("modules", f"unknown unit kinds: {sorted(unknown)}")

    for kind, pattern in modules.items():
        try:
            pattern.format(peripheral="x")
        except (KeyError, IndexError, ValueError) as exc:
            raise ConfigurationError(f"modules.{kind}", f"bad pattern {pattern!r}") from exc


def load_config(path: Optional[str] = None) -> GeneratorConfig:
    """Load and validate generator configuration from a YAML file.

    Args:
        path: Optional path to a YAML config. If None, load the bundled
            halgen/config.yaml.

    Returns:
        GeneratorConfig instance

    Raises:
        ConfigurationError: on parse or validation errors
    """
    p = Path(_get_config_path(path=path))
    raw = _load_yaml_file(p)

    return _parse_generator_cfg_from_dict(raw=raw)


def get_config(path: Optional[str] = None) -> GeneratorConfig:
    """Return the loaded config for path, loading and caching if necessary.

    THREAD SAFETY: This function is thread-safe. Multiple threads can
    safely call this concurrently.
    """
    key = _get_config_path(path=path)
    with _CACHE_LOCK:
        if key not in _LOADER_CACHE:
            _LOADER_CACHE[key] = load_config(path=path)
        return _LOADER_CACHE[key]


def clear_config_cache() -> None:
    """Clear all cached configurations.

    All subsequent calls to get_config() will reload from disk.
    """
    with _CACHE_LOCK:
        _LOADER_CACHE.clear()
