"""Configuration loaders for YAML-based runtime settings, defaults and prompt registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

CONFIG_DIR = Path(__file__).resolve().parents[2] / "configs"


@dataclass
class EvaluatorSettings:
    cache_capacity: int = 256
    max_length: int = 1000
    max_depth: int = 64


@dataclass
class NormalizerSettings:
    sample_steps: int = 100
    default_z_range: List[float] = field(default_factory=lambda: [-1.0, 1.0])


@dataclass
class VisualizerConfig:
    version: str = "1.0.0"
    evaluator: EvaluatorSettings = field(default_factory=EvaluatorSettings)
    normalizer: NormalizerSettings = field(default_factory=NormalizerSettings)
    llm: Dict[str, Any] = field(default_factory=dict)
    logging: Dict[str, Any] = field(default_factory=dict)


class ConfigError(RuntimeError):
    """Raised when configuration files cannot be loaded or validated."""


def resolve_config_path(path: Optional[str], default_name: str) -> Path:
    """Resolves a config path, falling back to the repository `configs/` directory."""
    if path:
        return Path(path)
    return CONFIG_DIR / default_name


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError("Configuration file not found: {}".format(path))
    with path.open("r", encoding="utf-8") as handle:
        try:
            loaded = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError("Invalid YAML in {}: {}".format(path, exc)) from exc
    if not isinstance(loaded, dict):
        raise ConfigError("Configuration root must be a mapping in {}".format(path))
    return loaded


def load_visualizer_config(path: Optional[str] = None) -> VisualizerConfig:
    data = _load_yaml(resolve_config_path(path, "visualizer_config.yml"))
    evaluator_data = data.get("evaluator", {}) or {}
    normalizer_data = data.get("normalizer", {}) or {}

    evaluator = EvaluatorSettings(
        cache_capacity=int(evaluator_data.get("cache_capacity", 256)),
        max_length=int(evaluator_data.get("max_length", 1000)),
        max_depth=int(evaluator_data.get("max_depth", 64)),
    )

    z_range = normalizer_data.get("default_z_range", [-1.0, 1.0])
    if not isinstance(z_range, list) or len(z_range) != 2:
        raise ConfigError("'normalizer.default_z_range' must be a two-element list")

    normalizer = NormalizerSettings(
        sample_steps=int(normalizer_data.get("sample_steps", 100)),
        default_z_range=[float(z_range[0]), float(z_range[1])],
    )

    return VisualizerConfig(
        version=str(data.get("version", "1.0.0")),
        evaluator=evaluator,
        normalizer=normalizer,
        llm=dict(data.get("llm", {}) or {}),
        logging=dict(data.get("logging", {}) or {}),
    )


def load_defaults_config(path: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    data = _load_yaml(resolve_config_path(path, "visualization_defaults.yml"))
    types = data.get("types", {})
    generic = data.get("generic", {})
    if not isinstance(types, dict) or not isinstance(generic, dict):
        raise ConfigError("'types' and 'generic' must be mappings in defaults configuration")
    if "domain" not in generic or "range" not in generic:
        raise ConfigError("'generic' defaults must define domain and range")

    table: Dict[str, Dict[str, Any]] = {str(name): dict(entry or {}) for name, entry in types.items()}
    table["__generic__"] = dict(generic)
    return table


def _resolve_prompt(name: str, prompts: Dict[str, Any], seen: Optional[set] = None) -> Dict[str, str]:
    seen = seen or set()
    if name in seen:
        raise ConfigError("Cyclic prompt inheritance detected at '{}'".format(name))
    seen.add(name)

    registry = prompts.get("registry", {})
    node = registry.get(name)
    if not isinstance(node, dict):
        raise ConfigError("Prompt '{}' not found in registry".format(name))

    base: Dict[str, str] = {}
    parent = node.get("extends")
    if parent:
        base = _resolve_prompt(str(parent), prompts, seen)

    merged = dict(base)
    for key in ("system", "user"):
        if key in node:
            merged[key] = str(node[key])
    return merged


def load_prompts_registry(path: Optional[str] = None) -> Dict[str, Dict[str, str]]:
    data = _load_yaml(resolve_config_path(path, "prompts.yml"))
    registry = data.get("registry", {})
    if not isinstance(registry, dict):
        raise ConfigError("'registry' must be a mapping in prompts configuration")

    resolved: Dict[str, Dict[str, str]] = {}
    for name in registry:
        resolved[name] = _resolve_prompt(str(name), data)
    return resolved
