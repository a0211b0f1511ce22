"""Generate human-readable documentation from YAML configuration files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional

from src.utils.config_loader import (
    VisualizerConfig,
    load_defaults_config,
    load_prompts_registry,
    load_visualizer_config,
)


def generate_defaults_docs(
    output_path: str,
    config: Optional[VisualizerConfig] = None,
    defaults: Optional[Dict[str, Dict[str, object]]] = None,
    prompts_registry: Optional[Dict[str, Dict[str, str]]] = None,
) -> str:
    config = config or load_visualizer_config()
    defaults = defaults if defaults is not None else load_defaults_config()
    prompts_registry = prompts_registry if prompts_registry is not None else load_prompts_registry()

    lines = [
        "# Math Visualization Configuration",
        "",
        "## Evaluator",
        "",
        "- cache_capacity: {}".format(config.evaluator.cache_capacity),
        "- max_length: {}".format(config.evaluator.max_length),
        "- max_depth: {}".format(config.evaluator.max_depth),
        "",
        "## Normalizer",
        "",
        "- sample_steps: {}".format(config.normalizer.sample_steps),
        "- default_z_range: {}".format(config.normalizer.default_z_range),
        "",
        "## LLM",
        "",
        "- enabled: {}".format(config.llm.get("enabled", False)),
        "- provider: {}".format(config.llm.get("provider", "n/a")),
        "- model: {}".format(config.llm.get("model", "n/a")),
        "- level: {}".format(config.llm.get("level", "n/a")),
        "",
        "## Logging",
        "",
        "- level: {}".format(config.logging.get("level", "INFO")),
        "- format: {}".format(config.logging.get("format", "json")),
        "",
        "## Visualization Defaults",
        "",
    ]

    generic = defaults.get("__generic__", {})
    lines.append("### Unknown types")
    lines.append("")
    for key, value in generic.items():
        lines.append("- {}: `{}`".format(key, json.dumps(value)))
    lines.append("")

    for name, entry in sorted(item for item in defaults.items() if item[0] != "__generic__"):
        lines.append("### {}".format(name))
        lines.append("")
        for key, value in entry.items():
            lines.append("- {}: `{}`".format(key, json.dumps(value)))
        lines.append("")

    lines.extend(["## Registered Prompts", ""])
    for name, payload in sorted(prompts_registry.items()):
        lines.append("### {}".format(name))
        lines.append("")
        lines.append("- system: {} chars".format(len(payload.get("system", ""))))
        lines.append("- user: {} chars".format(len(payload.get("user", ""))))
        lines.append("")

    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text("\n".join(lines), encoding="utf-8")
    return str(output)
