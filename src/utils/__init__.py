"""Utility helpers for the math visualization toolkit."""

from .config_loader import (
    ConfigError,
    VisualizerConfig,
    load_defaults_config,
    load_prompts_registry,
    load_visualizer_config,
)
from .doc_generator import generate_defaults_docs
from .logger import configure_from_settings, configure_logging, get_logger, log_event

__all__ = [
    "ConfigError",
    "VisualizerConfig",
    "load_defaults_config",
    "load_prompts_registry",
    "load_visualizer_config",
    "generate_defaults_docs",
    "configure_from_settings",
    "configure_logging",
    "get_logger",
    "log_event",
]
