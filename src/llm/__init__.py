"""Chat-model access and prompt construction."""

from .client import GenerativeVisualizationClient, LLMRuntimeConfig
from .prompts import generate_formatted_prompt, get_prompt_pack

__all__ = [
    "GenerativeVisualizationClient",
    "LLMRuntimeConfig",
    "generate_formatted_prompt",
    "get_prompt_pack",
]
