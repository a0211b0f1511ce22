"""Generative client that asks a chat model for canonical visualization responses."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from dotenv import load_dotenv
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_nvidia_ai_endpoints import ChatNVIDIA

from src.extraction.extractor import ResponseExtractor, get_default_extractor
from src.llm.prompts import DEFAULT_LEVEL, DEFAULT_PROMPT, generate_formatted_prompt, get_prompt_pack
from src.utils.logger import get_logger, log_event
from src.visualization.schema import CanonicalResponse

logger = get_logger("mathviz.llm")


@dataclass
class LLMRuntimeConfig:
    """Runtime configuration for the generative LLM client.

    Attributes:
        enabled: Enables or disables the client bootstrap.
        provider: Provider name supported by this client facade.
        model: Provider model identifier.
        api_key_env: Preferred environment variable for the API key.
        temperature: Sampling temperature used by chat completions.
        top_p: Nucleus sampling parameter.
        max_completion_tokens: Maximum number of output tokens.
        level: Default knowledge level written into prompts.
        prompt: Registry name of the prompt pack to use.
    """

    enabled: bool = True
    provider: str = "nvidia"
    model: str = "moonshotai/kimi-k2.5"
    api_key_env: str = "NVIDIA_API_KEY"
    temperature: float = 0.2
    top_p: float = 1.0
    max_completion_tokens: int = 4096
    level: str = DEFAULT_LEVEL
    prompt: str = DEFAULT_PROMPT


class GenerativeVisualizationClient:
    """Facade over the chat model used to describe visualizations.

    The client owns provider bootstrap and key resolution. Model text is never
    trusted: every answer goes through the :class:`ResponseExtractor`.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        extractor: Optional[ResponseExtractor] = None,
        chat_model: Optional[Any] = None,
    ) -> None:
        """Builds a client from runtime config and bootstraps provider access.

        Args:
            config: Optional runtime settings overriding defaults.
            extractor: Extractor applied to model output.
            chat_model: Pre-built chat model; skips provider bootstrap when given.
        """
        raw = config or {}
        self.config = LLMRuntimeConfig(
            enabled=bool(raw.get("enabled", True)),
            provider=str(raw.get("provider", "nvidia")),
            model=str(raw.get("model", "moonshotai/kimi-k2.5")),
            api_key_env=str(raw.get("api_key_env", "NVIDIA_API_KEY")),
            temperature=float(raw.get("temperature", 0.2)),
            top_p=float(raw.get("top_p", 1.0)),
            max_completion_tokens=int(raw.get("max_completion_tokens", 4096)),
            level=str(raw.get("level", DEFAULT_LEVEL)),
            prompt=str(raw.get("prompt", DEFAULT_PROMPT)),
        )
        self.extractor = extractor or get_default_extractor()

        self._client: Optional[Any] = None
        self._unavailable_reason: Optional[str] = None
        if chat_model is not None:
            self._client = chat_model
        else:
            self._bootstrap()

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def describe(self) -> Dict[str, Any]:
        """Returns diagnostics about provider and key availability."""
        api_key_present = any(bool((os.getenv(name) or "").strip()) for name in self._key_candidates())
        return {
            "enabled": self.config.enabled,
            "provider": self.config.provider,
            "model": self.config.model,
            "available": self.is_available,
            "reason": self._unavailable_reason,
            "api_key_env": self.config.api_key_env,
            "api_key_present": api_key_present,
        }

    def _bootstrap(self) -> None:
        """Initializes the provider client if runtime preconditions are met."""
        if not self.config.enabled:
            self._unavailable_reason = "disabled_by_config"
            return
        if self.config.provider != "nvidia":
            self._unavailable_reason = "unsupported_provider"
            return
        _load_environment_variables()

        api_key = _resolve_api_key(self._key_candidates())
        if not api_key:
            self._unavailable_reason = "missing_api_key"
            return

        self._client = ChatNVIDIA(
            model=self.config.model,
            api_key=api_key,
            temperature=self.config.temperature,
            top_p=self.config.top_p,
            max_completion_tokens=self.config.max_completion_tokens,
        )

    def _key_candidates(self) -> List[str]:
        return [self.config.api_key_env, "NVIDIA_API_KEY", "nvidia_api_key"]

    def invoke_text(self, system_prompt: str, user_prompt: str) -> str:
        """Invokes the model and returns plain text.

        Args:
            system_prompt: System instruction.
            user_prompt: User message content.

        Returns:
            Assistant textual response, or empty string on unavailable client.
        """
        if not self.is_available:
            return ""

        assert self._client is not None
        messages = _build_langchain_messages(system_prompt=system_prompt, user_prompt=user_prompt)
        response = self._client.invoke(messages)
        return str(getattr(response, "content", "") or "")

    def request_visualization(
        self,
        query: str,
        level: Optional[str] = None,
        preferred_libraries: Optional[Sequence[str]] = None,
    ) -> CanonicalResponse:
        """Asks the model to explain `query` and returns the extracted response.

        When the provider is unavailable, the query itself is run through the
        extractor so callers still receive a complete canonical response.

        Args:
            query: User question about a mathematical concept.
            level: Knowledge level; defaults to the configured level.
            preferred_libraries: Rendering libraries to mention in the prompt.

        Returns:
            Canonical response with every field present.
        """
        if not self.is_available:
            logger.warning("LLM unavailable (%s); extracting from the query text", self._unavailable_reason)
            return self.extractor.extract(query)

        pack = get_prompt_pack(self.config.prompt)
        user_prompt = generate_formatted_prompt(
            query,
            level=level or self.config.level,
            preferred_libraries=preferred_libraries,
            template=pack.get("user"),
        )
        text = self.invoke_text(pack.get("system", ""), user_prompt)
        log_event(
            logger,
            logging.INFO,
            "Model answered visualization request",
            model=self.config.model,
            chars=len(text),
        )
        return self.extractor.extract(text)


def _build_langchain_messages(system_prompt: str, user_prompt: str) -> List[Any]:
    return [
        SystemMessage(content=system_prompt),
        HumanMessage(content=user_prompt),
    ]


def _load_environment_variables() -> None:
    """Loads environment variables from candidate `.env` files."""
    env_candidates = [
        Path.cwd() / ".env",
        Path(__file__).resolve().parents[2] / ".env",
    ]
    for env_path in env_candidates:
        if env_path.exists():
            load_dotenv(dotenv_path=env_path, override=False)


def _resolve_api_key(candidates: List[str]) -> Optional[str]:
    """Finds the first non-empty API key among candidate env vars.

    Args:
        candidates: Environment variable names ordered by preference.

    Returns:
        First non-empty key value, or None when no candidate is set.
    """
    for name in candidates:
        if not name:
            continue
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None
