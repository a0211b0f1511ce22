"""Prompt construction for visualization requests."""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, Optional, Sequence

from src.utils.config_loader import load_prompts_registry

DEFAULT_PROMPT = "visualization"
DEFAULT_LEVEL = "intermediate"

TYPE_DESCRIPTIONS = (
    ("function2D", "for 2D functions"),
    ("functions2D", "for multiple 2D functions"),
    ("function3D", "for 3D surfaces"),
    ("parametric2D", "for parametric curves"),
    ("parametric3D", "for parametric curves/surfaces in 3D"),
    ("vectorField", "for vector fields in 2D or 3D"),
    ("geometry", "for geometric constructions"),
    ("calculus", "for calculus concepts like integrals or derivatives"),
    ("probabilityDistribution", "for statistical distributions"),
    ("linearAlgebra", "for linear algebra visualizations"),
)


@lru_cache(maxsize=1)
def _bundled_registry() -> Dict[str, Dict[str, str]]:
    return load_prompts_registry()


def get_prompt_pack(name: str = DEFAULT_PROMPT, registry: Optional[Dict[str, Dict[str, str]]] = None) -> Dict[str, str]:
    """Returns the resolved `system`/`user` templates for `name`.

    Raises:
        KeyError: If the registry has no prompt called `name`.
    """
    prompts = registry if registry is not None else _bundled_registry()
    if name not in prompts:
        raise KeyError("Unknown prompt '{}'".format(name))
    return dict(prompts[name])


def _type_list() -> str:
    return "\n".join("- {} ({})".format(name, description) for name, description in TYPE_DESCRIPTIONS)


def generate_formatted_prompt(
    query: str,
    level: str = DEFAULT_LEVEL,
    preferred_libraries: Optional[Sequence[str]] = None,
    template: Optional[str] = None,
) -> str:
    """Builds the user prompt asking for a canonical JSON response.

    Args:
        query: The user's mathematical question.
        level: Knowledge level (`beginner`, `intermediate`, `advanced`).
        preferred_libraries: Rendering libraries the caller would like used.
        template: Optional template overriding the bundled `visualization` prompt.

    Returns:
        Prompt text ready to send as the user message.
    """
    libraries = [str(item).strip() for item in (preferred_libraries or []) if str(item).strip()]
    library_preference = ""
    if libraries:
        library_preference = "Preferred visualization libraries: {}.".format(", ".join(libraries))

    text = template if template is not None else get_prompt_pack(DEFAULT_PROMPT)["user"]
    return text.format(
        query=query,
        level=level or DEFAULT_LEVEL,
        library_preference=library_preference,
        type_list=_type_list(),
    ).strip()
