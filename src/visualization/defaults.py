"""Type-indexed default visualization parameters."""

from __future__ import annotations

import copy
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from src.utils.config_loader import load_defaults_config

_GENERIC_KEY = "__generic__"


class DefaultsTable:
    """Read-only view over the per-type defaults.

    Entries are handed out as deep copies so that callers filling a spec can
    never mutate the shared table.
    """

    def __init__(self, entries: Mapping[str, Mapping[str, Any]]) -> None:
        if _GENERIC_KEY not in entries:
            raise ValueError("Defaults table requires a generic entry")
        frozen = {str(name): MappingProxyType(copy.deepcopy(dict(entry))) for name, entry in entries.items()}
        self._entries = MappingProxyType(frozen)

    @classmethod
    def from_config(cls, path: Optional[str] = None) -> "DefaultsTable":
        return cls(load_defaults_config(path))

    @property
    def types(self) -> tuple:
        return tuple(name for name in self._entries if name != _GENERIC_KEY)

    def has_type(self, visualization_type: str) -> bool:
        return visualization_type != _GENERIC_KEY and visualization_type in self._entries

    def generic(self) -> Dict[str, Any]:
        return copy.deepcopy(dict(self._entries[_GENERIC_KEY]))

    def defaults_for(self, visualization_type: Any) -> Dict[str, Any]:
        """Returns the defaults for `visualization_type`.

        Unknown types get the generic entry, which always carries `domain` and `range`.
        """
        key = visualization_type if isinstance(visualization_type, str) else ""
        if not self.has_type(key):
            return self.generic()
        return copy.deepcopy(dict(self._entries[key]))


@lru_cache(maxsize=1)
def get_defaults_table() -> DefaultsTable:
    """Loads the bundled defaults once per process."""
    return DefaultsTable.from_config()


def defaults_for(visualization_type: Any) -> Dict[str, Any]:
    return get_defaults_table().defaults_for(visualization_type)
