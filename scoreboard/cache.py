"""Small in-process TTL cache for rarely changing reference data.

An instance is created per app in ``create_app`` and handed to the service,
so tests can swap in a fresh one. Reads and writes are not locked: two
requests filling the same key race harmlessly (last write wins).
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Tuple

DEFAULT_TTL = 300  # seconds

# Sentinel so cached empty lists still count as hits
_MISSING = object()


def categories_key(category_id: Optional[str]) -> str:
    return f"categories_{category_id}"


def round_exercises_key(category_id: str, exercise_number: Optional[int] = None) -> str:
    if exercise_number is None:
        return f"categoryRoundExercises_{category_id}"
    return f"categoryRoundExercises_{category_id}_{exercise_number}"


def table_exists_key(table_name: str) -> str:
    return f"tableExists_{table_name}"


class TTLCache:
    """Key/value store where each entry expires ``ttl`` seconds after it is set.

    ``ttl=0`` stores an entry that never expires.
    """

    def __init__(self, default_ttl: int = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = int(default_ttl)
        self._clock = clock
        self._entries: Dict[str, Tuple[Optional[float], Any]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        exp, value = entry
        if exp is not None and exp < self._clock():
            self._entries.pop(key, None)
            return default
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else int(ttl)
        exp = None if ttl <= 0 else self._clock() + ttl
        self._entries[key] = (exp, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def get_or_load(self, key: str, loader: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Return the cached value, or call ``loader`` synchronously and cache its result."""
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = loader()
            self.set(key, value, ttl=ttl)
        return value

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)
