"""Source key generators.

A study owns a StudyKeyGenerator over the 16-bit key space. Records created
outside any study draw from the process-wide TemporaryKeyGenerator.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Protocol

from domain.sources.value_objects import SOURCE_KEY_MAX

logger = logging.getLogger(__name__)


class KeyGenerator(Protocol):
    def next_key(self) -> int | None:
        """Return an unused key, or None when the key space is exhausted."""
        ...


class StudyKeyGenerator:
    """Allocates keys 1..SOURCE_KEY_MAX for one study.

    The search for a free key starts after the last key handed out and wraps
    around, so deleted keys are reused only after the rest of the space.
    """

    def __init__(self, used_keys: Iterable[int] = (), max_key: int = SOURCE_KEY_MAX):
        self._lock = threading.Lock()
        self._max_key = max_key
        self._used = [False] * (max_key + 1)
        self._used[0] = True
        self._last_key = 0
        for key in used_keys:
            self.mark_used(key)

    def mark_used(self, key: int) -> None:
        with self._lock:
            if 0 < key <= self._max_key:
                self._used[key] = True

    def release(self, key: int) -> None:
        with self._lock:
            if 0 < key <= self._max_key:
                self._used[key] = False

    def next_key(self) -> int | None:
        with self._lock:
            key = self._last_key
            for _ in range(self._max_key):
                key = key + 1 if key < self._max_key else 1
                if not self._used[key]:
                    self._used[key] = True
                    self._last_key = key
                    return key
        logger.warning("Source key space exhausted (%d keys in use)", self._max_key)
        return None


class TemporaryKeyGenerator:
    """Counter for records that have no owning study."""

    def __init__(self, start: int = 1) -> None:
        self._lock = threading.Lock()
        self._next = start

    def next_key(self) -> int:
        with self._lock:
            key = self._next
            self._next += 1
            return key


# Shared by every record created without a study
temporary_keys = TemporaryKeyGenerator()


def make_key_list(keys: Iterable[int]) -> str:
    """Format keys for an SQL IN clause, e.g. ``(1,2,3)``."""
    return "(" + ",".join(str(int(k)) for k in keys) + ")"
