"""DTS member collection owned by a group parent record.

Members are keyed by source key and always enumerated in key order. The
collection tracks which members were added since the last save, which
previously persisted members were removed, and (after a change check) which
members need saving. Every operation runs under a per-group reentrant lock
because import and search workers may add sites while the group is being
edited.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.sources.entities import Source

logger = logging.getLogger(__name__)


class DTSMembers:
    """Keyed, ordered member set with added/removed/changed tracking."""

    def __init__(self, parent_key: int) -> None:
        self.parent_key = parent_key
        self._lock = threading.RLock()
        self._members: dict[int, Source] = {}
        self._added: set[int] = set()
        self._removed: set[int] = set()
        self._changed: list[Source] = []
        self._ordered: list[Source] | None = None
        self._locked = False

    # -----------------------------------------------------------------------
    # Mutators
    # -----------------------------------------------------------------------
    def add_or_replace(self, member: Source) -> bool:
        """Insert or overwrite a member by key.

        Returns False without changing anything when the member belongs to a
        different parent, or when the collection is locked.
        """
        if self._locked:
            logger.debug("Ignoring add of source %d to locked group", member.key)
            return False
        if member.parent_source_key != self.parent_key:
            logger.debug(
                "Ignoring source %d, parent key %s does not match %d",
                member.key,
                member.parent_source_key,
                self.parent_key,
            )
            return False
        with self._lock:
            is_new = member.key not in self._members
            self._members[member.key] = member
            if is_new:
                if member.key in self._removed:
                    self._removed.discard(member.key)
                else:
                    self._added.add(member.key)
            self._ordered = None
        return True

    def remove(self, member: Source | int) -> bool:
        key = member if isinstance(member, int) else member.key
        if self._locked:
            logger.debug("Ignoring removal of source %d from locked group", key)
            return False
        with self._lock:
            if self._members.pop(key, None) is None:
                return False
            if key in self._added:
                self._added.discard(key)
            else:
                self._removed.add(key)
            self._changed = [m for m in self._changed if m.key != key]
            self._ordered = None
        return True

    def lock(self) -> None:
        """Refuse further adds and removals. Loading is still allowed."""
        with self._lock:
            self._locked = True

    @property
    def locked(self) -> bool:
        return self._locked

    def load(self, member: Source) -> None:
        """Attach a member read from the store, without change tracking."""
        with self._lock:
            self._members[member.key] = member
            self._ordered = None

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------
    def members(self) -> list[Source]:
        """Members in key order, as a new list on every call."""
        with self._lock:
            if self._ordered is None:
                self._ordered = [self._members[k] for k in sorted(self._members)]
            return list(self._ordered)

    def get(self, key: int) -> Source | None:
        with self._lock:
            return self._members.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._members

    def next_site_number(self) -> int:
        with self._lock:
            if not self._members:
                return 0
            return max(m.site_number for m in self._members.values()) + 1

    def reference_facility(self) -> Source | None:
        for member in self.members():
            if member.site_number == 0:
                return member
        return None

    # -----------------------------------------------------------------------
    # Change tracking
    # -----------------------------------------------------------------------
    @property
    def added_keys(self) -> frozenset[int]:
        with self._lock:
            return frozenset(self._added)

    @property
    def removed_keys(self) -> frozenset[int]:
        with self._lock:
            return frozenset(self._removed)

    @property
    def changed(self) -> list[Source]:
        """Members found changed by the last `refresh_changed` call."""
        with self._lock:
            return list(self._changed)

    def mark_all_changed(self) -> None:
        with self._lock:
            self._changed = self.members()

    def refresh_changed(self) -> bool:
        """Recompute the changed list; True if anything needs saving."""
        with self._lock:
            self._changed = [
                m
                for m in self.members()
                if m.is_data_changed() or m.key in self._added
            ]
            return bool(self._changed) or bool(self._removed)

    def clear_tracking(self) -> None:
        with self._lock:
            self._added.clear()
            self._removed.clear()
            self._changed = []

    def copy(self) -> "DTSMembers":
        """Deep copy: members are copied, tracking state is preserved."""
        clone = DTSMembers(self.parent_key)
        with self._lock:
            for key, member in self._members.items():
                clone._members[key] = member.copy()
            clone._added = set(self._added)
            clone._removed = set(self._removed)
            clone._changed = [clone._members[m.key] for m in self._changed]
            clone._locked = self._locked
        return clone
