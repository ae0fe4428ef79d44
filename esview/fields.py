"""Process-local cache of field metadata for the current index."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_CACHED_FIELDS = 1000


@dataclass(frozen=True)
class FieldMetadata:
    """Capabilities of one field as reported by the backend.

    Attributes:
        type: Mapping type, e.g. ``keyword`` or ``long``.
        searchable: Whether the field is indexed for search.
        aggregatable: Whether the field supports aggregations.
        active: Whether the field was seen in the latest search results.
    """

    type: str
    searchable: bool = True
    aggregatable: bool = False
    active: bool = False


# Metadata fields that never show up in field caps
_DEFAULT_FIELDS: dict[str, FieldMetadata] = {
    "_id": FieldMetadata(type="keyword", searchable=True, aggregatable=True),
    "_index": FieldMetadata(type="keyword", searchable=True, aggregatable=True),
}


class FieldCache:
    """Thread-safe name to :class:`FieldMetadata` store.

    Records are immutable; every update stores a new record. Once the
    cache holds ``max_entries`` names, adding another evicts the oldest.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_CACHED_FIELDS) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._max_entries = max_entries
        self._entries: dict[str, FieldMetadata] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def get(self, name: str) -> FieldMetadata | None:
        with self._lock:
            return self._entries.get(name)

    def set(self, name: str, metadata: FieldMetadata) -> None:
        with self._lock:
            self._store(name, metadata)

    def _store(self, name: str, metadata: FieldMetadata) -> None:
        if name not in self._entries and len(self._entries) >= self._max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("Field cache full, evicted %s", oldest)
        self._entries[name] = metadata

    def set_active(self, name: str, active: bool = True) -> bool:
        """Replace the record for *name* with one carrying the new flag.

        Returns:
            False if *name* is not cached.
        """
        with self._lock:
            current = self._entries.get(name)
            if current is None:
                return False
            if current.active != active:
                self._entries[name] = replace(current, active=active)
            return True

    def mark_active(self, names: Iterable[str]) -> int:
        """Flag every cached field in *names* as active.

        Returns:
            Number of cached fields that were flagged.
        """
        count = 0
        for name in names:
            if self.set_active(name, True):
                count += 1
        return count

    def update_from_caps(self, caps: Mapping[str, Mapping[str, Any]]) -> None:
        """Load normalised field caps into the cache.

        Args:
            caps: ``{field: {"type": ..., "searchable": ..., "aggregatable": ...}}``
                as returned by :meth:`SearchBackend.field_caps`.
        """
        with self._lock:
            for name, meta in _DEFAULT_FIELDS.items():
                self._store(name, meta)
            for name, info in caps.items():
                self._store(
                    name,
                    FieldMetadata(
                        type=str(info.get("type", "unknown")),
                        searchable=bool(info.get("searchable", False)),
                        aggregatable=bool(info.get("aggregatable", False)),
                    ),
                )
        logger.debug("Field cache loaded %d fields", len(caps))

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
