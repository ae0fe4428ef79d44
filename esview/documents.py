"""Search hit model with accessors over nested JSON sources."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

# Recursive JSON value as decoded by requests/json
JSONValue = Union[None, bool, int, float, str, list["JSONValue"], dict[str, "JSONValue"]]

_ARRAY_ACCESS_RE = re.compile(r"^(?P<key>[^\[\]]+)\[(?P<index>\d+)\]$")


def _is_leaf(value: Any) -> bool:
    return not isinstance(value, (dict, list))


def _collect_leaves(data: Any, prefix: str, out: list[str]) -> None:
    if isinstance(data, dict):
        for key, value in data.items():
            path = f"{prefix}.{key}" if prefix else key
            if _is_leaf(value):
                out.append(path)
            else:
                _collect_leaves(value, path, out)
    elif isinstance(data, list) and prefix:
        # Lists are shown as one column, not expanded
        out.append(prefix)


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_severity(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.0f}"
    return str(value)


def _format_unix_time(value: Any) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    stamp = datetime.fromtimestamp(int(value), tz=timezone.utc)
    return stamp.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Document:
    """One search hit.

    Documents are values: nothing changes a hit after it is built, so
    copies of application state share them instead of duplicating
    every ``_source`` body.

    Attributes:
        source: The ``_source`` body.
        id: Document ``_id``.
        index: Index the hit came from.
        type: Legacy ``_type`` (empty on modern clusters).
        score: Relevance score, if the backend returned one.
        version: Document version, if requested.
    """

    source: dict[str, JSONValue] = field(default_factory=dict)
    id: str = ""
    index: str = ""
    type: str = ""
    score: float | None = None
    version: int | None = None

    def __deepcopy__(self, memo: dict[int, Any]) -> Document:
        return self

    @classmethod
    def from_hit(cls, hit: dict[str, Any]) -> Document:
        """Build a Document from one entry of ``hits.hits``."""
        source = hit.get("_source")
        return cls(
            source=source if isinstance(source, dict) else {},
            id=str(hit.get("_id", "")),
            index=str(hit.get("_index", "")),
            type=str(hit.get("_type", "") or ""),
            score=hit.get("_score"),
            version=hit.get("_version"),
        )

    def metadata_fields(self) -> list[str]:
        fields = ["_id", "_index", "_type"]
        if self.score is not None:
            fields.append("_score")
        if self.version is not None:
            fields.append("_version")
        return fields

    def available_fields(self) -> list[str]:
        """Return every leaf path in the document plus metadata fields, sorted."""
        fields = self.metadata_fields()
        _collect_leaves(self.source, "", fields)
        return sorted(fields)

    def get_value(self, path: str) -> JSONValue:
        """Look up a dotted path such as ``event.tags[0].name``.

        Returns:
            The value, or None if any segment is missing.
        """
        current: Any = self.source
        parts = path.split(".")
        for i, part in enumerate(parts):
            if not isinstance(current, dict):
                return None
            match = _ARRAY_ACCESS_RE.match(part)
            if match is None:
                current = current.get(part)
                continue
            items = current.get(match.group("key"))
            index = int(match.group("index"))
            if not isinstance(items, list) or index >= len(items):
                return None
            current = items[index]
            if i < len(parts) - 1 and not isinstance(current, dict):
                return None
        return current

    def formatted_value(self, field_name: str) -> str:
        """Render a field for display; missing values render as ``""``."""
        if field_name == "_id":
            return self.id
        if field_name == "_index":
            return self.index
        if field_name == "_type":
            return self.type
        if field_name == "_score":
            return "" if self.score is None else _format_number(self.score)
        if field_name == "_version":
            return "" if self.version is None else str(self.version)

        value = self.get_value(field_name)
        if value is None:
            return ""
        if field_name == "unixTime":
            stamp = _format_unix_time(value)
            if stamp is not None:
                return stamp
        if field_name == "severity":
            return _format_severity(value)
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return _format_number(value)
        if isinstance(value, (dict, list)):
            return json.dumps(value, separators=(",", ":"))
        return str(value)
