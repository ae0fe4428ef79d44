"""Compile filter expressions into Elasticsearch query DSL."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from esview.exceptions import (
    InvalidFieldNameError,
    InvalidRangeNumberError,
    LeadingWildcardError,
    MissingRangeValueError,
    NegativeSizeError,
)
from esview.search.ast_nodes import RANGE_OPERATORS, FilterExpression
from esview.search.parser import is_valid_field_name, parse_expression
from esview.search.timeframe import build_time_query

if TYPE_CHECKING:
    from esview.fields import FieldCache

logger = logging.getLogger(__name__)

CompiledQuery = dict[str, Any]

ID_FIELD = "_id"
DEDUP_FIELD = "detection_id_dedup"

_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

# Characters a backslash turns into literals
_ESCAPABLE = frozenset("\\*?=")
_WILDCARDS = frozenset("*?")


def unescape_value(value: str) -> str:
    r"""Resolve ``\*``, ``\?``, ``\=`` and ``\\`` escapes to the literal character.

    Other backslash sequences are kept as written, and so is a lone
    trailing backslash.
    """
    if "\\" not in value:
        return value

    out: list[str] = []
    escaped = False
    for ch in value:
        if escaped:
            if ch not in _ESCAPABLE:
                out.append("\\")
            out.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        else:
            out.append(ch)
    if escaped:
        out.append("\\")
    return "".join(out)


def _unescaped_wildcard_positions(value: str) -> list[int]:
    positions: list[int] = []
    escaped = False
    for i, ch in enumerate(value):
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch in _WILDCARDS:
            positions.append(i)
    return positions


def _parse_number(value: str) -> float | None:
    if not _NUMBER_RE.match(value):
        return None
    return float(value)


def _equality_clause(expr: FilterExpression) -> dict[str, Any]:
    field_name, value = expr.field, expr.value
    lowered = value.lower()

    if lowered == "null":
        return {"bool": {"must_not": {"exists": {"field": field_name}}}}

    if lowered in ("true", "false"):
        return {"term": {field_name: lowered == "true"}}

    number = _parse_number(value)
    if number is not None:
        return {"term": {field_name: number}}

    wildcards = _unescaped_wildcard_positions(value)
    if wildcards:
        if value.startswith("*"):
            raise LeadingWildcardError(field_name)
        # Escapes only decide the clause type; the backend interprets them
        return {"wildcard": {field_name: value}}

    return {"match": {field_name: unescape_value(value)}}


def _range_clause(expr: FilterExpression) -> dict[str, Any]:
    if not expr.value:
        raise MissingRangeValueError(expr.field)
    number = _parse_number(expr.value)
    if number is None:
        raise InvalidRangeNumberError(expr.field, expr.value)
    return {"range": {expr.field: {RANGE_OPERATORS[expr.operator]: number}}}


def parse_filter(expression: str, field_cache: FieldCache | None = None) -> dict[str, Any]:
    """Compile one filter expression into a query clause.

    Examples::

        status=active      -> {"match": {"status": "active"}}
        age=25             -> {"term": {"age": 25.0}}
        deleted=FALSE      -> {"term": {"deleted": False}}
        owner=null         -> {"bool": {"must_not": {"exists": {"field": "owner"}}}}
        name=john*         -> {"wildcard": {"name": "john*"}}
        price>=10          -> {"range": {"price": {"gte": 10.0}}}
        _id=abc            -> {"ids": {"values": ["abc"]}}

    Args:
        expression: The ``field OP value`` expression.
        field_cache: Known fields of the current index. Only used for
            diagnostics; it never changes how an expression compiles.

    Returns:
        A query clause mapping.

    Raises:
        FilterParseError: If the expression is invalid. The subclass
            tells which rule failed.
    """
    expr = parse_expression(expression)

    if expr.operator == "=":
        if expr.field == ID_FIELD:
            return {"ids": {"values": [expr.value]}}
        if expr.field == DEDUP_FIELD:
            return {"term": {DEDUP_FIELD: expr.value}}

    if not is_valid_field_name(expr.field):
        if expr.is_range:
            raise InvalidFieldNameError(expr.field, "invalid field name in range query")
        raise InvalidFieldNameError(expr.field)

    if field_cache is not None and field_cache.get(expr.field) is None:
        logger.debug("Filter field %r is not known for the current index", expr.field)

    if expr.is_range:
        return _range_clause(expr)
    return _equality_clause(expr)


def build_query(
    filters: Iterable[str],
    size: int,
    timeframe: str = "",
    now: datetime | None = None,
    field_cache: FieldCache | None = None,
) -> CompiledQuery:
    """Build a complete search request body.

    The time window, when present, is the first clause of the ``must``
    conjunction, followed by one clause per filter in order. A single
    filter is still wrapped in ``bool``/``must``.

    Args:
        filters: Filter expressions, ANDed together.
        size: Maximum number of hits to return.
        timeframe: Relative timeframe token; empty for no time bound.
        now: End of the time window. Defaults to the current time.
        field_cache: Passed through to :func:`parse_filter`.

    Returns:
        A new ``{"query": ..., "size": ...}`` mapping.

    Raises:
        NegativeSizeError: If size is negative.
        FilterParseError: From the first filter that fails to compile.
        TimeframeError: If the timeframe does not parse.
    """
    if size < 0:
        raise NegativeSizeError(size)

    must: list[dict[str, Any]] = []
    time_clause = build_time_query(timeframe, now)
    if time_clause is not None:
        must.append(time_clause)

    for expression in filters:
        must.append(parse_filter(expression, field_cache))

    if not must:
        return {"query": {"match_all": {}}, "size": size}
    return {"query": {"bool": {"must": must}}, "size": size}
