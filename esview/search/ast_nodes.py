"""AST data classes for parsed filter expressions."""

from __future__ import annotations

from dataclasses import dataclass

RANGE_OPERATORS: dict[str, str] = {
    ">": "gt",
    ">=": "gte",
    "<": "lt",
    "<=": "lte",
}


@dataclass(frozen=True)
class FilterExpression:
    """A single ``field OP value`` filter.

    Operators:
        - ``=``: equality (null, boolean, numeric, wildcard or match)
        - ``>``, ``>=``, ``<``, ``<=``: numeric range

    Both ``field`` and ``value`` are whitespace-trimmed; ``value`` is
    empty when nothing follows the operator.
    """

    field: str
    operator: str
    value: str

    @property
    def is_range(self) -> bool:
        return self.operator in RANGE_OPERATORS
