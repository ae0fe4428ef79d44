"""Parse ``field OP value`` filter expressions into an AST."""

from __future__ import annotations

import re
from importlib import resources
from typing import Any

from lark import Lark, Token, Transformer, UnexpectedInput

from esview.exceptions import EmptyFilterError, InvalidFilterFormatError
from esview.search.ast_nodes import FilterExpression

# Dotted path; every segment starts with a letter
_FIELD_NAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*(?:\.[a-zA-Z][a-zA-Z0-9_-]*)*$")


def _load_grammar() -> str:
    """Load the Lark grammar from the package resources."""
    return resources.files("esview.search").joinpath("grammar.lark").read_text()


_GRAMMAR_TEXT = _load_grammar()

_parser = Lark(
    _GRAMMAR_TEXT,
    parser="lalr",
    maybe_placeholders=True,
)


class _FilterTransformer(Transformer):
    """Transform Lark parse tree into a FilterExpression."""

    def start(self, items: list[Any]) -> FilterExpression:
        field_name, operator, value = items
        return FilterExpression(
            field=(field_name or "").strip(),
            operator=operator,
            value=(value or "").strip(),
        )

    def operator(self, items: list[Any]) -> str:
        return str(items[0])

    def FIELD(self, token: Token) -> str:
        return str(token)

    def VALUE(self, token: Token) -> str:
        return str(token)


_transformer = _FilterTransformer()


def is_valid_field_name(name: str) -> bool:
    """Return whether *name* is a dotted field path like ``event.source.ip``.

    Consecutive, leading or trailing dots and segments starting with a
    digit are rejected.
    """
    return bool(_FIELD_NAME_RE.match(name))


def parse_expression(expression: str) -> FilterExpression:
    """Split a filter expression into field, operator and value.

    The operator is the first ``=``, ``<`` or ``>`` in the expression;
    ``>=`` and ``<=`` take precedence over their one-character prefixes.
    Nothing is validated beyond the presence of an operator.

    Args:
        expression: Raw user input, e.g. ``"status>=400"``.

    Returns:
        The parsed FilterExpression.

    Raises:
        EmptyFilterError: If the expression is blank.
        InvalidFilterFormatError: If no operator is present.
    """
    expression = expression.strip()
    if not expression:
        raise EmptyFilterError()

    try:
        tree = _parser.parse(expression)
    except UnexpectedInput as e:
        raise InvalidFilterFormatError(expression) from e
    return _transformer.transform(tree)
