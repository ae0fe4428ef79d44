"""Filter expression compiler and query builder for Elasticsearch."""

from esview.search.ast_nodes import FilterExpression
from esview.search.parser import is_valid_field_name, parse_expression
from esview.search.query import CompiledQuery, build_query, parse_filter, unescape_value
from esview.search.timeframe import build_time_query, is_valid_timeframe, parse_timeframe

__all__ = [
    "CompiledQuery",
    "FilterExpression",
    "build_query",
    "build_time_query",
    "is_valid_field_name",
    "is_valid_timeframe",
    "parse_expression",
    "parse_filter",
    "parse_timeframe",
    "unescape_value",
]
