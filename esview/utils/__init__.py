"""Utility modules for esview."""

from esview.utils.locks import ReadWriteLock
from esview.utils.output import (
    console,
    error,
    info,
    success,
    warning,
)

__all__ = [
    "ReadWriteLock",
    "console",
    "error",
    "info",
    "success",
    "warning",
]
