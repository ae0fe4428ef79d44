"""Shared application state and its thread-safe manager."""

from esview.state.manager import DEFAULT_VALIDATORS, StateManager
from esview.state.models import (
    ApplicationState,
    CancelToken,
    DataState,
    MiscState,
    PaginationState,
    SearchState,
    UIState,
)

__all__ = [
    "DEFAULT_VALIDATORS",
    "ApplicationState",
    "CancelToken",
    "DataState",
    "MiscState",
    "PaginationState",
    "SearchState",
    "StateManager",
    "UIState",
]
