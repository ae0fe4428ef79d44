"""Application state shared by every view and background operation."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from esview.documents import Document

if TYPE_CHECKING:
    from esview.backend.client import IndexStats
    from esview.config import Config


class CancelToken:
    """Cancellation flag for one in-flight operation.

    Tokens are shared by identity: copying application state keeps the
    same token, so cancelling through any snapshot reaches the operation.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or *timeout* elapses; True if cancelled."""
        return self._event.wait(timeout)

    def __copy__(self) -> CancelToken:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> CancelToken:
        return self

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled})"


@dataclass
class PaginationState:
    current_page: int = 1
    total_pages: int = 1
    page_size: int = 50


@dataclass
class UIState:
    show_row_numbers: bool = True
    is_loading: bool = False
    field_list_filter: str = ""
    field_list_visible: bool = False


@dataclass
class SearchState:
    """What is being searched and how.

    Attributes:
        current_index: Index name or pattern; never empty.
        matching_indices: Indices matching the last listing.
        num_results: Requested hit count.
        timeframe: Relative timeframe token; empty for no bound.
        index_stats: ``_cat/indices`` row for the current index.
        cancel_current_op: Token of the search in flight, if any.
    """

    current_index: str = "*"
    matching_indices: list[str] = field(default_factory=list)
    num_results: int = 1000
    timeframe: str = ""
    index_stats: IndexStats | None = None
    cancel_current_op: CancelToken | None = None


@dataclass
class DataState:
    """Results, filters and column selection.

    ``filtered_results`` holds the documents of the last search;
    ``displayed_results`` is the subset left after the local text
    filter in ``current_filter``.
    """

    filters: list[str] = field(default_factory=list)
    field_order: list[str] = field(default_factory=list)
    original_fields: list[str] = field(default_factory=list)
    active_fields: set[str] = field(default_factory=set)
    field_matches: list[str] = field(default_factory=list)
    current_results: list[Document] = field(default_factory=list)
    filtered_results: list[Document] = field(default_factory=list)
    displayed_results: list[Document] = field(default_factory=list)
    column_cache: dict[str, list[str]] = field(default_factory=dict)
    current_filter: str = ""

    def reset_fields(self) -> None:
        self.original_fields = []
        self.field_order = []
        self.active_fields = set()
        self.field_matches = []
        self.column_cache = {}

    def is_field_active(self, name: str) -> bool:
        return name in self.active_fields

    def set_field_active(self, name: str, active: bool) -> None:
        if active:
            self.active_fields.add(name)
        else:
            self.active_fields.discard(name)
        self.column_cache.pop(name, None)

    def update_fields_from_set(
        self,
        names: Iterable[str],
        preferred_order: Iterable[str] = (),
    ) -> None:
        """Replace the known field list.

        Fields named in *preferred_order* come first, in that order; the
        rest follow alphabetically. Active fields that disappeared are
        deselected.
        """
        fields = sorted(set(names))
        known = set(fields)
        leading = [name for name in dict.fromkeys(preferred_order) if name in known]
        lead_set = set(leading)
        self.original_fields = fields
        self.field_order = leading + [name for name in fields if name not in lead_set]
        self.active_fields &= known

    def active_headers(self) -> list[str]:
        """Active fields in column order."""
        return [name for name in self.field_order if name in self.active_fields]


@dataclass
class MiscState:
    visible_rows: int = 0
    last_display_height: int = 0


@dataclass
class ApplicationState:
    pagination: PaginationState = field(default_factory=PaginationState)
    ui: UIState = field(default_factory=UIState)
    search: SearchState = field(default_factory=SearchState)
    data: DataState = field(default_factory=DataState)
    misc: MiscState = field(default_factory=MiscState)

    def page_documents(self) -> list[Document]:
        """Displayed documents on the current page."""
        size = self.pagination.page_size
        start = (self.pagination.current_page - 1) * size
        return self.data.displayed_results[start : start + size]

    @classmethod
    def from_config(cls, config: Config) -> ApplicationState:
        """Initial state for a fresh session."""
        return cls(
            pagination=PaginationState(page_size=config.pagination.default_page_size),
            ui=UIState(
                show_row_numbers=config.ui.show_row_numbers,
                field_list_visible=config.ui.field_list_visible,
            ),
            search=SearchState(
                current_index=config.search.default_index,
                num_results=config.search.default_num_results,
                timeframe=config.search.default_timeframe,
            ),
        )
