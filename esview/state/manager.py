"""Thread-safe owner of the application state.

Every change goes through :meth:`StateManager.update_state`, which applies
a mutator to a private copy, runs the registered validators and only then
swaps the copy in. Readers therefore never observe a half-applied update,
and a rejected update leaves the committed state untouched.
"""

from __future__ import annotations

import copy
import logging
import math
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, TypeVar

from esview.exceptions import OperationCancelledError, StateValidationError, TimeframeError
from esview.search.timeframe import parse_timeframe
from esview.state.models import (
    ApplicationState,
    CancelToken,
    DataState,
    MiscState,
    PaginationState,
    SearchState,
    UIState,
)
from esview.utils.locks import ReadWriteLock

if TYPE_CHECKING:
    from esview.backend.client import IndexStats
    from esview.documents import Document

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutator = Callable[[ApplicationState], None]
Validator = Callable[[str, ApplicationState], None]
Hook = Callable[[str, ApplicationState, ApplicationState], None]


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def validate_pagination_state(operation: str, state: ApplicationState) -> None:
    p = state.pagination
    if p.current_page < 1:
        raise StateValidationError(operation, f"invalid current_page: {p.current_page}")
    if p.total_pages < 1:
        raise StateValidationError(operation, f"invalid total_pages: {p.total_pages}")
    if p.page_size < 1:
        raise StateValidationError(operation, f"invalid page_size: {p.page_size}")
    if p.current_page > p.total_pages:
        raise StateValidationError(
            operation,
            f"current_page ({p.current_page}) exceeds total_pages ({p.total_pages})",
        )


def validate_search_state(operation: str, state: ApplicationState) -> None:
    if not state.search.current_index:
        raise StateValidationError(operation, "index cannot be empty")
    if state.search.num_results < 0:
        raise StateValidationError(
            operation, f"num_results cannot be negative, got {state.search.num_results}"
        )


def validate_misc_state(operation: str, state: ApplicationState) -> None:
    if state.misc.visible_rows < 0:
        raise StateValidationError(
            operation, f"visible rows cannot be negative, got {state.misc.visible_rows}"
        )
    if state.misc.last_display_height < 0:
        raise StateValidationError(
            operation,
            f"display height cannot be negative, got {state.misc.last_display_height}",
        )


DEFAULT_VALIDATORS: tuple[Validator, ...] = (
    validate_pagination_state,
    validate_search_state,
    validate_misc_state,
)


def _page_count(total: int, page_size: int) -> int:
    return max(1, math.ceil(total / page_size))


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class StateManager:
    """Serialises updates to one :class:`ApplicationState`.

    Validators run in registration order on the candidate state and
    reject it by raising :class:`StateValidationError`. Hooks run in
    registration order after the commit, outside the lock, and receive
    ``(operation, old_state, new_state)`` as independent copies; a hook
    that raises is logged and otherwise ignored.

    Args:
        initial: Starting state. The manager takes ownership.
        validators: Rules checked before every commit.
        hooks: Observers notified after every commit.
    """

    def __init__(
        self,
        initial: ApplicationState | None = None,
        *,
        validators: Sequence[Validator] = DEFAULT_VALIDATORS,
        hooks: Sequence[Hook] = (),
    ) -> None:
        self._state = initial if initial is not None else ApplicationState()
        self._validators: tuple[Validator, ...] = tuple(validators)
        self._hooks: tuple[Hook, ...] = tuple(hooks)
        self._lock = ReadWriteLock()

    # -- core -------------------------------------------------------------

    def update_state(self, operation: str, mutator: Mutator) -> None:
        """Apply *mutator* atomically.

        Raises:
            StateValidationError: If the mutator or a validator rejects
                the change. The committed state is unchanged.
            Exception: Anything else the mutator raises, likewise
                without committing.
        """
        with self._lock.write_locked():
            old = self._state
            working = copy.deepcopy(old)
            try:
                mutator(working)
                for validator in self._validators:
                    validator(operation, working)
            except StateValidationError as e:
                logger.error("State update %s rejected: %s", operation, e.reason)
                raise
            self._state = working
        logger.debug("State updated: %s", operation)

        if self._hooks:
            self._notify(operation, old, working)

    def _notify(self, operation: str, old: ApplicationState, new: ApplicationState) -> None:
        # Committed states are never mutated, so copying outside the lock is safe
        old_copy = copy.deepcopy(old)
        new_copy = copy.deepcopy(new)
        for hook in self._hooks:
            try:
                hook(operation, old_copy, new_copy)
            except Exception:
                logger.exception("State hook %r failed for %s", hook, operation)

    def read_state(self, reader: Callable[[ApplicationState], T]) -> T:
        """Call ``reader(state)`` under the shared lock and return its result.

        The reader sees the live committed state and must not modify it
        or keep references to it.
        """
        with self._lock.read_locked():
            return reader(self._state)

    def get_snapshot(self) -> ApplicationState:
        """Return an independent deep copy of the committed state."""
        with self._lock.read_locked():
            return copy.deepcopy(self._state)

    # -- getters ----------------------------------------------------------

    def get_pagination(self) -> PaginationState:
        return self.read_state(lambda s: copy.deepcopy(s.pagination))

    def get_ui_state(self) -> UIState:
        return self.read_state(lambda s: copy.deepcopy(s.ui))

    def get_search_state(self) -> SearchState:
        return self.read_state(lambda s: copy.deepcopy(s.search))

    def get_data_state(self) -> DataState:
        return self.read_state(lambda s: copy.deepcopy(s.data))

    def get_misc_state(self) -> MiscState:
        return self.read_state(lambda s: copy.deepcopy(s.misc))

    # -- pagination -------------------------------------------------------

    def update_pagination(self, current_page: int, total_pages: int, page_size: int) -> None:
        op = "update_pagination"

        def mutate(s: ApplicationState) -> None:
            if current_page < 1:
                raise StateValidationError(op, f"current_page must be >= 1, got {current_page}")
            if total_pages < 1:
                raise StateValidationError(op, f"total_pages must be >= 1, got {total_pages}")
            if page_size < 1:
                raise StateValidationError(op, f"page_size must be >= 1, got {page_size}")
            s.pagination.current_page = current_page
            s.pagination.total_pages = total_pages
            s.pagination.page_size = page_size
            s.data.column_cache = {}

        self.update_state(op, mutate)

    def set_current_page(self, page: int) -> None:
        op = "set_current_page"

        def mutate(s: ApplicationState) -> None:
            if page < 1:
                raise StateValidationError(op, f"page must be >= 1, got {page}")
            if page > s.pagination.total_pages:
                raise StateValidationError(
                    op, f"page {page} exceeds total pages {s.pagination.total_pages}"
                )
            s.pagination.current_page = page
            s.data.column_cache = {}

        self.update_state(op, mutate)

    def next_page(self) -> None:
        def mutate(s: ApplicationState) -> None:
            if s.pagination.current_page >= s.pagination.total_pages:
                raise StateValidationError("next_page", "already on the last page")
            s.pagination.current_page += 1
            s.data.column_cache = {}

        self.update_state("next_page", mutate)

    def previous_page(self) -> None:
        def mutate(s: ApplicationState) -> None:
            if s.pagination.current_page <= 1:
                raise StateValidationError("previous_page", "already on the first page")
            s.pagination.current_page -= 1
            s.data.column_cache = {}

        self.update_state("previous_page", mutate)

    # -- ui ---------------------------------------------------------------

    def set_loading(self, loading: bool) -> None:
        def mutate(s: ApplicationState) -> None:
            s.ui.is_loading = loading

        self.update_state("set_loading", mutate)

    def finish_loading(self, token: CancelToken) -> None:
        """Clear the loading flag for the operation owning *token*.

        The flag stays set when a newer operation has replaced *token*,
        since that one is still running.
        """

        def mutate(s: ApplicationState) -> None:
            current = s.search.cancel_current_op
            if current is None or current is token:
                s.ui.is_loading = False

        self.update_state("set_loading", mutate)

    def set_field_list_visible(self, visible: bool) -> None:
        def mutate(s: ApplicationState) -> None:
            s.ui.field_list_visible = visible

        self.update_state("set_field_list_visible", mutate)

    def set_field_list_filter(self, text: str) -> None:
        """Store the field-list search text and recompute matching fields.

        Matches are inactive fields whose name contains *text*, ignoring
        case. An empty text clears the matches.
        """

        def mutate(s: ApplicationState) -> None:
            s.ui.field_list_filter = text
            needle = text.lower()
            if not needle:
                s.data.field_matches = []
                return
            s.data.field_matches = [
                name
                for name in s.data.original_fields
                if needle in name.lower() and name not in s.data.active_fields
            ]

        self.update_state("set_field_list_filter", mutate)

    def set_row_numbers(self, show: bool) -> None:
        def mutate(s: ApplicationState) -> None:
            s.ui.show_row_numbers = show

        self.update_state("set_row_numbers", mutate)

    # -- search -----------------------------------------------------------

    def set_current_index(self, index: str) -> None:
        op = "set_current_index"

        def mutate(s: ApplicationState) -> None:
            if not index:
                raise StateValidationError(op, "index cannot be empty")
            s.search.current_index = index
            s.search.index_stats = None

        self.update_state(op, mutate)

    def set_timeframe(self, timeframe: str) -> None:
        op = "set_timeframe"

        def mutate(s: ApplicationState) -> None:
            token = timeframe.strip()
            if token:
                try:
                    parse_timeframe(token)
                except TimeframeError as e:
                    raise StateValidationError(op, str(e)) from e
            s.search.timeframe = token

        self.update_state(op, mutate)

    def set_matching_indices(self, indices: Iterable[str]) -> None:
        names = list(indices)

        def mutate(s: ApplicationState) -> None:
            s.search.matching_indices = names

        self.update_state("set_matching_indices", mutate)

    def set_index_stats(self, stats: IndexStats | None) -> None:
        def mutate(s: ApplicationState) -> None:
            s.search.index_stats = stats

        self.update_state("set_index_stats", mutate)

    def set_num_results(self, count: int) -> None:
        op = "set_num_results"

        def mutate(s: ApplicationState) -> None:
            if count < 0:
                raise StateValidationError(op, f"num_results cannot be negative, got {count}")
            s.search.num_results = count

        self.update_state(op, mutate)

    def swap_cancel_token(self, token: CancelToken | None) -> CancelToken | None:
        """Install *token* as the current operation and cancel the previous one.

        Returns:
            The token that was replaced, already cancelled.
        """
        replaced: list[CancelToken | None] = []

        def mutate(s: ApplicationState) -> None:
            replaced.append(s.search.cancel_current_op)
            s.search.cancel_current_op = token

        self.update_state("swap_cancel_token", mutate)
        previous = replaced[0]
        if previous is not None and previous is not token:
            previous.cancel()
        return previous

    # -- data -------------------------------------------------------------

    def add_filter(self, expression: str) -> None:
        op = "add_filter"

        def mutate(s: ApplicationState) -> None:
            if not expression:
                raise StateValidationError(op, "filter cannot be empty")
            if expression in s.data.filters:
                raise StateValidationError(op, f"filter already exists: {expression}")
            s.data.filters.append(expression)

        self.update_state(op, mutate)

    def remove_filter_by_index(self, index: int) -> str:
        """Remove and return the filter at *index*."""
        op = "remove_filter_by_index"
        removed: list[str] = []

        def mutate(s: ApplicationState) -> None:
            count = len(s.data.filters)
            if not 0 <= index < count:
                raise StateValidationError(
                    op, f"invalid filter index {index}, must be between 0 and {count - 1}"
                )
            removed.append(s.data.filters.pop(index))

        self.update_state(op, mutate)
        return removed[0]

    def clear_filters(self) -> None:
        def mutate(s: ApplicationState) -> None:
            s.data.filters = []

        self.update_state("clear_filters", mutate)

    def set_results(
        self,
        current: Sequence[Document],
        filtered: Sequence[Document],
        displayed: Sequence[Document],
    ) -> None:
        def mutate(s: ApplicationState) -> None:
            s.data.current_results = list(current)
            s.data.filtered_results = list(filtered)
            s.data.displayed_results = list(displayed)
            s.data.column_cache = {}

        self.update_state("set_results", mutate)

    def reset_fields(self) -> None:
        def mutate(s: ApplicationState) -> None:
            s.data.reset_fields()

        self.update_state("reset_fields", mutate)

    def set_field_active(self, name: str, active: bool) -> None:
        op = "set_field_active"

        def mutate(s: ApplicationState) -> None:
            if not name:
                raise StateValidationError(op, "field name cannot be empty")
            s.data.set_field_active(name, active)

        self.update_state(op, mutate)

    def update_fields_from_set(
        self,
        names: Iterable[str],
        preferred_order: Iterable[str] = (),
        auto_select: Iterable[str] = (),
    ) -> None:
        """Replace the known fields with *names*.

        Fields in *auto_select* become active when nothing is selected yet.
        """
        fields = set(names)
        order = list(preferred_order)
        selected = [name for name in auto_select if name in fields]

        def mutate(s: ApplicationState) -> None:
            s.data.update_fields_from_set(fields, order)
            if not s.data.active_fields:
                s.data.active_fields.update(selected)
            s.data.column_cache = {}

        self.update_state("update_fields_from_set", mutate)

    def set_column_cache(
        self,
        name: str,
        values: Sequence[str],
        page: Sequence[Document] | None = None,
    ) -> bool:
        """Store rendered *values* for column *name*.

        Args:
            name: Column (field) name.
            values: One rendered string per row of the current page.
            page: Documents the values were rendered from. When given,
                nothing is stored unless the current page still shows
                exactly these documents.

        Returns:
            Whether the values were stored.
        """
        stored: list[bool] = []

        def mutate(s: ApplicationState) -> None:
            if page is not None and s.page_documents() != list(page):
                stored.append(False)
                return
            s.data.column_cache[name] = list(values)
            stored.append(True)

        self.update_state("set_column_cache", mutate)
        return stored[0]

    # -- misc -------------------------------------------------------------

    def set_visible_rows(self, rows: int) -> None:
        op = "set_visible_rows"

        def mutate(s: ApplicationState) -> None:
            if rows < 0:
                raise StateValidationError(op, f"visible rows cannot be negative, got {rows}")
            s.misc.visible_rows = rows

        self.update_state(op, mutate)

    def set_display_height(self, height: int) -> None:
        op = "set_display_height"

        def mutate(s: ApplicationState) -> None:
            if height < 0:
                raise StateValidationError(op, f"display height cannot be negative, got {height}")
            s.misc.last_display_height = height

        self.update_state(op, mutate)

    # -- bulk -------------------------------------------------------------

    def update_search_results(
        self,
        documents: Sequence[Document],
        page_size: int | None = None,
        token: CancelToken | None = None,
    ) -> None:
        """Install a fresh result set and go back to page one.

        Args:
            documents: Hits of the completed search.
            page_size: New page size; keeps the current one when None.
            token: Token of the search that produced *documents*. If it
                is no longer the current operation the results are stale.

        Raises:
            OperationCancelledError: If *token* has been superseded.
            StateValidationError: If page_size is below 1.
        """
        op = "update_search_results"
        docs = list(documents)

        def mutate(s: ApplicationState) -> None:
            if token is not None and (token.cancelled or s.search.cancel_current_op is not token):
                raise OperationCancelledError("search")
            size = s.pagination.page_size if page_size is None else page_size
            if size < 1:
                raise StateValidationError(op, f"page_size must be >= 1, got {size}")
            s.data.current_results = docs
            s.data.filtered_results = list(docs)
            s.data.displayed_results = list(docs)
            s.data.current_filter = ""
            s.data.column_cache = {}
            s.pagination.page_size = size
            s.pagination.total_pages = _page_count(len(docs), size)
            s.pagination.current_page = 1

        self.update_state(op, mutate)

    def apply_display_filter(self, text: str) -> None:
        """Narrow the displayed rows to those whose active columns contain *text*.

        Matching ignores case. An empty text shows every result again.
        """

        def mutate(s: ApplicationState) -> None:
            needle = text.lower()
            if needle:
                headers = s.data.active_headers()
                shown = [
                    doc
                    for doc in s.data.filtered_results
                    if any(needle in doc.formatted_value(h).lower() for h in headers)
                ]
            else:
                shown = list(s.data.filtered_results)
            s.data.current_filter = text
            s.data.displayed_results = shown
            s.data.column_cache = {}
            s.pagination.total_pages = _page_count(len(shown), s.pagination.page_size)
            s.pagination.current_page = 1

        self.update_state("apply_display_filter", mutate)
