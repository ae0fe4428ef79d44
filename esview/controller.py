"""Search workflow tying state, query compilation and the backend together."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from esview.backend.admission import AdmissionController
from esview.backend.client import IndexStats, SearchBackend
from esview.config import Config
from esview.documents import Document
from esview.exceptions import OperationCancelledError
from esview.fields import FieldCache
from esview.search.query import CompiledQuery, build_query, parse_filter
from esview.search.timeframe import parse_timeframe
from esview.state.manager import DEFAULT_VALIDATORS, Hook, StateManager
from esview.state.models import ApplicationState, CancelToken

logger = logging.getLogger(__name__)


class SearchController:
    """Entry point for user actions on the document view.

    Every user action validates its input first, so a bad filter or
    timeframe raises before touching shared state; the state change is
    then committed and, where it affects the result set, a new search
    runs through the admission controller.

    Args:
        backend: Search backend to query.
        config: Application configuration.
        state: Shared state manager; one is created from *config* if omitted.
        field_cache: Field metadata cache; created if omitted.
        admission: Admission controller; created from ``config.rate_limit`` if omitted.
        hooks: State hooks for a newly created state manager.
    """

    def __init__(
        self,
        backend: SearchBackend,
        config: Config,
        *,
        state: StateManager | None = None,
        field_cache: FieldCache | None = None,
        admission: AdmissionController | None = None,
        hooks: Sequence[Hook] = (),
    ) -> None:
        self.backend = backend
        self.config = config
        self.state = state or StateManager(
            ApplicationState.from_config(config),
            validators=DEFAULT_VALIDATORS,
            hooks=hooks,
        )
        self.field_cache = field_cache or FieldCache(config.fields.max_cached_fields)
        self.admission = admission or AdmissionController(config.rate_limit)

    # -- filters ----------------------------------------------------------

    def add_filter(self, expression: str, *, refresh: bool = True) -> None:
        """Validate *expression*, add it to the active filters and search again.

        Raises:
            FilterParseError: If the expression does not compile.
            StateValidationError: If it is already active.
        """
        expression = expression.strip()
        parse_filter(expression, self.field_cache)
        self.state.add_filter(expression)
        logger.info("Added filter %s", expression)
        if refresh:
            self.refresh()

    def remove_filter(self, index: int, *, refresh: bool = True) -> str:
        removed = self.state.remove_filter_by_index(index)
        logger.info("Removed filter %s", removed)
        if refresh:
            self.refresh()
        return removed

    def clear_filters(self, *, refresh: bool = True) -> None:
        self.state.clear_filters()
        if refresh:
            self.refresh()

    def set_timeframe(self, timeframe: str, *, refresh: bool = True) -> None:
        """Change the time window; an empty token removes it.

        Raises:
            TimeframeError: If the token does not parse.
        """
        timeframe = timeframe.strip()
        if timeframe:
            parse_timeframe(timeframe)
        self.state.set_timeframe(timeframe)
        if refresh:
            self.refresh()

    def set_index(self, index: str, *, refresh: bool = True) -> None:
        """Switch to another index: forget its fields, reload them and search."""
        self.state.set_current_index(index)
        self.state.reset_fields()
        self.field_cache.clear()
        self.load_fields()
        if refresh:
            self.refresh()

    def set_num_results(self, count: int) -> None:
        self.state.set_num_results(min(count, self.config.search.max_results))

    # -- backend ----------------------------------------------------------

    def build_current_query(self, now: datetime | None = None) -> CompiledQuery:
        """Compile the active filters, timeframe and result size."""
        filters, size, timeframe = self.state.read_state(
            lambda s: (list(s.data.filters), s.search.num_results, s.search.timeframe)
        )
        return build_query(filters, size, timeframe, now, self.field_cache)

    def refresh(self) -> int | None:
        """Run the current query and install its results.

        Starting a refresh cancels any search still in flight; results of
        a superseded search are dropped.

        Returns:
            Number of documents installed, or None if this search was
            superseded before it finished.
        """
        query = self.build_current_query()
        index = self.state.read_state(lambda s: s.search.current_index)

        timeouts = self.config.timeouts
        token = CancelToken()
        self.state.swap_cancel_token(token)
        self.state.set_loading(True)
        try:
            hits = self.admission.with_retry(
                lambda: self.backend.search(index, query, timeout=timeouts.search_refresh),
                timeout=timeouts.slot_acquire,
                cancel=token,
                description=f"search on {index}",
            )
            documents = [Document.from_hit(hit) for hit in hits]
            self.state.update_search_results(documents, token=token)
        except OperationCancelledError:
            logger.debug("Search on %s was superseded", index)
            return None
        finally:
            self.state.finish_loading(token)

        discovered: set[str] = set()
        for doc in documents:
            discovered.update(doc.available_fields())
        self.state.update_fields_from_set(
            discovered,
            preferred_order=self.config.fields.default_field_order,
            auto_select=self.config.fields.auto_select_fields,
        )
        self.field_cache.mark_active(discovered)
        logger.info("Search on %s returned %d documents", index, len(documents))
        return len(documents)

    def cancel(self) -> None:
        """Cancel the search in flight, if any."""
        self.state.swap_cancel_token(None)

    def load_fields(self) -> int:
        """Fill the field cache from the backend's field capabilities.

        Returns:
            Number of fields reported.
        """
        timeouts = self.config.timeouts
        index = self.state.read_state(lambda s: s.search.current_index)
        caps = self.admission.with_retry(
            lambda: self.backend.field_caps(index, timeout=timeouts.field_load),
            timeout=timeouts.slot_acquire,
            description=f"field caps for {index}",
        )
        self.field_cache.update_from_caps(caps)
        return len(caps)

    def list_indices(self, pattern: str = "*") -> list[IndexStats]:
        """List indices matching *pattern* and remember stats for the current one."""
        timeouts = self.config.timeouts
        stats = self.admission.with_retry(
            lambda: self.backend.list_indices(pattern, timeout=timeouts.default),
            timeout=timeouts.slot_acquire,
            description="index listing",
        )
        self.state.set_matching_indices(row.index for row in stats)
        current = self.state.read_state(lambda s: s.search.current_index)
        for row in stats:
            if row.index == current:
                self.state.set_index_stats(row)
                break
        return stats

    # -- display ----------------------------------------------------------

    def filter_displayed(self, text: str) -> None:
        self.state.apply_display_filter(text)

    def next_page(self) -> None:
        self.state.next_page()

    def previous_page(self) -> None:
        self.state.previous_page()

    def page_documents(self) -> list[Document]:
        """Documents on the current page of the displayed results."""

        return self.state.read_state(lambda s: list(s.page_documents()))

    def page_rows(self) -> tuple[list[str], list[list[str]]]:
        """Render the current page as strings.

        Returns:
            ``(headers, rows)`` for the active columns, with a leading
            ``#`` column when row numbers are enabled.
        """
        snapshot = self.state.get_snapshot()
        headers = snapshot.data.active_headers()
        start = (snapshot.pagination.current_page - 1) * snapshot.pagination.page_size
        page = snapshot.page_documents()

        columns: list[list[str]] = []
        for header in headers:
            cached = snapshot.data.column_cache.get(header)
            if cached is None or len(cached) != len(page):
                cached = [doc.formatted_value(header) for doc in page]
                # skipped if the page moved on since the snapshot
                self.state.set_column_cache(header, cached, page=page)
            columns.append(cached)

        rows = [list(values) for values in zip(*columns)] if columns else [[] for _ in page]
        if snapshot.ui.show_row_numbers:
            headers = ["#", *headers]
            rows = [[str(start + i + 1), *row] for i, row in enumerate(rows)]
        return headers, rows
