"""Unit tests for the search controller."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any
from unittest.mock import patch

import pytest

from esview.config import Config
from esview.controller import SearchController
from esview.exceptions import (
    BackendAuthError,
    BackendUnavailableError,
    InvalidFieldNameError,
    LeadingWildcardError,
    StateValidationError,
    TimeframeError,
)
from esview.state.models import ApplicationState

NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def controller(fake_backend: Any, fast_config: Config) -> SearchController:
    return SearchController(fake_backend, fast_config)


# ---------------------------------------------------------------------------
# Filters and settings
# ---------------------------------------------------------------------------


class TestFilters:
    def test_add_filter_refreshes(self, controller: SearchController, fake_backend: Any) -> None:
        controller.add_filter(" level=error ")
        assert controller.state.get_data_state().filters == ["level=error"]
        assert len(fake_backend.searches) == 1
        index, query = fake_backend.searches[0]
        assert index == "*"
        assert {"match": {"level": "error"}} in query["query"]["bool"]["must"]

    def test_invalid_filter_not_added(
        self, controller: SearchController, fake_backend: Any
    ) -> None:
        with pytest.raises(LeadingWildcardError):
            controller.add_filter("name=*x")
        with pytest.raises(InvalidFieldNameError):
            controller.add_filter("1bad=x")
        assert controller.state.get_data_state().filters == []
        assert fake_backend.searches == []

    def test_duplicate_filter(self, controller: SearchController) -> None:
        controller.add_filter("a=1", refresh=False)
        with pytest.raises(StateValidationError, match="filter already exists"):
            controller.add_filter("a=1", refresh=False)

    def test_remove_and_clear(self, controller: SearchController, fake_backend: Any) -> None:
        controller.add_filter("a=1", refresh=False)
        controller.add_filter("b=2", refresh=False)
        assert controller.remove_filter(1) == "b=2"
        controller.clear_filters()
        assert controller.state.get_data_state().filters == []
        assert len(fake_backend.searches) == 2

    def test_set_timeframe(self, controller: SearchController) -> None:
        controller.set_timeframe("7d", refresh=False)
        assert controller.state.get_search_state().timeframe == "7d"
        with pytest.raises(TimeframeError):
            controller.set_timeframe("7x", refresh=False)
        assert controller.state.get_search_state().timeframe == "7d"

    def test_num_results_capped(self, controller: SearchController) -> None:
        controller.set_num_results(10**9)
        assert controller.state.get_search_state().num_results == 50000

    def test_set_index_reloads_fields(
        self, controller: SearchController, fake_backend: Any
    ) -> None:
        controller.set_index("logs-1")
        assert controller.state.get_search_state().current_index == "logs-1"
        assert "status" in controller.field_cache
        assert "_id" in controller.field_cache
        assert fake_backend.searches[-1][0] == "logs-1"


class TestBuildCurrentQuery:
    def test_uses_state(self, controller: SearchController) -> None:
        controller.add_filter("status>=500", refresh=False)
        controller.set_num_results(20)
        query = controller.build_current_query(NOW)
        assert query["size"] == 20
        must = query["query"]["bool"]["must"]
        # default 12h window then the filter
        assert must[0]["bool"]["minimum_should_match"] == 1
        assert must[1] == {"range": {"status": {"gte": 500.0}}}

    def test_no_timeframe_no_filters(self, controller: SearchController) -> None:
        controller.set_timeframe("", refresh=False)
        assert controller.build_current_query(NOW)["query"] == {"match_all": {}}


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_installs_results_and_fields(self, controller: SearchController) -> None:
        assert controller.refresh() == 3
        data = controller.state.get_data_state()
        assert [d.id for d in data.displayed_results] == ["a1", "a2", "a3"]
        assert data.field_order[:3] == ["_id", "_index", "message"]
        assert data.active_fields == {"message"}
        assert controller.state.get_ui_state().is_loading is False
        assert controller.state.get_search_state().cancel_current_op is not None

    def test_marks_cached_fields_active(self, controller: SearchController) -> None:
        controller.load_fields()
        controller.refresh()
        assert controller.field_cache.get("level").active is True

    def test_retries_transient_failure(
        self, controller: SearchController, fake_backend: Any
    ) -> None:
        fake_backend.search_errors = [BackendUnavailableError("busy", status_code=503)]
        assert controller.refresh() == 3
        assert len(fake_backend.searches) == 2

    def test_terminal_failure(self, controller: SearchController, fake_backend: Any) -> None:
        fake_backend.search_errors = [BackendAuthError("denied", status_code=401)]
        with pytest.raises(BackendAuthError):
            controller.refresh()
        assert len(fake_backend.searches) == 1
        assert controller.state.get_ui_state().is_loading is False
        assert controller.state.get_data_state().current_results == []

    def test_superseded_search_dropped(
        self, controller: SearchController, fake_backend: Any
    ) -> None:
        gate = threading.Event()
        fake_backend.search_gate = gate
        results: list[int | None] = []

        first = threading.Thread(target=lambda: results.append(controller.refresh()))
        first.start()
        while not fake_backend.searches:
            gate.wait(0.01)
        # A newer search replaces the token of the one still in flight
        old_token = controller.state.get_search_state().cancel_current_op
        controller.cancel()
        gate.set()
        first.join(timeout=5)

        assert results == [None]
        assert old_token.cancelled
        assert controller.state.get_data_state().current_results == []

    def test_stale_search_keeps_loading_flag(
        self, controller: SearchController, fake_backend: Any
    ) -> None:
        gates = [threading.Event(), threading.Event()]
        started = [threading.Event(), threading.Event()]
        calls: list[int] = []
        search = fake_backend.search

        def gated(index: str, query: dict[str, Any], timeout: float | None = None) -> list:
            n = len(calls)
            calls.append(n)
            started[n].set()
            gates[n].wait(5)
            return search(index, query, timeout=timeout)

        fake_backend.search = gated
        results: dict[str, int | None] = {}
        first = threading.Thread(target=lambda: results.update(first=controller.refresh()))
        second = threading.Thread(target=lambda: results.update(second=controller.refresh()))

        first.start()
        assert started[0].wait(5)
        second.start()
        assert started[1].wait(5)

        # The older search finishes first while the newer one is still running
        gates[0].set()
        first.join(timeout=5)
        assert results["first"] is None
        assert controller.state.get_ui_state().is_loading is True

        gates[1].set()
        second.join(timeout=5)
        assert results["second"] == 3
        assert controller.state.get_ui_state().is_loading is False

    def test_cancel_clears_loading(
        self, controller: SearchController, fake_backend: Any
    ) -> None:
        gate = threading.Event()
        fake_backend.search_gate = gate
        worker = threading.Thread(target=controller.refresh)
        worker.start()
        while not fake_backend.searches:
            gate.wait(0.01)
        controller.cancel()
        gate.set()
        worker.join(timeout=5)
        assert controller.state.get_ui_state().is_loading is False

    def test_operation_timeouts(self, controller: SearchController, fake_backend: Any) -> None:
        timeouts = controller.config.timeouts
        controller.refresh()
        controller.load_fields()
        controller.list_indices()
        assert fake_backend.timeouts == [
            timeouts.search_refresh,
            timeouts.field_load,
            timeouts.default,
        ]

    def test_hooks_see_updates(self, fake_backend: Any, fast_config: Config) -> None:
        ops: list[str] = []

        def hook(op: str, old: ApplicationState, new: ApplicationState) -> None:
            ops.append(op)

        controller = SearchController(fake_backend, fast_config, hooks=[hook])
        controller.refresh()
        assert "update_search_results" in ops
        assert ops.count("set_loading") == 2


# ---------------------------------------------------------------------------
# Indices and fields
# ---------------------------------------------------------------------------


class TestIndices:
    def test_list_indices_sets_state(self, controller: SearchController) -> None:
        controller.state.set_current_index("logs-1")
        stats = controller.list_indices("logs-*")
        search = controller.state.get_search_state()
        assert [s.index for s in stats] == ["logs-2", "logs-1"]
        assert search.matching_indices == ["logs-2", "logs-1"]
        assert search.index_stats.health == "yellow"

    def test_no_matching_current_index(self, controller: SearchController) -> None:
        controller.list_indices()
        assert controller.state.get_search_state().index_stats is None

    def test_load_fields(self, controller: SearchController) -> None:
        assert controller.load_fields() == 3
        assert controller.field_cache.get("status").type == "long"


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------


class TestDisplay:
    def test_page_rows_with_numbers(self, controller: SearchController) -> None:
        controller.refresh()
        controller.state.set_field_active("level", True)
        headers, rows = controller.page_rows()
        assert headers == ["#", "message", "level"]
        assert rows[0] == ["1", "disk full", "error"]
        assert len(rows) == 3

    def test_page_rows_cached(self, controller: SearchController) -> None:
        controller.refresh()
        controller.page_rows()
        assert controller.state.get_data_state().column_cache == {
            "message": ["disk full", "all good", "slow request"]
        }

    def test_page_change_while_rendering(
        self, controller: SearchController, fake_backend: Any, make_hit: Any
    ) -> None:
        fake_backend.hits = [make_hit(f"m{i}", message=f"m{i}") for i in range(4)]
        controller.refresh()
        controller.state.update_pagination(1, 2, 2)
        take_snapshot = controller.state.get_snapshot

        def snapshot_then_page() -> ApplicationState:
            snapshot = take_snapshot()
            controller.state.next_page()
            return snapshot

        with patch.object(controller.state, "get_snapshot", side_effect=snapshot_then_page):
            _, rows = controller.page_rows()
        assert rows == [["1", "m0"], ["2", "m1"]]
        assert controller.state.get_data_state().column_cache == {}

        _, rows = controller.page_rows()
        assert rows == [["3", "m2"], ["4", "m3"]]

    def test_paging(self, controller: SearchController) -> None:
        controller.refresh()
        controller.state.update_pagination(1, 2, 2)
        controller.state.set_row_numbers(False)
        controller.next_page()
        headers, rows = controller.page_rows()
        assert headers == ["message"]
        assert rows == [["slow request"]]
        assert [d.id for d in controller.page_documents()] == ["a3"]
        controller.previous_page()
        assert [d.id for d in controller.page_documents()] == ["a1", "a2"]

    def test_filter_displayed(self, controller: SearchController) -> None:
        controller.refresh()
        controller.filter_displayed("GOOD")
        assert [d.id for d in controller.page_documents()] == ["a2"]
        headers, rows = controller.page_rows()
        assert rows == [["1", "all good"]]

    def test_no_active_columns(self, controller: SearchController) -> None:
        controller.refresh()
        controller.state.set_field_active("message", False)
        headers, rows = controller.page_rows()
        assert headers == ["#"]
        assert rows == [["1"], ["2"], ["3"]]
