"""Unit tests for the Elasticsearch HTTP client."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests

from esview.backend.client import HttpSearchBackend, IndexStats
from esview.exceptions import (
    BackendAuthError,
    BackendConnectionError,
    BackendError,
    BackendUnavailableError,
)


def _make_response(
    status: int = 200,
    payload: Any = None,
    headers: dict[str, str] | None = None,
    text: str = "",
) -> MagicMock:
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    response.headers = headers or {}
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def backend() -> HttpSearchBackend:
    return HttpSearchBackend("http://es.example:9200/", timeout=5.0)


class TestSession:
    def test_base_url_trailing_slash_removed(self, backend: HttpSearchBackend) -> None:
        assert backend.base_url == "http://es.example:9200"

    def test_session_settings(self) -> None:
        backend = HttpSearchBackend("http://x", verify=False, auth=("elastic", "secret"))
        assert backend._session.verify is False
        assert backend._session.auth == ("elastic", "secret")
        assert backend._session.headers["User-Agent"].startswith("esview/")


class TestSearch:
    def test_posts_query_and_returns_hits(self, backend: HttpSearchBackend) -> None:
        hits = [{"_id": "1", "_source": {"a": 1}}]
        query = {"query": {"match_all": {}}, "size": 10}
        with patch.object(
            backend._session,
            "request",
            return_value=_make_response(payload={"hits": {"total": 1, "hits": hits}}),
        ) as mock_request:
            assert backend.search("logs-*", query) == hits

        mock_request.assert_called_once_with(
            "POST", "http://es.example:9200/logs-*/_search", timeout=5.0, json=query
        )

    def test_per_call_timeout(self, backend: HttpSearchBackend) -> None:
        with patch.object(
            backend._session, "request", return_value=_make_response(payload={})
        ) as mock_request:
            backend.search("logs", {}, timeout=45.0)
        assert mock_request.call_args.kwargs["timeout"] == 45.0

    def test_missing_hits(self, backend: HttpSearchBackend) -> None:
        with patch.object(backend._session, "request", return_value=_make_response(payload={})):
            assert backend.search("logs", {}) == []


class TestErrorMapping:
    @pytest.mark.parametrize("status", [401, 403])
    def test_auth(self, backend: HttpSearchBackend, status: int) -> None:
        with patch.object(backend._session, "request", return_value=_make_response(status)):
            with pytest.raises(BackendAuthError) as exc_info:
                backend.search("logs", {})
        assert exc_info.value.status_code == status
        assert exc_info.value.retryable is False

    @pytest.mark.parametrize("status", [429, 502, 503, 504])
    def test_unavailable(self, backend: HttpSearchBackend, status: int) -> None:
        response = _make_response(status, headers={"Retry-After": "7"})
        with patch.object(backend._session, "request", return_value=response):
            with pytest.raises(BackendUnavailableError) as exc_info:
                backend.search("logs", {})
        assert exc_info.value.retryable is True
        assert exc_info.value.retry_after == 7.0

    def test_unparseable_retry_after(self, backend: HttpSearchBackend) -> None:
        response = _make_response(503, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"})
        with patch.object(backend._session, "request", return_value=response):
            with pytest.raises(BackendUnavailableError) as exc_info:
                backend.search("logs", {})
        assert exc_info.value.retry_after is None

    @pytest.mark.parametrize("status", [400, 404, 500])
    def test_other_http_errors(self, backend: HttpSearchBackend, status: int) -> None:
        response = _make_response(status, text="index_not_found_exception")
        with patch.object(backend._session, "request", return_value=response):
            with pytest.raises(BackendError) as exc_info:
                backend.search("logs", {})
        assert type(exc_info.value) is BackendError
        assert exc_info.value.retryable is False
        assert "index_not_found_exception" in str(exc_info.value)

    @pytest.mark.parametrize(
        "exc", [requests.ConnectionError("refused"), requests.Timeout("slow")]
    )
    def test_transport_errors(self, backend: HttpSearchBackend, exc: Exception) -> None:
        with patch.object(backend._session, "request", side_effect=exc):
            with pytest.raises(BackendConnectionError) as exc_info:
                backend.search("logs", {})
        assert exc_info.value.retryable is True
        assert exc_info.value.__cause__ is exc

    def test_invalid_json(self, backend: HttpSearchBackend) -> None:
        response = _make_response(payload=ValueError("Expecting value"))
        with patch.object(backend._session, "request", return_value=response):
            with pytest.raises(BackendError, match="Invalid JSON"):
                backend.search("logs", {})


class TestFieldCaps:
    def test_normalises_first_type(self, backend: HttpSearchBackend) -> None:
        payload = {
            "indices": ["logs-1"],
            "fields": {
                "status": {
                    "long": {"type": "long", "searchable": True, "aggregatable": True},
                    "keyword": {"type": "keyword", "searchable": True, "aggregatable": True},
                },
                "message": {"text": {"type": "text", "searchable": True}},
                "broken": {},
            },
        }
        with patch.object(
            backend._session, "request", return_value=_make_response(payload=payload)
        ) as mock_request:
            caps = backend.field_caps("logs-1")

        assert caps == {
            "status": {"type": "long", "searchable": True, "aggregatable": True},
            "message": {"type": "text", "searchable": True, "aggregatable": False},
        }
        args, kwargs = mock_request.call_args
        assert args == ("GET", "http://es.example:9200/logs-1/_field_caps")
        assert kwargs["params"] == {"fields": "*"}


class TestListIndices:
    def test_rows_to_stats(self, backend: HttpSearchBackend) -> None:
        rows = [
            {
                "health": "green",
                "status": "open",
                "index": "logs-2",
                "uuid": "u2",
                "pri": "1",
                "rep": "0",
                "docs.count": "10",
                "docs.deleted": "0",
                "store.size": "10kb",
                "pri.store.size": "10kb",
            },
            {"index": "logs-1", "health": "yellow", "docs.count": None},
        ]
        with patch.object(
            backend._session, "request", return_value=_make_response(payload=rows)
        ) as mock_request:
            stats = backend.list_indices("logs-*")

        assert stats[0] == IndexStats(
            index="logs-2",
            health="green",
            status="open",
            uuid="u2",
            primary="1",
            replica="0",
            docs_count="10",
            docs_deleted="0",
            store_size="10kb",
            pri_store_size="10kb",
        )
        assert stats[1].docs_count == ""
        args, kwargs = mock_request.call_args
        assert args[1] == "http://es.example:9200/_cat/indices/logs-*"
        assert kwargs["params"]["format"] == "json"
        assert kwargs["params"]["s"] == "index:desc"
