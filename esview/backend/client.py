"""HTTP client for the Elasticsearch REST API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from esview import __version__
from esview.exceptions import (
    BackendAuthError,
    BackendConnectionError,
    BackendError,
    BackendUnavailableError,
)

logger = logging.getLogger(__name__)

_USER_AGENT = f"esview/{__version__}"
_REQUEST_TIMEOUT = 30.0
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 502, 503, 504})
AUTH_STATUS_CODES: frozenset[int] = frozenset({401, 403})

_CAT_COLUMNS = "health,status,index,uuid,pri,rep,docs.count,docs.deleted,store.size,pri.store.size"


@dataclass(frozen=True)
class IndexStats:
    """One row of ``_cat/indices``; values are kept as the strings the API returns."""

    index: str
    health: str = ""
    status: str = ""
    uuid: str = ""
    primary: str = ""
    replica: str = ""
    docs_count: str = ""
    docs_deleted: str = ""
    store_size: str = ""
    pri_store_size: str = ""

    @classmethod
    def from_cat_row(cls, row: dict[str, Any]) -> IndexStats:
        def text(key: str) -> str:
            value = row.get(key)
            return "" if value is None else str(value)

        return cls(
            index=text("index"),
            health=text("health"),
            status=text("status"),
            uuid=text("uuid"),
            primary=text("pri"),
            replica=text("rep"),
            docs_count=text("docs.count"),
            docs_deleted=text("docs.deleted"),
            store_size=text("store.size"),
            pri_store_size=text("pri.store.size"),
        )


class SearchBackend(Protocol):
    """Operations the search controller needs from a backend."""

    def search(
        self, index: str, query: dict[str, Any], timeout: float | None = None
    ) -> list[dict[str, Any]]:
        """Run *query* against *index* and return ``hits.hits``."""
        ...

    def field_caps(
        self, index: str, fields: str = "*", timeout: float | None = None
    ) -> dict[str, dict[str, Any]]:
        """Return ``{field: {"type", "searchable", "aggregatable"}}`` for *index*."""
        ...

    def list_indices(self, pattern: str = "*", timeout: float | None = None) -> list[IndexStats]:
        """Return stats for indices matching *pattern*, newest name first."""
        ...


def _retry_after(resp: requests.Response) -> float | None:
    value = resp.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class HttpSearchBackend:
    """Elasticsearch client over a :class:`requests.Session`.

    Each call makes exactly one HTTP request. Failures are translated
    into :class:`BackendError` subclasses whose ``retryable`` flag the
    admission controller uses to decide whether to try again; this class
    never retries on its own.

    Args:
        base_url: Cluster URL, e.g. ``http://localhost:9200``.
        timeout: Per-request timeout in seconds.
        verify: Verify TLS certificates.
        auth: Optional ``(username, password)`` for basic auth.
        session: Pre-configured session (mainly for tests).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = _REQUEST_TIMEOUT,
        verify: bool = True,
        auth: tuple[str, str] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": _USER_AGENT, "Accept": "application/json"})
        self._session.verify = verify
        if auth is not None:
            self._session.auth = auth

    def _request(
        self, method: str, path: str, *, timeout: float | None = None, **kwargs: Any
    ) -> Any:
        """Send one request and decode the JSON body.

        Args:
            method: HTTP method.
            path: Path below the base URL.
            timeout: Overrides the client's default timeout for this request.
            **kwargs: Passed to :meth:`requests.Session.request`.

        Raises:
            BackendAuthError: On HTTP 401/403.
            BackendUnavailableError: On HTTP 429/502/503/504.
            BackendConnectionError: If the cluster cannot be reached.
            BackendError: On any other failure.
        """
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(
                method, url, timeout=self.timeout if timeout is None else timeout, **kwargs
            )
        except requests.RequestException as e:
            raise BackendConnectionError(f"Request to {url} failed: {e}") from e

        status = resp.status_code
        if status in AUTH_STATUS_CODES:
            raise BackendAuthError(
                f"Access denied by {self.base_url} (HTTP {status})", status_code=status
            )
        if status in RETRYABLE_STATUS_CODES:
            raise BackendUnavailableError(
                f"Backend unavailable (HTTP {status}) for {path}",
                status_code=status,
                retry_after=_retry_after(resp),
            )
        if status >= 400:
            raise BackendError(
                f"Request {method} {path} failed with HTTP {status}: {resp.text[:200]}",
                status_code=status,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise BackendError(f"Invalid JSON from {path}: {e}", status_code=status) from e

    def search(
        self, index: str, query: dict[str, Any], timeout: float | None = None
    ) -> list[dict[str, Any]]:
        data = self._request("POST", f"/{index}/_search", timeout=timeout, json=query)
        hits = data.get("hits", {}).get("hits", [])
        logger.debug("Search on %s returned %d hits", index, len(hits))
        return hits

    def field_caps(
        self, index: str, fields: str = "*", timeout: float | None = None
    ) -> dict[str, dict[str, Any]]:
        data = self._request(
            "GET", f"/{index}/_field_caps", timeout=timeout, params={"fields": fields}
        )
        caps: dict[str, dict[str, Any]] = {}
        for name, types in data.get("fields", {}).items():
            if not types:
                continue
            # A field mapped differently across indices reports several types
            type_name, meta = next(iter(types.items()))
            caps[name] = {
                "type": meta.get("type", type_name),
                "searchable": bool(meta.get("searchable", False)),
                "aggregatable": bool(meta.get("aggregatable", False)),
            }
        return caps

    def list_indices(self, pattern: str = "*", timeout: float | None = None) -> list[IndexStats]:
        rows = self._request(
            "GET",
            f"/_cat/indices/{pattern}",
            timeout=timeout,
            params={"format": "json", "h": _CAT_COLUMNS, "s": "index:desc"},
        )
        return [IndexStats.from_cat_row(row) for row in rows]
