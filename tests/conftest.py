"""Shared pytest fixtures."""

from __future__ import annotations

import shutil
import tempfile
import threading
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from esview.backend.client import IndexStats
from esview.config import Config, RateLimitConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Generator


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    path = Path(tempfile.mkdtemp())
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def sample_config(temp_dir: Path) -> Path:
    """Create a sample config file."""
    config_path = temp_dir / "config.toml"
    config_path.write_text("""[backend]
url = "http://es.example:9200"
verify_tls = false

[pagination]
default_page_size = 25

[search]
default_index = "logs-*"
default_timeframe = "24h"

[rate_limit]
max_concurrent_ops = 4
initial_retry_delay = 0.5
""")
    return config_path


@pytest.fixture
def fast_config() -> Config:
    """Default config with retry delays small enough for tests."""
    return replace(
        Config(),
        rate_limit=RateLimitConfig(
            max_concurrent_ops=2,
            initial_retry_delay=0.01,
            max_retry_delay=0.05,
            retry_multiplier=2.0,
            max_retries=2,
        ),
    )


def _hit(doc_id: str, index: str = "logs-1", **source: Any) -> dict[str, Any]:
    return {"_id": doc_id, "_index": index, "_source": source}


@pytest.fixture
def make_hit() -> Callable[..., dict[str, Any]]:
    """Factory for one ``hits.hits`` entry: ``make_hit(id, index=..., **source)``."""
    return _hit


class FakeBackend:
    """In-memory SearchBackend recording the calls it receives."""

    def __init__(
        self,
        hits: list[dict[str, Any]] | None = None,
        caps: dict[str, dict[str, Any]] | None = None,
        indices: list[IndexStats] | None = None,
    ) -> None:
        self.hits = hits or []
        self.caps = caps or {}
        self.indices = indices or []
        self.searches: list[tuple[str, dict[str, Any]]] = []
        self.timeouts: list[float | None] = []
        self.search_errors: list[Exception] = []
        self.search_gate: threading.Event | None = None
        self._lock = threading.Lock()

    def search(
        self, index: str, query: dict[str, Any], timeout: float | None = None
    ) -> list[dict[str, Any]]:
        with self._lock:
            self.searches.append((index, query))
            self.timeouts.append(timeout)
            error = self.search_errors.pop(0) if self.search_errors else None
        if self.search_gate is not None:
            self.search_gate.wait(5)
        if error is not None:
            raise error
        return list(self.hits)

    def field_caps(
        self, index: str, fields: str = "*", timeout: float | None = None
    ) -> dict[str, dict[str, Any]]:
        self.timeouts.append(timeout)
        return dict(self.caps)

    def list_indices(self, pattern: str = "*", timeout: float | None = None) -> list[IndexStats]:
        self.timeouts.append(timeout)
        return list(self.indices)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend(
        hits=[
            _hit("a1", message="disk full", level="error", status=500, unixTime=0),
            _hit("a2", message="all good", level="info", status=200, unixTime=60),
            _hit("a3", message="slow request", level="warn", status=200, unixTime=120),
        ],
        caps={
            "message": {"type": "text", "searchable": True, "aggregatable": False},
            "level": {"type": "keyword", "searchable": True, "aggregatable": True},
            "status": {"type": "long", "searchable": True, "aggregatable": True},
        },
        indices=[
            IndexStats(index="logs-2", health="green", status="open", docs_count="10"),
            IndexStats(index="logs-1", health="yellow", status="open", docs_count="5"),
        ],
    )
