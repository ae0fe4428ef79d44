"""Unit tests for the search hit model."""

from __future__ import annotations

import copy
import dataclasses

import pytest

from esview.documents import Document

NESTED = {
    "_id": "doc-1",
    "_index": "logs-1",
    "_score": 1.5,
    "_source": {
        "message": "hello",
        "status": 200,
        "ratio": 0.25,
        "count": 3.0,
        "ok": True,
        "user": {"name": "alice", "geo": {"city": "Berlin"}},
        "tags": ["a", "b"],
        "events": [{"name": "login"}, {"name": "logout"}],
        "severity": 7.6,
        "unixTime": 1705320000,
        "empty": None,
    },
}


class TestFromHit:
    def test_fields(self) -> None:
        doc = Document.from_hit(NESTED)
        assert doc.id == "doc-1"
        assert doc.index == "logs-1"
        assert doc.type == ""
        assert doc.score == 1.5
        assert doc.version is None
        assert doc.source["message"] == "hello"

    def test_missing_source(self) -> None:
        doc = Document.from_hit({"_id": 5})
        assert doc.source == {}
        assert doc.id == "5"

    def test_frozen_and_shared_by_copies(self) -> None:
        doc = Document.from_hit(NESTED)
        with pytest.raises(dataclasses.FrozenInstanceError):
            doc.id = "other"  # type: ignore[misc]
        assert copy.deepcopy([doc])[0] is doc

    def test_metadata_fields(self) -> None:
        assert Document.from_hit(NESTED).metadata_fields() == ["_id", "_index", "_type", "_score"]
        assert Document().metadata_fields() == ["_id", "_index", "_type"]


class TestAvailableFields:
    def test_leaf_paths_sorted(self) -> None:
        fields = Document.from_hit(NESTED).available_fields()
        assert fields == sorted(fields)
        assert "user.name" in fields
        assert "user.geo.city" in fields
        assert "user" not in fields
        assert "tags" in fields
        assert "events" in fields
        assert "_id" in fields
        assert "_score" in fields

    def test_empty_document(self) -> None:
        assert Document().available_fields() == ["_id", "_index", "_type"]


class TestGetValue:
    def test_nested(self) -> None:
        doc = Document.from_hit(NESTED)
        assert doc.get_value("user.geo.city") == "Berlin"
        assert doc.get_value("user.missing") is None
        assert doc.get_value("message.inner") is None

    def test_array_index(self) -> None:
        doc = Document.from_hit(NESTED)
        assert doc.get_value("tags[1]") == "b"
        assert doc.get_value("events[0].name") == "login"
        assert doc.get_value("tags[5]") is None
        assert doc.get_value("message[0]") is None
        assert doc.get_value("tags[0].x") is None


class TestFormattedValue:
    def test_metadata(self) -> None:
        doc = Document.from_hit(NESTED)
        assert doc.formatted_value("_id") == "doc-1"
        assert doc.formatted_value("_index") == "logs-1"
        assert doc.formatted_value("_score") == "1.5"
        assert doc.formatted_value("_version") == ""

    def test_scalars(self) -> None:
        doc = Document.from_hit(NESTED)
        assert doc.formatted_value("message") == "hello"
        assert doc.formatted_value("status") == "200"
        assert doc.formatted_value("ratio") == "0.25"
        assert doc.formatted_value("count") == "3"
        assert doc.formatted_value("ok") == "true"

    def test_missing_and_null(self) -> None:
        doc = Document.from_hit(NESTED)
        assert doc.formatted_value("nope") == ""
        assert doc.formatted_value("empty") == ""

    def test_compound_as_compact_json(self) -> None:
        doc = Document.from_hit(NESTED)
        assert doc.formatted_value("tags") == '["a","b"]'
        assert doc.formatted_value("user.geo") == '{"city":"Berlin"}'

    def test_unix_time(self) -> None:
        doc = Document.from_hit(NESTED)
        assert doc.formatted_value("unixTime") == "2024-01-15T12:00:00Z"

    def test_unix_time_non_numeric(self) -> None:
        doc = Document(source={"unixTime": "yesterday"})
        assert doc.formatted_value("unixTime") == "yesterday"

    def test_severity_rounded(self) -> None:
        assert Document.from_hit(NESTED).formatted_value("severity") == "8"
        assert Document(source={"severity": "high"}).formatted_value("severity") == "high"
