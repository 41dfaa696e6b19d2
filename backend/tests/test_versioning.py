# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Optimistic Locking Tests

Tests for:
- If-Match header parsing
- ETag formatting
- Atomic compare-and-swap updates on SQLAlchemy models

Run with: pytest tests/test_versioning.py -v
"""

import pytest

from core.exceptions import InvalidVersionError, VersionMissingError
from core.versioning import (
    MAX_VERSION,
    atomic_update_with_version,
    check_version_conflict,
    format_etag,
    is_storable_version,
    parse_if_match
)
from db.database import create_session_factory
from models.task import TaskRecord
from services.task_store import demo_tasks


# =============================================================================
# If-Match Parsing
# =============================================================================

class TestParseIfMatch:
    """Tests for turning an If-Match header into an expected version."""

    @pytest.mark.parametrize("header, expected", [
        ("5", 5),
        ('"5"', 5),
        ('W/"5"', 5),
        (" 7 ", 7),
        ("0", 0),
        ("120", 120),
        ("2147483647", MAX_VERSION),
        ("0005", 5),
    ])
    def test_accepted_forms(self, header, expected):
        assert parse_if_match(header) == expected

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_missing_header(self, header):
        with pytest.raises(VersionMissingError) as exc_info:
            parse_if_match(header)

        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "VERSAO_FALTANTE"

    @pytest.mark.parametrize("header", [
        "abc", "5.0", "-1", '"5', "*", "W/5x",
        "2147483648", "100000000000000000000", "9" * 5000
    ])
    def test_invalid_header(self, header):
        with pytest.raises(InvalidVersionError) as exc_info:
            parse_if_match(header)

        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "VERSAO_INVALIDA"
        assert exc_info.value.detail["if_match"] == header


class TestEtag:

    def test_format_etag_is_bare_integer(self):
        assert format_etag(6) == "6"

    def test_etag_round_trips_through_if_match(self):
        assert parse_if_match(format_etag(42)) == 42

    def test_is_storable_version(self):
        assert is_storable_version(1)
        assert is_storable_version(MAX_VERSION)
        assert not is_storable_version(MAX_VERSION + 1)
        assert not is_storable_version(-1)

    def test_check_version_conflict(self):
        assert check_version_conflict(5, 5) is False
        assert check_version_conflict(5, 1) is True


# =============================================================================
# Atomic Update
# =============================================================================

@pytest.fixture
def db_session(sql_store, sqlite_engine):
    """Session on a database seeded with the demo tasks."""
    SessionLocal = create_session_factory(sqlite_engine)
    session = SessionLocal()

    yield session

    session.close()


class TestAtomicUpdateWithVersion:
    """Tests for the UPDATE ... WHERE version = :expected pattern."""

    def test_matching_version_increments(self, db_session):
        record = atomic_update_with_version(
            db_session, TaskRecord, "t1", 5, {"title": "Renamed"}
        )
        db_session.commit()

        assert record is not None
        assert record.version == 6
        assert record.title == "Renamed"

    def test_stale_version_matches_no_rows(self, db_session):
        record = atomic_update_with_version(
            db_session, TaskRecord, "t1", 4, {"title": "Renamed"}
        )
        db_session.commit()

        assert record is None
        stored = db_session.get(TaskRecord, "t1")
        assert stored.version == 5
        assert stored.title == demo_tasks()[0].title

    def test_scope_filters_other_workspaces(self, db_session):
        record = atomic_update_with_version(
            db_session, TaskRecord, "t1", 5, {"title": "Renamed"},
            scope={"workspace_id": "w2"}
        )
        db_session.commit()

        assert record is None
        assert db_session.get(TaskRecord, "t1").version == 5

    def test_updated_at_advances(self, db_session):
        before = db_session.get(TaskRecord, "t2").updated_at

        record = atomic_update_with_version(
            db_session, TaskRecord, "t2", 3, {"title": "Renamed"}
        )
        db_session.commit()

        assert record.updated_at >= before
