"""Tests for the audit logger service."""

import csv
import io
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from cms_admin.db.session import get_engine
from cms_admin.errors import AuditWriteFailed
from cms_admin.models.audit import AuditAction
from cms_admin.models.identity import Identity
from cms_admin.models.repositories import AuditFilters
from cms_admin.services.audit import EXPORT_COLUMNS, AuditLogger
from cms_admin.services.transactions import transactional_session

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def audit():
    return AuditLogger(export_max_rows=3)


def test_log_action_persists_record(audit, admin):
    record = audit.log_action(
        admin.id,
        "CREATE",
        "Page",
        42,
        {"title": "Home"},
        "10.0.0.1",
        "pytest-agent",
    )

    stored = audit.get(record.id)
    assert stored.action is AuditAction.CREATE
    assert stored.entity_type == "Page"
    assert stored.entity_id == "42"
    assert stored.detail == {"title": "Home"}
    assert stored.ip_address == "10.0.0.1"
    assert stored.actor.email == "admin@example.com"


def test_duplicate_calls_create_two_records(audit, admin):
    first = audit.log_action(admin.id, AuditAction.UPDATE, "Menu", 1)
    second = audit.log_action(admin.id, AuditAction.UPDATE, "Menu", 1)

    assert first.id != second.id
    page = audit.query(AuditFilters(entity_type="Menu"))
    assert page.total == 2


def test_unknown_actor_is_rejected(audit, admin):
    with pytest.raises(AuditWriteFailed) as excinfo:
        audit.log_action(admin.id + 100, AuditAction.CREATE, "Page")
    assert excinfo.value.details == {"actor_id": admin.id + 100}
    assert audit.query(AuditFilters()).total == 0


def test_unknown_action_is_rejected(audit, admin):
    with pytest.raises(AuditWriteFailed):
        audit.log_action(admin.id, "PUBLISH", "Page")


def test_record_quietly_logs_and_swallows_failures(audit, caplog):
    with caplog.at_level(logging.ERROR, logger="cms_admin.audit"):
        result = audit.record_quietly(999, AuditAction.LOGIN, "Identity", 999)

    assert result is None
    messages = [r.getMessage() for r in caplog.records]
    assert any("audit.write_failed" in m and "actor_id=999" in m for m in messages)


def test_record_quietly_returns_record_on_success(audit, admin):
    record = audit.record_quietly(admin.id, AuditAction.LOGIN, "Identity")
    assert record is not None
    assert record.ip_address is None


def test_date_range_is_inclusive(audit, admin):
    for hours in (0, 1, 2, 3):
        audit.log_action(
            admin.id,
            AuditAction.UPDATE,
            "Page",
            hours,
            created_at=BASE_TIME + timedelta(hours=hours),
        )

    page = audit.query(
        AuditFilters(
            start_date=BASE_TIME + timedelta(hours=1),
            end_date=BASE_TIME + timedelta(hours=2),
        )
    )
    assert page.total == 2
    assert [item.entity_id for item in page.items] == ["2", "1"]


def test_filters_are_combined(audit, admin, make_identity):
    editor = make_identity("editor@example.com")
    audit.log_action(admin.id, AuditAction.CREATE, "Page")
    audit.log_action(admin.id, AuditAction.DELETE, "Page")
    audit.log_action(editor.id, AuditAction.CREATE, "Page")
    audit.log_action(admin.id, AuditAction.CREATE, "Menu")

    page = audit.query(
        AuditFilters(
            actor_id=admin.id, action=AuditAction.CREATE, entity_type="Page"
        )
    )
    assert page.total == 1
    assert page.items[0].actor_id == admin.id


def test_pagination_is_deterministic_for_equal_timestamps(audit, admin):
    ids = [
        audit.log_action(
            admin.id, AuditAction.UPDATE, "Page", created_at=BASE_TIME
        ).id
        for _ in range(5)
    ]

    seen = []
    for offset in (0, 2, 4):
        page = audit.query(AuditFilters(limit=2, offset=offset))
        assert page.total == 5
        assert page.has_more is (offset < 4)
        seen.extend(item.id for item in page.items)

    assert seen == sorted(ids, reverse=True)


def test_export_renders_quoted_csv(audit, admin):
    audit.log_action(
        admin.id,
        AuditAction.UPDATE,
        'Page "home"',
        "7",
        {"title": 'Hello, "world"', "lines": "a\nb"},
        created_at=BASE_TIME,
    )

    content = audit.export_audit_log(AuditFilters(limit=10000))
    rows = list(csv.reader(io.StringIO(content)))

    assert tuple(rows[0]) == EXPORT_COLUMNS
    assert len(rows) == 2
    row = dict(zip(EXPORT_COLUMNS, rows[1]))
    assert row["Actor Email"] == "admin@example.com"
    assert row["Entity Type"] == 'Page "home"'
    assert row["Action"] == "UPDATE"
    assert row["Details"] == '{"title":"Hello, \\"world\\"","lines":"a\\nb"}'
    assert row["Created At"].startswith("2026-03-01T12:00:00")
    assert content.splitlines()[0].startswith('"ID","Actor ID"')


def test_export_is_capped(audit, admin):
    for _ in range(5):
        audit.log_action(admin.id, AuditAction.CREATE, "Page")

    content = audit.export_audit_log(AuditFilters(limit=10000))
    assert len(list(csv.reader(io.StringIO(content)))) == 1 + 3


def test_purge_removes_only_old_records(audit, admin):
    now = datetime(2026, 10, 1, tzinfo=timezone.utc)
    audit.log_action(
        admin.id,
        AuditAction.LOGIN,
        "Identity",
        created_at=now - timedelta(days=400),
    )
    kept = audit.log_action(
        admin.id,
        AuditAction.LOGIN,
        "Identity",
        created_at=now - timedelta(days=10),
    )

    assert audit.purge_older_than(365, now=now) == 1
    page = audit.query(AuditFilters())
    assert [item.id for item in page.items] == [kept.id]

    with pytest.raises(ValueError):
        audit.purge_older_than(0)


@contextmanager
def _commit_fails(*, name):
    with transactional_session(name=name) as session:
        yield session
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


def test_commit_failure_becomes_audit_write_failed(admin, caplog):
    audit = AuditLogger(transaction=_commit_fails)

    with pytest.raises(AuditWriteFailed) as excinfo:
        audit.log_action(admin.id, AuditAction.LOGIN, "Identity")
    assert "disk I/O error" in excinfo.value.details["reason"]

    with caplog.at_level(logging.ERROR, logger="cms_admin.audit"):
        assert audit.record_quietly(admin.id, AuditAction.LOGIN, "Identity") is None
    assert any("audit.write_failed" in r.getMessage() for r in caplog.records)
    assert AuditLogger().query(AuditFilters()).total == 0


def test_unavailable_store_does_not_escape_record_quietly(audit, admin):
    Identity.__table__.drop(bind=get_engine())

    with pytest.raises(AuditWriteFailed):
        audit.log_action(admin.id, AuditAction.LOGOUT, "Identity")
    assert audit.record_quietly(admin.id, AuditAction.LOGOUT, "Identity") is None
