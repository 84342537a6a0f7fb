#!/usr/bin/env python3
"""
Stale session cleanup, daily statistics and cache maintenance.
"""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlmodel import Session

from conftest import LINCOLN
from models.check_in_session import CheckInSession, SessionStatus
from services.daily_stats import compute_daily_stats, daily_stats_doc_id, generate_daily_stats
from services.session_cleanup import TIMEOUT_NOTE, close_stale_sessions

NOW = datetime(2026, 9, 14, 18, 0, tzinfo=timezone.utc)


def add_session(
    session, hours_ago, status=SessionStatus.ACTIVE, user_id="provider-1", now=NOW, **fields
):
    record = CheckInSession(
        user_id=user_id,
        school_id="LINCOLN-ES",
        status=status,
        check_in_time=now - timedelta(hours=hours_ago),
        check_in_latitude=LINCOLN["center_lat"],
        check_in_longitude=LINCOLN["center_lng"],
        **fields,
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


# --- Cleanup ---


def test_close_stale_sessions(session, school):
    stale = add_session(session, 13)
    fresh = add_session(session, 2, user_id="provider-2")
    done = add_session(session, 30, status=SessionStatus.COMPLETED, user_id="provider-3")

    closed = close_stale_sessions(session, timeout_hours=12, now=NOW)
    assert closed == [stale.id]

    session.refresh(stale)
    assert stale.status == SessionStatus.ERROR
    assert stale.notes == TIMEOUT_NOTE
    assert stale.check_out_time == stale.check_in_time
    assert stale.duration_minutes == 0

    session.refresh(fresh)
    session.refresh(done)
    assert fresh.status == SessionStatus.ACTIVE
    assert done.status == SessionStatus.COMPLETED


def test_cleanup_respects_batch_size(session, school):
    for i in range(5):
        add_session(session, 20 + i, user_id=f"provider-{i}")
    assert len(close_stale_sessions(session, 12, max_batch_size=3, now=NOW)) == 3
    assert len(close_stale_sessions(session, 12, max_batch_size=3, now=NOW)) == 2
    assert close_stale_sessions(session, 12, now=NOW) == []


def test_cleanup_endpoint_records_metrics(admin_client, session, school, fake_db, engine):
    stale = add_session(session, 24, now=datetime.now(timezone.utc))

    response = admin_client.post("/admin/maintenance/run-session-cleanup")
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["timeout_hours"] == 12
    assert body["cleaned_sessions"] == 1
    assert body["session_ids"] == [stale.id]

    fake_db.collection.assert_any_call("system")
    fake_db.collection.return_value.document.assert_any_call("cleanup_metrics")
    metrics_call = fake_db.collection.return_value.document.return_value.set.call_args
    assert metrics_call.args[0]["cleanedSessions"] == 1
    assert metrics_call.args[0]["type"] == "session_cleanup"
    assert metrics_call.kwargs == {"merge": True}

    with Session(engine) as s:
        assert s.get(CheckInSession, stale.id).status == SessionStatus.ERROR


def test_cleanup_survives_metrics_failure(admin_client, session, school, fake_db):
    add_session(session, 24, now=datetime.now(timezone.utc))
    fake_db.collection.side_effect = RuntimeError("firestore down")

    response = admin_client.post(
        "/admin/maintenance/run-session-cleanup", params={"timeout_hours": 1}
    )
    assert response.status_code == 200
    assert response.json()["cleaned_sessions"] == 1


def test_cleanup_requires_admin(client):
    assert client.post("/admin/maintenance/run-session-cleanup").status_code == 403


# --- Daily stats ---


@pytest.fixture
def day_of_sessions(session, school):
    # 2026-09-14 in US/Central runs 05:00Z to 05:00Z the next day
    add_session(
        session, 10, status=SessionStatus.COMPLETED,
        check_out_time=NOW - timedelta(hours=9), duration_minutes=60,
    )
    add_session(
        session, 8, status=SessionStatus.COMPLETED, user_id="provider-2",
        check_out_time=NOW - timedelta(hours=7, minutes=30), duration_minutes=30,
    )
    add_session(session, 1, user_id="provider-2")
    # Previous local day
    add_session(session, 14, user_id="provider-3")


def test_compute_daily_stats(session, day_of_sessions):
    stats = compute_daily_stats(session, date(2026, 9, 14), "US/Central")
    assert stats.total_sessions == 3
    assert stats.completed_sessions == 2
    assert stats.average_duration_minutes == 45.0
    assert stats.by_school == {"LINCOLN-ES": 3}
    assert stats.by_provider == {"provider-1": 1, "provider-2": 2}


def test_generate_daily_stats_writes_firestore(session, day_of_sessions):
    db = MagicMock()
    stats = generate_daily_stats(session, db, date(2026, 9, 14), "US/Central")

    db.collection.assert_called_with("system")
    db.collection.return_value.document.assert_called_with(daily_stats_doc_id(date(2026, 9, 14)))
    stored = db.collection.return_value.document.return_value.set.call_args.args[0]
    assert stored["date"] == "2026-09-14"
    assert stored["total_sessions"] == stats.total_sessions
    assert "generatedAt" in stored


def test_daily_stats_endpoints(admin_client, day_of_sessions, fake_db):
    created = admin_client.post(
        "/admin/maintenance/daily-stats", params={"target_date": "2026-09-14"}
    )
    assert created.status_code == 200, created.text
    assert created.json()["total_sessions"] == 3

    snapshot = MagicMock(exists=True)
    snapshot.to_dict.return_value = {"date": "2026-09-14", "total_sessions": 3, "generatedAt": "ts"}
    fake_db.collection.return_value.document.return_value.get.return_value = snapshot
    read = admin_client.get("/admin/maintenance/daily-stats", params={"target_date": "2026-09-14"})
    assert read.json() == {"date": "2026-09-14", "total_sessions": 3}

    snapshot.exists = False
    missing = admin_client.get("/admin/maintenance/daily-stats", params={"target_date": "2026-09-13"})
    assert missing.status_code == 404


def test_daily_stats_store_failure(admin_client, day_of_sessions, fake_db):
    fake_db.collection.side_effect = RuntimeError("firestore down")
    response = admin_client.post(
        "/admin/maintenance/daily-stats", params={"target_date": "2026-09-14"}
    )
    assert response.status_code == 503


# --- Cache ---


def test_cache_stats_and_clear(admin_client, school, current_user):
    current_user["assigned_schools"] = ["LINCOLN-ES"]
    admin_client.get("/schools/LINCOLN-ES/geofence")
    admin_client.get("/schools/LINCOLN-ES/geofence")

    stats = admin_client.get("/admin/maintenance/cache").json()
    assert stats["schools"]["hits"] == 1
    assert stats["schools"]["size"] == 1
    assert stats["users"]["namespace"].endswith(":users")

    assert admin_client.post("/admin/maintenance/cache/clear").status_code == 200
    assert admin_client.get("/admin/maintenance/cache").json()["schools"]["size"] == 0
