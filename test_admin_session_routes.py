#!/usr/bin/env python3
"""
Admin session listing, editing and summaries.
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import LINCOLN
from models.check_in_session import CheckInSession, SessionStatus

BASE = datetime(2026, 4, 6, 13, 0, tzinfo=timezone.utc)


@pytest.fixture
def sessions(session, school):
    rows = [
        ("provider-1", SessionStatus.COMPLETED, 0, 60),
        ("provider-1", SessionStatus.COMPLETED, 1, 30),
        ("provider-2", SessionStatus.ERROR, 2, 0),
        ("provider-2", SessionStatus.ACTIVE, 3, None),
    ]
    records = []
    for user_id, status, day, minutes in rows:
        check_in = BASE + timedelta(days=day)
        record = CheckInSession(
            user_id=user_id,
            school_id="LINCOLN-ES",
            status=status,
            check_in_time=check_in,
            check_out_time=check_in + timedelta(minutes=minutes) if minutes is not None else None,
            check_in_latitude=LINCOLN["center_lat"],
            check_in_longitude=LINCOLN["center_lng"],
            duration_minutes=minutes,
        )
        session.add(record)
        records.append(record)
    session.commit()
    for record in records:
        session.refresh(record)
    return records


def test_requires_admin(client, sessions):
    assert client.get("/admin/sessions").status_code == 403


def test_list_all_newest_first(admin_client, sessions):
    body = admin_client.get("/admin/sessions").json()
    assert body["total"] == 4
    assert [s["id"] for s in body["data"]] == [r.id for r in reversed(sessions)]


def test_list_with_filters(admin_client, sessions):
    by_user = admin_client.get("/admin/sessions", params={"user_id": "provider-2"}).json()
    assert by_user["total"] == 2

    by_status = admin_client.get("/admin/sessions", params={"status": "completed"}).json()
    assert {s["user_id"] for s in by_status["data"]} == {"provider-1"}

    in_range = admin_client.get(
        "/admin/sessions",
        params={
            "start": (BASE + timedelta(days=1)).isoformat(),
            "end": (BASE + timedelta(days=3)).isoformat(),
        },
    ).json()
    assert in_range["total"] == 2


def test_list_paging(admin_client, sessions):
    body = admin_client.get("/admin/sessions", params={"limit": 1, "offset": 1}).json()
    assert body["total"] == 4
    assert [s["id"] for s in body["data"]] == [sessions[2].id]


def test_summary(admin_client, sessions):
    summary = admin_client.get("/admin/sessions/summary").json()["data"]
    assert summary == {
        "total_sessions": 4,
        "total_duration": 90,
        "average_duration": 45,
        "active_sessions": 1,
        "completed_sessions": 2,
    }

    one_user = admin_client.get(
        "/admin/sessions/summary", params={"user_id": "provider-1"}
    ).json()["data"]
    assert one_user["total_sessions"] == 2


def test_close_active_session(admin_client, sessions):
    active = sessions[3]
    response = admin_client.put(
        f"/admin/sessions/{active.id}", json={"status": "completed", "notes": "Closed by admin"}
    )
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["status"] == "completed"
    assert data["notes"] == "Closed by admin"
    assert data["check_out_time"] is not None
    assert data["duration_minutes"] > 0


def test_update_and_delete_missing(admin_client, sessions):
    assert admin_client.put("/admin/sessions/999", json={"notes": "x"}).status_code == 404
    assert admin_client.delete("/admin/sessions/999").status_code == 404


def test_delete_session(admin_client, sessions):
    target = sessions[0].id
    assert admin_client.delete(f"/admin/sessions/{target}").status_code == 200
    assert admin_client.get("/admin/sessions").json()["total"] == 3


def test_reopen_clears_check_out(admin_client, sessions):
    finished = sessions[0]
    response = admin_client.put(f"/admin/sessions/{finished.id}", json={"status": "active"})
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["status"] == "active"
    assert data["check_out_time"] is None
    assert data["check_out_latitude"] is None
    assert data["duration_minutes"] is None

    current = admin_client.get(
        "/admin/sessions", params={"user_id": "provider-1", "status": "active"}
    ).json()
    assert current["total"] == 1


def test_reopen_refused_while_user_has_active_session(admin_client, sessions):
    errored = sessions[2]
    response = admin_client.put(
        f"/admin/sessions/{errored.id}", json={"status": "active", "notes": "retry"}
    )
    assert response.status_code == 409
    assert str(sessions[3].id) in response.json()["detail"]

    still_active = admin_client.get(
        "/admin/sessions", params={"user_id": "provider-2", "status": "active"}
    ).json()
    assert [s["id"] for s in still_active["data"]] == [sessions[3].id]
