#!/usr/bin/env python3
"""
Firebase token handling in get_current_user and the user directory routes.
"""

from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from core.config import user_cache_config
from core.deps import get_current_user
from core.firebase import get_firestore
from main import app
from services.user_directory import get_user_profile, list_users
from utils.cache import TTLCache


def profile_snapshot(uid="provider-1", **data):
    snapshot = MagicMock(id=uid, exists=True)
    snapshot.to_dict.return_value = {
        "displayName": "Pat Provider",
        "email": "pat@example.com",
        "role": "provider",
        "assignedSchools": ["LINCOLN-ES"],
        **data,
    }
    return snapshot


@pytest.fixture
def auth_client(fake_db):
    """Real get_current_user; only Firestore is faked."""
    app.dependency_overrides[get_firestore] = lambda: fake_db
    app.state.user_cache = TTLCache(user_cache_config())
    yield TestClient(app)
    app.dependency_overrides.clear()


def set_profile(fake_db, snapshot):
    fake_db.collection.return_value.document.return_value.get.return_value = snapshot


# Any route guarded by get_current_user will do
PROTECTED = "/users/activity"


def test_missing_header(auth_client):
    response = auth_client.post(PROTECTED, json={})
    assert response.status_code == 401
    assert response.json()["detail"] == "Missing or invalid Authorization header"


def test_invalid_token(auth_client):
    with patch("core.deps.verify_id_token", side_effect=ValueError("bad token")):
        response = auth_client.post(
            PROTECTED, json={}, headers={"Authorization": "Bearer nope"}
        )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


def test_profile_not_found(auth_client, fake_db):
    set_profile(fake_db, MagicMock(exists=False))
    with patch("core.deps.verify_id_token", return_value={"uid": "ghost"}):
        response = auth_client.post(PROTECTED, json={}, headers={"Authorization": "Bearer t"})
    assert response.status_code == 404


def test_firestore_outage(auth_client, fake_db):
    fake_db.collection.side_effect = RuntimeError("unavailable")
    with patch("core.deps.verify_id_token", return_value={"uid": "provider-1"}):
        response = auth_client.post(PROTECTED, json={}, headers={"Authorization": "Bearer t"})
    assert response.status_code == 503


def test_deactivated_user(auth_client, fake_db):
    set_profile(fake_db, profile_snapshot(isActive=False))
    with patch("core.deps.verify_id_token", return_value={"uid": "provider-1"}):
        response = auth_client.post(PROTECTED, json={}, headers={"Authorization": "Bearer t"})
    assert response.status_code == 403


def test_valid_token_records_activity(auth_client, fake_db):
    set_profile(fake_db, profile_snapshot())
    with patch("core.deps.verify_id_token", return_value={"uid": "provider-1"}):
        response = auth_client.post(
            PROTECTED,
            json={"activity_type": "check_in_viewed", "metadata": {"school_id": "LINCOLN-ES"}},
            headers={"Authorization": "Bearer t"},
        )
    assert response.status_code == 200, response.text

    user_update = fake_db.collection.return_value.document.return_value.update.call_args.args[0]
    assert user_update["lastActivityType"] == "check_in_viewed"
    logged = fake_db.collection.return_value.add.call_args.args[0]
    assert logged["userId"] == "provider-1"
    assert logged["metadata"] == {"school_id": "LINCOLN-ES"}
    fake_db.collection.assert_any_call("user_activity")


def test_admin_route_rejects_provider(auth_client, fake_db):
    set_profile(fake_db, profile_snapshot())
    with patch("core.deps.verify_id_token", return_value={"uid": "provider-1"}):
        response = auth_client.get("/admin/schools", headers={"Authorization": "Bearer t"})
    assert response.status_code == 403


# --- User directory ---


def test_profile_is_cached_and_legacy_assignments_parsed():
    db = MagicMock()
    db.collection.return_value.document.return_value.get.return_value = profile_snapshot(
        assignedSchools="LINCOLN-ES, WASHINGTON-MS,LINCOLN-ES"
    )
    cache = TTLCache(user_cache_config())

    profile = get_user_profile(db, cache, "provider-1")
    assert profile["assigned_schools"] == ["LINCOLN-ES", "WASHINGTON-MS"]
    assert profile["is_active"] is True

    get_user_profile(db, cache, "provider-1")
    assert db.collection.return_value.document.return_value.get.call_count == 1

    get_user_profile(db, cache, "provider-1", force_refresh=True)
    assert db.collection.return_value.document.return_value.get.call_count == 2


def test_list_users_sorted_by_name():
    db = MagicMock()
    db.collection.return_value.where.return_value.stream.return_value = [
        profile_snapshot("b", displayName="zoe"),
        profile_snapshot("a", displayName="Adam"),
    ]
    users = list_users(db, role="provider")
    assert [u["uid"] for u in users] == ["a", "b"]


def test_admin_lists_users(admin_client, fake_db):
    fake_db.collection.return_value.stream.return_value = [profile_snapshot()]
    response = admin_client.get("/admin/users")
    assert response.status_code == 200
    assert response.json()[0]["uid"] == "provider-1"
    assert response.json()[0]["assigned_schools"] == ["LINCOLN-ES"]


def test_admin_sets_role(admin_client, fake_db):
    set_profile(fake_db, profile_snapshot())
    response = admin_client.put("/admin/users/provider-1/role", json={"role": "admin"})
    assert response.status_code == 200
    update = fake_db.collection.return_value.document.return_value.update.call_args.args[0]
    assert update["role"] == "admin"

    bad = admin_client.put("/admin/users/provider-1/role", json={"role": "owner"})
    assert bad.status_code == 400


# --- Firebase unavailable ---


def test_get_firestore_maps_init_failure_to_503():
    with patch("core.firebase.firestore_client", side_effect=RuntimeError("no credentials")):
        with pytest.raises(HTTPException) as exc:
            get_firestore()
    assert exc.value.status_code == 503


def test_firebase_init_failure_on_route_is_503(admin_client):
    app.dependency_overrides.pop(get_firestore)
    with patch("core.firebase.firestore_client", side_effect=RuntimeError("no credentials")):
        response = admin_client.get("/admin/users")
    assert response.status_code == 503
    assert response.json()["detail"] == "Firestore is unavailable."


def test_firebase_init_failure_during_auth_is_503(auth_client):
    app.dependency_overrides.pop(get_firestore)
    with patch("core.firebase.firestore_client", side_effect=RuntimeError("no credentials")), patch(
        "core.deps.verify_id_token", return_value={"uid": "provider-1"}
    ):
        response = auth_client.post(PROTECTED, json={}, headers={"Authorization": "Bearer t"})
    assert response.status_code == 503
