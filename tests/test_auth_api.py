"""Login, token and session tests against the real auth dependency."""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from coursewizard.cleanup import purge_idle_sessions
from coursewizard.main import app
from coursewizard.models import AuthSession
from coursewizard.settings import settings


@pytest.fixture
def anon_client(override_db):
    return TestClient(app)


def register_and_login(client, username="janet", password="s3cret-pass"):
    assert client.post("/auth/register", json={"username": username, "password": password}).status_code == 201
    response = client.post("/auth/token", data={"username": username, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_register_login_and_me(anon_client):
    headers = register_and_login(anon_client)

    response = anon_client.get("/auth/me", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"username": "janet"}


def test_duplicate_registration(anon_client):
    register_and_login(anon_client)
    response = anon_client.post("/auth/register", json={"username": "janet", "password": "other"})
    assert response.status_code == 409


def test_short_username_is_rejected(anon_client):
    response = anon_client.post("/auth/register", json={"username": "ab", "password": "pw"})
    assert response.status_code == 400


def test_wrong_password(anon_client):
    register_and_login(anon_client)
    response = anon_client.post("/auth/token", data={"username": "janet", "password": "nope"})
    assert response.status_code == 401


def test_courses_require_a_token(anon_client):
    assert anon_client.get("/courses").status_code == 401
    assert anon_client.get("/courses", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_token_drives_the_draft_store(anon_client):
    headers = register_and_login(anon_client)
    response = anon_client.post("/courses/draft", json={"name": "Intro"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["instructor"] == "janet"


def test_purged_session_stops_authenticating(anon_client, override_db):
    headers = register_and_login(anon_client)
    db = override_db()
    try:
        row = db.query(AuthSession).one()
        row.last_activity_at = datetime.utcnow() - timedelta(days=8)
        db.commit()
        assert purge_idle_sessions(db) == 1
    finally:
        db.close()

    assert anon_client.get("/auth/me", headers=headers).status_code == 401


def test_info(anon_client):
    assert anon_client.get("/info").json() == {"status": "ok"}


def test_logout_revokes_the_token(anon_client):
    headers = register_and_login(anon_client)

    assert anon_client.post("/auth/logout", headers=headers).json()["success"] is True
    response = anon_client.get("/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["detail"] == "Session expired, please log in again"


def test_seed_account_is_created_on_first_login(anon_client, monkeypatch):
    monkeypatch.setattr(settings, "seed_username", "demo")
    monkeypatch.setattr(settings, "seed_password_plain", "demo-pass")

    response = anon_client.post("/auth/token", data={"username": "demo", "password": "demo-pass"})
    assert response.status_code == 200
    headers = {"Authorization": f"Bearer {response.json()['access_token']}"}
    assert anon_client.get("/auth/me", headers=headers).json() == {"username": "demo"}
