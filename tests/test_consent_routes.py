import pytest
from fastapi.testclient import TestClient

from backend.app import consent_routes
from backend.app.consent_routes import consent_notifier, get_consent_config, get_storage
from backend.app.main import app
from backend.app.settings import ConsentConfig, settings
from backend.app.storage import JsonFileStorage, MemoryStorage


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def client(storage):
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_consent_config] = lambda: ConsentConfig(policy_version="1.0")
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _set_cookie_header(resp) -> str:
    return "; ".join(resp.headers.get_list("set-cookie")).lower()


def test_probes(client):
    assert client.get("/").json()["ok"] is True
    assert client.get("/health").json() == {"ok": True}
    assert client.get("/healthz").json() == {"ok": True}
    assert client.get("/ready").status_code == 200


def test_first_page_load_shows_banner(client):
    resp = client.post("/consent/page-load", json={"session_id": "s1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["verdict"] == "show"
    assert body["show_banner"] is True
    assert body["banner"]["ok_button"] == settings.CONSENT_OK_BUTTON
    assert body["banner"]["policy_link"] == settings.CONSENT_POLICY_LINK


def test_accept_sets_root_scoped_lax_cookie(client):
    resp = client.post("/consent/accept", json={"session_id": "s1"})
    assert resp.status_code == 200
    assert resp.json()["has_consented"] is True
    assert resp.json()["record"]["version"] == "1.0"

    header = _set_cookie_header(resp)
    assert "cookieconsent=accepted" in header
    assert "path=/" in header
    assert "samesite=lax" in header
    assert f"max-age={183 * 86400}" in header


def test_page_load_after_accept_hides_banner(client):
    client.post("/consent/accept", json={"session_id": "s1"})
    body = client.post("/consent/page-load", json={"session_id": "s1"}).json()
    assert body["show_banner"] is False
    assert body["banner"] is None


def test_cookie_alone_suppresses_banner(storage):
    app.dependency_overrides[get_storage] = lambda: storage
    try:
        with TestClient(app, cookies={"cookieConsent": "accepted"}) as c:
            body = c.post("/consent/page-load", json={"session_id": "fresh"}).json()
    finally:
        app.dependency_overrides.clear()
    assert body["verdict"] == "suppress"


def test_frequent_visitor_gets_cookie_renewed(client, storage):
    client.post("/consent/accept", json={"session_id": "s1"})

    # a new browser without the cookie, same session
    cookieless = TestClient(app)
    cookieless.post("/consent/page-load", json={"session_id": "s1"})
    resp = cookieless.post("/consent/page-load", json={"session_id": "s1"})

    assert resp.json()["verdict"] == "suppress"
    assert resp.json()["renewed"] is True
    assert resp.json()["show_banner"] is False
    assert "cookieconsent=accepted" in _set_cookie_header(resp)


def test_sessions_are_isolated(client):
    client.post("/consent/accept", json={"session_id": "s1"})
    status = TestClient(app).get("/consent/status/s2").json()
    assert status["has_consented"] is False
    assert status["record"] is None


def test_status_reports_visits_and_record(client):
    client.post("/consent/page-load", json={"session_id": "s1"})
    client.post("/consent/page-load", json={"session_id": "s1"})
    status = client.get("/consent/status/s1").json()
    assert status["policy_version"] == "1.0"
    assert len(status["visits"]) == 2
    assert status["frequent_visitor"] is True
    assert status["record"] is None


def test_reset_clears_record_and_cookie(client):
    client.post("/consent/accept", json={"session_id": "s1"})
    resp = client.post("/consent/reset", json={"session_id": "s1"})
    assert resp.status_code == 200
    assert resp.json()["has_consented"] is False
    assert resp.json()["record"] is None
    assert "max-age=0" in _set_cookie_header(resp)

    body = TestClient(app).post("/consent/page-load", json={"session_id": "s1"}).json()
    assert body["show_banner"] is True


def test_visitor_reset_works_when_admin_token_is_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "CONSENT_ADMIN_TOKEN", "sekret")
    client.post("/consent/accept", json={"session_id": "s1"})
    resp = client.post("/consent/reset", json={"session_id": "s1"})
    assert resp.status_code == 200
    assert resp.json()["has_consented"] is False


def test_revoke_requires_admin_token_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "CONSENT_ADMIN_TOKEN", "sekret")
    client.post("/consent/accept", json={"session_id": "s1"})
    assert client.post("/consent/revoke/s1").status_code == 401
    assert client.post("/consent/revoke/s1", headers={"X-Admin-Token": "wrong"}).status_code == 401

    resp = TestClient(app).post("/consent/revoke/s1", headers={"X-Admin-Token": "sekret"})
    assert resp.status_code == 200
    assert resp.json()["record"] is None
    assert resp.json()["has_consented"] is False


def test_empty_session_id_is_rejected(client):
    assert client.post("/consent/page-load", json={"session_id": ""}).status_code == 422


def test_accept_notifies_subscribers(client):
    events = []
    unsubscribe = consent_notifier.subscribe(events.append)
    try:
        client.post("/consent/accept", json={"session_id": "s9"})
    finally:
        unsubscribe()
    assert [e.context for e in events] == ["s9"]


def test_version_bump_shows_banner_again(client, storage):
    client.post("/consent/accept", json={"session_id": "s1"})
    app.dependency_overrides[get_consent_config] = lambda: ConsentConfig(policy_version="2.0")

    body = TestClient(app).post("/consent/page-load", json={"session_id": "s1"}).json()
    assert body["show_banner"] is True


def test_default_storage_is_the_configured_json_file():
    assert isinstance(consent_routes._storage, JsonFileStorage)
    assert consent_routes._storage.path == settings.CONSENT_STORE_PATH
