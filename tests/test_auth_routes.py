"""HTTP tests for login, logout and session inspection."""

from cms_admin.db.session import get_engine
from cms_admin.models.audit import AuditAction
from cms_admin.models.identity import Identity, Role
from cms_admin.models.repositories import AuditFilters

from tests.helpers import DEFAULT_PASSWORD


def _audit_actions(app):
    page = app.extensions["audit_logger"].query(AuditFilters())
    return [item.action for item in page.items]


def test_login_returns_token_and_sets_cookie(app, client, make_identity):
    identity = make_identity("editor@example.com", Role.EDITOR, name="Ed")

    response = client.post(
        "/auth/login",
        json={"email": "EDITOR@example.com", "password": DEFAULT_PASSWORD},
        headers={"User-Agent": "pytest", "X-Forwarded-For": "203.0.113.9"},
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["token"]
    assert payload["user"]["id"] == identity.id
    assert payload["user"]["role"] == "EDITOR"
    assert "password_hash" not in payload["user"]
    cookie = response.headers["Set-Cookie"]
    assert cookie.startswith("cms_session=")
    assert "HttpOnly" in cookie

    page = app.extensions["audit_logger"].query(AuditFilters())
    assert page.total == 1
    record = page.items[0]
    assert record.action is AuditAction.LOGIN
    assert record.actor_id == identity.id
    assert record.ip_address == "203.0.113.9"
    assert record.user_agent == "pytest"


def test_login_failures_are_uniform(app, client, make_identity):
    make_identity("viewer@example.com")

    wrong = client.post(
        "/auth/login",
        json={"email": "viewer@example.com", "password": "wrong-password"},
    )
    unknown = client.post(
        "/auth/login",
        json={"email": "nobody@example.com", "password": "wrong-password"},
    )

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.get_json() == unknown.get_json()
    assert wrong.get_json()["error"]["message"] == "invalid credentials"
    assert _audit_actions(app) == []


def test_login_requires_fields(client):
    response = client.post("/auth/login", json={"email": "a@example.com"})
    assert response.status_code == 400
    assert "password" in response.get_json()["error"]["details"]

    response = client.post("/auth/login", data="not json")
    assert response.status_code == 400


def test_login_is_rate_limited_after_five_failures(
    client, make_identity, clock
):
    make_identity("target@example.com")
    for _ in range(5):
        response = client.post(
            "/auth/login",
            json={"email": "target@example.com", "password": "bad-guess"},
        )
        assert response.status_code == 401

    response = client.post(
        "/auth/login",
        json={"email": "target@example.com", "password": DEFAULT_PASSWORD},
    )
    assert response.status_code == 429
    retry_after = int(response.headers["Retry-After"])
    assert 0 < retry_after <= 60
    body = response.get_json()["error"]
    assert body["details"]["retry_after"] == retry_after
    assert f"{retry_after} seconds" in body["message"]

    clock.advance(61)
    response = client.post(
        "/auth/login",
        json={"email": "target@example.com", "password": DEFAULT_PASSWORD},
    )
    assert response.status_code == 200


def test_session_endpoint_accepts_cookie(client, make_identity):
    make_identity("viewer@example.com", name="Vi")
    client.post(
        "/auth/login",
        json={"email": "viewer@example.com", "password": DEFAULT_PASSWORD},
    )

    response = client.get("/auth/session")
    assert response.status_code == 200
    user = response.get_json()["user"]
    assert user["email"] == "viewer@example.com"
    assert user["role"] == "VIEWER"


def test_session_endpoint_requires_session(client):
    response = client.get("/auth/session")
    assert response.status_code == 401
    response = client.get(
        "/auth/session", headers={"Authorization": "Bearer garbage"}
    )
    assert response.status_code == 401
    assert response.get_json()["error"]["message"] == "invalid session"


def test_logout_clears_cookie_and_audits(app, client, admin, auth_headers):
    response = client.post("/auth/logout", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.get_json() == {"logged_out": True}
    assert "cms_session=;" in response.headers["Set-Cookie"]
    assert _audit_actions(app) == [AuditAction.LOGOUT]


def test_logout_requires_session(client):
    assert client.post("/auth/logout").status_code == 401


def test_logout_succeeds_when_audit_store_is_down(client, admin, auth_headers):
    headers = auth_headers(admin)
    Identity.__table__.drop(bind=get_engine())

    response = client.post("/auth/logout", headers=headers)

    assert response.status_code == 200
    assert "cms_session=;" in response.headers["Set-Cookie"]


def test_login_with_password_over_bcrypt_limit_fails_cleanly(
    client, make_identity
):
    make_identity("viewer@example.com")
    response = client.post(
        "/auth/login",
        json={"email": "viewer@example.com", "password": "é" * 50},
    )
    assert response.status_code == 401
    assert response.get_json()["error"]["message"] == "invalid credentials"
