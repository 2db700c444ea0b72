"""HTTP tests for staff account administration."""

import pytest

from cms_admin.models.audit import AuditAction
from cms_admin.models.identity import Role
from cms_admin.models.repositories import AuditFilters, IdentityRepository
from cms_admin.services.transactions import transactional_session


def _audit_page(app, **filters):
    return app.extensions["audit_logger"].query(AuditFilters(**filters))


@pytest.fixture()
def admin_headers(admin, auth_headers):
    return auth_headers(admin)


def test_admin_creates_user_with_one_audit_record(
    app, client, admin, admin_headers
):
    response = client.post(
        "/admin/users",
        json={
            "email": "New.Editor@Example.com",
            "password": "long-enough-password",
            "name": "New Editor",
            "role": "EDITOR",
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    user = response.get_json()["user"]
    assert user["email"] == "new.editor@example.com"
    assert user["role"] == "EDITOR"
    assert user["is_active"] is True

    page = _audit_page(app)
    assert page.total == 1
    record = page.items[0]
    assert record.action is AuditAction.CREATE
    assert record.actor_id == admin.id
    assert record.entity_type == "Identity"
    assert record.entity_id == str(user["id"])
    assert record.detail["email"] == "new.editor@example.com"
    assert "password" not in str(record.detail)


def test_create_rejects_duplicate_email(app, client, admin, admin_headers):
    response = client.post(
        "/admin/users",
        json={
            "email": "ADMIN@example.com",
            "password": "long-enough-password",
            "name": "Twin",
        },
        headers=admin_headers,
    )
    assert response.status_code == 409
    assert _audit_page(app).total == 0


def test_create_validates_payload(client, admin_headers):
    response = client.post(
        "/admin/users",
        json={"email": "not-an-email", "password": "short", "name": ""},
        headers=admin_headers,
    )
    assert response.status_code == 400
    details = response.get_json()["error"]["details"]
    assert {"email", "password", "name"} <= set(details)


@pytest.mark.parametrize("role", [Role.EDITOR, Role.VIEWER])
def test_non_admins_are_forbidden(client, make_identity, auth_headers, role):
    identity = make_identity(f"{role.value.lower()}@example.com", role)
    headers = auth_headers(identity)

    assert client.get("/admin/users", headers=headers).status_code == 403
    response = client.post(
        "/admin/users",
        json={
            "email": "x@example.com",
            "password": "long-enough-password",
            "name": "X",
        },
        headers=headers,
    )
    assert response.status_code == 403


def test_list_and_get_users(client, admin, admin_headers, make_identity):
    viewer = make_identity("viewer@example.com")

    response = client.get("/admin/users", headers=admin_headers)
    assert response.status_code == 200
    emails = {user["email"] for user in response.get_json()["users"]}
    assert emails == {"admin@example.com", "viewer@example.com"}

    response = client.get(f"/admin/users/{viewer.id}", headers=admin_headers)
    assert response.get_json()["user"]["email"] == "viewer@example.com"

    response = client.get("/admin/users/9999", headers=admin_headers)
    assert response.status_code == 404


def test_update_records_before_and_after(
    app, client, admin_headers, make_identity
):
    viewer = make_identity("viewer@example.com", name="Old Name")

    response = client.put(
        f"/admin/users/{viewer.id}",
        json={"name": "New Name", "role": "EDITOR", "password": "new-password-1"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.get_json()["user"]["role"] == "EDITOR"

    page = _audit_page(app, action=AuditAction.UPDATE)
    assert page.total == 1
    detail = page.items[0].detail
    assert detail["before"]["name"] == "Old Name"
    assert detail["after"]["name"] == "New Name"
    assert detail["after"]["role"] == "EDITOR"
    assert detail["password_changed"] is True

    hasher = app.extensions["password_hasher"]
    with transactional_session(name="check") as session:
        stored = IdentityRepository(session).get(viewer.id)
        assert hasher.verify("new-password-1", stored.password_hash)


def test_update_rejects_empty_payload_and_taken_email(
    client, admin_headers, make_identity
):
    viewer = make_identity("viewer@example.com")
    make_identity("taken@example.com")

    response = client.put(
        f"/admin/users/{viewer.id}", json={}, headers=admin_headers
    )
    assert response.status_code == 400

    response = client.put(
        f"/admin/users/{viewer.id}",
        json={"email": "TAKEN@example.com"},
        headers=admin_headers,
    )
    assert response.status_code == 409


def test_admin_cannot_demote_or_deactivate_self(
    app, client, admin, admin_headers
):
    response = client.put(
        f"/admin/users/{admin.id}",
        json={"role": "VIEWER"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert (
        response.get_json()["error"]["message"]
        == "You cannot change your own role"
    )

    response = client.put(
        f"/admin/users/{admin.id}",
        json={"is_active": False},
        headers=admin_headers,
    )
    assert response.status_code == 400

    response = client.delete(
        f"/admin/users/{admin.id}", headers=admin_headers
    )
    assert response.status_code == 400
    assert _audit_page(app).total == 0


def test_delete_deactivates_and_audits(
    app, client, admin_headers, make_identity
):
    viewer = make_identity("viewer@example.com")

    response = client.delete(
        f"/admin/users/{viewer.id}", headers=admin_headers
    )

    assert response.status_code == 200
    assert response.get_json()["user"]["is_active"] is False
    with transactional_session(name="check") as session:
        assert IdentityRepository(session).get(viewer.id) is not None

    page = _audit_page(app, action=AuditAction.DELETE)
    assert page.total == 1
    assert page.items[0].detail["after"]["is_active"] is False
    assert _audit_page(app).total == 1

    missing = client.delete("/admin/users/9999", headers=admin_headers)
    assert missing.status_code == 404


def test_multibyte_passwords_are_checked_by_byte_length(
    client, admin_headers, make_identity
):
    response = client.post(
        "/admin/users",
        json={"email": "long@example.com", "password": "é" * 40, "name": "L"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert "password" in response.get_json()["error"]["details"]

    response = client.post(
        "/admin/users",
        json={"email": "fits@example.com", "password": "é" * 36, "name": "F"},
        headers=admin_headers,
    )
    assert response.status_code == 201

    viewer = make_identity("viewer@example.com")
    response = client.put(
        f"/admin/users/{viewer.id}",
        json={"password": "ü" * 37},
        headers=admin_headers,
    )
    assert response.status_code == 400
