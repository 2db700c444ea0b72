"""Identity-related Marshmallow schemas."""
from __future__ import annotations

from typing import Any

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    post_load,
    validates_schema,
)
from marshmallow.validate import Length

from cms_admin.auth.passwords import MAX_PASSWORD_BYTES, password_too_long
from cms_admin.models.identity import Role
from cms_admin.schemas.datetimes import UTCDateTime


def _fits_bcrypt(value: str) -> None:
    if password_too_long(value):
        raise ValidationError(
            f"Must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded."
        )


PASSWORD_RULES = [Length(min=8, max=72), _fits_bcrypt]


class IdentitySchema(Schema):
    """Serialize ``Identity`` rows; the password hash is never dumped."""

    id = fields.Integer(required=True)
    email = fields.Email(required=True)
    name = fields.String(required=True)
    role = fields.Enum(Role)
    is_active = fields.Boolean()
    last_login_at = UTCDateTime(allow_none=True)
    created_at = UTCDateTime()
    updated_at = UTCDateTime()


class PrincipalSchema(Schema):
    id = fields.Integer(required=True)
    email = fields.String(allow_none=True)
    name = fields.String(allow_none=True)
    role = fields.Enum(Role)


class LoginSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.String(required=True, validate=Length(min=1, max=255))
    password = fields.String(
        required=True, load_only=True, validate=Length(min=1, max=100)
    )


class IdentityCreateSchema(Schema):
    """Schema validating new staff accounts."""

    email = fields.Email(required=True, validate=Length(min=1, max=255))
    password = fields.String(
        required=True, load_only=True, validate=PASSWORD_RULES
    )
    name = fields.String(required=True, validate=Length(min=1, max=100))
    role = fields.Enum(Role, load_default=Role.VIEWER)
    is_active = fields.Boolean(load_default=True)

    @post_load
    def _normalize(self, data: dict[str, Any], **_: Any) -> dict[str, Any]:
        data["email"] = data["email"].strip().lower()
        data["name"] = data["name"].strip()
        return data


class IdentityUpdateSchema(Schema):
    """Partial update of a staff account; at least one field is required."""

    email = fields.Email(validate=Length(max=255))
    password = fields.String(load_only=True, validate=PASSWORD_RULES)
    name = fields.String(validate=Length(min=1, max=100))
    role = fields.Enum(Role)
    is_active = fields.Boolean()

    @validates_schema
    def _ensure_payload(self, data: dict[str, Any], **_: Any) -> None:
        if not data:
            raise ValidationError("no fields provided")

    @post_load
    def _normalize(self, data: dict[str, Any], **_: Any) -> dict[str, Any]:
        if "email" in data:
            data["email"] = data["email"].strip().lower()
        return data


__all__ = [
    "IdentityCreateSchema",
    "IdentitySchema",
    "IdentityUpdateSchema",
    "LoginSchema",
    "PrincipalSchema",
]
