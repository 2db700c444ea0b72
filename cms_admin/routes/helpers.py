"""Shared route utilities."""

from __future__ import annotations

from typing import Any, Mapping

from flask import current_app, jsonify
from marshmallow import Schema, ValidationError

from cms_admin.errors import AdminError, RateLimitExceeded, ValidationFailed


def error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
):
    """Return a standardized JSON error response."""

    payload = {
        "error": {
            "code": status_code,
            "message": message,
            "details": details or {},
        }
    }
    return jsonify(payload), status_code


def admin_error_response(error: AdminError):
    """Convert an ``AdminError`` into an API response.

    Server-side failures are logged with their traceback; client errors are
    returned as-is.
    """

    if error.status_code >= 500:
        current_app.logger.exception("admin error: %s", error)
    body, status = error_response(
        error.status_code, error.message, error.details
    )
    if isinstance(error, RateLimitExceeded):
        body.headers["Retry-After"] = str(error.retry_after)
    return body, status


def load_or_fail(schema: Schema, data: Mapping[str, Any] | None) -> Any:
    """Validate ``data`` with ``schema`` raising ``ValidationFailed``."""

    if data is None:
        raise ValidationFailed("missing request body")
    try:
        return schema.load(data)
    except ValidationError as exc:
        raise ValidationFailed(details=_messages(exc)) from exc


def _messages(exc: ValidationError) -> dict[str, Any]:
    if isinstance(exc.messages, dict):
        return exc.messages
    return {"_schema": exc.messages}
