"""Audit trail browsing and CSV export (ADMIN only)."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone

from flask import Blueprint, Response, current_app, jsonify, request

from cms_admin.auth.guard import authorize
from cms_admin.models.audit import AuditAction
from cms_admin.models.identity import Role
from cms_admin.routes.helpers import error_response, load_or_fail
from cms_admin.schemas.audit import (
    AuditExportFilterSchema,
    AuditFilterSchema,
    AuditRecordSchema,
)
from cms_admin.services.audit import AuditLogger

audit_bp = Blueprint("audit", __name__, url_prefix="/admin/audit-log")

filter_schema = AuditFilterSchema()
export_filter_schema = AuditExportFilterSchema()
record_schema = AuditRecordSchema()
records_schema = AuditRecordSchema(many=True)

ADMIN_ONLY = {Role.ADMIN}


def _audit() -> AuditLogger:
    return current_app.extensions["audit_logger"]


@audit_bp.get("")
def list_records():
    """Return a page of audit records matching the query filters."""

    authorize(ADMIN_ONLY)
    filters = load_or_fail(filter_schema, request.args.to_dict())
    page = _audit().query(filters)
    return jsonify(
        {
            "logs": records_schema.dump(page.items),
            "total": page.total,
            "limit": filters.limit,
            "offset": filters.offset,
            "has_more": page.has_more,
        }
    )


@audit_bp.get("/<int:record_id>")
def get_record(record_id: int):
    authorize(ADMIN_ONLY)
    record = _audit().get(record_id)
    if record is None:
        return error_response(404, "audit record not found")
    return jsonify({"log": record_schema.dump(record)})


@audit_bp.get("/export")
def export_records():
    """Download matching audit records as a CSV attachment."""

    principal = authorize(ADMIN_ONLY)
    filters = load_or_fail(export_filter_schema, request.args.to_dict())
    audit = _audit()
    content = audit.export_audit_log(filters)

    applied = {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in asdict(filters).items()
        if value is not None
    }
    audit.log_request_action(
        principal.id, AuditAction.EXPORT, "AuditLog", None, applied
    )

    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return Response(
        content,
        mimetype="text/csv",
        headers={
            "Content-Disposition": (
                f'attachment; filename="audit-log-{stamp}.csv"'
            )
        },
    )
