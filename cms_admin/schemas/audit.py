"""Audit record schemas and query filter validation."""
from __future__ import annotations

from datetime import timezone
from typing import Any

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    post_load,
    validates_schema,
)
from marshmallow.validate import Length, Range

from cms_admin.models.audit import AuditAction
from cms_admin.schemas.datetimes import UTCDateTime
from cms_admin.models.repositories.audit import AuditFilters

LIST_MAX_LIMIT = 100
LIST_DEFAULT_LIMIT = 50
EXPORT_MAX_LIMIT = 10000


class AuditActorSchema(Schema):
    id = fields.Integer()
    email = fields.String()
    name = fields.String()


class AuditRecordSchema(Schema):
    id = fields.Integer(required=True)
    actor_id = fields.Integer(required=True)
    actor = fields.Nested(AuditActorSchema, allow_none=True)
    action = fields.Enum(AuditAction)
    entity_type = fields.String()
    entity_id = fields.String(allow_none=True)
    detail = fields.Dict(keys=fields.String(), values=fields.Raw())
    ip_address = fields.String(allow_none=True)
    user_agent = fields.String(allow_none=True)
    created_at = UTCDateTime()


class AuditFilterSchema(Schema):
    """Query-string filters for the audit listing.

    Dates are ISO-8601; naive values are read as UTC.
    """

    class Meta:
        unknown = EXCLUDE

    max_limit = LIST_MAX_LIMIT
    default_limit = LIST_DEFAULT_LIMIT

    actor_id = fields.Integer(data_key="actorId", validate=Range(min=1))
    action = fields.Enum(AuditAction)
    entity_type = fields.String(
        data_key="entityType", validate=Length(min=1, max=120)
    )
    start_date = fields.AwareDateTime(
        data_key="startDate", default_timezone=timezone.utc
    )
    end_date = fields.AwareDateTime(
        data_key="endDate", default_timezone=timezone.utc
    )
    limit = fields.Integer()
    offset = fields.Integer(load_default=0, validate=Range(min=0))

    @validates_schema
    def _check_ranges(self, data: dict[str, Any], **_: Any) -> None:
        limit = data.get("limit")
        if limit is not None and not 1 <= limit <= self.max_limit:
            raise ValidationError(
                f"must be between 1 and {self.max_limit}", "limit"
            )
        start, end = data.get("start_date"), data.get("end_date")
        if start is not None and end is not None and start > end:
            raise ValidationError(
                "must not be before startDate", "endDate"
            )

    @post_load
    def _to_filters(self, data: dict[str, Any], **_: Any) -> AuditFilters:
        for key in ("start_date", "end_date"):
            if data.get(key) is not None:
                data[key] = data[key].astimezone(timezone.utc)
        data.setdefault("limit", self.default_limit)
        return AuditFilters(**data)


class AuditExportFilterSchema(AuditFilterSchema):
    max_limit = EXPORT_MAX_LIMIT
    default_limit = EXPORT_MAX_LIMIT


__all__ = [
    "AuditExportFilterSchema",
    "AuditFilterSchema",
    "AuditRecordSchema",
]
