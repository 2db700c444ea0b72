"""Datetime field that always dumps an explicit UTC offset."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from marshmallow import fields


class UTCDateTime(fields.AwareDateTime):
    """``AwareDateTime`` that also treats naive values as UTC when dumping.

    SQLite hands timestamps back without tzinfo even for
    ``DateTime(timezone=True)`` columns.
    """

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("default_timezone", timezone.utc)
        super().__init__(**kwargs)

    def _serialize(
        self, value: Optional[datetime], attr: Any, obj: Any, **kwargs: Any
    ) -> Optional[str]:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return super()._serialize(value, attr, obj, **kwargs)
