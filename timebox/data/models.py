"""
Timebox — Data Models.

One Sheet per calendar date per user, holding three panels: top priorities,
a brain-dump of notes, and a color-coded hourly schedule. Sheets live in the
remote document store under users/{userId}/timeboxes/{sheetId}; these models
are the validated in-process view of those documents.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date as date_cls
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

SHEET_ID_PREFIX = "sheet-"

# Opaque server-assigned timestamp. Always timezone-aware UTC.
Timestamp = datetime


def server_now() -> Timestamp:
    """Return a fresh timestamp for createdAt / updatedAt."""
    return datetime.now(timezone.utc)


class BlockColor(str, Enum):
    """Fixed palette for schedule blocks."""

    DEFAULT = "default"
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Priority(_WireModel):
    """A single entry in the Top Priorities panel."""

    id: str
    text: str
    completed: bool = False


class Note(_WireModel):
    """A brain-dump note."""

    id: str
    content: str


class TimeBlock(_WireModel):
    """A block in the hourly schedule.

    Times are zero-padded 24h "HH:MM" so that plain string comparison
    gives chronological order.
    """

    id: str
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    activity: str
    color: BlockColor = BlockColor.DEFAULT

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, v: str) -> str:
        if not _TIME_RE.match(v):
            raise ValueError(f"time must be zero-padded HH:MM, got {v!r}")
        return v


class Sheet(_WireModel):
    """A dated planning sheet.

    JSON example (as stored, id lives in the document path):
    {
        "title": "Friday, March 1",
        "date": "2024-03-01",
        "priorities": [{"id": "p-1709280000000", "text": "Ship it", "completed": false}],
        "notes": [],
        "schedule": [{"id": "tb-1709280000001", "startTime": "09:00",
                      "endTime": "10:00", "activity": "Standup", "color": "primary"}],
        "createdAt": "2024-03-01T07:00:00+00:00",
        "updatedAt": "2024-03-01T07:00:00+00:00"
    }
    """

    id: str
    title: str
    date: str          # ISO format YYYY-MM-DD, immutable
    priorities: list[Priority] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    schedule: list[TimeBlock] = Field(default_factory=list)
    created_at: Timestamp = Field(default_factory=server_now, alias="createdAt")
    updated_at: Timestamp = Field(default_factory=server_now, alias="updatedAt")

    @field_validator("date")
    @classmethod
    def check_date(cls, v: str) -> str:
        if not _DATE_RE.match(v):
            raise ValueError(f"date must be YYYY-MM-DD, got {v!r}")
        try:
            date_cls.fromisoformat(v)
        except ValueError:
            raise ValueError(f"date is not a calendar date: {v!r}") from None
        return v

    @staticmethod
    def sheet_id_for(date: str) -> str:
        """Deterministic id: at most one sheet per date per user."""
        return f"{SHEET_ID_PREFIX}{date}"

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored shape (wire aliases, no id)."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls, sheet_id: str, document: dict[str, Any]) -> Sheet:
        return cls.model_validate({**document, "id": sheet_id})

    def merged(self, partial: dict[str, Any], updated_at: Timestamp) -> Sheet:
        """Return a copy with ``partial`` applied and updatedAt refreshed.

        Partial updates are merges: fields not named are kept. The id and
        date are fixed for the life of the sheet.
        """
        fields = normalize_partial(partial)
        for frozen in ("id", "date"):
            if frozen in fields and fields[frozen] != getattr(self, frozen):
                raise ValueError(f"Sheet {frozen} cannot be changed")
        data = self.model_dump()
        data.update(fields)
        data["updated_at"] = updated_at
        return Sheet.model_validate(data)


def newest_first(sheets: list[Sheet]) -> list[Sheet]:
    """Sheet list display order: date descending."""
    return sorted(sheets, key=lambda sheet: sheet.date, reverse=True)


_FIELD_ALIASES = {
    name: info.alias
    for name, info in Sheet.model_fields.items()
    if info.alias is not None
}
_ALIAS_FIELDS = {alias: name for name, alias in _FIELD_ALIASES.items()}
_FIELD_ADAPTERS = {
    name: TypeAdapter(info.annotation) for name, info in Sheet.model_fields.items()
}


def normalize_partial(partial: dict[str, Any]) -> dict[str, Any]:
    """Map wire aliases (createdAt) to field names (created_at), rejecting unknown keys."""
    fields: dict[str, Any] = {}
    for key, value in partial.items():
        name = _ALIAS_FIELDS.get(key, key)
        if name not in Sheet.model_fields:
            raise ValueError(f"Unknown sheet field: {key!r}")
        fields[name] = value
    return fields


def encode_partial(partial: dict[str, Any]) -> dict[str, Any]:
    """Validate a partial update and encode it in the stored (wire) shape.

    {"schedule": [TimeBlock(...)], "updated_at": dt}
        -> {"schedule": [{"startTime": ...}], "updatedAt": "2024-..."}
    """
    document: dict[str, Any] = {}
    for name, value in normalize_partial(partial).items():
        adapter = _FIELD_ADAPTERS[name]
        document[_FIELD_ALIASES.get(name, name)] = adapter.dump_python(
            adapter.validate_python(value), mode="json", by_alias=True,
        )
    return document


class NotificationSettings(_WireModel):
    email: bool = True
    reminders: bool = True
    weekly_report: bool = Field(default=False, alias="weeklyReport")


class PreferenceSettings(_WireModel):
    start_time: str = Field(default="08:00", alias="startTime")
    end_time: str = Field(default="18:00", alias="endTime")
    time_interval: str = Field(default="30", alias="timeInterval")
    dark_mode: bool = Field(default=False, alias="darkMode")


class UserSettings(_WireModel):
    """Per-user preferences stored on the users/{userId} document."""

    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    preferences: PreferenceSettings = Field(default_factory=PreferenceSettings)

    @classmethod
    def from_document(cls, document: dict[str, Any] | None) -> UserSettings:
        if not document:
            return cls()
        return cls.model_validate(document.get("settings") or {})


@dataclass
class BulkDeleteResult:
    """Per-id outcome of a bulk delete. Successes are never rolled back."""

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed
