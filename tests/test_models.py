"""Tests for timebox.data.models — wire shapes and partial updates."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from timebox.data.models import (
    BlockColor,
    BulkDeleteResult,
    Priority,
    Sheet,
    TimeBlock,
    UserSettings,
    encode_partial,
    newest_first,
    normalize_partial,
)

T0 = datetime(2024, 3, 1, 7, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


def _sheet(**overrides) -> Sheet:
    data = dict(
        id="sheet-2024-03-01", title="Friday, March 1", date="2024-03-01",
        created_at=T0, updated_at=T0,
    )
    data.update(overrides)
    return Sheet(**data)


class TestSheet:
    def test_id_is_derived_from_date(self):
        assert Sheet.sheet_id_for("2024-03-01") == "sheet-2024-03-01"

    def test_defaults(self):
        sheet = Sheet(id="sheet-2024-03-01", title="t", date="2024-03-01")
        assert sheet.priorities == []
        assert sheet.notes == []
        assert sheet.schedule == []
        assert sheet.created_at.tzinfo is not None

    @pytest.mark.parametrize("bad", ["03/01/2024", "2024-02-30", "2024-13-45", "2023-02-29"])
    def test_bad_date_rejected(self, bad):
        with pytest.raises(ValidationError):
            _sheet(date=bad)

    def test_leap_day_accepted(self):
        assert _sheet(date="2024-02-29").date == "2024-02-29"

    def test_to_document_uses_wire_names(self):
        block = TimeBlock(id="tb-1", start_time="09:00", end_time="10:00", activity="Standup")
        doc = _sheet(schedule=[block]).to_document()

        assert "id" not in doc
        assert doc["createdAt"].startswith("2024-03-01T07:00:00")
        assert doc["schedule"][0] == {
            "id": "tb-1", "startTime": "09:00", "endTime": "10:00",
            "activity": "Standup", "color": "default",
        }

    def test_from_document(self):
        doc = _sheet(priorities=[Priority(id="p-1", text="Ship")]).to_document()

        sheet = Sheet.from_document("sheet-2024-03-01", doc)

        assert sheet.id == "sheet-2024-03-01"
        assert sheet.priorities[0].text == "Ship"
        assert sheet.created_at == T0

    def test_merged_keeps_unnamed_fields(self):
        sheet = _sheet(notes=[{"id": "n-1", "content": "idea"}])

        updated = sheet.merged({"title": "Plan"}, T1)

        assert updated.title == "Plan"
        assert updated.notes == sheet.notes
        assert updated.updated_at == T1
        assert updated.created_at == T0
        assert sheet.title == "Friday, March 1"

    def test_merged_accepts_wire_aliases(self):
        updated = _sheet().merged({"createdAt": T1}, T1)
        assert updated.created_at == T1

    def test_date_is_immutable(self):
        with pytest.raises(ValueError, match="date cannot be changed"):
            _sheet().merged({"date": "2024-03-02"}, T1)


class TestPartials:
    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="Unknown sheet field"):
            normalize_partial({"colour": "red"})

    def test_aliases_normalized(self):
        assert normalize_partial({"updatedAt": T1}) == {"updated_at": T1}

    def test_encode_partial_wire_shape(self):
        block = TimeBlock(id="tb-1", start_time="08:00", end_time="09:00",
                          activity="Gym", color=BlockColor.WARNING)

        doc = encode_partial({"schedule": [block], "updated_at": T1})

        assert doc["schedule"][0]["startTime"] == "08:00"
        assert doc["schedule"][0]["color"] == "warning"
        assert doc["updatedAt"].startswith("2024-03-01T09:30:00")

    def test_encode_partial_validates(self):
        with pytest.raises(ValidationError):
            encode_partial({"schedule": [{"id": "tb-1", "startTime": "25:00",
                                          "endTime": "26:00", "activity": "x"}]})


class TestHelpers:
    def test_newest_first(self):
        sheets = [_sheet(id=f"sheet-{d}", date=d) for d in ("2024-01-01", "2024-03-01", "2024-02-01")]
        assert [s.date for s in newest_first(sheets)] == ["2024-03-01", "2024-02-01", "2024-01-01"]

    def test_user_settings_defaults(self):
        user_settings = UserSettings.from_document(None)
        assert user_settings.notifications.email is True
        assert user_settings.preferences.start_time == "08:00"

    def test_user_settings_from_document(self):
        doc = {"email": "a@b.c", "settings": {"preferences": {"darkMode": True, "timeInterval": "15"}}}

        user_settings = UserSettings.from_document(doc)

        assert user_settings.preferences.dark_mode is True
        assert user_settings.preferences.time_interval == "15"
        assert user_settings.notifications.weekly_report is False

    def test_bulk_delete_result(self):
        result = BulkDeleteResult(succeeded=["a"])
        assert result.ok
        result.failed["b"] = RuntimeError("x")
        assert not result.ok
