"""Tests for timebox.core.sheet_editing — panel edit helpers."""

import pytest
from pydantic import ValidationError

from timebox.core.sheet_editing import (
    UNTITLED,
    add_note,
    add_priority,
    add_time_block,
    format_date_title,
    recolor_time_block,
    remove_note,
    remove_priority,
    remove_time_block,
    rename_priority,
    sort_schedule,
    toggle_priority,
    update_note,
    update_time_block,
)
from timebox.data.models import BlockColor


class TestFormatDateTitle:
    def test_long_form(self):
        assert format_date_title("2024-03-01") == "Friday, March 1"

    def test_no_timezone_shift(self):
        assert format_date_title("2024-01-01") == "Monday, January 1"

    @pytest.mark.parametrize("bad", ["", "tomorrow", "2024-13-40"])
    def test_unparsable(self, bad):
        assert format_date_title(bad) == UNTITLED


class TestPriorities:
    def test_add_trims_and_appends(self):
        items = add_priority([], "  First ")
        items = add_priority(items, "Second")

        assert [p.text for p in items] == ["First", "Second"]
        assert all(p.id.startswith("p-") for p in items)
        assert items[0].id != items[1].id
        assert items[0].completed is False

    def test_add_empty_rejected(self):
        with pytest.raises(ValueError):
            add_priority([], "   ")

    def test_toggle_rename_remove(self):
        items = add_priority(add_priority([], "a"), "b")
        target = items[0].id

        items = toggle_priority(items, target)
        assert items[0].completed is True
        assert items[1].completed is False

        items = rename_priority(items, target, "A")
        assert items[0].text == "A"

        items = remove_priority(items, target)
        assert [p.text for p in items] == ["b"]

    def test_input_list_not_mutated(self):
        before = add_priority([], "a")
        toggle_priority(before, before[0].id)
        assert before[0].completed is False


class TestNotes:
    def test_add_update_remove(self):
        notes = add_note([], " idea ")
        assert notes[0].content == "idea"
        assert notes[0].id.startswith("n-")

        notes = update_note(notes, notes[0].id, "better idea")
        assert notes[0].content == "better idea"

        assert remove_note(notes, notes[0].id) == []

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            add_note([], "")


class TestSchedule:
    def test_display_order_by_start_time(self):
        blocks = add_time_block([], "09:00", "10:00", "Standup")
        blocks = add_time_block(blocks, "08:00", "09:00", "Gym")
        blocks = add_time_block(blocks, "13:30", "14:00", "Lunch")

        assert [b.start_time for b in blocks] == ["09:00", "08:00", "13:30"]
        assert [b.start_time for b in sort_schedule(blocks)] == ["08:00", "09:00", "13:30"]

    def test_requires_all_fields(self):
        with pytest.raises(ValueError):
            add_time_block([], "09:00", "", "Standup")
        with pytest.raises(ValueError):
            add_time_block([], "09:00", "10:00", "")

    def test_rejects_unpadded_time(self):
        with pytest.raises(ValidationError):
            add_time_block([], "9:00", "10:00", "Standup")

    def test_update_and_recolor(self):
        blocks = add_time_block([], "09:00", "10:00", "Standup")
        block_id = blocks[0].id

        blocks = update_time_block(blocks, block_id, activity="Retro", end_time="10:30")
        blocks = recolor_time_block(blocks, block_id, "danger")

        assert blocks[0].activity == "Retro"
        assert blocks[0].end_time == "10:30"
        assert blocks[0].color is BlockColor.DANGER
        assert blocks[0].id == block_id

    def test_unknown_color_rejected(self):
        with pytest.raises(ValueError):
            add_time_block([], "09:00", "10:00", "Standup", color="purple")

    def test_id_cannot_change(self):
        blocks = add_time_block([], "09:00", "10:00", "Standup")
        with pytest.raises(ValueError):
            update_time_block(blocks, blocks[0].id, id="other")

    def test_remove(self):
        blocks = add_time_block([], "09:00", "10:00", "Standup")
        assert remove_time_block(blocks, blocks[0].id) == []
