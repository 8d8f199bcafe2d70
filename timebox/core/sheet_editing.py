"""
Timebox — Sheet panel editing.

Pure helpers behind the three sheet panels (Top Priorities, Brain Dump,
Schedule). Each returns a new list; the caller hands it to
SheetRepository.update() as e.g. {"priorities": new_list}. Nothing here
touches the cache or the store.
"""

from __future__ import annotations

import time
from datetime import date as date_cls
from typing import Any

from timebox.data.models import BlockColor, Note, Priority, TimeBlock

UNTITLED = "Untitled Timebox"

_last_stamp = 0


def _next_stamp() -> int:
    """Millisecond stamp for new item ids, strictly increasing within the process."""
    global _last_stamp
    now = int(time.time() * 1000)
    _last_stamp = max(now, _last_stamp + 1)
    return _last_stamp


def format_date_title(date: str) -> str:
    """Default sheet title: long weekday/month form of the calendar date.

    "2024-03-01" -> "Friday, March 1". The date is parsed as a plain local
    calendar date, so there is no timezone shift to the previous day.
    """
    try:
        d = date_cls.fromisoformat(date)
    except (TypeError, ValueError):
        return UNTITLED
    return f"{d:%A}, {d:%B} {d.day}"


# ---------------------------------------------------------------------------
# Top priorities
# ---------------------------------------------------------------------------


def add_priority(priorities: list[Priority], text: str) -> list[Priority]:
    text = text.strip()
    if not text:
        raise ValueError("Priority text cannot be empty")
    return [*priorities, Priority(id=f"p-{_next_stamp()}", text=text)]


def toggle_priority(priorities: list[Priority], priority_id: str) -> list[Priority]:
    return [
        p.model_copy(update={"completed": not p.completed}) if p.id == priority_id else p
        for p in priorities
    ]


def rename_priority(
    priorities: list[Priority], priority_id: str, text: str,
) -> list[Priority]:
    return [
        p.model_copy(update={"text": text}) if p.id == priority_id else p
        for p in priorities
    ]


def remove_priority(priorities: list[Priority], priority_id: str) -> list[Priority]:
    return [p for p in priorities if p.id != priority_id]


# ---------------------------------------------------------------------------
# Brain dump
# ---------------------------------------------------------------------------


def add_note(notes: list[Note], content: str) -> list[Note]:
    content = content.strip()
    if not content:
        raise ValueError("Note content cannot be empty")
    return [*notes, Note(id=f"n-{_next_stamp()}", content=content)]


def update_note(notes: list[Note], note_id: str, content: str) -> list[Note]:
    return [
        n.model_copy(update={"content": content}) if n.id == note_id else n
        for n in notes
    ]


def remove_note(notes: list[Note], note_id: str) -> list[Note]:
    return [n for n in notes if n.id != note_id]


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------


def add_time_block(
    schedule: list[TimeBlock],
    start_time: str,
    end_time: str,
    activity: str,
    color: BlockColor | str = BlockColor.DEFAULT,
) -> list[TimeBlock]:
    """Append a block. Start, end and activity are all required."""
    if not start_time or not end_time or not activity:
        raise ValueError("Time block needs start time, end time and activity")
    block = TimeBlock(
        id=f"tb-{_next_stamp()}",
        start_time=start_time,
        end_time=end_time,
        activity=activity,
        color=BlockColor(color),
    )
    return [*schedule, block]


def update_time_block(
    schedule: list[TimeBlock], block_id: str, **fields: Any,
) -> list[TimeBlock]:
    """Replace fields of one block, re-validating times and color."""
    if "id" in fields:
        raise ValueError("Time block id cannot be changed")
    return [
        TimeBlock.model_validate({**b.model_dump(), **fields}) if b.id == block_id else b
        for b in schedule
    ]


def recolor_time_block(
    schedule: list[TimeBlock], block_id: str, color: BlockColor | str,
) -> list[TimeBlock]:
    return update_time_block(schedule, block_id, color=BlockColor(color))


def remove_time_block(schedule: list[TimeBlock], block_id: str) -> list[TimeBlock]:
    return [b for b in schedule if b.id != block_id]


def sort_schedule(schedule: list[TimeBlock]) -> list[TimeBlock]:
    """Display order: by start time. Zero-padded HH:MM sorts lexicographically."""
    return sorted(schedule, key=lambda block: block.start_time)
