"""
Timebox — View-model adapters.

Per-page state holders the UI binds to. Each one is bound to a single
user (or to none, in which case it stays idle and empty) and exposes
data / is_loading / error plus the page's actions. Listeners registered
with on_change() are called after every state change so the page can
re-render.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable

from timebox.core import sheet_editing
from timebox.core.errors import NotAuthenticated, ReadFailure, WriteFailure
from timebox.data.models import BlockColor, Sheet, server_now

if TYPE_CHECKING:
    from timebox.core.sheet_repository import SheetRepository
    from timebox.core.subscriptions import Unsubscribe

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class _ViewModel:
    def __init__(self) -> None:
        self.is_loading = False
        self.error: str | None = None
        self._listeners: list[Listener] = []

    def on_change(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as exc:
                logger.error("View-model listener failed: %s", exc)


class SheetListViewModel(_ViewModel):
    """State behind the sidebar / sheet list page."""

    def __init__(self, repository: SheetRepository, user_id: str | None) -> None:
        super().__init__()
        self._repo = repository
        self.user_id = user_id
        self.data: list[Sheet] = []
        self._unsubscribe: Unsubscribe | None = None

    async def start(self) -> None:
        """Preload caches and follow the user's sheet list live."""
        if not self.user_id:
            self.data = []
            self.is_loading = False
            self._changed()
            return

        await self._repo.preload(self.user_id)

        self.is_loading = True
        self._changed()
        try:
            self._unsubscribe = await self._repo.subscriptions.subscribe(
                self.user_id, self._on_sheets,
            )
        except ReadFailure as exc:
            logger.error("Sheet list subscription failed: %s", exc)
            self.error = "Failed to load timeboxes"
            self.is_loading = False
            self._changed()

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            await self._unsubscribe()
            self._unsubscribe = None

    def _on_sheets(self, sheets: list[Sheet]) -> None:
        self.data = sheets
        self.is_loading = False
        self.error = None
        self._changed()

    def _require_user(self) -> str:
        if not self.user_id:
            raise NotAuthenticated("User not authenticated")
        return self.user_id

    async def create(self, date: str, title: str | None = None) -> Sheet:
        user_id = self._require_user()
        try:
            return await self._repo.create(user_id, date, title)
        except WriteFailure:
            self.error = "Failed to create timebox"
            self._changed()
            raise

    async def delete(self, sheet_id: str) -> None:
        """Remove from the visible list immediately, then delete remotely."""
        user_id = self._require_user()
        before = self.data
        self.data = [sheet for sheet in before if sheet.id != sheet_id]
        self._changed()
        try:
            await self._repo.delete(user_id, sheet_id)
        except WriteFailure:
            self.data = before
            self.error = "Failed to delete timebox"
            self._changed()
            raise

    async def check_date_exists(self, date: str) -> bool:
        if not self.user_id:
            return False
        return await self._repo.exists_for_date(self.user_id, date)


class SheetViewModel(_ViewModel):
    """State behind a single sheet page and its three panels."""

    def __init__(
        self,
        repository: SheetRepository,
        user_id: str | None,
        sheet_id: str | None,
    ) -> None:
        super().__init__()
        self._repo = repository
        self.user_id = user_id
        self.sheet_id = sheet_id
        self.data: Sheet | None = None

    @property
    def _bound(self) -> bool:
        return bool(self.user_id and self.sheet_id)

    async def load(self) -> None:
        if not self._bound:
            self.data = None
            self.is_loading = False
            self._changed()
            return

        self.is_loading = True
        self._changed()
        try:
            self.data = await self._repo.get(self.user_id, self.sheet_id)
            self.error = None
        except ReadFailure as exc:
            logger.error("Failed to load sheet %s: %s", self.sheet_id, exc)
            self.error = "Failed to load timebox"
            self.data = None
        finally:
            self.is_loading = False
            self._changed()

    def mutate(self, partial: dict[str, Any]) -> asyncio.Future | None:
        """Apply an edit locally and hand it to the repository.

        Safe to call in rapid succession: the repository coalesces writes.
        Returns the write future (None when unbound); a failed write also
        sets ``error``.
        """
        if not self._bound:
            return None
        future = self._repo.update(self.user_id, self.sheet_id, partial)
        future.add_done_callback(self._on_write_done)
        if self.data is not None:
            self.data = self.data.merged(partial, server_now())
        self._changed()
        return future

    def _on_write_done(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self.error = "Failed to update timebox"
            self._changed()

    # Panel actions -------------------------------------------------------

    def rename(self, title: str) -> asyncio.Future | None:
        return self.mutate({"title": title})

    def add_priority(self, text: str) -> asyncio.Future | None:
        return self._edit("priorities", sheet_editing.add_priority, text)

    def toggle_priority(self, priority_id: str) -> asyncio.Future | None:
        return self._edit("priorities", sheet_editing.toggle_priority, priority_id)

    def remove_priority(self, priority_id: str) -> asyncio.Future | None:
        return self._edit("priorities", sheet_editing.remove_priority, priority_id)

    def add_note(self, content: str) -> asyncio.Future | None:
        return self._edit("notes", sheet_editing.add_note, content)

    def remove_note(self, note_id: str) -> asyncio.Future | None:
        return self._edit("notes", sheet_editing.remove_note, note_id)

    def add_time_block(
        self,
        start_time: str,
        end_time: str,
        activity: str,
        color: BlockColor | str = BlockColor.DEFAULT,
    ) -> asyncio.Future | None:
        return self._edit(
            "schedule", sheet_editing.add_time_block, start_time, end_time, activity, color,
        )

    def remove_time_block(self, block_id: str) -> asyncio.Future | None:
        return self._edit("schedule", sheet_editing.remove_time_block, block_id)

    def _edit(self, panel: str, edit: Callable[..., list], *args: Any) -> asyncio.Future | None:
        if self.data is None:
            return None
        return self.mutate({panel: edit(getattr(self.data, panel), *args)})

    @property
    def schedule(self) -> list:
        """Schedule blocks in display order."""
        if self.data is None:
            return []
        return sheet_editing.sort_schedule(self.data.schedule)
