"""
Timebox — Sheet Repository.

The façade the UI talks to. Combines the Cache Layer, the Write Coalescer
and the remote document store into create / get / update / delete / list /
exists operations for one user's sheets.

Reads are cache-first. Mutations are optimistic: the cache changes before
the remote write is even issued, and a failed write invalidates what it
touched so the next read goes back to the authoritative remote copy.

Every operation takes user_id explicitly. There is no ambient current user.

Known race: create() does not check date uniqueness. Callers check with
exists_for_date() first; two concurrent creates for the same date produce
the same deterministic id and the second set_document silently replaces
the first. Closing it needs a create-if-absent primitive on the store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable

from timebox.core.errors import (
    PreloadFailure,
    ReadFailure,
    WriteFailure,
    require_user,
)
from timebox.core.sheet_editing import format_date_title
from timebox.core.subscriptions import SheetListCallback, SubscriptionManager
from timebox.core.write_coalescer import WriteCoalescer
from timebox.data.cache import TTLCache, list_key, settings_key, sheet_key
from timebox.data.models import (
    SHEET_ID_PREFIX,
    BulkDeleteResult,
    Sheet,
    Timestamp,
    UserSettings,
    encode_partial,
    newest_first,
    normalize_partial,
    server_now,
)
from timebox.ports.document_store_port import (
    sheet_path,
    sheets_collection_path,
    user_path,
)

if TYPE_CHECKING:
    from timebox.ports.document_store_port import DocumentStorePort

logger = logging.getLogger(__name__)


class SheetRepository:
    """Cached, optimistic access to a user's planning sheets."""

    def __init__(
        self,
        store: DocumentStorePort,
        cache: TTLCache | None = None,
        coalescer: WriteCoalescer | None = None,
        clock: Callable[[], Timestamp] = server_now,
    ) -> None:
        self._store = store
        self.cache = cache if cache is not None else TTLCache()
        self._coalescer = coalescer if coalescer is not None else WriteCoalescer()
        self._now = clock
        self.subscriptions = SubscriptionManager(store, self.cache)
        # Fields edited since the last flush, per (user_id, sheet_id)
        self._pending_fields: dict[tuple[str, str], dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(self, user_id: str, date: str, title: str | None = None) -> Sheet:
        """Create the sheet for ``date``. The id is always ``sheet-<date>``."""
        require_user(user_id)
        now = self._now()
        sheet = Sheet(
            id=Sheet.sheet_id_for(date),
            title=title or format_date_title(date),
            date=date,
            created_at=now,
            updated_at=now,
        )

        key = list_key(user_id)
        cached = self.cache.get(key) or []
        self.cache.set(key, [sheet, *cached])

        try:
            await self._store.set_document(sheet_path(user_id, sheet.id), sheet.to_document())
        except Exception as exc:
            self.cache.invalidate(key)
            logger.error("Failed to create sheet %s for user %s: %s", sheet.id, user_id, exc)
            raise WriteFailure(f"Failed to create sheet {sheet.id}: {exc}") from exc

        self.cache.set(sheet_key(user_id, sheet.id), sheet)
        logger.info("Sheet created: %s '%s' for user %s", sheet.id, sheet.title, user_id)
        return sheet

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, user_id: str, sheet_id: str) -> Sheet | None:
        """Cache-first fetch of one sheet. Missing sheets are not cached."""
        require_user(user_id)
        key = sheet_key(user_id, sheet_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            document = await self._store.get_document(sheet_path(user_id, sheet_id))
            if document is None:
                return None
            sheet = Sheet.from_document(sheet_id, document)
        except Exception as exc:
            raise ReadFailure(f"Failed to load sheet {sheet_id}: {exc}") from exc

        # Edits still waiting for their write must stay visible
        pending = self._pending_fields.get((user_id, sheet_id))
        if pending:
            sheet = sheet.merged(pending, self._now())

        self.cache.set(key, sheet)
        logger.debug("Sheet %s loaded from store", sheet_id)
        return sheet

    async def list(
        self, user_id: str, on_update: SheetListCallback | None = None,
    ) -> list[Sheet]:
        """All sheets, newest date first.

        Served from the cache when present. With ``on_update``, also starts
        the user's live subscription, whose snapshots supersede this result.
        """
        require_user(user_id)
        key = list_key(user_id)
        sheets = self.cache.get(key)
        if sheets is None:
            sheets = await self._fetch_list(user_id)
            self.cache.set(key, sheets)

        if on_update is not None:
            await self.subscriptions.subscribe(user_id, on_update)
        return newest_first(sheets)

    async def _fetch_list(self, user_id: str) -> list[Sheet]:
        try:
            rows = await self._store.query_collection(
                sheets_collection_path(user_id), order_by="date", descending=True,
            )
            return [Sheet.from_document(doc_id, doc) for doc_id, doc in rows]
        except Exception as exc:
            raise ReadFailure(f"Failed to list sheets for user {user_id}: {exc}") from exc

    async def exists_for_date(self, user_id: str, date: str) -> bool:
        """True if the user already has a sheet for ``date``."""
        require_user(user_id)
        cached = self.cache.get(list_key(user_id))
        if cached is not None:
            return any(sheet.date == date for sheet in cached)

        try:
            rows = await self._store.query_collection(
                sheets_collection_path(user_id), where=("date", date),
            )
        except Exception as exc:
            raise ReadFailure(f"Failed to check sheet for {date}: {exc}") from exc
        return bool(rows)

    async def get_settings(self, user_id: str) -> UserSettings:
        require_user(user_id)
        key = settings_key(user_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            document = await self._store.get_document(user_path(user_id))
            user_settings = UserSettings.from_document(document)
        except Exception as exc:
            raise ReadFailure(f"Failed to load settings for user {user_id}: {exc}") from exc
        self.cache.set(key, user_settings)
        return user_settings

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, user_id: str, sheet_id: str, partial: dict[str, Any]) -> asyncio.Future:
        """Apply ``partial`` to the cached sheet now and persist it after the quiet period.

        The cache reflects the edit before this returns. The returned future
        resolves when the coalesced remote write lands, or carries
        WriteFailure, in which case the cached sheet has been invalidated.
        """
        require_user(user_id)
        fields = normalize_partial(partial)
        fields.pop("updated_at", None)
        if "created_at" in fields:
            raise ValueError("Sheet created_at is server-assigned")
        for frozen, value in (("id", sheet_id), ("date", sheet_id.removeprefix(SHEET_ID_PREFIX))):
            if frozen in fields and fields[frozen] != value:
                raise ValueError(f"Sheet {frozen} cannot be changed")
        encode_partial(fields)

        # The write reads the pending fields only after the quiet period
        write_key = (user_id, sheet_id)
        future = self._coalescer.schedule(
            write_key, lambda: self._write_pending(user_id, sheet_id),
        )
        self._pending_fields.setdefault(write_key, {}).update(fields)

        key = sheet_key(user_id, sheet_id)
        cached = self.cache.get(key)
        if cached is not None:
            updated = cached.merged(fields, self._now())
            self.cache.set(key, updated)
            self._replace_in_list(user_id, updated)
        return future

    def _replace_in_list(self, user_id: str, sheet: Sheet) -> None:
        key = list_key(user_id)
        cached = self.cache.get(key)
        if cached is None:
            return
        self.cache.set(key, [sheet if s.id == sheet.id else s for s in cached])

    async def _write_pending(self, user_id: str, sheet_id: str) -> None:
        fields = self._pending_fields.pop((user_id, sheet_id), {})
        document = encode_partial({**fields, "updated_at": self._now()})
        try:
            await self._store.update_document(sheet_path(user_id, sheet_id), document)
        except Exception as exc:
            self.cache.invalidate(sheet_key(user_id, sheet_id))
            self.cache.invalidate(list_key(user_id))
            raise WriteFailure(f"Failed to update sheet {sheet_id}: {exc}") from exc
        logger.info("Saved sheet %s for user %s (%s)", sheet_id, user_id, ", ".join(document))

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, user_id: str, sheet_id: str) -> None:
        require_user(user_id)
        try:
            await self._store.delete_document(sheet_path(user_id, sheet_id))
        except Exception as exc:
            logger.error("Failed to delete sheet %s for user %s: %s", sheet_id, user_id, exc)
            raise WriteFailure(f"Failed to delete sheet {sheet_id}: {exc}") from exc
        self._purge(user_id, [sheet_id])
        logger.info("Sheet %s deleted for user %s", sheet_id, user_id)

    async def delete_many(self, user_id: str, sheet_ids: list[str]) -> BulkDeleteResult:
        """Delete concurrently; report per-id outcome, keep the successes."""
        require_user(user_id)
        outcomes = await asyncio.gather(
            *(self._store.delete_document(sheet_path(user_id, sid)) for sid in sheet_ids),
            return_exceptions=True,
        )

        result = BulkDeleteResult()
        for sheet_id, outcome in zip(sheet_ids, outcomes):
            if isinstance(outcome, Exception):
                result.failed[sheet_id] = outcome
            else:
                result.succeeded.append(sheet_id)

        self._purge(user_id, result.succeeded)
        logger.info(
            "Bulk delete for user %s: %d deleted, %d failed",
            user_id, len(result.succeeded), len(result.failed),
        )
        for sheet_id, exc in result.failed.items():
            logger.error("Failed to delete sheet %s for user %s: %s", sheet_id, user_id, exc)
        return result

    def _purge(self, user_id: str, sheet_ids: list[str]) -> None:
        if not sheet_ids:
            return
        for sheet_id in sheet_ids:
            self.cache.invalidate(sheet_key(user_id, sheet_id))
            # A write still armed for a deleted sheet can only fail
            self._pending_fields.pop((user_id, sheet_id), None)
            self._coalescer.cancel((user_id, sheet_id))
        self.cache.invalidate(list_key(user_id))

    # ------------------------------------------------------------------
    # Session helpers
    # ------------------------------------------------------------------

    async def preload(self, user_id: str) -> None:
        """Warm the list and settings caches. Best-effort: never raises on store errors."""
        require_user(user_id)
        try:
            await self._preload(user_id)
        except PreloadFailure as exc:
            logger.warning("%s", exc)

    async def _preload(self, user_id: str) -> None:
        try:
            self.cache.set(list_key(user_id), await self._fetch_list(user_id))
            document = await self._store.get_document(user_path(user_id))
            if document is not None:
                self.cache.set(settings_key(user_id), UserSettings.from_document(document))
        except Exception as exc:
            raise PreloadFailure(f"Preload failed for user {user_id}: {exc}") from exc
        logger.info("Preloaded sheets and settings for user %s", user_id)

    async def flush(self) -> None:
        """Wait for every coalesced write to land."""
        await self._coalescer.drain()

    def clear_cache(self) -> None:
        """Forget everything cached, e.g. on logout."""
        self.cache.invalidate_all()

    async def close(self) -> None:
        await self.subscriptions.close_all()
        await self.flush()
