"""
Timebox — Subscription Manager.

Keeps one live feed of a user's sheet list. Every remote snapshot replaces
the cached list wholesale and is pushed to the observer as the full list
(no diffs). Per-user lifecycle:

    IDLE -> SUBSCRIBING -> LIVE -> CLOSED

SUBSCRIBING lasts until the first snapshot arrives. CLOSED is terminal;
a fresh subscribe() creates a new subscription object.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from timebox.core.errors import ReadFailure, require_user
from timebox.data.cache import list_key
from timebox.data.models import Sheet
from timebox.ports.document_store_port import Snapshot, sheets_collection_path

if TYPE_CHECKING:
    from timebox.data.cache import TTLCache
    from timebox.ports.document_store_port import DocumentStorePort, StoreSubscription

logger = logging.getLogger(__name__)

SheetListCallback = Callable[[list[Sheet]], None]
Unsubscribe = Callable[[], Awaitable[None]]


class SubscriptionState(str, Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    LIVE = "live"
    CLOSED = "closed"


class SheetListSubscription:
    """One user's live sheet-list subscription."""

    def __init__(
        self,
        manager: SubscriptionManager,
        user_id: str,
        on_update: SheetListCallback,
    ) -> None:
        self._manager = manager
        self.user_id = user_id
        self._on_update = on_update
        self.state = SubscriptionState.IDLE
        self.handle: StoreSubscription | None = None

    def on_snapshot(self, snapshot: Snapshot) -> None:
        if self.state is SubscriptionState.CLOSED:
            return
        try:
            sheets = [Sheet.from_document(doc_id, doc) for doc_id, doc in snapshot]
        except ValueError as exc:
            logger.error("Bad sheet snapshot for user %s: %s", self.user_id, exc)
            return

        if self.state is SubscriptionState.SUBSCRIBING:
            self.state = SubscriptionState.LIVE
            logger.info("Sheet list live for user %s", self.user_id)

        self._manager.cache.set(list_key(self.user_id), sheets)
        logger.debug("Sheet list refreshed for user %s: %d sheet(s)", self.user_id, len(sheets))
        self._notify(sheets)

    def _notify(self, sheets: list[Sheet]) -> None:
        try:
            self._on_update(sheets)
        except Exception as exc:
            logger.error("Sheet list observer for user %s failed: %s", self.user_id, exc)

    async def close(self) -> None:
        """Stop updates and release the remote channel. Idempotent."""
        was_open = self.state is not SubscriptionState.CLOSED
        self.state = SubscriptionState.CLOSED
        self._manager._forget(self)

        handle, self.handle = self.handle, None
        if handle is not None:
            await handle.close()
        if was_open:
            logger.info("Sheet list subscription closed for user %s", self.user_id)


class SubscriptionManager:
    """Fan-out of live sheet-list snapshots, at most one per user."""

    def __init__(self, store: DocumentStorePort, cache: TTLCache) -> None:
        self._store = store
        self.cache = cache
        self._subscriptions: dict[str, SheetListSubscription] = {}

    def state(self, user_id: str) -> SubscriptionState:
        sub = self._subscriptions.get(user_id)
        return sub.state if sub is not None else SubscriptionState.IDLE

    def _forget(self, sub: SheetListSubscription) -> None:
        if self._subscriptions.get(sub.user_id) is sub:
            del self._subscriptions[sub.user_id]

    async def subscribe(
        self, user_id: str, on_update: SheetListCallback,
    ) -> Unsubscribe:
        """Replay the cached list (if warm), then follow the remote collection.

        Any existing subscription for the user is closed first. Returns an
        idempotent async unsubscribe handle.
        """
        require_user(user_id)

        previous = self._subscriptions.get(user_id)
        sub = SheetListSubscription(self, user_id, on_update)
        self._subscriptions[user_id] = sub
        if previous is not None:
            # Silence the old feed before anything else can run
            previous.state = SubscriptionState.CLOSED

        cached = self.cache.get(list_key(user_id))
        if cached:
            logger.debug("Replaying cached sheet list for user %s", user_id)
            sub._notify(cached)

        if previous is not None:
            await previous.close()
            if sub.state is SubscriptionState.CLOSED:
                return sub.close

        sub.state = SubscriptionState.SUBSCRIBING
        try:
            handle = await self._store.subscribe_to_collection(
                sheets_collection_path(user_id),
                sub.on_snapshot,
                order_by="date",
                descending=True,
            )
        except Exception as exc:
            sub.state = SubscriptionState.CLOSED
            self._forget(sub)
            raise ReadFailure(f"Failed to subscribe to sheets for user {user_id}: {exc}") from exc

        sub.handle = handle
        if sub.state is SubscriptionState.CLOSED:
            # Unsubscribed or superseded while the channel was opening
            await sub.close()
        else:
            logger.info("Subscribed to sheet list for user %s", user_id)
        return sub.close

    async def unsubscribe(self, user_id: str) -> None:
        sub = self._subscriptions.get(user_id)
        if sub is not None:
            await sub.close()

    async def close_all(self) -> None:
        for sub in list(self._subscriptions.values()):
            await sub.close()
