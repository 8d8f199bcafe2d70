"""In-memory document store — implements DocumentStorePort without a network.

Used for local development and tests. Behaves like the remote store where
it matters to the core: every operation suspends at least once, snapshots
are delivered asynchronously on the event loop after each change, and
updates to a missing document fail.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

from timebox.ports.document_store_port import (
    Document,
    DocumentStoreError,
    Snapshot,
    SnapshotCallback,
)

logger = logging.getLogger(__name__)


def _parent(path: str) -> str:
    return path.rsplit("/", 1)[0]


def _doc_id(path: str) -> str:
    return path.rsplit("/", 1)[1]


class MemorySubscription:
    """Live subscription to one collection of an InMemoryDocumentStore."""

    def __init__(
        self,
        store: InMemoryDocumentStore,
        path: str,
        on_snapshot: SnapshotCallback,
        order_by: str | None,
        descending: bool,
    ) -> None:
        self._store = store
        self.path = path
        self._on_snapshot = on_snapshot
        self._order_by = order_by
        self._descending = descending
        self.active = True

    def snapshot(self) -> Snapshot:
        return self._store._snapshot(self.path, None, self._order_by, self._descending)

    def deliver(self, snapshot: Snapshot) -> None:
        # Events queued before close() still arrive here; drop them.
        if not self.active:
            return
        try:
            self._on_snapshot(snapshot)
        except Exception as exc:
            logger.error("Snapshot listener for %s failed: %s", self.path, exc)

    async def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._subscriptions.remove(self)
        logger.debug("Memory subscription closed: %s", self.path)


class InMemoryDocumentStore:
    """Dict-backed document store with live collection snapshots."""

    def __init__(self, latency: float = 0.0) -> None:
        self._latency = latency
        self._documents: dict[str, Document] = {}
        self._subscriptions: list[MemorySubscription] = []
        self._failures: list[tuple[str, str | None, Exception]] = []
        self.calls: list[tuple[str, str]] = []

    # ------------------------------------------------------------------
    # Test hooks
    # ------------------------------------------------------------------

    def fail_next(
        self,
        operation: str,
        exc: Exception | None = None,
        path: str | None = None,
    ) -> None:
        """Make the next ``operation`` (optionally only on ``path``) raise once."""
        if exc is None:
            exc = DocumentStoreError(f"Injected {operation} failure")
        self._failures.append((operation, path, exc))

    def calls_to(self, operation: str) -> list[str]:
        return [path for op, path in self.calls if op == operation]

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _roundtrip(self, operation: str, path: str) -> None:
        await asyncio.sleep(self._latency)
        self.calls.append((operation, path))
        for i, (op, fail_path, exc) in enumerate(self._failures):
            if op == operation and (fail_path is None or fail_path == path):
                del self._failures[i]
                raise exc

    def _snapshot(
        self,
        collection: str,
        where: tuple[str, Any] | None,
        order_by: str | None,
        descending: bool,
    ) -> Snapshot:
        rows = [
            (_doc_id(path), copy.deepcopy(doc))
            for path, doc in self._documents.items()
            if _parent(path) == collection
        ]
        if where is not None:
            field, value = where
            rows = [row for row in rows if row[1].get(field) == value]
        if order_by is not None:
            rows.sort(key=lambda row: row[1].get(order_by, ""), reverse=descending)
        return rows

    def _notify(self, path: str) -> None:
        collection = _parent(path)
        loop = asyncio.get_running_loop()
        for sub in list(self._subscriptions):
            if sub.path == collection:
                loop.call_soon(sub.deliver, sub.snapshot())

    # ------------------------------------------------------------------
    # DocumentStorePort
    # ------------------------------------------------------------------

    async def get_document(self, path: str) -> Document | None:
        await self._roundtrip("get_document", path)
        doc = self._documents.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    async def set_document(self, path: str, document: Document) -> None:
        await self._roundtrip("set_document", path)
        self._documents[path] = copy.deepcopy(document)
        self._notify(path)

    async def update_document(self, path: str, fields: Document) -> None:
        await self._roundtrip("update_document", path)
        if path not in self._documents:
            raise DocumentStoreError(f"No document to update: {path}")
        self._documents[path].update(copy.deepcopy(fields))
        self._notify(path)

    async def delete_document(self, path: str) -> None:
        await self._roundtrip("delete_document", path)
        if self._documents.pop(path, None) is not None:
            self._notify(path)

    async def query_collection(
        self,
        path: str,
        where: tuple[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> Snapshot:
        await self._roundtrip("query_collection", path)
        return self._snapshot(path, where, order_by, descending)

    async def subscribe_to_collection(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        order_by: str | None = None,
        descending: bool = False,
    ) -> MemorySubscription:
        await self._roundtrip("subscribe_to_collection", path)
        sub = MemorySubscription(self, path, on_snapshot, order_by, descending)
        self._subscriptions.append(sub)
        asyncio.get_running_loop().call_soon(sub.deliver, sub.snapshot())
        logger.debug("Memory subscription opened: %s", path)
        return sub
