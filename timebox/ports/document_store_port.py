"""Document store port — abstract interface for the remote document database.

Core modules depend on this protocol, never on a specific backend.
Documents are plain dicts; paths are slash-separated segment strings.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

Document = dict[str, Any]
# A query snapshot: ordered (document id, document) pairs
Snapshot = list[tuple[str, Document]]
SnapshotCallback = Callable[[Snapshot], None]


class DocumentStoreError(Exception):
    """Raised when any document store operation fails."""


def user_path(user_id: str) -> str:
    return f"users/{user_id}"


def sheets_collection_path(user_id: str) -> str:
    return f"users/{user_id}/timeboxes"


def sheet_path(user_id: str, sheet_id: str) -> str:
    return f"users/{user_id}/timeboxes/{sheet_id}"


class StoreSubscription(Protocol):
    """Handle for a live collection subscription."""

    async def close(self) -> None: ...


class DocumentStorePort(Protocol):
    """Abstract document store used by the sheet repository."""

    async def get_document(self, path: str) -> Document | None: ...

    async def set_document(self, path: str, document: Document) -> None: ...

    async def update_document(self, path: str, fields: Document) -> None: ...

    async def delete_document(self, path: str) -> None: ...

    async def query_collection(
        self,
        path: str,
        where: tuple[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> Snapshot: ...

    async def subscribe_to_collection(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        order_by: str | None = None,
        descending: bool = False,
    ) -> StoreSubscription: ...
