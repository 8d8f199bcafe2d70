"""Document store factory — creates the right adapter based on config."""

from __future__ import annotations

from timebox.config import settings
from timebox.ports.document_store_port import DocumentStorePort


def create_document_store(id_token: str | None = None) -> DocumentStorePort:
    """Return the document store matching the DOCUMENT_STORE setting.

    Args:
        id_token: Per-user Firebase ID token for the Firestore adapter.
    """
    backend = settings.DOCUMENT_STORE.lower()

    if backend == "memory":
        from timebox.adapters.memory_store import InMemoryDocumentStore

        return InMemoryDocumentStore()

    if backend == "firestore":
        from timebox.adapters.firestore_store import FirestoreDocumentStore

        return FirestoreDocumentStore(id_token=id_token)

    raise ValueError(f"Unknown DOCUMENT_STORE: {backend!r}")
