"""Firestore adapter — implements DocumentStorePort over the Firestore REST API.

All Firestore-specific logic lives here: typed-value encoding, document
names, structured queries. Core modules never import this directly; they
depend on the DocumentStorePort protocol.

The REST API has no push channel, so collection subscriptions poll
runQuery and emit a snapshot only when the result changed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Any

import httpx

from timebox.ports.document_store_port import (
    Document,
    DocumentStoreError,
    Snapshot,
    SnapshotCallback,
)

logger = logging.getLogger(__name__)

_FIRESTORE_URL = "https://firestore.googleapis.com/v1"
_TIMEOUT_SECONDS = 10


# ---------------------------------------------------------------------------
# Typed value codec
# ---------------------------------------------------------------------------


def encode_value(value: Any) -> dict:
    """Python value -> Firestore typed Value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": value.isoformat()}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Cannot store {type(value).__name__} in Firestore")


def encode_fields(document: Document) -> dict:
    return {key: encode_value(value) for key, value in document.items()}


def decode_value(value: dict) -> Any:
    """Firestore typed Value -> Python value. Timestamps stay ISO strings."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return value["booleanValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return value["timestampValue"]
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    raise ValueError(f"Unsupported Firestore value: {value!r}")


def decode_fields(fields: dict) -> Document:
    return {key: decode_value(value) for key, value in fields.items()}


# ---------------------------------------------------------------------------
# Polling subscription
# ---------------------------------------------------------------------------


class PollingSubscription:
    """Re-runs a collection query on an interval, emitting changed results."""

    def __init__(
        self,
        store: FirestoreDocumentStore,
        path: str,
        on_snapshot: SnapshotCallback,
        order_by: str | None,
        descending: bool,
        interval: float,
    ) -> None:
        self._store = store
        self.path = path
        self._on_snapshot = on_snapshot
        self._order_by = order_by
        self._descending = descending
        self._interval = interval
        self._last: Snapshot | None = None
        self._task: asyncio.Task | None = None
        self.active = True

    def start(self, first: Snapshot) -> None:
        loop = asyncio.get_running_loop()
        self._last = first
        loop.call_soon(self._emit, first)
        self._task = loop.create_task(self._poll())

    def _emit(self, snapshot: Snapshot) -> None:
        if not self.active:
            return
        try:
            self._on_snapshot(snapshot)
        except Exception as exc:
            logger.error("Snapshot listener for %s failed: %s", self.path, exc)

    async def _poll(self) -> None:
        while self.active:
            await asyncio.sleep(self._interval)
            try:
                snapshot = await self._store.query_collection(
                    self.path, order_by=self._order_by, descending=self._descending,
                )
            except Exception as exc:
                logger.warning("Polling %s failed, will retry: %s", self.path, exc)
                continue
            if snapshot != self._last:
                self._last = snapshot
                self._emit(snapshot)

    async def close(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        logger.info("Stopped polling %s", self.path)


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class FirestoreDocumentStore:
    """Firestore REST implementation of DocumentStorePort."""

    def __init__(
        self,
        project_id: str | None = None,
        database: str | None = None,
        id_token: str | None = None,
        poll_interval: float | None = None,
    ) -> None:
        from timebox.config import settings

        self._project_id = project_id or settings.FIRESTORE_PROJECT_ID
        self._database = database or settings.FIRESTORE_DATABASE
        self._id_token = id_token if id_token is not None else settings.FIRESTORE_ID_TOKEN
        self._poll_interval = (
            poll_interval if poll_interval is not None
            else settings.FIRESTORE_POLL_INTERVAL_SECONDS
        )

    @property
    def _documents_url(self) -> str:
        return (
            f"{_FIRESTORE_URL}/projects/{self._project_id}"
            f"/databases/{self._database}/documents"
        )

    def _headers(self) -> dict:
        if not self._id_token:
            return {}
        return {"Authorization": f"Bearer {self._id_token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        # ":runQuery" on the database root attaches without a slash
        sep = "" if path.startswith(":") else "/"
        url = f"{self._documents_url}{sep}{path}"
        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                resp = await client.request(method, url, headers=self._headers(), **kwargs)
            if method == "GET" and resp.status_code == 404:
                return resp
            resp.raise_for_status()
            return resp
        except Exception as exc:
            logger.error("Firestore %s %s failed: %s", method, path, exc)
            raise DocumentStoreError(f"Firestore {method} {path} failed: {exc}") from exc

    async def get_document(self, path: str) -> Document | None:
        resp = await self._request("GET", path)
        if resp.status_code == 404:
            return None
        return decode_fields(resp.json().get("fields", {}))

    async def set_document(self, path: str, document: Document) -> None:
        # PATCH without an update mask replaces the whole document, creating it if absent
        await self._request("PATCH", path, json={"fields": encode_fields(document)})
        logger.info("Firestore document written: %s", path)

    async def update_document(self, path: str, fields: Document) -> None:
        params = [("updateMask.fieldPaths", key) for key in fields]
        params.append(("currentDocument.exists", "true"))
        await self._request(
            "PATCH", path, params=params, json={"fields": encode_fields(fields)},
        )

    async def delete_document(self, path: str) -> None:
        await self._request("DELETE", path)

    async def query_collection(
        self,
        path: str,
        where: tuple[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> Snapshot:
        parent, _, collection_id = path.rpartition("/")
        query: dict = {"from": [{"collectionId": collection_id}]}
        if where is not None:
            field_path, value = where
            query["where"] = {
                "fieldFilter": {
                    "field": {"fieldPath": field_path},
                    "op": "EQUAL",
                    "value": encode_value(value),
                }
            }
        if order_by is not None:
            query["orderBy"] = [{
                "field": {"fieldPath": order_by},
                "direction": "DESCENDING" if descending else "ASCENDING",
            }]

        target = f"{parent}:runQuery" if parent else ":runQuery"
        resp = await self._request("POST", target, json={"structuredQuery": query})

        rows: Snapshot = []
        for item in resp.json():
            doc = item.get("document")
            if doc is None:
                continue
            doc_id = doc["name"].rsplit("/", 1)[1]
            rows.append((doc_id, decode_fields(doc.get("fields", {}))))
        return rows

    async def subscribe_to_collection(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        order_by: str | None = None,
        descending: bool = False,
    ) -> PollingSubscription:
        first = await self.query_collection(path, order_by=order_by, descending=descending)
        sub = PollingSubscription(
            self, path, on_snapshot, order_by, descending, self._poll_interval,
        )
        sub.start(first)
        logger.info("Polling %s every %.1fs", path, self._poll_interval)
        return sub
