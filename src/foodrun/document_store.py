"""Document storage for foodrun.

The lifecycle manager only talks to the DocumentStore protocol. Two
implementations live here: an in-process store and a JSON-file store that
several processes (API server, CLI) can share.
"""

from __future__ import annotations

import copy
import fcntl
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Protocol

from .errors import CollaboratorUnavailableError, DocumentNotFoundError
from .models import _generate_id

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DOCUMENTS_FILE = "documents.json"

Document = dict[str, Any]
ResultCallback = Callable[[list[Document]], None]


class StoreSubscription:
    """Handle for a live query. Delivery stops once unsubscribe() returns."""

    def __init__(
        self,
        store: MemoryDocumentStore,
        collection: str,
        filters: dict[str, Any] | None,
        callback: ResultCallback,
    ) -> None:
        self.collection = collection
        self.filters = dict(filters or {})
        self._store = store
        self._callback = callback
        self._active = True
        self._version = -1  # store version of the last result set delivered

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        self._store._remove_subscription(self)

    def _deliver(self, results: list[Document]) -> None:
        if not self._active:
            return
        try:
            self._callback(results)
        except Exception:
            logger.exception("subscriber callback failed for %s", self.collection)


class DocumentStore(Protocol):
    """Protocol for document stores with realtime subscriptions.

    Documents are plain dicts. Every document returned carries its id under
    the "id" key; the id is never stored as a field.
    """

    def create(self, collection: str, fields: Document) -> str:
        """Store a new document and return its generated id."""
        ...

    def update(self, collection: str, doc_id: str, fields: Document) -> None:
        """Merge fields into an existing document (last write wins).

        Raises:
            DocumentNotFoundError: If the document doesn't exist.
        """
        ...

    def get(self, collection: str, doc_id: str) -> Document | None:
        ...

    def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        """Return documents whose fields equal every filter value."""
        ...

    def subscribe(
        self,
        collection: str,
        filters: dict[str, Any] | None,
        callback: ResultCallback,
    ) -> StoreSubscription:
        """Push the full matching result set now and after every change."""
        ...


def _matches(doc: Document, filters: dict[str, Any]) -> bool:
    return all(doc.get(k) == v for k, v in filters.items())


def _sort_key(field_name: str) -> Callable[[Document], tuple[bool, Any]]:
    def key(doc: Document) -> tuple[bool, Any]:
        value = doc.get(field_name)
        return (value is None, value if value is not None else "")

    return key


class MemoryDocumentStore:
    """Thread-safe in-process document store.

    Writes and subscription fan-out are serialized. Each subscriber sees
    result sets in write order, also when a callback writes to the store:
    result sets are computed just before each callback, and a subscriber is
    never handed a version older than one it already received.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._subscriptions: list[StoreSubscription] = []
        self._lock = threading.RLock()
        self._delivery_lock = threading.RLock()
        self._version = 0

    # --- reads ---

    def get(self, collection: str, doc_id: str) -> Document | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            if doc is None:
                return None
            return self._export(doc_id, doc)

    def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        with self._lock:
            return self._select(collection, filters or {}, order_by, descending)

    # --- writes ---

    def create(self, collection: str, fields: Document) -> str:
        doc_id = _generate_id()

        def insert(docs: dict[str, Document]) -> None:
            docs[doc_id] = copy.deepcopy({k: v for k, v in fields.items() if k != "id"})

        self._write(collection, insert)
        logger.debug("created %s/%s", collection, doc_id)
        return doc_id

    def update(self, collection: str, doc_id: str, fields: Document) -> None:
        def merge(docs: dict[str, Document]) -> None:
            if doc_id not in docs:
                raise DocumentNotFoundError(collection, doc_id)
            docs[doc_id].update(copy.deepcopy({k: v for k, v in fields.items() if k != "id"}))

        self._write(collection, merge)
        logger.debug("updated %s/%s fields=%s", collection, doc_id, sorted(fields))

    # --- subscriptions ---

    def subscribe(
        self,
        collection: str,
        filters: dict[str, Any] | None,
        callback: ResultCallback,
    ) -> StoreSubscription:
        sub = StoreSubscription(self, collection, filters, callback)
        with self._delivery_lock:
            with self._lock:
                self._subscriptions.append(sub)
                sub._version = self._version
                results = self._select(collection, sub.filters, None, False)
            sub._deliver(results)
        return sub

    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def _remove_subscription(self, sub: StoreSubscription) -> None:
        # Waiting on the delivery lock guarantees no delivery is in flight.
        with self._delivery_lock:
            with self._lock:
                sub._active = False
                if sub in self._subscriptions:
                    self._subscriptions.remove(sub)

    # --- internals ---

    def _write(self, collection: str, mutate: Callable[[dict[str, Document]], None]) -> None:
        with self._delivery_lock:
            with self._lock:
                with self._write_guard() as changed:
                    mutate(self._collections.setdefault(collection, {}))
                changed.add(collection)
                self._version += 1
            self._fan_out(changed)

    @contextmanager
    def _write_guard(self) -> Iterator[set[str]]:
        """Hook around a mutation; yields the set of collections changed."""
        yield set()

    def _fan_out(self, collections: set[str]) -> None:
        """Deliver the current result set to every subscriber on collections.

        Must be called holding the delivery lock but not the state lock.
        """
        with self._lock:
            targets = [s for s in self._subscriptions if s.collection in collections]
        for sub in targets:
            with self._lock:
                if not sub._active or sub._version >= self._version:
                    # Already saw this state from a write made by a callback
                    continue
                sub._version = self._version
                results = self._select(sub.collection, sub.filters, None, False)
            sub._deliver(results)

    def _select(
        self,
        collection: str,
        filters: dict[str, Any],
        order_by: str | None,
        descending: bool,
    ) -> list[Document]:
        docs = [
            self._export(doc_id, doc)
            for doc_id, doc in self._collections.get(collection, {}).items()
            if _matches(doc, filters)
        ]
        if order_by:
            docs.sort(key=_sort_key(order_by), reverse=descending)
        return docs

    @staticmethod
    def _export(doc_id: str, doc: Document) -> Document:
        result = copy.deepcopy(doc)
        result["id"] = doc_id
        return result


class JsonDocumentStore(MemoryDocumentStore):
    """Document store persisted to a JSON file.

    Every write re-reads the file under an exclusive lock, applies the change
    and saves atomically (write-to-temp-then-rename), so the API server and
    CLI can share one data directory. Call reload() to pick up writes made by
    other processes and notify local subscribers.
    """

    def __init__(self, data_dir: Path) -> None:
        super().__init__()
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / DOCUMENTS_FILE
        with self._lock:
            self._collections = self._read_file()

    def reload(self) -> bool:
        """Re-read the file; returns True if anything changed."""
        with self._delivery_lock:
            with self._lock:
                changed = self._refresh()
                if changed:
                    self._version += 1
            self._fan_out(changed)
        return bool(changed)

    def get(self, collection: str, doc_id: str) -> Document | None:
        self.reload()
        return super().get(collection, doc_id)

    def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        self.reload()
        return super().query(collection, filters, order_by, descending)

    @contextmanager
    def _write_guard(self) -> Iterator[set[str]]:
        with self._file_lock():
            changed = self._refresh()
            yield changed
            self._save()

    def _refresh(self) -> set[str]:
        on_disk = self._read_file()
        names = set(on_disk) | set(self._collections)
        changed = {n for n in names if on_disk.get(n, {}) != self._collections.get(n, {})}
        self._collections = on_disk
        return changed

    def _ensure_dir(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CollaboratorUnavailableError("document store", str(e)) from e

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the documents file for read-modify-write."""
        self._ensure_dir()
        lock_path = self.data_dir / ".documents.lock"
        try:
            lock_file = open(lock_path, "w")
        except OSError as e:
            raise CollaboratorUnavailableError("document store", str(e)) from e
        with lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read_file(self) -> dict[str, dict[str, Document]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CollaboratorUnavailableError("document store", f"cannot read {self.path}: {e}") from e
        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise CollaboratorUnavailableError(
                "document store", f"unsupported schema version {version} in {self.path}"
            )
        return data.get("collections", {})

    def _save(self) -> None:
        self._ensure_dir()
        data = {"schema_version": SCHEMA_VERSION, "collections": self._collections}
        try:
            fd, temp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".documents_", suffix=".tmp")
        except OSError as e:
            raise CollaboratorUnavailableError("document store", str(e)) from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise CollaboratorUnavailableError("document store", str(e)) from e
