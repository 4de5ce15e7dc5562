"""Realtime order feeds.

An OrderFeed wraps a store subscription and turns raw result sets into
lists of Order snapshots. Consumers either pull (iterate, get) or push
(on_snapshot). cancel() is explicit and final.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import TYPE_CHECKING, Callable, Iterator, Optional

from .models import Order

if TYPE_CHECKING:
    from .document_store import Document, DocumentStore, StoreSubscription

logger = logging.getLogger(__name__)

OrderPredicate = Callable[[Order], bool]
SnapshotCallback = Callable[[list[Order]], None]

class OrderFeed:
    """Cancellable stream of order snapshots.

    Each snapshot is the full list of orders matching the predicate, newest
    first. The first snapshot is the state at subscription time.

    Pull consumers get the newest snapshot they have not yet taken; a
    snapshot superseded before anyone pulled it is dropped.
    """

    def __init__(
        self,
        store: "DocumentStore",
        collection: str,
        predicate: OrderPredicate,
        store_filters: Optional[dict] = None,
    ) -> None:
        self.collection = collection
        self.predicate = predicate
        self._store = store
        self._store_filters = dict(store_filters or {})
        self._callbacks: list[SnapshotCallback] = []
        self._latest: list[Order] = []
        self._lock = threading.RLock()
        self._ready = threading.Condition(self._lock)
        self._pending: Optional[list[Order]] = None
        self._seq = 0
        self._cancelled = False
        self._subscription: "StoreSubscription" = store.subscribe(
            collection, self._store_filters, self._on_results
        )

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def on_snapshot(self, callback: SnapshotCallback) -> SnapshotCallback:
        """Register a push callback; it immediately receives the latest snapshot."""
        with self._lock:
            if self._cancelled:
                return callback
            self._callbacks.append(callback)
            latest = list(self._latest)
        self._call(callback, latest)
        return callback

    def latest(self) -> list[Order]:
        with self._lock:
            return list(self._latest)

    def get(self, timeout: float | None = None) -> list[Order]:
        """Pull the next snapshot.

        Raises:
            queue.Empty: If nothing arrives within timeout, or the feed is
                cancelled with no snapshot left to take.
        """
        with self._ready:
            self._ready.wait_for(lambda: self._pending is not None or self._cancelled, timeout)
            if self._pending is None:
                raise queue.Empty
            snapshot, self._pending = self._pending, None
            return snapshot

    def __iter__(self) -> Iterator[list[Order]]:
        while True:
            try:
                yield self.get()
            except queue.Empty:
                return

    def cancel(self) -> None:
        """Stop delivery. No snapshot is queued or pushed after this returns."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._callbacks.clear()
            self._ready.notify_all()
        self._subscription.unsubscribe()
        logger.debug("feed on %s cancelled", self.collection)

    def restart(self) -> "OrderFeed":
        """Cancel this feed and return a fresh one on the same predicate."""
        self.cancel()
        return OrderFeed(self._store, self.collection, self.predicate, self._store_filters)

    def __enter__(self) -> "OrderFeed":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()

    # --- internals ---

    def _on_results(self, results: list["Document"]) -> None:
        orders = [Order.from_dict(doc) for doc in results]
        snapshot = sorted(
            (o for o in orders if self.predicate(o)),
            key=lambda o: o.created_at,
            reverse=True,
        )
        with self._lock:
            if self._cancelled:
                return
            self._seq += 1
            seq = self._seq
            self._latest = snapshot
            self._pending = list(snapshot)
            callbacks = list(self._callbacks)
            self._ready.notify_all()
        for callback in callbacks:
            # A callback may write, which pushes a newer snapshot first
            if self._cancelled or self._seq != seq:
                break
            self._call(callback, list(snapshot))

    def _call(self, callback: SnapshotCallback, snapshot: list[Order]) -> None:
        try:
            callback(snapshot)
        except Exception:
            logger.exception("feed callback failed on %s", self.collection)
