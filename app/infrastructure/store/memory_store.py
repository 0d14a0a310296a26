from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable

from app.application.exceptions import TransactionConflict
from app.application.ports.clock import ClockPort
from app.application.ports.document_store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStorePort,
    T,
    TransactionPort,
    Unsubscribe,
    Where,
)

_SET = "set"
_MERGE = "merge"
_UPDATE = "update"
_DELETE = "delete"


class StaleReadError(Exception):
    """A document read by the transaction changed before commit."""


def collection_of(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def _matches(data: dict[str, Any], where: list[Where] | None) -> bool:
    for field_name, op, value in where or []:
        current = data.get(field_name)
        if op == "==":
            if current != value:
                return False
        elif op == "!=":
            if current == value:
                return False
        elif op == "in":
            if current not in value:
                return False
        else:
            raise ValueError(f"Unsupported query operator: {op}")
    return True


class MemoryTransaction(TransactionPort):
    def __init__(self, store: "MemoryDocumentStore") -> None:
        self._store = store
        self.reads: dict[str, int] = {}
        self.writes: list[tuple[str, str, dict[str, Any] | None]] = []

    def get(self, path: str) -> DocumentSnapshot:
        if self.writes:
            raise RuntimeError("Transaction reads must happen before writes")
        snapshot = self._store.get(path)
        self.reads.setdefault(path, snapshot.version)
        return snapshot

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self.writes.append((path, _MERGE if merge else _SET, copy.deepcopy(data)))

    def update(self, path: str, data: dict[str, Any]) -> None:
        self.writes.append((path, _UPDATE, copy.deepcopy(data)))

    def delete(self, path: str) -> None:
        self.writes.append((path, _DELETE, None))


class MemoryDocumentStore(DocumentStorePort):
    def __init__(self, clock: ClockPort | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._versions: dict[str, int] = {}
        self._counter = 0
        self._clock = clock
        self._lock = threading.RLock()
        self._subs_lock = threading.Lock()
        self._doc_subscribers: dict[str, list[Callable[[DocumentSnapshot], None]]] = {}
        self._query_subscribers: list[
            tuple[str, list[Where] | None, Callable[[list[DocumentSnapshot]], None]]
        ] = []
        self._logger = logging.getLogger(__name__)

    # -- reads -------------------------------------------------------------

    def get(self, path: str) -> DocumentSnapshot:
        with self._lock:
            data = self._documents.get(path)
            return DocumentSnapshot(
                path=path,
                data=copy.deepcopy(data) if data is not None else None,
                version=self._versions.get(path, 0),
            )

    def query(
        self,
        collection: str,
        where: list[Where] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[DocumentSnapshot]:
        with self._lock:
            results = [
                DocumentSnapshot(path=path, data=copy.deepcopy(data), version=self._versions.get(path, 0))
                for path, data in self._documents.items()
                if collection_of(path) == collection and _matches(data, where)
            ]
        if order_by:
            results.sort(
                key=lambda s: (s.to_dict().get(order_by) is None, s.to_dict().get(order_by)),
                reverse=descending,
            )
        else:
            results.sort(key=lambda s: s.path)
        return results

    # -- transactions ------------------------------------------------------

    def run_transaction(self, fn: Callable[[TransactionPort], T], max_attempts: int = 5) -> T:
        for attempt in range(1, max_attempts + 1):
            tx = MemoryTransaction(self)
            result = fn(tx)
            try:
                changed = self._commit(tx)
            except StaleReadError:
                self._logger.info("Transaction conflict, retrying", extra={"reason": f"attempt {attempt}"})
                continue
            self._notify(changed)
            return result
        raise TransactionConflict(f"Transaction aborted after {max_attempts} attempts")

    def _commit(self, tx: MemoryTransaction) -> set[str]:
        with self._lock:
            for path, version in tx.reads.items():
                if self._versions.get(path, 0) != version:
                    raise StaleReadError(path)

            now = self._now()
            staged: dict[str, dict[str, Any] | None] = {}
            for path, kind, data in tx.writes:
                current = staged[path] if path in staged else self._documents.get(path)
                if kind == _DELETE:
                    staged[path] = None
                elif kind == _SET:
                    staged[path] = _resolve_timestamps(data or {}, now)
                elif kind == _MERGE:
                    staged[path] = {**(current or {}), **_resolve_timestamps(data or {}, now)}
                else:
                    if current is None:
                        raise LookupError(f"No document to update: {path}")
                    staged[path] = {**current, **_resolve_timestamps(data or {}, now)}

            previous = {path: (self._documents.get(path), self._versions.get(path)) for path in staged}
            previous_counter = self._counter
            for path, data in staged.items():
                self._counter += 1
                self._versions[path] = self._counter
                if data is None:
                    self._documents.pop(path, None)
                else:
                    self._documents[path] = data
            if staged:
                try:
                    self._persist()
                except Exception:
                    self._restore(previous, previous_counter)
                    raise
            return set(staged)

    def _restore(self, previous: dict[str, tuple[dict[str, Any] | None, int | None]], counter: int) -> None:
        """Undo an applied commit whose write-through failed."""
        for path, (data, version) in previous.items():
            if data is None:
                self._documents.pop(path, None)
            else:
                self._documents[path] = data
            if version is None:
                self._versions.pop(path, None)
            else:
                self._versions[path] = version
        self._counter = counter

    def _persist(self) -> None:
        """Hook for durable subclasses; called under the store lock after each commit."""

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock.now()
        return datetime.now(timezone.utc)

    # -- subscriptions -----------------------------------------------------

    def subscribe(self, path: str, callback: Callable[[DocumentSnapshot], None]) -> Unsubscribe:
        with self._subs_lock:
            self._doc_subscribers.setdefault(path, []).append(callback)
        self._deliver(callback, self.get(path))

        def unsubscribe() -> None:
            with self._subs_lock:
                callbacks = self._doc_subscribers.get(path, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def subscribe_query(
        self,
        collection: str,
        where: list[Where] | None,
        callback: Callable[[list[DocumentSnapshot]], None],
    ) -> Unsubscribe:
        entry = (collection, where, callback)
        with self._subs_lock:
            self._query_subscribers.append(entry)
        self._deliver(callback, self.query(collection, where))

        def unsubscribe() -> None:
            with self._subs_lock:
                if entry in self._query_subscribers:
                    self._query_subscribers.remove(entry)

        return unsubscribe

    def _notify(self, changed: set[str]) -> None:
        if not changed:
            return
        with self._subs_lock:
            doc_subs = [(p, list(self._doc_subscribers.get(p, []))) for p in changed]
            query_subs = list(self._query_subscribers)
        for path, callbacks in doc_subs:
            for callback in callbacks:
                self._deliver(callback, self.get(path))
        touched = {collection_of(p) for p in changed}
        for collection, where, callback in query_subs:
            if collection in touched:
                self._deliver(callback, self.query(collection, where))

    def _deliver(self, callback: Callable[[Any], None], value: Any) -> None:
        try:
            callback(value)
        except Exception:
            self._logger.exception("Subscriber callback failed")


def _resolve_timestamps(data: dict[str, Any], now: datetime) -> dict[str, Any]:
    resolved: dict[str, Any] = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = now
        elif isinstance(value, dict):
            resolved[key] = _resolve_timestamps(value, now)
        else:
            resolved[key] = value
    return resolved
