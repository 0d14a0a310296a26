from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from app.application.exceptions import NotAuthenticated
from app.application.ports.document_store import DocumentSnapshot, DocumentStorePort, Unsubscribe
from app.application.ports.identity import IdentityPort
from app.application.use_cases.reservation_engine import ReservationEngine
from app.application.utils.record_paths import history_collection, pointer_path
from app.domain.entities.reservation import CustomerPointer, HistoryRecord, ReservationStatus

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class CustomerReservations:
    """The caller's own pointer, history and live pointer watch."""

    def __init__(self, store: DocumentStorePort, engine: ReservationEngine, identity: IdentityPort) -> None:
        self._store = store
        self._engine = engine
        self._identity = identity
        self._logger = logging.getLogger(__name__)

    def get_active(self) -> CustomerPointer | None:
        """
        Current pointer for the caller, closing it first if its time has passed.
        A rejected pointer is returned as-is so the caller can show the decision.
        """
        customer_id = self._require_user()
        self._engine.complete_if_passed(customer_id)
        snap = self._store.get(pointer_path(customer_id))
        if not snap.exists:
            return None
        return CustomerPointer.from_document(customer_id, snap.to_dict())

    def list_history(self) -> list[HistoryRecord]:
        customer_id = self._require_user()
        records = [HistoryRecord.from_document(s.to_dict()) for s in self._store.query(history_collection(customer_id))]
        return sorted(records, key=lambda r: _aware(r.closed_at), reverse=True)

    def watch(
        self,
        on_change: Callable[[CustomerPointer | None], None],
        on_approved: Callable[[CustomerPointer], None] | None = None,
    ) -> Unsubscribe:
        """
        Follow the caller's pointer. Each push first gives the engine a chance to
        complete a passed reservation; a pending -> approved flip of the same
        group is reported to on_approved once.
        """
        customer_id = self._require_user()
        last: dict[str, CustomerPointer | None] = {"pointer": None}

        def on_snapshot(snap: DocumentSnapshot) -> None:
            pointer = CustomerPointer.from_document(customer_id, snap.to_dict()) if snap.exists else None
            previous = last["pointer"]
            last["pointer"] = pointer

            if (
                on_approved is not None
                and pointer is not None
                and previous is not None
                and previous.status == ReservationStatus.pending
                and pointer.status == ReservationStatus.approved
                and pointer.group_id == previous.group_id
            ):
                on_approved(pointer)

            on_change(pointer)
            if pointer is not None and pointer.is_active:
                self._engine.complete_if_passed(customer_id)

        return self._store.subscribe(pointer_path(customer_id), on_snapshot)

    def _require_user(self) -> str:
        user_id = self._identity.current_user_id()
        if not user_id:
            raise NotAuthenticated("You need to be signed in.")
        return user_id


def _aware(value: datetime | None) -> datetime:
    if value is None:
        return _OLDEST
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
