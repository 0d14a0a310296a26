from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from app.application.exceptions import NotAuthenticated, PermissionDenied
from app.application.ports.customer_directory import CustomerDirectoryPort
from app.application.ports.document_store import DocumentSnapshot, DocumentStorePort, Unsubscribe
from app.application.ports.identity import IdentityPort
from app.application.use_cases.reservation_engine import ReservationEngine
from app.application.utils.record_paths import APPOINTMENT_REQUESTS, APPOINTMENTS
from app.domain.entities.reservation import (
    CustomerHolder,
    RequestRecord,
    ReservationGroup,
    ReservationStatus,
    SlotRecord,
)


@dataclass(frozen=True)
class PendingRequestView:
    request: RequestRecord
    customer_name: str


@dataclass(frozen=True)
class ApprovedAppointmentView:
    record: SlotRecord
    display_name: str
    phone: str | None


class OwnerDecisionSurface:
    """Owner-side listing of pending and approved work, delegating decisions to the engine."""

    def __init__(
        self,
        store: DocumentStorePort,
        engine: ReservationEngine,
        directory: CustomerDirectoryPort,
        identity: IdentityPort,
        owner_id: str,
    ) -> None:
        self._store = store
        self._engine = engine
        self._directory = directory
        self._identity = identity
        self._owner_id = owner_id
        self._logger = logging.getLogger(__name__)

    def list_pending(self, date: str) -> list[PendingRequestView]:
        self._require_owner()
        snapshots = self._store.query(
            APPOINTMENT_REQUESTS,
            where=[("status", "==", ReservationStatus.pending.value), ("date", "==", date)],
            order_by="start_hour",
        )
        return self._pending_views(snapshots)

    def watch_pending(self, date: str, callback: Callable[[list[PendingRequestView]], None]) -> Unsubscribe:
        """Push the pending list for a date now and whenever requests change."""
        self._require_owner()

        def on_snapshots(snapshots: list[DocumentSnapshot]) -> None:
            ordered = sorted(snapshots, key=lambda s: str(s.to_dict().get("start_hour") or ""))
            callback(self._pending_views(ordered))

        return self._store.subscribe_query(
            APPOINTMENT_REQUESTS,
            [("status", "==", ReservationStatus.pending.value), ("date", "==", date)],
            on_snapshots,
        )

    def dates_with_pending_requests(self) -> list[str]:
        self._require_owner()
        snapshots = self._store.query(
            APPOINTMENT_REQUESTS, where=[("status", "==", ReservationStatus.pending.value)]
        )
        return sorted({str(s.to_dict().get("date")) for s in snapshots if s.to_dict().get("date")})

    def list_approved(self, date: str, heads_only: bool = True) -> list[ApprovedAppointmentView]:
        self._require_owner()
        snapshots = self._store.query(
            APPOINTMENTS,
            where=[("date", "==", date), ("status", "==", ReservationStatus.approved.value)],
            order_by="hour",
        )
        records = [SlotRecord.from_document(s.to_dict()) for s in snapshots]
        if heads_only:
            records = [r for r in records if r.is_head]

        names: dict[str, str] = {}
        views: list[ApprovedAppointmentView] = []
        for record in records:
            if isinstance(record.holder, CustomerHolder):
                customer_id = record.holder.customer_id
                if customer_id not in names:
                    names[customer_id] = self._lookup_name(customer_id)
                views.append(
                    ApprovedAppointmentView(
                        record=record,
                        display_name=names[customer_id],
                        phone=self._lookup_phone(customer_id),
                    )
                )
            else:
                views.append(
                    ApprovedAppointmentView(
                        record=record,
                        display_name=record.holder.name,
                        phone=record.holder.phone or None,
                    )
                )
        return views

    def approve(self, group_id: str) -> ReservationGroup:
        return self._engine.approve(group_id)

    def reject(self, group_id: str) -> ReservationGroup:
        return self._engine.reject(group_id)

    def cancel_approved(self, date: str, hour: str) -> ReservationGroup:
        self._require_owner()
        return self._engine.cancel_approved(date, hour)

    def _pending_views(self, snapshots: list[DocumentSnapshot]) -> list[PendingRequestView]:
        names: dict[str, str] = {}
        views = []
        for snap in snapshots:
            request = RequestRecord.from_document(snap.id, snap.to_dict())
            if request.customer_id not in names:
                names[request.customer_id] = self._lookup_name(request.customer_id)
            views.append(PendingRequestView(request=request, customer_name=names[request.customer_id]))
        return views

    def _lookup_name(self, customer_id: str) -> str:
        try:
            name = self._directory.display_name(customer_id)
        except Exception as e:
            self._logger.warning("Name lookup failed", extra={"customer_id": customer_id, "error": str(e)})
            return customer_id
        return name or customer_id

    def _lookup_phone(self, customer_id: str) -> str | None:
        try:
            return self._directory.phone(customer_id)
        except Exception as e:
            self._logger.warning("Phone lookup failed", extra={"customer_id": customer_id, "error": str(e)})
            return None

    def _require_owner(self) -> None:
        user_id = self._identity.current_user_id()
        if not user_id:
            raise NotAuthenticated("You need to be signed in.")
        if user_id != self._owner_id:
            raise PermissionDenied("Only the business owner can do this.")
