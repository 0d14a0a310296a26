from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date as date_cls, tzinfo
from typing import Any

from app.application.exceptions import (
    AlreadyDecided,
    AlreadyHasActiveReservation,
    CapacityConflict,
    InvalidInput,
    NotAuthenticated,
    PastDeadline,
    PermissionDenied,
    SlotTaken,
    TransactionConflict,
)
from app.application.ports.clock import ClockPort
from app.application.ports.document_store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStorePort, TransactionPort
from app.application.ports.identity import IdentityPort
from app.application.ports.notifications import NotificationPort
from app.application.use_cases.time_grid_resolver import TimeGridResolver
from app.application.utils.deadlines import is_past
from app.application.utils.record_paths import history_path, pointer_path, request_path, slot_path
from app.application.utils.service_duration import required_slot_count
from app.application.utils.time_grid import minutes_to_time, normalize_hour, time_to_minutes
from app.domain.entities.reservation import (
    CustomerPointer,
    ManualHolder,
    RequestRecord,
    ReservationGroup,
    ReservationStatus,
    SlotRecord,
    make_group_id,
    split_group_id,
)
from app.domain.entities.service_catalog import Service, ServiceSelection
from app.domain.entities.time_grid import TimeGrid

_CLEARED_POINTER_FIELDS: dict[str, Any] = {
    "group_id": None,
    "date": None,
    "start_hour": None,
    "slots": [],
    "services_selected": [],
    "total_duration_minutes": 0,
}


@dataclass(frozen=True)
class ReservationReceipt:
    group_id: str
    date: str
    start_hour: str
    slots: tuple[str, ...]
    services_selected: tuple[Service, ...]
    total_duration_minutes: int
    estimated_end: str
    status: ReservationStatus


class ReservationEngine:
    """
    Slot reservation and approval state machine.

    Every mutation runs inside one store transaction that reads the live
    per-slot records, the customer pointer and the request record before
    writing any of them, so concurrent callers can never both hold a slot.
    """

    def __init__(
        self,
        store: DocumentStorePort,
        clock: ClockPort,
        identity: IdentityPort,
        grid_resolver: TimeGridResolver,
        notifier: NotificationPort,
        timezone: tzinfo,
        owner_id: str,
        completion_grace_seconds: int = 60,
        min_phone_digits: int = 9,
        max_attempts: int = 5,
        record_rejections_in_history: bool = False,
        business_name: str = "Salon",
    ) -> None:
        self._store = store
        self._clock = clock
        self._identity = identity
        self._grid_resolver = grid_resolver
        self._notifier = notifier
        self._timezone = timezone
        self._owner_id = owner_id
        self._grace_seconds = completion_grace_seconds
        self._min_phone_digits = min_phone_digits
        self._max_attempts = max_attempts
        self._record_rejections = record_rejections_in_history
        self._business_name = business_name
        self._logger = logging.getLogger(__name__)

    # -- customer operations -----------------------------------------------

    def request_reservation(self, date: str, start_hour: str, selection: ServiceSelection) -> ReservationReceipt:
        customer_id = self._require_user()
        self._require_date(date)
        if selection.is_empty:
            raise InvalidInput("Select at least one service to continue.")
        hour = normalize_hour(start_hour)
        if not hour:
            raise InvalidInput(f"'{start_hour}' is not a valid time.")

        grid = self._grid_resolver.resolve(date)
        slots = self._walk_slots(grid, hour, selection.total_duration_minutes)
        for h in slots:
            if self._is_held(self._store.get(slot_path(date, h))):
                raise CapacityConflict(
                    f"{h} is already booked, so these services cannot fit from {hour}. "
                    "Remove a service or choose another time."
                )

        def txn(tx: TransactionPort) -> ReservationGroup:
            live_grid = self._grid_resolver.resolve(date, reader=tx)
            live_slots = self._walk_slots(live_grid, hour, selection.total_duration_minutes)
            group = ReservationGroup.new(date, hour, tuple(live_slots), customer_id, selection)
            pointer_snap = tx.get(pointer_path(customer_id))
            slot_snaps = [tx.get(slot_path(date, h)) for h in group.slots]

            if pointer_snap.exists:
                pointer = CustomerPointer.from_document(customer_id, pointer_snap.to_dict())
                if pointer.is_active:
                    raise AlreadyHasActiveReservation(
                        "You already have an active appointment. Cancel it before booking a new one."
                    )
            for h, snap in zip(group.slots, slot_snaps):
                if self._is_held(snap):
                    raise SlotTaken(f"{h} was just taken. Try another time or day.")

            for record in group.slot_records():
                tx.set(
                    slot_path(date, record.hour),
                    {**record.to_document(), "created_at": SERVER_TIMESTAMP, "requested_at": SERVER_TIMESTAMP},
                )
            tx.set(
                pointer_path(customer_id),
                {**group.pointer().to_document(), "requested_at": SERVER_TIMESTAMP, "created_at": SERVER_TIMESTAMP},
            )
            tx.set(
                request_path(group.group_id),
                {**group.request_record().to_document(), "created_at": SERVER_TIMESTAMP},
            )
            return group

        try:
            group = self._store.run_transaction(txn, self._max_attempts)
        except TransactionConflict as e:
            raise SlotTaken("The time was just taken. Try another time or day.") from e

        estimated_end = minutes_to_time(time_to_minutes(hour) + selection.total_duration_minutes)
        self._logger.info(
            "Reservation requested",
            extra={"group_id": group.group_id, "customer_id": customer_id, "date": date, "hour": hour},
        )
        self._notify(
            customer_id,
            "Request sent",
            f"Waiting for approval: {date} {hour}-{estimated_end}",
            {"group_id": group.group_id, "status": ReservationStatus.pending.value},
        )
        return ReservationReceipt(
            group_id=group.group_id,
            date=date,
            start_hour=hour,
            slots=group.slots,
            services_selected=group.services_selected,
            total_duration_minutes=group.total_duration_minutes,
            estimated_end=estimated_end,
            status=ReservationStatus.pending,
        )

    def cancel_pending_request(self, group_id: str) -> int:
        """
        Withdraw a pending request. Safe to repeat: only records still pending
        and still tied to this group are removed. Returns the number of slots freed.
        """
        customer_id = self._require_user()
        date, start_hour = split_group_id(group_id)
        if self._is_past(date, start_hour):
            raise PastDeadline("The appointment time has passed and can no longer be cancelled.")

        def txn(tx: TransactionPort) -> int:
            pointer_snap = tx.get(pointer_path(customer_id))
            request_snap = tx.get(request_path(group_id))

            request = RequestRecord.from_document(group_id, request_snap.to_dict()) if request_snap.exists else None
            pointer = (
                CustomerPointer.from_document(customer_id, pointer_snap.to_dict()) if pointer_snap.exists else None
            )
            if request is not None:
                if request.customer_id != customer_id:
                    raise PermissionDenied("This request belongs to another customer.")
                if request.status != ReservationStatus.pending:
                    raise AlreadyDecided(f"The request was already {request.status.value}.")

            if request is not None:
                slots = request.slots
            elif pointer is not None and pointer.references(group_id):
                slots = pointer.slots
            else:
                slots = (start_hour,)
            slot_snaps = [tx.get(slot_path(date, h)) for h in slots]

            freed = 0
            for h, snap in zip(slots, slot_snaps):
                if not snap.exists:
                    continue
                live = SlotRecord.from_document(snap.to_dict())
                if (
                    live.customer_id == customer_id
                    and live.status == ReservationStatus.pending
                    and live.group_id == group_id
                ):
                    tx.delete(slot_path(date, h))
                    freed += 1
            if pointer is not None and pointer.references(group_id) and pointer.status == ReservationStatus.pending:
                tx.delete(pointer_path(customer_id))
            if request is not None:
                tx.delete(request_path(group_id))
            return freed

        freed = self._store.run_transaction(txn, self._max_attempts)
        self._logger.info(
            "Pending request cancelled",
            extra={"group_id": group_id, "customer_id": customer_id, "reason": f"freed={freed}"},
        )
        return freed

    # -- owner decisions ---------------------------------------------------

    def approve(self, group_id: str) -> ReservationGroup:
        owner_id = self._require_owner()

        def txn(tx: TransactionPort) -> ReservationGroup:
            request = self._read_pending_request(tx, group_id)
            pointer_snap = tx.get(pointer_path(request.customer_id))
            slot_snaps = [tx.get(slot_path(request.date, h)) for h in request.slots]

            if not pointer_snap.exists:
                raise AlreadyDecided("The customer no longer has a reservation on record.")
            pointer = CustomerPointer.from_document(request.customer_id, pointer_snap.to_dict())
            if not pointer.references(group_id):
                raise AlreadyDecided("The customer's active reservation is a different one.")
            for h, snap in zip(request.slots, slot_snaps):
                if not snap.exists:
                    raise AlreadyDecided(f"Slot {h} is missing (it may have been cancelled).")
                live = SlotRecord.from_document(snap.to_dict())
                if live.status != ReservationStatus.pending:
                    raise AlreadyDecided(f"Slot {h} is no longer pending.")
                if live.customer_id != request.customer_id or live.group_id != group_id:
                    raise AlreadyDecided(f"Slot {h} now belongs to another reservation.")

            decision = {"status": ReservationStatus.approved.value, "approved_at": SERVER_TIMESTAMP, "approved_by": owner_id}
            for h in request.slots:
                tx.update(slot_path(request.date, h), decision)
            tx.set(pointer_path(request.customer_id), decision, merge=True)
            tx.update(
                request_path(group_id),
                {"status": ReservationStatus.approved.value, "decided_at": SERVER_TIMESTAMP, "decided_by": owner_id},
            )
            return ReservationGroup.from_request(request).with_status(ReservationStatus.approved)

        group = self._store.run_transaction(txn, self._max_attempts)
        self._logger.info(
            "Reservation approved",
            extra={"group_id": group_id, "customer_id": group.customer_id, "status": group.status.value},
        )
        self._notify(
            group.customer_id,
            "Appointment approved",
            f"{self._business_name}: {group.date} at {group.start_hour}",
            {"group_id": group_id, "status": group.status.value},
        )
        return group

    def reject(self, group_id: str) -> ReservationGroup:
        owner_id = self._require_owner()

        def txn(tx: TransactionPort) -> ReservationGroup:
            request = self._read_pending_request(tx, group_id)
            pointer_snap = tx.get(pointer_path(request.customer_id))
            slot_snaps = [tx.get(slot_path(request.date, h)) for h in request.slots]
            group = ReservationGroup.from_request(request).with_status(ReservationStatus.rejected)

            tx.update(
                request_path(group_id),
                {"status": ReservationStatus.rejected.value, "decided_at": SERVER_TIMESTAMP, "decided_by": owner_id},
            )
            for h, snap in zip(request.slots, slot_snaps):
                if not snap.exists:
                    continue
                live = SlotRecord.from_document(snap.to_dict())
                if live.status == ReservationStatus.pending and live.group_id == group_id:
                    tx.delete(slot_path(request.date, h))
            if pointer_snap.exists:
                pointer = CustomerPointer.from_document(request.customer_id, pointer_snap.to_dict())
                if pointer.references(group_id):
                    tx.set(
                        pointer_path(request.customer_id),
                        {
                            **_CLEARED_POINTER_FIELDS,
                            "status": ReservationStatus.rejected.value,
                            "rejected_at": SERVER_TIMESTAMP,
                        },
                        merge=True,
                    )
            if self._record_rejections:
                tx.set(
                    history_path(request.customer_id, group_id),
                    {**group.history_record().to_document(), "rejected_at": SERVER_TIMESTAMP},
                )
            return group

        group = self._store.run_transaction(txn, self._max_attempts)
        self._logger.info(
            "Reservation rejected",
            extra={"group_id": group_id, "customer_id": group.customer_id, "status": group.status.value},
        )
        self._notify(
            group.customer_id,
            "Request declined",
            f"{self._business_name} could not confirm {group.date} at {group.start_hour}. Please pick another time.",
            {"group_id": group_id, "status": group.status.value},
        )
        return group

    def cancel_approved(self, date: str, hour: str) -> ReservationGroup:
        """Cancel an approved appointment from its head slot, by its customer or the owner."""
        caller_id = self._require_user()
        self._require_date(date)
        head_hour = normalize_hour(hour)
        if not head_hour:
            raise InvalidInput(f"'{hour}' is not a valid time.")
        if self._is_past(date, head_hour):
            raise PastDeadline("The appointment time has passed and can no longer be cancelled.")
        by_owner = caller_id == self._owner_id

        def txn(tx: TransactionPort) -> ReservationGroup:
            head_snap = tx.get(slot_path(date, head_hour))
            if not head_snap.exists:
                raise AlreadyDecided("There is no appointment at this time.")
            head = SlotRecord.from_document(head_snap.to_dict())
            if not head.is_head:
                raise InvalidInput("Cancel from the first slot of the appointment.")
            if not by_owner and head.customer_id != caller_id:
                raise PermissionDenied("This appointment belongs to another customer.")
            if head.status == ReservationStatus.pending:
                raise InvalidInput("This request is still pending; withdraw the request instead.")
            if head.status != ReservationStatus.approved:
                raise AlreadyDecided(f"The appointment is already {head.status.value}.")

            customer_id = head.customer_id
            pointer_snap = tx.get(pointer_path(customer_id)) if customer_id else None
            members = [h for h in head.slots if h != head_hour]
            member_snaps = [tx.get(slot_path(date, h)) for h in members]

            now = self._clock.now()
            tx.delete(slot_path(date, head_hour))
            for h, snap in zip(members, member_snaps):
                if not snap.exists:
                    continue
                live = SlotRecord.from_document(snap.to_dict())
                if (
                    live.group_id == head.group_id
                    and live.holder == head.holder
                    and live.status == ReservationStatus.approved
                    and not is_past(date, h, now, self._timezone)
                ):
                    tx.delete(slot_path(date, h))

            group = ReservationGroup.from_slot_record(head).with_status(ReservationStatus.cancelled)
            if customer_id:
                if pointer_snap is not None and pointer_snap.exists:
                    pointer = CustomerPointer.from_document(customer_id, pointer_snap.to_dict())
                    if pointer.references(head.group_id):
                        tx.delete(pointer_path(customer_id))
                tx.set(
                    history_path(customer_id, head.group_id),
                    {
                        **group.history_record(cancelled_by="owner" if by_owner else "customer").to_document(),
                        "cancelled_at": SERVER_TIMESTAMP,
                    },
                    merge=True,
                )
            return group

        group = self._store.run_transaction(txn, self._max_attempts)
        self._logger.info(
            "Approved appointment cancelled",
            extra={
                "group_id": group.group_id,
                "customer_id": group.customer_id or None,
                "reason": "owner" if by_owner else "customer",
            },
        )
        if by_owner and group.customer_id:
            self._notify(
                group.customer_id,
                "Appointment cancelled",
                f"{self._business_name} cancelled your appointment on {group.date} at {group.start_hour}.",
                {"group_id": group.group_id, "status": group.status.value},
            )
        return group

    # -- system transitions ------------------------------------------------

    def complete_if_passed(self, customer_id: str | None = None) -> ReservationGroup | None:
        """
        Close the customer's reservation once its start time (plus grace) has passed.

        Approved groups become completed and are written to history. A pending
        request that was never decided lapses: its records are cleared without
        history. Returns the closed group, or None when nothing was due.
        """
        target_id = self._resolve_target(customer_id)
        pointer = self._read_pointer(target_id)
        if pointer is None or not self._is_due(pointer):
            return None

        def txn(tx: TransactionPort) -> ReservationGroup | None:
            pointer_snap = tx.get(pointer_path(target_id))
            if not pointer_snap.exists:
                return None
            live_pointer = CustomerPointer.from_document(target_id, pointer_snap.to_dict())
            if not live_pointer.references(pointer.group_id or "") or not self._is_due(live_pointer):
                return None

            group = ReservationGroup.from_pointer(live_pointer)
            slot_snaps = [tx.get(slot_path(group.date, h)) for h in group.slots]

            if live_pointer.status == ReservationStatus.approved:
                completed = group.with_status(ReservationStatus.completed)
                tx.set(
                    history_path(target_id, group.group_id),
                    {**completed.history_record().to_document(), "completed_at": SERVER_TIMESTAMP},
                    merge=True,
                )
                for h, snap in zip(group.slots, slot_snaps):
                    if not snap.exists:
                        continue
                    live = SlotRecord.from_document(snap.to_dict())
                    if live.group_id == group.group_id and live.status == ReservationStatus.approved:
                        tx.update(
                            slot_path(group.date, h),
                            {"status": ReservationStatus.completed.value, "completed_at": SERVER_TIMESTAMP},
                        )
                tx.delete(pointer_path(target_id))
                return completed

            request_snap = tx.get(request_path(group.group_id))
            for h, snap in zip(group.slots, slot_snaps):
                if not snap.exists:
                    continue
                live = SlotRecord.from_document(snap.to_dict())
                if live.group_id == group.group_id and live.status == ReservationStatus.pending:
                    tx.delete(slot_path(group.date, h))
            if request_snap.exists:
                tx.delete(request_path(group.group_id))
            tx.delete(pointer_path(target_id))
            return group.with_status(ReservationStatus.cancelled)

        closed = self._store.run_transaction(txn, self._max_attempts)
        if closed is not None:
            self._logger.info(
                "Reservation closed after its time passed",
                extra={"group_id": closed.group_id, "customer_id": target_id, "status": closed.status.value},
            )
        return closed

    # -- owner-direct booking ----------------------------------------------

    def create_manual_booking(
        self,
        date: str,
        hour: str,
        customer_name: str,
        customer_phone: str,
        service_label: str | None = None,
    ) -> SlotRecord:
        """Book a single slot for a walk-in or phone customer, approved immediately."""
        owner_id = self._require_owner()
        self._require_date(date)
        slot_hour = normalize_hour(hour)
        name = (customer_name or "").strip()
        phone = "".join(ch for ch in (customer_phone or "") if ch.isdigit())
        if not slot_hour or not name or not phone:
            raise InvalidInput("Hour, name and phone are required.")
        if len(phone) < self._min_phone_digits:
            raise InvalidInput("The phone number is not valid.")

        grid = self._grid_resolver.resolve(date)
        if len(grid) > 0 and slot_hour not in grid:
            raise InvalidInput(f"{slot_hour} is not an available time on {date}.")

        record = SlotRecord(
            date=date,
            hour=slot_hour,
            status=ReservationStatus.approved,
            holder=ManualHolder(name=name, phone=phone, service_label=(service_label or "").strip() or None),
            group_id=make_group_id(date, slot_hour),
            is_head=True,
            head_hour=slot_hour,
            slots=(slot_hour,),
        )

        def txn(tx: TransactionPort) -> None:
            existing = tx.get(slot_path(date, slot_hour))
            if self._is_held(existing):
                raise SlotTaken(f"{slot_hour} is already taken.")
            tx.set(
                slot_path(date, slot_hour),
                {
                    **record.to_document(),
                    "created_at": SERVER_TIMESTAMP,
                    "approved_at": SERVER_TIMESTAMP,
                    "approved_by": owner_id,
                },
            )

        self._store.run_transaction(txn, self._max_attempts)
        self._logger.info("Manual appointment created", extra={"group_id": record.group_id, "date": date, "hour": slot_hour})
        return record

    # -- helpers -----------------------------------------------------------

    def _walk_slots(self, grid: TimeGrid, start_hour: str, total_duration_minutes: int) -> list[str]:
        start_idx = grid.index_of(start_hour)
        if start_idx < 0:
            raise InvalidInput(f"{start_hour} is not an available time on {grid.date}.")

        required = required_slot_count(total_duration_minutes, grid.step_minutes)
        now = self._clock.now()
        slots: list[str] = []
        for i in range(required):
            idx = start_idx + i
            if idx >= len(grid.times):
                raise CapacityConflict(
                    "There is not enough continuous time for these services on this day. "
                    "Remove a service or choose another day."
                )
            hour = grid.times[idx]
            if i > 0 and time_to_minutes(hour) - time_to_minutes(grid.times[idx - 1]) != grid.step_minutes:
                raise CapacityConflict(
                    "The times on this day are not continuous enough for these services. "
                    "Remove a service or choose another day."
                )
            if is_past(grid.date, hour, now, self._timezone):
                raise PastDeadline("Part of the requested time has already passed.")
            slots.append(hour)
        return slots

    @staticmethod
    def _is_held(snap: DocumentSnapshot) -> bool:
        return snap.exists and SlotRecord.from_document(snap.to_dict()).is_live

    def _read_pending_request(self, tx: TransactionPort, group_id: str) -> RequestRecord:
        snap = tx.get(request_path(group_id))
        if not snap.exists:
            raise AlreadyDecided("The request no longer exists.")
        request = RequestRecord.from_document(group_id, snap.to_dict())
        if request.status != ReservationStatus.pending:
            raise AlreadyDecided(f"The request was already {request.status.value}.")
        return request

    def _read_pointer(self, customer_id: str) -> CustomerPointer | None:
        snap = self._store.get(pointer_path(customer_id))
        if not snap.exists:
            return None
        return CustomerPointer.from_document(customer_id, snap.to_dict())

    def _is_due(self, pointer: CustomerPointer) -> bool:
        if not pointer.is_active or not pointer.date or not pointer.start_hour:
            return False
        return is_past(pointer.date, pointer.start_hour, self._clock.now(), self._timezone, self._grace_seconds)

    def _is_past(self, date: str, hour: str) -> bool:
        return is_past(date, hour, self._clock.now(), self._timezone)

    def _require_user(self) -> str:
        user_id = self._identity.current_user_id()
        if not user_id:
            raise NotAuthenticated("You need to be signed in.")
        return user_id

    def _require_owner(self) -> str:
        user_id = self._require_user()
        if user_id != self._owner_id:
            raise PermissionDenied("Only the business owner can do this.")
        return user_id

    def _resolve_target(self, customer_id: str | None) -> str:
        caller_id = self._require_user()
        if customer_id is None or customer_id == caller_id:
            return caller_id
        if caller_id != self._owner_id:
            raise PermissionDenied("You can only act on your own reservation.")
        return customer_id

    def _require_date(self, date: str) -> None:
        try:
            date_cls.fromisoformat(date)
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"'{date}' is not a valid date (expected YYYY-MM-DD).") from e

    def _notify(self, customer_id: str, title: str, body: str, data: dict[str, Any]) -> None:
        try:
            self._notifier.notify(customer_id, title, body, data)
        except Exception as e:
            self._logger.warning(
                "Notification failed", extra={"customer_id": customer_id, "error": str(e)}
            )
