from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Union

from app.domain.entities.service_catalog import Service, ServiceSelection


class ReservationStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    completed = "completed"
    cancelled = "cancelled"


LIVE_STATUSES = frozenset({ReservationStatus.pending, ReservationStatus.approved})

SOURCE_USER_REQUEST = "user_request"
SOURCE_OWNER_MANUAL = "owner_manual"


def make_group_id(date: str, hour: str) -> str:
    """Composite key for (date, slot): "2026-10-20_15-00"."""
    return f"{date}_{(hour or '').replace(':', '-')}"


def split_group_id(group_id: str) -> tuple[str, str]:
    date, _, safe_hour = (group_id or "").rpartition("_")
    return date, safe_hour.replace("-", ":")


@dataclass(frozen=True)
class CustomerHolder:
    customer_id: str


@dataclass(frozen=True)
class ManualHolder:
    name: str
    phone: str
    service_label: str | None = None


Holder = Union[CustomerHolder, ManualHolder]


def _services_to_document(services: tuple[Service, ...]) -> list[dict[str, Any]]:
    return [s.to_document() for s in services]


def _services_from_document(raw: Any) -> tuple[Service, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(Service.from_document(item) for item in raw if isinstance(item, dict))


def _slots_from_document(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(str(h) for h in raw if h)


@dataclass(frozen=True)
class SlotRecord:
    """One occupied (date, hour) cell of the grid."""

    date: str
    hour: str
    status: ReservationStatus
    holder: Holder
    group_id: str
    is_head: bool
    head_hour: str
    slots: tuple[str, ...]
    services_selected: tuple[Service, ...] = ()
    total_duration_minutes: int = 0
    created_at: datetime | None = None
    approved_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def record_id(self) -> str:
        return make_group_id(self.date, self.hour)

    @property
    def customer_id(self) -> str | None:
        if isinstance(self.holder, CustomerHolder):
            return self.holder.customer_id
        return None

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "date": self.date,
            "hour": self.hour,
            "status": self.status.value,
            "group_id": self.group_id,
            "is_head": self.is_head,
            "head_hour": self.head_hour,
            "slots": list(self.slots),
            "services_selected": _services_to_document(self.services_selected),
            "total_duration_minutes": self.total_duration_minutes,
        }
        if isinstance(self.holder, CustomerHolder):
            doc.update(
                {
                    "source": SOURCE_USER_REQUEST,
                    "customer_id": self.holder.customer_id,
                    "customer_name": None,
                    "customer_phone": None,
                    "service_label": None,
                }
            )
        else:
            doc.update(
                {
                    "source": SOURCE_OWNER_MANUAL,
                    "customer_id": None,
                    "customer_name": self.holder.name,
                    "customer_phone": self.holder.phone,
                    "service_label": self.holder.service_label,
                }
            )
        return doc

    @staticmethod
    def from_document(data: dict[str, Any]) -> "SlotRecord":
        holder: Holder
        if data.get("source") == SOURCE_OWNER_MANUAL or not data.get("customer_id"):
            holder = ManualHolder(
                name=str(data.get("customer_name") or ""),
                phone=str(data.get("customer_phone") or ""),
                service_label=data.get("service_label"),
            )
        else:
            holder = CustomerHolder(customer_id=str(data["customer_id"]))
        date = str(data.get("date", ""))
        hour = str(data.get("hour", ""))
        return SlotRecord(
            date=date,
            hour=hour,
            status=ReservationStatus(data.get("status", ReservationStatus.pending.value)),
            holder=holder,
            group_id=str(data.get("group_id") or make_group_id(date, hour)),
            is_head=bool(data.get("is_head", False)),
            head_hour=str(data.get("head_hour") or hour),
            slots=_slots_from_document(data.get("slots")) or (hour,),
            services_selected=_services_from_document(data.get("services_selected")),
            total_duration_minutes=int(data.get("total_duration_minutes") or 0),
            created_at=data.get("created_at"),
            approved_at=data.get("approved_at"),
            completed_at=data.get("completed_at"),
        )


@dataclass(frozen=True)
class CustomerPointer:
    """A customer's single active reservation, or an empty/rejected marker."""

    customer_id: str
    status: ReservationStatus
    group_id: str | None = None
    date: str | None = None
    start_hour: str | None = None
    slots: tuple[str, ...] = ()
    services_selected: tuple[Service, ...] = ()
    total_duration_minutes: int = 0
    requested_at: datetime | None = None
    approved_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return bool(self.group_id) and self.status in LIVE_STATUSES

    def references(self, group_id: str) -> bool:
        return bool(self.group_id) and self.group_id == group_id

    def to_document(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "status": self.status.value,
            "group_id": self.group_id,
            "date": self.date,
            "start_hour": self.start_hour,
            "slots": list(self.slots),
            "services_selected": _services_to_document(self.services_selected),
            "total_duration_minutes": self.total_duration_minutes,
        }

    @staticmethod
    def from_document(customer_id: str, data: dict[str, Any]) -> "CustomerPointer":
        return CustomerPointer(
            customer_id=customer_id,
            status=ReservationStatus(data.get("status", ReservationStatus.rejected.value)),
            group_id=data.get("group_id") or None,
            date=data.get("date") or None,
            start_hour=data.get("start_hour") or None,
            slots=_slots_from_document(data.get("slots")),
            services_selected=_services_from_document(data.get("services_selected")),
            total_duration_minutes=int(data.get("total_duration_minutes") or 0),
            requested_at=data.get("requested_at"),
            approved_at=data.get("approved_at"),
        )


@dataclass(frozen=True)
class RequestRecord:
    """Audit mirror of a group while it awaits the owner's decision."""

    group_id: str
    customer_id: str
    date: str
    start_hour: str
    status: ReservationStatus
    slots: tuple[str, ...]
    services_selected: tuple[Service, ...] = ()
    total_duration_minutes: int = 0
    created_at: datetime | None = None
    decided_at: datetime | None = None
    decided_by: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "customer_id": self.customer_id,
            "date": self.date,
            "start_hour": self.start_hour,
            "status": self.status.value,
            "slots": list(self.slots),
            "services_selected": _services_to_document(self.services_selected),
            "total_duration_minutes": self.total_duration_minutes,
        }

    @staticmethod
    def from_document(group_id: str, data: dict[str, Any]) -> "RequestRecord":
        start_hour = str(data.get("start_hour") or split_group_id(group_id)[1])
        return RequestRecord(
            group_id=group_id,
            customer_id=str(data.get("customer_id") or ""),
            date=str(data.get("date") or split_group_id(group_id)[0]),
            start_hour=start_hour,
            status=ReservationStatus(data.get("status", ReservationStatus.pending.value)),
            slots=_slots_from_document(data.get("slots")) or (start_hour,),
            services_selected=_services_from_document(data.get("services_selected")),
            total_duration_minutes=int(data.get("total_duration_minutes") or 0),
            created_at=data.get("created_at"),
            decided_at=data.get("decided_at"),
            decided_by=data.get("decided_by"),
        )


@dataclass(frozen=True)
class HistoryRecord:
    group_id: str
    customer_id: str
    date: str
    start_hour: str
    status: ReservationStatus
    slots: tuple[str, ...]
    services_selected: tuple[Service, ...] = ()
    total_duration_minutes: int = 0
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    rejected_at: datetime | None = None

    @property
    def closed_at(self) -> datetime | None:
        return self.completed_at or self.cancelled_at or self.rejected_at

    def to_document(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "customer_id": self.customer_id,
            "date": self.date,
            "start_hour": self.start_hour,
            "status": self.status.value,
            "slots": list(self.slots),
            "services_selected": _services_to_document(self.services_selected),
            "total_duration_minutes": self.total_duration_minutes,
            "cancelled_by": self.cancelled_by,
        }

    @staticmethod
    def from_document(data: dict[str, Any]) -> "HistoryRecord":
        return HistoryRecord(
            group_id=str(data.get("group_id", "")),
            customer_id=str(data.get("customer_id", "")),
            date=str(data.get("date", "")),
            start_hour=str(data.get("start_hour", "")),
            status=ReservationStatus(data.get("status", ReservationStatus.completed.value)),
            slots=_slots_from_document(data.get("slots")),
            services_selected=_services_from_document(data.get("services_selected")),
            total_duration_minutes=int(data.get("total_duration_minutes") or 0),
            completed_at=data.get("completed_at"),
            cancelled_at=data.get("cancelled_at"),
            cancelled_by=data.get("cancelled_by"),
            rejected_at=data.get("rejected_at"),
        )


@dataclass(frozen=True)
class ReservationGroup:
    """
    The booking aggregate. Per-slot records, the customer pointer, the request
    record and the history record are all derived from this one value so the
    views cannot drift apart when a transition is written.
    """

    date: str
    start_hour: str
    slots: tuple[str, ...]
    customer_id: str
    status: ReservationStatus
    services_selected: tuple[Service, ...] = field(default_factory=tuple)
    total_duration_minutes: int = 0

    @property
    def group_id(self) -> str:
        return make_group_id(self.date, self.start_hour)

    @staticmethod
    def new(
        date: str, start_hour: str, slots: tuple[str, ...], customer_id: str, selection: ServiceSelection
    ) -> "ReservationGroup":
        return ReservationGroup(
            date=date,
            start_hour=start_hour,
            slots=slots,
            customer_id=customer_id,
            status=ReservationStatus.pending,
            services_selected=selection.services,
            total_duration_minutes=selection.total_duration_minutes,
        )

    @staticmethod
    def from_pointer(pointer: CustomerPointer) -> "ReservationGroup":
        start_hour = pointer.start_hour or split_group_id(pointer.group_id or "")[1]
        return ReservationGroup(
            date=pointer.date or split_group_id(pointer.group_id or "")[0],
            start_hour=start_hour,
            slots=pointer.slots or (start_hour,),
            customer_id=pointer.customer_id,
            status=pointer.status,
            services_selected=pointer.services_selected,
            total_duration_minutes=pointer.total_duration_minutes,
        )

    @staticmethod
    def from_request(request: RequestRecord) -> "ReservationGroup":
        return ReservationGroup(
            date=request.date,
            start_hour=request.start_hour,
            slots=request.slots,
            customer_id=request.customer_id,
            status=request.status,
            services_selected=request.services_selected,
            total_duration_minutes=request.total_duration_minutes,
        )

    @staticmethod
    def from_slot_record(record: SlotRecord) -> "ReservationGroup":
        return ReservationGroup(
            date=record.date,
            start_hour=record.head_hour,
            slots=record.slots,
            customer_id=record.customer_id or "",
            status=record.status,
            services_selected=record.services_selected,
            total_duration_minutes=record.total_duration_minutes,
        )

    def with_status(self, status: ReservationStatus) -> "ReservationGroup":
        return replace(self, status=status)

    def slot_records(self) -> list[SlotRecord]:
        return [
            SlotRecord(
                date=self.date,
                hour=hour,
                status=self.status,
                holder=CustomerHolder(customer_id=self.customer_id),
                group_id=self.group_id,
                is_head=hour == self.start_hour,
                head_hour=self.start_hour,
                slots=self.slots,
                services_selected=self.services_selected,
                total_duration_minutes=self.total_duration_minutes,
            )
            for hour in self.slots
        ]

    def pointer(self) -> CustomerPointer:
        return CustomerPointer(
            customer_id=self.customer_id,
            status=self.status,
            group_id=self.group_id,
            date=self.date,
            start_hour=self.start_hour,
            slots=self.slots,
            services_selected=self.services_selected,
            total_duration_minutes=self.total_duration_minutes,
        )

    def request_record(self) -> RequestRecord:
        return RequestRecord(
            group_id=self.group_id,
            customer_id=self.customer_id,
            date=self.date,
            start_hour=self.start_hour,
            status=self.status,
            slots=self.slots,
            services_selected=self.services_selected,
            total_duration_minutes=self.total_duration_minutes,
        )

    def history_record(self, cancelled_by: str | None = None) -> HistoryRecord:
        return HistoryRecord(
            group_id=self.group_id,
            customer_id=self.customer_id,
            date=self.date,
            start_hour=self.start_hour,
            status=self.status,
            slots=self.slots,
            services_selected=self.services_selected,
            total_duration_minutes=self.total_duration_minutes,
            cancelled_by=cancelled_by,
        )
