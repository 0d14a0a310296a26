from datetime import datetime

from pydantic import BaseModel, Field

from app.application.use_cases.day_schedule import SlotState
from app.domain.entities.reservation import ReservationStatus


class ServiceSchema(BaseModel):
    id: str
    name: str
    duration_minutes: int


class SlotViewSchema(BaseModel):
    hour: str
    state: SlotState
    is_mine: bool = False
    is_head: bool = False
    group_id: str | None = None


class DayBoardSchema(BaseModel):
    date: str
    step_minutes: int
    is_override: bool
    slots: list[SlotViewSchema]


class ReservationRequestSchema(BaseModel):
    date: str
    start_hour: str
    service_ids: list[str] = Field(default_factory=list)


class ReservationReceiptSchema(BaseModel):
    group_id: str
    date: str
    start_hour: str
    slots: list[str]
    services_selected: list[ServiceSchema]
    total_duration_minutes: int
    estimated_end: str
    status: ReservationStatus


class PointerSchema(BaseModel):
    status: ReservationStatus
    group_id: str | None = None
    date: str | None = None
    start_hour: str | None = None
    slots: list[str] = Field(default_factory=list)
    services_selected: list[ServiceSchema] = Field(default_factory=list)
    total_duration_minutes: int = 0


class ActiveReservationSchema(BaseModel):
    reservation: PointerSchema | None = None


class CancelPendingResponseSchema(BaseModel):
    group_id: str
    slots_freed: int


class ReservationGroupSchema(BaseModel):
    group_id: str
    date: str
    start_hour: str
    slots: list[str]
    customer_id: str | None = None
    status: ReservationStatus
    services_selected: list[ServiceSchema] = Field(default_factory=list)
    total_duration_minutes: int = 0


class HistoryRecordSchema(BaseModel):
    group_id: str
    date: str
    start_hour: str
    status: ReservationStatus
    slots: list[str]
    services_selected: list[ServiceSchema] = Field(default_factory=list)
    total_duration_minutes: int = 0
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    rejected_at: datetime | None = None


class PendingRequestSchema(BaseModel):
    group_id: str
    customer_id: str
    customer_name: str
    date: str
    start_hour: str
    slots: list[str]
    services_selected: list[ServiceSchema] = Field(default_factory=list)
    total_duration_minutes: int = 0
    created_at: datetime | None = None


class ApprovedAppointmentSchema(BaseModel):
    group_id: str
    date: str
    hour: str
    is_head: bool
    slots: list[str]
    customer_id: str | None = None
    display_name: str
    phone: str | None = None
    service_label: str | None = None
    services_selected: list[ServiceSchema] = Field(default_factory=list)
    total_duration_minutes: int = 0


class ManualBookingRequestSchema(BaseModel):
    date: str
    hour: str
    name: str
    phone: str
    service_label: str | None = None
