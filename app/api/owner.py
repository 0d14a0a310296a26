from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.api.errors import to_http_exception
from app.api.reservations import group_schema, service_schemas
from app.api.schemas import (
    ApprovedAppointmentSchema,
    ManualBookingRequestSchema,
    PendingRequestSchema,
    ReservationGroupSchema,
)
from app.application.exceptions import BookingError
from app.application.use_cases.owner_decisions import ApprovedAppointmentView, OwnerDecisionSurface
from app.application.use_cases.reservation_engine import ReservationEngine
from app.domain.entities.reservation import ManualHolder, SlotRecord
from app.wiring.dependencies import get_owner_decisions, get_reservation_engine

router = APIRouter()


def appointment_schema(record: SlotRecord, display_name: str, phone: str | None) -> ApprovedAppointmentSchema:
    return ApprovedAppointmentSchema(
        group_id=record.group_id,
        date=record.date,
        hour=record.hour,
        is_head=record.is_head,
        slots=list(record.slots),
        customer_id=record.customer_id,
        display_name=display_name,
        phone=phone,
        service_label=record.holder.service_label if isinstance(record.holder, ManualHolder) else None,
        services_selected=service_schemas(record.services_selected),
        total_duration_minutes=record.total_duration_minutes,
    )


@router.get("/requests", response_model=list[PendingRequestSchema])
def pending_requests(date: str = Query(...), surface: OwnerDecisionSurface = Depends(get_owner_decisions)):
    try:
        views = surface.list_pending(date)
    except BookingError as e:
        raise to_http_exception(e)
    return [
        PendingRequestSchema(
            group_id=v.request.group_id,
            customer_id=v.request.customer_id,
            customer_name=v.customer_name,
            date=v.request.date,
            start_hour=v.request.start_hour,
            slots=list(v.request.slots),
            services_selected=service_schemas(v.request.services_selected),
            total_duration_minutes=v.request.total_duration_minutes,
            created_at=v.request.created_at,
        )
        for v in views
    ]


@router.get("/requests/dates", response_model=list[str])
def pending_request_dates(surface: OwnerDecisionSurface = Depends(get_owner_decisions)):
    try:
        return surface.dates_with_pending_requests()
    except BookingError as e:
        raise to_http_exception(e)


@router.post("/requests/{group_id}/approve", response_model=ReservationGroupSchema)
def approve(group_id: str, surface: OwnerDecisionSurface = Depends(get_owner_decisions)):
    try:
        group = surface.approve(group_id)
    except BookingError as e:
        raise to_http_exception(e)
    return group_schema(group)


@router.post("/requests/{group_id}/reject", response_model=ReservationGroupSchema)
def reject(group_id: str, surface: OwnerDecisionSurface = Depends(get_owner_decisions)):
    try:
        group = surface.reject(group_id)
    except BookingError as e:
        raise to_http_exception(e)
    return group_schema(group)


@router.get("/appointments", response_model=list[ApprovedAppointmentSchema])
def approved_appointments(
    date: str = Query(...),
    heads_only: bool = Query(True),
    surface: OwnerDecisionSurface = Depends(get_owner_decisions),
):
    try:
        views: list[ApprovedAppointmentView] = surface.list_approved(date, heads_only=heads_only)
    except BookingError as e:
        raise to_http_exception(e)
    return [appointment_schema(v.record, v.display_name, v.phone) for v in views]


@router.post("/appointments/manual", response_model=ApprovedAppointmentSchema, status_code=201)
def manual_booking(req: ManualBookingRequestSchema, engine: ReservationEngine = Depends(get_reservation_engine)):
    try:
        record = engine.create_manual_booking(req.date, req.hour, req.name, req.phone, req.service_label)
    except BookingError as e:
        raise to_http_exception(e)
    holder = record.holder
    return appointment_schema(
        record,
        display_name=holder.name if isinstance(holder, ManualHolder) else "",
        phone=holder.phone if isinstance(holder, ManualHolder) else None,
    )
