from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.errors import to_http_exception
from app.api.schemas import (
    ActiveReservationSchema,
    CancelPendingResponseSchema,
    DayBoardSchema,
    HistoryRecordSchema,
    PointerSchema,
    ReservationGroupSchema,
    ReservationReceiptSchema,
    ReservationRequestSchema,
    ServiceSchema,
    SlotViewSchema,
)
from app.application.exceptions import BookingError
from app.application.use_cases.customer_reservations import CustomerReservations
from app.application.use_cases.day_schedule import DaySchedule
from app.application.use_cases.reservation_engine import ReservationEngine
from app.application.use_cases.service_duration_calculator import ServiceDurationCalculator
from app.domain.entities.reservation import ReservationGroup
from app.domain.entities.service_catalog import Service
from app.wiring.dependencies import (
    get_customer_reservations,
    get_day_schedule,
    get_reservation_engine,
    get_service_calculator,
)

router = APIRouter()


def service_schemas(services: tuple[Service, ...] | list[Service]) -> list[ServiceSchema]:
    return [ServiceSchema(id=s.id, name=s.name, duration_minutes=s.duration_minutes) for s in services]


def group_schema(group: ReservationGroup) -> ReservationGroupSchema:
    return ReservationGroupSchema(
        group_id=group.group_id,
        date=group.date,
        start_hour=group.start_hour,
        slots=list(group.slots),
        customer_id=group.customer_id or None,
        status=group.status,
        services_selected=service_schemas(group.services_selected),
        total_duration_minutes=group.total_duration_minutes,
    )


@router.get("/services", response_model=list[ServiceSchema])
def list_services(calculator: ServiceDurationCalculator = Depends(get_service_calculator)):
    return service_schemas(calculator.catalog())


@router.get("/days/{date}/slots", response_model=DayBoardSchema)
def day_slots(date: str, schedule: DaySchedule = Depends(get_day_schedule)):
    board = schedule.list_slots(date)
    return DayBoardSchema(
        date=board.date,
        step_minutes=board.step_minutes,
        is_override=board.is_override,
        slots=[
            SlotViewSchema(
                hour=v.hour, state=v.state, is_mine=v.is_mine, is_head=v.is_head, group_id=v.group_id
            )
            for v in board.slots
        ],
    )


@router.post("/reservations", response_model=ReservationReceiptSchema, status_code=201)
def request_reservation(
    req: ReservationRequestSchema,
    engine: ReservationEngine = Depends(get_reservation_engine),
    calculator: ServiceDurationCalculator = Depends(get_service_calculator),
):
    selection = calculator.calculate(req.service_ids)
    try:
        receipt = engine.request_reservation(req.date, req.start_hour, selection)
    except BookingError as e:
        raise to_http_exception(e)
    return ReservationReceiptSchema(
        group_id=receipt.group_id,
        date=receipt.date,
        start_hour=receipt.start_hour,
        slots=list(receipt.slots),
        services_selected=service_schemas(receipt.services_selected),
        total_duration_minutes=receipt.total_duration_minutes,
        estimated_end=receipt.estimated_end,
        status=receipt.status,
    )


@router.get("/me/reservation", response_model=ActiveReservationSchema)
def active_reservation(reservations: CustomerReservations = Depends(get_customer_reservations)):
    try:
        pointer = reservations.get_active()
    except BookingError as e:
        raise to_http_exception(e)
    if pointer is None:
        return ActiveReservationSchema(reservation=None)
    return ActiveReservationSchema(
        reservation=PointerSchema(
            status=pointer.status,
            group_id=pointer.group_id,
            date=pointer.date,
            start_hour=pointer.start_hour,
            slots=list(pointer.slots),
            services_selected=service_schemas(pointer.services_selected),
            total_duration_minutes=pointer.total_duration_minutes,
        )
    )


@router.delete("/me/reservation/request/{group_id}", response_model=CancelPendingResponseSchema)
def cancel_pending_request(group_id: str, engine: ReservationEngine = Depends(get_reservation_engine)):
    try:
        freed = engine.cancel_pending_request(group_id)
    except BookingError as e:
        raise to_http_exception(e)
    return CancelPendingResponseSchema(group_id=group_id, slots_freed=freed)


@router.post("/appointments/{date}/{hour}/cancel", response_model=ReservationGroupSchema)
def cancel_approved(date: str, hour: str, engine: ReservationEngine = Depends(get_reservation_engine)):
    try:
        group = engine.cancel_approved(date, hour)
    except BookingError as e:
        raise to_http_exception(e)
    return group_schema(group)


@router.get("/me/history", response_model=list[HistoryRecordSchema])
def history(reservations: CustomerReservations = Depends(get_customer_reservations)):
    try:
        records = reservations.list_history()
    except BookingError as e:
        raise to_http_exception(e)
    return [
        HistoryRecordSchema(
            group_id=r.group_id,
            date=r.date,
            start_hour=r.start_hour,
            status=r.status,
            slots=list(r.slots),
            services_selected=service_schemas(r.services_selected),
            total_duration_minutes=r.total_duration_minutes,
            completed_at=r.completed_at,
            cancelled_at=r.cancelled_at,
            cancelled_by=r.cancelled_by,
            rejected_at=r.rejected_at,
        )
        for r in records
    ]
