from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from enum import Enum
from typing import Callable

from app.application.ports.clock import ClockPort
from app.application.ports.document_store import DocumentSnapshot, DocumentStorePort, Unsubscribe
from app.application.ports.identity import IdentityPort
from app.application.use_cases.time_grid_resolver import TimeGridResolver
from app.application.utils.deadlines import is_past
from app.application.utils.record_paths import APPOINTMENTS
from app.domain.entities.reservation import ReservationStatus, SlotRecord
from app.domain.entities.time_grid import TimeGrid


class SlotState(str, Enum):
    free = "free"
    pending = "pending"
    approved = "approved"
    completed = "completed"
    past = "past"


@dataclass(frozen=True)
class SlotView:
    hour: str
    state: SlotState
    is_mine: bool = False
    is_head: bool = False
    group_id: str | None = None


@dataclass(frozen=True)
class DayBoard:
    date: str
    step_minutes: int
    is_override: bool
    slots: tuple[SlotView, ...]


_SHOWN_STATUSES = {
    ReservationStatus.pending: SlotState.pending,
    ReservationStatus.approved: SlotState.approved,
    ReservationStatus.completed: SlotState.completed,
}


class DaySchedule:
    def __init__(
        self,
        store: DocumentStorePort,
        grid_resolver: TimeGridResolver,
        clock: ClockPort,
        identity: IdentityPort,
        timezone: tzinfo,
    ) -> None:
        self._store = store
        self._grid_resolver = grid_resolver
        self._clock = clock
        self._identity = identity
        self._timezone = timezone

    def list_slots(self, date: str) -> DayBoard:
        grid = self._grid_resolver.resolve(date)
        snapshots = self._store.query(APPOINTMENTS, where=[("date", "==", date)])
        return self._build(grid, snapshots)

    def watch_day(self, date: str, callback: Callable[[DayBoard], None]) -> Unsubscribe:
        """Push the board now and again whenever an appointment on that date changes."""
        grid = self._grid_resolver.resolve(date)
        return self._store.subscribe_query(
            APPOINTMENTS,
            [("date", "==", date)],
            lambda snapshots: callback(self._build(grid, snapshots)),
        )

    def _build(self, grid: TimeGrid, snapshots: list[DocumentSnapshot]) -> DayBoard:
        caller_id = self._identity.current_user_id()
        now = self._clock.now()
        by_hour: dict[str, SlotRecord] = {}
        for snap in snapshots:
            record = SlotRecord.from_document(snap.to_dict())
            if record.status in _SHOWN_STATUSES:
                by_hour[record.hour] = record

        views = []
        for hour in grid.times:
            record = by_hour.get(hour)
            if record is not None:
                views.append(
                    SlotView(
                        hour=hour,
                        state=_SHOWN_STATUSES[record.status],
                        is_mine=bool(caller_id) and record.customer_id == caller_id,
                        is_head=record.is_head,
                        group_id=record.group_id,
                    )
                )
            elif is_past(grid.date, hour, now, self._timezone):
                views.append(SlotView(hour=hour, state=SlotState.past))
            else:
                views.append(SlotView(hour=hour, state=SlotState.free))
        return DayBoard(
            date=grid.date,
            step_minutes=grid.step_minutes,
            is_override=grid.is_override,
            slots=tuple(views),
        )
