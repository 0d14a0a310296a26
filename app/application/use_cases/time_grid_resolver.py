from __future__ import annotations

import logging

from app.application.ports.business_config import BusinessConfigPort
from app.application.ports.document_store import DocumentReader
from app.application.utils.time_grid import FALLBACK_SLOT_MINUTES, slot_step_minutes, unique_sorted_times
from app.domain.entities.time_grid import TimeGrid


class TimeGridResolver:
    """
    Resolve the bookable slot grid for a date.

    A per-date override replaces the business default entirely, including an
    empty override which closes the day.
    """

    def __init__(self, config: BusinessConfigPort, fallback_step_minutes: int = FALLBACK_SLOT_MINUTES) -> None:
        self._config = config
        self._fallback_step = fallback_step_minutes
        self._logger = logging.getLogger(__name__)

    def resolve(self, date: str, reader: DocumentReader | None = None) -> TimeGrid:
        override = self._config.slot_override(date, reader)
        if override is not None:
            times = unique_sorted_times(override)
            is_override = True
        else:
            times = unique_sorted_times(self._config.default_slot_times(reader))
            is_override = False

        step = slot_step_minutes(times, self._fallback_step)
        self._logger.debug(
            "Resolved time grid",
            extra={"date": date, "reason": f"override={is_override} slots={len(times)} step={step}"},
        )
        return TimeGrid(date=date, times=tuple(times), step_minutes=step, is_override=is_override)
