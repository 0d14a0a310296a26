from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TimeGrid:
    date: str  # YYYY-MM-DD
    times: tuple[str, ...]  # sorted, de-duplicated "HH:MM"
    step_minutes: int
    is_override: bool = False

    def __contains__(self, hour: str) -> bool:
        return hour in self.times

    def __len__(self) -> int:
        return len(self.times)

    def index_of(self, hour: str) -> int:
        try:
            return self.times.index(hour)
        except ValueError:
            return -1
