from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Service:
    id: str
    name: str
    duration_minutes: int

    def to_document(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "duration_minutes": self.duration_minutes}

    @staticmethod
    def from_document(data: dict[str, Any]) -> "Service":
        return Service(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            duration_minutes=int(data.get("duration_minutes") or 0),
        )


@dataclass(frozen=True)
class ServiceSelection:
    """Services chosen for one booking; a snapshot independent of later catalog edits."""

    services: tuple[Service, ...] = field(default_factory=tuple)
    total_duration_minutes: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.services or self.total_duration_minutes <= 0
