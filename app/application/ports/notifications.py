from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class NotificationPort(ABC):
    @abstractmethod
    def notify(self, customer_id: str, title: str, body: str, data: dict[str, Any] | None = None) -> None:
        raise NotImplementedError
