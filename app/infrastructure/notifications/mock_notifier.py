from __future__ import annotations

import logging
from typing import Any

from app.application.ports.notifications import NotificationPort


class MockNotifier(NotificationPort):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str, dict[str, Any]]] = []
        self._logger = logging.getLogger(__name__)

    def notify(self, customer_id: str, title: str, body: str, data: dict[str, Any] | None = None) -> None:
        self.sent.append((customer_id, title, body, dict(data or {})))
        self._logger.info("Mock notification", extra={"customer_id": customer_id, "reason": title})
