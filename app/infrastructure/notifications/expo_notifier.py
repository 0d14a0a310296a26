from __future__ import annotations

import logging
from typing import Any

from app.application.ports.document_store import DocumentStorePort
from app.application.ports.notifications import NotificationPort
from app.application.utils.record_paths import user_path
from app.infrastructure.notifications.expo_push_client import ExpoPushClient


class ExpoNotifier(NotificationPort):
    """Sends to every Expo push token registered on users/{id}."""

    def __init__(self, client: ExpoPushClient, store: DocumentStorePort) -> None:
        self._client = client
        self._store = store
        self._logger = logging.getLogger(__name__)

    def notify(self, customer_id: str, title: str, body: str, data: dict[str, Any] | None = None) -> None:
        profile = self._store.get(user_path(customer_id)).to_dict()
        tokens = [t for t in profile.get("expo_push_tokens") or [] if isinstance(t, str) and t]
        if not tokens:
            self._logger.info("No push tokens registered", extra={"customer_id": customer_id})
            return
        self._client.send(tokens, title, body, data)
