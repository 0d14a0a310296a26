from __future__ import annotations

from typing import Any

from app.application.ports.business_config import BusinessConfigPort
from app.application.ports.document_store import DocumentReader, DocumentStorePort
from app.application.utils.record_paths import SETTINGS_BUSINESS, availability_path


class StoreBusinessConfig(BusinessConfigPort):
    """
    Business configuration kept in the document store:
    settings/business holds default_hours and services, availability/{date} holds hours.
    """

    def __init__(self, store: DocumentStorePort, default_slot_times: list[Any] | None = None) -> None:
        self._store = store
        self._default_slot_times = list(default_slot_times or [])

    def default_slot_times(self, reader: DocumentReader | None = None) -> list[Any]:
        data = (reader or self._store).get(SETTINGS_BUSINESS).to_dict()
        hours = data.get("default_hours")
        if isinstance(hours, list):
            return hours
        return list(self._default_slot_times)

    def slot_override(self, date: str, reader: DocumentReader | None = None) -> list[Any] | None:
        snap = (reader or self._store).get(availability_path(date))
        if not snap.exists:
            return None
        hours = snap.to_dict().get("hours")
        return hours if isinstance(hours, list) else None

    def raw_service_catalog(self) -> list[Any]:
        services = self._store.get(SETTINGS_BUSINESS).to_dict().get("services")
        return services if isinstance(services, list) else []
