from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from app.application.ports.document_store import DocumentReader


class BusinessConfigPort(ABC):
    @abstractmethod
    def default_slot_times(self, reader: DocumentReader | None = None) -> list[Any]:
        """Raw business-wide slot times, not yet normalized."""
        raise NotImplementedError

    @abstractmethod
    def slot_override(self, date: str, reader: DocumentReader | None = None) -> list[Any] | None:
        """
        Raw override slot times for a date.
        None means "use the default"; an empty list means "no slots that day".
        Pass a transaction as reader to have the lookup validated at commit.
        """
        raise NotImplementedError

    @abstractmethod
    def raw_service_catalog(self) -> list[Any]:
        raise NotImplementedError
