from __future__ import annotations

from abc import ABC, abstractmethod


class CustomerDirectoryPort(ABC):
    @abstractmethod
    def display_name(self, customer_id: str) -> str | None:
        """Resolve a customer id to a display name. May raise; callers treat failure as non-fatal."""
        raise NotImplementedError

    @abstractmethod
    def phone(self, customer_id: str) -> str | None:
        raise NotImplementedError
