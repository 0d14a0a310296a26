from __future__ import annotations

from abc import ABC, abstractmethod


class IdentityPort(ABC):
    @abstractmethod
    def current_user_id(self) -> str | None:
        """Id of the authenticated caller, or None."""
        raise NotImplementedError

    def is_authenticated(self) -> bool:
        return bool(self.current_user_id())
