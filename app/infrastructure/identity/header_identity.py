from __future__ import annotations

from app.application.ports.identity import IdentityPort


class HeaderIdentity(IdentityPort):
    """
    Caller identity forwarded by the upstream authenticator (X-User-Id header).
    An empty or missing value means the caller is not signed in.
    """

    def __init__(self, user_id: str | None) -> None:
        self._user_id = (user_id or "").strip() or None

    def current_user_id(self) -> str | None:
        return self._user_id
