from __future__ import annotations

from app.application.ports.customer_directory import CustomerDirectoryPort
from app.application.ports.document_store import DocumentStorePort
from app.application.utils.record_paths import user_path


class StoreCustomerDirectory(CustomerDirectoryPort):
    """Reads customer profiles from users/{id}."""

    def __init__(self, store: DocumentStorePort) -> None:
        self._store = store

    def display_name(self, customer_id: str) -> str | None:
        profile = self._profile(customer_id)
        name = str(profile.get("display_name") or "").strip()
        if name:
            return name
        full = f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip()
        return full or None

    def phone(self, customer_id: str) -> str | None:
        profile = self._profile(customer_id)
        return str(profile.get("phone") or "").strip() or None

    def _profile(self, customer_id: str) -> dict:
        return self._store.get(user_path(customer_id)).to_dict()
