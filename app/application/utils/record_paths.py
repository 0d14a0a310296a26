from __future__ import annotations

from app.domain.entities.reservation import make_group_id

APPOINTMENTS = "appointments"
USER_RESERVATIONS = "user_reservations"
APPOINTMENT_REQUESTS = "appointment_requests"
USERS = "users"
SETTINGS_BUSINESS = "settings/business"
AVAILABILITY = "availability"


def slot_path(date: str, hour: str) -> str:
    return f"{APPOINTMENTS}/{make_group_id(date, hour)}"


def pointer_path(customer_id: str) -> str:
    return f"{USER_RESERVATIONS}/{customer_id}"


def request_path(group_id: str) -> str:
    return f"{APPOINTMENT_REQUESTS}/{group_id}"


def user_path(customer_id: str) -> str:
    return f"{USERS}/{customer_id}"


def history_collection(customer_id: str) -> str:
    return f"{USERS}/{customer_id}/history"


def history_path(customer_id: str, group_id: str) -> str:
    return f"{history_collection(customer_id)}/{group_id}"


def availability_path(date: str) -> str:
    return f"{AVAILABILITY}/{date}"
