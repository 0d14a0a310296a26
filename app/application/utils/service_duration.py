from __future__ import annotations

import math
from typing import Any, Iterable

from app.domain.entities.service_catalog import Service, ServiceSelection

DEFAULT_SERVICE_NAME = "Treatment"


def sanitize_catalog(raw: Iterable[Any] | None) -> list[Service]:
    """
    Coerce raw catalog entries into Services.

    Entries without a positive duration are dropped. Missing ids fall back to the
    entry position; repeated ids become "id", "id-2", "id-3" in catalog order.
    """
    if not isinstance(raw, (list, tuple)):
        return []

    cleaned: list[tuple[str, str, int]] = []
    for idx, item in enumerate(raw):
        if isinstance(item, Service):
            item = item.to_document()
        if not isinstance(item, dict):
            continue
        try:
            duration = float(item.get("duration_minutes") or 0)
        except (TypeError, ValueError):
            continue
        if not math.isfinite(duration) or duration <= 0:
            continue
        raw_id = item.get("id")
        service_id = str(raw_id if raw_id is not None else idx).strip() or "service"
        name = str(item.get("name") or DEFAULT_SERVICE_NAME)
        cleaned.append((service_id, name, int(math.ceil(duration))))

    used: dict[str, int] = {}
    services: list[Service] = []
    for service_id, name, duration in cleaned:
        count = used.get(service_id, 0) + 1
        used[service_id] = count
        unique_id = service_id if count == 1 else f"{service_id}-{count}"
        services.append(Service(id=unique_id, name=name, duration_minutes=duration))
    return services


def calculate_selection(selected_ids: Iterable[str], catalog: list[Service]) -> ServiceSelection:
    """Resolve ids against the catalog in catalog order; unknown ids are ignored."""
    wanted = {str(i) for i in selected_ids or []}
    chosen = tuple(s for s in catalog if s.id in wanted)
    return ServiceSelection(
        services=chosen,
        total_duration_minutes=sum(s.duration_minutes for s in chosen),
    )


def required_slot_count(total_duration_minutes: int, step_minutes: int) -> int:
    if total_duration_minutes <= 0:
        return 0
    return math.ceil(total_duration_minutes / max(step_minutes, 1))
