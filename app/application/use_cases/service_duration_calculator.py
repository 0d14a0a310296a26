from __future__ import annotations

from typing import Any, Iterable

from app.application.ports.business_config import BusinessConfigPort
from app.application.utils.service_duration import calculate_selection, sanitize_catalog
from app.domain.entities.service_catalog import Service, ServiceSelection


class ServiceDurationCalculator:
    def __init__(self, config: BusinessConfigPort, default_catalog: Iterable[Any] = ()) -> None:
        self._config = config
        self._default_catalog = list(default_catalog)

    def catalog(self) -> list[Service]:
        """Configured catalog, or the built-in one when nothing usable is configured."""
        services = sanitize_catalog(self._config.raw_service_catalog())
        if not services:
            services = sanitize_catalog(self._default_catalog)
        return services

    def calculate(self, selected_ids: Iterable[str]) -> ServiceSelection:
        return calculate_selection(selected_ids, self.catalog())
