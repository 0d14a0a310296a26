from __future__ import annotations

from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

import pytest

from app.application.use_cases.reservation_engine import ReservationEngine
from app.application.use_cases.time_grid_resolver import TimeGridResolver
from app.application.utils.record_paths import SETTINGS_BUSINESS
from app.application.utils.service_duration import calculate_selection, sanitize_catalog
from app.domain.entities.service_catalog import ServiceSelection
from app.infrastructure.clock.fixed_clock import FixedClock
from app.infrastructure.config.business_config_store import StoreBusinessConfig
from app.infrastructure.identity.header_identity import HeaderIdentity
from app.infrastructure.notifications.mock_notifier import MockNotifier
from app.infrastructure.store.memory_store import MemoryDocumentStore

TZ = ZoneInfo("Asia/Jerusalem")
OWNER = "owner"
DATE = "2026-10-20"
GRID = ["15:00", "16:00", "17:00"]

CATALOG = [
    {"id": "full_set", "name": "Full set", "duration_minutes": 90},
    {"id": "polish", "name": "Polish", "duration_minutes": 30},
    {"id": "refill", "name": "Refill", "duration_minutes": 60},
]


def at(hour: int, minute: int = 0, second: int = 0, day: int = 20) -> datetime:
    return datetime(2026, 10, day, hour, minute, second, tzinfo=TZ)


def select(*service_ids: str) -> ServiceSelection:
    return calculate_selection(service_ids, sanitize_catalog(CATALOG))


class HookedMemoryStore(MemoryDocumentStore):
    """Memory store that can run a callable right before the next commit is validated."""

    def __init__(self, clock=None) -> None:
        super().__init__(clock=clock)
        self.before_next_commit: Callable[[], None] | None = None

    def _commit(self, tx):
        hook, self.before_next_commit = self.before_next_commit, None
        if hook is not None:
            hook()
        return super()._commit(tx)


class ExplodingNotifier(MockNotifier):
    def notify(self, customer_id, title, body, data=None):
        raise RuntimeError("push service unavailable")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(at(9))


@pytest.fixture
def store(clock) -> HookedMemoryStore:
    store = HookedMemoryStore(clock=clock)
    store.set(SETTINGS_BUSINESS, {"default_hours": list(GRID), "services": list(CATALOG)})
    return store


@pytest.fixture
def business_config(store) -> StoreBusinessConfig:
    return StoreBusinessConfig(store)


@pytest.fixture
def grid_resolver(business_config) -> TimeGridResolver:
    return TimeGridResolver(business_config)


@pytest.fixture
def notifier() -> MockNotifier:
    return MockNotifier()


@pytest.fixture
def engine_for(store, clock, grid_resolver, notifier):
    """Build an engine acting as the given user."""

    def build(user_id: str | None, **overrides) -> ReservationEngine:
        kwargs = dict(
            store=store,
            clock=clock,
            identity=HeaderIdentity(user_id),
            grid_resolver=grid_resolver,
            notifier=notifier,
            timezone=TZ,
            owner_id=OWNER,
        )
        kwargs.update(overrides)
        return ReservationEngine(**kwargs)

    return build


@pytest.fixture
def owner(engine_for) -> ReservationEngine:
    return engine_for(OWNER)
