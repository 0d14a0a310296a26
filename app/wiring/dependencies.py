from functools import lru_cache
import logging
from zoneinfo import ZoneInfo

from fastapi import Depends, Header

from app.core.config import settings
from app.application.ports.business_config import BusinessConfigPort
from app.application.ports.clock import ClockPort
from app.application.ports.customer_directory import CustomerDirectoryPort
from app.application.ports.document_store import DocumentStorePort
from app.application.ports.identity import IdentityPort
from app.application.ports.notifications import NotificationPort
from app.application.use_cases.customer_reservations import CustomerReservations
from app.application.use_cases.day_schedule import DaySchedule
from app.application.use_cases.owner_decisions import OwnerDecisionSurface
from app.application.use_cases.reservation_engine import ReservationEngine
from app.application.use_cases.service_duration_calculator import ServiceDurationCalculator
from app.application.use_cases.time_grid_resolver import TimeGridResolver
from app.infrastructure.clock.system_clock import SystemClock
from app.infrastructure.config.business_config_store import StoreBusinessConfig
from app.infrastructure.config.business_defaults import DEFAULT_SERVICE_CATALOG, DEFAULT_SLOT_TIMES
from app.infrastructure.directory.store_directory import StoreCustomerDirectory
from app.infrastructure.identity.header_identity import HeaderIdentity
from app.infrastructure.notifications.expo_notifier import ExpoNotifier
from app.infrastructure.notifications.expo_push_client import ExpoPushClient
from app.infrastructure.notifications.mock_notifier import MockNotifier
from app.infrastructure.store.json_store import JsonDocumentStore
from app.infrastructure.store.memory_store import MemoryDocumentStore


_document_store: MemoryDocumentStore | JsonDocumentStore | None = None


@lru_cache
def get_timezone() -> ZoneInfo:
    return ZoneInfo(settings.BUSINESS_TIMEZONE)


@lru_cache
def get_clock() -> ClockPort:
    return SystemClock(get_timezone())


def get_document_store() -> DocumentStorePort:
    global _document_store
    if _document_store is None:
        logger = logging.getLogger(__name__)
        if settings.STORE_PROVIDER.lower() == "json":
            logger.info("Using JsonDocumentStore", extra={"reason": settings.DATA_DIR})
            _document_store = JsonDocumentStore(data_dir=settings.DATA_DIR, clock=get_clock())
        else:
            logger.info("Using MemoryDocumentStore")
            _document_store = MemoryDocumentStore(clock=get_clock())
    return _document_store


@lru_cache
def get_notifier() -> NotificationPort:
    logger = logging.getLogger(__name__)
    if not settings.NOTIFICATIONS_ENABLED or settings.ENV.lower() in {"dev", "local"}:
        logger.info("Using MockNotifier (notifications disabled or ENV=dev/local)")
        return MockNotifier()
    client = ExpoPushClient(push_url=settings.EXPO_PUSH_URL, access_token=settings.EXPO_ACCESS_TOKEN)
    return ExpoNotifier(client=client, store=get_document_store())


def get_identity(x_user_id: str | None = Header(None, alias="X-User-Id")) -> IdentityPort:
    return HeaderIdentity(x_user_id)


def get_business_config(store: DocumentStorePort = Depends(get_document_store)) -> BusinessConfigPort:
    return StoreBusinessConfig(store, default_slot_times=DEFAULT_SLOT_TIMES)


def get_customer_directory(store: DocumentStorePort = Depends(get_document_store)) -> CustomerDirectoryPort:
    return StoreCustomerDirectory(store)


def get_grid_resolver(config: BusinessConfigPort = Depends(get_business_config)) -> TimeGridResolver:
    return TimeGridResolver(config, fallback_step_minutes=settings.FALLBACK_SLOT_MINUTES)


def get_service_calculator(config: BusinessConfigPort = Depends(get_business_config)) -> ServiceDurationCalculator:
    return ServiceDurationCalculator(config, default_catalog=DEFAULT_SERVICE_CATALOG)


def get_reservation_engine(
    store: DocumentStorePort = Depends(get_document_store),
    clock: ClockPort = Depends(get_clock),
    identity: IdentityPort = Depends(get_identity),
    grid_resolver: TimeGridResolver = Depends(get_grid_resolver),
    notifier: NotificationPort = Depends(get_notifier),
) -> ReservationEngine:
    return ReservationEngine(
        store=store,
        clock=clock,
        identity=identity,
        grid_resolver=grid_resolver,
        notifier=notifier,
        timezone=get_timezone(),
        owner_id=settings.OWNER_ID,
        completion_grace_seconds=settings.COMPLETION_GRACE_SECONDS,
        min_phone_digits=settings.MIN_PHONE_DIGITS,
        max_attempts=settings.TRANSACTION_MAX_ATTEMPTS,
        record_rejections_in_history=settings.RECORD_REJECTIONS_IN_HISTORY,
        business_name=settings.BUSINESS_NAME,
    )


def get_owner_decisions(
    store: DocumentStorePort = Depends(get_document_store),
    engine: ReservationEngine = Depends(get_reservation_engine),
    directory: CustomerDirectoryPort = Depends(get_customer_directory),
    identity: IdentityPort = Depends(get_identity),
) -> OwnerDecisionSurface:
    return OwnerDecisionSurface(
        store=store, engine=engine, directory=directory, identity=identity, owner_id=settings.OWNER_ID
    )


def get_customer_reservations(
    store: DocumentStorePort = Depends(get_document_store),
    engine: ReservationEngine = Depends(get_reservation_engine),
    identity: IdentityPort = Depends(get_identity),
) -> CustomerReservations:
    return CustomerReservations(store=store, engine=engine, identity=identity)


def get_day_schedule(
    store: DocumentStorePort = Depends(get_document_store),
    grid_resolver: TimeGridResolver = Depends(get_grid_resolver),
    clock: ClockPort = Depends(get_clock),
    identity: IdentityPort = Depends(get_identity),
) -> DaySchedule:
    return DaySchedule(
        store=store, grid_resolver=grid_resolver, clock=clock, identity=identity, timezone=get_timezone()
    )
