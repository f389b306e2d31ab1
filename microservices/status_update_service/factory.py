"""
Status Update Service Factory

Factory for creating the status update service with its dependencies.
This is the ONLY module that imports concrete implementations.
"""

import logging
from typing import Optional

from core.config_manager import ConfigManager
from core.nats_client import NATSEventBus

from .clients.notification_client import NotificationClient
from .location_resolver import StaticLocationResolver
from .memory_store import InMemoryIdempotencyLedger, InMemoryStatusStore
from .protocols import EventBusProtocol, NotifierProtocol
from .reconciliation import StatusReconciler
from .status_update_service import StatusUpdateService
from .transition_validator import DefaultTransitionValidator

logger = logging.getLogger(__name__)

SERVICE_NAME = "status_update_service"


def create_status_update_service(
    config: Optional[ConfigManager] = None,
    store: Optional[InMemoryStatusStore] = None,
    event_bus: Optional[EventBusProtocol] = None,
    notifier: Optional[NotifierProtocol] = None,
) -> StatusUpdateService:
    """
    Create StatusUpdateService wired to a single store

    Args:
        config: Optional config manager (creates default if not provided)
        store: Optional store backing every repository and recorder
        event_bus: Optional event bus for batch events
        notifier: Optional customer notifier

    Returns:
        StatusUpdateService instance
    """
    if config is None:
        config = ConfigManager(SERVICE_NAME)
    settings = config.get_service_config()

    if store is None:
        store = InMemoryStatusStore()

    ledger = InMemoryIdempotencyLedger() if settings.idempotency_enabled else None

    return StatusUpdateService(
        package_repository=store,
        group_repository=store,
        tracking_recorder=store,
        history_recorder=store,
        validator=DefaultTransitionValidator(),
        location_resolver=StaticLocationResolver(),
        notifier=notifier,
        event_bus=event_bus,
        idempotency_ledger=ledger,
        defaults=settings.batch,
        default_actor_role=settings.default_actor_role,
    )


class StatusUpdateServiceFactory:
    """Factory for creating status update service components"""

    def __init__(self, config: Optional[ConfigManager] = None):
        self.config = config or ConfigManager(SERVICE_NAME)
        self._store: Optional[InMemoryStatusStore] = None
        self._service: Optional[StatusUpdateService] = None
        self._reconciler: Optional[StatusReconciler] = None
        self._nats_client: Optional[NATSEventBus] = None
        self._notification_client: Optional[NotificationClient] = None

    async def initialize(self) -> None:
        """Initialize all components"""
        logger.info("Initializing Status Update Service components...")
        settings = self.config.get_service_config()

        # Initialize store
        self._store = InMemoryStatusStore()
        await self._store.initialize()
        if settings.seed_file:
            try:
                self._store.load_seed_file(settings.seed_file)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load seed file {settings.seed_file}: {e}")
                raise

        # Initialize NATS client
        if settings.infrastructure.nats_enabled:
            try:
                self._nats_client = NATSEventBus(service_name=SERVICE_NAME, config=self.config)
                await self._nats_client.connect()
                logger.info("NATS client connected")
            except Exception as e:
                logger.warning(f"NATS client initialization failed: {e}")
                self._nats_client = None

        # Initialize notification client
        if settings.services.notifications_enabled:
            self._notification_client = NotificationClient(config=self.config)

        # Initialize main service
        self._service = create_status_update_service(
            config=self.config,
            store=self._store,
            event_bus=self._nats_client,
            notifier=self._notification_client,
        )

        self._reconciler = StatusReconciler(
            package_repository=self._store,
            group_repository=self._store,
            tracking_recorder=self._store,
            history_recorder=self._store,
        )

        logger.info("Status Update Service components initialized")

    async def close(self) -> None:
        """Close all components"""
        logger.info("Closing Status Update Service components...")

        if self._notification_client:
            await self._notification_client.close()

        if self._nats_client:
            await self._nats_client.close()

        if self._store:
            await self._store.close()

        logger.info("Status Update Service components closed")

    @property
    def store(self) -> InMemoryStatusStore:
        """Get status store"""
        if not self._store:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._store

    @property
    def service(self) -> StatusUpdateService:
        """Get status update service"""
        if not self._service:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._service

    @property
    def reconciler(self) -> StatusReconciler:
        """Get reconciler"""
        if not self._reconciler:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._reconciler

    @property
    def nats_client(self) -> Optional[NATSEventBus]:
        """Get NATS client"""
        return self._nats_client

    @property
    def notification_client(self) -> Optional[NotificationClient]:
        """Get notification client"""
        return self._notification_client


# Global factory instance
_factory: Optional[StatusUpdateServiceFactory] = None


async def get_factory() -> StatusUpdateServiceFactory:
    """Get or create factory instance"""
    global _factory
    if _factory is None:
        _factory = StatusUpdateServiceFactory()
        await _factory.initialize()
    return _factory


async def close_factory() -> None:
    """Close factory instance"""
    global _factory
    if _factory:
        await _factory.close()
        _factory = None


__all__ = [
    "create_status_update_service",
    "StatusUpdateServiceFactory",
    "get_factory",
    "close_factory",
]
