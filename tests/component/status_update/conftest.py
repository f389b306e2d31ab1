"""
Status Update Service Component Test Fixtures

Provides:
- store: in-memory store backing every repository and recorder
- status_service: orchestrator wired to the store, MockEventBus and MockNotifier
- add_packages / add_group: seeding helpers
"""

import pytest

from microservices.status_update_service.memory_store import (
    InMemoryIdempotencyLedger,
    InMemoryStatusStore,
)
from microservices.status_update_service.status_update_service import StatusUpdateService
from tests.component.mocks.store_mocks import build_service


@pytest.fixture
def store() -> InMemoryStatusStore:
    return InMemoryStatusStore()


@pytest.fixture
def ledger() -> InMemoryIdempotencyLedger:
    return InMemoryIdempotencyLedger()


@pytest.fixture
def status_service(store, mock_event_bus, mock_notifier, ledger) -> StatusUpdateService:
    """Orchestrator with in-memory store, mock event bus and notifier"""
    return build_service(store, event_bus=mock_event_bus, notifier=mock_notifier, ledger=ledger)


@pytest.fixture
def add_packages(store, data_factory):
    """Seed packages into the store: add_packages(status, count, **overrides)"""

    def _add(status, count=1, **overrides):
        packages = [data_factory.make_package(status, **overrides) for _ in range(count)]
        for package in packages:
            store.add_package(package)
        return packages

    return _add


@pytest.fixture
def add_group(store, data_factory):
    """Seed a group with member packages: add_group(group_status, package_statuses)"""

    def _add(group_status, package_statuses=(), **overrides):
        group = data_factory.make_group(group_status, **overrides)
        packages = [
            data_factory.make_package(status, group_id=group.id)
            for status in package_statuses
        ]
        group = group.model_copy(update={"package_ids": [p.id for p in packages]})
        store.add_group(group)
        for package in packages:
            store.add_package(package)
        return group, packages

    return _add
