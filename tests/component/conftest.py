"""
Component Test Layer Configuration

Structure:
    tests/component/
    ├── status_update/  Orchestrator, cascade, batch control and API tests
    └── mocks/          Mock implementations

Usage:
    pytest tests/component -v
    pytest tests/component/status_update -v
"""
import os
import sys

import pytest

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from tests.component.mocks import MockEventBus, MockNotifier


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


@pytest.fixture
def mock_notifier() -> MockNotifier:
    """Recording customer notifier"""
    return MockNotifier()
