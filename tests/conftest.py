"""
Root conftest.py - Global configuration for all test layers.

Test Layers:
    - component/ : Orchestrator and API tests (in-memory store, mocked event bus / notifier)
    - unit/      : Pure rule tables and helpers, no I/O
    - contracts/ : Test data factories shared by the layers above
"""
import os
import sys

# Testing environment BEFORE any project imports; core.config reads it at import time
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["NATS_ENABLED"] = "false"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ.pop("STATUS_SEED_FILE", None)

import pytest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from tests.contracts.status_update.data_contract import StatusUpdateTestDataFactory


@pytest.fixture
def data_factory() -> type:
    """Provide the status update test data factory"""
    return StatusUpdateTestDataFactory
