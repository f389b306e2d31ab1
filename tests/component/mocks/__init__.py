"""
Component Test Mocks

Mock implementations replacing real I/O dependencies (NATS, notification
service) and store variants that inject failures.
"""

from .nats_mock import MockEventBus
from .notifier_mock import MockNotifier

__all__ = [
    'MockEventBus',
    'MockNotifier',
]
