"""
Status Update Service Event Package

Publishing only: batch completion and rollback events on the status stream.
"""

from .models import (
    StatusEventType,
    StatusStreamConfig,
    BatchCompletedEventData,
    BatchRolledBackEventData,
    create_batch_completed_event_data,
    create_batch_rolled_back_event_data,
)

from .publishers import (
    publish_status_batch_completed,
    publish_status_batch_rolled_back,
)

__all__ = [
    # Event models
    "StatusEventType",
    "StatusStreamConfig",
    "BatchCompletedEventData",
    "BatchRolledBackEventData",
    # Helper functions
    "create_batch_completed_event_data",
    "create_batch_rolled_back_event_data",
    # Publishers
    "publish_status_batch_completed",
    "publish_status_batch_rolled_back",
]
