"""
Status Update Service Event Publishers

Publish batch lifecycle events. Publishing never fails the batch; errors
are logged and reported through the return value.
"""

import logging

from core.nats_client import Event, EventType, ServiceSource

from ..models import StatusUpdateRequest, StatusUpdateResult
from .models import (
    create_batch_completed_event_data,
    create_batch_rolled_back_event_data,
)

logger = logging.getLogger(__name__)


async def publish_status_batch_completed(
    event_bus,
    request: StatusUpdateRequest,
    result: StatusUpdateResult,
) -> bool:
    """
    Publish status.batch.completed event

    Args:
        event_bus: NATS event bus instance
        request: The request that was processed
        result: Its final result

    Returns:
        True if the event was handed to the bus
    """
    try:
        event_data = create_batch_completed_event_data(
            batch_id=result.batch_id,
            target_type=request.target_type.value,
            new_status=request.new_status,
            performed_by=result.performed_by,
            total_requested=result.total_requested,
            successful=result.successful,
            failed=result.failed,
            tracking_points_created=result.tracking_points_created,
            status_history_entries=result.status_history_entries,
            affected_customers=result.affected_customers,
            execution_time=result.execution_time,
        )

        event = Event(
            event_type=EventType.STATUS_BATCH_COMPLETED,
            source=ServiceSource.STATUS_UPDATE_SERVICE,
            data=event_data.model_dump(mode='json'),
        )

        await event_bus.publish_event(event)
        logger.info(
            f"Published status.batch.completed for {result.batch_id}: "
            f"{result.successful}/{result.total_requested} succeeded"
        )
        return True

    except Exception as e:
        logger.error(f"Failed to publish status.batch.completed: {e}")
        return False


async def publish_status_batch_rolled_back(
    event_bus,
    result: StatusUpdateResult,
) -> bool:
    """Publish status.batch.rolled_back event"""
    try:
        rolled_back = [r.target_id for r in result.results if r.rolled_back]
        event_data = create_batch_rolled_back_event_data(
            batch_id=result.batch_id,
            rolled_back_ids=rolled_back,
            failed=result.failed - len(rolled_back),
        )

        event = Event(
            event_type=EventType.STATUS_ROLLED_BACK,
            source=ServiceSource.STATUS_UPDATE_SERVICE,
            data=event_data.model_dump(mode='json'),
        )

        await event_bus.publish_event(event)
        logger.info(f"Published status.batch.rolled_back for {result.batch_id}: {len(rolled_back)} restored")
        return True

    except Exception as e:
        logger.error(f"Failed to publish status.batch.rolled_back: {e}")
        return False
