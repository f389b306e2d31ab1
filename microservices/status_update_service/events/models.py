"""
Status Update Service Event Models

Event data models for batch completion and rollback events.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models import utc_now


# =============================================================================
# Event Type Definitions (Service-Specific)
# =============================================================================

class StatusEventType(str, Enum):
    """
    Events published by status_update_service.

    Stream: status-stream
    Subjects: status.>
    """
    BATCH_COMPLETED = "status.batch.completed"
    BATCH_ROLLED_BACK = "status.batch.rolled_back"


class StatusStreamConfig:
    """Stream configuration for status_update_service"""
    STREAM_NAME = "status-stream"
    SUBJECTS = ["status.>"]
    MAX_MESSAGES = 100000
    CONSUMER_PREFIX = "status"


# ============================================================================
# Batch Event Models
# ============================================================================


class BatchCompletedEventData(BaseModel):
    """
    Event: status.batch.completed
    Triggered once per orchestrator call, after every item is settled
    """

    batch_id: str = Field(..., description="Batch identifier")
    target_type: str = Field(..., description="package, group or batch")
    new_status: Optional[str] = Field(None, description="Requested status")
    performed_by: Optional[str] = Field(None, description="Actor who requested the change")
    total_requested: int = Field(..., description="Number of target ids in the request")
    successful: int = Field(..., description="Items updated")
    failed: int = Field(..., description="Items not updated")
    tracking_points_created: int = 0
    status_history_entries: int = 0
    affected_customers: List[str] = Field(default_factory=list)
    execution_time: float = Field(0.0, description="Seconds spent processing")
    timestamp: datetime = Field(default_factory=utc_now)

    class Config:
        json_schema_extra = {
            "example": {
                "batch_id": "batch_1718000000000_a1b2c3d4e",
                "target_type": "group",
                "new_status": "completed",
                "performed_by": "system",
                "total_requested": 2,
                "successful": 2,
                "failed": 0,
                "tracking_points_created": 14,
                "status_history_entries": 16,
                "affected_customers": ["cus_001", "cus_002"],
                "execution_time": 0.042,
                "timestamp": "2025-06-10T12:00:00Z",
            }
        }


class BatchRolledBackEventData(BaseModel):
    """
    Event: status.batch.rolled_back
    Triggered when a failing batch had its successful writes compensated
    """

    batch_id: str = Field(..., description="Batch identifier")
    rolled_back_ids: List[str] = Field(default_factory=list, description="Targets restored")
    failed: int = Field(..., description="Failures that triggered the rollback")
    timestamp: datetime = Field(default_factory=utc_now)


# ============================================================================
# Helper Functions
# ============================================================================


def create_batch_completed_event_data(
    batch_id: str,
    target_type: str,
    new_status: Optional[str],
    performed_by: Optional[str],
    total_requested: int,
    successful: int,
    failed: int,
    tracking_points_created: int = 0,
    status_history_entries: int = 0,
    affected_customers: Optional[List[str]] = None,
    execution_time: float = 0.0,
) -> BatchCompletedEventData:
    """Create batch completed event data"""
    return BatchCompletedEventData(
        batch_id=batch_id,
        target_type=target_type,
        new_status=new_status,
        performed_by=performed_by,
        total_requested=total_requested,
        successful=successful,
        failed=failed,
        tracking_points_created=tracking_points_created,
        status_history_entries=status_history_entries,
        affected_customers=affected_customers or [],
        execution_time=execution_time,
    )


def create_batch_rolled_back_event_data(
    batch_id: str,
    rolled_back_ids: List[str],
    failed: int,
) -> BatchRolledBackEventData:
    """Create batch rolled back event data"""
    return BatchRolledBackEventData(
        batch_id=batch_id,
        rolled_back_ids=rolled_back_ids,
        failed=failed,
    )
