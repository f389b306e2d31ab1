"""
Status Update Service Data Models

Packages, shipment groups, status update requests and results, tracking
points and status history entries for the cargo status lifecycle.
"""

from enum import Enum
from typing import Optional, Dict, Any, List, Union
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ====================
# Enumerations
# ====================

class TargetType(str, Enum):
    """Kind of entity a status update request addresses"""
    PACKAGE = "package"
    GROUP = "group"
    BATCH = "batch"


class PackageStatus(str, Enum):
    """Lifecycle status of an individual package"""
    PENDING = "pending"
    PROCESSING = "processing"
    READY_FOR_GROUPING = "ready-for-grouping"
    GROUPED = "grouped"
    GROUP_CONFIRMED = "group-confirmed"
    DISPATCHED = "dispatched"
    SHIPPED = "shipped"
    IN_TRANSIT = "in-transit"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    DELAYED = "delayed"
    RETURNED = "returned"
    LOST = "lost"
    EXCEPTION = "exception"
    CANCELLED = "cancelled"


class GroupStatus(str, Enum):
    """Lifecycle status of a shipment group"""
    DRAFT = "draft"
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    LOADING = "loading"
    DISPATCHED = "dispatched"
    IN_TRANSIT = "in_transit"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DELAYED = "delayed"
    EXCEPTION = "exception"
    RETURNED = "returned"


class ValidationLevel(str, Enum):
    """How strictly validator output gates an item update"""
    STRICT = "strict"
    NORMAL = "normal"
    LENIENT = "lenient"


class ChangeSource(str, Enum):
    """Where a status change originated"""
    WEB_APP = "web_app"
    MOBILE_APP = "mobile_app"
    API = "api"
    SYSTEM_UPDATE = "system_update"
    CASCADE_UPDATE = "cascade_update"
    BULK_IMPORT = "bulk_import"
    SCHEDULED = "scheduled"


class StatusCategory(str, Enum):
    DELIVERY = "delivery"
    EXCEPTION = "exception"
    TRANSIT = "transit"
    PROCESSING = "processing"


class ImpactLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ChangeType(str, Enum):
    STATUS_UPDATE = "status_update"
    BATCH_UPDATE = "batch_update"
    CASCADE_UPDATE = "cascade_update"
    ROLLBACK = "rollback"


class EntityType(str, Enum):
    PACKAGE = "package"
    GROUP = "group"
    BATCH = "batch"


class PackagePriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class FacilityType(str, Enum):
    WAREHOUSE = "warehouse"
    SORTING_CENTER = "sorting_center"
    DISTRIBUTION_HUB = "distribution_hub"
    DELIVERY_HUB = "delivery_hub"
    TRANSIT_POINT = "transit_point"


# ====================
# Core Data Models
# ====================

class Package(BaseModel):
    """
    A single shipment unit.

    ``version`` is the optimistic-concurrency token: a save is accepted only
    when it carries the version currently stored.
    """
    id: str = Field(..., min_length=1, description="Package identifier")
    tracking_number: Optional[str] = Field(None, description="Customer-facing tracking number")
    customer_id: Optional[str] = Field(None, description="Owning customer")
    customer_name: Optional[str] = None
    status: PackageStatus = Field(default=PackageStatus.PENDING)
    priority: PackagePriority = Field(default=PackagePriority.NORMAL)
    is_premium: bool = Field(default=False, description="Premium or enterprise customer")
    special_handling: List[str] = Field(default_factory=list, description="Handling flags (fragile, ...)")
    group_id: Optional[str] = Field(None, description="Shipment group the package belongs to")
    destination_city: Optional[str] = None
    version: int = Field(default=1, ge=1)
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None


class ShipmentGroup(BaseModel):
    """A batch of packages moving together"""
    id: str = Field(..., min_length=1, description="Group identifier")
    group_code: Optional[str] = None
    status: GroupStatus = Field(default=GroupStatus.DRAFT)
    destination_city: Optional[str] = None
    package_ids: List[str] = Field(default_factory=list)
    version: int = Field(default=1, ge=1)
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None


class LocationDescriptor(BaseModel):
    """Facility a tracking point is stamped with"""
    facility_id: str
    name: str
    facility_type: FacilityType
    city: str
    region: str
    latitude: float
    longitude: float
    address: str = ""
    country: str = "Ghana"


# ====================
# Request / Config
# ====================

class StatusUpdateRequest(BaseModel):
    """
    One new status applied to one or many targets.

    Immutable once constructed. ``new_status`` stays a string because the
    package and group enumerations share value names; it is resolved against
    the enumeration of ``target_type`` by the orchestrator. Structural checks
    (empty ids, missing actor, unparseable ``scheduled_for``) are also left
    to the orchestrator so that they come back as a result, not an exception.
    """
    model_config = ConfigDict(frozen=True)

    target_type: TargetType
    target_ids: List[str] = Field(default_factory=list)
    new_status: Optional[str] = None
    performed_by: Optional[str] = None
    performed_by_role: Optional[str] = Field(None, description="Actor role passed to the validator")

    reason: Optional[str] = None
    notes: Optional[str] = None
    location: Optional[str] = Field(None, description="Overrides the resolved facility name")
    scheduled_for: Optional[Union[datetime, str]] = None

    skip_validation: bool = False
    force_update: bool = False
    cascade_to_related: bool = False
    notify_customers: bool = False
    source: ChangeSource = ChangeSource.API
    batch_id: Optional[str] = Field(None, description="Caller-supplied idempotency token")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BatchUpdateConfig(BaseModel):
    """Per-call tuning; unset fields fall back to the service defaults"""
    max_batch_size: int = Field(default=100, ge=1)
    parallel_processing: bool = True
    continue_on_error: bool = True
    validation_level: ValidationLevel = ValidationLevel.NORMAL
    notification_batching: bool = True
    rollback_on_failure: bool = False


# ====================
# Results
# ====================

class ValidationIssue(BaseModel):
    """Request-level validation failure"""
    field: str
    message: str


class ItemResult(BaseModel):
    """Outcome for a single target"""
    target_id: str
    target_type: TargetType
    success: bool
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    error: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    tracking_points_created: int = 0
    history_entry_id: Optional[str] = None
    related_updates: List[str] = Field(default_factory=list)
    rolled_back: bool = False


class StatusUpdateResult(BaseModel):
    """Terminal artifact of one orchestrator call"""
    model_config = ConfigDict(frozen=True)

    success: bool
    batch_id: str
    timestamp: datetime
    performed_by: Optional[str] = None

    total_requested: int = 0
    successful: int = 0
    failed: int = 0
    warnings: int = 0
    notifications_sent: int = 0
    notifications_delivered: int = 0
    tracking_points_created: int = 0
    status_history_entries: int = 0
    execution_time: float = Field(default=0.0, description="Seconds spent in the call")

    results: List[ItemResult] = Field(default_factory=list)
    global_warnings: List[str] = Field(default_factory=list)
    global_errors: List[str] = Field(default_factory=list)
    validation_failures: List[ValidationIssue] = Field(default_factory=list)
    affected_customers: List[str] = Field(default_factory=list)
    needs_reconciliation: List[str] = Field(default_factory=list)


# ====================
# Audit Records
# ====================

class TrackingPoint(BaseModel):
    """Sequenced location/status snapshot in a package's journey"""
    id: str
    package_id: str
    status: PackageStatus
    location: LocationDescriptor
    location_name: str
    description: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    sequence: int = Field(..., ge=1)
    is_milestone: bool = False
    is_active: bool = True

    source: ChangeSource = ChangeSource.API
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    created_by: Optional[str] = None
    batch_id: Optional[str] = None
    notes: Optional[str] = None


class StatusHistoryEntry(BaseModel):
    """Append-only audit record of one status change"""
    id: str
    entity_id: str
    entity_type: EntityType
    change_type: ChangeType = ChangeType.STATUS_UPDATE
    previous_status: Optional[str] = None
    new_status: str
    status_category: StatusCategory
    impact_level: ImpactLevel = ImpactLevel.LOW

    performed_by: str
    actor_role: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    location: Optional[str] = None
    batch_id: Optional[str] = None
    source: ChangeSource = ChangeSource.API
    is_customer_visible: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ====================
# Validation
# ====================

class StatusContext(BaseModel):
    """What the transition validator knows about an entity"""
    entity_id: str
    entity_type: EntityType
    current_status: str
    priority: PackagePriority = PackagePriority.NORMAL
    is_premium: bool = False
    special_handling: List[str] = Field(default_factory=list)
    group_id: Optional[str] = None
    previous_statuses: List[str] = Field(default_factory=list)


class TransitionValidation(BaseModel):
    """Validator verdict"""
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    requires_approval: bool = False
    missing_conditions: List[str] = Field(default_factory=list)


# ====================
# Notification
# ====================

class BatchNotification(BaseModel):
    """Summary handed to the notifier"""
    batch_id: str
    target_type: TargetType
    new_status: str
    performed_by: Optional[str] = None
    entity_ids: List[str] = Field(default_factory=list)
    affected_customers: List[str] = Field(default_factory=list)
    reason: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    timestamp: datetime = Field(default_factory=utc_now)


# ====================
# API Models
# ====================

class StatusUpdateCommand(BaseModel):
    """Body of POST /api/v1/status-updates"""
    request: StatusUpdateRequest
    config: Optional[BatchUpdateConfig] = None


class GroupBatchRequest(BaseModel):
    """Body of POST /api/v1/status-updates/groups/batch"""
    group_ids: List[str] = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
    reason: Optional[str] = None
    scheduled_for: Optional[Union[datetime, str]] = None

    @field_validator('group_ids')
    @classmethod
    def validate_group_ids(cls, v):
        """Reject blank ids"""
        cleaned = [gid.strip() for gid in v]
        if any(not gid for gid in cleaned):
            raise ValueError("group_ids cannot contain empty values")
        return cleaned


class ReconciliationIssue(BaseModel):
    entity_id: str
    entity_type: EntityType
    current_status: str
    issue: str


class ReconciliationReport(BaseModel):
    checked_packages: int = 0
    checked_groups: int = 0
    issues: List[ReconciliationIssue] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now)


class HealthResponse(BaseModel):
    status: str
    service: str
    port: int
    version: str
    dependencies: Dict[str, str] = Field(default_factory=dict)
