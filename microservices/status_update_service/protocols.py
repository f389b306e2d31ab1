"""
Status Update Service Protocols

Defines interfaces for dependency injection and testing.
The orchestrator depends on these signatures only; concrete
implementations are wired together in factory.py.
"""

from typing import Any, List, Optional, Protocol, runtime_checkable

from .models import (
    BatchNotification,
    LocationDescriptor,
    Package,
    ShipmentGroup,
    StatusContext,
    StatusHistoryEntry,
    StatusUpdateResult,
    TrackingPoint,
    TransitionValidation,
)


# ====================
# Repository Protocols
# ====================


@runtime_checkable
class PackageRepositoryProtocol(Protocol):
    """Package store with optimistic versioning"""

    async def get_package(self, package_id: str) -> Optional[Package]:
        """
        Get package by ID.

        Returns:
            Package or None if not found
        """
        ...

    async def save_package(self, package: Package) -> Package:
        """
        Persist a package.

        The package must carry the version currently stored; the stored
        copy is returned with its version incremented.

        Raises:
            EntityNotFoundError: package does not exist
            VersionConflictError: stored version differs
            PersistenceError: write failed
        """
        ...

    async def list_packages_in_group(self, group_id: str) -> List[Package]:
        """Get all packages currently linked to a group"""
        ...

    async def list_packages(self) -> List[Package]:
        """Get every stored package"""
        ...


@runtime_checkable
class GroupRepositoryProtocol(Protocol):
    """Shipment group store with optimistic versioning"""

    async def get_group(self, group_id: str) -> Optional[ShipmentGroup]:
        """Get group by ID, None if not found"""
        ...

    async def save_group(self, group: ShipmentGroup) -> ShipmentGroup:
        """Persist a group; same versioning contract as save_package"""
        ...

    async def list_groups(self) -> List[ShipmentGroup]:
        """Get every stored group"""
        ...


# ====================
# Recorder Protocols
# ====================


@runtime_checkable
class TrackingRecorderProtocol(Protocol):
    """Append-only tracking point timeline per package"""

    async def count_tracking_points(self, package_id: str) -> int:
        ...

    async def append_tracking_point(self, point: TrackingPoint) -> TrackingPoint:
        """
        Append a tracking point.

        Atomically marks every earlier point of the package inactive.

        Raises:
            PersistenceError: write failed or sequence is not count + 1
        """
        ...

    async def list_tracking_points(self, package_id: str) -> List[TrackingPoint]:
        """Tracking points ordered by sequence"""
        ...


@runtime_checkable
class HistoryRecorderProtocol(Protocol):
    """Append-only status audit trail"""

    async def append_history_entry(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        """
        Raises:
            PersistenceError: write failed
        """
        ...

    async def list_history(self, entity_id: str) -> List[StatusHistoryEntry]:
        """History entries for an entity, oldest first"""
        ...


# ====================
# Collaborator Protocols
# ====================


@runtime_checkable
class TransitionValidatorProtocol(Protocol):
    """Domain rule table for status transitions"""

    async def validate_transition(
        self,
        context: StatusContext,
        new_status: str,
        actor_role: str,
        reason: Optional[str] = None,
        conditions: Optional[List[str]] = None,
    ) -> TransitionValidation:
        """
        Check a proposed status change against the rule table.

        Args:
            context: Current status and attributes of the entity
            new_status: Proposed status value
            actor_role: Role of the actor performing the change
            reason: Reason supplied with the change
            conditions: Transition conditions the caller asserts are met

        Returns:
            Verdict with errors and warnings
        """
        ...


@runtime_checkable
class LocationResolverProtocol(Protocol):
    """Maps a package status to the facility stamped on its tracking point"""

    def resolve_location(self, status: str, destination_city: Optional[str]) -> LocationDescriptor:
        ...


@runtime_checkable
class NotifierProtocol(Protocol):
    """Customer-facing message dispatch"""

    async def notify(self, notification: BatchNotification) -> int:
        """
        Dispatch notifications for a batch summary.

        Returns:
            Number of notifications the notifier reports as sent

        Raises:
            NotificationError: dispatch failed
        """
        ...


@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for event bus"""

    async def publish_event(self, event: Any) -> None:
        ...


@runtime_checkable
class IdempotencyLedgerProtocol(Protocol):
    """Dedup ledger keyed by caller-supplied batch id"""

    async def get_result(self, batch_id: str) -> Optional[StatusUpdateResult]:
        ...

    async def record_result(self, result: StatusUpdateResult) -> None:
        ...


# ====================
# Exceptions
# ====================


class StatusUpdateError(Exception):
    """Base exception for status update service errors"""
    pass


class EntityNotFoundError(StatusUpdateError):
    """Raised when a package or group does not exist"""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class VersionConflictError(StatusUpdateError):
    """Raised when a save carries a stale version"""

    def __init__(self, entity_id: str, expected: int, actual: int):
        super().__init__(
            f"Version conflict on {entity_id}: expected {expected}, found {actual}"
        )
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual


class PersistenceError(StatusUpdateError):
    """Raised when a store write fails"""
    pass


class NotificationError(StatusUpdateError):
    """Raised when notification dispatch fails"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
