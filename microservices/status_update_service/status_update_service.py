"""
Status Update Service - Business Logic Layer

Orchestrates lifecycle status changes for packages and shipment groups:
- Request validation and batch id resolution
- Chunked, bounded-concurrency batch processing
- Per-item update with tracking point and status history generation
- Group to package cascading
- Failure aggregation, optional halt / rollback / cancellation
- Customer notification and batch completion events
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from core.config import BatchDefaults

from .models import (
    BatchNotification,
    BatchUpdateConfig,
    ChangeSource,
    ChangeType,
    EntityType,
    GroupStatus,
    ItemResult,
    Package,
    PackageStatus,
    ShipmentGroup,
    StatusContext,
    StatusHistoryEntry,
    StatusUpdateRequest,
    StatusUpdateResult,
    TargetType,
    TrackingPoint,
    TransitionValidation,
    ValidationIssue,
    ValidationLevel,
)
from .protocols import (
    EventBusProtocol,
    GroupRepositoryProtocol,
    HistoryRecorderProtocol,
    IdempotencyLedgerProtocol,
    LocationResolverProtocol,
    NotifierProtocol,
    PackageRepositoryProtocol,
    StatusUpdateError,
    TrackingRecorderProtocol,
    TransitionValidatorProtocol,
)
from .status_rules import (
    AnyStatus,
    cascade_package_status,
    describe,
    impact_level,
    is_customer_visible,
    is_milestone,
    resolve_status,
    status_category,
)
from .transition_validator import DefaultTransitionValidator
from .location_resolver import StaticLocationResolver
from .events.publishers import publish_status_batch_completed, publish_status_batch_rolled_back

logger = logging.getLogger(__name__)

SKIPPED_ERROR = "skipped: batch halted after earlier failure"
CANCELLED_ERROR = "cancelled"
NOT_FOUND_ERROR = "not found"
ROLLED_BACK_ERROR = "rolled back after batch failure"


def plan_chunks(target_ids: List[str], config: BatchUpdateConfig) -> List[List[str]]:
    """
    Split target ids into processing chunks.

    Parallel processing with more ids than ``max_batch_size`` yields
    contiguous chunks of that size, processed one after another with
    concurrency inside each chunk. Otherwise a single chunk is returned
    and its items are processed sequentially.
    """
    size = config.max_batch_size
    if config.parallel_processing and len(target_ids) > size:
        return [target_ids[i:i + size] for i in range(0, len(target_ids), size)]
    return [list(target_ids)]


def parse_scheduled_for(value) -> Optional[datetime]:
    """Parse a datetime or ISO-8601 string; raises ValueError when unparseable"""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("empty timestamp")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def request_conditions(metadata: Dict) -> List[str]:
    """Satisfied transition conditions from request metadata; a single name may be given as a string"""
    conditions = metadata.get("conditions") or []
    if isinstance(conditions, str):
        return [conditions]
    return [str(c) for c in conditions]


# ====================
# Internal bookkeeping
# ====================


@dataclass
class _Compensation:
    """Reverse write applied when a batch is rolled back"""
    item_id: str
    entity_type: EntityType
    entity_id: str
    restore_status: AnyStatus
    applied_status: AnyStatus


@dataclass
class _ItemOutcome:
    """Everything one item update produced; merged after its chunk completes"""
    result: ItemResult
    tracking_points: int = 0
    history_entries: int = 0
    customers: List[str] = field(default_factory=list)
    global_warnings: List[str] = field(default_factory=list)
    reconcile: List[str] = field(default_factory=list)
    compensations: List[_Compensation] = field(default_factory=list)

    @classmethod
    def failed(cls, target_id: str, target_type: TargetType, error: str, **kwargs) -> "_ItemOutcome":
        return cls(result=ItemResult(
            target_id=target_id,
            target_type=target_type,
            success=False,
            error=error,
            **kwargs,
        ))


@dataclass
class _BatchContext:
    request: StatusUpdateRequest
    config: BatchUpdateConfig
    batch_id: str
    target_status: AnyStatus
    actor_role: str
    performed_by: str
    scheduled_for: Optional[datetime]
    conditions: List[str]
    cancel_event: Optional[asyncio.Event] = None
    locks: Dict[Tuple[str, str], asyncio.Lock] = field(default_factory=dict)

    @property
    def target_type(self) -> TargetType:
        return TargetType.GROUP if self.request.target_type == TargetType.GROUP else TargetType.PACKAGE

    def lock_for(self, entity_type: EntityType, entity_id: str) -> asyncio.Lock:
        key = (entity_type.value, entity_id)
        if key not in self.locks:
            self.locks[key] = asyncio.Lock()
        return self.locks[key]

    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class _ResultBuilder:
    """Mutable accumulator frozen into a StatusUpdateResult before return"""

    def __init__(self, batch_id: str, performed_by: Optional[str], total_requested: int):
        self.batch_id = batch_id
        self.performed_by = performed_by
        self.total_requested = total_requested
        self.timestamp = datetime.now(timezone.utc)

        self.results: List[ItemResult] = []
        self.tracking_points_created = 0
        self.status_history_entries = 0
        self.notifications_sent = 0
        self.notifications_delivered = 0
        self.global_warnings: List[str] = []
        self.global_errors: List[str] = []
        self.validation_failures: List[ValidationIssue] = []
        self.needs_reconciliation: List[str] = []
        self.compensations: List[List[_Compensation]] = []
        self._customers: Dict[str, List[str]] = {}

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def merge(self, outcome: _ItemOutcome) -> None:
        self.results.append(outcome.result)
        self.tracking_points_created += outcome.tracking_points
        self.status_history_entries += outcome.history_entries
        self.global_warnings.extend(outcome.global_warnings)
        for entity_id in outcome.reconcile:
            if entity_id not in self.needs_reconciliation:
                self.needs_reconciliation.append(entity_id)
        if outcome.result.success:
            if outcome.compensations:
                self.compensations.append(list(outcome.compensations))
            self._customers.setdefault(outcome.result.target_id, []).extend(outcome.customers)

    def fail_remaining(self, ctx: _BatchContext, target_ids: List[str], error: str) -> None:
        for target_id in target_ids:
            self.results.append(ItemResult(
                target_id=target_id,
                target_type=ctx.request.target_type,
                success=False,
                error=error,
            ))

    def fail_all(self, request: StatusUpdateRequest, message: str) -> None:
        self.results = [
            ItemResult(
                target_id=target_id,
                target_type=request.target_type,
                success=False,
                error="internal error",
            )
            for target_id in request.target_ids
        ]
        self.global_errors = [message]
        self.compensations = []
        self._customers = {}

    def affected_customers(self) -> List[str]:
        customers: Dict[str, None] = {}
        for result in self.results:
            if result.success:
                for customer_id in self._customers.get(result.target_id, []):
                    customers[customer_id] = None
        return list(customers)

    def customers_for(self, target_id: str) -> List[str]:
        """Customers reached by one target's update, cascades included"""
        return list(dict.fromkeys(self._customers.get(target_id, [])))

    def successful_entity_ids(self) -> List[str]:
        ids: Dict[str, None] = {}
        for result in self.results:
            if result.success:
                ids[result.target_id] = None
                for related in result.related_updates:
                    ids[related] = None
        return list(ids)

    def freeze(self, execution_time: float, processed: bool = True) -> StatusUpdateResult:
        item_warnings = sum(1 for r in self.results if r.warnings)
        return StatusUpdateResult(
            success=processed and self.failed == 0 and not self.global_errors,
            batch_id=self.batch_id,
            timestamp=self.timestamp,
            performed_by=self.performed_by,
            total_requested=self.total_requested,
            successful=self.successful,
            failed=self.failed,
            warnings=item_warnings + len(self.global_warnings),
            notifications_sent=self.notifications_sent,
            notifications_delivered=self.notifications_delivered,
            tracking_points_created=self.tracking_points_created,
            status_history_entries=self.status_history_entries,
            execution_time=execution_time,
            results=list(self.results),
            global_warnings=list(self.global_warnings),
            global_errors=list(self.global_errors),
            validation_failures=list(self.validation_failures),
            affected_customers=self.affected_customers(),
            needs_reconciliation=list(self.needs_reconciliation),
        )


# ====================
# Service
# ====================


class StatusUpdateService:
    """
    Status Update Service - orchestrates status changes across packages and groups.

    All collaborators are injected; the service holds no global state beyond
    what they hold.
    """

    def __init__(
        self,
        package_repository: PackageRepositoryProtocol,
        group_repository: GroupRepositoryProtocol,
        tracking_recorder: TrackingRecorderProtocol,
        history_recorder: HistoryRecorderProtocol,
        validator: Optional[TransitionValidatorProtocol] = None,
        location_resolver: Optional[LocationResolverProtocol] = None,
        notifier: Optional[NotifierProtocol] = None,
        event_bus: Optional[EventBusProtocol] = None,
        idempotency_ledger: Optional[IdempotencyLedgerProtocol] = None,
        defaults: Optional[BatchDefaults] = None,
        default_actor_role: str = "admin",
    ):
        """
        Initialize status update service with dependencies.

        Args:
            package_repository: Package store
            group_repository: Shipment group store
            tracking_recorder: Tracking point timeline store
            history_recorder: Status history store
            validator: Transition rule validator (rule tables by default)
            location_resolver: Status to facility resolver (static registry by default)
            notifier: Customer notification dispatch (optional)
            event_bus: Event bus for batch completion events (optional)
            idempotency_ledger: Dedup ledger for caller batch ids (optional)
            defaults: Batch config defaults merged under per-call config
            default_actor_role: Role used when a request carries none
        """
        self.package_repository = package_repository
        self.group_repository = group_repository
        self.tracking_recorder = tracking_recorder
        self.history_recorder = history_recorder
        self.validator = validator or DefaultTransitionValidator()
        self.location_resolver = location_resolver or StaticLocationResolver()
        self.notifier = notifier
        self.event_bus = event_bus
        self.idempotency_ledger = idempotency_ledger
        self.defaults = defaults or BatchDefaults()
        self.default_actor_role = default_actor_role

    # ====================
    # Public operations
    # ====================

    async def execute_status_update(
        self,
        request: StatusUpdateRequest,
        config: Optional[BatchUpdateConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StatusUpdateResult:
        """
        Apply one new status to every target in the request.

        Never raises for per-item or collaborator failures; every outcome is
        reported in the returned result.

        Args:
            request: What to change
            config: Per-call tuning; unset fields use the service defaults
            cancel_event: When set, no further items are started

        Returns:
            Frozen result with one entry per target id
        """
        started = time.monotonic()
        merged = self._merge_config(config)
        batch_id = request.batch_id or self._generate_batch_id()
        builder = _ResultBuilder(batch_id, request.performed_by, len(request.target_ids))
        aborted = False

        try:
            if request.batch_id and self.idempotency_ledger:
                prior = await self.idempotency_ledger.get_result(request.batch_id)
                if prior is not None:
                    logger.info(f"Batch {request.batch_id} already processed, returning recorded result")
                    return prior.model_copy(update={
                        "global_warnings": prior.global_warnings + [
                            f"Batch {request.batch_id} was already processed; returning the recorded result"
                        ],
                    })

            issues, target_status, scheduled_for = self._validate_request(request)
            if issues:
                builder.validation_failures = issues
                builder.global_errors = [f"{issue.field}: {issue.message}" for issue in issues]
                result = builder.freeze(time.monotonic() - started, processed=False)
                logger.warning(
                    f"Status update {batch_id} rejected: {'; '.join(builder.global_errors)}"
                )
                return result

            if not request.skip_validation:
                builder.global_warnings.extend(self._request_warnings(request, scheduled_for))

            ctx = _BatchContext(
                request=request,
                config=merged,
                batch_id=batch_id,
                target_status=target_status,
                actor_role=request.performed_by_role or self.default_actor_role,
                performed_by=request.performed_by,
                scheduled_for=scheduled_for,
                conditions=request_conditions(request.metadata),
                cancel_event=cancel_event,
            )

            if request.target_type == TargetType.GROUP:
                handler = self._update_group_item
            else:
                # Batches are processed as packages
                handler = self._update_package_item

            await self._process_targets(ctx, handler, builder)

            if merged.rollback_on_failure and builder.failed and builder.compensations:
                await self._rollback(ctx, builder)

            if request.notify_customers:
                await self._dispatch_notifications(ctx, builder)

        except Exception as e:
            logger.error(f"Status update {batch_id} failed unexpectedly: {e}", exc_info=True)
            builder.fail_all(request, f"Status update failed: {e}")
            aborted = True

        result = builder.freeze(time.monotonic() - started)
        self._log_summary(request, result)

        if self.event_bus is not None and not aborted:
            await publish_status_batch_completed(self.event_bus, request, result)
            if any(r.rolled_back for r in result.results):
                await publish_status_batch_rolled_back(self.event_bus, result)

        if request.batch_id and self.idempotency_ledger and not aborted:
            try:
                await self.idempotency_ledger.record_result(result)
            except Exception as e:
                logger.error(f"Failed to record batch {batch_id} in idempotency ledger: {e}")

        return result

    async def batch_update_group_status(
        self,
        group_ids: List[str],
        status: str,
        reason: Optional[str] = None,
        scheduled_for=None,
    ) -> StatusUpdateResult:
        """Update groups with cascading and customer notification turned on"""
        request = StatusUpdateRequest(
            target_type=TargetType.GROUP,
            target_ids=list(group_ids),
            new_status=status.value if hasattr(status, "value") else status,
            performed_by="system",
            reason=reason,
            scheduled_for=scheduled_for,
            cascade_to_related=True,
            notify_customers=True,
            source=ChangeSource.SYSTEM_UPDATE,
        )
        return await self.execute_status_update(request)

    # ====================
    # Validation
    # ====================

    def _merge_config(self, config: Optional[BatchUpdateConfig]) -> BatchUpdateConfig:
        base = {
            "max_batch_size": self.defaults.max_batch_size,
            "parallel_processing": self.defaults.parallel_processing,
            "continue_on_error": self.defaults.continue_on_error,
            "validation_level": self.defaults.validation_level,
            "notification_batching": self.defaults.notification_batching,
            "rollback_on_failure": self.defaults.rollback_on_failure,
        }
        if config is not None:
            base.update(config.model_dump(exclude_unset=True))
        return BatchUpdateConfig(**base)

    def _validate_request(
        self, request: StatusUpdateRequest
    ) -> Tuple[List[ValidationIssue], Optional[AnyStatus], Optional[datetime]]:
        issues: List[ValidationIssue] = []
        target_status = None
        scheduled_for = None

        if not request.target_ids:
            issues.append(ValidationIssue(field="target_ids", message="At least one target id is required"))
        elif any(not (tid and tid.strip()) for tid in request.target_ids):
            issues.append(ValidationIssue(field="target_ids", message="Target ids cannot be empty"))

        if not request.new_status:
            issues.append(ValidationIssue(field="new_status", message="New status is required"))
        else:
            target_status = resolve_status(request.target_type, request.new_status)
            if target_status is None:
                kind = "group" if request.target_type == TargetType.GROUP else "package"
                issues.append(ValidationIssue(
                    field="new_status",
                    message=f"'{request.new_status}' is not a valid {kind} status",
                ))

        if not (request.performed_by and request.performed_by.strip()):
            issues.append(ValidationIssue(field="performed_by", message="Performed by is required"))

        if request.scheduled_for is not None:
            try:
                scheduled_for = parse_scheduled_for(request.scheduled_for)
            except (TypeError, ValueError):
                issues.append(ValidationIssue(
                    field="scheduled_for",
                    message=f"'{request.scheduled_for}' is not a valid timestamp",
                ))

        return issues, target_status, scheduled_for

    def _request_warnings(self, request: StatusUpdateRequest, scheduled_for: Optional[datetime]) -> List[str]:
        warnings: List[str] = []
        seen = set()
        duplicates = []
        for tid in request.target_ids:
            if tid in seen and tid not in duplicates:
                duplicates.append(tid)
            seen.add(tid)
        if duplicates:
            warnings.append(f"Duplicate target ids will be applied in order: {', '.join(duplicates)}")
        if scheduled_for is not None and scheduled_for < datetime.now(timezone.utc):
            warnings.append("Scheduled time is in the past")
        if request.cascade_to_related and request.target_type != TargetType.GROUP:
            warnings.append("Cascading only applies to group updates and was ignored")
        return warnings

    def _gate(self, ctx: _BatchContext, verdict: TransitionValidation) -> Tuple[Optional[str], List[str]]:
        """Apply the validation level; returns (blocking error, warnings to carry)"""
        level = ctx.config.validation_level
        force = ctx.request.force_update
        warnings = list(verdict.warnings)

        if not verdict.is_valid:
            if level == ValidationLevel.LENIENT and force:
                warnings.append(f"Forced past validation errors: {'; '.join(verdict.errors)}")
                return None, warnings
            return "; ".join(verdict.errors) or "Invalid status transition", warnings

        if level == ValidationLevel.STRICT and warnings and not force:
            return "Strict validation rejected transition with warnings", warnings

        return None, warnings

    # ====================
    # Batch processing
    # ====================

    async def _process_targets(
        self,
        ctx: _BatchContext,
        handler: Callable[[_BatchContext, str], Awaitable[_ItemOutcome]],
        builder: _ResultBuilder,
    ) -> None:
        target_ids = list(ctx.request.target_ids)
        chunks = plan_chunks(target_ids, ctx.config)
        concurrent = len(chunks) > 1

        if concurrent:
            logger.info(
                f"Batch {ctx.batch_id}: {len(target_ids)} targets in {len(chunks)} chunks of up to "
                f"{ctx.config.max_batch_size}"
            )

        processed = 0
        for index, chunk in enumerate(chunks):
            if ctx.cancelled():
                builder.fail_remaining(ctx, target_ids[processed:], CANCELLED_ERROR)
                return

            if concurrent:
                outcomes = await asyncio.gather(*(self._run_item(ctx, handler, tid) for tid in chunk))
                for outcome in outcomes:
                    builder.merge(outcome)
                processed += len(chunk)
                logger.debug(f"Batch {ctx.batch_id}: chunk {index + 1}/{len(chunks)} complete")
                halted = any(not o.result.success for o in outcomes)
            else:
                halted = False
                for target_id in chunk:
                    if ctx.cancelled():
                        builder.fail_remaining(ctx, target_ids[processed:], CANCELLED_ERROR)
                        return
                    outcome = await self._run_item(ctx, handler, target_id)
                    builder.merge(outcome)
                    processed += 1
                    if not outcome.result.success and not ctx.config.continue_on_error:
                        halted = True
                        break

            if halted and not ctx.config.continue_on_error:
                remaining = target_ids[processed:]
                if remaining:
                    logger.warning(
                        f"Batch {ctx.batch_id} halted after failure; skipping {len(remaining)} targets"
                    )
                    builder.fail_remaining(ctx, remaining, SKIPPED_ERROR)
                return

    async def _run_item(
        self,
        ctx: _BatchContext,
        handler: Callable[[_BatchContext, str], Awaitable[_ItemOutcome]],
        target_id: str,
    ) -> _ItemOutcome:
        if ctx.cancelled():
            return _ItemOutcome.failed(target_id, ctx.request.target_type, CANCELLED_ERROR)

        entity_type = EntityType.GROUP if ctx.target_type == TargetType.GROUP else EntityType.PACKAGE
        async with ctx.lock_for(entity_type, target_id):
            try:
                return await handler(ctx, target_id)
            except Exception as e:
                logger.error(f"Unexpected error updating {entity_type.value} {target_id}: {e}", exc_info=True)
                return _ItemOutcome.failed(target_id, ctx.request.target_type, str(e) or type(e).__name__)

    # ====================
    # Per-item updates
    # ====================

    async def _update_package_item(self, ctx: _BatchContext, package_id: str) -> _ItemOutcome:
        return await self._update_single_package(ctx, package_id, ctx.target_status)

    async def _update_single_package(
        self,
        ctx: _BatchContext,
        package_id: str,
        new_status: PackageStatus,
        source: Optional[ChangeSource] = None,
        change_type: ChangeType = ChangeType.STATUS_UPDATE,
    ) -> _ItemOutcome:
        source = source or ctx.request.source
        target_type = ctx.request.target_type if source != ChangeSource.CASCADE_UPDATE else TargetType.PACKAGE

        package = await self.package_repository.get_package(package_id)
        if package is None:
            return _ItemOutcome.failed(package_id, target_type, NOT_FOUND_ERROR)

        previous = package.status
        warnings: List[str] = []

        if not ctx.request.skip_validation:
            context = await self._package_context(package)
            verdict = await self.validator.validate_transition(
                context, new_status.value, ctx.actor_role, ctx.request.reason, ctx.conditions
            )
            error, warnings = self._gate(ctx, verdict)
            if error:
                return _ItemOutcome.failed(
                    package_id, target_type, error,
                    previous_status=previous.value, errors=list(verdict.errors), warnings=warnings,
                )

        try:
            await self.package_repository.save_package(
                package.model_copy(update={"status": new_status, "updated_by": ctx.performed_by})
            )
        except StatusUpdateError as e:
            logger.warning(f"Failed to persist package {package_id}: {e}")
            return _ItemOutcome.failed(
                package_id, target_type, str(e), previous_status=previous.value, warnings=warnings
            )

        outcome = _ItemOutcome(result=ItemResult(
            target_id=package_id,
            target_type=target_type,
            success=True,
            previous_status=previous.value,
            new_status=new_status.value,
            warnings=warnings,
        ))
        outcome.compensations.append(_Compensation(
            item_id=package_id,
            entity_type=EntityType.PACKAGE,
            entity_id=package_id,
            restore_status=previous,
            applied_status=new_status,
        ))
        if package.customer_id:
            outcome.customers.append(package.customer_id)

        location_name = None
        try:
            point = await self._append_tracking_point(ctx, package, new_status, source)
            location_name = point.location_name
            outcome.tracking_points = 1
            outcome.result.tracking_points_created = 1
        except Exception as e:
            logger.warning(f"Tracking point for package {package_id} not recorded: {e}")
            outcome.result.warnings.append(f"Tracking point not recorded: {e}")

        await self._record_history(
            ctx, outcome, EntityType.PACKAGE, package_id, previous, new_status,
            source=source, change_type=change_type, location=location_name,
        )
        return outcome

    async def _update_group_item(self, ctx: _BatchContext, group_id: str) -> _ItemOutcome:
        new_status: GroupStatus = ctx.target_status

        group = await self.group_repository.get_group(group_id)
        if group is None:
            return _ItemOutcome.failed(group_id, TargetType.GROUP, NOT_FOUND_ERROR)

        previous = group.status
        warnings: List[str] = []

        if not ctx.request.skip_validation:
            context = await self._group_context(group)
            verdict = await self.validator.validate_transition(
                context, new_status.value, ctx.actor_role, ctx.request.reason, ctx.conditions
            )
            error, warnings = self._gate(ctx, verdict)
            if error:
                return _ItemOutcome.failed(
                    group_id, TargetType.GROUP, error,
                    previous_status=previous.value, errors=list(verdict.errors), warnings=warnings,
                )

        try:
            await self.group_repository.save_group(
                group.model_copy(update={"status": new_status, "updated_by": ctx.performed_by})
            )
        except StatusUpdateError as e:
            logger.warning(f"Failed to persist group {group_id}: {e}")
            return _ItemOutcome.failed(
                group_id, TargetType.GROUP, str(e), previous_status=previous.value, warnings=warnings
            )

        outcome = _ItemOutcome(result=ItemResult(
            target_id=group_id,
            target_type=TargetType.GROUP,
            success=True,
            previous_status=previous.value,
            new_status=new_status.value,
            warnings=warnings,
        ))
        outcome.compensations.append(_Compensation(
            item_id=group_id,
            entity_type=EntityType.GROUP,
            entity_id=group_id,
            restore_status=previous,
            applied_status=new_status,
        ))

        await self._record_history(
            ctx, outcome, EntityType.GROUP, group_id, previous, new_status,
            source=ctx.request.source, change_type=ChangeType.STATUS_UPDATE,
            location=ctx.request.location,
        )

        if ctx.request.cascade_to_related:
            await self._cascade_to_packages(ctx, group, new_status, outcome)

        return outcome

    async def _cascade_to_packages(
        self,
        ctx: _BatchContext,
        group: ShipmentGroup,
        group_status: GroupStatus,
        outcome: _ItemOutcome,
    ) -> None:
        package_status = cascade_package_status(group_status)
        if package_status is None:
            outcome.global_warnings.append(
                f"Group {group.id}: status {group_status.value} does not cascade to packages"
            )
            return

        try:
            packages = await self.package_repository.list_packages_in_group(group.id)
        except Exception as e:
            logger.warning(f"Could not load packages for group {group.id}: {e}")
            outcome.global_warnings.append(f"Group {group.id}: cascade skipped, packages unavailable ({e})")
            return

        for package in packages:
            if ctx.cancelled():
                outcome.global_warnings.append(
                    f"Group {group.id}: cascade to package {package.id} cancelled"
                )
                continue
            async with ctx.lock_for(EntityType.PACKAGE, package.id):
                try:
                    sub = await self._update_single_package(
                        ctx, package.id, package_status,
                        source=ChangeSource.CASCADE_UPDATE,
                        change_type=ChangeType.CASCADE_UPDATE,
                    )
                except Exception as e:
                    logger.error(f"Cascade to package {package.id} raised: {e}", exc_info=True)
                    sub = _ItemOutcome.failed(package.id, TargetType.PACKAGE, str(e) or type(e).__name__)

            if not sub.result.success:
                outcome.global_warnings.append(
                    f"Cascade from group {group.id} to package {package.id} failed: {sub.result.error}"
                )
                continue

            outcome.result.related_updates.append(package.id)
            outcome.tracking_points += sub.tracking_points
            outcome.history_entries += sub.history_entries
            outcome.customers.extend(sub.customers)
            outcome.global_warnings.extend(sub.global_warnings)
            outcome.reconcile.extend(sub.reconcile)
            for compensation in sub.compensations:
                compensation.item_id = group.id
                outcome.compensations.append(compensation)

        logger.info(
            f"Group {group.id} cascaded {package_status.value} to "
            f"{len(outcome.result.related_updates)}/{len(packages)} packages"
        )

    # ====================
    # Side effects
    # ====================

    async def _package_context(self, package: Package) -> StatusContext:
        return StatusContext(
            entity_id=package.id,
            entity_type=EntityType.PACKAGE,
            current_status=package.status.value,
            priority=package.priority,
            is_premium=package.is_premium,
            special_handling=list(package.special_handling),
            group_id=package.group_id,
            previous_statuses=await self._previous_statuses(package.id),
        )

    async def _group_context(self, group: ShipmentGroup) -> StatusContext:
        return StatusContext(
            entity_id=group.id,
            entity_type=EntityType.GROUP,
            current_status=group.status.value,
            previous_statuses=await self._previous_statuses(group.id),
        )

    async def _previous_statuses(self, entity_id: str) -> List[str]:
        try:
            history = await self.history_recorder.list_history(entity_id)
        except Exception as e:
            logger.warning(f"Could not load history for {entity_id}: {e}")
            return []
        statuses: List[str] = []
        for entry in history:
            if entry.previous_status:
                statuses.append(entry.previous_status)
            statuses.append(entry.new_status)
        return list(dict.fromkeys(statuses))

    async def _append_tracking_point(
        self,
        ctx: _BatchContext,
        package: Package,
        status: PackageStatus,
        source: ChangeSource,
        notes: Optional[str] = None,
    ) -> TrackingPoint:
        location = self.location_resolver.resolve_location(status.value, package.destination_city)
        sequence = await self.tracking_recorder.count_tracking_points(package.id) + 1
        point = TrackingPoint(
            id=self._generate_tracking_id(),
            package_id=package.id,
            status=status,
            location=location,
            location_name=ctx.request.location or location.name,
            description=describe(status),
            sequence=sequence,
            is_milestone=is_milestone(status),
            is_active=True,
            source=source,
            confidence=1.0,
            created_by=ctx.performed_by,
            batch_id=ctx.batch_id,
            notes=notes if notes is not None else ctx.request.notes,
        )
        return await self.tracking_recorder.append_tracking_point(point)

    async def _record_history(
        self,
        ctx: _BatchContext,
        outcome: _ItemOutcome,
        entity_type: EntityType,
        entity_id: str,
        previous: AnyStatus,
        new_status: AnyStatus,
        source: ChangeSource,
        change_type: ChangeType,
        location: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        metadata = dict(ctx.request.metadata)
        if ctx.scheduled_for is not None:
            metadata["scheduled_for"] = ctx.scheduled_for.isoformat()

        entry = StatusHistoryEntry(
            id=self._generate_history_id(),
            entity_id=entity_id,
            entity_type=entity_type,
            change_type=change_type,
            previous_status=previous.value,
            new_status=new_status.value,
            status_category=status_category(new_status),
            impact_level=impact_level(new_status),
            performed_by=ctx.performed_by,
            actor_role=ctx.actor_role,
            reason=reason if reason is not None else ctx.request.reason,
            notes=ctx.request.notes,
            location=location,
            batch_id=ctx.batch_id,
            source=source,
            is_customer_visible=is_customer_visible(new_status),
            metadata=metadata,
        )
        try:
            await self.history_recorder.append_history_entry(entry)
        except Exception as e:
            logger.error(f"Status history for {entity_type.value} {entity_id} not recorded: {e}")
            outcome.result.warnings.append(f"Status history not recorded: {e}")
            outcome.reconcile.append(entity_id)
            outcome.global_warnings.append(
                f"{entity_type.value.capitalize()} {entity_id} needs reconciliation: status history not recorded"
            )
            return
        outcome.history_entries += 1
        if outcome.result.target_id == entity_id and outcome.result.history_entry_id is None:
            outcome.result.history_entry_id = entry.id

    # ====================
    # Rollback
    # ====================

    async def _rollback(self, ctx: _BatchContext, builder: _ResultBuilder) -> None:
        """
        Compensate every successful item, last item first.

        Within an item the target entity is restored before its cascaded
        packages. When the target itself cannot be restored the item is left
        as applied; when a later compensation fails the item is reported as
        partially rolled back.
        """
        logger.warning(
            f"Batch {ctx.batch_id}: rolling back {len(builder.compensations)} items after "
            f"{builder.failed} failures"
        )
        errors: Dict[str, Optional[str]] = {}
        for item_compensations in reversed(builder.compensations):
            item_id = item_compensations[0].item_id
            for applied, compensation in enumerate(item_compensations):
                try:
                    tracking, history = await self._compensate(ctx, compensation, builder)
                except Exception as e:
                    message = f"Rollback of {compensation.entity_type.value} {compensation.entity_id} failed: {e}"
                    logger.error(message)
                    builder.global_errors.append(message)
                    errors[item_id] = f"partially rolled back: {e}" if applied else None
                    break
                builder.tracking_points_created += tracking
                builder.status_history_entries += history
            else:
                errors.setdefault(item_id, ROLLED_BACK_ERROR)

        for index, result in enumerate(builder.results):
            error = errors.get(result.target_id)
            if result.success and error:
                builder.results[index] = result.model_copy(update={
                    "success": False,
                    "rolled_back": True,
                    "error": error,
                })
        builder.compensations = []

    async def _compensate(
        self, ctx: _BatchContext, compensation: _Compensation, builder: _ResultBuilder
    ) -> Tuple[int, int]:
        marker = _ItemOutcome(result=ItemResult(
            target_id=compensation.entity_id,
            target_type=TargetType.GROUP if compensation.entity_type == EntityType.GROUP else TargetType.PACKAGE,
            success=True,
        ))
        reason = f"Rollback of batch {ctx.batch_id}"
        tracking = 0

        if compensation.entity_type == EntityType.PACKAGE:
            package = await self.package_repository.get_package(compensation.entity_id)
            if package is None:
                raise StatusUpdateError(f"package {compensation.entity_id} not found")
            if package.status != compensation.applied_status:
                raise StatusUpdateError(
                    f"package {compensation.entity_id} changed to {package.status.value} since update"
                )
            await self.package_repository.save_package(
                package.model_copy(update={"status": compensation.restore_status, "updated_by": ctx.performed_by})
            )
            try:
                await self._append_tracking_point(
                    ctx, package, compensation.restore_status, ChangeSource.SYSTEM_UPDATE, notes=reason
                )
                tracking = 1
            except Exception as e:
                logger.warning(f"Rollback tracking point for {package.id} not recorded: {e}")
        else:
            group = await self.group_repository.get_group(compensation.entity_id)
            if group is None:
                raise StatusUpdateError(f"group {compensation.entity_id} not found")
            if group.status != compensation.applied_status:
                raise StatusUpdateError(
                    f"group {compensation.entity_id} changed to {group.status.value} since update"
                )
            await self.group_repository.save_group(
                group.model_copy(update={"status": compensation.restore_status, "updated_by": ctx.performed_by})
            )

        await self._record_history(
            ctx, marker, compensation.entity_type, compensation.entity_id,
            compensation.applied_status, compensation.restore_status,
            source=ChangeSource.SYSTEM_UPDATE, change_type=ChangeType.ROLLBACK, reason=reason,
        )
        builder.global_warnings.extend(marker.global_warnings)
        for entity_id in marker.reconcile:
            if entity_id not in builder.needs_reconciliation:
                builder.needs_reconciliation.append(entity_id)
        return tracking, marker.history_entries

    # ====================
    # Notifications
    # ====================

    async def _dispatch_notifications(self, ctx: _BatchContext, builder: _ResultBuilder) -> None:
        if builder.successful == 0:
            return
        if self.notifier is None:
            builder.global_warnings.append("Customer notification requested but no notifier is configured")
            return

        if ctx.config.notification_batching:
            notifications = [
                self._notification(ctx, builder.successful_entity_ids(), builder.affected_customers())
            ]
        else:
            notifications = [
                self._notification(
                    ctx,
                    [result.target_id, *result.related_updates],
                    builder.customers_for(result.target_id),
                )
                for result in builder.results if result.success
            ]

        delivered = 0
        for notification in notifications:
            try:
                delivered += await self.notifier.notify(notification)
            except Exception as e:
                logger.warning(f"Notification for batch {ctx.batch_id} failed: {e}")
                builder.global_warnings.append(f"Customer notification failed: {e}")

        # Approximation: one notification per successful target
        builder.notifications_sent = builder.successful
        builder.notifications_delivered = delivered

    def _notification(self, ctx: _BatchContext, entity_ids: List[str], customers: List[str]) -> BatchNotification:
        return BatchNotification(
            batch_id=ctx.batch_id,
            target_type=ctx.request.target_type,
            new_status=ctx.target_status.value,
            performed_by=ctx.performed_by,
            entity_ids=entity_ids,
            affected_customers=customers,
            reason=ctx.request.reason,
            scheduled_for=ctx.scheduled_for,
        )

    # ====================
    # Helpers
    # ====================

    def _log_summary(self, request: StatusUpdateRequest, result: StatusUpdateResult) -> None:
        summary = {
            "batch_id": result.batch_id,
            "target_type": request.target_type.value,
            "new_status": request.new_status,
            "performed_by": result.performed_by,
            "total_requested": result.total_requested,
            "successful": result.successful,
            "failed": result.failed,
            "warnings": result.warnings,
            "tracking_points_created": result.tracking_points_created,
            "status_history_entries": result.status_history_entries,
            "notifications_sent": result.notifications_sent,
            "execution_time": round(result.execution_time, 4),
        }
        logger.info(
            f"Status update {result.batch_id} completed: {result.successful}/{result.total_requested} "
            f"succeeded, {result.failed} failed in {result.execution_time:.3f}s",
            extra={"batch_summary": summary},
        )

    @staticmethod
    def _generate_batch_id() -> str:
        return f"batch_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

    @staticmethod
    def _generate_tracking_id() -> str:
        return f"tp_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

    @staticmethod
    def _generate_history_id() -> str:
        return f"HST-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6].upper()}"
