"""
Status Update Service Component Tests

Tests StatusUpdateService against the in-memory store with a mock event bus
and notifier.

Coverage:
1. Single and mixed package updates
2. Request validation
3. Validation levels and overrides
4. Tracking timeline and status history
5. Notifications and events

Usage:
    pytest tests/component/status_update/test_status_update_component.py -v
"""

import pytest

from microservices.status_update_service.models import (
    BatchUpdateConfig,
    ChangeType,
    EntityType,
    ImpactLevel,
    PackageStatus,
    StatusCategory,
    TargetType,
    ValidationLevel,
)
from tests.component.mocks.store_mocks import build_service


# =============================================================================
# 1. Package Updates
# =============================================================================


@pytest.mark.component
@pytest.mark.asyncio
class TestPackageUpdates:
    """Single and mixed package updates"""

    async def test_delivered_and_missing_package(self, status_service, store, add_packages, data_factory):
        """One valid package and one unknown id: one success, one 'not found'"""
        (p1,) = add_packages(PackageStatus.OUT_FOR_DELIVERY)
        request = data_factory.make_request([p1.id, "P2-missing"], PackageStatus.DELIVERED.value)

        result = await status_service.execute_status_update(request)

        assert result.success is False
        assert result.total_requested == 2
        assert result.successful == 1
        assert result.failed == 1
        assert [r.target_id for r in result.results] == [p1.id, "P2-missing"]
        assert result.results[0].success is True
        assert result.results[0].previous_status == "out-for-delivery"
        assert result.results[0].new_status == "delivered"
        assert result.results[1].error == "not found"
        assert result.tracking_points_created == 1
        assert result.status_history_entries == 1

        stored = await store.get_package(p1.id)
        assert stored.status == PackageStatus.DELIVERED
        assert stored.version == 2
        assert stored.updated_by == request.performed_by

    async def test_all_successful_sets_success(self, status_service, add_packages, data_factory):
        packages = add_packages(PackageStatus.PROCESSING, count=3)
        request = data_factory.make_request([p.id for p in packages], "ready-for-grouping")

        result = await status_service.execute_status_update(request)

        assert result.success is True
        assert result.successful == 3
        assert result.failed == 0
        assert result.batch_id.startswith("batch_")
        assert result.execution_time >= 0

    async def test_status_accepted_by_member_name(self, status_service, store, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request([package.id], "READY_FOR_GROUPING")

        result = await status_service.execute_status_update(request)

        assert result.successful == 1
        assert (await store.get_package(package.id)).status == PackageStatus.READY_FOR_GROUPING

    async def test_batch_target_type_updates_packages(self, status_service, store, add_packages, data_factory):
        packages = add_packages(PackageStatus.PROCESSING, count=2)
        request = data_factory.make_request(
            [p.id for p in packages], "ready-for-grouping", target_type=TargetType.BATCH
        )

        result = await status_service.execute_status_update(request)

        assert result.successful == 2
        assert all(r.target_type == TargetType.BATCH for r in result.results)

    async def test_rejected_transition_has_no_side_effects(self, status_service, store, add_packages, data_factory):
        """PENDING -> DELIVERED is not a rule; nothing is written"""
        (package,) = add_packages(PackageStatus.PENDING)
        request = data_factory.make_request([package.id], "delivered")

        result = await status_service.execute_status_update(request)

        assert result.failed == 1
        assert "Invalid transition from pending to delivered" in result.results[0].error
        stored = await store.get_package(package.id)
        assert stored.status == PackageStatus.PENDING
        assert stored.version == 1
        assert await store.list_tracking_points(package.id) == []
        assert await store.list_history(package.id) == []

    async def test_repeated_invalid_request_fails_the_same_way(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PENDING)
        request = data_factory.make_request([package.id], "delivered")

        first = await status_service.execute_status_update(request)
        second = await status_service.execute_status_update(request)

        assert first.results[0].error == second.results[0].error
        assert first.failed == second.failed == 1

    async def test_same_status_is_rejected(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request([package.id], "processing")

        result = await status_service.execute_status_update(request)

        assert result.failed == 1
        assert "already processing" in result.results[0].error

    async def test_role_not_allowed(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.OUT_FOR_DELIVERY)
        request = data_factory.make_request([package.id], "delivered", performed_by_role="processor")

        result = await status_service.execute_status_update(request)

        assert result.failed == 1
        assert "Role 'processor'" in result.results[0].error

    async def test_duplicate_ids_are_applied_in_order(self, status_service, add_packages, data_factory):
        """The second occurrence sees the first one's write"""
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request([package.id, package.id], "ready-for-grouping")

        result = await status_service.execute_status_update(request)

        assert result.successful == 1
        assert result.failed == 1
        assert "already" in result.results[1].error
        assert any("Duplicate target ids" in w for w in result.global_warnings)


# =============================================================================
# 2. Request Validation
# =============================================================================


@pytest.mark.component
@pytest.mark.asyncio
class TestRequestValidation:
    """Structural request checks come back as a result, never an exception"""

    async def test_empty_target_ids(self, status_service, data_factory, mock_event_bus):
        request = data_factory.make_request([], "processing")

        result = await status_service.execute_status_update(request)

        assert result.success is False
        assert result.results == []
        assert result.total_requested == 0
        assert [f.field for f in result.validation_failures] == ["target_ids"]
        mock_event_bus.assert_no_events_published()

    async def test_unknown_status(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request([package.id], data_factory.make_invalid_status())

        result = await status_service.execute_status_update(request)

        assert result.success is False
        assert result.total_requested == 1
        assert result.results == []
        assert result.validation_failures[0].field == "new_status"

    async def test_group_status_is_not_a_package_status(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request([package.id], "pending_confirmation")

        result = await status_service.execute_status_update(request)

        assert result.validation_failures[0].field == "new_status"

    async def test_missing_actor_and_bad_timestamp(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request(
            [package.id],
            "ready-for-grouping",
            performed_by="  ",
            scheduled_for=data_factory.make_invalid_timestamp(),
        )

        result = await status_service.execute_status_update(request)

        fields = {f.field for f in result.validation_failures}
        assert fields == {"performed_by", "scheduled_for"}
        assert len(result.global_errors) == 2

    async def test_past_schedule_and_package_cascade_warn(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request(
            [package.id],
            "ready-for-grouping",
            scheduled_for=data_factory.make_past_timestamp(),
            cascade_to_related=True,
        )

        result = await status_service.execute_status_update(request)

        assert result.successful == 1
        assert "Scheduled time is in the past" in result.global_warnings
        assert any("Cascading only applies" in w for w in result.global_warnings)

    async def test_skip_validation_skips_request_warnings(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request(
            [package.id],
            "ready-for-grouping",
            scheduled_for=data_factory.make_past_timestamp(),
            skip_validation=True,
        )

        result = await status_service.execute_status_update(request)

        assert result.successful == 1
        assert result.global_warnings == []

    async def test_scheduled_for_is_recorded_in_history(self, status_service, store, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        when = data_factory.make_future_timestamp()
        request = data_factory.make_request([package.id], "ready-for-grouping", scheduled_for=when)

        await status_service.execute_status_update(request)

        (entry,) = await store.list_history(package.id)
        assert "scheduled_for" in entry.metadata


# =============================================================================
# 3. Validation Levels
# =============================================================================


@pytest.mark.component
@pytest.mark.asyncio
class TestValidationLevels:
    """STRICT / NORMAL / LENIENT gating with force_update and skip_validation"""

    async def test_normal_passes_with_warnings(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request([package.id], "ready-for-grouping", all_conditions=False)

        result = await status_service.execute_status_update(request)

        assert result.successful == 1
        assert any("Unconfirmed transition conditions" in w for w in result.results[0].warnings)
        assert result.warnings == 1

    async def test_single_condition_string(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.OUT_FOR_DELIVERY)
        request = data_factory.make_request(
            [package.id], "delivered", all_conditions=False, metadata={"conditions": "recipient_confirmed"}
        )

        result = await status_service.execute_status_update(request)

        assert result.successful == 1
        assert result.results[0].warnings == ["Unconfirmed transition conditions: signature_obtained"]

    async def test_strict_blocks_on_warnings(self, status_service, store, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request([package.id], "ready-for-grouping", all_conditions=False)

        result = await status_service.execute_status_update(request, data_factory.make_strict_config())

        assert result.failed == 1
        assert "Strict validation" in result.results[0].error
        assert (await store.get_package(package.id)).status == PackageStatus.PROCESSING

    async def test_strict_with_force_passes(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request(
            [package.id], "ready-for-grouping", all_conditions=False, force_update=True
        )

        result = await status_service.execute_status_update(request, data_factory.make_strict_config())

        assert result.successful == 1

    async def test_lenient_needs_force_to_bypass_errors(self, status_service, store, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PENDING)
        config = BatchUpdateConfig(validation_level=ValidationLevel.LENIENT)

        blocked = await status_service.execute_status_update(
            data_factory.make_request([package.id], "delivered"), config
        )
        forced = await status_service.execute_status_update(
            data_factory.make_request([package.id], "delivered", force_update=True), config
        )

        assert blocked.failed == 1
        assert forced.successful == 1
        assert any("Forced past validation errors" in w for w in forced.results[0].warnings)
        assert (await store.get_package(package.id)).status == PackageStatus.DELIVERED

    async def test_normal_ignores_force_for_errors(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PENDING)
        request = data_factory.make_request([package.id], "delivered", force_update=True)

        result = await status_service.execute_status_update(request)

        assert result.failed == 1

    async def test_skip_validation_bypasses_rules(self, status_service, store, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PENDING)
        request = data_factory.make_request([package.id], "delivered", skip_validation=True)

        result = await status_service.execute_status_update(request)

        assert result.successful == 1
        assert (await store.get_package(package.id)).status == PackageStatus.DELIVERED


# =============================================================================
# 4. Tracking and History
# =============================================================================


@pytest.mark.component
@pytest.mark.asyncio
class TestTrackingAndHistory:
    """Tracking timeline and audit records produced per update"""

    async def test_sequence_is_gap_free_with_single_active_point(
        self, status_service, store, add_packages, data_factory
    ):
        (package,) = add_packages(PackageStatus.PENDING, destination_city="Kumasi")
        for status in ["processing", "ready-for-grouping", "grouped", "group-confirmed", "dispatched", "in-transit"]:
            result = await status_service.execute_status_update(
                data_factory.make_request([package.id], status)
            )
            assert result.successful == 1, result.results[0].error

        points = await store.list_tracking_points(package.id)
        assert [p.sequence for p in points] == [1, 2, 3, 4, 5, 6]
        assert [p.is_active for p in points] == [False] * 5 + [True]
        assert points[-1].status == PackageStatus.IN_TRANSIT
        assert points[-1].location.facility_id == "KUMASI_DISTRIBUTION_HUB"
        assert points[-1].is_milestone is True
        assert points[0].location.facility_id == "ACCRA_MAIN_WAREHOUSE"

    async def test_location_override_and_description(self, status_service, store, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        request = data_factory.make_request([package.id], "ready-for-grouping", location="Dock 4")

        result = await status_service.execute_status_update(request)

        (point,) = await store.list_tracking_points(package.id)
        assert point.location_name == "Dock 4"
        assert point.location.facility_id == "ACCRA_SORTING_CENTER"
        assert point.description == "Package processed and available for batch selection"
        assert point.batch_id == result.batch_id
        assert result.results[0].tracking_points_created == 1

    async def test_history_entry_fields(self, status_service, store, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.IN_TRANSIT)
        request = data_factory.make_request(
            [package.id], "delayed", reason="Road closure", performed_by_role="driver"
        )

        result = await status_service.execute_status_update(request)

        (entry,) = await store.list_history(package.id)
        assert entry.entity_type == EntityType.PACKAGE
        assert entry.change_type == ChangeType.STATUS_UPDATE
        assert entry.previous_status == "in-transit"
        assert entry.new_status == "delayed"
        assert entry.status_category == StatusCategory.EXCEPTION
        assert entry.impact_level == ImpactLevel.HIGH
        assert entry.reason == "Road closure"
        assert entry.actor_role == "driver"
        assert entry.batch_id == result.batch_id
        assert result.results[0].history_entry_id == entry.id

    async def test_reason_required(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.IN_TRANSIT)
        request = data_factory.make_request([package.id], "delayed")

        result = await status_service.execute_status_update(request)

        assert result.failed == 1
        assert "reason is required" in result.results[0].error

    async def test_default_actor_role_applies(self, store, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        service = build_service(store)
        request = data_factory.make_request([package.id], "ready-for-grouping", performed_by_role=None)

        result = await service.execute_status_update(request)

        assert result.successful == 1
        (entry,) = await store.list_history(package.id)
        assert entry.actor_role == "admin"


# =============================================================================
# 5. Notifications and Events
# =============================================================================


@pytest.mark.component
@pytest.mark.asyncio
class TestNotificationsAndEvents:
    """Customer notification dispatch and batch completion events"""

    async def test_batched_notification(self, status_service, mock_notifier, add_packages, data_factory):
        packages = add_packages(PackageStatus.PROCESSING, count=3)
        request = data_factory.make_request(
            [p.id for p in packages] + ["missing"], "ready-for-grouping", notify_customers=True
        )

        result = await status_service.execute_status_update(request)

        assert mock_notifier.call_count == 1
        notification = mock_notifier.notifications[0]
        assert notification.entity_ids == [p.id for p in packages]
        assert sorted(notification.affected_customers) == sorted(p.customer_id for p in packages)
        assert result.notifications_sent == 3
        assert result.notifications_delivered == 3
        assert sorted(result.affected_customers) == sorted(p.customer_id for p in packages)

    async def test_per_item_notifications(self, status_service, mock_notifier, add_packages, data_factory):
        packages = add_packages(PackageStatus.PROCESSING, count=2)
        request = data_factory.make_request([p.id for p in packages], "ready-for-grouping", notify_customers=True)

        result = await status_service.execute_status_update(
            request, BatchUpdateConfig(notification_batching=False)
        )

        assert mock_notifier.call_count == 2
        assert [n.entity_ids for n in mock_notifier.notifications] == [[p.id] for p in packages]
        assert [n.affected_customers for n in mock_notifier.notifications] == [
            [p.customer_id] for p in packages
        ]
        assert result.notifications_sent == 2
        assert result.notifications_delivered == 2

    async def test_no_notification_unless_requested(self, status_service, mock_notifier, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)

        result = await status_service.execute_status_update(
            data_factory.make_request([package.id], "ready-for-grouping")
        )

        assert mock_notifier.call_count == 0
        assert result.notifications_sent == 0

    async def test_notifier_failure_is_a_warning(self, status_service, mock_notifier, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        mock_notifier.set_error(RuntimeError("smtp down"))
        request = data_factory.make_request([package.id], "ready-for-grouping", notify_customers=True)

        result = await status_service.execute_status_update(request)

        assert result.success is True
        assert result.notifications_delivered == 0
        assert any("smtp down" in w for w in result.global_warnings)

    async def test_missing_notifier_is_a_warning(self, store, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        service = build_service(store)
        request = data_factory.make_request([package.id], "ready-for-grouping", notify_customers=True)

        result = await service.execute_status_update(request)

        assert result.notifications_sent == 0
        assert any("no notifier" in w for w in result.global_warnings)

    async def test_batch_completed_event(self, status_service, mock_event_bus, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)

        result = await status_service.execute_status_update(
            data_factory.make_request([package.id], "ready-for-grouping")
        )

        event = mock_event_bus.assert_event_published(
            "status.batch.completed", {"batch_id": result.batch_id}
        )
        assert event["source"] == "status_update_service"
        assert event["data"]["successful"] == 1
        assert event["data"]["new_status"] == "ready-for-grouping"

    async def test_event_bus_failure_does_not_fail_batch(
        self, status_service, mock_event_bus, add_packages, data_factory
    ):
        (package,) = add_packages(PackageStatus.PROCESSING)
        mock_event_bus.set_error(ConnectionError("nats gone"))

        result = await status_service.execute_status_update(
            data_factory.make_request([package.id], "ready-for-grouping")
        )

        assert result.success is True
