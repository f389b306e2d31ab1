"""
Failure Handling Component Tests

Collaborator failures (tracking, history, persistence, ledger) and the
reconciliation report that surfaces the drift they leave behind.

Usage:
    pytest tests/component/status_update/test_failure_handling_component.py -v
"""

import pytest

from microservices.status_update_service.memory_store import InMemoryStatusStore
from microservices.status_update_service.models import GroupStatus, PackageStatus
from microservices.status_update_service.protocols import VersionConflictError
from microservices.status_update_service.reconciliation import StatusReconciler
from tests.component.mocks.store_mocks import (
    FailingLedger,
    HistoryFailureStore,
    TrackingFailureStore,
    build_service,
)


class ConflictingStore(InMemoryStatusStore):
    """Every package save loses the optimistic concurrency race"""

    async def save_package(self, package):
        raise VersionConflictError(package.id, package.version, package.version + 1)


class ExplodingReadStore(InMemoryStatusStore):
    async def get_package(self, package_id):
        if package_id == "boom":
            raise RuntimeError("disk on fire")
        return await super().get_package(package_id)


def _reconciler(store):
    return StatusReconciler(store, store, store, store)


@pytest.mark.component
@pytest.mark.asyncio
class TestCollaboratorFailures:
    """Secondary writes fail without failing the item"""

    async def test_tracking_failure_is_item_warning(self, data_factory):
        store = TrackingFailureStore()
        package = data_factory.make_package(PackageStatus.PROCESSING)
        store.add_package(package)
        service = build_service(store)

        result = await service.execute_status_update(
            data_factory.make_request([package.id], "ready-for-grouping")
        )

        assert result.successful == 1
        assert result.tracking_points_created == 0
        assert result.status_history_entries == 1
        assert any("Tracking point not recorded" in w for w in result.results[0].warnings)
        assert (await store.get_package(package.id)).status == PackageStatus.READY_FOR_GROUPING

    async def test_history_failure_flags_reconciliation(self, data_factory):
        store = HistoryFailureStore()
        package = data_factory.make_package(PackageStatus.PROCESSING)
        store.add_package(package)
        service = build_service(store)

        result = await service.execute_status_update(
            data_factory.make_request([package.id], "ready-for-grouping")
        )

        assert result.successful == 1
        assert result.status_history_entries == 0
        assert result.tracking_points_created == 1
        assert result.needs_reconciliation == [package.id]
        assert any("needs reconciliation" in w for w in result.global_warnings)

        report = await _reconciler(store).find_inconsistencies()
        assert [(i.entity_id, i.issue) for i in report.issues] == [
            (package.id, "status changed without a history entry")
        ]

    async def test_version_conflict_fails_item(self, data_factory):
        store = ConflictingStore()
        package = data_factory.make_package(PackageStatus.PROCESSING)
        store.add_package(package)
        service = build_service(store)

        result = await service.execute_status_update(
            data_factory.make_request([package.id], "ready-for-grouping")
        )

        assert result.failed == 1
        assert "Version conflict" in result.results[0].error
        assert result.results[0].previous_status == "processing"
        assert await store.list_tracking_points(package.id) == []

    async def test_unexpected_item_error_is_isolated(self, data_factory):
        store = ExplodingReadStore()
        package = data_factory.make_package(PackageStatus.PROCESSING)
        store.add_package(package)
        service = build_service(store)

        result = await service.execute_status_update(
            data_factory.make_request(["boom", package.id], "ready-for-grouping")
        )

        assert result.results[0].error == "disk on fire"
        assert result.results[1].success is True

    async def test_unexpected_batch_failure_reports_every_item(
        self, store, add_packages, mock_event_bus, data_factory
    ):
        packages = add_packages(PackageStatus.PROCESSING, count=2)
        service = build_service(store, event_bus=mock_event_bus, ledger=FailingLedger())
        request = data_factory.make_request(
            [p.id for p in packages], "ready-for-grouping", batch_id=data_factory.make_batch_id()
        )

        result = await service.execute_status_update(request)

        assert result.success is False
        assert result.failed == 2
        assert all(r.error == "internal error" for r in result.results)
        assert result.global_errors == ["Status update failed: ledger offline"]
        mock_event_bus.assert_no_events_published()


@pytest.mark.component
@pytest.mark.asyncio
class TestReconciliation:
    """StatusReconciler over the in-memory store"""

    async def test_clean_after_normal_updates(self, status_service, store, add_packages, add_group, data_factory):
        packages = add_packages(PackageStatus.PROCESSING, count=2)
        add_packages(PackageStatus.PENDING)
        group, _ = add_group(GroupStatus.DELIVERING, [PackageStatus.OUT_FOR_DELIVERY])
        await status_service.execute_status_update(
            data_factory.make_request([p.id for p in packages], "ready-for-grouping")
        )
        await status_service.batch_update_group_status([group.id], "completed")

        report = await _reconciler(store).find_inconsistencies()

        assert report.issues == []
        assert report.checked_packages == 4
        assert report.checked_groups == 1

    async def test_status_saved_behind_the_service(self, store, add_packages, status_service, data_factory):
        (package,) = add_packages(PackageStatus.PROCESSING)
        await status_service.execute_status_update(
            data_factory.make_request([package.id], "ready-for-grouping")
        )
        stored = await store.get_package(package.id)
        await store.save_package(stored.model_copy(update={"status": PackageStatus.GROUPED}))

        report = await _reconciler(store).find_inconsistencies()

        issues = {i.issue for i in report.issues}
        assert issues == {
            "latest history entry records ready-for-grouping",
            "active tracking point is ready-for-grouping",
        }
        assert all(i.current_status == "grouped" for i in report.issues)
