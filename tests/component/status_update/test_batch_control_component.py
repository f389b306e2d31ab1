"""
Batch Control Component Tests

Chunking, bounded concurrency, halting, cancellation, rollback and
idempotent replays.

Usage:
    pytest tests/component/status_update/test_batch_control_component.py -v
"""

import asyncio

import pytest

from microservices.status_update_service.models import (
    BatchUpdateConfig,
    ChangeType,
    PackageStatus,
)
from tests.component.mocks.store_mocks import (
    CancelAfterFirstSaveStore,
    ConcurrencyTrackingStore,
    build_service,
)


@pytest.mark.component
@pytest.mark.asyncio
class TestHalting:
    """continue_on_error=False stops the batch after the first failure"""

    async def test_sequential_halt_skips_remaining(self, status_service, store, add_packages, data_factory):
        packages = add_packages(PackageStatus.PROCESSING, count=2)
        request = data_factory.make_request(["missing"] + [p.id for p in packages], "ready-for-grouping")

        result = await status_service.execute_status_update(
            request, BatchUpdateConfig(continue_on_error=False)
        )

        assert result.failed == 3
        assert result.results[0].error == "not found"
        assert all(r.error.startswith("skipped") for r in result.results[1:])
        for package in packages:
            assert (await store.get_package(package.id)).status == PackageStatus.PROCESSING

    async def test_chunked_halt_finishes_current_chunk(self, status_service, store, add_packages, data_factory):
        p1, p2, p3 = add_packages(PackageStatus.PROCESSING, count=3)
        request = data_factory.make_request([p1.id, "missing", p2.id, p3.id], "ready-for-grouping")

        result = await status_service.execute_status_update(
            request, BatchUpdateConfig(max_batch_size=2, continue_on_error=False)
        )

        assert [r.target_id for r in result.results] == [p1.id, "missing", p2.id, p3.id]
        assert result.results[0].success is True
        assert result.results[1].error == "not found"
        assert result.results[2].error.startswith("skipped")
        assert result.results[3].error.startswith("skipped")
        assert (await store.get_package(p2.id)).status == PackageStatus.PROCESSING

    async def test_continue_on_error_processes_every_chunk(self, status_service, add_packages, data_factory):
        packages = add_packages(PackageStatus.PROCESSING, count=4)
        ids = [packages[0].id, "missing"] + [p.id for p in packages[1:]]

        result = await status_service.execute_status_update(
            data_factory.make_request(ids, "ready-for-grouping"),
            BatchUpdateConfig(max_batch_size=2),
        )

        assert [r.target_id for r in result.results] == ids
        assert result.successful == 4
        assert result.failed == 1


@pytest.mark.component
@pytest.mark.asyncio
class TestConcurrency:
    """Concurrency inside a chunk is bounded by max_batch_size"""

    async def test_in_flight_bounded_by_chunk_size(self, data_factory):
        store = ConcurrencyTrackingStore()
        service = build_service(store)
        packages = [data_factory.make_package(PackageStatus.PROCESSING) for _ in range(25)]
        for package in packages:
            store.add_package(package)
        ids = [p.id for p in packages]

        result = await service.execute_status_update(
            data_factory.make_request(ids, "ready-for-grouping"),
            BatchUpdateConfig(max_batch_size=10),
        )

        assert result.successful == 25
        assert [r.target_id for r in result.results] == ids
        assert 1 < store.max_in_flight <= 10

    async def test_sequential_when_parallel_disabled(self, data_factory):
        store = ConcurrencyTrackingStore()
        service = build_service(store)
        packages = [data_factory.make_package(PackageStatus.PROCESSING) for _ in range(5)]
        for package in packages:
            store.add_package(package)

        result = await service.execute_status_update(
            data_factory.make_request([p.id for p in packages], "ready-for-grouping"),
            BatchUpdateConfig(max_batch_size=2, parallel_processing=False),
        )

        assert result.successful == 5
        assert store.max_in_flight == 1

    async def test_duplicate_ids_in_one_chunk_are_serialized(
        self, status_service, store, add_packages, data_factory
    ):
        (package,) = add_packages(PackageStatus.PROCESSING)
        others = add_packages(PackageStatus.PROCESSING, count=2)
        ids = [package.id, package.id, others[0].id, others[1].id]

        result = await status_service.execute_status_update(
            data_factory.make_request(ids, "ready-for-grouping"),
            BatchUpdateConfig(max_batch_size=2),
        )

        # The entity lock orders the duplicate; the second sees the first write
        assert result.successful == 3
        assert result.failed == 1
        stored = await store.get_package(package.id)
        assert stored.version == 2
        assert len(await store.list_tracking_points(package.id)) == 1


@pytest.mark.component
@pytest.mark.asyncio
class TestCancellation:
    """A set cancel event stops new items from starting"""

    async def test_cancel_mid_batch(self, data_factory):
        cancel_event = asyncio.Event()
        store = CancelAfterFirstSaveStore(cancel_event)
        service = build_service(store)
        packages = [data_factory.make_package(PackageStatus.PROCESSING) for _ in range(3)]
        for package in packages:
            store.add_package(package)

        result = await service.execute_status_update(
            data_factory.make_request([p.id for p in packages], "ready-for-grouping"),
            BatchUpdateConfig(parallel_processing=False),
            cancel_event=cancel_event,
        )

        assert result.results[0].success is True
        assert [r.error for r in result.results[1:]] == ["cancelled", "cancelled"]
        assert result.success is False
        assert (await store.get_package(packages[2].id)).status == PackageStatus.PROCESSING

    async def test_cancelled_before_start(self, status_service, add_packages, data_factory):
        packages = add_packages(PackageStatus.PROCESSING, count=2)
        cancel_event = asyncio.Event()
        cancel_event.set()

        result = await status_service.execute_status_update(
            data_factory.make_request([p.id for p in packages], "ready-for-grouping"),
            cancel_event=cancel_event,
        )

        assert result.successful == 0
        assert all(r.error == "cancelled" for r in result.results)


@pytest.mark.component
@pytest.mark.asyncio
class TestRollback:
    """rollback_on_failure compensates successful writes"""

    async def test_failure_rolls_back_successes(
        self, status_service, store, add_packages, mock_event_bus, data_factory
    ):
        p1, p2 = add_packages(PackageStatus.PROCESSING, count=2)
        request = data_factory.make_request([p1.id, "missing", p2.id], "ready-for-grouping")

        result = await status_service.execute_status_update(
            request, BatchUpdateConfig(rollback_on_failure=True)
        )

        assert result.successful == 0
        assert result.failed == 3
        assert result.results[0].rolled_back is True
        assert result.results[2].rolled_back is True
        assert result.results[1].rolled_back is False
        assert result.tracking_points_created == 4
        assert result.status_history_entries == 4

        for package in (p1, p2):
            stored = await store.get_package(package.id)
            assert stored.status == PackageStatus.PROCESSING
            assert stored.version == 3
            history = await store.list_history(package.id)
            assert history[-1].change_type == ChangeType.ROLLBACK
            assert history[-1].new_status == "processing"
            points = await store.list_tracking_points(package.id)
            assert points[-1].status == PackageStatus.PROCESSING
            assert points[-1].notes.startswith("Rollback of batch")

        event = mock_event_bus.assert_event_published("status.batch.rolled_back")
        assert event["data"]["rolled_back_ids"] == [p1.id, p2.id]
        assert event["data"]["failed"] == 1

    async def test_no_rollback_without_failures(self, status_service, store, add_packages, mock_event_bus, data_factory):
        packages = add_packages(PackageStatus.PROCESSING, count=2)

        result = await status_service.execute_status_update(
            data_factory.make_request([p.id for p in packages], "ready-for-grouping"),
            BatchUpdateConfig(rollback_on_failure=True),
        )

        assert result.success is True
        assert not any(r.rolled_back for r in result.results)
        mock_event_bus.assert_no_events_published("status.batch.rolled_back")


@pytest.mark.component
@pytest.mark.asyncio
class TestIdempotency:
    """A caller batch id is applied at most once"""

    async def test_replay_returns_recorded_result(
        self, status_service, store, add_packages, mock_event_bus, data_factory
    ):
        (package,) = add_packages(PackageStatus.PROCESSING)
        batch_id = data_factory.make_batch_id()
        request = data_factory.make_request([package.id], "ready-for-grouping", batch_id=batch_id)

        first = await status_service.execute_status_update(request)
        second = await status_service.execute_status_update(request)

        assert first.batch_id == second.batch_id == batch_id
        assert second.successful == first.successful == 1
        assert second.results == first.results
        assert any("already processed" in w for w in second.global_warnings)
        assert (await store.get_package(package.id)).version == 2
        assert len(mock_event_bus.get_published("status.batch.completed")) == 1

    async def test_without_batch_id_each_call_runs(self, status_service, add_packages, data_factory):
        (package,) = add_packages(PackageStatus.PENDING)
        request = data_factory.make_request([package.id], "processing")

        first = await status_service.execute_status_update(request)
        second = await status_service.execute_status_update(request)

        assert first.batch_id != second.batch_id
        assert first.successful == 1
        assert second.failed == 1
