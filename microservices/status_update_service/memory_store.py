"""
Status Update Service In-Memory Store

Reference implementation of the package/group repositories, the tracking
and history recorders and the idempotency ledger. Backs local runs and the
component tests; a database-backed store would implement the same protocols.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

from .models import (
    Package,
    ShipmentGroup,
    StatusHistoryEntry,
    StatusUpdateResult,
    TrackingPoint,
)
from .protocols import EntityNotFoundError, PersistenceError, VersionConflictError

logger = logging.getLogger(__name__)


class InMemoryStatusStore:
    """
    Package, group, tracking point and history storage in process memory.

    Implements PackageRepositoryProtocol, GroupRepositoryProtocol,
    TrackingRecorderProtocol and HistoryRecorderProtocol. Every read returns
    a copy so callers never mutate stored state.
    """

    def __init__(self):
        self._packages: Dict[str, Package] = {}
        self._groups: Dict[str, ShipmentGroup] = {}
        self._tracking: Dict[str, List[TrackingPoint]] = {}
        self._history: Dict[str, List[StatusHistoryEntry]] = {}
        self._lock = asyncio.Lock()

    async def initialize(self):
        logger.info("Status store initialized (in-memory)")

    async def close(self):
        logger.info("Status store closed")

    async def health_check(self) -> bool:
        return True

    # ====================
    # Seeding
    # ====================

    def add_package(self, package: Package) -> None:
        self._packages[package.id] = package.model_copy(deep=True)

    def add_group(self, group: ShipmentGroup) -> None:
        self._groups[group.id] = group.model_copy(deep=True)

    def load_seed_file(self, path: Union[str, Path]) -> int:
        """
        Load packages and groups from a JSON file of the form
        ``{"packages": [...], "groups": [...]}``.

        Returns:
            Number of entities loaded
        """
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)

        count = 0
        for raw in data.get("packages", []):
            self.add_package(Package.model_validate(raw))
            count += 1
        for raw in data.get("groups", []):
            self.add_group(ShipmentGroup.model_validate(raw))
            count += 1

        logger.info(f"Loaded {count} entities from {path}")
        return count

    # ====================
    # Packages
    # ====================

    async def get_package(self, package_id: str) -> Optional[Package]:
        package = self._packages.get(package_id)
        return package.model_copy(deep=True) if package else None

    async def save_package(self, package: Package) -> Package:
        async with self._lock:
            stored = self._packages.get(package.id)
            if stored is None:
                raise EntityNotFoundError("package", package.id)
            if stored.version != package.version:
                raise VersionConflictError(package.id, package.version, stored.version)

            saved = package.model_copy(
                update={"version": stored.version + 1, "updated_at": datetime.now(timezone.utc)},
                deep=True,
            )
            self._packages[package.id] = saved
            return saved.model_copy(deep=True)

    async def list_packages_in_group(self, group_id: str) -> List[Package]:
        return [
            p.model_copy(deep=True)
            for p in self._packages.values()
            if p.group_id == group_id
        ]

    async def list_packages(self) -> List[Package]:
        return [p.model_copy(deep=True) for p in self._packages.values()]

    # ====================
    # Groups
    # ====================

    async def get_group(self, group_id: str) -> Optional[ShipmentGroup]:
        group = self._groups.get(group_id)
        return group.model_copy(deep=True) if group else None

    async def save_group(self, group: ShipmentGroup) -> ShipmentGroup:
        async with self._lock:
            stored = self._groups.get(group.id)
            if stored is None:
                raise EntityNotFoundError("group", group.id)
            if stored.version != group.version:
                raise VersionConflictError(group.id, group.version, stored.version)

            saved = group.model_copy(
                update={"version": stored.version + 1, "updated_at": datetime.now(timezone.utc)},
                deep=True,
            )
            self._groups[group.id] = saved
            return saved.model_copy(deep=True)

    async def list_groups(self) -> List[ShipmentGroup]:
        return [g.model_copy(deep=True) for g in self._groups.values()]

    # ====================
    # Tracking Points
    # ====================

    async def count_tracking_points(self, package_id: str) -> int:
        return len(self._tracking.get(package_id, []))

    async def append_tracking_point(self, point: TrackingPoint) -> TrackingPoint:
        async with self._lock:
            timeline = self._tracking.setdefault(point.package_id, [])
            expected = len(timeline) + 1
            if point.sequence != expected:
                raise PersistenceError(
                    f"Tracking sequence {point.sequence} for {point.package_id} is not {expected}"
                )

            # Deactivate and append in one step so only one point is ever active
            for i, existing in enumerate(timeline):
                if existing.is_active:
                    timeline[i] = existing.model_copy(update={"is_active": False})
            stored = point.model_copy(update={"is_active": True}, deep=True)
            timeline.append(stored)
            return stored.model_copy(deep=True)

    async def list_tracking_points(self, package_id: str) -> List[TrackingPoint]:
        return [p.model_copy(deep=True) for p in self._tracking.get(package_id, [])]

    # ====================
    # History
    # ====================

    async def append_history_entry(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        async with self._lock:
            self._history.setdefault(entry.entity_id, []).append(entry.model_copy(deep=True))
            return entry

    async def list_history(self, entity_id: str) -> List[StatusHistoryEntry]:
        return [e.model_copy(deep=True) for e in self._history.get(entity_id, [])]


class InMemoryIdempotencyLedger:
    """Remembers results by caller-supplied batch id"""

    def __init__(self, max_entries: int = 1000):
        self._results: Dict[str, StatusUpdateResult] = {}
        self._max_entries = max_entries

    async def get_result(self, batch_id: str) -> Optional[StatusUpdateResult]:
        return self._results.get(batch_id)

    async def record_result(self, result: StatusUpdateResult) -> None:
        if len(self._results) >= self._max_entries:
            # Drop the oldest entry; dicts keep insertion order
            oldest = next(iter(self._results))
            del self._results[oldest]
        self._results[result.batch_id] = result
