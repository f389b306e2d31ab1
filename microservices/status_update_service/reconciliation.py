"""
Status Reconciliation

Entity writes, tracking points and history entries are not committed
atomically. The reconciler scans stored state and reports entities whose
audit trail disagrees with their current status.
"""

import logging
from typing import List, Optional

from .models import (
    EntityType,
    ReconciliationIssue,
    ReconciliationReport,
    StatusHistoryEntry,
)
from .protocols import (
    GroupRepositoryProtocol,
    HistoryRecorderProtocol,
    PackageRepositoryProtocol,
    TrackingRecorderProtocol,
)

logger = logging.getLogger(__name__)


class StatusReconciler:
    """Finds status / history / tracking drift"""

    def __init__(
        self,
        package_repository: PackageRepositoryProtocol,
        group_repository: GroupRepositoryProtocol,
        tracking_recorder: TrackingRecorderProtocol,
        history_recorder: HistoryRecorderProtocol,
    ):
        self.package_repository = package_repository
        self.group_repository = group_repository
        self.tracking_recorder = tracking_recorder
        self.history_recorder = history_recorder

    async def find_inconsistencies(self) -> ReconciliationReport:
        """
        Scan every package and group.

        Reports entities whose latest history entry does not end in the
        current status (or that were saved without any history), and packages
        whose active tracking point carries a different status. Entities that
        were never changed are consistent.
        """
        packages = await self.package_repository.list_packages()
        groups = await self.group_repository.list_groups()
        issues: List[ReconciliationIssue] = []

        for package in packages:
            status = package.status.value
            issue = self._history_issue(
                await self.history_recorder.list_history(package.id), status, package.version
            )
            if issue:
                issues.append(ReconciliationIssue(
                    entity_id=package.id,
                    entity_type=EntityType.PACKAGE,
                    current_status=status,
                    issue=issue,
                ))

            points = await self.tracking_recorder.list_tracking_points(package.id)
            active = [p for p in points if p.is_active]
            if points and len(active) != 1:
                issues.append(ReconciliationIssue(
                    entity_id=package.id,
                    entity_type=EntityType.PACKAGE,
                    current_status=status,
                    issue=f"expected one active tracking point, found {len(active)}",
                ))
            elif active and active[0].status.value != status:
                issues.append(ReconciliationIssue(
                    entity_id=package.id,
                    entity_type=EntityType.PACKAGE,
                    current_status=status,
                    issue=f"active tracking point is {active[0].status.value}",
                ))

        for group in groups:
            status = group.status.value
            issue = self._history_issue(
                await self.history_recorder.list_history(group.id), status, group.version
            )
            if issue:
                issues.append(ReconciliationIssue(
                    entity_id=group.id,
                    entity_type=EntityType.GROUP,
                    current_status=status,
                    issue=issue,
                ))

        if issues:
            logger.warning(f"Reconciliation found {len(issues)} inconsistencies")
        else:
            logger.info(f"Reconciliation clean: {len(packages)} packages, {len(groups)} groups")

        return ReconciliationReport(
            checked_packages=len(packages),
            checked_groups=len(groups),
            issues=issues,
        )

    @staticmethod
    def _history_issue(
        history: List[StatusHistoryEntry], current_status: str, version: int
    ) -> Optional[str]:
        if not history:
            # Saved at least once but never audited
            return "status changed without a history entry" if version > 1 else None
        latest = history[-1]
        if latest.new_status != current_status:
            return f"latest history entry records {latest.new_status}"
        return None
