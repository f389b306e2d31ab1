"""
Transition Validator

Default rule-table validator: checks a proposed status change against the
transition tables in status_rules and layers business-rule warnings on top.
"""

import logging
from typing import List, Optional

from .models import (
    EntityType,
    PackagePriority,
    PackageStatus,
    StatusContext,
    TargetType,
    TransitionValidation,
)
from .status_rules import (
    EXCEPTION_PACKAGE_STATUSES,
    PACKAGE_FLOW,
    get_transition_rule,
    is_customer_visible,
    is_terminal,
    resolve_status,
)

logger = logging.getLogger(__name__)


class DefaultTransitionValidator:
    """Validates transitions against the package and group rule tables"""

    async def validate_transition(
        self,
        context: StatusContext,
        new_status: str,
        actor_role: str,
        reason: Optional[str] = None,
        conditions: Optional[List[str]] = None,
    ) -> TransitionValidation:
        target_type = TargetType.GROUP if context.entity_type == EntityType.GROUP else TargetType.PACKAGE
        target = resolve_status(target_type, new_status)
        current = resolve_status(target_type, context.current_status)

        errors: List[str] = []
        warnings: List[str] = []

        if target is None:
            return TransitionValidation(
                is_valid=False,
                errors=[f"Unknown {target_type.value} status: {new_status}"],
            )

        if current == target:
            return TransitionValidation(
                is_valid=False,
                errors=[f"{context.entity_id} is already {target.value}"],
            )

        rule = get_transition_rule(context.entity_type, context.current_status, target)
        if rule is None:
            logger.debug(f"No rule for {context.entity_id}: {context.current_status} -> {target.value}")
            return TransitionValidation(
                is_valid=False,
                errors=[f"Invalid transition from {context.current_status} to {target.value}"],
            )

        if actor_role not in rule.allowed_roles:
            errors.append(
                f"Role '{actor_role}' cannot change status from {rule.from_status} to {rule.to_status}"
            )

        if rule.requires_reason and not (reason and reason.strip()):
            errors.append(f"A reason is required to change status to {rule.to_status}")

        met = set(conditions or [])
        missing = [c for c in rule.conditions if c not in met]
        if missing:
            warnings.append(f"Unconfirmed transition conditions: {', '.join(missing)}")

        if rule.requires_approval:
            warnings.append(f"Transition to {rule.to_status} requires approval")

        if isinstance(target, PackageStatus):
            warnings.extend(self._package_warnings(context, current, target))

        return TransitionValidation(
            is_valid=not errors,
            errors=list(dict.fromkeys(errors)),
            warnings=list(dict.fromkeys(warnings)),
            requires_approval=rule.requires_approval,
            missing_conditions=missing,
        )

    def _package_warnings(
        self,
        context: StatusContext,
        current: Optional[PackageStatus],
        target: PackageStatus,
    ) -> List[str]:
        warnings: List[str] = []

        # Business rules
        if context.is_premium and target in EXCEPTION_PACKAGE_STATUSES:
            warnings.append("Premium customer package entering an exception status")
        if context.priority in (PackagePriority.HIGH, PackagePriority.URGENT) and target == PackageStatus.DELAYED:
            warnings.append("High priority package is being delayed")
        if "fragile" in context.special_handling and target == PackageStatus.IN_TRANSIT:
            warnings.append("Fragile package in transit - ensure careful handling")
        if "temperature_sensitive" in context.special_handling and target == PackageStatus.DISPATCHED:
            warnings.append("Temperature sensitive package dispatched - monitor conditions")

        # Group consistency
        if context.group_id and current in (PackageStatus.GROUPED, PackageStatus.GROUP_CONFIRMED):
            warnings.append("Changing status of grouped package may affect other packages in the group")

        # Timeline
        if current in PACKAGE_FLOW and target in PACKAGE_FLOW:
            if PACKAGE_FLOW.index(current) > PACKAGE_FLOW.index(target):
                warnings.append("This status change moves the package backwards in the normal flow")
        if target.value in context.previous_statuses and not is_terminal(target):
            warnings.append("Package has already been in this status before")

        # Customer visibility
        if current is not None and is_customer_visible(current) and not is_customer_visible(target):
            warnings.append("This status change will hide the package from customer tracking")

        return warnings
