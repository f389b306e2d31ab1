"""
Status Rules

Static domain tables for the package and group lifecycles: transition
rules, status classification, impact levels, milestones, customer
visibility and the group-to-package cascade map.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from .models import (
    GroupStatus,
    ImpactLevel,
    PackageStatus,
    StatusCategory,
    TargetType,
)

AnyStatus = Union[PackageStatus, GroupStatus]


@dataclass(frozen=True)
class TransitionRule:
    """A single allowed from -> to edge"""
    from_status: str
    to_status: str
    allowed_roles: Tuple[str, ...]
    requires_approval: bool = False
    requires_reason: bool = False
    conditions: Tuple[str, ...] = ()
    description: str = ""


# ====================
# Classification
# ====================

MILESTONE_STATUSES: FrozenSet[PackageStatus] = frozenset({
    PackageStatus.DISPATCHED,
    PackageStatus.IN_TRANSIT,
    PackageStatus.OUT_FOR_DELIVERY,
    PackageStatus.DELIVERED,
})

TERMINAL_PACKAGE_STATUSES: FrozenSet[PackageStatus] = frozenset({
    PackageStatus.DELIVERED,
    PackageStatus.RETURNED,
    PackageStatus.LOST,
    PackageStatus.CANCELLED,
})

TERMINAL_GROUP_STATUSES: FrozenSet[GroupStatus] = frozenset({
    GroupStatus.COMPLETED,
    GroupStatus.CANCELLED,
    GroupStatus.RETURNED,
})

EXCEPTION_PACKAGE_STATUSES: FrozenSet[PackageStatus] = frozenset({
    PackageStatus.EXCEPTION,
    PackageStatus.DELAYED,
    PackageStatus.LOST,
    PackageStatus.RETURNED,
})

_CATEGORY_BY_PACKAGE_STATUS: Dict[PackageStatus, StatusCategory] = {
    PackageStatus.DELIVERED: StatusCategory.DELIVERY,
    PackageStatus.OUT_FOR_DELIVERY: StatusCategory.DELIVERY,
    PackageStatus.EXCEPTION: StatusCategory.EXCEPTION,
    PackageStatus.DELAYED: StatusCategory.EXCEPTION,
    PackageStatus.LOST: StatusCategory.EXCEPTION,
    PackageStatus.RETURNED: StatusCategory.EXCEPTION,
    PackageStatus.IN_TRANSIT: StatusCategory.TRANSIT,
    PackageStatus.DISPATCHED: StatusCategory.TRANSIT,
    PackageStatus.SHIPPED: StatusCategory.TRANSIT,
}

# Package and group enums compare equal on shared values, so keep them apart
_HIGH_IMPACT_PACKAGE = frozenset({
    PackageStatus.DELAYED,
    PackageStatus.RETURNED,
    PackageStatus.LOST,
})
_HIGH_IMPACT_GROUP = frozenset({
    GroupStatus.CANCELLED,
    GroupStatus.DELAYED,
    GroupStatus.RETURNED,
})

_MEDIUM_IMPACT_PACKAGE = frozenset({
    PackageStatus.DISPATCHED,
    PackageStatus.IN_TRANSIT,
    PackageStatus.OUT_FOR_DELIVERY,
    PackageStatus.DELIVERED,
})
_MEDIUM_IMPACT_GROUP = frozenset({
    GroupStatus.DISPATCHED,
    GroupStatus.IN_TRANSIT,
    GroupStatus.DELIVERING,
    GroupStatus.COMPLETED,
})

# Normal forward flow; used to spot regressions
PACKAGE_FLOW: Tuple[PackageStatus, ...] = (
    PackageStatus.PENDING,
    PackageStatus.PROCESSING,
    PackageStatus.READY_FOR_GROUPING,
    PackageStatus.GROUPED,
    PackageStatus.GROUP_CONFIRMED,
    PackageStatus.DISPATCHED,
    PackageStatus.IN_TRANSIT,
    PackageStatus.OUT_FOR_DELIVERY,
    PackageStatus.DELIVERED,
)

PACKAGE_STATUS_DESCRIPTIONS: Dict[PackageStatus, str] = {
    PackageStatus.PENDING: "Request received and awaiting initial processing",
    PackageStatus.PROCESSING: "Package being prepared, verified, and documented",
    PackageStatus.READY_FOR_GROUPING: "Package processed and available for batch selection",
    PackageStatus.GROUPED: "Package added to shipment group, awaiting dispatch",
    PackageStatus.GROUP_CONFIRMED: "Shipment group finalized and ready for dispatch",
    PackageStatus.DISPATCHED: "Package has left the warehouse or facility",
    PackageStatus.SHIPPED: "Package has been shipped and is on its way",
    PackageStatus.IN_TRANSIT: "Package is actively moving toward destination",
    PackageStatus.OUT_FOR_DELIVERY: "Package is with delivery agent for final delivery",
    PackageStatus.DELIVERED: "Package successfully delivered to recipient",
    PackageStatus.DELAYED: "Unexpected delay in delivery process",
    PackageStatus.RETURNED: "Delivery failed, package returning to sender",
    PackageStatus.LOST: "Package cannot be located in the system",
    PackageStatus.EXCEPTION: "Package has encountered an exception",
    PackageStatus.CANCELLED: "Package delivery has been cancelled",
}


def resolve_status(target_type: TargetType, value: Optional[str]) -> Optional[AnyStatus]:
    """
    Resolve a status string against the enumeration for ``target_type``.

    Accepts enum values (``out-for-delivery``) and member names
    (``OUT_FOR_DELIVERY``). Returns None when the value is not a member.
    """
    if value is None:
        return None
    enum_cls = GroupStatus if target_type == TargetType.GROUP else PackageStatus
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip()
    try:
        return enum_cls(text)
    except ValueError:
        pass
    name = text.upper().replace("-", "_").replace(" ", "_")
    return enum_cls.__members__.get(name)


def status_category(status: AnyStatus) -> StatusCategory:
    """Classify a status; every group status is PROCESSING"""
    if isinstance(status, PackageStatus):
        return _CATEGORY_BY_PACKAGE_STATUS.get(status, StatusCategory.PROCESSING)
    return StatusCategory.PROCESSING


def impact_level(status: AnyStatus) -> ImpactLevel:
    if isinstance(status, PackageStatus):
        high, medium = _HIGH_IMPACT_PACKAGE, _MEDIUM_IMPACT_PACKAGE
    else:
        high, medium = _HIGH_IMPACT_GROUP, _MEDIUM_IMPACT_GROUP
    if status in high:
        return ImpactLevel.HIGH
    if status in medium:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def is_milestone(status: PackageStatus) -> bool:
    return status in MILESTONE_STATUSES


def is_terminal(status: AnyStatus) -> bool:
    if isinstance(status, PackageStatus):
        return status in TERMINAL_PACKAGE_STATUSES
    return status in TERMINAL_GROUP_STATUSES


def is_customer_visible(status: AnyStatus) -> bool:
    """Groups are internal; every package status but READY_FOR_GROUPING is shown"""
    if isinstance(status, PackageStatus):
        return status != PackageStatus.READY_FOR_GROUPING
    return False


def describe(status: PackageStatus) -> str:
    return PACKAGE_STATUS_DESCRIPTIONS.get(status, status.value)


# ====================
# Cascade
# ====================

_CASCADE_MAP: Dict[GroupStatus, PackageStatus] = {
    GroupStatus.DISPATCHED: PackageStatus.DISPATCHED,
    GroupStatus.IN_TRANSIT: PackageStatus.IN_TRANSIT,
    GroupStatus.COMPLETED: PackageStatus.DELIVERED,
    GroupStatus.CANCELLED: PackageStatus.CANCELLED,
    GroupStatus.EXCEPTION: PackageStatus.EXCEPTION,
    GroupStatus.DELAYED: PackageStatus.DELAYED,
}


def cascade_package_status(group_status: GroupStatus) -> Optional[PackageStatus]:
    """
    Package status implied by a group status change.

    Defined for every group status; None means the change does not
    propagate to member packages.
    """
    return _CASCADE_MAP.get(group_status)


# ====================
# Transition Tables
# ====================

_WAREHOUSE = ("admin", "warehouse_manager")
_P = PackageStatus
_G = GroupStatus


def _rule(from_status, to_status, roles, approval=False, reason=False, conditions=(), description=""):
    return TransitionRule(
        from_status=from_status.value,
        to_status=to_status.value,
        allowed_roles=tuple(roles),
        requires_approval=approval,
        requires_reason=reason,
        conditions=tuple(conditions),
        description=description,
    )


PACKAGE_TRANSITIONS: List[TransitionRule] = [
    # Intake
    _rule(_P.PENDING, _P.PROCESSING, _WAREHOUSE + ("processor",),
          description="Begin processing received package request"),
    _rule(_P.PROCESSING, _P.READY_FOR_GROUPING, _WAREHOUSE + ("processor",),
          conditions=("package_verified", "barcode_generated", "weight_recorded"),
          description="Complete processing and make available for grouping"),

    # Grouping
    _rule(_P.READY_FOR_GROUPING, _P.GROUPED, _WAREHOUSE + ("group_manager",),
          conditions=("group_exists", "group_capacity_available"),
          description="Add package to shipment group"),
    _rule(_P.GROUPED, _P.GROUP_CONFIRMED, _WAREHOUSE + ("group_manager",),
          conditions=("group_complete", "route_planned", "vehicle_assigned"),
          description="Confirm group and prepare for dispatch"),
    _rule(_P.GROUPED, _P.READY_FOR_GROUPING, _WAREHOUSE + ("group_manager",), reason=True,
          description="Remove package from group and make available for regrouping"),
    _rule(_P.GROUP_CONFIRMED, _P.DISPATCHED, _WAREHOUSE + ("dispatcher",),
          conditions=("driver_assigned", "vehicle_loaded", "route_confirmed"),
          description="Dispatch group from warehouse"),

    # Shipping
    _rule(_P.DISPATCHED, _P.SHIPPED, ("admin", "driver", "dispatcher"),
          description="Package handed to the line-haul carrier"),
    _rule(_P.DISPATCHED, _P.IN_TRANSIT, ("admin", "driver", "dispatcher"),
          description="Package is actively moving toward destination"),
    _rule(_P.SHIPPED, _P.IN_TRANSIT, ("admin", "driver", "dispatcher"),
          description="Shipped package is moving toward destination"),
    _rule(_P.IN_TRANSIT, _P.OUT_FOR_DELIVERY, ("admin", "driver", "delivery_agent"),
          conditions=("reached_destination_hub",),
          description="Package ready for final delivery"),
    _rule(_P.OUT_FOR_DELIVERY, _P.DELIVERED, ("admin", "delivery_agent"),
          conditions=("recipient_confirmed", "signature_obtained"),
          description="Package successfully delivered to recipient"),

    # Delays
    _rule(_P.PROCESSING, _P.DELAYED, _WAREHOUSE, reason=True),
    _rule(_P.GROUPED, _P.DELAYED, _WAREHOUSE, reason=True),
    _rule(_P.DISPATCHED, _P.DELAYED, ("admin", "driver", "dispatcher"), reason=True),
    _rule(_P.SHIPPED, _P.DELAYED, ("admin", "driver", "dispatcher"), reason=True),
    _rule(_P.IN_TRANSIT, _P.DELAYED, ("admin", "driver"), reason=True),
    _rule(_P.OUT_FOR_DELIVERY, _P.DELAYED, ("admin", "delivery_agent"), reason=True),
    _rule(_P.DELAYED, _P.PROCESSING, _WAREHOUSE, approval=True, reason=True,
          description="Resume processing of delayed package"),
    _rule(_P.DELAYED, _P.IN_TRANSIT, ("admin", "driver"), reason=True),
    _rule(_P.DELAYED, _P.OUT_FOR_DELIVERY, ("admin", "delivery_agent"), reason=True),

    # Returns and losses
    _rule(_P.OUT_FOR_DELIVERY, _P.RETURNED, ("admin", "delivery_agent"), approval=True, reason=True,
          conditions=("delivery_failed", "return_authorized"),
          description="Return package due to failed delivery"),
    _rule(_P.DELAYED, _P.RETURNED, _WAREHOUSE, approval=True, reason=True,
          conditions=("return_authorized",)),
    _rule(_P.IN_TRANSIT, _P.LOST, ("admin",), approval=True, reason=True,
          conditions=("investigation_complete", "package_not_found")),
    _rule(_P.DELAYED, _P.LOST, ("admin",), approval=True, reason=True,
          conditions=("investigation_complete", "package_not_found")),

    # Exceptions
    _rule(_P.DISPATCHED, _P.EXCEPTION, ("admin", "driver", "dispatcher"), reason=True),
    _rule(_P.SHIPPED, _P.EXCEPTION, ("admin", "driver", "dispatcher"), reason=True),
    _rule(_P.IN_TRANSIT, _P.EXCEPTION, ("admin", "driver"), reason=True),
    _rule(_P.OUT_FOR_DELIVERY, _P.EXCEPTION, ("admin", "delivery_agent"), reason=True),
    _rule(_P.DELAYED, _P.EXCEPTION, _WAREHOUSE, reason=True),
    _rule(_P.EXCEPTION, _P.PROCESSING, _WAREHOUSE, reason=True),
    _rule(_P.EXCEPTION, _P.DELAYED, _WAREHOUSE, reason=True),
    _rule(_P.EXCEPTION, _P.IN_TRANSIT, ("admin", "driver"), reason=True),
    _rule(_P.EXCEPTION, _P.CANCELLED, ("admin",), approval=True, reason=True),

    # Cancellation before the package leaves the warehouse
    _rule(_P.PENDING, _P.CANCELLED, _WAREHOUSE, reason=True),
    _rule(_P.PROCESSING, _P.CANCELLED, _WAREHOUSE, reason=True),
    _rule(_P.READY_FOR_GROUPING, _P.CANCELLED, _WAREHOUSE, reason=True),
    _rule(_P.GROUPED, _P.CANCELLED, _WAREHOUSE + ("group_manager",), reason=True),
    _rule(_P.GROUP_CONFIRMED, _P.CANCELLED, _WAREHOUSE + ("group_manager",), reason=True),
]

_GROUP_ROLES = ("admin", "warehouse_manager", "group_manager", "dispatcher")

GROUP_TRANSITIONS: List[TransitionRule] = [
    _rule(_G.DRAFT, _G.PENDING_CONFIRMATION, _GROUP_ROLES),
    _rule(_G.DRAFT, _G.CANCELLED, _GROUP_ROLES, reason=True),
    _rule(_G.PENDING_CONFIRMATION, _G.CONFIRMED, _GROUP_ROLES,
          conditions=("group_complete", "route_planned")),
    _rule(_G.PENDING_CONFIRMATION, _G.DRAFT, _GROUP_ROLES),
    _rule(_G.PENDING_CONFIRMATION, _G.CANCELLED, _GROUP_ROLES, reason=True),
    _rule(_G.CONFIRMED, _G.ASSIGNED, _GROUP_ROLES, conditions=("vehicle_assigned", "driver_assigned")),
    _rule(_G.CONFIRMED, _G.CANCELLED, _GROUP_ROLES, reason=True),
    _rule(_G.ASSIGNED, _G.LOADING, _GROUP_ROLES),
    _rule(_G.ASSIGNED, _G.CANCELLED, _GROUP_ROLES, reason=True),
    _rule(_G.LOADING, _G.DISPATCHED, _GROUP_ROLES, conditions=("vehicle_loaded",)),
    _rule(_G.LOADING, _G.DELAYED, _GROUP_ROLES, reason=True),
    _rule(_G.LOADING, _G.CANCELLED, _GROUP_ROLES, approval=True, reason=True),
    _rule(_G.DISPATCHED, _G.IN_TRANSIT, _GROUP_ROLES + ("driver",)),
    _rule(_G.DISPATCHED, _G.DELAYED, _GROUP_ROLES + ("driver",), reason=True),
    _rule(_G.DISPATCHED, _G.EXCEPTION, _GROUP_ROLES + ("driver",), reason=True),
    _rule(_G.IN_TRANSIT, _G.DELIVERING, _GROUP_ROLES + ("driver",)),
    _rule(_G.IN_TRANSIT, _G.DELAYED, _GROUP_ROLES + ("driver",), reason=True),
    _rule(_G.IN_TRANSIT, _G.EXCEPTION, _GROUP_ROLES + ("driver",), reason=True),
    _rule(_G.DELIVERING, _G.COMPLETED, _GROUP_ROLES + ("driver", "delivery_agent")),
    _rule(_G.DELIVERING, _G.DELAYED, _GROUP_ROLES + ("driver",), reason=True),
    _rule(_G.DELIVERING, _G.EXCEPTION, _GROUP_ROLES + ("driver",), reason=True),
    _rule(_G.DELIVERING, _G.RETURNED, _GROUP_ROLES, approval=True, reason=True),
    _rule(_G.DELAYED, _G.DISPATCHED, _GROUP_ROLES, reason=True),
    _rule(_G.DELAYED, _G.IN_TRANSIT, _GROUP_ROLES + ("driver",), reason=True),
    _rule(_G.DELAYED, _G.DELIVERING, _GROUP_ROLES + ("driver",), reason=True),
    _rule(_G.DELAYED, _G.RETURNED, _GROUP_ROLES, approval=True, reason=True),
    _rule(_G.DELAYED, _G.CANCELLED, _GROUP_ROLES, approval=True, reason=True),
    _rule(_G.EXCEPTION, _G.IN_TRANSIT, _GROUP_ROLES + ("driver",), reason=True),
    _rule(_G.EXCEPTION, _G.DELIVERING, _GROUP_ROLES + ("driver",), reason=True),
    _rule(_G.EXCEPTION, _G.RETURNED, _GROUP_ROLES, approval=True, reason=True),
    _rule(_G.EXCEPTION, _G.CANCELLED, _GROUP_ROLES, approval=True, reason=True),
]

_PACKAGE_RULES: Dict[Tuple[str, str], TransitionRule] = {
    (r.from_status, r.to_status): r for r in PACKAGE_TRANSITIONS
}
_GROUP_RULES: Dict[Tuple[str, str], TransitionRule] = {
    (r.from_status, r.to_status): r for r in GROUP_TRANSITIONS
}


def _value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def get_transition_rule(entity_type: str, from_status, to_status) -> Optional[TransitionRule]:
    """Rule for an edge, or None if the transition is not allowed"""
    table = _GROUP_RULES if _value(entity_type) == "group" else _PACKAGE_RULES
    return table.get((_value(from_status), _value(to_status)))


def valid_next_statuses(entity_type: str, current_status) -> List[str]:
    rules = GROUP_TRANSITIONS if _value(entity_type) == "group" else PACKAGE_TRANSITIONS
    current = _value(current_status)
    return [r.to_status for r in rules if r.from_status == current]
