"""
Location Resolver

Maps a package status (and destination city) to the facility a tracking
point is stamped with.
"""

import logging
from typing import Dict, Optional

from .models import FacilityType, LocationDescriptor, PackageStatus, TargetType
from .status_rules import resolve_status

logger = logging.getLogger(__name__)


FACILITIES: Dict[str, LocationDescriptor] = {
    "ACCRA_MAIN_WAREHOUSE": LocationDescriptor(
        facility_id="ACCRA_MAIN_WAREHOUSE",
        name="Accra Main Warehouse",
        facility_type=FacilityType.WAREHOUSE,
        city="Accra",
        region="Greater Accra",
        latitude=5.6037,
        longitude=-0.1870,
        address="Vanguard Cargo Warehouse, Industrial Area",
    ),
    "ACCRA_SORTING_CENTER": LocationDescriptor(
        facility_id="ACCRA_SORTING_CENTER",
        name="Accra Sorting Center",
        facility_type=FacilityType.SORTING_CENTER,
        city="Accra",
        region="Greater Accra",
        latitude=5.6108,
        longitude=-0.1821,
        address="Vanguard Sorting Center, Spintex Road",
    ),
    "KUMASI_DISTRIBUTION_HUB": LocationDescriptor(
        facility_id="KUMASI_DISTRIBUTION_HUB",
        name="Kumasi Distribution Hub",
        facility_type=FacilityType.DISTRIBUTION_HUB,
        city="Kumasi",
        region="Ashanti",
        latitude=6.6885,
        longitude=-1.6244,
        address="Vanguard Distribution Hub, Adum",
    ),
    "TAMALE_DELIVERY_HUB": LocationDescriptor(
        facility_id="TAMALE_DELIVERY_HUB",
        name="Tamale Delivery Hub",
        facility_type=FacilityType.DELIVERY_HUB,
        city="Tamale",
        region="Northern",
        latitude=9.4034,
        longitude=-0.8424,
        address="Vanguard Delivery Hub, Central Market Area",
    ),
    "CAPE_COAST_DELIVERY_HUB": LocationDescriptor(
        facility_id="CAPE_COAST_DELIVERY_HUB",
        name="Cape Coast Delivery Hub",
        facility_type=FacilityType.DELIVERY_HUB,
        city="Cape Coast",
        region="Central",
        latitude=5.1053,
        longitude=-1.2466,
        address="Vanguard Delivery Hub, Commercial Street",
    ),
    "ACCRA_TEMA_HIGHWAY": LocationDescriptor(
        facility_id="ACCRA_TEMA_HIGHWAY",
        name="Accra-Tema Highway Checkpoint",
        facility_type=FacilityType.TRANSIT_POINT,
        city="Tema",
        region="Greater Accra",
        latitude=5.6391,
        longitude=-0.0829,
        address="Accra-Tema Highway, Mile 7",
    ),
    "KUMASI_HIGHWAY_JUNCTION": LocationDescriptor(
        facility_id="KUMASI_HIGHWAY_JUNCTION",
        name="Kumasi Highway Junction",
        facility_type=FacilityType.TRANSIT_POINT,
        city="Nsawam",
        region="Eastern",
        latitude=6.2084,
        longitude=-1.0901,
        address="Accra-Kumasi Highway, Nsawam Junction",
    ),
}

DEFAULT_FACILITY = "ACCRA_MAIN_WAREHOUSE"

STATUS_FACILITY: Dict[PackageStatus, str] = {
    PackageStatus.PENDING: "ACCRA_MAIN_WAREHOUSE",
    PackageStatus.PROCESSING: "ACCRA_MAIN_WAREHOUSE",
    PackageStatus.READY_FOR_GROUPING: "ACCRA_SORTING_CENTER",
    PackageStatus.GROUPED: "ACCRA_SORTING_CENTER",
    PackageStatus.GROUP_CONFIRMED: "ACCRA_SORTING_CENTER",
    PackageStatus.DISPATCHED: "ACCRA_SORTING_CENTER",
    PackageStatus.SHIPPED: "ACCRA_TEMA_HIGHWAY",
    PackageStatus.RETURNED: "ACCRA_MAIN_WAREHOUSE",
    PackageStatus.CANCELLED: "ACCRA_MAIN_WAREHOUSE",
}

# Statuses whose facility depends on where the package is headed
DYNAMIC_STATUSES = frozenset({
    PackageStatus.IN_TRANSIT,
    PackageStatus.OUT_FOR_DELIVERY,
    PackageStatus.DELIVERED,
    PackageStatus.DELAYED,
})

_DESTINATION_HUBS = (
    ("kumasi", "KUMASI_DISTRIBUTION_HUB"),
    ("tamale", "TAMALE_DELIVERY_HUB"),
    ("cape coast", "CAPE_COAST_DELIVERY_HUB"),
)


def destination_hub(destination_city: Optional[str]) -> LocationDescriptor:
    """Hub serving a destination city; the main warehouse when none matches"""
    city = (destination_city or "").lower()
    for needle, facility_id in _DESTINATION_HUBS:
        if needle in city:
            return FACILITIES[facility_id]
    return FACILITIES[DEFAULT_FACILITY]


class StaticLocationResolver:
    """Resolves facilities from the static registry above"""

    def resolve_location(self, status: str, destination_city: Optional[str]) -> LocationDescriptor:
        package_status = resolve_status(TargetType.PACKAGE, status)
        if package_status in DYNAMIC_STATUSES:
            return destination_hub(destination_city)
        facility_id = STATUS_FACILITY.get(package_status)
        if facility_id is None:
            logger.debug(f"No facility mapped for status {status}, using {DEFAULT_FACILITY}")
            facility_id = DEFAULT_FACILITY
        return FACILITIES[facility_id]
