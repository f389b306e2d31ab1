"""
Status Update Service Routes Registry
Defines all API routes exposed by the service.
"""
from typing import Dict, Any

SERVICE_ROUTES = [
    # Health
    {
        "path": "/health",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Health check with dependency status"
    },
    # Status Updates
    {
        "path": "/api/v1/status-updates",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Apply a status to packages, groups or a batch"
    },
    {
        "path": "/api/v1/status-updates/groups/batch",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Update groups with cascade and customer notification"
    },
    {
        "path": "/api/v1/status-updates/reconciliation",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Status / history / tracking inconsistencies"
    },
    # Tracking & History
    {
        "path": "/api/v1/packages/{package_id}/tracking",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Package tracking timeline"
    },
    {
        "path": "/api/v1/status-history/{entity_id}",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Status history of a package or group"
    },
]

SERVICE_METADATA = {
    "service_name": "status_update_service",
    "version": "1.0.0",
    "tags": ["v1", "logistics", "status", "tracking"],
    "capabilities": [
        "bulk_status_update",
        "group_cascade",
        "tracking_timeline",
        "status_history",
        "reconciliation",
    ],
}


def get_route_summary() -> Dict[str, Any]:
    """Compact description of the route table"""
    return {
        "route_count": len(SERVICE_ROUTES),
        "public_routes": [r["path"] for r in SERVICE_ROUTES if not r["auth_required"]],
        "base_path": "/api/v1",
    }
