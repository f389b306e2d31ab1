"""
Status Update Microservice API

Bulk and single status changes for packages and shipment groups, with
tracking timelines, status history and reconciliation reports.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from core.config import get_settings

from .factory import StatusUpdateServiceFactory
from .models import (
    GroupBatchRequest,
    HealthResponse,
    ReconciliationReport,
    StatusHistoryEntry,
    StatusUpdateCommand,
    StatusUpdateResult,
    TrackingPoint,
)
from .protocols import (
    EntityNotFoundError,
    StatusUpdateError,
    VersionConflictError,
)
from .routes_registry import SERVICE_METADATA
from .status_update_service import StatusUpdateService

settings = get_settings()

# Configure logging
settings.logging.configure()
logger = logging.getLogger(__name__)

# Service configuration
SERVICE_NAME = "status_update_service"
SERVICE_PORT = int(os.getenv("SERVICE_PORT", str(settings.service_port)))
SERVICE_VERSION = SERVICE_METADATA["version"]

# Global factory instance
factory: Optional[StatusUpdateServiceFactory] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global factory

    logger.info(f"Starting {SERVICE_NAME} on port {SERVICE_PORT}")

    factory = StatusUpdateServiceFactory()
    await factory.initialize()

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")
    await factory.close()
    factory = None


# Create FastAPI application
app = FastAPI(
    title="Status Update Service",
    description="Bulk status updates for packages and shipment groups with tracking and audit history",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


# ====================
# Exception Handlers
# ====================


@app.exception_handler(EntityNotFoundError)
async def entity_not_found_handler(request: Request, exc: EntityNotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc)},
    )


@app.exception_handler(VersionConflictError)
async def version_conflict_handler(request: Request, exc: VersionConflictError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc)},
    )


@app.exception_handler(StatusUpdateError)
async def status_update_error_handler(request: Request, exc: StatusUpdateError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


# ====================
# Dependencies
# ====================


def get_factory() -> StatusUpdateServiceFactory:
    """Get initialized factory"""
    if not factory:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return factory


def get_service(components: StatusUpdateServiceFactory = Depends(get_factory)) -> StatusUpdateService:
    """Get status update service from factory"""
    return components.service


def get_actor(request: Request) -> dict:
    """Extract actor from gateway headers"""
    return {
        "user_id": request.headers.get("X-User-ID"),
        "role": request.headers.get("X-User-Role"),
    }


# ====================
# Health Endpoints
# ====================


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check with dependency status"""
    dependencies = {}

    if factory is None:
        dependencies["store"] = "unhealthy"
    else:
        try:
            dependencies["store"] = "healthy" if await factory.store.health_check() else "unhealthy"
        except Exception as e:
            logger.warning(f"Store health check failed: {e}")
            dependencies["store"] = "unhealthy"

        nats_client = factory.nats_client
        if nats_client is None:
            dependencies["event_bus"] = "not_configured"
        else:
            dependencies["event_bus"] = "healthy" if nats_client.is_connected else "unhealthy"

        dependencies["notifier"] = "healthy" if factory.notification_client else "not_configured"

    overall = "healthy" if all(v in ("healthy", "not_configured") for v in dependencies.values()) else "degraded"

    return HealthResponse(
        status=overall,
        service=SERVICE_NAME,
        port=SERVICE_PORT,
        version=SERVICE_VERSION,
        dependencies=dependencies,
    )


# ====================
# Status Updates
# ====================


@app.post("/api/v1/status-updates", response_model=StatusUpdateResult)
async def execute_status_update(
    command: StatusUpdateCommand,
    service: StatusUpdateService = Depends(get_service),
    actor: dict = Depends(get_actor),
):
    """
    Apply one status to packages, groups or a batch.

    Per-item failures are reported in the result body, not as HTTP errors.
    The X-User-ID / X-User-Role headers fill in a missing actor.
    """
    request = command.request
    fill = {}
    if not request.performed_by and actor["user_id"]:
        fill["performed_by"] = actor["user_id"]
    if not request.performed_by_role and actor["role"]:
        fill["performed_by_role"] = actor["role"]
    if fill:
        request = request.model_copy(update=fill)

    return await service.execute_status_update(request, command.config)


@app.post("/api/v1/status-updates/groups/batch", response_model=StatusUpdateResult)
async def batch_update_groups(
    body: GroupBatchRequest,
    service: StatusUpdateService = Depends(get_service),
):
    """Update groups with cascade to member packages and customer notification"""
    return await service.batch_update_group_status(
        group_ids=body.group_ids,
        status=body.status,
        reason=body.reason,
        scheduled_for=body.scheduled_for,
    )


@app.get("/api/v1/status-updates/reconciliation", response_model=ReconciliationReport)
async def reconciliation_report(components: StatusUpdateServiceFactory = Depends(get_factory)):
    """Entities whose status, history and tracking disagree"""
    return await components.reconciler.find_inconsistencies()


# ====================
# Tracking & History
# ====================


@app.get("/api/v1/packages/{package_id}/tracking", response_model=List[TrackingPoint])
async def get_package_tracking(
    package_id: str,
    service: StatusUpdateService = Depends(get_service),
):
    """Tracking timeline of a package, oldest first"""
    if await service.package_repository.get_package(package_id) is None:
        raise EntityNotFoundError("package", package_id)
    return await service.tracking_recorder.list_tracking_points(package_id)


@app.get("/api/v1/status-history/{entity_id}", response_model=List[StatusHistoryEntry])
async def get_status_history(
    entity_id: str,
    service: StatusUpdateService = Depends(get_service),
):
    """Status history of a package or group, oldest first"""
    package = await service.package_repository.get_package(entity_id)
    if package is None and await service.group_repository.get_group(entity_id) is None:
        raise EntityNotFoundError("entity", entity_id)
    return await service.history_recorder.list_history(entity_id)


# ====================
# Main Entry Point
# ====================


def main():
    """Run the service"""
    import uvicorn

    uvicorn.run(
        "microservices.status_update_service.main:app",
        host=settings.service_host,
        port=SERVICE_PORT,
        reload=settings.debug,
        log_level=settings.logging.log_level.lower(),
    )


if __name__ == "__main__":
    main()
