#!/usr/bin/env python3
"""Status update platform configuration

Main configuration for the status update service. Combines all sub-configs
and holds the batch processing defaults.
"""
import os
from dataclasses import dataclass, field
from typing import Optional

from .infra_config import InfraConfig
from .logging_config import LoggingConfig
from .service_config import ServiceConfig


def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class BatchDefaults:
    """Defaults merged under every BatchUpdateConfig"""
    max_batch_size: int = 100
    parallel_processing: bool = True
    continue_on_error: bool = True
    validation_level: str = "normal"
    notification_batching: bool = True
    rollback_on_failure: bool = False

    @classmethod
    def from_env(cls) -> 'BatchDefaults':
        return cls(
            max_batch_size=max(1, _int(os.getenv("STATUS_MAX_BATCH_SIZE", "100"), 100)),
            parallel_processing=_bool(os.getenv("STATUS_PARALLEL_PROCESSING", "true")),
            continue_on_error=_bool(os.getenv("STATUS_CONTINUE_ON_ERROR", "true")),
            validation_level=os.getenv("STATUS_VALIDATION_LEVEL", "normal").lower(),
            notification_batching=_bool(os.getenv("STATUS_NOTIFICATION_BATCHING", "true")),
            rollback_on_failure=_bool(os.getenv("STATUS_ROLLBACK_ON_FAILURE", "false")),
        )


@dataclass
class StatusUpdateConfig:
    """Status update service configuration"""

    # ===========================================
    # Service identity
    # ===========================================
    service_name: str = "status_update_service"
    service_host: str = "0.0.0.0"
    service_port: int = 8260
    environment: str = "development"
    debug: bool = False

    # ===========================================
    # Orchestrator
    # ===========================================
    default_actor_role: str = "admin"
    seed_file: Optional[str] = None
    idempotency_enabled: bool = True

    batch: BatchDefaults = field(default_factory=BatchDefaults)
    infrastructure: InfraConfig = field(default_factory=InfraConfig)
    services: ServiceConfig = field(default_factory=ServiceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> 'StatusUpdateConfig':
        """Load configuration from environment variables"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            service_name=os.getenv("SERVICE_NAME", "status_update_service"),
            service_host=os.getenv("SERVICE_HOST", "0.0.0.0"),
            service_port=_int(os.getenv("SERVICE_PORT", "8260"), 8260),
            environment=env,
            debug=_bool(os.getenv("DEBUG", "false")),
            default_actor_role=os.getenv("STATUS_DEFAULT_ACTOR_ROLE", "admin"),
            seed_file=os.getenv("STATUS_SEED_FILE") or None,
            idempotency_enabled=_bool(os.getenv("STATUS_IDEMPOTENCY_ENABLED", "true")),
            batch=BatchDefaults.from_env(),
            infrastructure=InfraConfig.from_env(),
            services=ServiceConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )
