#!/usr/bin/env python3
"""Service configuration for peer services

Peer services the status update service may call.
"""
import os
from dataclasses import dataclass

def _bool(val: str) -> bool:
    return val.lower() == "true"


@dataclass
class ServiceConfig:
    """Peer service endpoints"""

    # ===========================================
    # Notification delivery
    # ===========================================
    notification_service_url: str = "http://localhost:8206"
    notifications_enabled: bool = False
    notification_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> 'ServiceConfig':
        """Load service configuration from environment variables"""
        try:
            timeout = float(os.getenv("NOTIFICATION_TIMEOUT", "10"))
        except ValueError:
            timeout = 10.0
        return cls(
            notification_service_url=os.getenv("NOTIFICATION_SERVICE_URL", "http://localhost:8206"),
            notifications_enabled=_bool(os.getenv("NOTIFICATIONS_ENABLED", "false")),
            notification_timeout=timeout,
        )
