"""
Configuration Manager

Per-service access to the environment-driven settings in core.config, plus
peer service discovery from environment variables.
"""

import logging
import os
from typing import Any, Optional, Tuple

from core.config import StatusUpdateConfig, get_settings

logger = logging.getLogger(__name__)


class ConfigManager:
    """Configuration access for a single microservice"""

    def __init__(self, service_name: str, settings: Optional[StatusUpdateConfig] = None):
        self.service_name = service_name
        self.settings = settings or get_settings()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a raw configuration value.

        Service-scoped variables (``STATUS_UPDATE_SERVICE_<KEY>``) take
        precedence over the plain ``<KEY>`` variable.
        """
        scoped = f"{self.service_name.upper()}_{key.upper()}"
        value = os.getenv(scoped)
        if value is None:
            value = os.getenv(key.upper())
        return default if value is None else value

    def get_service_config(self) -> StatusUpdateConfig:
        """Get the typed service configuration"""
        return self.settings

    def discover_service(
        self,
        service_name: str,
        default_host: str,
        default_port: int,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Resolve a peer service address.

        Priority: explicit environment variables, then the default.
        """
        host = os.getenv(env_host_key) if env_host_key else None
        port_value = os.getenv(env_port_key) if env_port_key else None

        port = default_port
        if port_value:
            try:
                port = int(port_value)
            except ValueError:
                logger.warning(f"Invalid port for {service_name}: {port_value!r}, using {default_port}")

        resolved = (host or default_host, port)
        logger.debug(f"Discovered {service_name} at {resolved[0]}:{resolved[1]}")
        return resolved
