#!/usr/bin/env python3
"""Modular configuration system for the status update platform

Configuration hierarchy:
- status_config: Service settings and batch processing defaults
- infra_config: Infrastructure endpoints (NATS)
- service_config: Peer services (notification delivery)
- logging_config: Logging configuration
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .service_config import ServiceConfig
from .status_config import BatchDefaults, StatusUpdateConfig

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)

# Create global settings instance
settings = StatusUpdateConfig.from_env()

def get_settings() -> StatusUpdateConfig:
    """Get global settings instance"""
    return settings

def reload_settings() -> StatusUpdateConfig:
    """Reload settings from environment"""
    global settings
    settings = StatusUpdateConfig.from_env()
    return settings

__all__ = [
    # Main config
    'StatusUpdateConfig',
    'BatchDefaults',
    'get_settings',
    'reload_settings',
    'settings',
    # Sub-configs
    'LoggingConfig',
    'InfraConfig',
    'ServiceConfig',
]
