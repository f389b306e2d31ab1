#!/usr/bin/env python3
"""
Core Module for Microservices Architecture

Shared components for the platform's microservices.

COMPONENTS:
    - config/: Environment-driven configuration dataclasses
    - config_manager.py: Per-service configuration access and discovery
    - nats_client.py: NATS event bus for event-driven architecture

USAGE:
    from core.config_manager import ConfigManager

    config = ConfigManager("status_update_service")
"""

from .config_manager import ConfigManager

__all__ = ["ConfigManager"]
