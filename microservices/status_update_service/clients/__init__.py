"""
Status Update Service Client Module

HTTP clients for peer services.
"""

from .notification_client import NotificationClient

__all__ = [
    "NotificationClient",
]
