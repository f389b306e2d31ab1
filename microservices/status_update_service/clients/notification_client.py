"""
Notification Service HTTP Client

Async HTTP client that hands batch status notifications to the
notification service. Implements NotifierProtocol.
"""

import logging
from typing import Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..models import BatchNotification
from ..protocols import NotificationError

logger = logging.getLogger(__name__)


class NotificationClient:
    """Async HTTP client for notification_service"""

    def __init__(
        self,
        base_url: str = "http://localhost:8206",
        config=None,
        timeout: float = 10.0,
        enable_retry: bool = True,
    ):
        """
        Initialize NotificationClient

        Args:
            base_url: Base URL for notification_service
            config: ConfigManager instance for dynamic configuration
            timeout: Request timeout in seconds
            enable_retry: Retry transport errors with exponential backoff
        """
        if config:
            services = config.get_service_config().services
            base_url = config.get("NOTIFICATION_SERVICE_URL", services.notification_service_url)
            timeout = services.notification_timeout
        self.base_url = base_url.rstrip("/")
        self.enable_retry = enable_retry
        self.client = httpx.AsyncClient(timeout=timeout)
        logger.info(f"NotificationClient initialized with base_url: {self.base_url}")

    async def notify(self, notification: BatchNotification) -> int:
        """
        Send one batch notification.

        Returns:
            Number of customer notifications the service reports as queued

        Raises:
            NotificationError: when the service rejects the request or stays unreachable
        """
        payload = notification.model_dump(mode="json")

        try:
            if self.enable_retry:
                response = await self._post_with_retry(payload)
            else:
                response = await self._post(payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Notification for batch {notification.batch_id} rejected: "
                f"{e.response.status_code} {e.response.text}"
            )
            raise NotificationError(
                f"notification service returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Notification service unreachable for batch {notification.batch_id}: {e}")
            raise NotificationError(f"notification service unreachable: {e}") from e

        return self._delivered_count(response, notification)

    async def _post(self, payload: dict) -> httpx.Response:
        return await self.client.post(
            f"{self.base_url}/api/v1/notifications/batch",
            json=payload,
            headers={"X-Internal-Call": "true"},
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post_with_retry(self, payload: dict) -> httpx.Response:
        return await self._post(payload)

    @staticmethod
    def _delivered_count(response: httpx.Response, notification: BatchNotification) -> int:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            count: Optional[int] = body.get("delivered", body.get("queued"))
            if isinstance(count, int):
                return count
        logger.debug(f"No delivery count in response for batch {notification.batch_id}")
        return len(notification.affected_customers)

    async def close(self):
        """Close the HTTP client connection"""
        await self.client.aclose()
        logger.info("NotificationClient connection closed")
