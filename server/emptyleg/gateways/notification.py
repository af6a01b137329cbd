"""Outbound messaging gateways."""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """The gateway did not accept a message."""


class NotificationGateway(ABC):
    """Sends a text (optionally with media) to a client address."""

    @abstractmethod
    async def send(self, to: str, body: str, media_url: Optional[str] = None) -> str:
        """
        Deliver one message.

        Args:
            to: Recipient address, e.g. ``whatsapp:+2348012345678``
            body: Message text
            media_url: Optional attachment URL

        Returns:
            The gateway's message id

        Raises:
            NotificationDeliveryError: If the gateway refused or could not be reached
        """

    async def aclose(self) -> None:
        """Release network resources."""


class LoggingNotificationGateway(NotificationGateway):
    """Development gateway that writes messages to the log instead of sending them."""

    async def send(self, to: str, body: str, media_url: Optional[str] = None) -> str:
        message_id = f"log-{uuid.uuid4().hex[:12]}"
        logger.info(
            "Notification (not sent, logging gateway)",
            extra={"to": to, "body": body, "media_url": media_url, "message_id": message_id}
        )
        return message_id


class WebhookNotificationGateway(NotificationGateway):
    """
    Posts messages as JSON to a relay service that owns the chat transport.

    The relay is expected to answer 2xx with ``{"id": "<message id>"}``.
    """

    def __init__(
        self,
        url: str,
        sender: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.sender = sender
        self._http = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    async def send(self, to: str, body: str, media_url: Optional[str] = None) -> str:
        payload = {"from": self.sender, "to": to, "body": body}
        if media_url:
            payload["media_url"] = media_url

        try:
            response = await self._http.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationDeliveryError(
                f"Relay returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NotificationDeliveryError(f"Relay unreachable: {exc}") from exc

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        return message_id or f"relay-{uuid.uuid4().hex[:12]}"

    async def aclose(self) -> None:
        await self._http.aclose()
