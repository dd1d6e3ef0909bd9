"""Hands outbound actions to the channel connector over HTTP."""

from typing import Optional

import httpx

from flowdesk.config import Settings, settings
from flowdesk.logging_config import get_logger
from flowdesk.schemas.events import OutboundAction, SendMessage
from flowdesk.services.alert_service import alert_critical

logger = get_logger("delivery_service")


class HttpDeliveryGateway:
    """Posts each action as JSON to the connector that talks to WhatsApp/Instagram.

    ``delayMs`` travels with the payload; the connector schedules the send.
    Errors are logged and alerted, never raised into the bot turn.
    """

    def __init__(self, config: Optional[Settings] = None, client: Optional[httpx.Client] = None):
        self.config = config or settings
        self.client = client

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.config.delivery_token:
            headers["Authorization"] = f"Bearer {self.config.delivery_token}"
        return headers

    def _post(self, payload: dict) -> httpx.Response:
        if self.client is not None:
            return self.client.post(self.config.delivery_url, json=payload, headers=self._headers())
        with httpx.Client(timeout=self.config.delivery_timeout_seconds) as client:
            return client.post(self.config.delivery_url, json=payload, headers=self._headers())

    def send(self, conversation_id: str, action: OutboundAction) -> None:
        if not self.config.delivery_url:
            logger.warning(
                f"Delivery not configured, dropping {action.type}",
                extra={"context": {"conversation_id": conversation_id}},
            )
            return

        if isinstance(action, SendMessage) and not action.text.strip() and not action.has_media:
            logger.warning(f"send: empty message for {conversation_id}, skipped")
            return

        payload = action.model_dump(mode="json")
        payload["conversation_id"] = conversation_id

        try:
            response = self._post(payload)
            logger.info(
                f"Delivery response: status={response.status_code}, type={action.type}",
                extra={"context": {"conversation_id": conversation_id, "body": response.text[:200]}},
            )
            if response.status_code >= 300:
                alert_critical(
                    "Delivery rejected", {"conversation_id": conversation_id, "status": response.status_code}
                )
        except httpx.HTTPError as e:
            logger.error(f"Error delivering {action.type} to {conversation_id}: {e}")
            alert_critical("Delivery failed", {"conversation_id": conversation_id, "error": str(e)})
