"""Operational alerts posted to a chat webhook (Slack/Mattermost style `{"text": ...}` payload)."""

from typing import Optional

import httpx

from flowdesk.config import settings
from flowdesk.logging_config import get_logger

logger = get_logger("alert_service")

LEVELS = ("INFO", "WARNING", "ERROR", "CRITICAL")


def _below_threshold(level: str) -> bool:
    threshold = settings.alert_min_level.upper()
    if level not in LEVELS or threshold not in LEVELS:
        return False
    return LEVELS.index(level) < LEVELS.index(threshold)


def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
    text = f"[{settings.alert_source}] {level}: {message}"
    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n```\n{context_str}\n```"
    return text


def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Post an alert to the configured webhook.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if the webhook accepted it
    """
    if _below_threshold(level):
        return False

    if not settings.alert_webhook_url:
        logger.warning(f"Alert not configured: {level} - {message}", extra={"context": context or {}})
        return False

    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(
                settings.alert_webhook_url,
                json={"text": format_alert(level, message, context), "level": level},
            )
            return response.status_code < 300
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False


def alert_error(message: str, context: Optional[dict] = None) -> bool:
    return send_alert("ERROR", message, context)


def alert_critical(message: str, context: Optional[dict] = None) -> bool:
    return send_alert("CRITICAL", message, context)


def alert_warning(message: str, context: Optional[dict] = None) -> bool:
    return send_alert("WARNING", message, context)
