"""Select the flow a fresh conversation should enter.

Ordering policy: active flows only, most recently updated first (flows
without ``updated_at`` last), ties broken by id ascending. Keyword and intent
flows are tried before ``any`` flows, so a catch-all flow never masks a
specific one.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from flowdesk.logging_config import get_logger
from flowdesk.schemas.flow import FlowDefinition, TriggerType

logger = get_logger("trigger_matcher")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def normalize_text(text: str) -> str:
    return (text or "").strip().lower()


def _recency(flow: FlowDefinition) -> datetime:
    updated_at = flow.updated_at
    if updated_at is None:
        return _EPOCH
    if updated_at.tzinfo is None:
        return updated_at.replace(tzinfo=timezone.utc)
    return updated_at


def order_candidates(flows: Iterable[FlowDefinition]) -> list[FlowDefinition]:
    active = [flow for flow in flows if flow.is_active]
    # id ascending first, then a stable sort on recency descending
    active.sort(key=lambda flow: flow.id)
    active.sort(key=_recency, reverse=True)
    return active


def matches_keywords(flow: FlowDefinition, normalized: str) -> bool:
    return any(keyword in normalized for keyword in flow.trigger.keywords)


def match(inbound_text: str, candidate_flows: Iterable[FlowDefinition]) -> Optional[FlowDefinition]:
    """Return the flow whose trigger accepts the message, or None."""
    normalized = normalize_text(inbound_text)
    ordered = order_candidates(candidate_flows)

    for flow in ordered:
        if flow.trigger.type in (TriggerType.KEYWORD, TriggerType.INTENT) and matches_keywords(flow, normalized):
            logger.debug(f"Flow {flow.id} matched by {flow.trigger.type.value} trigger")
            return flow

    for flow in ordered:
        if flow.trigger.type == TriggerType.ANY:
            logger.debug(f"Flow {flow.id} matched by universal trigger")
            return flow

    return None
