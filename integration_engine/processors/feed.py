"""Feed webhook processor."""

from typing import Any, Dict

from integration_engine.delivery import Message
from integration_engine.models import IntegrationType
from integration_engine.processors.base import DeliveryContext, WebhookPayload, WebhookProcessor

MAX_ITEMS = 3


class FeedProcessor(WebhookProcessor):
    """Posts the first few pushed feed items, one message each."""

    processor_type = IntegrationType.FEED.value

    def build_messages(self, payload: WebhookPayload, context: DeliveryContext) -> list[Message]:
        data: Dict[str, Any] = payload.data if isinstance(payload.data, dict) else {}
        items = data.get("items")
        if not isinstance(items, list):
            return []

        feed_title = (data.get("feed") or {}).get("title") or "RSS Feed"
        messages: list[Message] = []
        for item in items[:MAX_ITEMS]:
            if not isinstance(item, dict):
                continue
            messages.append({
                "title": item.get("title", ""),
                "description": str(item.get("description") or "")[:200],
                "url": item.get("link"),
                "color": 0xFF6600,
                "timestamp": item.get("pubDate") or payload.timestamp,
                "footer": {"text": feed_title},
            })
        return messages
