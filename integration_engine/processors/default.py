"""Generic processors: the fallback envelope and the cross-surface relay."""

from integration_engine.delivery import MAX_MESSAGE_LENGTH, Message, to_json, truncate
from integration_engine.models import IntegrationType
from integration_engine.processors.base import DeliveryContext, WebhookPayload, WebhookProcessor


class DefaultProcessor(WebhookProcessor):
    """Forwards event name, timestamp and the pretty-printed payload."""

    processor_type = "default"

    def build_messages(self, payload: WebhookPayload, context: DeliveryContext) -> list[Message]:
        header = f"**Webhook Event:** {payload.event}\n**Time:** {payload.timestamp}\n**Data:** ```json\n"
        footer = "\n```"
        # Clip the body so the code fence is always closed
        body = truncate(to_json(payload.data), max(MAX_MESSAGE_LENGTH - len(header) - len(footer), 3))
        return [truncate(header + body + footer)]


class RelayProcessor(WebhookProcessor):
    """Relays events from another messaging surface as an embed."""

    processor_type = IntegrationType.WEBHOOK.value

    def build_messages(self, payload: WebhookPayload, context: DeliveryContext) -> list[Message]:
        return [{
            "title": f"Event: {payload.event}",
            "description": truncate(to_json(payload.data), 4000),
            "color": 0x5865F2,
            "timestamp": payload.timestamp,
            "footer": {"text": context.webhook.name},
        }]
