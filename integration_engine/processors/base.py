"""Base webhook processor and the values passed to it."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from integration_engine.delivery import DeliverySink, Message
from integration_engine.models import Integration, Webhook

logger = logging.getLogger(__name__)


@dataclass
class WebhookPayload:
    """An inbound push after authentication and parsing."""
    event: str
    timestamp: str
    data: Any
    delivery_id: str
    signature: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class DeliveryContext:
    """Webhook configuration resolved for one request."""
    webhook: Webhook
    integration: Optional[Integration] = None

    @property
    def destination_id(self) -> Optional[str]:
        if self.webhook.destination_id:
            return self.webhook.destination_id
        if self.integration is not None:
            return self.integration.destination_id
        return None


class WebhookProcessor(ABC):
    """Formats an inbound payload and hands it to the delivery sink."""

    processor_type: str = "default"

    async def process(self, payload: WebhookPayload, context: DeliveryContext, sink: DeliverySink) -> None:
        destination_id = context.destination_id
        if not destination_id:
            logger.info(f"Webhook {context.webhook.id} has no destination; nothing delivered")
            return
        for message in self.build_messages(payload, context):
            await sink.send(destination_id, message)

    @abstractmethod
    def build_messages(self, payload: WebhookPayload, context: DeliveryContext) -> list[Message]:
        """Messages to deliver for this payload, in order."""
        pass
