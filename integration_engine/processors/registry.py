"""Processor registry and payload-shape sniffing."""

from typing import Callable, Dict, Optional
import logging

from integration_engine.models import Integration, IntegrationType
from integration_engine.processors.base import WebhookPayload, WebhookProcessor

logger = logging.getLogger(__name__)

DEFAULT_PROCESSOR = "default"


class PayloadSniffer:
    """Guesses a processor type from recognizable payload markers.

    Only consulted when the webhook has no linked integration to say what
    it is.
    """

    def __call__(self, payload: WebhookPayload) -> Optional[str]:
        data = payload.data
        if not isinstance(data, dict):
            return None
        if isinstance(data.get("repository"), dict):
            return IntegrationType.CODE_HOSTING.value
        items = data.get("items")
        if isinstance(items, list) and items and all(
            isinstance(item, dict) and ("link" in item or "title" in item) for item in items
        ):
            return IntegrationType.FEED.value
        return None


class ProcessorRegistry:
    """Maps processor types to processors and resolves one per request."""

    def __init__(self, sniffer: Optional[Callable[[WebhookPayload], Optional[str]]] = None):
        self._processors: Dict[str, WebhookProcessor] = {}
        self.sniffer = sniffer or PayloadSniffer()

    def register(self, processor: WebhookProcessor) -> WebhookProcessor:
        self._processors[processor.processor_type] = processor
        logger.info(f"Registered webhook processor: {processor.processor_type}")
        return processor

    def get(self, processor_type: str) -> Optional[WebhookProcessor]:
        return self._processors.get(processor_type)

    def list_types(self) -> list[str]:
        return list(self._processors.keys())

    def resolve(self, payload: WebhookPayload, integration: Optional[Integration] = None) -> WebhookProcessor:
        """Linked integration type first, then sniffing, then the default."""
        if integration is not None:
            processor = self._processors.get(integration.integration_type.value)
            if processor is not None:
                return processor

        sniffed = self.sniffer(payload)
        if sniffed and sniffed in self._processors:
            return self._processors[sniffed]

        return self._processors[DEFAULT_PROCESSOR]