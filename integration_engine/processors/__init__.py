"""Webhook processors."""

from typing import Callable, Optional

from .base import DeliveryContext, WebhookPayload, WebhookProcessor
from .registry import DEFAULT_PROCESSOR, PayloadSniffer, ProcessorRegistry
from .default import DefaultProcessor, RelayProcessor
from .github import CodeHostingProcessor
from .feed import FeedProcessor
from .rest_api import RestApiProcessor


def create_default_registry(
    sniffer: Optional[Callable[[WebhookPayload], Optional[str]]] = None,
) -> ProcessorRegistry:
    """Registry preloaded with the built-in processors."""
    registry = ProcessorRegistry(sniffer=sniffer)
    for processor in (
        DefaultProcessor(),
        RelayProcessor(),
        CodeHostingProcessor(),
        FeedProcessor(),
        RestApiProcessor(),
    ):
        registry.register(processor)
    return registry


__all__ = [
    "DEFAULT_PROCESSOR",
    "DeliveryContext",
    "WebhookPayload",
    "WebhookProcessor",
    "PayloadSniffer",
    "ProcessorRegistry",
    "DefaultProcessor",
    "RelayProcessor",
    "CodeHostingProcessor",
    "FeedProcessor",
    "RestApiProcessor",
    "create_default_registry",
]
