"""REST API webhook processor."""

from integration_engine.delivery import Message, format_message, to_json, truncate
from integration_engine.models import IntegrationType
from integration_engine.processors.base import DeliveryContext, WebhookPayload, WebhookProcessor
from integration_engine.services.transformation_service import NOT_FOUND, run_pipeline


class RestApiProcessor(WebhookProcessor):
    """Reshapes the payload with the linked integration's pipeline settings."""

    processor_type = IntegrationType.REST_API.value

    def build_messages(self, payload: WebhookPayload, context: DeliveryContext) -> list[Message]:
        integration = context.integration
        if integration is None:
            return [{
                "title": f"API Event: {payload.event}",
                "description": truncate(to_json(payload.data), 200),
                "color": 0x00FF00,
                "timestamp": payload.timestamp,
            }]

        data = run_pipeline(
            payload.data,
            data_path=integration.config.get("data_path"),
            filter_spec=integration.filter_config,
            transform_spec=integration.transform_config,
        )
        if data is NOT_FOUND:
            return []
        return [format_message(data, integration)]
