"""Webhook gateway: authenticates, checks and routes inbound pushes."""

import asyncio
import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Protocol
import logging
import time
import uuid

from integration_engine.core.exceptions import NetworkError, error_category
from integration_engine.delivery import DeliverySink
from integration_engine.models import ActivityStatus, Webhook
from integration_engine.processors import DeliveryContext, ProcessorRegistry, WebhookPayload
from integration_engine.services.activity_service import ActivityLogger, sanitize_headers
from integration_engine.store.base import Store
from integration_engine.utils.crypto import verify_signature

logger = logging.getLogger(__name__)

WEBHOOK_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
SIGNATURE_HEADERS = ("x-webhook-signature", "x-hub-signature-256")
EVENT_HEADERS = ("x-event-type", "x-github-event")
DELIVERY_HEADERS = ("x-delivery-id", "x-github-delivery")
RATE_LIMIT_WINDOW = 60


class RateLimiterBackend(Protocol):
    async def check_rate_limit(self, key: str, limit: int = 60, window: int = 60) -> bool: ...


@dataclass
class GatewayResponse:
    """Status code and JSON body to send back to the webhook sender."""
    status_code: int
    body: Dict[str, Any]


@dataclass
class _RequestRecord:
    event: str
    status: ActivityStatus = ActivityStatus.SUCCESS
    webhook: Optional[Webhook] = None
    data: Any = None
    delivery_id: Optional[str] = None
    error_message: Optional[str] = None
    error_category: Optional[str] = None

    def fail(self, message: str, category: Optional[str] = None) -> None:
        self.status = ActivityStatus.FAILED
        self.error_message = message
        self.error_category = category


def _first_header(headers: Mapping[str, str], names) -> Optional[str]:
    for name in names:
        value = headers.get(name)
        if value:
            return value
    return None


def parse_body(body: bytes) -> Any:
    """Decode a JSON body; anything else is wrapped as ``{"message": text}``."""
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return {"message": body.decode("utf-8", errors="replace")}


class WebhookGateway:
    """Runs each inbound request through verification and dispatch.

    Steps short-circuit in order: id format (400), lookup (404), signature
    (401), rate limit (429), payload size (413), event subscription (200,
    no processing), processor dispatch (200 or 500). One activity entry is
    written per request whatever the outcome.
    """

    def __init__(
        self,
        store: Store,
        processors: ProcessorRegistry,
        sink: DeliverySink,
        rate_limiter: RateLimiterBackend,
        activity_logger: ActivityLogger,
    ):
        self.store = store
        self.processors = processors
        self.sink = sink
        self.rate_limiter = rate_limiter
        self.activity_logger = activity_logger

    async def handle(
        self,
        webhook_id: str,
        headers: Mapping[str, str],
        body: bytes,
        method: str = "POST",
        url: Optional[str] = None,
        client_ip: Optional[str] = None,
    ) -> GatewayResponse:
        started = time.perf_counter()
        lowered = {name.lower(): value for name, value in headers.items()}
        record = _RequestRecord(event=_first_header(lowered, EVENT_HEADERS) or "webhook")
        response = GatewayResponse(500, {"error": "Internal server error"})

        try:
            response = await self._process(webhook_id, lowered, body, record)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            record.fail(message, error_category(e))
            logger.error(f"Error processing webhook {webhook_id}: {message}")
            if record.webhook is not None:
                await self._update_stats(record.webhook.id, False, message)
            response = GatewayResponse(500, {"error": "Internal server error"})
        finally:
            webhook = record.webhook
            await self.activity_logger.record_webhook(
                webhook_id=webhook.id if webhook else None,
                event_type=record.event,
                status=record.status,
                response_status=response.status_code,
                processing_time_ms=(time.perf_counter() - started) * 1000,
                headers=lowered,
                body=record.data,
                response_body=response.body,
                method=method,
                url=url,
                client_ip=client_ip,
                owner_id=webhook.owner_id if webhook else None,
                integration_id=webhook.integration_id if webhook else None,
                error_message=record.error_message,
                error_category=record.error_category,
                metadata={"delivery_id": record.delivery_id} if record.delivery_id else {},
            )

        return response

    async def _process(
        self,
        webhook_id: str,
        headers: Dict[str, str],
        body: bytes,
        record: _RequestRecord,
    ) -> GatewayResponse:
        if not WEBHOOK_ID_RE.match(webhook_id or ""):
            record.fail("Invalid webhook ID", "config")
            return GatewayResponse(400, {"error": "Invalid webhook ID"})

        webhook = await self.store.get_webhook(webhook_id)
        if webhook is None or not webhook.is_active:
            record.fail("Webhook not found or inactive", "config")
            return GatewayResponse(404, {"error": "Webhook not found or inactive"})
        record.webhook = webhook

        signature = _first_header(headers, SIGNATURE_HEADERS)
        if webhook.secret_token and not verify_signature(webhook.secret_token, body, signature):
            logger.warning(f"Invalid signature for webhook {webhook.id}")
            record.fail("Invalid webhook signature", "auth")
            return GatewayResponse(401, {"error": "Invalid signature"})

        allowed = await self.rate_limiter.check_rate_limit(
            f"webhook:{webhook.id}",
            limit=webhook.rate_limit_per_minute,
            window=RATE_LIMIT_WINDOW,
        )
        if not allowed:
            record.fail("Rate limit exceeded", "rate_limit")
            return GatewayResponse(429, {"error": "Rate limit exceeded"})

        if len(body) > webhook.max_payload_size:
            record.fail("Payload too large", "config")
            return GatewayResponse(413, {"error": "Payload too large"})

        record.data = parse_body(body)
        record.delivery_id = _first_header(headers, DELIVERY_HEADERS) or str(uuid.uuid4())
        payload = WebhookPayload(
            event=record.event,
            timestamp=datetime.utcnow().isoformat() + "Z",
            data=record.data,
            delivery_id=record.delivery_id,
            signature=signature,
            headers=sanitize_headers(headers),
        )

        if not webhook.subscribes_to(payload.event):
            logger.debug(f"Webhook {webhook.id} ignored unsubscribed event {payload.event}")
            return GatewayResponse(200, {"message": "Event not subscribed"})

        integration = None
        if webhook.integration_id:
            integration = await self.store.get_integration(webhook.integration_id)

        processor = self.processors.resolve(payload, integration)
        try:
            await asyncio.wait_for(
                processor.process(payload, DeliveryContext(webhook, integration), self.sink),
                timeout=webhook.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Processing timed out after {webhook.timeout_seconds}s") from e

        await self._update_stats(webhook.id, True)
        logger.info(
            f"Processed webhook {webhook.id} event {payload.event} with {processor.processor_type} processor"
        )
        return GatewayResponse(200, {
            "message": "Webhook processed successfully",
            "delivery_id": payload.delivery_id,
        })

    async def _update_stats(self, webhook_id: str, success: bool, error: Optional[str] = None) -> None:
        try:
            await self.store.update_webhook_stats(webhook_id, success, error)
        except Exception as e:
            logger.error(f"Failed to update stats for webhook {webhook_id}: {e}")
