"""Tests for the webhook gateway."""

import asyncio
import json
import uuid
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient

from integration_engine.core.exceptions import ParseError
from integration_engine.models import ActivityStatus, IntegrationType
from integration_engine.processors import WebhookProcessor, create_default_registry
from integration_engine.services.activity_service import ActivityLogger, sanitize_headers
from integration_engine.services.integration_service import IntegrationEngine
from integration_engine.services.webhook_service import WebhookGateway, parse_body
from integration_engine.utils.crypto import compute_signature
from integration_engine.utils.rate_limiter import InMemoryRateLimiter

SECRET = "webhook-secret"
BODY = json.dumps({"action": "opened", "number": 1}).encode()


def signed_headers(body: bytes = BODY, secret: str = SECRET, **extra: str):
    headers = {"X-Webhook-Signature": compute_signature(secret, body), "X-Event-Type": "push"}
    headers.update(extra)
    return headers


class SpyProcessor(WebhookProcessor):
    """Processor that records calls instead of delivering."""

    processor_type = "default"

    def __init__(self):
        self.process = AsyncMock()

    def build_messages(self, payload, context):
        return []


@pytest.fixture
def registry():
    return create_default_registry()


@pytest.fixture
def gateway(store, registry, sink):
    return WebhookGateway(store, registry, sink, InMemoryRateLimiter(), ActivityLogger(store))


@pytest_asyncio.fixture
async def webhook(store, make_webhook):
    return await store.create_webhook(make_webhook(secret_token=SECRET))


class TestVerification:
    """Test the short-circuit steps before dispatch."""

    @pytest.mark.asyncio
    async def test_malformed_id(self, gateway):
        response = await gateway.handle("bad id!", {}, BODY)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_webhook(self, gateway):
        response = await gateway.handle("missing", signed_headers(), BODY)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_inactive_webhook(self, gateway, store, make_webhook):
        await store.create_webhook(make_webhook(id="off", is_active=False))
        response = await gateway.handle("off", {}, BODY)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_valid_signature(self, gateway, webhook, sink):
        response = await gateway.handle(webhook.id, signed_headers(), BODY)

        assert response.status_code == 200
        assert response.body["message"] == "Webhook processed successfully"
        assert len(sink.messages) == 1

    @pytest.mark.asyncio
    async def test_prefixed_signature_header(self, gateway, webhook):
        headers = {"X-Hub-Signature-256": "sha256=" + compute_signature(SECRET, BODY), "X-GitHub-Event": "push"}
        response = await gateway.handle(webhook.id, headers, BODY)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_missing_signature(self, gateway, webhook, sink):
        response = await gateway.handle(webhook.id, {"X-Event-Type": "push"}, BODY)

        assert response.status_code == 401
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_tampered_body(self, gateway, webhook):
        response = await gateway.handle(webhook.id, signed_headers(), BODY + b" ")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unsigned_webhook_accepts_anything(self, gateway, store, make_webhook):
        await store.create_webhook(make_webhook(id="open", secret_token=None))
        response = await gateway.handle("open", {}, BODY)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_rate_limit(self, gateway, store, make_webhook):
        await store.create_webhook(make_webhook(id="limited", rate_limit_per_minute=2))

        statuses = [(await gateway.handle("limited", {}, BODY)).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]

    @pytest.mark.asyncio
    async def test_payload_too_large(self, gateway, store, make_webhook):
        await store.create_webhook(make_webhook(id="small", max_payload_size=10))
        response = await gateway.handle("small", {}, BODY)
        assert response.status_code == 413

    @pytest.mark.asyncio
    async def test_rejections_do_not_touch_counters(self, gateway, webhook, store):
        await gateway.handle(webhook.id, {}, BODY)

        stored = await store.get_webhook(webhook.id)
        assert stored.success_count == 0
        assert stored.failure_count == 0


class TestDispatch:
    """Test subscription checks and processor dispatch."""

    @pytest.mark.asyncio
    async def test_unsubscribed_event_is_not_processed(self, store, sink, make_webhook):
        spy = SpyProcessor()
        registry = create_default_registry()
        registry.register(spy)
        gateway = WebhookGateway(store, registry, sink, InMemoryRateLimiter(), ActivityLogger(store))
        await store.create_webhook(make_webhook(id="picky", events=["push"]))

        response = await gateway.handle("picky", {"X-Event-Type": "issues"}, BODY)

        assert response.status_code == 200
        assert response.body == {"message": "Event not subscribed"}
        spy.process.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delivery_id_is_echoed_or_generated(self, gateway, webhook):
        echoed = await gateway.handle(webhook.id, signed_headers(**{"X-Delivery-Id": "abc-123"}), BODY)
        generated = await gateway.handle(webhook.id, signed_headers(), BODY)

        assert echoed.body["delivery_id"] == "abc-123"
        uuid.UUID(generated.body["delivery_id"])

    @pytest.mark.asyncio
    async def test_linked_integration_selects_processor(self, gateway, store, make_webhook, make_integration, sink):
        integration = await store.create_integration(make_integration(
            integration_type=IntegrationType.REST_API,
            config={"data_path": "action"},
        ))
        await store.create_webhook(make_webhook(id="linked", integration_id=integration.id))

        response = await gateway.handle("linked", {}, BODY)

        assert response.status_code == 200
        assert sink.messages == [("channel-9", "opened")]

    @pytest.mark.asyncio
    async def test_sniffed_code_hosting_payload(self, gateway, store, make_webhook, sink):
        await store.create_webhook(make_webhook(id="repo"))
        body = json.dumps({"ref": "refs/heads/main", "repository": {"name": "widgets"}, "commits": []}).encode()

        await gateway.handle("repo", {"X-GitHub-Event": "push"}, body)

        assert sink.messages[0][1]["title"] == "Push to widgets"

    @pytest.mark.asyncio
    async def test_non_json_body_is_wrapped(self, gateway, store, make_webhook, sink):
        await store.create_webhook(make_webhook(id="text"))

        response = await gateway.handle("text", {}, b"plain text")

        assert response.status_code == 200
        assert '"message": "plain text"' in sink.messages[0][1]

    @pytest.mark.asyncio
    async def test_success_updates_counters(self, gateway, webhook, store):
        await gateway.handle(webhook.id, signed_headers(), BODY)

        stored = await store.get_webhook(webhook.id)
        assert stored.success_count == 1
        assert stored.last_success_at is not None

    @pytest.mark.asyncio
    async def test_processor_failure(self, store, sink, make_webhook):
        spy = SpyProcessor()
        spy.process.side_effect = ParseError("cannot read payload")
        registry = create_default_registry()
        registry.register(spy)
        gateway = WebhookGateway(store, registry, sink, InMemoryRateLimiter(), ActivityLogger(store))
        await store.create_webhook(make_webhook(id="broken"))

        response = await gateway.handle("broken", {}, BODY)

        assert response.status_code == 500
        assert response.body == {"error": "Internal server error"}
        stored = await store.get_webhook("broken")
        assert stored.failure_count == 1
        assert stored.last_error == "cannot read payload"

        (entry,) = await store.list_activity(webhook_id="broken")
        assert entry.error_category == "parse"

    @pytest.mark.asyncio
    async def test_processing_timeout(self, store, sink, make_webhook):
        async def hang(payload, context, sink):
            await asyncio.sleep(10)

        spy = SpyProcessor()
        spy.process.side_effect = hang
        registry = create_default_registry()
        registry.register(spy)
        gateway = WebhookGateway(store, registry, sink, InMemoryRateLimiter(), ActivityLogger(store))
        await store.create_webhook(make_webhook(id="slow", timeout_seconds=0.01))

        response = await gateway.handle("slow", {}, BODY)

        assert response.status_code == 500
        (entry,) = await store.list_activity(webhook_id="slow")
        assert entry.error_category == "network"


class TestActivity:
    """Test per-request activity logging."""

    @pytest.mark.asyncio
    async def test_one_entry_per_request(self, gateway, webhook, store):
        await gateway.handle(webhook.id, signed_headers(), BODY)
        await gateway.handle(webhook.id, {}, BODY)
        await gateway.handle("bad id!", {}, BODY)
        await gateway.handle("missing", {}, BODY)

        assert len(store.activity) == 4
        statuses = [entry.status for entry in store.activity]
        assert statuses == [
            ActivityStatus.SUCCESS,
            ActivityStatus.FAILED,
            ActivityStatus.FAILED,
            ActivityStatus.FAILED,
        ]
        assert [entry.response_status for entry in store.activity] == [200, 401, 400, 404]

    @pytest.mark.asyncio
    async def test_headers_are_sanitized(self, gateway, webhook, store):
        headers = signed_headers(
            Authorization="Bearer secret",
            Cookie="session=1",
            **{"X-API-Key": "k", "X-Secret-Token": "t", "User-Agent": "sender/1.0"},
        )

        await gateway.handle(webhook.id, headers, BODY, client_ip="10.0.0.1")

        (entry,) = store.activity
        assert "authorization" not in entry.request_headers
        assert "cookie" not in entry.request_headers
        assert "x-api-key" not in entry.request_headers
        assert "x-secret-token" not in entry.request_headers
        assert "x-webhook-signature" not in entry.request_headers
        assert entry.request_headers["x-event-type"] == "push"
        assert entry.user_agent == "sender/1.0"
        assert entry.ip_address == "10.0.0.1"
        assert entry.request_body == {"action": "opened", "number": 1}

    def test_sanitize_headers(self):
        assert sanitize_headers({"Content-Type": "application/json", "X-Auth-Token": "t"}) == {
            "content-type": "application/json"
        }
        assert sanitize_headers(None) == {}

    def test_signature_headers_are_dropped(self):
        headers = {
            "X-Webhook-Signature": "sha256=abc",
            "X-Hub-Signature-256": "sha256=def",
            "X-Event-Type": "push",
        }
        assert sanitize_headers(headers) == {"x-event-type": "push"}

    def test_parse_body(self):
        assert parse_body(b"") == {}
        assert parse_body(b'{"a": 1}') == {"a": 1}
        assert parse_body(b"[1]") == [1]
        assert parse_body(b"oops") == {"message": "oops"}


class TestWebhookRoute:
    """Test the mounted HTTP route."""

    def test_mount_gateway(self, settings, store, sink, make_webhook):
        store.webhooks["hook-1"] = make_webhook(id="hook-1", secret_token=SECRET)
        engine = IntegrationEngine(store, sink, settings)
        app = FastAPI()
        engine.mount_gateway(app)
        client = TestClient(app)

        ok = client.post("/webhooks/hook-1", content=BODY, headers=signed_headers())
        unsigned = client.post("/webhooks/hook-1", content=BODY)
        missing = client.post("/webhooks/nope", content=BODY)

        assert ok.status_code == 200
        assert ok.json()["message"] == "Webhook processed successfully"
        assert unsigned.status_code == 401
        assert unsigned.json() == {"error": "Invalid signature"}
        assert missing.status_code == 404
        assert len(sink.messages) == 1
