"""Pytest configuration and fixtures for integration engine tests."""

import os
from datetime import datetime
from typing import Any, Callable, List, Tuple

import httpx
import pytest

os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")

from integration_engine.core.config import Settings
from integration_engine.delivery import DeliverySink, Message
from integration_engine.models import Integration, IntegrationType, Webhook
from integration_engine.store import InMemoryStore
from integration_engine.utils.crypto import CredentialVault


class RecordingSink(DeliverySink):
    """Delivery sink that keeps every message it is given."""

    def __init__(self):
        self.messages: List[Tuple[str, Message]] = []

    async def send(self, destination_id: str, message: Message) -> None:
        self.messages.append((destination_id, message))


class FakeClock:
    """Settable replacement for ``datetime.utcnow``."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def settings() -> Settings:
    return Settings(
        encryption_key="test-encryption-key",
        store_backend="memory",
        rate_limit_backend="memory",
        scheduler_tick_seconds=3600,
        default_sync_interval=300,
        admin_api_key=None,
    )


@pytest.fixture
def vault(settings) -> CredentialVault:
    return CredentialVault(settings.encryption_key, settings.encryption_salt)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 5, 10, 0, 0))


@pytest.fixture
def make_integration() -> Callable[..., Integration]:
    def factory(**overrides: Any) -> Integration:
        data = {
            "id": "integration-1",
            "owner_id": "guild-1",
            "name": "Test Integration",
            "integration_type": IntegrationType.REST_API,
            "config": {"api_url": "https://x/y", "method": "GET"},
            "destination_id": "channel-1",
        }
        data.update(overrides)
        return Integration(**data)
    return factory


@pytest.fixture
def make_webhook() -> Callable[..., Webhook]:
    def factory(**overrides: Any) -> Webhook:
        data = {
            "id": "webhook-1",
            "owner_id": "guild-1",
            "name": "Test Webhook",
            "destination_id": "channel-9",
        }
        data.update(overrides)
        return Webhook(**data)
    return factory


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by a handler."""
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return factory
