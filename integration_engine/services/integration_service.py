"""Public engine API consumed by the surrounding application."""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union
import logging
import httpx

from fastapi import FastAPI

from integration_engine.connectors import ConnectorExecutor
from integration_engine.core.config import Settings
from integration_engine.delivery import DeliverySink
from integration_engine.models import ActivityLogEntry, Integration, Webhook
from integration_engine.processors import ProcessorRegistry, create_default_registry
from integration_engine.schemas.integration import IntegrationCreate, IntegrationUpdate, WebhookCreate
from integration_engine.services.activity_service import ActivityLogger
from integration_engine.services.sync_service import SyncOutcome, SyncScheduler
from integration_engine.services.webhook_service import RateLimiterBackend, WebhookGateway
from integration_engine.store.base import Store
from integration_engine.utils.crypto import CredentialVault, generate_webhook_secret
from integration_engine.utils.rate_limiter import InMemoryRateLimiter, RateLimiter

logger = logging.getLogger(__name__)


def build_rate_limiter(settings: Settings) -> RateLimiterBackend:
    if settings.rate_limit_backend == "redis":
        return RateLimiter(redis_url=settings.redis_url, prefix=settings.service_name)
    return InMemoryRateLimiter()


class IntegrationEngine:
    """Wires the vault, connectors, scheduler and gateway around a store and sink."""

    def __init__(
        self,
        store: Store,
        sink: DeliverySink,
        settings: Settings,
        vault: Optional[CredentialVault] = None,
        rate_limiter: Optional[RateLimiterBackend] = None,
        processors: Optional[ProcessorRegistry] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.settings = settings
        self.store = store
        self.sink = sink
        self.vault = vault or CredentialVault(settings.encryption_key, settings.encryption_salt)
        self.activity_logger = ActivityLogger(store)
        self.executor = ConnectorExecutor(self.vault, sink, settings, http_client=http_client)
        self.scheduler = SyncScheduler(
            store,
            self.executor,
            self.activity_logger,
            default_interval=settings.default_sync_interval,
            tick_seconds=settings.scheduler_tick_seconds,
            clock=clock,
        )
        self.processors = processors or create_default_registry()
        self.rate_limiter = rate_limiter or build_rate_limiter(settings)
        self.gateway = WebhookGateway(
            store,
            self.processors,
            sink,
            self.rate_limiter,
            self.activity_logger,
        )

    # Lifecycle

    async def init(self) -> None:
        """Start the scheduler and every active integration in the store."""
        await self.scheduler.init()
        integrations = await self.store.list_integrations(active_only=True)
        for integration in integrations:
            await self._schedule(integration)
        logger.info(f"Integration engine started with {len(integrations)} active integrations")

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        await self.executor.close()
        await self.rate_limiter.close()
        await self.sink.close()

    # Integrations

    async def create_integration(self, spec: Union[IntegrationCreate, Dict[str, Any]]) -> str:
        if not isinstance(spec, IntegrationCreate):
            spec = IntegrationCreate.model_validate(spec)

        integration = Integration(
            **spec.model_dump(exclude={"credentials"}),
            credentials_encrypted=self.vault.encrypt_credentials(spec.credentials) if spec.credentials else None,
        )
        integration = await self.store.create_integration(integration)
        logger.info(f"Created {integration.integration_type.value} integration {integration.id}")

        await self._schedule(integration)
        return integration.id

    async def get_integration(self, integration_id: str) -> Optional[Integration]:
        return await self.store.get_integration(integration_id)

    async def list_integrations(self, owner_id: Optional[str] = None) -> List[Integration]:
        return await self.store.list_integrations(owner_id=owner_id)

    async def update_integration(
        self,
        integration_id: str,
        partial: Union[IntegrationUpdate, Dict[str, Any]],
    ) -> Optional[Integration]:
        """Apply a partial update and restart or stop the schedule to match."""
        if not isinstance(partial, IntegrationUpdate):
            partial = IntegrationUpdate.model_validate(partial)

        updates = partial.model_dump(exclude_unset=True)
        credentials = updates.pop("credentials", None)
        if credentials is not None:
            updates["credentials_encrypted"] = self.vault.encrypt_credentials(credentials)

        integration = await self.store.update_integration(integration_id, updates)
        if integration is None:
            return None

        return await self._schedule(integration)

    async def delete_integration(self, integration_id: str) -> bool:
        self.scheduler.stop(integration_id)
        deleted = await self.store.delete_integration(integration_id)
        if deleted:
            logger.info(f"Deleted integration {integration_id}")
        return deleted

    async def manual_sync(self, integration_id: str) -> Optional[SyncOutcome]:
        return await self.scheduler.manual_sync(integration_id)

    # Webhooks

    async def create_webhook(self, spec: Union[WebhookCreate, Dict[str, Any]]) -> str:
        if not isinstance(spec, WebhookCreate):
            spec = WebhookCreate.model_validate(spec)

        data = spec.model_dump(exclude={"generate_secret"})
        if spec.generate_secret and not spec.secret_token:
            data["secret_token"] = generate_webhook_secret()

        webhook = await self.store.create_webhook(Webhook(**data))
        logger.info(f"Created webhook {webhook.id}")
        return webhook.id

    async def get_webhook(self, webhook_id: str) -> Optional[Webhook]:
        return await self.store.get_webhook(webhook_id)

    async def list_webhooks(self, owner_id: Optional[str] = None) -> List[Webhook]:
        return await self.store.list_webhooks(owner_id=owner_id)

    async def delete_webhook(self, webhook_id: str) -> bool:
        return await self.store.delete_webhook(webhook_id)

    async def get_activity(
        self,
        integration_id: Optional[str] = None,
        webhook_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[ActivityLogEntry]:
        return await self.store.list_activity(integration_id=integration_id, webhook_id=webhook_id, limit=limit)

    def mount_gateway(self, app: FastAPI, prefix: str = "/webhooks") -> None:
        """Expose ``POST {prefix}/{webhook_id}`` on a host FastAPI app."""
        from integration_engine.api import webhooks

        app.state.integration_engine = self
        app.include_router(webhooks.router, prefix=prefix, tags=["webhooks"])

    # Internals

    async def _schedule(self, integration: Integration) -> Integration:
        if integration.is_active:
            run = self.scheduler.start(integration)
            next_sync_at = run.next_sync if integration.polls else None
        else:
            self.scheduler.stop(integration.id)
            next_sync_at = None

        # Clear a stale value left by an earlier interval or an active period
        if next_sync_at != integration.next_sync_at:
            updated = await self.store.update_integration(integration.id, {"next_sync_at": next_sync_at})
            if updated is not None:
                return updated
        return integration
