"""In-process store for tests and single-node deployments."""

from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid

from integration_engine.models import ActivityLogEntry, Integration, Webhook
from integration_engine.store.base import Store


class InMemoryStore(Store):
    """Keeps models in dictionaries; copies on the way in and out."""

    def __init__(self):
        self.integrations: Dict[str, Integration] = {}
        self.webhooks: Dict[str, Webhook] = {}
        self.activity: List[ActivityLogEntry] = []

    async def create_integration(self, integration: Integration) -> Integration:
        stored = integration.model_copy(update={"id": integration.id or str(uuid.uuid4())})
        self.integrations[stored.id] = stored
        return stored.model_copy()

    async def get_integration(self, integration_id: str) -> Optional[Integration]:
        integration = self.integrations.get(integration_id)
        return integration.model_copy() if integration else None

    async def list_integrations(
        self,
        owner_id: Optional[str] = None,
        active_only: bool = False,
    ) -> List[Integration]:
        return [
            integration.model_copy()
            for integration in self.integrations.values()
            if (owner_id is None or integration.owner_id == owner_id)
            and (not active_only or integration.is_active)
        ]

    async def update_integration(
        self,
        integration_id: str,
        updates: Dict[str, Any],
    ) -> Optional[Integration]:
        current = self.integrations.get(integration_id)
        if current is None:
            return None
        data = current.model_dump()
        data.update(updates)
        data["updated_at"] = datetime.utcnow()
        updated = Integration.model_validate(data)
        self.integrations[integration_id] = updated
        return updated.model_copy()

    async def record_sync_result(
        self,
        integration_id: str,
        success: bool,
        synced_at: datetime,
        next_sync_at: Optional[datetime],
        error: Optional[str] = None,
    ) -> None:
        current = self.integrations.get(integration_id)
        if current is None:
            return
        if success:
            updates = {
                "sync_count": current.sync_count + 1,
                "last_sync_at": synced_at,
                "last_error": None,
            }
        else:
            updates = {"error_count": current.error_count + 1, "last_error": error}
        updates["next_sync_at"] = next_sync_at
        self.integrations[integration_id] = current.model_copy(update=updates)

    async def delete_integration(self, integration_id: str) -> bool:
        return self.integrations.pop(integration_id, None) is not None

    async def create_webhook(self, webhook: Webhook) -> Webhook:
        stored = webhook.model_copy(update={"id": webhook.id or str(uuid.uuid4())})
        self.webhooks[stored.id] = stored
        return stored.model_copy()

    async def get_webhook(self, webhook_id: str) -> Optional[Webhook]:
        webhook = self.webhooks.get(webhook_id)
        return webhook.model_copy() if webhook else None

    async def list_webhooks(self, owner_id: Optional[str] = None) -> List[Webhook]:
        return [
            webhook.model_copy()
            for webhook in self.webhooks.values()
            if owner_id is None or webhook.owner_id == owner_id
        ]

    async def update_webhook_stats(
        self,
        webhook_id: str,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        current = self.webhooks.get(webhook_id)
        if current is None:
            return
        now = datetime.utcnow()
        updates: Dict[str, Any] = {"last_triggered_at": now}
        if success:
            updates.update(success_count=current.success_count + 1, last_success_at=now)
        else:
            updates.update(
                failure_count=current.failure_count + 1,
                last_failure_at=now,
                last_error=error,
            )
        self.webhooks[webhook_id] = current.model_copy(update=updates)

    async def delete_webhook(self, webhook_id: str) -> bool:
        return self.webhooks.pop(webhook_id, None) is not None

    async def append_activity(self, entry: ActivityLogEntry) -> str:
        stored = entry.model_copy(update={"id": entry.id or str(uuid.uuid4())})
        self.activity.append(stored)
        return stored.id

    async def list_activity(
        self,
        integration_id: Optional[str] = None,
        webhook_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[ActivityLogEntry]:
        matches = [
            entry for entry in reversed(self.activity)
            if (integration_id is None or entry.integration_id == integration_id)
            and (webhook_id is None or entry.webhook_id == webhook_id)
        ]
        return matches[:limit]
