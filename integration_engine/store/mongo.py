"""MongoDB-backed store."""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import uuid

from pymongo import DESCENDING, ReturnDocument

from integration_engine.core.database import COLLECTIONS, Database
from integration_engine.models import ActivityLogEntry, Integration, Webhook
from integration_engine.store.base import Store

logger = logging.getLogger(__name__)


class MongoStore(Store):
    """Store implementation over motor collections."""

    def __init__(self, database: Database):
        self.database = database

    @property
    def integrations(self):
        return self.database.get_collection(COLLECTIONS["integrations"])

    @property
    def webhooks(self):
        return self.database.get_collection(COLLECTIONS["webhooks"])

    @property
    def activity_logs(self):
        return self.database.get_collection(COLLECTIONS["activity_logs"])

    async def create_integration(self, integration: Integration) -> Integration:
        integration = integration.model_copy(update={"id": integration.id or str(uuid.uuid4())})
        await self.integrations.insert_one(integration.model_dump(by_alias=True))
        logger.info(f"Created integration {integration.id}")
        return integration

    async def get_integration(self, integration_id: str) -> Optional[Integration]:
        document = await self.integrations.find_one({"_id": integration_id})
        return Integration.model_validate(document) if document else None

    async def list_integrations(
        self,
        owner_id: Optional[str] = None,
        active_only: bool = False,
    ) -> List[Integration]:
        query: Dict[str, Any] = {}
        if owner_id is not None:
            query["owner_id"] = owner_id
        if active_only:
            query["is_active"] = True
        return [Integration.model_validate(document) async for document in self.integrations.find(query)]

    async def update_integration(
        self,
        integration_id: str,
        updates: Dict[str, Any],
    ) -> Optional[Integration]:
        updates = {key: value for key, value in updates.items() if key not in ("id", "_id")}
        updates["updated_at"] = datetime.utcnow()
        document = await self.integrations.find_one_and_update(
            {"_id": integration_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        return Integration.model_validate(document) if document else None

    async def record_sync_result(
        self,
        integration_id: str,
        success: bool,
        synced_at: datetime,
        next_sync_at: Optional[datetime],
        error: Optional[str] = None,
    ) -> None:
        if success:
            update = {
                "$inc": {"sync_count": 1},
                "$set": {"last_sync_at": synced_at, "next_sync_at": next_sync_at, "last_error": None},
            }
        else:
            update = {
                "$inc": {"error_count": 1},
                "$set": {"next_sync_at": next_sync_at, "last_error": error},
            }
        await self.integrations.update_one({"_id": integration_id}, update)

    async def delete_integration(self, integration_id: str) -> bool:
        result = await self.integrations.delete_one({"_id": integration_id})
        return result.deleted_count > 0

    async def create_webhook(self, webhook: Webhook) -> Webhook:
        webhook = webhook.model_copy(update={"id": webhook.id or str(uuid.uuid4())})
        await self.webhooks.insert_one(webhook.model_dump(by_alias=True))
        logger.info(f"Created webhook {webhook.id}")
        return webhook

    async def get_webhook(self, webhook_id: str) -> Optional[Webhook]:
        document = await self.webhooks.find_one({"_id": webhook_id})
        return Webhook.model_validate(document) if document else None

    async def list_webhooks(self, owner_id: Optional[str] = None) -> List[Webhook]:
        query = {"owner_id": owner_id} if owner_id is not None else {}
        return [Webhook.model_validate(document) async for document in self.webhooks.find(query)]

    async def update_webhook_stats(
        self,
        webhook_id: str,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        now = datetime.utcnow()
        if success:
            update = {
                "$inc": {"success_count": 1},
                "$set": {"last_triggered_at": now, "last_success_at": now},
            }
        else:
            update = {
                "$inc": {"failure_count": 1},
                "$set": {"last_triggered_at": now, "last_failure_at": now, "last_error": error},
            }
        await self.webhooks.update_one({"_id": webhook_id}, update)

    async def delete_webhook(self, webhook_id: str) -> bool:
        result = await self.webhooks.delete_one({"_id": webhook_id})
        return result.deleted_count > 0

    async def append_activity(self, entry: ActivityLogEntry) -> str:
        entry = entry.model_copy(update={"id": entry.id or str(uuid.uuid4())})
        await self.activity_logs.insert_one(entry.model_dump(by_alias=True))
        return entry.id

    async def list_activity(
        self,
        integration_id: Optional[str] = None,
        webhook_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[ActivityLogEntry]:
        query: Dict[str, Any] = {}
        if integration_id is not None:
            query["integration_id"] = integration_id
        if webhook_id is not None:
            query["webhook_id"] = webhook_id
        cursor = self.activity_logs.find(query).sort("created_at", DESCENDING).limit(limit)
        return [ActivityLogEntry.model_validate(document) async for document in cursor]

    async def close(self) -> None:
        await self.database.disconnect()
