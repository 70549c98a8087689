"""Database connections and utilities."""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class Database:
    """Database connection manager."""

    def __init__(self, mongodb_url: str, db_name: str):
        self.mongodb_url = mongodb_url
        self.db_name = db_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        """Connect to MongoDB and make sure the indexes exist."""
        try:
            self.client = AsyncIOMotorClient(self.mongodb_url)
            self.db = self.client[self.db_name]

            await self.client.admin.command("ping")
            logger.info("Connected to MongoDB")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

        await self.get_collection(COLLECTIONS["integrations"]).create_index(
            [("is_active", 1), ("owner_id", 1)]
        )
        await self.get_collection(COLLECTIONS["activity_logs"]).create_index(
            [("integration_id", 1), ("created_at", -1)]
        )
        await self.get_collection(COLLECTIONS["activity_logs"]).create_index(
            [("webhook_id", 1), ("created_at", -1)]
        )

    async def disconnect(self):
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def ping(self) -> bool:
        if not self.client:
            return False
        await self.client.admin.command("ping")
        return True

    def get_collection(self, name: str):
        """Get a collection."""
        if self.db is None:
            raise RuntimeError("Database not connected")
        return self.db[name]


# Collection names
COLLECTIONS = {
    "integrations": "integrations",
    "webhooks": "webhooks",
    "activity_logs": "integration_activity_logs",
}
