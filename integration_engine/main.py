"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import logging

from integration_engine.api import health, integrations, webhooks
from integration_engine.core.config import Settings, get_settings
from integration_engine.core.database import Database
from integration_engine.delivery import DeliverySink, HttpDeliverySink, LoggingDeliverySink
from integration_engine.services.integration_service import IntegrationEngine
from integration_engine.store import InMemoryStore, MongoStore, Store
from integration_engine.utils.logging import setup_logging

logger = logging.getLogger(__name__)


async def build_store(settings: Settings) -> Store:
    if settings.store_backend == "memory":
        logger.warning("Using in-memory store; integrations will not survive a restart")
        return InMemoryStore()
    database = Database(settings.mongodb_url, settings.mongodb_db_name)
    await database.connect()
    return MongoStore(database)


def build_sink(settings: Settings) -> DeliverySink:
    if settings.delivery_url:
        return HttpDeliverySink(
            settings.delivery_url,
            api_key=settings.delivery_api_key,
            timeout=settings.http_timeout_seconds,
        )
    logger.warning("No delivery_url configured; messages will only be logged")
    return LoggingDeliverySink()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    sink: Optional[DeliverySink] = None,
) -> FastAPI:
    """Build the service app; store and sink default to what settings select."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info(f"Starting {settings.service_name} ({settings.environment})...")
        engine = IntegrationEngine(
            store or await build_store(settings),
            sink or build_sink(settings),
            settings,
        )
        app.state.integration_engine = engine
        await engine.init()

        yield

        logger.info(f"Shutting down {settings.service_name}...")
        await engine.shutdown()
        await engine.store.close()

    app = FastAPI(
        title="Integration Engine",
        description="Scheduled source polling and inbound webhook ingestion",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["health"])
    app.include_router(
        integrations.router,
        prefix="/api/v1/integrations",
        tags=["integrations"]
    )
    app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

    return app


def run():
    import uvicorn

    settings = get_settings()
    setup_logging(settings)
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.port,
    )


if __name__ == "__main__":
    run()
