"""Main FastAPI application wiring the live stream and push notification services."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import async_sessionmaker

from .config import settings
from .database import async_session, init_db, close_db
from .routers import notifications_router, devices_router, analytics_router
from .services import (
    BatchDispatcher,
    BroadcastBus,
    ConnectionRegistry,
    DeviceService,
    EligibilityResolver,
    NotificationService,
    PushConfig,
    PushGateway,
    SchedulerService,
    SqlDeviceDirectory,
    SqlReadReceiptStore,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def push_config_from_settings() -> PushConfig:
    return PushConfig(
        enabled=settings.apns_enabled,
        key_path=settings.apns_key_path,
        key_id=settings.apns_key_id,
        team_id=settings.apns_team_id,
        bundle_id=settings.apns_bundle_id,
        use_sandbox=settings.apns_use_sandbox,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting FeedAlert")

    await init_db()
    logger.info("Database initialized")

    app.state.gateway.configure(push_config_from_settings())
    app.state.scheduler.start()

    yield

    # Shutdown
    app.state.registry.shutdown()
    app.state.scheduler.stop()
    app.state.gateway.shutdown()
    await close_db()
    logger.info("Shutdown complete")


def wire_services(
    app: FastAPI,
    session_factory: async_sessionmaker = async_session,
    gateway: Optional[PushGateway] = None,
):
    """Build the notification core and attach it to ``app.state``."""
    directory = SqlDeviceDirectory(session_factory)
    receipts = SqlReadReceiptStore(session_factory)
    gateway = gateway or PushGateway()

    registry = ConnectionRegistry(BroadcastBus(), keepalive_seconds=settings.keepalive_seconds)
    resolver = EligibilityResolver(
        directory,
        receipts,
        event_active_only=settings.event_push_active_only,
    )
    dispatcher = BatchDispatcher(gateway, batch_size=settings.push_batch_size)
    device_service = DeviceService(
        directory,
        receipts,
        session_factory=session_factory,
        retention_days=settings.retention_days,
    )

    app.state.gateway = gateway
    app.state.registry = registry
    app.state.device_service = device_service
    app.state.notification_service = NotificationService(
        registry,
        resolver,
        dispatcher,
        gateway,
        post_push_threshold=settings.post_push_threshold,
        bulk_delay_seconds=settings.bulk_delay_seconds,
    )
    app.state.scheduler = SchedulerService(device_service)


def create_app(
    session_factory: async_sessionmaker = async_session,
    gateway: Optional[PushGateway] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="FeedAlert",
        description="Live feed streaming and relevance-gated push notifications",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Browser clients subscribe to the live stream from other origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    wire_services(app, session_factory=session_factory, gateway=gateway)

    app.include_router(notifications_router)
    app.include_router(devices_router)
    app.include_router(analytics_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "streamClients": app.state.registry.connection_count,
            "pushConfigured": app.state.gateway.is_configured,
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
