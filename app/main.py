"""
FastAPI application factory and configuration.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Settings, get_settings
from app.core.errors import register_exception_handlers
from app.core.logging import setup_logging, get_logger
from app.core.metrics import register_gauge, set_startup_time
from app.api import conversations, customers, health, messages, metrics, realtime, webhook
from app.api.metrics import MetricsMiddleware
from app.services.container import build_services


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    
    # Setup logging
    setup_logging(settings)
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        logger.info("Starting application...")

        services = build_services(settings)
        await services.start()
        app.state.services = services
        logger.info("Database initialized")

        set_startup_time()
        broadcaster = services.broadcaster
        if broadcaster is not None:
            register_gauge("realtime_subscribers", lambda: broadcaster.subscriber_count)

        yield

        logger.info("Shutting down application...")
        await services.close()
    
    # Create FastAPI app
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Business inbox for WhatsApp conversations: webhook ingestion, history and read receipts",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    
    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    # Add metrics middleware
    app.add_middleware(MetricsMiddleware)

    register_exception_handlers(app)
    
    # Include routers
    app.include_router(webhook.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(customers.router)
    app.include_router(realtime.router)
    app.include_router(health.router)
    app.include_router(metrics.router)
    
    logger.info(
        "Application created",
        extra={
            "extra_data": {
                "app_name": settings.app_name,
                "version": settings.app_version,
                "debug": settings.debug,
                "notifier": settings.notifier_backend,
            }
        }
    )
    
    return app


# Create the application instance
app = create_app()
