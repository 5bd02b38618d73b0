from typing import Optional
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import structlog

from .errors import register_exception_handlers
from .route import context, context_history
from ..websocket import ws_server
from ...bootstrap import ServiceContainer
from ...config import Settings, get_settings
from ...infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the HTTP + websocket application around one service container"""

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.container = container or ServiceContainer(settings)
        await app.state.container.start()
        logger.info("Context service started", service=settings.service_name)
        try:
            yield
        finally:
            await app.state.container.close()
            logger.info("Context service shutdown")

    app = FastAPI(title="Context Service", lifespan=lifespan)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(context.router)
    app.include_router(context_history.router)
    app.include_router(ws_server.router)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        active = request.app.state.container
        return {
            "status": "healthy",
            "active_connections": len(active.connections.active_connections),
            "consumer": {
                "running": active.consumer.running,
                "processed": active.consumer.processed,
                "failed": active.consumer.failed,
            },
            "metrics": metrics.get_metrics_summary(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app
