"""
Process-wide wiring: stores, services, router and message channel are created
once and released together on shutdown.
"""

from typing import List, Optional
import asyncio
import structlog

from .config import Settings
from .domain.messaging.idempotency import IdempotencyStore
from .domain.messaging.router import EnvelopeRouter
from .domain.service.context_service import ContextService
from .domain.service.history_service import ContextHistoryService
from .domain.store.entity_store import ContextStore, InMemoryContextStore
from .domain.store.history_store import ContextHistoryStore, InMemoryContextHistoryStore
from .infrastructure.messaging.broker import InMemoryBroker
from .infrastructure.messaging.consumer import ContextConsumer
from .application.websocket.connection_manager import ConnectionManager

logger = structlog.get_logger(__name__)


class ServiceContainer:
    """Shared resources for both transports"""

    def __init__(
        self,
        settings: Settings,
        context_store: Optional[ContextStore] = None,
        history_store: Optional[ContextHistoryStore] = None,
        broker: Optional[InMemoryBroker] = None
    ):
        self.settings = settings
        self.context_store = context_store or InMemoryContextStore()
        self.history_store = history_store or InMemoryContextHistoryStore()

        self.history_service = ContextHistoryService(self.history_store)
        self.context_service = ContextService(self.context_store, self.history_service)

        self.idempotency_store = IdempotencyStore(ttl=settings.idempotency_ttl_seconds)
        self.router = EnvelopeRouter(
            self.context_service,
            self.idempotency_store,
            expected_type=settings.message_type,
        )

        self.broker = broker or InMemoryBroker()
        self.writer = self.broker.writer(settings.response_topic)
        self.consumer = ContextConsumer(
            self.broker.reader(settings.request_topic, settings.consumer_group),
            self.writer,
            self.router,
            retry_backoff=settings.retry_backoff_seconds,
            handler_timeout=settings.handler_timeout_seconds,
        )

        self.connections = ConnectionManager()
        self._tasks: List[asyncio.Task] = []

    async def start(self):
        """Start background tasks"""

        if self.settings.consumer_enabled:
            self._tasks.append(asyncio.create_task(self.consumer.run()))
        self._tasks.append(asyncio.create_task(self.idempotency_store.sweep()))
        self._tasks.append(asyncio.create_task(self.connections.health_check()))

        logger.info(
            "Service container started",
            consumer_enabled=self.settings.consumer_enabled,
            request_topic=self.settings.request_topic,
            response_topic=self.settings.response_topic,
        )

    async def close(self):
        """Stop background tasks and release shared resources"""

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        await self.connections.disconnect_all()
        await self.writer.close()
        await self.context_store.close()
        await self.history_store.close()

        logger.info("Service container closed")
