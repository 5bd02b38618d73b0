import asyncio

import pytest
from fastapi.testclient import TestClient

from context_service.application.api.api_server import create_app
from context_service.bootstrap import ServiceContainer
from context_service.config import Settings
from context_service.domain.messaging.idempotency import IdempotencyStore
from context_service.domain.messaging.router import EnvelopeRouter
from context_service.domain.service.context_service import ContextService
from context_service.domain.service.history_service import ContextHistoryService
from context_service.domain.store.entity_store import InMemoryContextStore
from context_service.domain.store.history_store import InMemoryContextHistoryStore
from context_service.infrastructure.observability.logging import MetricsCollector


@pytest.fixture
def context_store():
    return InMemoryContextStore()


@pytest.fixture
def history_store():
    return InMemoryContextHistoryStore()


@pytest.fixture
def history_service(history_store):
    return ContextHistoryService(history_store)


@pytest.fixture
def context_service(context_store, history_service):
    return ContextService(context_store, history_service, metrics=MetricsCollector())


@pytest.fixture
def router(context_service):
    return EnvelopeRouter(context_service, IdempotencyStore(ttl=60))


@pytest.fixture
def settings():
    return Settings(
        consumer_enabled=False,
        retry_backoff_seconds=0.01,
        handler_timeout_seconds=1.0,
    )


@pytest.fixture
def container(settings):
    return ServiceContainer(settings)


@pytest.fixture
def client(settings, container):
    app = create_app(settings, container)
    with TestClient(app) as test_client:
        yield test_client


async def wait_until(predicate, timeout: float = 2.0):
    """Poll predicate until it is truthy or the timeout expires"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
