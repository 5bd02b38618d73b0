import asyncio

from context_service.domain.messaging.envelope import Envelope, EnvelopeKind, Message, new_request
from context_service.domain.messaging.router import EnvelopeRouter


def assert_metadata_preserved(request: Envelope, response: Envelope):
    assert response.correlation_id == request.correlation_id
    assert response.trace_id == request.trace_id
    assert response.idempotency_key == request.idempotency_key


def test_create_returns_response_envelope(router):
    request = new_request("context", "create", {"name": "A", "content": "x"}, idempotency_key="k-1")
    response = asyncio.run(router.handle(request))

    assert response.kind == EnvelopeKind.RESPONSE
    assert response.event_name == "success"
    assert response.error is None
    assert response.message.type == "context"
    assert response.message.action == "create"
    assert response.message.data["name"] == "A"
    assert response.message.data["version"] == 1
    assert response.message.data["isActive"] is True
    assert_metadata_preserved(request, response)


def test_non_request_kind_is_rejected(router):
    request = new_request("context", "create", {"name": "A", "content": "x"})
    request.kind = EnvelopeKind.RESPONSE
    response = asyncio.run(router.handle(request))

    assert response.kind == EnvelopeKind.ERROR
    assert response.event_name == "invalid_kind"
    assert response.error.retriable is False
    assert response.message == request.message
    assert_metadata_preserved(request, response)


def test_wrong_type_is_rejected(router, context_store):
    request = new_request("conversation", "create", {"name": "A", "content": "x"})
    response = asyncio.run(router.handle(request))

    assert response.kind == EnvelopeKind.ERROR
    assert response.event_name == "invalid_type"
    assert response.error.status == 400
    assert response.error.retriable is False
    assert context_store.documents == {}


def test_actions_are_case_sensitive(router):
    request = new_request("context", "Create", {"name": "A", "content": "x"})
    response = asyncio.run(router.handle(request))

    assert response.kind == EnvelopeKind.ERROR
    assert response.event_name == "invalid_action"
    assert response.error.error_type == "invalid_action"
    assert response.error.status == 400
    assert response.error.retriable is False
    assert router.actions == ["create", "delete", "update"]


def test_undecodable_payload_is_processing_failure(router):
    request = new_request("context", "update", {"id": "c1", "version": "not-a-number"})
    response = asyncio.run(router.handle(request))

    assert response.kind == EnvelopeKind.ERROR
    assert response.event_name == "processing_failure"
    assert response.error.status == 400
    assert response.error.error_type == "protocol_error"
    assert response.error.retriable is False
    assert_metadata_preserved(request, response)


def test_business_errors_carry_status_and_retry_flag(router):
    async def scenario():
        created = await router.handle(new_request("context", "create", {"name": "A", "content": "x"}))
        data = created.message.data
        first = await router.handle(new_request("context", "update", {**data, "name": "B"}))
        stale = await router.handle(new_request("context", "update", {**data, "name": "C"}))
        missing = await router.handle(new_request("context", "delete", {"id": "ghost"}))
        invalid = await router.handle(new_request("context", "create", {"name": "no content"}))
        return first, stale, missing, invalid

    first, stale, missing, invalid = asyncio.run(scenario())
    assert first.kind == EnvelopeKind.RESPONSE
    assert first.message.data["version"] == 2

    assert stale.kind == EnvelopeKind.ERROR
    assert stale.error.status == 409
    assert stale.error.retriable is True

    assert missing.error.status == 404
    assert missing.error.retriable is False

    assert invalid.error.status == 400
    assert invalid.error.error_type == "invalid_input"


def test_update_requires_id_and_version(router):
    async def scenario():
        return (
            await router.handle(new_request("context", "update", {"name": "A", "content": "x", "version": 1})),
            await router.handle(new_request("context", "update", {"id": "c", "name": "A", "content": "x"})),
        )

    no_id, no_version = asyncio.run(scenario())
    assert no_id.error.status == 400
    assert no_version.error.status == 400


def test_delete_action_soft_deletes(router, context_service):
    async def scenario():
        created = await router.handle(new_request("context", "create", {"name": "A", "content": "x"}))
        deleted = await router.handle(new_request("context", "delete", {"id": created.message.data["id"]}))
        stored = await context_service.get_context_by_id(created.message.data["id"])
        return deleted, stored

    deleted, stored = asyncio.run(scenario())
    assert deleted.message.data["isActive"] is False
    assert deleted.message.data["version"] == 2
    assert stored.is_active is False


def test_redelivered_create_is_not_duplicated(router, context_store):
    request = new_request("context", "create", {"name": "A", "content": "x"}, idempotency_key="same-key")

    async def scenario():
        first = await router.handle(request)
        again = await router.handle(Envelope.model_validate_json(request.model_dump_json(by_alias=True)))
        return first, again

    first, again = asyncio.run(scenario())
    assert len(context_store.documents) == 1
    assert again.kind == EnvelopeKind.RESPONSE
    assert again.message.data["id"] == first.message.data["id"]
    assert_metadata_preserved(request, again)


def test_requests_without_key_are_not_deduplicated(router, context_store):
    async def scenario():
        await router.handle(new_request("context", "create", {"name": "A", "content": "x"}))
        await router.handle(new_request("context", "create", {"name": "A", "content": "x"}))

    asyncio.run(scenario())
    assert len(context_store.documents) == 2


def test_unclassified_failures_become_500(context_service):
    class BrokenService:
        async def create_context(self, candidate):
            raise KeyError("boom")

    router = EnvelopeRouter(BrokenService())
    request = new_request("context", "create", {"name": "A", "content": "x"})
    response = asyncio.run(router.handle(request))

    assert response.error.status == 500
    assert response.error.retriable is False
    assert_metadata_preserved(request, response)


def test_expected_type_is_configurable(context_service):
    router = EnvelopeRouter(context_service, expected_type="memory")
    request = Envelope(message=Message(type="memory", action="create", data={"name": "A", "content": "x"}))
    assert asyncio.run(router.handle(request)).kind == EnvelopeKind.RESPONSE
