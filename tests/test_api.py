import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from context_service.domain.messaging.envelope import new_request


def create(client: TestClient, **fields) -> dict:
    body = {"name": "A", "content": "x", **fields}
    response = client.post("/contexts/", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_returns_201_with_server_fields(client):
    body = create(client, tags=["red"], metadata={"team": "core"}, user={"id": "u1", "name": "Owner"})

    assert body["id"]
    assert body["version"] == 1
    assert body["isActive"] is True
    assert body["createdTime"] == body["modifiedTime"]
    assert body["tags"] == ["red"]
    assert body["user"]["name"] == "Owner"


def test_create_missing_content_is_400(client):
    response = client.post("/contexts/", json={"name": "A"})

    assert response.status_code == 400
    assert response.json()["errorType"] == "invalid_input"


def test_malformed_body_is_400(client):
    response = client.post("/contexts/", json={"name": "A", "content": "x", "tags": "not-a-list"})

    assert response.status_code == 400
    assert response.json()["errorType"] == "invalid_input"


def test_get_by_id(client):
    created = create(client)

    assert client.get(f"/contexts/{created['id']}").json() == created
    missing = client.get("/contexts/ghost")
    assert missing.status_code == 404
    assert missing.json()["details"] == {"id": "ghost"}


def test_patch_updates_and_conflicts_on_stale_version(client):
    created = create(client)
    cid = created["id"]

    updated = client.patch(f"/contexts/{cid}", json={**created, "name": "B"})
    assert updated.status_code == 200
    assert updated.json()["version"] == 2
    assert updated.json()["name"] == "B"

    stale = client.patch(f"/contexts/{cid}", json={**created, "name": "C"})
    assert stale.status_code == 409
    assert stale.json()["errorType"] == "version_conflict"
    assert stale.json()["retryable"] is True
    assert client.get(f"/contexts/{cid}").json()["name"] == "B"


def test_patch_requires_version(client):
    created = create(client)

    response = client.patch(f"/contexts/{created['id']}", json={"name": "B", "content": "x"})
    assert response.status_code == 400
    assert "version" in response.json()["error"]


def test_patch_rejects_mismatched_body_id(client):
    created = create(client)

    response = client.patch(f"/contexts/{created['id']}", json={**created, "id": "other"})
    assert response.status_code == 400


def test_patch_unknown_context_is_404(client):
    response = client.patch("/contexts/ghost", json={"name": "A", "content": "x", "version": 1})
    assert response.status_code == 404


def test_delete_is_soft(client):
    created = create(client)

    deleted = client.delete(f"/contexts/{created['id']}")
    assert deleted.status_code == 200
    assert deleted.json()["isActive"] is False
    assert deleted.json()["version"] == 2

    fetched = client.get(f"/contexts/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["isActive"] is False

    assert client.delete("/contexts/ghost").status_code == 404


def test_filter_uses_request_body(client):
    red = create(client, tags=["red"])
    create(client, name="B", tags=["blue"])

    matched = client.request("GET", "/contexts/", json={"tags": "red"})
    assert matched.status_code == 200
    assert [c["id"] for c in matched.json()] == [red["id"]]

    assert client.get("/contexts/").json() == []
    assert client.request("GET", "/contexts/", json={}).json() == []
    assert client.request("GET", "/contexts/", json={"unknown": 1}).json() == []


def test_history_endpoints(client):
    created = create(client)
    cid = created["id"]
    client.patch(f"/contexts/{cid}", json={**created, "name": "B"})

    listed = client.get("/context-histories/", params={"cid": cid})
    assert listed.status_code == 200
    (snapshot,) = listed.json()
    assert snapshot["contextId"] == cid
    assert snapshot["version"] == 1
    assert snapshot["name"] == "A"

    item = client.get(f"/contexts/{cid}/context-histories/{snapshot['id']}")
    assert item.status_code == 200
    assert item.json() == snapshot

    other = create(client)
    assert client.get(f"/contexts/{other['id']}/context-histories/{snapshot['id']}").status_code == 404
    assert client.get(f"/contexts/{cid}/context-histories/missing").status_code == 404


def test_history_list_validation(client):
    assert client.get("/context-histories/").status_code == 400
    assert client.get("/context-histories/", params={"cid": "ghost"}).status_code == 404

    created = create(client)
    assert client.get("/context-histories/", params={"cid": created["id"]}).json() == []


def test_health(client):
    create(client)
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["active_connections"] == 0
    assert body["consumer"]["running"] is False
    assert "timestamp" in body


def test_websocket_round_trip(client):
    request = new_request("context", "create", {"name": "A", "content": "x"}, idempotency_key="ws-1")

    with client.websocket_connect(f"/ws/contexts/{uuid.uuid4()}") as ws:
        ws.send_text(request.model_dump_json(by_alias=True))
        response = ws.receive_json()

        ws.send_text("not an envelope")
        error = ws.receive_json()

    assert response["kind"] == "RESPONSE"
    assert response["correlationId"] == request.correlation_id
    assert response["message"]["data"]["version"] == 1
    assert client.get(f"/contexts/{response['message']['data']['id']}").status_code == 200

    assert error["kind"] == "ERROR"
    assert error["eventName"] == "processing_failure"
    assert error["error"]["retriable"] is False


def test_websocket_rejects_invalid_session_id(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws/contexts/not-a-uuid") as ws:
            ws.receive_text()
    assert excinfo.value.code == 1008


def test_websocket_handler_failure_closes_session(client, container):
    class BrokenRouter:
        async def handle(self, envelope):
            raise RuntimeError("router unavailable")

    container.router = BrokenRouter()
    request = new_request("context", "create", {"name": "A", "content": "x"})

    with client.websocket_connect(f"/ws/contexts/{uuid.uuid4()}") as ws:
        ws.send_text(request.model_dump_json(by_alias=True))
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()

    assert container.connections.get_active_sessions() == set()
