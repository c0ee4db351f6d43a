from uuid import uuid4

import pytest

from opsdesk.core.config import settings
from opsdesk.services.chat.presence import presence_hub
from opsdesk.services.chat.room_access import RoomAccessResolver

API = "/api/v1/chat"


@pytest.mark.asyncio
async def test_requests_without_session_are_unauthorized(client):
    response = await client.get(f"{API}/rooms")
    assert response.status_code == 401

    response = await client.get(f"{API}/rooms", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401

    response = await client.get(f"{API}/stream")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_team_room_and_listing(client, auth_headers, employee):
    response = await client.post(f"{API}/rooms", json={"type": "TEAM"}, headers=auth_headers(employee))
    assert response.status_code == 200
    room = response.json()["room"]
    assert room["type"] == "TEAM"

    response = await client.get(f"{API}/rooms", headers=auth_headers(employee))
    assert response.status_code == 200
    rooms = response.json()["rooms"]
    assert [r["id"] for r in rooms] == [room["id"]]
    assert rooms[0]["unread_count"] == 0
    assert rooms[0]["last_message"] is None


@pytest.mark.asyncio
async def test_invalid_room_type_is_rejected(client, auth_headers, employee):
    response = await client.post(f"{API}/rooms", json={"type": "GROUP"}, headers=auth_headers(employee))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_employee_cannot_open_direct_room(client, auth_headers, employee, manager):
    response = await client.post(
        f"{API}/rooms",
        json={"type": "DIRECT", "target_user_id": str(manager.id)},
        headers=auth_headers(employee),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_direct_room_requires_target(client, auth_headers, manager):
    response = await client.post(f"{API}/rooms", json={"type": "DIRECT"}, headers=auth_headers(manager))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_send_is_idempotent_over_http(client, auth_headers, manager, employee):
    response = await client.post(
        f"{API}/rooms",
        json={"type": "DIRECT", "target_user_id": str(employee.id)},
        headers=auth_headers(manager),
    )
    room_id = response.json()["room"]["id"]
    body = {"room_id": room_id, "text": "Can you cover Friday?", "client_msg_id": "web-42"}

    first = await client.post(f"{API}/send", json=body, headers=auth_headers(manager))
    second = await client.post(f"{API}/send", json=body, headers=auth_headers(manager))

    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json()["message"]["id"] == second.json()["message"]["id"]

    response = await client.get(f"{API}/rooms/{room_id}/messages", headers=auth_headers(employee))
    assert response.status_code == 200
    assert [m["text"] for m in response.json()["messages"]] == ["Can you cover Friday?"]

    response = await client.get(f"{API}/rooms/{room_id}/unread", headers=auth_headers(employee))
    assert response.json()["unread_count"] == 1

    response = await client.get(f"{API}/rooms", headers=auth_headers(employee))
    direct = [r for r in response.json()["rooms"] if r["type"] == "DIRECT"][0]
    assert direct["participants"][0]["id"] == str(manager.id)
    assert direct["last_message"]["text"] == "Can you cover Friday?"

    response = await client.post(f"{API}/read-receipts", json={"room_id": room_id}, headers=auth_headers(employee))
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = await client.get(f"{API}/unread", headers=auth_headers(employee))
    assert response.json()["total_unread"] == 0


@pytest.mark.asyncio
async def test_outsider_gets_403_on_direct_room(client, db, auth_headers, manager, employee, other_employee):
    room = await RoomAccessResolver(db).get_or_create_direct_room(manager.id, manager.role, employee.id)
    headers = auth_headers(other_employee)

    response = await client.post(
        f"{API}/send",
        json={"room_id": str(room.id), "text": "hi", "client_msg_id": "x-1"},
        headers=headers,
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Not a member of this room"

    response = await client.get(f"{API}/rooms/{room.id}/messages", headers=headers)
    assert response.status_code == 403

    response = await client.get(f"{API}/stream", params={"room_id": str(room.id)}, headers=headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_room_is_forbidden(client, auth_headers, employee):
    response = await client.get(f"{API}/rooms/{uuid4()}/messages", headers=auth_headers(employee))
    assert response.status_code == 403
    assert response.json()["detail"] == "Room not found"


@pytest.mark.asyncio
async def test_message_limit_must_be_positive(client, db, auth_headers, employee):
    team = await RoomAccessResolver(db).get_or_create_team_room(employee.id)

    response = await client.get(
        f"{API}/rooms/{team.id}/messages", params={"limit": 0}, headers=auth_headers(employee)
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_blank_message_is_rejected(client, db, auth_headers, employee):
    team = await RoomAccessResolver(db).get_or_create_team_room(employee.id)

    response = await client.post(
        f"{API}/send",
        json={"room_id": str(team.id), "text": "   ", "client_msg_id": "blank"},
        headers=auth_headers(employee),
    )
    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "text"


@pytest.mark.asyncio
async def test_send_is_rate_limited(client, db, auth_headers, employee, monkeypatch):
    monkeypatch.setattr(settings, "chat_send_rate_limit_per_minute", 1)
    team = await RoomAccessResolver(db).get_or_create_team_room(employee.id)
    headers = auth_headers(employee)

    first = await client.post(
        f"{API}/send", json={"room_id": str(team.id), "text": "one", "client_msg_id": "r-1"}, headers=headers
    )
    second = await client.post(
        f"{API}/send", json={"room_id": str(team.id), "text": "two", "client_msg_id": "r-2"}, headers=headers
    )

    assert first.status_code == 200
    assert second.status_code == 429


@pytest.mark.asyncio
async def test_direct_targets_by_role(client, auth_headers, manager, employee):
    response = await client.get(f"{API}/users", headers=auth_headers(employee))
    assert response.status_code == 403

    response = await client.get(f"{API}/users", headers=auth_headers(manager))
    assert response.status_code == 200
    assert [u["id"] for u in response.json()["users"]] == [str(employee.id)]


@pytest.mark.asyncio
async def test_typing_reaches_room_watchers(client, db, auth_headers, manager, employee):
    resolver = RoomAccessResolver(db)
    await resolver.get_or_create_team_room(manager.id)
    team = await resolver.get_or_create_team_room(employee.id)

    received = []

    class Watcher:
        connection_id = "watcher"
        user_id = manager.id

        def watches(self, room_id):
            return room_id == team.id

        def deliver(self, event):
            received.append(event)

    presence_hub.active_connections["watcher"] = Watcher()

    response = await client.post(
        f"{API}/typing", json={"room_id": str(team.id)}, headers=auth_headers(employee)
    )

    assert response.status_code == 202
    assert response.json() == {"delivered": 1}
    assert received == [{
        "type": "typing",
        "room_id": str(team.id),
        "user_id": str(employee.id),
        "is_typing": True,
    }]

    response = await client.get(f"{API}/online", headers=auth_headers(employee))
    assert response.json()["user_ids"] == [str(manager.id)]


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
