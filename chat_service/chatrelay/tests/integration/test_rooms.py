import pytest
from httpx import AsyncClient

from chatrelay.domain import events

pytestmark = pytest.mark.asyncio


async def test_create_room(client: AsyncClient, auth_header, relay, test_user, test_user2):
    response = await client.post(
        "/api/v1/rooms/",
        headers=auth_header,
        json={"name": "general", "member_ids": [test_user2.id]},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "general"
    assert data["owner_id"] == test_user.id
    assert sorted(m["id"] for m in data["members"]) == sorted([test_user.id, test_user2.id])
    assert await relay.membership.members_of(data["id"]) == frozenset(
        {test_user.id, test_user2.id}
    )


async def test_create_room_unknown_member(client: AsyncClient, auth_header):
    response = await client.post(
        "/api/v1/rooms/", headers=auth_header, json={"name": "ghosts", "member_ids": [9999]}
    )
    assert response.status_code == 404
    assert response.json() == {"message": "Users not found: 9999", "error": "not_found"}


async def test_create_room_empty_name(client: AsyncClient, auth_header):
    response = await client.post("/api/v1/rooms/", headers=auth_header, json={"name": ""})
    assert response.status_code == 422


async def test_read_room_requires_membership(
    client: AsyncClient, auth_header2, auth_header3, test_room
):
    assert (await client.get(f"/api/v1/rooms/{test_room.id}", headers=auth_header2)).status_code == 200
    response = await client.get(f"/api/v1/rooms/{test_room.id}", headers=auth_header3)
    assert response.status_code == 403
    assert response.json()["error"] == "unauthorized"


async def test_read_missing_room(client: AsyncClient, auth_header):
    response = await client.get("/api/v1/rooms/9999", headers=auth_header)
    assert response.status_code == 404


async def test_owned_and_joined_rooms(client: AsyncClient, auth_header, auth_header2, test_room):
    owned = await client.get("/api/v1/rooms/owned", headers=auth_header)
    owned2 = await client.get("/api/v1/rooms/owned", headers=auth_header2)
    joined2 = await client.get("/api/v1/rooms/joined", headers=auth_header2)

    assert [r["id"] for r in owned.json()] == [test_room.id]
    assert owned2.json() == []
    assert [r["id"] for r in joined2.json()] == [test_room.id]


async def test_rename_room_owner_only(client: AsyncClient, auth_header, auth_header2, test_room):
    forbidden = await client.put(
        f"/api/v1/rooms/{test_room.id}", headers=auth_header2, json={"name": "mine now"}
    )
    assert forbidden.status_code == 403

    response = await client.put(
        f"/api/v1/rooms/{test_room.id}", headers=auth_header, json={"name": "renamed"}
    )
    assert response.status_code == 200
    assert response.json()["name"] == "renamed"


async def test_delete_room(client: AsyncClient, auth_header, auth_header2, relay, test_room):
    await relay.membership.members_of(test_room.id)

    assert (await client.delete(f"/api/v1/rooms/{test_room.id}", headers=auth_header2)).status_code == 403
    response = await client.delete(f"/api/v1/rooms/{test_room.id}", headers=auth_header)
    assert response.status_code == 204

    assert relay.membership.cached(test_room.id) is None
    after = await client.post(
        f"/api/v1/rooms/{test_room.id}/messages", headers=auth_header, json={"content": "anyone?"}
    )
    assert after.status_code == 404


async def test_read_members(client: AsyncClient, auth_header2, auth_header3, test_room, test_user, test_user2):
    response = await client.get(f"/api/v1/rooms/{test_room.id}/members", headers=auth_header2)
    assert response.status_code == 200
    assert sorted(m["id"] for m in response.json()) == sorted([test_user.id, test_user2.id])

    outsider = await client.get(f"/api/v1/rooms/{test_room.id}/members", headers=auth_header3)
    assert outsider.status_code == 403


async def test_add_members_notifies_new_snapshot(
    client: AsyncClient, auth_header, relay, connect, test_room, test_user, test_user2, test_user3
):
    await relay.membership.members_of(test_room.id)
    _, owner_transport = connect(test_user.id)
    _, member_transport = connect(test_user2.id)
    _, newcomer_transport = connect(test_user3.id)

    response = await client.post(
        f"/api/v1/rooms/{test_room.id}/members",
        headers=auth_header,
        json={"member_ids": [test_user3.id]},
    )

    assert response.status_code == 200
    data = response.json()
    assert test_user3.id in [m["id"] for m in data["room"]["members"]]
    assert data["delivery"]["state"] == "dispatched"
    assert data["delivery"]["targets"] == 3
    assert data["delivery"]["delivered"] == 3

    snapshot = sorted([test_user.id, test_user2.id, test_user3.id])
    for transport in (owner_transport, member_transport, newcomer_transport):
        [frame] = transport.events(events.MEMBERS_ADDED)
        assert frame["data"] == {"roomId": test_room.id, "members": [test_user3.id], "snapshot": snapshot}


async def test_add_members_owner_only(client: AsyncClient, auth_header2, test_room, test_user3):
    response = await client.post(
        f"/api/v1/rooms/{test_room.id}/members",
        headers=auth_header2,
        json={"member_ids": [test_user3.id]},
    )
    assert response.status_code == 403


async def test_add_unknown_member(client: AsyncClient, auth_header, test_room):
    response = await client.post(
        f"/api/v1/rooms/{test_room.id}/members", headers=auth_header, json={"member_ids": [9999]}
    )
    assert response.status_code == 404


async def test_new_member_receives_next_room_message(
    client: AsyncClient, auth_header, relay, connect, test_room, test_user3
):
    await relay.membership.members_of(test_room.id)
    _, newcomer_transport = connect(test_user3.id)

    await client.post(
        f"/api/v1/rooms/{test_room.id}/members",
        headers=auth_header,
        json={"member_ids": [test_user3.id]},
    )
    await client.post(
        f"/api/v1/rooms/{test_room.id}/messages", headers=auth_header, json={"content": "welcome"}
    )

    [frame] = newcomer_transport.events(events.MESSAGE_RECEIVED)
    assert frame["data"]["content"] == "welcome"


async def test_remove_member_stops_delivery(
    client: AsyncClient, auth_header, relay, connect, test_room, test_user, test_user2
):
    await relay.membership.members_of(test_room.id)
    _, owner_transport = connect(test_user.id)
    _, removed_transport = connect(test_user2.id)

    response = await client.delete(
        f"/api/v1/rooms/{test_room.id}/members/{test_user2.id}", headers=auth_header
    )
    assert response.status_code == 200
    assert [m["id"] for m in response.json()["room"]["members"]] == [test_user.id]

    # the removed member hears about the removal once, then nothing more
    for transport in (owner_transport, removed_transport):
        [frame] = transport.events(events.MEMBER_REMOVED)
        assert frame["data"] == {
            "roomId": test_room.id,
            "members": [test_user.id],
            "removed": test_user2.id,
        }

    await client.post(
        f"/api/v1/rooms/{test_room.id}/messages", headers=auth_header, json={"content": "after"}
    )
    assert len(owner_transport.events(events.MESSAGE_RECEIVED)) == 1
    assert removed_transport.events(events.MESSAGE_RECEIVED) == []


async def test_removed_member_cannot_post(
    client: AsyncClient, auth_header, auth_header2, relay, test_room, test_user2
):
    await relay.membership.members_of(test_room.id)
    await client.delete(f"/api/v1/rooms/{test_room.id}/members/{test_user2.id}", headers=auth_header)

    response = await client.post(
        f"/api/v1/rooms/{test_room.id}/messages", headers=auth_header2, json={"content": "let me in"}
    )
    assert response.status_code == 403


async def test_owner_cannot_be_removed(client: AsyncClient, auth_header, test_room, test_user):
    response = await client.delete(
        f"/api/v1/rooms/{test_room.id}/members/{test_user.id}", headers=auth_header
    )
    assert response.status_code == 422
    assert response.json()["error"] == "invalid"


async def test_remove_non_member(client: AsyncClient, auth_header, test_room, test_user3):
    response = await client.delete(
        f"/api/v1/rooms/{test_room.id}/members/{test_user3.id}", headers=auth_header
    )
    assert response.status_code == 404


async def test_room_messages(client: AsyncClient, auth_header, auth_header2, auth_header3, test_room):
    for i in range(3):
        await client.post(
            f"/api/v1/rooms/{test_room.id}/messages", headers=auth_header, json={"content": f"m{i}"}
        )

    response = await client.get(f"/api/v1/rooms/{test_room.id}/messages", headers=auth_header2)
    assert response.status_code == 200
    assert sorted(m["content"] for m in response.json()) == ["m0", "m1", "m2"]
    assert all(m["kind"] == "room" for m in response.json())

    outsider = await client.get(f"/api/v1/rooms/{test_room.id}/messages", headers=auth_header3)
    assert outsider.status_code == 403
