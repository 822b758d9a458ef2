# tests/test_groups.py — Group CRUD and ordering within a board
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers, make_item


@pytest.mark.asyncio
async def test_groups_append_to_end_of_board(client: AsyncClient, board, member_user):
    headers = get_auth_headers(member_user)
    positions = []
    for name in ("Backlog", "Doing", "Review"):
        res = await client.post("/api/v1/groups", json={"board_id": board.id, "name": name}, headers=headers)
        assert res.status_code == 201
        positions.append(res.json()["position"])
    assert positions == [1, 2, 3]

    res = await client.get(f"/api/v1/boards/{board.id}", headers=headers)
    assert [g["name"] for g in res.json()["groups"]] == ["Backlog", "Doing", "Review"]


@pytest.mark.asyncio
async def test_move_group_reorders_board(client: AsyncClient, board, member_user):
    headers = get_auth_headers(member_user)
    ids = []
    for name in ("A", "B", "C"):
        res = await client.post("/api/v1/groups", json={"board_id": board.id, "name": name}, headers=headers)
        ids.append(res.json()["id"])

    res = await client.put(f"/api/v1/groups/{ids[2]}/position", json={"position": 1.5}, headers=headers)
    assert res.status_code == 200
    assert res.json()["position"] == 1.5

    res = await client.get(f"/api/v1/boards/{board.id}", headers=headers)
    assert [g["name"] for g in res.json()["groups"]] == ["A", "C", "B"]

    activity = (await client.get(f"/api/v1/boards/{board.id}/activity", headers=headers)).json()
    assert (activity[0]["action"], activity[0]["description"]) == ("moved", 'Moved group "C"')
    assert activity[0]["entity_id"] == ids[2]


@pytest.mark.asyncio
async def test_update_group(client: AsyncClient, board, group, member_user):
    headers = get_auth_headers(member_user)
    res = await client.patch(f"/api/v1/groups/{group.id}", json={"name": "Sprint 4", "color": "#00aa88"}, headers=headers)
    assert res.status_code == 200
    assert res.json()["name"] == "Sprint 4"
    assert res.json()["color"] == "#00aa88"

    activity = (await client.get(f"/api/v1/boards/{board.id}/activity", headers=headers)).json()
    assert [(a["action"], a["description"]) for a in activity] == [("updated", 'Updated group "Sprint 4"')]

    res = await client.patch(f"/api/v1/groups/{group.id}", json={"name": " "}, headers=headers)
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_delete_group_takes_items_along(client: AsyncClient, db_session, board, group, member_user):
    item = await make_item(db_session, group, "Inside")
    headers = get_auth_headers(member_user)

    res = await client.delete(f"/api/v1/groups/{group.id}", headers=headers)
    assert res.status_code == 200
    assert (await client.get(f"/api/v1/items/{item.id}", headers=headers)).status_code == 404

    activity = (await client.get(f"/api/v1/boards/{board.id}/activity", headers=headers)).json()
    assert activity[0]["description"] == 'Deleted group "This week"'


@pytest.mark.asyncio
async def test_outsider_cannot_touch_groups(client: AsyncClient, board, group, outsider_user):
    headers = get_auth_headers(outsider_user)
    res = await client.post("/api/v1/groups", json={"board_id": board.id, "name": "X"}, headers=headers)
    assert res.status_code == 403
    res = await client.delete(f"/api/v1/groups/{group.id}", headers=headers)
    assert res.status_code == 403
