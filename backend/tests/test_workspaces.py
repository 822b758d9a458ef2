# tests/test_workspaces.py — Workspace CRUD, membership and ownership rules
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers, make_board, make_group, make_item


@pytest.mark.asyncio
async def test_create_workspace_makes_caller_owner(client: AsyncClient, outsider_user):
    headers = get_auth_headers(outsider_user)
    res = await client.post("/api/v1/workspaces", json={"name": "Side project"}, headers=headers)
    assert res.status_code == 201
    data = res.json()
    assert data["owner_id"] == outsider_user.id
    assert data["is_owner"] is True


@pytest.mark.asyncio
async def test_list_workspaces_includes_owned_and_member(client: AsyncClient, workspace, member_user, outsider_user):
    res = await client.get("/api/v1/workspaces", headers=get_auth_headers(member_user))
    assert res.status_code == 200
    ids = [w["id"] for w in res.json()]
    assert ids == [workspace.id]
    assert res.json()[0]["is_owner"] is False

    res = await client.get("/api/v1/workspaces", headers=get_auth_headers(outsider_user))
    assert res.json() == []


@pytest.mark.asyncio
async def test_list_workspaces_newest_first(client: AsyncClient, outsider_user):
    headers = get_auth_headers(outsider_user)
    await client.post("/api/v1/workspaces", json={"name": "First"}, headers=headers)
    await client.post("/api/v1/workspaces", json={"name": "Second"}, headers=headers)
    res = await client.get("/api/v1/workspaces", headers=headers)
    assert [w["name"] for w in res.json()] == ["Second", "First"]


@pytest.mark.asyncio
async def test_get_workspace_with_boards_and_members(client: AsyncClient, workspace, board, member_user):
    res = await client.get(f"/api/v1/workspaces/{workspace.id}", headers=get_auth_headers(member_user))
    assert res.status_code == 200
    data = res.json()
    assert [b["id"] for b in data["boards"]] == [board.id]
    assert [m["user_id"] for m in data["members"]] == [member_user.id]
    assert data["owner"]["email"] == "owner@boardflow.dev"


@pytest.mark.asyncio
async def test_outsider_cannot_read_workspace(client: AsyncClient, workspace, outsider_user):
    res = await client.get(f"/api/v1/workspaces/{workspace.id}", headers=get_auth_headers(outsider_user))
    assert res.status_code == 403
    assert res.json()["error"] == "access_denied"


@pytest.mark.asyncio
async def test_unknown_workspace_is_not_found(client: AsyncClient, owner_user):
    res = await client.get("/api/v1/workspaces/does-not-exist", headers=get_auth_headers(owner_user))
    assert res.status_code == 404
    assert res.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_only_owner_updates_workspace(client: AsyncClient, workspace, owner_user, member_user):
    res = await client.patch(
        f"/api/v1/workspaces/{workspace.id}", json={"name": "Renamed"}, headers=get_auth_headers(member_user),
    )
    assert res.status_code == 403

    res = await client.patch(
        f"/api/v1/workspaces/{workspace.id}", json={"name": "Renamed"}, headers=get_auth_headers(owner_user),
    )
    assert res.status_code == 200
    assert res.json()["name"] == "Renamed"


@pytest.mark.asyncio
async def test_member_cannot_delete_workspace(client: AsyncClient, workspace, member_user):
    res = await client.delete(f"/api/v1/workspaces/{workspace.id}", headers=get_auth_headers(member_user))
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_delete_workspace_cascades(client: AsyncClient, db_session, workspace, owner_user):
    board = await make_board(db_session, workspace)
    group = await make_group(db_session, board)
    item = await make_item(db_session, group, "Doomed")
    headers = get_auth_headers(owner_user)

    res = await client.delete(f"/api/v1/workspaces/{workspace.id}", headers=headers)
    assert res.status_code == 200

    assert (await client.get(f"/api/v1/boards/{board.id}", headers=headers)).status_code == 404
    assert (await client.get(f"/api/v1/items/{item.id}", headers=headers)).status_code == 404


# ============================================================
# MEMBERS
# ============================================================

@pytest.mark.asyncio
async def test_owner_adds_member_by_email(client: AsyncClient, workspace, owner_user, outsider_user):
    headers = get_auth_headers(owner_user)
    res = await client.post(
        f"/api/v1/workspaces/{workspace.id}/members",
        json={"email": "outsider@boardflow.dev", "role": "designer"},
        headers=headers,
    )
    assert res.status_code == 201
    assert res.json()["user_id"] == outsider_user.id
    assert res.json()["role"] == "designer"

    res = await client.get(f"/api/v1/workspaces/{workspace.id}", headers=get_auth_headers(outsider_user))
    assert res.status_code == 200


@pytest.mark.asyncio
async def test_add_member_rules(client: AsyncClient, workspace, owner_user, member_user):
    headers = get_auth_headers(owner_user)
    url = f"/api/v1/workspaces/{workspace.id}/members"

    res = await client.post(url, json={"email": "member@boardflow.dev"}, headers=headers)
    assert res.status_code == 409

    res = await client.post(url, json={"email": "owner@boardflow.dev"}, headers=headers)
    assert res.status_code == 400

    res = await client.post(url, json={"email": "nobody@boardflow.dev"}, headers=headers)
    assert res.status_code == 404

    res = await client.post(url, json={"email": "owner@boardflow.dev"}, headers=get_auth_headers(member_user))
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_list_members(client: AsyncClient, workspace, member_user):
    res = await client.get(f"/api/v1/workspaces/{workspace.id}/members", headers=get_auth_headers(member_user))
    assert res.status_code == 200
    data = res.json()
    assert data["owner"]["email"] == "owner@boardflow.dev"
    assert [m["user"]["email"] for m in data["members"]] == ["member@boardflow.dev"]


@pytest.mark.asyncio
async def test_remove_member_must_belong_to_workspace(client: AsyncClient, db_session, workspace, owner_user, outsider_user):
    headers = get_auth_headers(owner_user)
    other = await client.post("/api/v1/workspaces", json={"name": "Other"}, headers=headers)
    other_id = other.json()["id"]
    added = await client.post(
        f"/api/v1/workspaces/{other_id}/members", json={"email": "outsider@boardflow.dev"}, headers=headers,
    )
    member_id = added.json()["id"]

    res = await client.delete(f"/api/v1/workspaces/{workspace.id}/members/{member_id}", headers=headers)
    assert res.status_code == 404

    res = await client.delete(f"/api/v1/workspaces/{other_id}/members/{member_id}", headers=headers)
    assert res.status_code == 200
