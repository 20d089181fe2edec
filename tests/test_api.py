"""
HTTP 接口测试

- 身份与组织成员校验（401 / 403）
- 业务异常到状态码与错误码的映射
- 关键路由的请求/响应格式
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app


@pytest.fixture
async def client(database):
    transport = httpx.ASGITransport(app=create_app(database=database))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _headers(user) -> dict:
    return {"X-User-Id": user.id}


def test_healthz():
    client = TestClient(create_app())
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


class TestIdentity:
    """测试身份校验"""

    @pytest.mark.asyncio
    async def test_missing_user_header(self, client, world):
        resp = await client.get(f"/v1/organisations/{world['org'].id}/knowledge")
        assert resp.status_code == 401
        assert resp.json() == {"code": "UNAUTHORIZED", "detail": "Missing X-User-Id header"}

    @pytest.mark.asyncio
    async def test_non_member_rejected(self, client, world):
        resp = await client.get(
            f"/v1/organisations/{world['org'].id}/knowledge", headers=_headers(world["eve"])
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "NOT_ORGANISATION_MEMBER"

    @pytest.mark.asyncio
    async def test_admin_only_route(self, client, world):
        url = f"/v1/organisations/{world['org'].id}/knowledge-filters"
        body = {"category": "language", "name": "python"}

        resp = await client.post(url, json=body, headers=_headers(world["bob"]))
        assert resp.status_code == 403
        assert resp.json()["code"] == "ADMIN_REQUIRED"

        first = await client.post(url, json=body, headers=_headers(world["alice"]))
        second = await client.post(url, json=body, headers=_headers(world["alice"]))
        assert first.status_code == 200
        assert first.json()["id"] == second.json()["id"]

        resp = await client.get(url, headers=_headers(world["bob"]))
        assert resp.json() == {"categories": {"language": ["python"]}}


class TestKnowledgeRoutes:
    """测试知识条目路由"""

    @pytest.mark.asyncio
    async def test_access_check(self, client, seed, world):
        entry = await seed.entry(world["org"], "E1", team=world["t1"])
        url = f"/v1/organisations/{world['org'].id}/knowledge/{entry.id}/access"

        resp = await client.get(url, headers=_headers(world["bob"]))
        assert resp.json() == {"entry_id": entry.id, "allowed": True}

        resp = await client.get(url, headers=_headers(world["carol"]))
        assert resp.json() == {"entry_id": entry.id, "allowed": False}

    @pytest.mark.asyncio
    async def test_error_mapping(self, client, seed, world):
        org_id = world["org"].id
        entry = await seed.entry(world["org"], "E1", team=world["t1"])
        foreign = await seed.entry(world["other"], "foreign")

        resp = await client.get(
            f"/v1/organisations/{org_id}/knowledge/{entry.id}", headers=_headers(world["carol"])
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "PERMISSION_DENIED"

        resp = await client.get(
            f"/v1/organisations/{org_id}/knowledge/{foreign.id}", headers=_headers(world["bob"])
        )
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Knowledge entry not found", "code": "NOT_FOUND"}

    @pytest.mark.asyncio
    async def test_list_and_delete(self, client, seed, world):
        org_id = world["org"].id
        entry = await seed.entry(world["org"], "doc", chunks=2)

        resp = await client.get(f"/v1/organisations/{org_id}/knowledge", headers=_headers(world["dave"]))
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 1
        assert [item["id"] for item in body["items"]] == [entry.id]

        resp = await client.delete(
            f"/v1/organisations/{org_id}/knowledge/{entry.id}", headers=_headers(world["dave"])
        )
        assert resp.status_code == 204

    @pytest.mark.asyncio
    async def test_invalid_filter_query(self, client, world):
        resp = await client.get(
            f"/v1/organisations/{world['org'].id}/knowledge",
            params={"filter": "no-separator"},
            headers=_headers(world["bob"]),
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "VALIDATION_ERROR"


class TestWorkspaceRoutes:
    """测试工作区路由"""

    @pytest.mark.asyncio
    async def test_member_floor_maps_to_422(self, client, seed, world):
        org_id = world["org"].id
        workspace = await seed.workspace(world["org"], "shared", members=(world["bob"],))

        resp = await client.post(
            f"/v1/organisations/{org_id}/workspaces/{workspace.id}/users/remove",
            json={"user_ids": [world["bob"].id]},
            headers=_headers(world["bob"]),
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "STRUCTURAL_INVARIANT_VIOLATION"

    @pytest.mark.asyncio
    async def test_create_and_get_parent(self, client, world):
        org_id = world["org"].id
        headers = _headers(world["bob"])

        resp = await client.post(
            f"/v1/organisations/{org_id}/workspaces", json={"name": "root"}, headers=headers
        )
        assert resp.status_code == 200
        root = resp.json()
        assert root["user_id"] == world["bob"].id

        resp = await client.get(
            f"/v1/organisations/{org_id}/workspaces/{root['id']}/parent", headers=headers
        )
        assert resp.status_code == 200
        assert resp.json() is None

    @pytest.mark.asyncio
    async def test_member_cannot_patch_owner(self, client, seed, world):
        org_id = world["org"].id
        workspace = await seed.workspace(
            world["org"], "mine", owner=world["carol"], members=(world["dave"],)
        )

        resp = await client.patch(
            f"/v1/organisations/{org_id}/workspaces/{workspace.id}",
            json={"user_id": world["dave"].id},
            headers=_headers(world["dave"]),
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "PERMISSION_DENIED"

        resp = await client.patch(
            f"/v1/organisations/{org_id}/workspaces/{workspace.id}",
            json={"name": "renamed"},
            headers=_headers(world["dave"]),
        )
        assert resp.status_code == 200
        assert resp.json()["user_id"] == world["carol"].id


class TestKnowledgeGroupRoutes:
    """测试知识组路由"""

    @pytest.mark.asyncio
    async def test_team_assignments_inline_on_request(self, client, seed, world):
        org_id = world["org"].id
        group = await seed.group(world["org"], "eng", teams=(world["t1"],))
        url = f"/v1/organisations/{org_id}/knowledge-groups/{group.id}"
        headers = _headers(world["bob"])

        resp = await client.get(url, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["team_ids"] is None

        resp = await client.get(url, params={"include_team_assignments": "true"}, headers=headers)
        assert resp.json()["team_ids"] == [world["t1"].id]

        resp = await client.get(
            f"/v1/organisations/{org_id}/knowledge-groups",
            params={"include_team_assignments": "true"},
            headers=headers,
        )
        body = resp.json()
        assert body["total"] == 1
        assert body["items"][0]["team_ids"] == [world["t1"].id]
