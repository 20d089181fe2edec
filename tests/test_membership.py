"""
成员关系索引测试

测试 app/services/membership.py：
- 团队集合按组织过滤
- 工作区集合的三个来源与组织过滤
- 组织角色判断
"""

import pytest

from app.services.membership import (
    get_all_user_team_ids,
    get_organisation_role,
    get_user_team_ids,
    get_user_workspace_ids,
    is_organisation_admin,
    is_organisation_member,
    is_user_part_of_team,
    team_in_organisation,
)


class TestTeamMembership:
    """测试团队成员关系"""

    @pytest.mark.asyncio
    async def test_teams_filtered_to_organisation(self, session, world):
        """用户在其他组织中的团队不会出现在结果中"""
        team_ids = await get_user_team_ids(session, world["bob"].id, world["org"].id)
        assert team_ids == [world["t1"].id]

        team_ids = await get_user_team_ids(session, world["bob"].id, world["other"].id)
        assert team_ids == [world["tp"].id]

    @pytest.mark.asyncio
    async def test_all_teams_not_filtered(self, session, world):
        team_ids = await get_all_user_team_ids(session, world["bob"].id)
        assert set(team_ids) == {world["t1"].id, world["tp"].id}

    @pytest.mark.asyncio
    async def test_user_without_teams(self, session, world):
        assert await get_user_team_ids(session, world["dave"].id, world["org"].id) == []

    @pytest.mark.asyncio
    async def test_team_checks(self, session, world):
        assert await is_user_part_of_team(session, world["carol"].id, world["t2"].id)
        assert not await is_user_part_of_team(session, world["carol"].id, world["t1"].id)
        assert await team_in_organisation(session, world["t1"].id, world["org"].id)
        assert not await team_in_organisation(session, world["tp"].id, world["org"].id)


class TestWorkspaceMembership:
    """测试工作区集合"""

    @pytest.mark.asyncio
    async def test_union_of_three_sources(self, session, seed, world):
        """直接拥有、团队拥有、显式成员三者取并集"""
        org = world["org"]
        owned = await seed.workspace(org, "owned", owner=world["bob"])
        team_owned = await seed.workspace(org, "team", team=world["t1"])
        shared = await seed.workspace(org, "shared", owner=world["carol"], members=(world["bob"],))
        await seed.workspace(org, "unrelated", owner=world["carol"])

        workspace_ids = await get_user_workspace_ids(session, world["bob"].id, org.id)
        assert set(workspace_ids) == {owned.id, team_owned.id, shared.id}

    @pytest.mark.asyncio
    async def test_restricted_to_organisation(self, session, seed, world):
        """其他组织中的工作区不出现，即使用户拥有它"""
        await seed.workspace(world["other"], "elsewhere", owner=world["bob"])
        await seed.workspace(world["other"], "team elsewhere", team=world["tp"])

        assert await get_user_workspace_ids(session, world["bob"].id, world["org"].id) == []

    @pytest.mark.asyncio
    async def test_no_tree_traversal(self, session, seed, world):
        """父工作区可见不代表子工作区可见"""
        org = world["org"]
        parent = await seed.workspace(org, "parent", owner=world["dave"])
        await seed.workspace(org, "child", owner=world["carol"], parent=parent)

        workspace_ids = await get_user_workspace_ids(session, world["dave"].id, org.id)
        assert workspace_ids == [parent.id]

    @pytest.mark.asyncio
    async def test_precomputed_team_ids(self, session, seed, world):
        """传入的 team_ids 优先于自动查询"""
        org = world["org"]
        team_owned = await seed.workspace(org, "team", team=world["t2"])

        workspace_ids = await get_user_workspace_ids(
            session, world["dave"].id, org.id, [world["t2"].id]
        )
        assert workspace_ids == [team_owned.id]


class TestOrganisationRole:
    """测试组织角色"""

    @pytest.mark.asyncio
    async def test_roles(self, session, world):
        org = world["org"]
        assert await get_organisation_role(session, world["alice"].id, org.id) == "admin"
        assert await get_organisation_role(session, world["eve"].id, org.id) is None

        assert await is_organisation_admin(session, world["alice"].id, org.id)
        assert not await is_organisation_admin(session, world["bob"].id, org.id)
        assert await is_organisation_member(session, world["bob"].id, org.id)
        assert not await is_organisation_member(session, world["eve"].id, org.id)
