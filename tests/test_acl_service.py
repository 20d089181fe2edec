"""
ACL 权限服务单元测试

测试 app/services/acl.py 的功能：
- 条目直接访问（所有者、团队、工作区、开放条目）
- 知识组访问（组织级开放、团队分配）
- 组织边界
- SQL 条件与单条判定一致
- 工作区访问判定
"""

import pytest
from sqlalchemy import select

from app.exceptions import AccessTimeoutError, NotFoundError, PermissionDeniedError
from app.infra.deadline import Deadline
from app.models import KnowledgeEntry
from app.services.acl import (
    UserContext,
    build_entry_access_condition,
    can_access_entry,
    can_access_workspace,
    filter_accessible_entry_ids,
    load_user_context,
    require_entry_access,
    require_workspace_access,
)


async def _allowed(session, entry, user, organisation):
    return await can_access_entry(session, entry.id, user.id, organisation.id)


class TestUserContext:
    """测试用户上下文"""

    @pytest.mark.asyncio
    async def test_load_user_context(self, session, seed, world):
        org = world["org"]
        team_owned = await seed.workspace(org, "team", team=world["t1"])

        ctx = await load_user_context(session, world["bob"].id, org.id)

        assert ctx == UserContext(
            user_id=world["bob"].id,
            organisation_id=org.id,
            team_ids=(world["t1"].id,),
            workspace_ids=(team_owned.id,),
        )


class TestDirectAccess:
    """测试直接访问"""

    @pytest.mark.asyncio
    async def test_open_entry_visible_to_every_member(self, session, seed, world):
        """没有团队和工作区的条目对组织内所有成员可见，与所有者无关"""
        org = world["org"]
        entry = await seed.entry(org, "open", owner=world["alice"])

        for name in ("alice", "bob", "carol", "dave"):
            assert await _allowed(session, entry, world[name], org), name

    @pytest.mark.asyncio
    async def test_team_gating(self, session, seed, world):
        """团队条目：所有者与团队成员可见，其他人不可见"""
        org = world["org"]
        entry = await seed.entry(org, "E1", owner=world["carol"], team=world["t1"])

        assert await _allowed(session, entry, world["bob"], org)
        assert await _allowed(session, entry, world["alice"], org)
        assert await _allowed(session, entry, world["carol"], org)  # 所有者
        assert not await _allowed(session, entry, world["dave"], org)

    @pytest.mark.asyncio
    async def test_concrete_scenario(self, session, seed, world):
        """O / T1 / U1 / U2 / E1 场景"""
        org = world["org"]
        u1, u2 = world["bob"], world["carol"]
        e1 = await seed.entry(org, "E1", team=world["t1"])

        assert await _allowed(session, e1, u1, org) is True
        assert await _allowed(session, e1, u2, org) is False

    @pytest.mark.asyncio
    async def test_workspace_gating(self, session, seed, world):
        """工作区条目：只有能进入工作区的用户可见"""
        org = world["org"]
        workspace = await seed.workspace(org, "W", owner=world["carol"], members=(world["bob"],))
        entry = await seed.entry(org, "in workspace", workspace=workspace)

        assert await _allowed(session, entry, world["carol"], org)
        assert await _allowed(session, entry, world["bob"], org)
        assert not await _allowed(session, entry, world["dave"], org)

    @pytest.mark.asyncio
    async def test_team_and_workspace_both_required(self, session, seed, world):
        """同时挂在团队和工作区上的条目要求两个条件都满足"""
        org = world["org"]
        workspace = await seed.workspace(org, "W", owner=world["carol"])
        entry = await seed.entry(org, "both", team=world["t1"], workspace=workspace)

        assert not await _allowed(session, entry, world["bob"], org)    # 只在团队中
        assert not await _allowed(session, entry, world["carol"], org)  # 只在工作区中

        shared = await seed.workspace(org, "W2", owner=world["bob"])
        entry2 = await seed.entry(org, "both2", team=world["t1"], workspace=shared)
        assert await _allowed(session, entry2, world["bob"], org)

    @pytest.mark.asyncio
    async def test_owner_bypasses_team_and_workspace(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "W", owner=world["carol"])
        entry = await seed.entry(org, "mine", owner=world["dave"], team=world["t1"], workspace=workspace)

        assert await _allowed(session, entry, world["dave"], org)


class TestGroupAccess:
    """测试知识组访问"""

    @pytest.mark.asyncio
    async def test_org_wide_group_overrides_direct_checks(self, session, seed, world):
        org = world["org"]
        group = await seed.group(org, "handbook", org_wide=True)
        entry = await seed.entry(org, "policy", team=world["t2"], group=group)

        for name in ("alice", "bob", "carol", "dave"):
            assert await _allowed(session, entry, world[name], org), name

    @pytest.mark.asyncio
    async def test_team_assigned_group(self, session, seed, world):
        org = world["org"]
        group = await seed.group(org, "eng", teams=(world["t1"],))
        entry = await seed.entry(org, "design", team=world["t2"], group=group)

        assert await _allowed(session, entry, world["bob"], org)
        assert await _allowed(session, entry, world["carol"], org)  # 直接访问
        assert not await _allowed(session, entry, world["dave"], org)

    @pytest.mark.asyncio
    async def test_group_without_sharing_grants_nothing(self, session, seed, world):
        org = world["org"]
        group = await seed.group(org, "private", owner=world["dave"])
        entry = await seed.entry(org, "secret", team=world["t2"], group=group)

        # 组所有者身份不构成条目访问
        assert not await _allowed(session, entry, world["dave"], org)


class TestOrganisationBoundary:
    """测试组织边界"""

    @pytest.mark.asyncio
    async def test_entry_in_other_organisation_denied(self, session, seed, world):
        entry = await seed.entry(world["other"], "foreign")

        assert not await _allowed(session, entry, world["bob"], world["org"])
        assert await _allowed(session, entry, world["bob"], world["other"])

    @pytest.mark.asyncio
    async def test_unknown_entry_denied(self, session, world):
        assert not await can_access_entry(session, "missing", world["bob"].id, world["org"].id)

    @pytest.mark.asyncio
    async def test_require_entry_access_hides_other_organisation(self, session, seed, world):
        """其他组织的条目与不存在的条目返回同样的 NotFound"""
        entry = await seed.entry(world["other"], "foreign")

        with pytest.raises(NotFoundError):
            await require_entry_access(session, entry.id, world["bob"].id, world["org"].id)
        with pytest.raises(NotFoundError):
            await require_entry_access(session, "missing", world["bob"].id, world["org"].id)

    @pytest.mark.asyncio
    async def test_require_entry_access_denied(self, session, seed, world):
        entry = await seed.entry(world["org"], "team only", team=world["t1"])

        with pytest.raises(PermissionDeniedError):
            await require_entry_access(session, entry.id, world["dave"].id, world["org"].id)

        loaded = await require_entry_access(session, entry.id, world["bob"].id, world["org"].id)
        assert loaded.id == entry.id


class TestSqlConditionConsistency:
    """SQL 条件与逐条判定必须得出完全相同的结果"""

    @pytest.mark.asyncio
    async def test_condition_matches_single_checks(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "W", owner=world["carol"], members=(world["dave"],))
        org_wide = await seed.group(org, "all", org_wide=True)
        assigned = await seed.group(org, "t1 only", teams=(world["t1"],))

        entries = [
            await seed.entry(org, "open"),
            await seed.entry(org, "t1", team=world["t1"]),
            await seed.entry(org, "t2", team=world["t2"]),
            await seed.entry(org, "w", workspace=workspace),
            await seed.entry(org, "t1+w", team=world["t1"], workspace=workspace),
            await seed.entry(org, "owned", owner=world["dave"], team=world["t2"]),
            await seed.entry(org, "org wide", team=world["t2"], group=org_wide),
            await seed.entry(org, "assigned", team=world["t2"], group=assigned),
            await seed.entry(world["other"], "foreign"),
        ]

        for name in ("alice", "bob", "carol", "dave"):
            user = world[name]
            ctx = await load_user_context(session, user.id, org.id)
            result = await session.execute(
                select(KnowledgeEntry.id).where(build_entry_access_condition(ctx))
            )
            via_sql = set(result.scalars().all())
            via_checks = {
                entry.id for entry in entries
                if await can_access_entry(session, entry.id, user.id, org.id, user=ctx)
            }
            assert via_sql == via_checks, name

    @pytest.mark.asyncio
    async def test_filter_accessible_entry_ids(self, session, seed, world):
        org = world["org"]
        visible = await seed.entry(org, "t1", team=world["t1"])
        hidden = await seed.entry(org, "t2", team=world["t2"])
        foreign = await seed.entry(world["other"], "foreign")

        ctx = await load_user_context(session, world["bob"].id, org.id)
        allowed = await filter_accessible_entry_ids(
            session, ctx, [visible.id, hidden.id, foreign.id, "missing"]
        )
        assert allowed == {visible.id}
        assert await filter_accessible_entry_ids(session, ctx, []) == set()


class TestWorkspaceAccess:
    """测试工作区访问判定"""

    @pytest.mark.asyncio
    async def test_owner_team_and_explicit_member(self, session, seed, world):
        org = world["org"]
        owned = await seed.workspace(org, "owned", owner=world["dave"])
        team_owned = await seed.workspace(org, "team", team=world["t1"])
        shared = await seed.workspace(org, "shared", members=(world["carol"],))

        assert await can_access_workspace(session, owned.id, world["dave"].id)
        assert not await can_access_workspace(session, owned.id, world["bob"].id)
        assert await can_access_workspace(session, team_owned.id, world["bob"].id)
        assert not await can_access_workspace(session, team_owned.id, world["carol"].id)
        assert await can_access_workspace(session, shared.id, world["carol"].id)
        assert not await can_access_workspace(session, "missing", world["carol"].id)

    @pytest.mark.asyncio
    async def test_require_workspace_access(self, session, seed, world):
        foreign = await seed.workspace(world["other"], "foreign", owner=world["bob"])
        private = await seed.workspace(world["org"], "private", owner=world["carol"])

        with pytest.raises(NotFoundError):
            await require_workspace_access(session, foreign.id, world["bob"].id, world["org"].id)
        with pytest.raises(PermissionDeniedError):
            await require_workspace_access(session, private.id, world["bob"].id, world["org"].id)


class TestDeadline:
    """测试时间预算"""

    @pytest.mark.asyncio
    async def test_expired_deadline_raises_timeout(self, session, seed, world):
        entry = await seed.entry(world["org"], "open")

        with pytest.raises(AccessTimeoutError):
            await can_access_entry(
                session, entry.id, world["bob"].id, world["org"].id, deadline=Deadline(0)
            )
