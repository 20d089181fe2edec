"""
工作区层级测试

测试 app/services/workspaces.py：
- 创建（所有者、团队、初始关联、失败回滚）
- 成员下限与所有者指针
- 所有者互斥、所有者变更权限、父节点成环检测
- 列表、子节点、父节点、级联删除
"""

import pytest
from sqlalchemy import delete, func, select

from app.exceptions import NotFoundError, PermissionDeniedError, StructuralInvariantError
from app.models import (
    KnowledgeEntry,
    Workspace,
    WorkspaceKnowledgeEntry,
    WorkspacePromptTemplate,
    WorkspaceUser,
)
from app.schemas.workspace import WorkspaceRelations
from app.services import workspaces
from app.services.workspaces import (
    add_workspace_users,
    create_workspace,
    delete_workspace,
    get_child_workspaces,
    get_parent_workspace,
    list_shared_workspaces,
    list_workspace_users,
    list_workspaces,
    remove_workspace_users,
    update_workspace,
    workspace_is_accessible,
)


async def _count(session, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def _owner(session, workspace_id):
    result = await session.execute(
        select(Workspace.user_id, Workspace.team_id).where(Workspace.id == workspace_id)
    )
    return result.one()


class TestCreate:
    """测试创建"""

    @pytest.mark.asyncio
    async def test_creator_owns_workspace(self, session, world):
        workspace = await create_workspace(
            session, organisation_id=world["org"].id, user_id=world["bob"].id, name="notes"
        )

        assert workspace.user_id == world["bob"].id
        assert workspace.team_id is None

    @pytest.mark.asyncio
    async def test_team_owned(self, session, world):
        workspace = await create_workspace(
            session,
            organisation_id=world["org"].id,
            user_id=world["bob"].id,
            name="team space",
            team_id=world["t1"].id,
        )

        assert workspace.user_id is None
        assert workspace.team_id == world["t1"].id
        assert await workspace_is_accessible(
            session, workspace.id, organisation_id=world["org"].id, user_id=world["alice"].id
        )

    @pytest.mark.asyncio
    async def test_creator_must_be_in_team(self, session, world):
        with pytest.raises(StructuralInvariantError):
            await create_workspace(
                session,
                organisation_id=world["org"].id,
                user_id=world["bob"].id,
                name="not mine",
                team_id=world["t2"].id,
            )
        assert await _count(session, Workspace) == 0

    @pytest.mark.asyncio
    async def test_initial_relations(self, session, seed, world):
        org = world["org"]
        entry = await seed.entry(org, "doc")

        workspace = await create_workspace(
            session,
            organisation_id=org.id,
            user_id=world["bob"].id,
            name="project",
            relations=WorkspaceRelations(
                knowledge_entry_ids=[entry.id, entry.id],
                prompt_template_ids=["template-1"],
                user_ids=[world["carol"].id],
            ),
        )

        assert await _count(session, WorkspaceKnowledgeEntry) == 1
        assert await _count(session, WorkspacePromptTemplate) == 1
        members = await list_workspace_users(
            session, workspace.id, organisation_id=org.id, user_id=world["carol"].id
        )
        assert [m.user_id for m in members] == [world["carol"].id]

    @pytest.mark.asyncio
    async def test_relation_to_inaccessible_entry(self, session, seed, world):
        org = world["org"]
        entry = await seed.entry(org, "t2 doc", team=world["t2"])

        with pytest.raises(PermissionDeniedError):
            await create_workspace(
                session,
                organisation_id=org.id,
                user_id=world["bob"].id,
                name="project",
                relations=WorkspaceRelations(knowledge_entry_ids=[entry.id]),
            )

    @pytest.mark.asyncio
    async def test_member_outside_organisation(self, session, world):
        with pytest.raises(NotFoundError):
            await create_workspace(
                session,
                organisation_id=world["org"].id,
                user_id=world["bob"].id,
                name="project",
                relations=WorkspaceRelations(user_ids=[world["eve"].id]),
            )

    @pytest.mark.asyncio
    async def test_relation_failure_rolls_back(self, session, world, monkeypatch):
        """关联写入失败时工作区行也不保留"""
        async def broken_insert(*args, **kwargs):
            raise RuntimeError("relation insert failed")

        monkeypatch.setattr(workspaces, "_insert_relations", broken_insert)

        with pytest.raises(RuntimeError):
            await create_workspace(
                session,
                organisation_id=world["org"].id,
                user_id=world["bob"].id,
                name="doomed",
                relations=WorkspaceRelations(prompt_template_ids=["template-1"]),
            )

        assert await _count(session, Workspace) == 0


class TestMemberFloor:
    """测试成员下限与所有者指针"""

    @pytest.mark.asyncio
    async def test_member_cannot_remove_last_member(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "shared", members=(world["bob"], world["carol"]))
        kwargs = {"organisation_id": org.id, "user_id": world["bob"].id}

        await remove_workspace_users(session, workspace.id, [world["carol"].id], **kwargs)

        with pytest.raises(StructuralInvariantError):
            await remove_workspace_users(session, workspace.id, [world["bob"].id], **kwargs)

        members = await list_workspace_users(session, workspace.id, **kwargs)
        assert [m.user_id for m in members] == [world["bob"].id]

    @pytest.mark.asyncio
    async def test_removing_everyone_at_once_rejected(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "shared", members=(world["bob"], world["carol"]))

        with pytest.raises(StructuralInvariantError):
            await remove_workspace_users(
                session, workspace.id, [world["bob"].id, world["carol"].id],
                organisation_id=org.id, user_id=world["bob"].id,
            )

    @pytest.mark.asyncio
    async def test_owner_may_remove_all_members(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "mine", owner=world["carol"], members=(world["dave"],))

        await remove_workspace_users(
            session, workspace.id, [world["dave"].id, world["carol"].id],
            organisation_id=org.id, user_id=world["carol"].id,
        )

        owner = await _owner(session, workspace.id)
        assert owner.user_id is None

    @pytest.mark.asyncio
    async def test_removing_owner_clears_pointer(self, session, seed, world):
        """成员移除直接所有者时，所有者字段清空，工作区保留"""
        org = world["org"]
        workspace = await seed.workspace(org, "mine", owner=world["carol"], members=(world["dave"],))

        await remove_workspace_users(
            session, workspace.id, [world["carol"].id], organisation_id=org.id, user_id=world["dave"].id
        )

        owner = await _owner(session, workspace.id)
        assert owner.user_id is None
        assert not await workspace_is_accessible(
            session, workspace.id, organisation_id=org.id, user_id=world["carol"].id
        )
        assert await workspace_is_accessible(
            session, workspace.id, organisation_id=org.id, user_id=world["dave"].id
        )

    @pytest.mark.asyncio
    async def test_team_owned_workspace_has_no_floor(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "team", team=world["t1"], members=(world["dave"],))

        await remove_workspace_users(
            session, workspace.id, [world["dave"].id], organisation_id=org.id, user_id=world["bob"].id
        )
        members = await list_workspace_users(
            session, workspace.id, organisation_id=org.id, user_id=world["bob"].id
        )
        assert members == []

    @pytest.mark.asyncio
    async def test_add_users(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "mine", owner=world["bob"])
        kwargs = {"organisation_id": org.id, "user_id": world["bob"].id}

        await add_workspace_users(session, workspace.id, [world["dave"].id], **kwargs)
        await add_workspace_users(session, workspace.id, [world["dave"].id], **kwargs)

        members = await list_workspace_users(session, workspace.id, **kwargs)
        assert [m.user_id for m in members] == [world["dave"].id]

    @pytest.mark.asyncio
    async def test_floor_counts_after_concurrent_removal(self, session, seed, world, monkeypatch):
        """加锁后才发现另一个成员已被移除：按删除后的真实人数判定并回滚"""
        org = world["org"]
        workspace = await seed.workspace(org, "shared", members=(world["bob"], world["carol"]))
        lock_workspace = workspaces._lock_workspace

        async def lock_after_other_removal(session, workspace_id, deadline):
            await session.execute(
                delete(WorkspaceUser).where(
                    WorkspaceUser.workspace_id == workspace_id,
                    WorkspaceUser.user_id == world["carol"].id,
                )
            )
            await session.commit()
            return await lock_workspace(session, workspace_id, deadline)

        monkeypatch.setattr(workspaces, "_lock_workspace", lock_after_other_removal)

        with pytest.raises(StructuralInvariantError):
            await remove_workspace_users(
                session, workspace.id, [world["bob"].id],
                organisation_id=org.id, user_id=world["bob"].id,
            )

        result = await session.execute(
            select(WorkspaceUser.user_id).where(WorkspaceUser.workspace_id == workspace.id)
        )
        assert list(result.scalars().all()) == [world["bob"].id]


class TestUpdate:
    """测试更新的结构约束"""

    @pytest.mark.asyncio
    async def test_user_and_team_owner_exclusive(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "mine", owner=world["bob"])

        with pytest.raises(StructuralInvariantError):
            await update_workspace(
                session, workspace.id, {"team_id": world["t1"].id},
                organisation_id=org.id, user_id=world["bob"].id,
            )

        updated = await update_workspace(
            session, workspace.id, {"team_id": world["t1"].id, "user_id": None},
            organisation_id=org.id, user_id=world["bob"].id,
        )
        assert (updated.user_id, updated.team_id) == (None, world["t1"].id)

    @pytest.mark.asyncio
    async def test_clearing_owner_without_members(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "mine", owner=world["bob"])

        with pytest.raises(StructuralInvariantError):
            await update_workspace(
                session, workspace.id, {"user_id": None},
                organisation_id=org.id, user_id=world["bob"].id,
            )

    @pytest.mark.asyncio
    async def test_parent_cycle_rejected(self, session, seed, world):
        org = world["org"]
        root = await seed.workspace(org, "root", owner=world["bob"])
        middle = await seed.workspace(org, "middle", owner=world["bob"], parent=root)
        leaf = await seed.workspace(org, "leaf", owner=world["bob"], parent=middle)
        kwargs = {"organisation_id": org.id, "user_id": world["bob"].id}

        with pytest.raises(StructuralInvariantError):
            await update_workspace(session, root.id, {"parent_id": root.id}, **kwargs)
        with pytest.raises(StructuralInvariantError):
            await update_workspace(session, root.id, {"parent_id": leaf.id}, **kwargs)

        moved = await update_workspace(session, leaf.id, {"parent_id": root.id}, **kwargs)
        assert moved.parent_id == root.id

    @pytest.mark.asyncio
    async def test_parent_in_other_organisation(self, session, seed, world):
        foreign = await seed.workspace(world["other"], "foreign", owner=world["bob"])
        workspace = await seed.workspace(world["org"], "mine", owner=world["bob"])

        with pytest.raises(NotFoundError):
            await update_workspace(
                session, workspace.id, {"parent_id": foreign.id},
                organisation_id=world["org"].id, user_id=world["bob"].id,
            )

    @pytest.mark.asyncio
    async def test_requires_access(self, session, seed, world):
        workspace = await seed.workspace(world["org"], "mine", owner=world["bob"])

        with pytest.raises(PermissionDeniedError):
            await update_workspace(
                session, workspace.id, {"name": "stolen"},
                organisation_id=world["org"].id, user_id=world["carol"].id,
            )

    @pytest.mark.asyncio
    async def test_member_cannot_claim_ownerless_workspace(self, session, seed, world):
        """显式成员不能把自己设为所有者，从而绕过成员下限"""
        org = world["org"]
        workspace = await seed.workspace(org, "shared", members=(world["bob"], world["carol"]))
        kwargs = {"organisation_id": org.id, "user_id": world["bob"].id}

        with pytest.raises(PermissionDeniedError):
            await update_workspace(session, workspace.id, {"user_id": world["bob"].id}, **kwargs)
        with pytest.raises(StructuralInvariantError):
            await remove_workspace_users(
                session, workspace.id, [world["bob"].id, world["carol"].id], **kwargs
            )

        assert (await _owner(session, workspace.id)).user_id is None
        assert await _count(session, WorkspaceUser) == 2

    @pytest.mark.asyncio
    async def test_member_cannot_take_over_owner(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "mine", owner=world["carol"], members=(world["dave"],))

        with pytest.raises(PermissionDeniedError):
            await update_workspace(
                session, workspace.id, {"user_id": world["dave"].id},
                organisation_id=org.id, user_id=world["dave"].id,
            )
        with pytest.raises(PermissionDeniedError):
            await update_workspace(
                session, workspace.id, {"user_id": None},
                organisation_id=org.id, user_id=world["dave"].id,
            )

        assert (await _owner(session, workspace.id)).user_id == world["carol"].id
        assert await workspace_is_accessible(
            session, workspace.id, organisation_id=org.id, user_id=world["carol"].id
        )

    @pytest.mark.asyncio
    async def test_owner_transfers_ownership(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "mine", owner=world["carol"])

        updated = await update_workspace(
            session, workspace.id, {"user_id": world["dave"].id},
            organisation_id=org.id, user_id=world["carol"].id,
        )

        assert updated.user_id == world["dave"].id
        assert not await workspace_is_accessible(
            session, workspace.id, organisation_id=org.id, user_id=world["carol"].id
        )

    @pytest.mark.asyncio
    async def test_admin_assigns_owner_to_ownerless_workspace(self, session, seed, world):
        org = world["org"]
        workspace = await seed.workspace(org, "shared", members=(world["alice"], world["bob"]))

        updated = await update_workspace(
            session, workspace.id, {"user_id": world["bob"].id},
            organisation_id=org.id, user_id=world["alice"].id,
        )

        assert updated.user_id == world["bob"].id


class TestReadAndDelete:
    """测试列表、层级读取与删除"""

    @pytest.mark.asyncio
    async def test_roots_and_children(self, session, seed, world):
        org = world["org"]
        root = await seed.workspace(org, "root", owner=world["bob"])
        child = await seed.workspace(org, "child", owner=world["carol"], parent=root)
        await seed.workspace(org, "other root", owner=world["carol"])
        kwargs = {"organisation_id": org.id, "user_id": world["bob"].id}

        assert [w.name for w in await list_workspaces(session, **kwargs)] == ["root"]
        # 子工作区列表只检查父节点权限
        assert [w.id for w in await get_child_workspaces(session, root.id, **kwargs)] == [child.id]
        assert await list_workspaces(session, parent_id=root.id, **kwargs) == []

        assert await get_parent_workspace(session, root.id, **kwargs) is None
        parent = await get_parent_workspace(session, child.id, **kwargs)
        assert parent.id == root.id

    @pytest.mark.asyncio
    async def test_shared_excludes_owned(self, session, seed, world):
        org = world["org"]
        shared = await seed.workspace(org, "shared", owner=world["carol"], members=(world["bob"],))
        await seed.workspace(org, "mine", owner=world["bob"], members=(world["bob"],))

        result = await list_shared_workspaces(session, organisation_id=org.id, user_id=world["bob"].id)
        assert [w.id for w in result] == [shared.id]

    @pytest.mark.asyncio
    async def test_delete_cascades_to_subtree(self, session, seed, world):
        org = world["org"]
        root = await seed.workspace(org, "root", owner=world["bob"])
        child = await seed.workspace(org, "child", owner=world["bob"], parent=root)
        await seed.workspace(org, "grandchild", owner=world["carol"], parent=child)
        survivor = await seed.workspace(org, "survivor", owner=world["bob"])
        entry = await seed.entry(org, "doc", workspace=child)

        await delete_workspace(session, root.id, organisation_id=org.id, user_id=world["bob"].id)

        result = await session.execute(select(Workspace.id))
        assert list(result.scalars().all()) == [survivor.id]
        result = await session.execute(
            select(KnowledgeEntry.workspace_id).where(KnowledgeEntry.id == entry.id)
        )
        assert result.scalar_one() is None
