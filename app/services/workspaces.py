"""
工作区层级与变更守卫 (WorkspaceHierarchy)

工作区组成森林（parent_id 自引用），每个工作区由一个用户或一个团队持有
（或者都没有，此时只能通过显式成员访问）。

所有变更操作的统一流程：
1. 加载本组织内的工作区（否则 NotFound）
2. can_access_workspace 判定（否则 PermissionDenied）
3. 结构性约束检查（否则 StructuralInvariant）
4. 在一个事务内写入；成员下限在写入后、提交前按最终状态复核，失败则整体回滚

结构性约束：
- user_id 与 team_id 不能同时存在
- 指派团队时操作者必须是该团队成员
- 父工作区必须属于同一组织，且不能形成环
- 成员下限：非所有者操作后，无主工作区不能没有任何显式成员
- 直接所有者只能由所有者本人转移或清空；无直接所有者时只有组织管理员可以指派
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import atomic
from app.db.upsert import insert_ignore
from app.exceptions import NotFoundError, PermissionDeniedError, StructuralInvariantError
from app.infra.deadline import Deadline, bounded
from app.models import (
    OrganisationMember,
    Workspace,
    WorkspaceChatGroup,
    WorkspaceChatSession,
    WorkspaceKnowledgeEntry,
    WorkspacePromptTemplate,
    WorkspaceUser,
)
from app.schemas.workspace import WorkspaceRelations
from app.services.acl import (
    can_access_workspace,
    require_entry_access,
    require_workspace_access,
)
from app.services.membership import (
    get_all_user_team_ids,
    is_organisation_admin,
    is_user_part_of_team,
    team_in_organisation,
)

logger = logging.getLogger(__name__)

# 关联类型 -> (模型, 关联列名)
RELATION_TABLES = {
    "knowledge_entry_ids": (WorkspaceKnowledgeEntry, "knowledge_entry_id"),
    "prompt_template_ids": (WorkspacePromptTemplate, "prompt_template_id"),
    "chat_group_ids": (WorkspaceChatGroup, "chat_group_id"),
    "chat_session_ids": (WorkspaceChatSession, "chat_session_id"),
    "user_ids": (WorkspaceUser, "user_id"),
}


# ==================== 结构性检查 ====================

async def _check_team_owner(
    session: AsyncSession,
    team_id: str,
    user_id: str,
    organisation_id: str,
    deadline: Deadline | None,
) -> None:
    """团队必须属于本组织，且操作者是团队成员"""
    if not await team_in_organisation(session, team_id, organisation_id, deadline=deadline):
        raise NotFoundError("Team")
    if not await is_user_part_of_team(session, user_id, team_id, deadline=deadline):
        raise StructuralInvariantError("User is not part of the provided team")


async def _check_parent(
    session: AsyncSession,
    parent_id: str,
    user_id: str,
    organisation_id: str,
    deadline: Deadline | None,
    *,
    workspace_id: str | None = None,
) -> None:
    """
    校验父工作区

    - 必须属于同一组织且用户可以访问
    - workspace_id 不为空时（移动已有工作区），新父节点不能是它自己或它的后代
    """
    await require_workspace_access(session, parent_id, user_id, organisation_id, deadline=deadline)
    if workspace_id is None:
        return

    visited: set[str] = set()
    current: str | None = parent_id
    while current is not None and current not in visited:
        if current == workspace_id:
            raise StructuralInvariantError("Workspace parent assignment would create a cycle")
        visited.add(current)
        result = await bounded(
            session.execute(select(Workspace.parent_id).where(Workspace.id == current)),
            deadline,
        )
        current = result.scalar_one_or_none()


async def _check_organisation_users(
    session: AsyncSession,
    user_ids: list[str],
    organisation_id: str,
    deadline: Deadline | None,
) -> None:
    """显式成员必须是本组织成员"""
    if not user_ids:
        return
    result = await bounded(
        session.execute(
            select(OrganisationMember.user_id).where(
                OrganisationMember.organisation_id == organisation_id,
                OrganisationMember.user_id.in_(sorted(set(user_ids))),
            )
        ),
        deadline,
    )
    if set(result.scalars().all()) != set(user_ids):
        raise NotFoundError("User")


async def _check_relations(
    session: AsyncSession,
    relations: WorkspaceRelations,
    user_id: str,
    organisation_id: str,
    deadline: Deadline | None,
) -> None:
    """关联的条目必须可访问，成员必须属于本组织；其余外部实体 ID 原样接受"""
    for entry_id in dict.fromkeys(relations.knowledge_entry_ids):
        await require_entry_access(session, entry_id, user_id, organisation_id, deadline=deadline)
    await _check_organisation_users(session, relations.user_ids, organisation_id, deadline)


async def _insert_relations(
    session: AsyncSession,
    workspace_id: str,
    relations: WorkspaceRelations,
    deadline: Deadline | None,
) -> None:
    """写入关联（调用方负责事务）"""
    for field_name, (model, column) in RELATION_TABLES.items():
        ids = list(dict.fromkeys(getattr(relations, field_name)))
        await bounded(
            insert_ignore(
                session,
                model,
                [{"workspace_id": workspace_id, column: value} for value in ids],
                index_elements=["workspace_id", column],
            ),
            deadline,
        )


async def _count_members(
    session: AsyncSession,
    workspace_id: str,
    deadline: Deadline | None,
) -> int:
    stmt = select(func.count()).select_from(WorkspaceUser).where(
        WorkspaceUser.workspace_id == workspace_id
    )
    result = await bounded(session.execute(stmt), deadline)
    return result.scalar_one()


async def _lock_workspace(
    session: AsyncSession,
    workspace_id: str,
    deadline: Deadline | None,
) -> Workspace:
    """在当前事务内锁定工作区行并重新读取所有者字段，串行化同一工作区的成员变更"""
    result = await bounded(
        session.execute(
            select(Workspace)
            .where(Workspace.id == workspace_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ),
        deadline,
    )
    return result.scalar_one()


async def _check_owner_change(
    session: AsyncSession,
    workspace: Workspace,
    user_id: str,
    organisation_id: str,
    deadline: Deadline | None,
) -> None:
    """
    修改直接所有者的权限

    有直接所有者时只有所有者本人可以转移或清空；没有直接所有者时只有组织管理员可以指派。
    显式成员不能借此把自己升为所有者。
    """
    if workspace.user_id is not None:
        if workspace.user_id == user_id:
            return
    elif await is_organisation_admin(session, user_id, organisation_id, deadline=deadline):
        return
    logger.warning(
        "拒绝修改工作区所有者",
        extra={"workspace_id": workspace.id, "user_id": user_id},
    )
    raise PermissionDeniedError("Only the workspace owner can change its owner")


def _workspace_access_condition(user_id: str, team_ids: list[str]):
    """can_access_workspace 的 SQL 形态"""
    conditions = [
        Workspace.user_id == user_id,
        exists()
        .where(WorkspaceUser.workspace_id == Workspace.id)
        .where(WorkspaceUser.user_id == user_id),
    ]
    if team_ids:
        conditions.append(Workspace.team_id.in_(team_ids))
    return or_(*conditions)


# ==================== 创建与读取 ====================

async def create_workspace(
    session: AsyncSession,
    *,
    organisation_id: str,
    user_id: str,
    name: str,
    description: str | None = None,
    parent_id: str | None = None,
    team_id: str | None = None,
    relations: WorkspaceRelations | None = None,
    deadline: Deadline | None = None,
) -> Workspace:
    """
    创建工作区并写入初始关联

    工作区行与所有关联在同一个事务中写入，任一关联写入失败时工作区也不会留下。
    未指定 team_id 时由创建者本人持有。

    Raises:
        NotFoundError: 父工作区/团队/条目/成员不在本组织
        PermissionDeniedError: 无权访问父工作区或关联条目
        StructuralInvariantError: 创建者不是指定团队的成员
    """
    relations = relations or WorkspaceRelations()

    if team_id is not None:
        await _check_team_owner(session, team_id, user_id, organisation_id, deadline)
    if parent_id is not None:
        await _check_parent(session, parent_id, user_id, organisation_id, deadline)
    await _check_relations(session, relations, user_id, organisation_id, deadline)

    workspace = Workspace(
        organisation_id=organisation_id,
        user_id=None if team_id is not None else user_id,
        team_id=team_id,
        parent_id=parent_id,
        name=name,
        description=description,
    )
    async with atomic(session):
        session.add(workspace)
        await bounded(session.flush(), deadline)
        await _insert_relations(session, workspace.id, relations, deadline)

    logger.info(
        f"工作区已创建: {workspace.id} ({name})",
        extra={"organisation_id": organisation_id, "user_id": user_id},
    )
    return workspace


async def get_workspace(
    session: AsyncSession,
    workspace_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> Workspace:
    return await require_workspace_access(
        session, workspace_id, user_id, organisation_id, deadline=deadline
    )


async def list_workspaces(
    session: AsyncSession,
    *,
    organisation_id: str,
    user_id: str,
    parent_id: str | None = None,
    deadline: Deadline | None = None,
) -> list[Workspace]:
    """
    列出用户可访问的工作区，按名称排序

    Args:
        parent_id: 为 None 时只返回根工作区，否则返回该父节点下的直接子节点
    """
    team_ids = await get_all_user_team_ids(session, user_id, deadline=deadline)
    stmt = select(Workspace).where(
        Workspace.organisation_id == organisation_id,
        _workspace_access_condition(user_id, team_ids),
    )
    if parent_id is None:
        stmt = stmt.where(Workspace.parent_id.is_(None))
    else:
        stmt = stmt.where(Workspace.parent_id == parent_id)
    stmt = stmt.order_by(Workspace.name, Workspace.id)

    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())


async def list_shared_workspaces(
    session: AsyncSession,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> list[Workspace]:
    """列出通过显式成员关系共享给用户、但不由用户本人持有的工作区"""
    stmt = (
        select(Workspace)
        .join(WorkspaceUser, WorkspaceUser.workspace_id == Workspace.id)
        .where(
            Workspace.organisation_id == organisation_id,
            WorkspaceUser.user_id == user_id,
            or_(Workspace.user_id.is_(None), Workspace.user_id != user_id),
        )
        .order_by(Workspace.name, Workspace.id)
    )
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())


async def get_child_workspaces(
    session: AsyncSession,
    workspace_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> list[Workspace]:
    """
    获取直接子工作区

    只检查对父工作区的访问权限，子工作区本身不再逐个判定。
    """
    await require_workspace_access(session, workspace_id, user_id, organisation_id, deadline=deadline)
    stmt = (
        select(Workspace)
        .where(
            Workspace.organisation_id == organisation_id,
            Workspace.parent_id == workspace_id,
        )
        .order_by(Workspace.name, Workspace.id)
    )
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())


async def get_parent_workspace(
    session: AsyncSession,
    workspace_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> Workspace | None:
    """
    获取父工作区（根工作区返回 None）

    只检查对父工作区的访问权限，子工作区本身不判定。
    """
    result = await bounded(
        session.execute(
            select(Workspace.parent_id).where(
                Workspace.id == workspace_id,
                Workspace.organisation_id == organisation_id,
            )
        ),
        deadline,
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("Workspace")
    if row.parent_id is None:
        return None
    return await require_workspace_access(
        session, row.parent_id, user_id, organisation_id, deadline=deadline
    )


# ==================== 修改与删除 ====================

async def update_workspace(
    session: AsyncSession,
    workspace_id: str,
    changes: dict[str, Any],
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> Workspace:
    """
    更新工作区

    Args:
        changes: 只包含需要修改的字段（name / description / parent_id / team_id / user_id），
            值为 None 表示清空该字段（name 除外）

    Raises:
        PermissionDeniedError: 非所有者（无直接所有者时为非组织管理员）修改 user_id
        StructuralInvariantError: 同时设置用户与团队所有者、指派非本人所在团队、
            父节点成环、清空所有者后没有任何显式成员
    """
    workspace = await require_workspace_access(
        session, workspace_id, user_id, organisation_id, deadline=deadline
    )

    new_user_id = changes.get("user_id", workspace.user_id)
    new_team_id = changes.get("team_id", workspace.team_id)
    if new_user_id is not None and new_team_id is not None:
        raise StructuralInvariantError("A workspace cannot be owned by a user and a team at once")

    if "team_id" in changes and new_team_id is not None and new_team_id != workspace.team_id:
        await _check_team_owner(session, new_team_id, user_id, organisation_id, deadline)
    if "user_id" in changes and new_user_id != workspace.user_id:
        await _check_owner_change(session, workspace, user_id, organisation_id, deadline)
        if new_user_id is not None:
            await _check_organisation_users(session, [new_user_id], organisation_id, deadline)
    if "parent_id" in changes and changes["parent_id"] is not None:
        if changes["parent_id"] == workspace.id:
            raise StructuralInvariantError("Workspace parent assignment would create a cycle")
        await _check_parent(
            session, changes["parent_id"], user_id, organisation_id, deadline,
            workspace_id=workspace.id,
        )

    clears_owner = new_user_id is None and new_team_id is None and workspace.owner_held

    async with atomic(session):
        await _lock_workspace(session, workspace.id, deadline)
        for field in ("name", "description", "parent_id", "team_id", "user_id"):
            if field not in changes:
                continue
            if field == "name" and changes[field] is None:
                continue
            setattr(workspace, field, changes[field])
        await bounded(session.flush(), deadline)
        if clears_owner and await _count_members(session, workspace.id, deadline) == 0:
            raise StructuralInvariantError(
                "Removing the owner would leave the workspace without owners or members"
            )
    return workspace


async def delete_workspace(
    session: AsyncSession,
    workspace_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    """删除工作区及其整个子树；条目保留，workspace_id 置空"""
    await require_workspace_access(session, workspace_id, user_id, organisation_id, deadline=deadline)
    async with atomic(session):
        await bounded(
            session.execute(
                delete(Workspace).where(
                    Workspace.id == workspace_id,
                    Workspace.organisation_id == organisation_id,
                )
            ),
            deadline,
        )
    logger.info(f"工作区已删除: {workspace_id}", extra={"user_id": user_id})


# ==================== 关联与成员 ====================

async def add_workspace_relations(
    session: AsyncSession,
    workspace_id: str,
    relations: WorkspaceRelations,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    """追加关联（已存在的关联被忽略）"""
    await require_workspace_access(session, workspace_id, user_id, organisation_id, deadline=deadline)
    await _check_relations(session, relations, user_id, organisation_id, deadline)
    async with atomic(session):
        await _insert_relations(session, workspace_id, relations, deadline)


async def drop_workspace_relations(
    session: AsyncSession,
    workspace_id: str,
    relations: WorkspaceRelations,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    """
    移除关联

    移除成员时同样遵守成员下限与所有者指针清空规则（见 remove_workspace_users）。
    成员下限在同一事务内、删除之后重新计数，工作区行加锁，
    并发的移除请求不会各自看到一个剩余成员而一起提交。
    """
    await require_workspace_access(session, workspace_id, user_id, organisation_id, deadline=deadline)

    async with atomic(session):
        workspace = await _lock_workspace(session, workspace_id, deadline)
        requested_by_owner = workspace.user_id is not None and workspace.user_id == user_id

        for field_name, (model, column) in RELATION_TABLES.items():
            ids = getattr(relations, field_name)
            if not ids:
                continue
            await bounded(
                session.execute(
                    delete(model).where(
                        model.workspace_id == workspace_id,
                        getattr(model, column).in_(ids),
                    )
                ),
                deadline,
            )
        if not relations.user_ids:
            return

        if workspace.user_id is not None and workspace.user_id in relations.user_ids:
            workspace.user_id = None
            await bounded(session.flush(), deadline)
        if not requested_by_owner:
            await _check_member_floor(session, workspace, user_id, deadline)


async def add_workspace_users(
    session: AsyncSession,
    workspace_id: str,
    user_ids: list[str],
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    """添加显式成员（重复添加被忽略）"""
    await add_workspace_relations(
        session,
        workspace_id,
        WorkspaceRelations(user_ids=user_ids),
        organisation_id=organisation_id,
        user_id=user_id,
        deadline=deadline,
    )


async def _check_member_floor(
    session: AsyncSession,
    workspace: Workspace,
    requesting_user_id: str,
    deadline: Deadline | None,
) -> None:
    """
    成员下限

    在删除之后、提交之前调用：工作区不再由用户或团队持有且没有剩余显式成员时拒绝，
    由外层事务回滚整个移除。
    """
    if workspace.owner_held:
        return

    if await _count_members(session, workspace.id, deadline) == 0:
        logger.info(
            "拒绝移除工作区最后的成员",
            extra={"workspace_id": workspace.id, "user_id": requesting_user_id},
        )
        raise StructuralInvariantError(
            "Cannot remove the last member of a workspace without an owner"
        )


async def remove_workspace_users(
    session: AsyncSession,
    workspace_id: str,
    user_ids: list[str],
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    """
    移除显式成员

    - 非直接所有者的请求不能让无主工作区失去全部成员
    - 被移除的用户如果是工作区的直接所有者，所有者字段被清空（工作区保留）
    """
    await drop_workspace_relations(
        session,
        workspace_id,
        WorkspaceRelations(user_ids=user_ids),
        organisation_id=organisation_id,
        user_id=user_id,
        deadline=deadline,
    )


async def list_workspace_users(
    session: AsyncSession,
    workspace_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> list[WorkspaceUser]:
    await require_workspace_access(session, workspace_id, user_id, organisation_id, deadline=deadline)
    stmt = (
        select(WorkspaceUser)
        .where(WorkspaceUser.workspace_id == workspace_id)
        .order_by(WorkspaceUser.user_id)
    )
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())


async def workspace_is_accessible(
    session: AsyncSession,
    workspace_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> bool:
    """组织内的工作区访问判定（工作区不在本组织时返回 False）"""
    result = await bounded(
        session.execute(
            select(Workspace.id).where(
                Workspace.id == workspace_id,
                Workspace.organisation_id == organisation_id,
            )
        ),
        deadline,
    )
    if result.scalar_one_or_none() is None:
        return False
    return await can_access_workspace(session, workspace_id, user_id, deadline=deadline)
