"""
ACL 权限服务模块 (AccessResolver)

决定用户在某个组织内能否读取/修改某个知识条目或工作区。

知识条目的访问规则（按顺序判定，任一步放行即放行）：

1. 直接访问（条目必须属于当前组织）：
   - 用户是条目所有者；或
   - 团队条件 且 工作区条件 同时满足：
       团队条件   = 条目没有团队，或条目团队在用户的团队中
       工作区条件 = 条目没有工作区，或条目工作区在用户可进入的工作区中
   注意：团队与工作区都为空的条目，对组织内所有成员可见，与所有者无关。
2. 知识组访问：
   - 条目没有知识组 → 拒绝
   - 知识组对整个组织开放 → 放行
   - 知识组分配给了用户所在的任一团队 → 放行
3. 其余情况拒绝。

同一规则有两种形态：
- can_access_entry(): 对单个条目逐步判定，返回 bool
- build_entry_access_condition(): 编译成一个 SQL 布尔表达式，
  供列表查询与片段检索使用，保证所有读取路径使用完全相同的规则

工作区的访问规则（can_access_workspace）：
所有者是用户本人，或所属团队在用户的团队中，或用户有显式成员记录。
该判定内部不做组织过滤，调用方只能传入已确认属于当前组织的工作区 ID。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import and_, exists, false, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, PermissionDeniedError
from app.infra.deadline import Deadline, bounded
from app.models import (
    KnowledgeEntry,
    KnowledgeGroup,
    KnowledgeGroupTeamAssignment,
    Workspace,
)
from app.services.knowledge_groups import is_org_wide, is_team_assigned
from app.services.membership import (
    get_all_user_team_ids,
    get_explicit_workspace_ids,
    get_user_team_ids,
    get_user_workspace_ids,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserContext:
    """
    用户在某个组织内的成员关系快照，用于一次请求内的权限判定

    Attributes:
        user_id: 用户 ID
        organisation_id: 当前组织 ID
        team_ids: 用户在该组织内的团队 ID
        workspace_ids: 用户在该组织内可进入的工作区 ID
    """
    user_id: str
    organisation_id: str
    team_ids: tuple[str, ...] = field(default_factory=tuple)
    workspace_ids: tuple[str, ...] = field(default_factory=tuple)


async def load_user_context(
    session: AsyncSession,
    user_id: str,
    organisation_id: str,
    *,
    deadline: Deadline | None = None,
) -> UserContext:
    """查询团队与工作区集合，构造 UserContext（不跨调用缓存）"""
    team_ids = await get_user_team_ids(session, user_id, organisation_id, deadline=deadline)
    workspace_ids = await get_user_workspace_ids(
        session, user_id, organisation_id, team_ids, deadline=deadline
    )
    return UserContext(
        user_id=user_id,
        organisation_id=organisation_id,
        team_ids=tuple(team_ids),
        workspace_ids=tuple(workspace_ids),
    )


# ==================== SQL 条件 ====================

def build_direct_access_condition(user: UserContext):
    """直接访问条件：所有者，或 团队条件 AND 工作区条件"""
    team_clause = (
        or_(KnowledgeEntry.team_id.is_(None), KnowledgeEntry.team_id.in_(user.team_ids))
        if user.team_ids
        else KnowledgeEntry.team_id.is_(None)
    )
    workspace_clause = (
        or_(
            KnowledgeEntry.workspace_id.is_(None),
            KnowledgeEntry.workspace_id.in_(user.workspace_ids),
        )
        if user.workspace_ids
        else KnowledgeEntry.workspace_id.is_(None)
    )
    return or_(
        KnowledgeEntry.user_id == user.user_id,
        and_(team_clause, workspace_clause),
    )


def build_group_access_condition(user: UserContext):
    """知识组访问条件：组织级开放的组，或分配给用户团队的组"""
    team_assigned = (
        exists()
        .where(KnowledgeGroupTeamAssignment.knowledge_group_id == KnowledgeGroup.id)
        .where(KnowledgeGroupTeamAssignment.team_id.in_(user.team_ids))
        if user.team_ids
        else false()
    )
    return and_(
        KnowledgeEntry.knowledge_group_id.is_not(None),
        exists()
        .where(KnowledgeGroup.id == KnowledgeEntry.knowledge_group_id)
        .where(KnowledgeGroup.organisation_id == user.organisation_id)
        .where(or_(KnowledgeGroup.organisation_wide_access.is_(True), team_assigned)),
    )


def build_entry_access_condition(user: UserContext):
    """
    构建条目访问的完整 SQL 条件

    组织过滤 AND (直接访问 OR 知识组访问)

    Example:
        stmt = select(KnowledgeEntry).where(build_entry_access_condition(user))
    """
    return and_(
        KnowledgeEntry.organisation_id == user.organisation_id,
        or_(build_direct_access_condition(user), build_group_access_condition(user)),
    )


# ==================== 单条判定 ====================

async def can_access_entry(
    session: AsyncSession,
    entry_id: str,
    user_id: str,
    organisation_id: str,
    *,
    user: UserContext | None = None,
    deadline: Deadline | None = None,
) -> bool:
    """
    判定用户能否访问知识条目

    Args:
        session: 数据库会话
        entry_id: 条目 ID
        user_id: 用户 ID
        organisation_id: 组织 ID
        user: 同一请求内已加载的 UserContext，为 None 时重新查询
        deadline: 时间预算

    Returns:
        True 如果用户可以访问；条目不存在或属于其他组织时返回 False
    """
    if user is None:
        user = await load_user_context(session, user_id, organisation_id, deadline=deadline)

    direct_stmt = select(KnowledgeEntry.id).where(
        KnowledgeEntry.id == entry_id,
        KnowledgeEntry.organisation_id == organisation_id,
        build_direct_access_condition(user),
    )
    result = await bounded(session.execute(direct_stmt), deadline)
    if result.scalar_one_or_none() is not None:
        logger.debug(f"条目访问放行(直接): user={user_id} entry={entry_id}")
        return True

    group_stmt = select(KnowledgeEntry.knowledge_group_id).where(
        KnowledgeEntry.id == entry_id,
        KnowledgeEntry.organisation_id == organisation_id,
    )
    result = await bounded(session.execute(group_stmt), deadline)
    group_id = result.scalar_one_or_none()

    if group_id is not None:
        if await is_org_wide(
            session, group_id, organisation_id=organisation_id, deadline=deadline
        ):
            logger.debug(f"条目访问放行(组织级知识组): user={user_id} entry={entry_id}")
            return True
        if await is_team_assigned(session, group_id, list(user.team_ids), deadline=deadline):
            logger.debug(f"条目访问放行(团队知识组): user={user_id} entry={entry_id}")
            return True

    logger.info(
        "条目访问拒绝",
        extra={"user_id": user_id, "organisation_id": organisation_id, "entry_id": entry_id},
    )
    return False


async def can_access_workspace(
    session: AsyncSession,
    workspace_id: str,
    user_id: str,
    *,
    deadline: Deadline | None = None,
) -> bool:
    """
    判定用户能否访问工作区

    不做组织过滤：调用方必须保证 workspace_id 已经确认属于当前组织。
    """
    stmt = select(Workspace.user_id, Workspace.team_id).where(Workspace.id == workspace_id)
    result = await bounded(session.execute(stmt), deadline)
    row = result.one_or_none()
    if row is None:
        return False

    if row.user_id is not None and row.user_id == user_id:
        return True

    if row.team_id is not None:
        team_ids = await get_all_user_team_ids(session, user_id, deadline=deadline)
        if row.team_id in team_ids:
            return True

    explicit_ids = await get_explicit_workspace_ids(session, user_id, deadline=deadline)
    if workspace_id in explicit_ids:
        return True

    logger.info(
        "工作区访问拒绝",
        extra={"user_id": user_id, "workspace_id": workspace_id},
    )
    return False


# ==================== 断言（供 MutationGuard 使用） ====================

async def require_entry_access(
    session: AsyncSession,
    entry_id: str,
    user_id: str,
    organisation_id: str,
    *,
    user: UserContext | None = None,
    deadline: Deadline | None = None,
) -> KnowledgeEntry:
    """
    加载条目并断言用户可以访问

    Raises:
        NotFoundError: 条目不存在或属于其他组织（两者无法区分）
        PermissionDeniedError: 条目存在但用户无权访问
    """
    stmt = select(KnowledgeEntry).where(
        KnowledgeEntry.id == entry_id,
        KnowledgeEntry.organisation_id == organisation_id,
    )
    result = await bounded(session.execute(stmt), deadline)
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFoundError("Knowledge entry")

    if not await can_access_entry(
        session, entry_id, user_id, organisation_id, user=user, deadline=deadline
    ):
        raise PermissionDeniedError("No access to this knowledge entry")
    return entry


async def require_workspace_access(
    session: AsyncSession,
    workspace_id: str,
    user_id: str,
    organisation_id: str,
    *,
    deadline: Deadline | None = None,
) -> Workspace:
    """
    加载本组织内的工作区并断言用户可以访问

    Raises:
        NotFoundError: 工作区不存在或属于其他组织
        PermissionDeniedError: 用户无权访问
    """
    stmt = select(Workspace).where(
        Workspace.id == workspace_id,
        Workspace.organisation_id == organisation_id,
    )
    result = await bounded(session.execute(stmt), deadline)
    workspace = result.scalar_one_or_none()
    if workspace is None:
        raise NotFoundError("Workspace")

    if not await can_access_workspace(session, workspace_id, user_id, deadline=deadline):
        raise PermissionDeniedError("No access to this workspace")
    return workspace


# ==================== 批量过滤 ====================

async def filter_accessible_entry_ids(
    session: AsyncSession,
    user: UserContext,
    entry_ids: list[str],
    *,
    deadline: Deadline | None = None,
) -> set[str]:
    """
    后处理：从一组条目 ID 中筛出用户可以访问的部分

    与 build_entry_access_condition 使用同一规则，一次查询完成。
    """
    if not entry_ids:
        return set()
    stmt = select(KnowledgeEntry.id).where(
        KnowledgeEntry.id.in_(sorted(set(entry_ids))),
        build_entry_access_condition(user),
    )
    result = await bounded(session.execute(stmt), deadline)
    return set(result.scalars().all())
