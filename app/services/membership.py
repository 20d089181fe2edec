"""
成员关系索引

回答两个基础问题：
1. 用户在某个组织内属于哪些团队（get_user_team_ids）
2. 用户在某个组织内能进入哪些工作区（get_user_workspace_ids）

以及组织成员/管理员、团队成员的判断。

所有函数都是无状态的：每次调用重新查询，不做跨调用缓存；
同一请求内如需复用，请使用 app.services.acl.load_user_context。
"""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infra.deadline import Deadline, bounded
from app.models import (
    OrganisationMember,
    Team,
    TeamMember,
    Workspace,
    WorkspaceUser,
)
from app.models.organisation import ORGANISATION_ADMIN_ROLES

logger = logging.getLogger(__name__)


# ==================== 团队 ====================

async def get_user_team_ids(
    session: AsyncSession,
    user_id: str,
    organisation_id: str,
    *,
    deadline: Deadline | None = None,
) -> list[str]:
    """
    获取用户在指定组织内所属的团队 ID

    先取出用户在所有组织中的团队成员记录（连同团队本身），
    再在内存中按 organisation_id 过滤。
    注意：复杂度为 O(用户全部团队数)，用户加入的团队很多时会变慢。

    Args:
        session: 数据库会话
        user_id: 用户 ID
        organisation_id: 组织 ID
        deadline: 时间预算

    Returns:
        团队 ID 列表（按加入顺序，不重复）
    """
    stmt = (
        select(TeamMember.team_id, Team.organisation_id)
        .join(Team, Team.id == TeamMember.team_id)
        .where(TeamMember.user_id == user_id)
        .order_by(TeamMember.created_at, TeamMember.team_id)
    )
    result = await bounded(session.execute(stmt), deadline)
    rows = result.all()

    team_ids = [row.team_id for row in rows if row.organisation_id == organisation_id]
    if len(rows) > len(team_ids):
        logger.debug(
            f"用户 {user_id} 共有 {len(rows)} 条团队成员记录，"
            f"组织 {organisation_id} 内 {len(team_ids)} 条"
        )
    return team_ids


async def get_all_user_team_ids(
    session: AsyncSession,
    user_id: str,
    *,
    deadline: Deadline | None = None,
) -> list[str]:
    """获取用户在所有组织中的团队 ID（不做组织过滤，工作区判定使用）"""
    stmt = select(TeamMember.team_id).where(TeamMember.user_id == user_id)
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())


async def is_user_part_of_team(
    session: AsyncSession,
    user_id: str,
    team_id: str,
    *,
    deadline: Deadline | None = None,
) -> bool:
    """检查用户是否为团队成员"""
    stmt = (
        select(TeamMember.id)
        .where(TeamMember.user_id == user_id, TeamMember.team_id == team_id)
        .limit(1)
    )
    result = await bounded(session.execute(stmt), deadline)
    return result.scalar_one_or_none() is not None


async def team_in_organisation(
    session: AsyncSession,
    team_id: str,
    organisation_id: str,
    *,
    deadline: Deadline | None = None,
) -> bool:
    stmt = select(Team.id).where(
        Team.id == team_id, Team.organisation_id == organisation_id
    )
    result = await bounded(session.execute(stmt), deadline)
    return result.scalar_one_or_none() is not None


# ==================== 工作区 ====================

async def get_user_workspace_ids(
    session: AsyncSession,
    user_id: str,
    organisation_id: str,
    team_ids: list[str] | None = None,
    *,
    deadline: Deadline | None = None,
) -> list[str]:
    """
    获取用户在指定组织内可以进入的工作区 ID

    三个来源取并集：
    - 用户直接拥有的工作区
    - 用户所在团队拥有的工作区
    - workspace_users 中有用户显式成员记录的工作区

    不沿父子关系递归：父工作区可见不代表子工作区可见，反之亦然。

    Args:
        team_ids: 预先计算好的团队 ID；为 None 时自动查询
    """
    if team_ids is None:
        team_ids = await get_user_team_ids(
            session, user_id, organisation_id, deadline=deadline
        )

    explicit_ids = select(WorkspaceUser.workspace_id).where(
        WorkspaceUser.user_id == user_id
    )
    conditions = [
        Workspace.user_id == user_id,
        Workspace.id.in_(explicit_ids),
    ]
    if team_ids:
        conditions.append(Workspace.team_id.in_(team_ids))

    stmt = (
        select(Workspace.id)
        .where(Workspace.organisation_id == organisation_id)
        .where(or_(*conditions))
        .order_by(Workspace.id)
    )
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())


async def get_explicit_workspace_ids(
    session: AsyncSession,
    user_id: str,
    *,
    deadline: Deadline | None = None,
) -> list[str]:
    """获取用户有显式成员记录的工作区 ID（不做组织过滤）"""
    stmt = select(WorkspaceUser.workspace_id).where(WorkspaceUser.user_id == user_id)
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())


# ==================== 组织 ====================

async def get_organisation_role(
    session: AsyncSession,
    user_id: str,
    organisation_id: str,
    *,
    deadline: Deadline | None = None,
) -> str | None:
    """获取用户在组织内的角色，不是组织成员时返回 None"""
    stmt = select(OrganisationMember.role).where(
        OrganisationMember.user_id == user_id,
        OrganisationMember.organisation_id == organisation_id,
    )
    result = await bounded(session.execute(stmt), deadline)
    return result.scalar_one_or_none()


async def is_organisation_member(
    session: AsyncSession,
    user_id: str,
    organisation_id: str,
    *,
    deadline: Deadline | None = None,
) -> bool:
    role = await get_organisation_role(session, user_id, organisation_id, deadline=deadline)
    return role is not None


async def is_organisation_admin(
    session: AsyncSession,
    user_id: str,
    organisation_id: str,
    *,
    deadline: Deadline | None = None,
) -> bool:
    """组织管理员：角色为 owner 或 admin"""
    role = await get_organisation_role(session, user_id, organisation_id, deadline=deadline)
    return role in ORGANISATION_ADMIN_ROLES
