"""
知识组注册表 (KnowledgeGroupRegistry)

知识组是条目的共享单元：
- organisation_wide_access=True：组内条目对整个组织开放
- 分配给团队：组内条目对这些团队的成员开放

权限规则：
- 读取：组所有者、组织级开放的组、分配给用户所在团队的组、组织管理员
- 修改 / 删除 / 分配团队：组所有者或组织管理员
- 分配团队额外要求：操作者本人是该团队成员，且团队属于同一组织
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, exists, false, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import atomic
from app.db.upsert import insert_ignore
from app.exceptions import NotFoundError, PermissionDeniedError, StructuralInvariantError
from app.infra.deadline import Deadline, bounded
from app.models import KnowledgeGroup, KnowledgeGroupTeamAssignment
from app.services.membership import (
    get_user_team_ids,
    is_organisation_admin,
    is_user_part_of_team,
    team_in_organisation,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "organisation_wide_access")


# ==================== 判定 ====================

async def is_org_wide(
    session: AsyncSession,
    group_id: str,
    *,
    organisation_id: str | None = None,
    deadline: Deadline | None = None,
) -> bool:
    """知识组是否对整个组织开放（组不存在时返回 False）"""
    stmt = select(KnowledgeGroup.organisation_wide_access).where(KnowledgeGroup.id == group_id)
    if organisation_id is not None:
        stmt = stmt.where(KnowledgeGroup.organisation_id == organisation_id)
    result = await bounded(session.execute(stmt), deadline)
    return bool(result.scalar_one_or_none())


async def is_team_assigned(
    session: AsyncSession,
    group_id: str,
    team_ids: list[str],
    *,
    deadline: Deadline | None = None,
) -> bool:
    """知识组是否分配给了 team_ids 中的任意一个团队"""
    if not team_ids:
        return False
    stmt = (
        select(KnowledgeGroupTeamAssignment.id)
        .where(
            KnowledgeGroupTeamAssignment.knowledge_group_id == group_id,
            KnowledgeGroupTeamAssignment.team_id.in_(team_ids),
        )
        .limit(1)
    )
    result = await bounded(session.execute(stmt), deadline)
    return result.scalar_one_or_none() is not None


def build_group_visibility_condition(user_id: str, team_ids: list[str]):
    """用户可以读取的知识组（不含管理员放行）"""
    assigned = (
        exists()
        .where(KnowledgeGroupTeamAssignment.knowledge_group_id == KnowledgeGroup.id)
        .where(KnowledgeGroupTeamAssignment.team_id.in_(team_ids))
        if team_ids
        else false()
    )
    return or_(
        KnowledgeGroup.user_id == user_id,
        KnowledgeGroup.organisation_wide_access.is_(True),
        assigned,
    )


# ==================== 内部辅助 ====================

async def _load_group(
    session: AsyncSession,
    group_id: str,
    organisation_id: str,
    deadline: Deadline | None,
) -> KnowledgeGroup:
    stmt = select(KnowledgeGroup).where(
        KnowledgeGroup.id == group_id,
        KnowledgeGroup.organisation_id == organisation_id,
    )
    result = await bounded(session.execute(stmt), deadline)
    group = result.scalar_one_or_none()
    if group is None:
        raise NotFoundError("Knowledge group")
    return group


async def _can_read_group(
    session: AsyncSession,
    group: KnowledgeGroup,
    user_id: str,
    organisation_id: str,
    deadline: Deadline | None,
) -> bool:
    if group.user_id == user_id or group.organisation_wide_access:
        return True
    team_ids = await get_user_team_ids(session, user_id, organisation_id, deadline=deadline)
    if await is_team_assigned(session, group.id, team_ids, deadline=deadline):
        return True
    return await is_organisation_admin(session, user_id, organisation_id, deadline=deadline)


async def _require_group_manager(
    session: AsyncSession,
    group_id: str,
    user_id: str,
    organisation_id: str,
    deadline: Deadline | None,
) -> KnowledgeGroup:
    """加载知识组并确认操作者是所有者或组织管理员"""
    group = await _load_group(session, group_id, organisation_id, deadline)
    if group.user_id == user_id:
        return group
    if await is_organisation_admin(session, user_id, organisation_id, deadline=deadline):
        return group
    logger.info(
        "拒绝修改知识组",
        extra={"user_id": user_id, "organisation_id": organisation_id, "knowledge_group_id": group_id},
    )
    raise PermissionDeniedError("Only the group owner or an organisation admin can modify this group")


# ==================== CRUD ====================

async def create_knowledge_group(
    session: AsyncSession,
    *,
    organisation_id: str,
    user_id: str,
    name: str,
    description: str | None = None,
    organisation_wide_access: bool = False,
    deadline: Deadline | None = None,
) -> KnowledgeGroup:
    """创建知识组，创建者即所有者"""
    group = KnowledgeGroup(
        organisation_id=organisation_id,
        user_id=user_id,
        name=name,
        description=description,
        organisation_wide_access=organisation_wide_access,
    )
    async with atomic(session):
        session.add(group)
        await bounded(session.flush(), deadline)
    logger.info(f"知识组已创建: {group.id} ({name})")
    return group


async def list_knowledge_groups(
    session: AsyncSession,
    *,
    organisation_id: str,
    user_id: str,
    team_id: str | None = None,
    deadline: Deadline | None = None,
) -> list[KnowledgeGroup]:
    """
    列出用户可见的知识组，按名称排序

    Args:
        team_id: 只返回组织级开放或分配给该团队的组
    """
    stmt = select(KnowledgeGroup).where(KnowledgeGroup.organisation_id == organisation_id)

    if not await is_organisation_admin(session, user_id, organisation_id, deadline=deadline):
        team_ids = await get_user_team_ids(session, user_id, organisation_id, deadline=deadline)
        stmt = stmt.where(build_group_visibility_condition(user_id, team_ids))

    if team_id is not None:
        assigned_to_team = select(KnowledgeGroupTeamAssignment.knowledge_group_id).where(
            KnowledgeGroupTeamAssignment.team_id == team_id
        )
        stmt = stmt.where(
            or_(
                KnowledgeGroup.organisation_wide_access.is_(True),
                KnowledgeGroup.id.in_(assigned_to_team),
            )
        )

    stmt = stmt.order_by(KnowledgeGroup.name, KnowledgeGroup.id)
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())


async def get_knowledge_group(
    session: AsyncSession,
    group_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> KnowledgeGroup:
    """
    获取单个知识组

    Raises:
        NotFoundError: 不存在或属于其他组织
        PermissionDeniedError: 用户不可见
    """
    group = await _load_group(session, group_id, organisation_id, deadline)
    if not await _can_read_group(session, group, user_id, organisation_id, deadline):
        raise PermissionDeniedError("No access to this knowledge group")
    return group


async def update_knowledge_group(
    session: AsyncSession,
    group_id: str,
    changes: dict[str, Any],
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> KnowledgeGroup:
    """更新知识组（只接受 name / description / organisation_wide_access）"""
    group = await _require_group_manager(session, group_id, user_id, organisation_id, deadline)
    async with atomic(session):
        for field, value in changes.items():
            if field not in UPDATABLE_FIELDS:
                continue
            if field in ("name", "organisation_wide_access") and value is None:
                continue
            setattr(group, field, value)
        await bounded(session.flush(), deadline)
    return group


async def delete_knowledge_group(
    session: AsyncSession,
    group_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    """删除知识组；组内条目保留，knowledge_group_id 置空"""
    group = await _require_group_manager(session, group_id, user_id, organisation_id, deadline)
    async with atomic(session):
        await bounded(
            session.execute(
                delete(KnowledgeGroup).where(
                    KnowledgeGroup.id == group.id,
                    KnowledgeGroup.organisation_id == organisation_id,
                )
            ),
            deadline,
        )
    logger.info(f"知识组已删除: {group_id}")


# ==================== 团队分配 ====================

async def assign_team_to_group(
    session: AsyncSession,
    group_id: str,
    team_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    """
    把团队分配给知识组（重复分配为幂等空操作）

    Raises:
        NotFoundError: 知识组或团队不在本组织
        PermissionDeniedError: 操作者不是所有者/管理员
        StructuralInvariantError: 操作者不是该团队成员
    """
    await _require_group_manager(session, group_id, user_id, organisation_id, deadline)
    if not await team_in_organisation(session, team_id, organisation_id, deadline=deadline):
        raise NotFoundError("Team")
    if not await is_user_part_of_team(session, user_id, team_id, deadline=deadline):
        raise StructuralInvariantError("User is not part of the provided team")

    async with atomic(session):
        await bounded(
            insert_ignore(
                session,
                KnowledgeGroupTeamAssignment,
                [{"knowledge_group_id": group_id, "team_id": team_id}],
                index_elements=["knowledge_group_id", "team_id"],
            ),
            deadline,
        )


async def remove_team_from_group(
    session: AsyncSession,
    group_id: str,
    team_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    await _require_group_manager(session, group_id, user_id, organisation_id, deadline)
    async with atomic(session):
        await bounded(
            session.execute(
                delete(KnowledgeGroupTeamAssignment).where(
                    KnowledgeGroupTeamAssignment.knowledge_group_id == group_id,
                    KnowledgeGroupTeamAssignment.team_id == team_id,
                )
            ),
            deadline,
        )


async def list_teams_for_group(
    session: AsyncSession,
    group_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> list[str]:
    """获取知识组已分配的团队 ID（需要对知识组有读权限）"""
    await get_knowledge_group(
        session, group_id, organisation_id=organisation_id, user_id=user_id, deadline=deadline
    )
    stmt = (
        select(KnowledgeGroupTeamAssignment.team_id)
        .where(KnowledgeGroupTeamAssignment.knowledge_group_id == group_id)
        .order_by(KnowledgeGroupTeamAssignment.team_id)
    )
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())


async def get_team_ids_by_group(
    session: AsyncSession,
    group_ids: list[str],
    *,
    deadline: Deadline | None = None,
) -> dict[str, list[str]]:
    """
    批量读取团队分配（调用方已完成读权限检查）

    用于在知识组列表/详情中内联返回团队分配，没有分配的组对应空列表。
    """
    team_ids: dict[str, list[str]] = {group_id: [] for group_id in group_ids}
    if not group_ids:
        return team_ids
    stmt = (
        select(KnowledgeGroupTeamAssignment.knowledge_group_id, KnowledgeGroupTeamAssignment.team_id)
        .where(KnowledgeGroupTeamAssignment.knowledge_group_id.in_(group_ids))
        .order_by(KnowledgeGroupTeamAssignment.team_id)
    )
    result = await bounded(session.execute(stmt), deadline)
    for group_id, team_id in result.all():
        team_ids[group_id].append(team_id)
    return team_ids
