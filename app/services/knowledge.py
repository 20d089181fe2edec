"""
知识条目服务 (MutationGuard + 检索候选集)

条目的所有读取、修改、删除都经过这里，并且使用 app.services.acl 中的同一条访问规则：
- 单条操作：require_entry_access（不存在 → NotFound，无权限 → PermissionDenied）
- 列表与片段检索：build_entry_access_condition 编译到 SQL 中

相似度打分由外部服务完成，这里只负责：
1. get_chunk_candidates: 输出用户可见的候选片段集合
2. filter_chunk_hits: 对打分结果做二次权限过滤（Security Trimming）
3. expand_chunk_context: 为命中片段补充同一条目内的前后片段
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.db.session import atomic
from app.exceptions import NotFoundError, StructuralInvariantError
from app.infra.deadline import Deadline, bounded
from app.models import (
    KnowledgeChunk,
    KnowledgeEntry,
    KnowledgeEntryFilter,
    KnowledgeFilter,
    KnowledgeGroup,
)
from app.schemas.knowledge import ChunkHit
from app.services.acl import (
    build_entry_access_condition,
    filter_accessible_entry_ids,
    load_user_context,
    require_entry_access,
    require_workspace_access,
)
from app.services.membership import is_user_part_of_team, team_in_organisation

logger = logging.getLogger(__name__)


# ==================== 条目读取 ====================

async def get_knowledge_entry(
    session: AsyncSession,
    entry_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> KnowledgeEntry:
    return await require_entry_access(
        session, entry_id, user_id, organisation_id, deadline=deadline
    )


async def list_knowledge_entries(
    session: AsyncSession,
    *,
    organisation_id: str,
    user_id: str,
    page: int = 1,
    page_size: int = 20,
    team_id: str | None = None,
    workspace_id: str | None = None,
    knowledge_group_id: str | None = None,
    filters: dict[str, list[str]] | None = None,
    deadline: Deadline | None = None,
) -> tuple[list[KnowledgeEntry], int]:
    """
    分页列出用户可见的条目，按创建时间倒序

    Args:
        filters: {category: [name, ...]}，每个分类之间为 AND，分类内多个名称为 OR

    Returns:
        (当前页条目, 总数)
    """
    user = await load_user_context(session, user_id, organisation_id, deadline=deadline)

    conditions = [build_entry_access_condition(user)]
    if team_id is not None:
        conditions.append(KnowledgeEntry.team_id == team_id)
    if workspace_id is not None:
        conditions.append(KnowledgeEntry.workspace_id == workspace_id)
    if knowledge_group_id is not None:
        conditions.append(KnowledgeEntry.knowledge_group_id == knowledge_group_id)

    for category, names in (filters or {}).items():
        if not names:
            continue
        tagged = (
            select(KnowledgeEntryFilter.knowledge_entry_id)
            .join(KnowledgeFilter, KnowledgeFilter.id == KnowledgeEntryFilter.knowledge_filter_id)
            .where(
                KnowledgeFilter.organisation_id == organisation_id,
                KnowledgeFilter.category == category,
                KnowledgeFilter.name.in_(names),
            )
        )
        conditions.append(KnowledgeEntry.id.in_(tagged))

    where = and_(*conditions)

    count_stmt = select(func.count()).select_from(KnowledgeEntry).where(where)
    total = (await bounded(session.execute(count_stmt), deadline)).scalar_one()

    stmt = (
        select(KnowledgeEntry)
        .where(where)
        .order_by(KnowledgeEntry.created_at.desc(), KnowledgeEntry.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all()), total


# ==================== 条目修改 ====================

async def update_knowledge_entry(
    session: AsyncSession,
    entry_id: str,
    changes: dict[str, Any],
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> KnowledgeEntry:
    """
    更新条目

    Args:
        changes: 只包含需要修改的字段：
            name / description / abstract / team_id / workspace_id /
            knowledge_group_id / user_owned

    Raises:
        NotFoundError: 条目、团队、工作区或知识组不在本组织
        PermissionDeniedError: 无权访问条目或目标工作区
        StructuralInvariantError: 指派的团队不包含当前用户
    """
    entry = await require_entry_access(
        session, entry_id, user_id, organisation_id, deadline=deadline
    )

    team_id = changes.get("team_id")
    if team_id is not None and team_id != entry.team_id:
        if not await team_in_organisation(session, team_id, organisation_id, deadline=deadline):
            raise NotFoundError("Team")
        if not await is_user_part_of_team(session, user_id, team_id, deadline=deadline):
            raise StructuralInvariantError("User is not part of the provided team")

    workspace_id = changes.get("workspace_id")
    if workspace_id is not None and workspace_id != entry.workspace_id:
        await require_workspace_access(
            session, workspace_id, user_id, organisation_id, deadline=deadline
        )

    group_id = changes.get("knowledge_group_id")
    if group_id is not None and group_id != entry.knowledge_group_id:
        result = await bounded(
            session.execute(
                select(KnowledgeGroup.id).where(
                    KnowledgeGroup.id == group_id,
                    KnowledgeGroup.organisation_id == organisation_id,
                )
            ),
            deadline,
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Knowledge group")

    async with atomic(session):
        for field in ("description", "abstract", "team_id", "workspace_id", "knowledge_group_id"):
            if field in changes:
                setattr(entry, field, changes[field])
        if changes.get("name") is not None:
            entry.name = changes["name"]
        if changes.get("user_owned") is not None:
            entry.user_id = user_id if changes["user_owned"] else None
        await bounded(session.flush(), deadline)

    logger.info(
        f"知识条目已更新: {entry_id}",
        extra={"user_id": user_id, "fields": sorted(changes)},
    )
    return entry


async def delete_knowledge_entry(
    session: AsyncSession,
    entry_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    """删除条目及其片段、标签挂载、工作区关联"""
    await require_entry_access(session, entry_id, user_id, organisation_id, deadline=deadline)
    async with atomic(session):
        await bounded(
            session.execute(
                delete(KnowledgeEntry).where(
                    KnowledgeEntry.id == entry_id,
                    KnowledgeEntry.organisation_id == organisation_id,
                )
            ),
            deadline,
        )
    logger.info(f"知识条目已删除: {entry_id}", extra={"user_id": user_id})


# ==================== 检索候选集 ====================

async def get_chunk_candidates(
    session: AsyncSession,
    *,
    organisation_id: str,
    user_id: str,
    entry_ids: list[str] | None = None,
    limit: int | None = None,
    deadline: Deadline | None = None,
) -> list[KnowledgeChunk]:
    """
    获取用户可见的候选片段（按条目、顺序排序）

    片段可见性完全由所属条目决定。

    Args:
        entry_ids: 只在这些条目中取片段；不可见的条目被静默排除
        limit: 最多返回的片段数，默认使用配置 chunk_candidate_limit
    """
    user = await load_user_context(session, user_id, organisation_id, deadline=deadline)
    if limit is None:
        limit = get_settings().chunk_candidate_limit

    stmt = (
        select(KnowledgeChunk)
        .join(KnowledgeEntry, KnowledgeEntry.id == KnowledgeChunk.knowledge_entry_id)
        .where(build_entry_access_condition(user))
    )
    if entry_ids is not None:
        if not entry_ids:
            return []
        stmt = stmt.where(KnowledgeChunk.knowledge_entry_id.in_(sorted(set(entry_ids))))
    stmt = stmt.order_by(KnowledgeChunk.knowledge_entry_id, KnowledgeChunk.order).limit(limit)

    result = await bounded(session.execute(stmt), deadline)
    chunks = list(result.scalars().all())
    logger.debug(f"候选片段: {len(chunks)} 条 (user={user_id})")
    return chunks


async def filter_chunk_hits(
    session: AsyncSession,
    hits: list[ChunkHit],
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> list[ChunkHit]:
    """
    后处理：按访问规则过滤外部打分结果，保持原有顺序

    不存在的片段、其他组织的片段、不可见条目的片段都会被移除。
    """
    if not hits:
        return []

    result = await bounded(
        session.execute(
            select(KnowledgeChunk.id, KnowledgeChunk.knowledge_entry_id).where(
                KnowledgeChunk.id.in_(sorted({hit.chunk_id for hit in hits}))
            )
        ),
        deadline,
    )
    entry_by_chunk = {row.id: row.knowledge_entry_id for row in result.all()}

    user = await load_user_context(session, user_id, organisation_id, deadline=deadline)
    allowed_entries = await filter_accessible_entry_ids(
        session, user, list(set(entry_by_chunk.values())), deadline=deadline
    )

    filtered = [
        hit for hit in hits
        if entry_by_chunk.get(hit.chunk_id) in allowed_entries
    ]
    if len(filtered) < len(hits):
        logger.debug(f"ACL 过滤: {len(hits)} -> {len(filtered)} 条命中 (user={user_id})")
    return filtered


async def expand_chunk_context(
    session: AsyncSession,
    chunk_ids: list[str],
    *,
    organisation_id: str,
    user_id: str,
    before: int = 1,
    after: int = 1,
    deadline: Deadline | None = None,
) -> list[KnowledgeChunk]:
    """
    上下文扩展：为每个可见的命中片段补充同一条目中前 before 个、后 after 个片段

    Returns:
        去重后的片段，按 (条目, 顺序) 排序
    """
    if not chunk_ids:
        return []

    user = await load_user_context(session, user_id, organisation_id, deadline=deadline)
    result = await bounded(
        session.execute(
            select(KnowledgeChunk.knowledge_entry_id, KnowledgeChunk.order)
            .join(KnowledgeEntry, KnowledgeEntry.id == KnowledgeChunk.knowledge_entry_id)
            .where(
                KnowledgeChunk.id.in_(sorted(set(chunk_ids))),
                build_entry_access_condition(user),
            )
        ),
        deadline,
    )
    anchors = result.all()
    if not anchors:
        return []

    windows = [
        and_(
            KnowledgeChunk.knowledge_entry_id == anchor.knowledge_entry_id,
            KnowledgeChunk.order >= anchor.order - before,
            KnowledgeChunk.order <= anchor.order + after,
        )
        for anchor in anchors
    ]
    result = await bounded(
        session.execute(
            select(KnowledgeChunk)
            .where(or_(*windows))
            .order_by(KnowledgeChunk.knowledge_entry_id, KnowledgeChunk.order)
        ),
        deadline,
    )
    return list(result.scalars().unique().all())
