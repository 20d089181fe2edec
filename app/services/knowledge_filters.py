"""
过滤标签注册表 (KnowledgeFilterRegistry)

每个组织维护一份 (category, name) 标签词表，标签通过
knowledge_entry_filters 挂载到知识条目上。

写入语义：
- upsert_filter: 幂等，同一 (组织, 分类, 名称) 永远返回同一个 ID
- rename_filter / recategorize_filters: 单个事务内完成，全部成功或全部回滚；
  目标 (分类, 名称) 已存在时两个标签合并：条目挂载迁移到保留的标签上，旧标签删除
- assign_filter_to_entry: 重复挂载为幂等空操作
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import atomic
from app.db.upsert import insert_ignore, upsert_returning_id
from app.exceptions import NotFoundError
from app.infra.deadline import Deadline, bounded
from app.models import KnowledgeEntryFilter, KnowledgeFilter
from app.services.acl import require_entry_access

logger = logging.getLogger(__name__)


# ==================== 内部辅助 ====================

async def _find_filter(
    session: AsyncSession,
    organisation_id: str,
    category: str,
    name: str,
    deadline: Deadline | None,
    *,
    for_update: bool = False,
) -> KnowledgeFilter | None:
    stmt = select(KnowledgeFilter).where(
        KnowledgeFilter.organisation_id == organisation_id,
        KnowledgeFilter.category == category,
        KnowledgeFilter.name == name,
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await bounded(session.execute(stmt), deadline)
    return result.scalar_one_or_none()


async def _load_filter(
    session: AsyncSession,
    filter_id: str,
    organisation_id: str,
    deadline: Deadline | None,
) -> KnowledgeFilter:
    stmt = select(KnowledgeFilter).where(
        KnowledgeFilter.id == filter_id,
        KnowledgeFilter.organisation_id == organisation_id,
    )
    result = await bounded(session.execute(stmt), deadline)
    knowledge_filter = result.scalar_one_or_none()
    if knowledge_filter is None:
        raise NotFoundError("Knowledge filter")
    return knowledge_filter


async def _merge_filter(
    session: AsyncSession,
    source: KnowledgeFilter,
    target: KnowledgeFilter,
    deadline: Deadline | None,
) -> None:
    """把 source 上的条目挂载迁移到 target，然后删除 source（调用方负责事务）"""
    result = await bounded(
        session.execute(
            select(KnowledgeEntryFilter.knowledge_entry_id).where(
                KnowledgeEntryFilter.knowledge_filter_id == source.id
            )
        ),
        deadline,
    )
    entry_ids = list(result.scalars().all())

    await bounded(
        insert_ignore(
            session,
            KnowledgeEntryFilter,
            [{"knowledge_entry_id": entry_id, "knowledge_filter_id": target.id} for entry_id in entry_ids],
            index_elements=["knowledge_entry_id", "knowledge_filter_id"],
        ),
        deadline,
    )
    await bounded(
        session.execute(
            delete(KnowledgeEntryFilter).where(KnowledgeEntryFilter.knowledge_filter_id == source.id)
        ),
        deadline,
    )
    await bounded(
        session.execute(delete(KnowledgeFilter).where(KnowledgeFilter.id == source.id)),
        deadline,
    )
    logger.info(
        f"过滤标签合并: {source.category}/{source.name} -> {target.category}/{target.name}, "
        f"迁移 {len(entry_ids)} 个条目"
    )


# ==================== 词表 ====================

async def upsert_filter(
    session: AsyncSession,
    category: str,
    name: str,
    *,
    organisation_id: str,
    deadline: Deadline | None = None,
) -> str:
    """
    创建标签或返回已有标签的 ID

    Returns:
        标签 ID（重复调用返回同一个 ID，数据库中只有一行）
    """
    async with atomic(session):
        filter_id = await bounded(
            upsert_returning_id(
                session,
                KnowledgeFilter,
                {"organisation_id": organisation_id, "category": category, "name": name},
                index_elements=["organisation_id", "category", "name"],
            ),
            deadline,
        )
    return filter_id


async def rename_filter(
    session: AsyncSession,
    category: str,
    old_name: str,
    new_name: str,
    *,
    organisation_id: str,
    deadline: Deadline | None = None,
) -> KnowledgeFilter:
    """
    重命名分类下的单个标签

    新名称已存在时合并到已有标签并返回它。

    Raises:
        NotFoundError: 旧标签不存在
    """
    async with atomic(session):
        source = await _find_filter(
            session, organisation_id, category, old_name, deadline, for_update=True
        )
        if source is None:
            raise NotFoundError("Knowledge filter")
        if old_name == new_name:
            return source

        target = await _find_filter(session, organisation_id, category, new_name, deadline)
        if target is not None:
            await _merge_filter(session, source, target, deadline)
            session.expunge(source)
            return target

        source.name = new_name
        await bounded(session.flush(), deadline)
    return source


async def recategorize_filters(
    session: AsyncSession,
    old_category: str,
    new_category: str,
    *,
    organisation_id: str,
    deadline: Deadline | None = None,
) -> int:
    """
    把 old_category 下的所有标签移动到 new_category

    整个操作在一个事务里完成：中途失败（包括超时）时一个标签都不会移动。

    Returns:
        移动（含合并）的标签数量
    """
    if old_category == new_category:
        return 0

    async with atomic(session):
        result = await bounded(
            session.execute(
                select(KnowledgeFilter)
                .where(
                    KnowledgeFilter.organisation_id == organisation_id,
                    KnowledgeFilter.category == old_category,
                )
                .order_by(KnowledgeFilter.name)
                .with_for_update()
            ),
            deadline,
        )
        filters = list(result.scalars().all())

        for knowledge_filter in filters:
            target = await _find_filter(
                session, organisation_id, new_category, knowledge_filter.name, deadline
            )
            if target is not None:
                await _merge_filter(session, knowledge_filter, target, deadline)
                session.expunge(knowledge_filter)
            else:
                knowledge_filter.category = new_category
                await bounded(session.flush(), deadline)

    logger.info(
        f"过滤标签分类移动: {old_category} -> {new_category}, 共 {len(filters)} 个",
        extra={"organisation_id": organisation_id},
    )
    return len(filters)


async def delete_filter(
    session: AsyncSession,
    filter_id: str,
    *,
    organisation_id: str,
    deadline: Deadline | None = None,
) -> None:
    """删除标签及其全部条目挂载"""
    async with atomic(session):
        await _load_filter(session, filter_id, organisation_id, deadline)
        await bounded(
            session.execute(
                delete(KnowledgeEntryFilter).where(KnowledgeEntryFilter.knowledge_filter_id == filter_id)
            ),
            deadline,
        )
        await bounded(
            session.execute(
                delete(KnowledgeFilter).where(
                    KnowledgeFilter.id == filter_id,
                    KnowledgeFilter.organisation_id == organisation_id,
                )
            ),
            deadline,
        )


async def list_filters(
    session: AsyncSession,
    *,
    organisation_id: str,
    category: str | None = None,
    deadline: Deadline | None = None,
) -> list[KnowledgeFilter]:
    """列出标签记录，按分类、名称排序"""
    stmt = select(KnowledgeFilter).where(KnowledgeFilter.organisation_id == organisation_id)
    if category is not None:
        stmt = stmt.where(KnowledgeFilter.category == category)
    stmt = stmt.order_by(KnowledgeFilter.category, KnowledgeFilter.name)
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())


async def list_filters_by_category(
    session: AsyncSession,
    *,
    organisation_id: str,
    deadline: Deadline | None = None,
) -> dict[str, list[str]]:
    """
    按分类分组返回标签名

    Returns:
        {category: [name, ...]}，分类与名称均按字母序
    """
    stmt = (
        select(KnowledgeFilter.category, KnowledgeFilter.name)
        .where(KnowledgeFilter.organisation_id == organisation_id)
        .order_by(KnowledgeFilter.category, KnowledgeFilter.name)
    )
    result = await bounded(session.execute(stmt), deadline)

    grouped: dict[str, list[str]] = {}
    for category, name in result.all():
        grouped.setdefault(category, []).append(name)
    return grouped


# ==================== 条目挂载 ====================

async def assign_filter_to_entry(
    session: AsyncSession,
    entry_id: str,
    filter_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    """
    为条目挂载标签

    标签与条目都必须属于当前组织，且用户能访问该条目。
    """
    await _load_filter(session, filter_id, organisation_id, deadline)
    await require_entry_access(session, entry_id, user_id, organisation_id, deadline=deadline)

    async with atomic(session):
        await bounded(
            insert_ignore(
                session,
                KnowledgeEntryFilter,
                [{"knowledge_entry_id": entry_id, "knowledge_filter_id": filter_id}],
                index_elements=["knowledge_entry_id", "knowledge_filter_id"],
            ),
            deadline,
        )


async def remove_filter_from_entry(
    session: AsyncSession,
    entry_id: str,
    filter_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> None:
    await _load_filter(session, filter_id, organisation_id, deadline)
    await require_entry_access(session, entry_id, user_id, organisation_id, deadline=deadline)

    async with atomic(session):
        await bounded(
            session.execute(
                delete(KnowledgeEntryFilter).where(
                    KnowledgeEntryFilter.knowledge_entry_id == entry_id,
                    KnowledgeEntryFilter.knowledge_filter_id == filter_id,
                )
            ),
            deadline,
        )


async def list_filters_for_entry(
    session: AsyncSession,
    entry_id: str,
    *,
    organisation_id: str,
    user_id: str,
    deadline: Deadline | None = None,
) -> list[KnowledgeFilter]:
    """获取条目上挂载的标签，按分类、名称排序"""
    await require_entry_access(session, entry_id, user_id, organisation_id, deadline=deadline)

    stmt = (
        select(KnowledgeFilter)
        .join(KnowledgeEntryFilter, KnowledgeEntryFilter.knowledge_filter_id == KnowledgeFilter.id)
        .where(
            KnowledgeEntryFilter.knowledge_entry_id == entry_id,
            KnowledgeFilter.organisation_id == organisation_id,
        )
        .order_by(KnowledgeFilter.category, KnowledgeFilter.name)
    )
    result = await bounded(session.execute(stmt), deadline)
    return list(result.scalars().all())
