"""
过滤标签接口

词表的读取对所有组织成员开放，修改（创建、重命名、移动分类、删除）需要组织管理员。
条目上的标签挂载要求用户能访问该条目。
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Caller, get_db_session, require_org_admin, require_org_member
from app.schemas import (
    EntryFilterAssign,
    KnowledgeFilterRecategorize,
    KnowledgeFilterRename,
    KnowledgeFilterResponse,
    KnowledgeFiltersByCategory,
    KnowledgeFilterUpsert,
    RecategorizeResponse,
)
from app.services import knowledge_filters as filter_service

router = APIRouter(prefix="/v1/organisations/{organisation_id}", tags=["knowledge-filters"])


@router.get("/knowledge-filters", response_model=KnowledgeFiltersByCategory)
async def list_filters_by_category(
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """按分类分组列出标签名"""
    categories = await filter_service.list_filters_by_category(
        db, organisation_id=caller.organisation_id, deadline=caller.deadline
    )
    return KnowledgeFiltersByCategory(categories=categories)


@router.get("/knowledge-filters/items", response_model=list[KnowledgeFilterResponse])
async def list_filters(
    category: str | None = Query(None, description="只返回该分类"),
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await filter_service.list_filters(
        db, organisation_id=caller.organisation_id, category=category, deadline=caller.deadline
    )


@router.post("/knowledge-filters", response_model=KnowledgeFilterResponse)
async def upsert_filter(
    payload: KnowledgeFilterUpsert,
    caller: Caller = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """创建标签；已存在时返回已有标签（幂等）"""
    filter_id = await filter_service.upsert_filter(
        db, payload.category, payload.name,
        organisation_id=caller.organisation_id,
        deadline=caller.deadline,
    )
    return KnowledgeFilterResponse(
        id=filter_id,
        organisation_id=caller.organisation_id,
        category=payload.category,
        name=payload.name,
    )


@router.post("/knowledge-filters/rename", response_model=KnowledgeFilterResponse)
async def rename_filter(
    payload: KnowledgeFilterRename,
    caller: Caller = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await filter_service.rename_filter(
        db, payload.category, payload.old_name, payload.new_name,
        organisation_id=caller.organisation_id,
        deadline=caller.deadline,
    )


@router.post("/knowledge-filters/recategorize", response_model=RecategorizeResponse)
async def recategorize_filters(
    payload: KnowledgeFilterRecategorize,
    caller: Caller = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """把一个分类下的所有标签移动到新分类（单个事务）"""
    moved = await filter_service.recategorize_filters(
        db, payload.old_category, payload.new_category,
        organisation_id=caller.organisation_id,
        deadline=caller.deadline,
    )
    return RecategorizeResponse(moved=moved)


@router.delete("/knowledge-filters/{filter_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_filter(
    filter_id: str,
    caller: Caller = Depends(require_org_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await filter_service.delete_filter(
        db, filter_id, organisation_id=caller.organisation_id, deadline=caller.deadline
    )


# ==================== 条目挂载 ====================

@router.get("/knowledge/{entry_id}/filters", response_model=list[KnowledgeFilterResponse])
async def list_filters_for_entry(
    entry_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await filter_service.list_filters_for_entry(
        db, entry_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.post("/knowledge/{entry_id}/filters", status_code=status.HTTP_204_NO_CONTENT)
async def assign_filter_to_entry(
    entry_id: str,
    payload: EntryFilterAssign,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    await filter_service.assign_filter_to_entry(
        db, entry_id, payload.filter_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.delete("/knowledge/{entry_id}/filters/{filter_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_filter_from_entry(
    entry_id: str,
    filter_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    await filter_service.remove_filter_from_entry(
        db, entry_id, filter_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )
