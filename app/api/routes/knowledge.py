"""
知识条目接口

- 条目读取、更新、删除、访问判定
- 检索候选集：为外部相似度打分器提供已按权限过滤的片段
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Caller, get_db_session, require_org_member
from app.schemas import (
    AccessCheckResponse,
    ChunkCandidate,
    ChunkCandidateRequest,
    ChunkCandidateResponse,
    ChunkContextRequest,
    ChunkContextResponse,
    ChunkHitFilterRequest,
    ChunkHitFilterResponse,
    ChunkResponse,
    KnowledgeEntryListResponse,
    KnowledgeEntryResponse,
    KnowledgeEntryUpdate,
)
from app.services import knowledge as knowledge_service
from app.services.acl import can_access_entry

router = APIRouter(prefix="/v1/organisations/{organisation_id}", tags=["knowledge"])


def _parse_filters(raw: list[str]) -> dict[str, list[str]]:
    """把 ["category:name", ...] 解析为 {category: [name, ...]}"""
    filters: dict[str, list[str]] = {}
    for item in raw:
        category, sep, name = item.partition(":")
        if not sep or not category or not name:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"code": "VALIDATION_ERROR", "detail": f"Invalid filter '{item}', expected category:name"},
            )
        filters.setdefault(category, []).append(name)
    return filters


@router.get("/knowledge", response_model=KnowledgeEntryListResponse)
async def list_knowledge_entries(
    page: int = Query(1, ge=1, description="页码（>=1）"),
    page_size: int = Query(20, ge=1, le=100, description="每页数量（1-100）"),
    team_id: str | None = Query(None),
    workspace_id: str | None = Query(None),
    knowledge_group_id: str | None = Query(None),
    filter: list[str] = Query(default=[], description="过滤标签，格式 category:name，可重复"),
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """列出当前用户可见的知识条目"""
    items, total = await knowledge_service.list_knowledge_entries(
        db,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        page=page,
        page_size=page_size,
        team_id=team_id,
        workspace_id=workspace_id,
        knowledge_group_id=knowledge_group_id,
        filters=_parse_filters(filter),
        deadline=caller.deadline,
    )
    return KnowledgeEntryListResponse(
        items=[KnowledgeEntryResponse.model_validate(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/knowledge/{entry_id}", response_model=KnowledgeEntryResponse)
async def get_knowledge_entry(
    entry_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    entry = await knowledge_service.get_knowledge_entry(
        db, entry_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )
    return KnowledgeEntryResponse.model_validate(entry)


@router.get("/knowledge/{entry_id}/access", response_model=AccessCheckResponse)
async def check_knowledge_access(
    entry_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """
    访问判定

    条目不存在、属于其他组织、或无权访问时都返回 allowed=false。
    """
    allowed = await can_access_entry(
        db, entry_id, caller.user_id, caller.organisation_id, deadline=caller.deadline
    )
    return AccessCheckResponse(entry_id=entry_id, allowed=allowed)


@router.patch("/knowledge/{entry_id}", response_model=KnowledgeEntryResponse)
async def update_knowledge_entry(
    entry_id: str,
    payload: KnowledgeEntryUpdate,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """更新条目（只更新请求中显式给出的字段）"""
    entry = await knowledge_service.update_knowledge_entry(
        db, entry_id, payload.model_dump(exclude_unset=True),
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )
    return KnowledgeEntryResponse.model_validate(entry)


@router.delete("/knowledge/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_knowledge_entry(
    entry_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    await knowledge_service.delete_knowledge_entry(
        db, entry_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


# ==================== 检索候选集 ====================

@router.post("/knowledge-chunks/candidates", response_model=ChunkCandidateResponse)
async def get_chunk_candidates(
    payload: ChunkCandidateRequest,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """
    获取候选片段

    返回用户可见的全部片段（可限定条目），供外部相似度打分器排序。
    """
    chunks = await knowledge_service.get_chunk_candidates(
        db,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        entry_ids=payload.entry_ids,
        limit=payload.limit,
        deadline=caller.deadline,
    )
    items = []
    for chunk in chunks:
        item = ChunkCandidate.model_validate(chunk)
        if not payload.include_embeddings:
            item.embedding = None
        items.append(item)
    return ChunkCandidateResponse(items=items, total=len(items))


@router.post("/knowledge-chunks/filter", response_model=ChunkHitFilterResponse)
async def filter_chunk_hits(
    payload: ChunkHitFilterRequest,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """对打分器返回的命中做二次权限过滤（保持顺序）"""
    hits = await knowledge_service.filter_chunk_hits(
        db, payload.hits,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )
    return ChunkHitFilterResponse(hits=hits)


@router.post("/knowledge-chunks/context", response_model=ChunkContextResponse)
async def expand_chunk_context(
    payload: ChunkContextRequest,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    chunks = await knowledge_service.expand_chunk_context(
        db, payload.chunk_ids,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        before=payload.before,
        after=payload.after,
        deadline=caller.deadline,
    )
    return ChunkContextResponse(items=[ChunkResponse.model_validate(c) for c in chunks])
