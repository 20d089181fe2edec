"""
知识组接口

创建对所有组织成员开放；修改、删除、团队分配需要组所有者或组织管理员。
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Caller, get_db_session, require_org_member
from app.schemas import (
    KnowledgeGroupCreate,
    KnowledgeGroupListResponse,
    KnowledgeGroupResponse,
    KnowledgeGroupUpdate,
    TeamAssignmentRequest,
)
from app.services import knowledge_groups as group_service

router = APIRouter(prefix="/v1/organisations/{organisation_id}", tags=["knowledge-groups"])


@router.post("/knowledge-groups", response_model=KnowledgeGroupResponse)
async def create_knowledge_group(
    payload: KnowledgeGroupCreate,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await group_service.create_knowledge_group(
        db,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        name=payload.name,
        description=payload.description,
        organisation_wide_access=payload.organisation_wide_access,
        deadline=caller.deadline,
    )


async def _to_responses(
    db: AsyncSession,
    groups: list,
    include_team_assignments: bool,
    caller: Caller,
) -> list[KnowledgeGroupResponse]:
    """ORM -> 响应模型，按需内联团队分配"""
    items = [KnowledgeGroupResponse.model_validate(g) for g in groups]
    if not include_team_assignments:
        return items
    team_ids = await group_service.get_team_ids_by_group(
        db, [g.id for g in groups], deadline=caller.deadline
    )
    return [item.model_copy(update={"team_ids": team_ids[item.id]}) for item in items]


@router.get("/knowledge-groups", response_model=KnowledgeGroupListResponse)
async def list_knowledge_groups(
    team_id: str | None = Query(None, description="只返回组织级开放或分配给该团队的组"),
    include_team_assignments: bool = Query(False, description="是否内联返回团队分配"),
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    groups = await group_service.list_knowledge_groups(
        db,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        team_id=team_id,
        deadline=caller.deadline,
    )
    items = await _to_responses(db, groups, include_team_assignments, caller)
    return KnowledgeGroupListResponse(items=items, total=len(items))


@router.get("/knowledge-groups/{group_id}", response_model=KnowledgeGroupResponse)
async def get_knowledge_group(
    group_id: str,
    include_team_assignments: bool = Query(False, description="是否内联返回团队分配"),
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    group = await group_service.get_knowledge_group(
        db, group_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )
    items = await _to_responses(db, [group], include_team_assignments, caller)
    return items[0]


@router.patch("/knowledge-groups/{group_id}", response_model=KnowledgeGroupResponse)
async def update_knowledge_group(
    group_id: str,
    payload: KnowledgeGroupUpdate,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await group_service.update_knowledge_group(
        db, group_id, payload.model_dump(exclude_unset=True),
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.delete("/knowledge-groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_knowledge_group(
    group_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    await group_service.delete_knowledge_group(
        db, group_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


# ==================== 团队分配 ====================

@router.get("/knowledge-groups/{group_id}/teams", response_model=list[str])
async def list_teams_for_group(
    group_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await group_service.list_teams_for_group(
        db, group_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.post("/knowledge-groups/{group_id}/teams", status_code=status.HTTP_204_NO_CONTENT)
async def assign_team_to_group(
    group_id: str,
    payload: TeamAssignmentRequest,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """分配团队（重复分配为空操作）"""
    await group_service.assign_team_to_group(
        db, group_id, payload.team_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.delete("/knowledge-groups/{group_id}/teams/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_team_from_group(
    group_id: str,
    team_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    await group_service.remove_team_from_group(
        db, group_id, team_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )
