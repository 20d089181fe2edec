"""
工作区接口

工作区的读取与修改都要求用户能访问该工作区；
子工作区/父工作区只检查对父节点的访问权限。
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Caller, get_db_session, require_org_member
from app.schemas import (
    WorkspaceCreate,
    WorkspaceListResponse,
    WorkspaceRelations,
    WorkspaceResponse,
    WorkspaceUpdate,
    WorkspaceUserResponse,
    WorkspaceUsersRequest,
)
from app.services import workspaces as workspace_service

router = APIRouter(prefix="/v1/organisations/{organisation_id}", tags=["workspaces"])


def _list_response(workspaces) -> WorkspaceListResponse:
    return WorkspaceListResponse(
        items=[WorkspaceResponse.model_validate(w) for w in workspaces],
        total=len(workspaces),
    )


@router.post("/workspaces", response_model=WorkspaceResponse)
async def create_workspace(
    payload: WorkspaceCreate,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """
    创建工作区

    工作区与初始关联在同一个事务中写入。
    """
    return await workspace_service.create_workspace(
        db,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        name=payload.name,
        description=payload.description,
        parent_id=payload.parent_id,
        team_id=payload.team_id,
        relations=payload.relations,
        deadline=caller.deadline,
    )


@router.get("/workspaces", response_model=WorkspaceListResponse)
async def list_workspaces(
    parent_id: str | None = Query(None, description="父工作区 ID，不传时返回根工作区"),
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    workspaces = await workspace_service.list_workspaces(
        db,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        parent_id=parent_id,
        deadline=caller.deadline,
    )
    return _list_response(workspaces)


@router.get("/workspaces/shared", response_model=WorkspaceListResponse)
async def list_shared_workspaces(
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """共享给当前用户（显式成员、非所有者）的工作区"""
    workspaces = await workspace_service.list_shared_workspaces(
        db,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )
    return _list_response(workspaces)


@router.get("/workspaces/{workspace_id}", response_model=WorkspaceResponse)
async def get_workspace(
    workspace_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await workspace_service.get_workspace(
        db, workspace_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.patch("/workspaces/{workspace_id}", response_model=WorkspaceResponse)
async def update_workspace(
    workspace_id: str,
    payload: WorkspaceUpdate,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """更新工作区（只更新请求中显式给出的字段）"""
    return await workspace_service.update_workspace(
        db, workspace_id, payload.model_dump(exclude_unset=True),
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.delete("/workspaces/{workspace_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workspace(
    workspace_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """删除工作区及其所有子工作区"""
    await workspace_service.delete_workspace(
        db, workspace_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


# ==================== 层级 ====================

@router.get("/workspaces/{workspace_id}/children", response_model=WorkspaceListResponse)
async def get_child_workspaces(
    workspace_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    workspaces = await workspace_service.get_child_workspaces(
        db, workspace_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )
    return _list_response(workspaces)


@router.get("/workspaces/{workspace_id}/parent", response_model=WorkspaceResponse | None)
async def get_parent_workspace(
    workspace_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """父工作区；根工作区返回 null"""
    return await workspace_service.get_parent_workspace(
        db, workspace_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


# ==================== 关联与成员 ====================

@router.post("/workspaces/{workspace_id}/relations", status_code=status.HTTP_204_NO_CONTENT)
async def add_workspace_relations(
    workspace_id: str,
    payload: WorkspaceRelations,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    await workspace_service.add_workspace_relations(
        db, workspace_id, payload,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.post("/workspaces/{workspace_id}/relations/remove", status_code=status.HTTP_204_NO_CONTENT)
async def drop_workspace_relations(
    workspace_id: str,
    payload: WorkspaceRelations,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    await workspace_service.drop_workspace_relations(
        db, workspace_id, payload,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.get("/workspaces/{workspace_id}/users", response_model=list[WorkspaceUserResponse])
async def list_workspace_users(
    workspace_id: str,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    return await workspace_service.list_workspace_users(
        db, workspace_id,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.post("/workspaces/{workspace_id}/users", status_code=status.HTTP_204_NO_CONTENT)
async def add_workspace_users(
    workspace_id: str,
    payload: WorkspaceUsersRequest,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """添加成员（重复添加为空操作）"""
    await workspace_service.add_workspace_users(
        db, workspace_id, payload.user_ids,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )


@router.post("/workspaces/{workspace_id}/users/remove", status_code=status.HTTP_204_NO_CONTENT)
async def remove_workspace_users(
    workspace_id: str,
    payload: WorkspaceUsersRequest,
    caller: Caller = Depends(require_org_member),
    db: AsyncSession = Depends(get_db_session),
):
    """
    移除成员

    非直接所有者不能移除无主工作区的最后一名成员（422）。
    """
    await workspace_service.remove_workspace_users(
        db, workspace_id, payload.user_ids,
        organisation_id=caller.organisation_id,
        user_id=caller.user_id,
        deadline=caller.deadline,
    )
