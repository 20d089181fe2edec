"""知识组相关的请求/响应模型"""

from pydantic import BaseModel, Field


class KnowledgeGroupCreate(BaseModel):
    """创建知识组请求"""
    name: str = Field(..., min_length=1, max_length=255, description="知识组名称")
    description: str | None = Field(default=None, description="描述信息")
    organisation_wide_access: bool = Field(default=False, description="是否对整个组织开放")


class KnowledgeGroupUpdate(BaseModel):
    """更新知识组请求"""
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    organisation_wide_access: bool | None = None


class KnowledgeGroupResponse(BaseModel):
    """知识组响应"""
    id: str
    organisation_id: str
    user_id: str | None
    name: str
    description: str | None
    organisation_wide_access: bool
    team_ids: list[str] | None = Field(
        default=None, description="已分配的团队 ID，仅在 include_team_assignments=true 时返回"
    )

    class Config:
        from_attributes = True


class KnowledgeGroupListResponse(BaseModel):
    """知识组列表响应"""
    items: list[KnowledgeGroupResponse]
    total: int


class TeamAssignmentRequest(BaseModel):
    """分配团队请求"""
    team_id: str = Field(..., description="团队 ID")


class TeamAssignmentResponse(BaseModel):
    """知识组的团队分配"""
    knowledge_group_id: str
    team_id: str

    class Config:
        from_attributes = True
