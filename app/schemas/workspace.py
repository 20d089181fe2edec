"""工作区相关的请求/响应模型"""

from datetime import datetime

from pydantic import BaseModel, Field


class WorkspaceRelations(BaseModel):
    """
    工作区关联集合

    创建工作区时作为初始关联一并写入，也用于追加/移除关联。
    """
    knowledge_entry_ids: list[str] = Field(default_factory=list, description="知识条目 ID")
    prompt_template_ids: list[str] = Field(default_factory=list, description="提示词模板 ID")
    chat_group_ids: list[str] = Field(default_factory=list, description="聊天分组 ID")
    chat_session_ids: list[str] = Field(default_factory=list, description="聊天会话 ID")
    user_ids: list[str] = Field(default_factory=list, description="显式成员用户 ID")

    def is_empty(self) -> bool:
        return not (
            self.knowledge_entry_ids
            or self.prompt_template_ids
            or self.chat_group_ids
            or self.chat_session_ids
            or self.user_ids
        )


class WorkspaceCreate(BaseModel):
    """创建工作区请求

    示例:
    ```json
    {
        "name": "产品调研",
        "parent_id": null,
        "team_id": null,
        "relations": {"knowledge_entry_ids": ["..."], "user_ids": ["..."]}
    }
    ```

    未指定 team_id 时工作区归创建者本人所有。
    """
    name: str = Field(..., min_length=1, max_length=255, description="工作区名称")
    description: str | None = Field(default=None, max_length=1000, description="描述信息")
    parent_id: str | None = Field(default=None, description="父工作区 ID，为空时创建根工作区")
    team_id: str | None = Field(default=None, description="所属团队 ID，创建者必须是该团队成员")
    relations: WorkspaceRelations = Field(default_factory=WorkspaceRelations)


class WorkspaceUpdate(BaseModel):
    """
    更新工作区请求

    只有显式传入的字段会被更新（包括显式传入 null 以清空字段）。
    """
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    parent_id: str | None = None
    team_id: str | None = None
    user_id: str | None = Field(
        default=None, description="直接所有者，只有当前所有者（无所有者时为组织管理员）可以修改"
    )


class WorkspaceResponse(BaseModel):
    """工作区响应"""
    id: str
    organisation_id: str
    user_id: str | None
    team_id: str | None
    parent_id: str | None
    name: str
    description: str | None
    created_at: datetime | None = None

    class Config:
        from_attributes = True  # 允许从 ORM 对象构造


class WorkspaceListResponse(BaseModel):
    """工作区列表响应"""
    items: list[WorkspaceResponse]
    total: int


class WorkspaceUsersRequest(BaseModel):
    """添加/移除工作区成员请求"""
    user_ids: list[str] = Field(..., min_length=1, description="用户 ID 列表")


class WorkspaceUserResponse(BaseModel):
    """工作区成员"""
    workspace_id: str
    user_id: str

    class Config:
        from_attributes = True
