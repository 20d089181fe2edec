"""知识条目与片段相关的请求/响应模型"""

from datetime import datetime

from pydantic import BaseModel, Field


class KnowledgeEntryResponse(BaseModel):
    """知识条目响应"""
    id: str
    organisation_id: str
    user_id: str | None
    team_id: str | None
    workspace_id: str | None
    knowledge_group_id: str | None
    name: str
    description: str | None
    abstract: str | None
    source_type: str | None
    source_id: str | None
    source_url: str | None
    metadata: dict | None = Field(default=None, validation_alias="extra_metadata")
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class KnowledgeEntryListResponse(BaseModel):
    """知识条目列表响应"""
    items: list[KnowledgeEntryResponse]
    total: int
    page: int | None = None
    page_size: int | None = None


class KnowledgeEntryUpdate(BaseModel):
    """
    更新知识条目请求

    只有显式传入的字段会被更新；team_id / workspace_id / knowledge_group_id
    显式传入 null 表示清空。
    user_owned=true 把条目所有者设为当前用户，false 清空所有者。
    """
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    abstract: str | None = None
    team_id: str | None = None
    workspace_id: str | None = None
    knowledge_group_id: str | None = None
    user_owned: bool | None = None


class AccessCheckResponse(BaseModel):
    """访问判定结果"""
    entry_id: str
    allowed: bool


class ChunkResponse(BaseModel):
    """片段响应"""
    id: str
    knowledge_entry_id: str
    order: int
    text: str
    header: str | None = None
    embedding_model: str | None = None

    class Config:
        from_attributes = True


class ChunkCandidateRequest(BaseModel):
    """获取候选片段请求（供外部相似度打分使用）"""
    entry_ids: list[str] | None = Field(default=None, description="只在这些条目中取片段")
    limit: int | None = Field(default=None, ge=1, description="最多返回的片段数")
    include_embeddings: bool = Field(default=False, description="是否返回向量")


class ChunkCandidate(ChunkResponse):
    """候选片段（可选附带向量）"""
    embedding: list[float] | None = None


class ChunkCandidateResponse(BaseModel):
    """候选片段集合"""
    items: list[ChunkCandidate]
    total: int


class ChunkHit(BaseModel):
    """外部打分器返回的一条命中"""
    chunk_id: str
    score: float


class ChunkHitFilterRequest(BaseModel):
    """对打分结果做二次权限过滤"""
    hits: list[ChunkHit]


class ChunkHitFilterResponse(BaseModel):
    hits: list[ChunkHit]


class ChunkContextRequest(BaseModel):
    """上下文扩展请求：为命中的片段补充同一条目中的前后片段"""
    chunk_ids: list[str] = Field(..., min_length=1)
    before: int = Field(default=1, ge=0, le=10, description="向前扩展的片段数")
    after: int = Field(default=1, ge=0, le=10, description="向后扩展的片段数")


class ChunkContextResponse(BaseModel):
    items: list[ChunkResponse]
