"""
数据模式层 (Schemas)

使用 Pydantic 定义 API 的请求和响应模型：
- 自动数据验证
- 自动生成 OpenAPI 文档
- 类型安全的序列化/反序列化
"""

from app.schemas.knowledge import (
    AccessCheckResponse,
    ChunkCandidate,
    ChunkCandidateRequest,
    ChunkCandidateResponse,
    ChunkContextRequest,
    ChunkContextResponse,
    ChunkHit,
    ChunkHitFilterRequest,
    ChunkHitFilterResponse,
    ChunkResponse,
    KnowledgeEntryListResponse,
    KnowledgeEntryResponse,
    KnowledgeEntryUpdate,
)
from app.schemas.knowledge_filter import (
    EntryFilterAssign,
    KnowledgeFilterRecategorize,
    KnowledgeFilterRename,
    KnowledgeFilterResponse,
    KnowledgeFiltersByCategory,
    KnowledgeFilterUpsert,
    RecategorizeResponse,
)
from app.schemas.knowledge_group import (
    KnowledgeGroupCreate,
    KnowledgeGroupListResponse,
    KnowledgeGroupResponse,
    KnowledgeGroupUpdate,
    TeamAssignmentRequest,
    TeamAssignmentResponse,
)
from app.schemas.workspace import (
    WorkspaceCreate,
    WorkspaceListResponse,
    WorkspaceRelations,
    WorkspaceResponse,
    WorkspaceUpdate,
    WorkspaceUserResponse,
    WorkspaceUsersRequest,
)

__all__ = [
    "AccessCheckResponse",
    "ChunkCandidate",
    "ChunkCandidateRequest",
    "ChunkCandidateResponse",
    "ChunkContextRequest",
    "ChunkContextResponse",
    "ChunkHit",
    "ChunkHitFilterRequest",
    "ChunkHitFilterResponse",
    "ChunkResponse",
    "EntryFilterAssign",
    "KnowledgeEntryListResponse",
    "KnowledgeEntryResponse",
    "KnowledgeEntryUpdate",
    "KnowledgeFilterRecategorize",
    "KnowledgeFilterRename",
    "KnowledgeFilterResponse",
    "KnowledgeFiltersByCategory",
    "KnowledgeFilterUpsert",
    "KnowledgeGroupCreate",
    "KnowledgeGroupListResponse",
    "KnowledgeGroupResponse",
    "KnowledgeGroupUpdate",
    "RecategorizeResponse",
    "TeamAssignmentRequest",
    "TeamAssignmentResponse",
    "WorkspaceCreate",
    "WorkspaceListResponse",
    "WorkspaceRelations",
    "WorkspaceResponse",
    "WorkspaceUpdate",
    "WorkspaceUserResponse",
    "WorkspaceUsersRequest",
]
