"""
数据模型层 (ORM Models)

这个模块定义了所有的数据库表结构，使用 SQLAlchemy ORM 映射。

数据模型关系图：
    Organisation (组织)
       │
       ├── OrganisationMember ── User (用户)
       │
       ├── Team (团队) ── TeamMember
       │
       ├── Workspace (工作区，森林结构)
       │      ├── WorkspaceUser
       │      └── WorkspaceKnowledgeEntry / PromptTemplate / ChatGroup / ChatSession
       │
       ├── KnowledgeGroup (知识组) ── KnowledgeGroupTeamAssignment
       │
       ├── KnowledgeFilter (过滤标签) ── KnowledgeEntryFilter
       │
       └── KnowledgeEntry (知识条目)
              │
              └── KnowledgeChunk (片段)

核心概念：
- Organisation: 组织，多租户隔离的顶层实体
- KnowledgeEntry: 知识条目，可见性由 所有者/团队/工作区/知识组 四个维度决定
- KnowledgeChunk: 片段，可见性继承自所属条目
"""

from app.models.chunk import KnowledgeChunk
from app.models.knowledge_entry import KnowledgeEntry
from app.models.knowledge_filter import KnowledgeEntryFilter, KnowledgeFilter
from app.models.knowledge_group import KnowledgeGroup, KnowledgeGroupTeamAssignment
from app.models.organisation import Organisation, OrganisationMember
from app.models.team import Team, TeamMember
from app.models.user import User
from app.models.workspace import (
    Workspace,
    WorkspaceChatGroup,
    WorkspaceChatSession,
    WorkspaceKnowledgeEntry,
    WorkspacePromptTemplate,
    WorkspaceUser,
)

# 导出所有模型，方便外部导入
__all__ = [
    "KnowledgeChunk",
    "KnowledgeEntry",
    "KnowledgeEntryFilter",
    "KnowledgeFilter",
    "KnowledgeGroup",
    "KnowledgeGroupTeamAssignment",
    "Organisation",
    "OrganisationMember",
    "Team",
    "TeamMember",
    "User",
    "Workspace",
    "WorkspaceChatGroup",
    "WorkspaceChatSession",
    "WorkspaceKnowledgeEntry",
    "WorkspacePromptTemplate",
    "WorkspaceUser",
]
