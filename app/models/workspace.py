"""
工作区模型 (Workspace)

工作区组成一个森林：parent_id 为空的是根工作区，其余挂在父工作区下。
所有者可以是单个用户（user_id）或一个团队（team_id），二者不能同时存在；
两者都为空时，工作区只通过 workspace_users 中的显式成员访问。

关联表：
- workspace_users: 显式成员
- workspace_knowledge_entries: 工作区包含的知识条目
- workspace_prompt_templates / workspace_chat_groups / workspace_chat_sessions:
  其他服务拥有的实体 ID，这里只保存引用，不建外键
"""

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import ID_PK, TimestampMixin, new_id


class Workspace(TimestampMixin, Base):
    """工作区表"""
    __tablename__ = "workspaces"

    __table_args__ = (
        CheckConstraint(
            "user_id IS NULL OR team_id IS NULL",
            name="ck_workspace_single_owner",
        ),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    organisation_id: Mapped[str] = mapped_column(
        ForeignKey("organisations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 所有者：用户或团队（二选一，均可为空）
    user_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        index=True,
    )
    team_id: Mapped[str | None] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL"),
        index=True,
    )

    # 父工作区：删除父节点时子树一并删除
    parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000))

    @property
    def owner_held(self) -> bool:
        """是否仍由用户或团队持有"""
        return self.user_id is not None or self.team_id is not None


class WorkspaceUser(TimestampMixin, Base):
    """工作区显式成员表"""
    __tablename__ = "workspace_users"

    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_workspace_user"),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    workspace_id: Mapped[str] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class WorkspaceKnowledgeEntry(TimestampMixin, Base):
    """工作区与知识条目的关联表"""
    __tablename__ = "workspace_knowledge_entries"

    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "knowledge_entry_id", name="uq_workspace_knowledge_entry"
        ),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    workspace_id: Mapped[str] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    knowledge_entry_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class WorkspacePromptTemplate(TimestampMixin, Base):
    """工作区与提示词模板的关联表（模板由其他服务管理）"""
    __tablename__ = "workspace_prompt_templates"

    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "prompt_template_id", name="uq_workspace_prompt_template"
        ),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    workspace_id: Mapped[str] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    prompt_template_id: Mapped[str] = mapped_column(String(36), nullable=False)


class WorkspaceChatGroup(TimestampMixin, Base):
    """工作区与聊天分组的关联表"""
    __tablename__ = "workspace_chat_groups"

    __table_args__ = (
        UniqueConstraint("workspace_id", "chat_group_id", name="uq_workspace_chat_group"),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    workspace_id: Mapped[str] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    chat_group_id: Mapped[str] = mapped_column(String(36), nullable=False)


class WorkspaceChatSession(TimestampMixin, Base):
    """工作区与聊天会话的关联表"""
    __tablename__ = "workspace_chat_sessions"

    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "chat_session_id", name="uq_workspace_chat_session"
        ),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    workspace_id: Mapped[str] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    chat_session_id: Mapped[str] = mapped_column(String(36), nullable=False)
