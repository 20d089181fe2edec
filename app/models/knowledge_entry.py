"""
知识条目模型 (KnowledgeEntry)

知识条目是共享知识库中的一条文档记录，可选地挂在团队、工作区、知识组上，
这三个维度以及所有者 user_id 共同决定谁能看到它。

注意：team_id 与 workspace_id 为空时条目对组织内所有成员开放，
这是访问规则的一部分，见 app/services/acl.py。
"""

from sqlalchemy import ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import ID_PK, TimestampMixin, new_id


class KnowledgeEntry(TimestampMixin, Base):
    """知识条目表"""
    __tablename__ = "knowledge_entries"

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    organisation_id: Mapped[str] = mapped_column(
        ForeignKey("organisations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # ==================== 共享维度 ====================
    # 所有者（用户删除后条目保留，所有者置空）
    user_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        index=True,
    )
    team_id: Mapped[str | None] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL"),
        index=True,
    )
    workspace_id: Mapped[str | None] = mapped_column(
        ForeignKey("workspaces.id", ondelete="SET NULL"),
        index=True,
    )
    knowledge_group_id: Mapped[str | None] = mapped_column(
        ForeignKey("knowledge_groups.id", ondelete="SET NULL"),
        index=True,
    )

    # ==================== 内容描述 ====================
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text)

    # 摘要：由上游摘要服务写入
    abstract: Mapped[str | None] = mapped_column(Text)

    # ==================== 原始来源 ====================
    # 来源类型：file / url / text
    source_type: Mapped[str | None] = mapped_column(String(20))
    source_id: Mapped[str | None] = mapped_column(String(255))
    source_url: Mapped[str | None] = mapped_column(String(2048))

    # 字段名用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突
    extra_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)
