"""
知识组模型 (KnowledgeGroup)

知识组是知识条目的共享单元：
- organisation_wide_access=True 时，组内条目对整个组织开放
- 否则可以通过 knowledge_group_team_assignments 分配给若干团队
"""

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import ID_PK, TimestampMixin, new_id


class KnowledgeGroup(TimestampMixin, Base):
    """知识组表"""
    __tablename__ = "knowledge_groups"

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    organisation_id: Mapped[str] = mapped_column(
        ForeignKey("organisations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 创建者 / 所有者
    user_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text)

    organisation_wide_access: Mapped[bool] = mapped_column(default=False, nullable=False)


class KnowledgeGroupTeamAssignment(TimestampMixin, Base):
    """知识组与团队的分配关系"""
    __tablename__ = "knowledge_group_team_assignments"

    __table_args__ = (
        UniqueConstraint(
            "knowledge_group_id", "team_id", name="uq_knowledge_group_team"
        ),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    knowledge_group_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    team_id: Mapped[str] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
