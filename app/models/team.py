"""
团队模型 (Team)

团队属于某一个组织，用户通过 team_members 加入团队（多对多，可选角色）。
团队是知识条目、工作区和知识组共享的维度之一。
"""

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import ID_PK, TimestampMixin, new_id


class Team(TimestampMixin, Base):
    """团队表"""
    __tablename__ = "teams"

    __table_args__ = (
        UniqueConstraint("organisation_id", "name", name="uq_team_org_name"),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    organisation_id: Mapped[str] = mapped_column(
        ForeignKey("organisations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000))


class TeamMember(TimestampMixin, Base):
    """团队成员表"""
    __tablename__ = "team_members"

    __table_args__ = (
        UniqueConstraint("user_id", "team_id", name="uq_team_member_user_team"),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    # 按用户建索引：成员关系总是以用户为入口查询
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    team_id: Mapped[str] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 团队内角色：admin / member
    role: Mapped[str] = mapped_column(String(20), default="member", nullable=False)
