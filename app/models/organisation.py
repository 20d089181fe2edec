"""
组织模型 (Organisation)

组织是多租户系统的顶层实体，所有数据都通过 organisation_id 进行隔离，
任何查询都不允许跨越组织边界。

组织成员角色：
- owner: 组织所有者
- admin: 组织管理员
- member: 普通成员
"""

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import ID_PK, TimestampMixin, new_id

ORGANISATION_ADMIN_ROLES = ("owner", "admin")


class Organisation(TimestampMixin, Base):
    """组织表"""
    __tablename__ = "organisations"

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    # 组织名称：全局唯一
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000))


class OrganisationMember(TimestampMixin, Base):
    """
    组织成员表

    用户与组织的多对多关系，role 决定是否为组织管理员。
    """
    __tablename__ = "organisation_members"

    __table_args__ = (
        UniqueConstraint("user_id", "organisation_id", name="uq_org_member_user_org"),
    )

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    organisation_id: Mapped[str] = mapped_column(
        ForeignKey("organisations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 成员角色：owner / admin / member
    role: Mapped[str] = mapped_column(String(20), default="member", nullable=False)
