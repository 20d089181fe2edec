"""
用户模型 (User)

用户可以同时属于多个组织（见 organisation_members），
在每个组织内可以加入多个团队。身份认证由上游网关完成，这里不保存凭证。
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.mixins import ID_PK, TimestampMixin, new_id


class User(TimestampMixin, Base):
    """用户表"""
    __tablename__ = "users"

    id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)

    # 登录邮箱：全局唯一
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    display_name: Mapped[str | None] = mapped_column(String(255))

    # 账号状态：False 表示禁用
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
