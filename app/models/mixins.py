"""
模型混入类 (Mixins)

提供可复用的模型字段和行为，通过多重继承添加到具体模型中。

使用示例：
    class MyModel(TimestampMixin, Base):
        __tablename__ = "my_table"
        id: Mapped[ID_PK] = mapped_column(String(36), primary_key=True, default=new_id)
        # 自动获得 created_at 和 updated_at 字段
"""

from datetime import datetime
from typing import Annotated
from uuid import uuid4

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

# ==================== 类型别名 ====================
# UUID 字符串主键：xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx
ID_PK = Annotated[str, mapped_column(String(36), primary_key=True)]


def new_id() -> str:
    """生成新的 UUID 字符串主键"""
    return str(uuid4())


class TimestampMixin:
    """
    时间戳混入类

    - created_at: 记录创建时间，由数据库自动设置
    - updated_at: 记录最后更新时间，每次 UPDATE 时自动更新

    eager_defaults: INSERT/UPDATE 后立即取回数据库生成的时间戳，
    异步会话中访问过期属性会触发隐式 IO。
    """

    __mapper_args__ = {"eager_defaults": True}

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
