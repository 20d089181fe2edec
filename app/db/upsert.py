"""
方言相关的幂等写入

PostgreSQL 与 SQLite 都支持 INSERT ... ON CONFLICT，
但需要从各自方言模块导入 insert 构造器。

- insert_ignore: 冲突时什么都不做（成员关系、团队分配、标签挂载）
- upsert_returning_id: 冲突时返回已有行的 ID（过滤标签）
"""

from collections.abc import Sequence
from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Result
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.mixins import new_id


def _dialect_insert(session: AsyncSession, model):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Unsupported database dialect for upsert: {dialect}")


async def insert_ignore(
    session: AsyncSession,
    model,
    rows: Sequence[dict[str, Any]],
    *,
    index_elements: list[str],
) -> Result | None:
    """批量插入，违反唯一约束的行被静默忽略"""
    if not rows:
        return None
    values = [{"id": new_id(), **row} for row in rows]
    stmt = _dialect_insert(session, model).values(values).on_conflict_do_nothing(
        index_elements=index_elements
    )
    return await session.execute(stmt)


async def upsert_returning_id(
    session: AsyncSession,
    model,
    row: dict[str, Any],
    *,
    index_elements: list[str],
) -> str:
    """
    插入一行，冲突时只刷新 updated_at，并返回（已有或新建）行的 ID

    重复调用返回同一个 ID。
    """
    stmt = (
        _dialect_insert(session, model)
        .values({"id": new_id(), **row})
        .on_conflict_do_update(
            index_elements=index_elements,
            set_={"updated_at": func.now()},
        )
        .returning(model.id)
    )
    result = await session.execute(stmt)
    return result.scalar_one()
