"""
健康检查接口

用于 Kubernetes 等容器编排系统进行存活探测和就绪探测。
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db_session

router = APIRouter()


@router.get("/healthz")
async def healthcheck() -> dict:
    """
    存活探测

    返回 {"status": "ok"} 表示服务进程正常运行。
    """
    return {"status": "ok"}


@router.get("/readyz")
async def readiness(db: AsyncSession = Depends(get_db_session)) -> dict:
    """就绪探测：确认数据库可以连接"""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "DATABASE_UNAVAILABLE", "detail": str(exc)},
        ) from exc
    return {"status": "ok"}
