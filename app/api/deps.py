"""
API 依赖注入函数

这个模块定义了所有 API 路由共用的依赖项。
FastAPI 的依赖注入系统会自动调用这些函数，并将结果注入到路由处理函数中。

身份来源：
    上游认证网关校验用户后，通过 X-User-Id 请求头传入已验证的用户 ID，
    组织 ID 来自路径参数 /v1/organisations/{organisation_id}/...

使用示例：
    @router.get("/v1/organisations/{organisation_id}/example")
    async def example_endpoint(
        caller: Caller = Depends(require_org_member),   # 当前用户（已确认是组织成员）
        db: AsyncSession = Depends(get_db_session),     # 数据库会话
    ):
        pass
"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import Database
from app.infra.deadline import Deadline
from app.infra.logging import set_organisation_id
from app.models.organisation import ORGANISATION_ADMIN_ROLES
from app.services.membership import get_organisation_role


@dataclass
class Caller:
    """
    当前请求的调用者

    Attributes:
        user_id: 已验证的用户 ID
        organisation_id: 路径中的组织 ID
        role: 组织内角色（owner / admin / member）
        deadline: 本次请求的权限判定时间预算
    """
    user_id: str
    organisation_id: str
    role: str
    deadline: Deadline

    @property
    def is_admin(self) -> bool:
        return self.role in ORGANISATION_ADMIN_ROLES


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """从应用状态中的 Database 获取会话，请求结束后自动关闭"""
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session


async def get_user_id(x_user_id: str | None = Header(None, alias="X-User-Id")) -> str:
    """读取网关传入的用户 ID"""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHORIZED", "detail": "Missing X-User-Id header"},
        )
    return x_user_id


async def require_org_member(
    organisation_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Caller:
    """要求当前用户是组织成员"""
    deadline = Deadline.from_settings()
    role = await get_organisation_role(db, user_id, organisation_id, deadline=deadline)
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "NOT_ORGANISATION_MEMBER", "detail": "User is not a member of this organisation"},
        )
    set_organisation_id(organisation_id)
    return Caller(user_id=user_id, organisation_id=organisation_id, role=role, deadline=deadline)


async def require_org_admin(caller: Caller = Depends(require_org_member)) -> Caller:
    """要求当前用户是组织管理员（owner / admin）"""
    if not caller.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "ADMIN_REQUIRED", "detail": "Organisation admin role required"},
        )
    return caller
