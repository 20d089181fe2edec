"""
FastAPI 应用实例

这是 FastAPI 应用的核心配置文件，负责：
1. 创建 FastAPI 应用实例
2. 配置应用生命周期（启动时初始化数据库连接，关闭时释放）
3. 注册所有 API 路由
4. 配置结构化日志、请求追踪与统一错误响应
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from app.api.routes import api_router
from app.config import get_settings
from app.db.session import Database
from app.exceptions import (
    AccessError,
    AccessTimeoutError,
    ConstraintViolationError,
    NotFoundError,
    PermissionDeniedError,
    StructuralInvariantError,
)
from app.infra.logging import get_logger, setup_logging
from app.middleware import RequestTraceMiddleware

# 配置结构化日志
setup_logging()
logger = get_logger(__name__)

# 获取全局配置（单例模式，整个应用共享同一个配置实例）
settings = get_settings()

# 业务异常 -> HTTP 状态码
ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    ConstraintViolationError: status.HTTP_409_CONFLICT,
    StructuralInvariantError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AccessTimeoutError: status.HTTP_504_GATEWAY_TIMEOUT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器

    - yield 之前：创建数据库引擎（测试可以预先放入 app.state.database）
    - yield 之后：释放连接池

    注意：
        - 开发/测试环境：使用 create_all() 自动创建表
        - 生产环境：应该使用 Alembic 进行数据库迁移
    """
    # ========== 启动时执行 ==========
    logger.info(f"应用启动中... 环境: {settings.environment}")

    database: Database | None = getattr(app.state, "database", None)
    if database is None:
        database = Database.from_settings(settings)
        app.state.database = database
    database.init()

    if settings.environment in ("dev", "development", "test"):
        await database.create_all()
        logger.info("数据库表初始化完成（开发模式）")
    else:
        logger.info("跳过自动建表，请使用 Alembic 迁移")

    yield  # 应用运行中...

    # ========== 关闭时执行 ==========
    await database.dispose()


async def access_error_handler(_: Request, exc: AccessError):
    """
    业务异常统一映射

    NotFound 的 detail 不区分"不存在"和"属于其他组织"。
    """
    status_code = status.HTTP_400_BAD_REQUEST
    for exc_type, mapped in ERROR_STATUS.items():
        if isinstance(exc, exc_type):
            status_code = mapped
            break
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": exc.code},
    )


async def integrity_error_handler(_: Request, exc: IntegrityError):
    logger.warning(f"数据库约束冲突: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "Constraint violation", "code": ConstraintViolationError.code},
    )


async def http_exception_handler(_: Request, exc: HTTPException):
    """
    统一错误响应格式：
    {
        "detail": "<错误信息>",
        "code": "<ERROR_CODE>"
    }
    """
    code = "UNKNOWN_ERROR"
    detail = exc.detail
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code") or code
        detail = exc.detail.get("detail") or exc.detail.get("message") or detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "code": code},
        headers=exc.headers,
    )


async def validation_exception_handler(_: Request, exc: RequestValidationError):
    # 将 Pydantic 校验错误统一映射为 VALIDATION_ERROR
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors(), "code": "VALIDATION_ERROR"},
    )


def create_app(database: Database | None = None) -> FastAPI:
    """
    创建 FastAPI 应用

    Args:
        database: 预先构造的数据库对象（测试使用），不传时启动时按配置创建
    """
    app = FastAPI(
        title=settings.app_name,  # API 文档标题
        lifespan=lifespan,        # 生命周期管理器
    )
    if database is not None:
        app.state.database = database

    # 注册中间件（注意顺序：后添加的先执行）
    app.add_middleware(RequestTraceMiddleware)  # 请求追踪

    # CORS 配置：允许前端跨域访问
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # 开发环境允许所有来源，生产环境应限制
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册所有 API 路由
    app.include_router(api_router)

    app.add_exception_handler(AccessError, access_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    return app


app = create_app()
