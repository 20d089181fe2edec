"""
数据库会话管理

这个模块负责：
1. Database 对象：持有引擎（连接池）与会话工厂，显式 init()/dispose()
2. 事务辅助函数 atomic()：全部成功才提交，任一步失败整体回滚

Database 由应用生命周期（app/main.py 的 lifespan）创建并注入，
不再使用模块级的全局引擎，测试可以为每个用例构造独立的实例。

使用方式：
    database = Database.from_settings(get_settings())
    database.init()
    async with database.session() as session:
        ...
    await database.dispose()
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.db.base import Base
from app.infra.logging import get_logger

logger = get_logger(__name__)


class Database:
    """
    数据库连接管理对象

    生命周期：
        - init(): 创建引擎和会话工厂（只能调用一次，重复调用直接返回）
        - dispose(): 关闭连接池，之后可以重新 init()
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        pool_recycle: int = 1800,
    ):
        self.url = url
        self.echo = echo
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_timeout = pool_timeout
        self.pool_recycle = pool_recycle
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            echo=settings.db_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
        )

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not initialized, call init() first")
        return self._engine

    def init(self) -> None:
        """创建引擎与会话工厂"""
        if self._engine is not None:
            return

        if self.url.startswith("sqlite"):
            kwargs: dict = {"connect_args": {"check_same_thread": False}}
            # 内存数据库必须复用同一个连接，否则每个连接都是一个空库
            if ":memory:" in self.url or self.url.rstrip("/").endswith(":"):
                kwargs["poolclass"] = StaticPool
            engine = create_async_engine(self.url, echo=self.echo, **kwargs)

            # SQLite 默认不启用外键约束，ON DELETE CASCADE 依赖它
            @event.listens_for(engine.sync_engine, "connect")
            def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
        else:
            engine = create_async_engine(
                self.url,
                echo=self.echo,
                pool_pre_ping=True,  # 获取连接前先测试连接是否有效
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_timeout=self.pool_timeout,
                pool_recycle=self.pool_recycle,
            )

        self._engine = engine
        self._sessionmaker = async_sessionmaker(
            engine,
            expire_on_commit=False,  # 提交后继续访问对象属性不会触发额外查询
        )
        logger.info("数据库引擎已初始化", extra={"dialect": engine.dialect.name})

    async def dispose(self) -> None:
        """释放连接池"""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("数据库引擎已释放")

    def session(self) -> AsyncSession:
        """创建一个新的会话（调用方负责关闭，推荐 async with）"""
        if self._sessionmaker is None:
            raise RuntimeError("Database is not initialized, call init() first")
        return self._sessionmaker()

    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """FastAPI 依赖注入用的会话生成器，请求结束后自动关闭"""
        async with self.session() as session:
            yield session

    async def create_all(self) -> None:
        """
        根据 ORM 模型建表（仅开发/测试环境使用）

        生产环境应该使用 Alembic 迁移。
        """
        from app import models  # noqa: F401 - 触发所有模型注册

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    全有或全无的写操作边界

    块内的所有写入在退出时一次性提交；任一步抛出异常则整体回滚，
    已经执行的语句不会留下部分结果。
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
