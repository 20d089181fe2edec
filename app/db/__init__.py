"""
数据库模块

这个模块负责数据库相关的所有底层操作：
- base.py    : SQLAlchemy 基类定义，所有 ORM 模型都继承自它
- session.py : Database 对象（引擎 + 会话工厂，显式初始化/释放）与事务辅助函数

使用 SQLAlchemy 2.0 异步 API（生产 asyncpg，本地/测试 aiosqlite）。

典型使用方式：
    from app.api.deps import get_db_session

    async def my_endpoint(db: AsyncSession = Depends(get_db_session)):
        result = await db.execute(select(Workspace))
"""
