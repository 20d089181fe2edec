"""
Workspace Access Service - 启动入口

运行方式：
    - python main.py（开发环境自动重载）
    - 生产环境：uvicorn app.main:app --host 0.0.0.0 --port 8000 --workers N

启动前需要准备好数据库：
    - ENVIRONMENT=dev/test 时启动过程会自动建表
    - 其他环境先执行 alembic upgrade head

就绪探针 /readyz 会检查数据库连接。
"""

import uvicorn

from app.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment in ("dev", "development"),
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
