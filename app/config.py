"""
应用配置管理

使用 pydantic-settings 实现类型安全的配置管理：
- 支持从环境变量读取配置
- 支持从 .env 文件读取配置
- 提供默认值，确保开发环境开箱即用

配置优先级（从高到低）：
    1. 环境变量
    2. .env 文件
    3. 代码中的默认值

使用示例：
    from app.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    全局配置类

    所有配置项都可以通过环境变量覆盖，环境变量名与字段名相同（不区分大小写）。
    例如：DATABASE_URL 环境变量会覆盖 database_url 字段。
    """

    # ==================== 应用基础配置 ====================
    app_name: str = "Workspace Access Service"  # 应用名称，显示在 API 文档中
    environment: str = "dev"                    # 运行环境：dev/staging/prod
    log_level: str = "INFO"                     # 日志级别：DEBUG/INFO/WARNING/ERROR
    log_json: bool | None = None                # 日志格式：True=JSON，None=自动（prod用JSON）

    # ==================== 数据库配置 ====================
    # 格式：postgresql+asyncpg://用户名:密码@主机:端口/数据库名
    # 本地开发/测试可以使用 sqlite+aiosqlite:///./dev.db
    database_url: str = "postgresql+asyncpg://kb:kb@localhost:5435/workspaces"
    db_echo: bool = False          # 是否打印 SQL 语句
    db_pool_size: int = 10         # 连接池保持的连接数
    db_max_overflow: int = 20      # 允许超出 pool_size 的额外连接数
    db_pool_timeout: int = 30      # 获取连接的超时时间（秒）
    db_pool_recycle: int = 1800    # 连接回收时间（秒）

    # ==================== 权限解析配置 ====================
    # 单次权限判定（含成员关系查询）的时间预算（秒），None 表示不限制
    access_check_timeout_seconds: float | None = 5.0

    # ==================== 知识片段配置 ====================
    embedding_dim: int = 1536
    # 相似度检索候选集的最大片段数
    chunk_candidate_limit: int = 5000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    获取配置单例

    使用 @lru_cache 缓存配置实例，避免重复解析 .env 文件。
    """
    return Settings()
