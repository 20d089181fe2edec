"""
Workspace Access Service - 应用主包

这是工作区与知识库访问判定服务的核心应用包，包含以下子模块：
- api/        : API 路由和依赖注入
- db/         : 数据库连接、会话管理与幂等写入
- models/     : SQLAlchemy ORM 数据模型
- schemas/    : Pydantic 请求/响应模式
- services/   : 业务逻辑服务层（成员关系、访问判定、注册表、工作区层级）
- infra/      : 基础设施（结构化日志、时间预算）
- middleware/ : 请求追踪

项目架构遵循分层设计：
    API层 → 服务层 → 数据访问层
"""
