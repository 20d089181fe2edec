"""
API 路由汇总

将所有子路由注册到主路由器，统一对外暴露。

路由模块说明：
- health.py            : 健康检查接口
- knowledge.py         : 知识条目（读取、更新、删除、访问判定、检索候选集）
- knowledge_filters.py : 过滤标签词表与条目挂载
- knowledge_groups.py  : 知识组与团队分配
- workspaces.py        : 工作区层级、关联与成员
"""

from fastapi import APIRouter

from app.api.routes import (
    health,
    knowledge,
    knowledge_filters,
    knowledge_groups,
    workspaces,
)

# 主路由器，包含所有 API 端点
api_router = APIRouter()

# 注册各子路由（子路由自带 prefix 与 tags）
api_router.include_router(health.router, tags=["health"])
api_router.include_router(knowledge.router)
api_router.include_router(knowledge_filters.router)
api_router.include_router(knowledge_groups.router)
api_router.include_router(workspaces.router)
