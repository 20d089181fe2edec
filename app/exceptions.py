"""
业务异常定义

服务层只抛出这些异常，由 API 层统一映射为 HTTP 错误响应。
"""


class AccessError(Exception):
    """权限解析引擎的异常基类"""

    code = "ACCESS_ERROR"


class NotFoundError(AccessError):
    """
    资源不存在

    资源 ID 不存在与资源属于其他组织，对调用方返回完全相同的错误，
    避免跨租户泄露资源是否存在。
    """

    code = "NOT_FOUND"

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"{resource} not found")


class PermissionDeniedError(AccessError):
    """权限判定失败（用户可见、可处理的错误，不会被转换为 NotFound）"""

    code = "PERMISSION_DENIED"


class ConstraintViolationError(AccessError):
    """唯一性等约束冲突（重复的过滤标签、成员关系由幂等写入吸收，不会抛出）"""

    code = "CONSTRAINT_VIOLATION"


class StructuralInvariantError(AccessError):
    """结构性约束被破坏，例如清空无主工作区、指派自己不在其中的团队"""

    code = "STRUCTURAL_INVARIANT_VIOLATION"


class AccessTimeoutError(AccessError):
    """权限判定超出时间预算"""

    code = "ACCESS_TIMEOUT"
