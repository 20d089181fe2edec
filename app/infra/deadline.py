"""
请求级时间预算

每次权限判定、注册表操作都会携带一个 Deadline，
每一次数据库往返都只能使用剩余的时间预算，
避免缓慢的成员关系查询无限期阻塞调用方。

使用示例：
    deadline = Deadline.from_settings()
    result = await bounded(session.execute(stmt), deadline)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

from app.config import get_settings
from app.exceptions import AccessTimeoutError

T = TypeVar("T")


class Deadline:
    """
    截止时间

    Attributes:
        timeout: 总预算（秒），None 表示不限制
    """

    def __init__(self, timeout: float | None):
        self.timeout = timeout
        self._expires_at = time.monotonic() + timeout if timeout is not None else None

    @classmethod
    def from_settings(cls) -> Deadline:
        return cls(get_settings().access_check_timeout_seconds)

    def remaining(self) -> float | None:
        """剩余秒数，不限制时返回 None"""
        if self._expires_at is None:
            return None
        return max(self._expires_at - time.monotonic(), 0.0)

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def __repr__(self) -> str:
        return f"Deadline(timeout={self.timeout!r}, remaining={self.remaining()!r})"


async def bounded(awaitable: Awaitable[T], deadline: Deadline | None) -> T:
    """
    在剩余预算内等待一次 I/O

    Raises:
        AccessTimeoutError: 预算已耗尽或等待超时
    """
    if deadline is None:
        return await awaitable

    remaining = deadline.remaining()
    if remaining is None:
        return await awaitable
    if remaining <= 0:
        # 关闭未等待的协程，避免 "never awaited" 警告
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise AccessTimeoutError("access check deadline exceeded")

    try:
        return await asyncio.wait_for(awaitable, timeout=remaining)
    except asyncio.TimeoutError as e:
        raise AccessTimeoutError("access check deadline exceeded") from e
