"""
日志配置

- 请求上下文（request_id / organisation_id）由 ContextFilter 注入到每条日志记录
- 生产环境输出单行 JSON，开发/测试环境输出可读文本
- 访问判定相关的字段通过 extra 传入，例如：
    logger.info("知识条目访问被拒绝", extra={"entry_id": entry_id, "user_id": user_id})
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone

from app.config import get_settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
organisation_id_var: ContextVar[str | None] = ContextVar("organisation_id", default=None)

# 由 ContextFilter 写入记录的上下文字段
CONTEXT_FIELDS = ("request_id", "organisation_id")

# LogRecord 自带的属性，不算作 extra
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", *CONTEXT_FIELDS,
}

# 第三方库只输出 WARNING 及以上
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine", "aiosqlite", "asyncpg")


def set_organisation_id(organisation_id: str) -> None:
    """鉴权通过后记录当前组织，后续日志自动带上"""
    organisation_id_var.set(organisation_id)


class ContextFilter(logging.Filter):
    """把当前请求的上下文变量挂到日志记录上（记录里已有同名字段时不覆盖）"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        if not hasattr(record, "organisation_id"):
            record.organisation_id = organisation_id_var.get()
        return True


def _extra_fields(record: logging.LogRecord) -> dict:
    return {
        key: value for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """单行 JSON，上下文字段为空时省略"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value:
                payload[field] = value
        extra = _extra_fields(record)
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """开发环境文本格式：时间 级别 [请求ID前8位] logger - 消息 {extra}"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-8s %(trace)s%(name)s - %(message)s", "%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        request_id = getattr(record, "request_id", None)
        record.trace = f"[{request_id[:8]}] " if request_id else ""
        text = super().format(record)
        extra = {k: v for k, v in _extra_fields(record).items() if k != "trace"}
        if extra:
            text += " " + json.dumps(extra, ensure_ascii=False, default=str)
        return text


def setup_logging(level: str | None = None, json_format: bool | None = None) -> None:
    """
    配置根 logger

    未指定时从配置读取：log_level；log_json 为 None 时仅在非 dev/test 环境输出 JSON。
    """
    settings = get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    if json_format is None:
        json_format = settings.log_json
    if json_format is None:
        json_format = settings.environment not in ("dev", "development", "test")

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class RequestTimer:
    """请求耗时计时"""

    def __init__(self):
        self._start = time.perf_counter()

    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self._start) * 1000, 2)
