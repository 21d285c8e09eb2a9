"""nimbus-build 日志配置

两种输出格式：
  - 文本: 面向终端，带步骤名，与 UI 输出（stdout）分流到 stderr
  - JSON: 每行一个对象，供 CI 收集

Runner 在执行 / 补偿每个步骤时通过 bind_step 设置当前步骤名，
StepFilter 把它注入到日志记录的 step 属性上。
"""

from __future__ import annotations

import contextlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import IO, Any, Iterator

NO_STEP = "-"
TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(step)s] %(name)s: %(message)s"

_current_step: ContextVar[str] = ContextVar("nimbus_current_step", default=NO_STEP)


@contextlib.contextmanager
def bind_step(name: str) -> Iterator[None]:
    """在上下文范围内把日志记录的 step 字段绑定为 name"""
    token = _current_step.set(name)
    try:
        yield
    finally:
        _current_step.reset(token)


class StepFilter(logging.Filter):
    """为日志记录注入 step 属性（只注入，不过滤）"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.step = _current_step.get()
        return True


class JSONFormatter(logging.Formatter):
    """单行 JSON 日志

    字段: time / level / logger / step / message / where，
    有异常时追加 exception（完整 traceback 文本）。
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "time": created.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "step": getattr(record, "step", NO_STEP),
            "message": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(
    level: str = "INFO", json_output: bool = False, stream: IO[str] | None = None,
) -> logging.Handler:
    """(重新) 配置根日志器并返回新安装的 handler

    level 不认识时退回 INFO；stream 默认为 stderr，stdout 留给 UI。
    重复调用会先移除旧 handler。
    """
    reset_logging()
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(StepFilter())
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.setLevel(logging.getLevelName(level.upper()) if _known_level(level) else logging.INFO)
    root.addHandler(handler)
    return handler


def _known_level(level: str) -> bool:
    return isinstance(logging.getLevelName(level.upper()), int)


def reset_logging() -> None:
    """移除并关闭根日志器上的所有 handler"""
    root = logging.getLogger()
    while root.handlers:
        handler = root.handlers[0]
        root.removeHandler(handler)
        handler.close()
