"""sealbuild 日志配置

每条日志都带上当前流水线阶段（prepare / vendor / build / publish）:
流水线驱动器用 stage_context() 标记阶段，StageFilter 把它写进日志记录。
文本格式在消息前加 [阶段]，JSON 格式输出 stage 字段。
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone

_stage: ContextVar[str] = ContextVar("sealbuild_stage", default="")

TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(stage_tag)s%(name)s: %(message)s"


@contextmanager
def stage_context(stage: str) -> Iterator[None]:
    """在 with 块内产生的日志都归属 stage"""
    token = _stage.set(stage)
    try:
        yield
    finally:
        _stage.reset(token)


def current_stage() -> str:
    return _stage.get()


class StageFilter(logging.Filter):
    """补齐 record.stage / record.stage_tag（显式 extra={"stage": ...} 优先）"""

    def filter(self, record: logging.LogRecord) -> bool:
        stage = getattr(record, "stage", "") or _stage.get()
        record.stage = stage
        record.stage_tag = f"[{stage}] " if stage else ""
        return True


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志，便于 CI 流水线消费

    输出字段: timestamp / level / logger / message / module / function / line，
    以及可选的 stage、code（错误码）、exception。
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            # 事件发生时间，而非格式化时间
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for key in ("stage", "code"):
            value = getattr(record, key, "")
            if value:
                entry[key] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器，输出到 stderr（stdout 留给哈希值等命令结果）

    重复调用会替换之前安装的 handler。
    """
    reset_logging()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(StageFilter())
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)


def reset_logging() -> None:
    """移除根日志器上的全部 handler（测试环境使用）"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
