"""YAML 读写与原子写入

声明文件、包定义、宿主机配置都经由这里读写:
- 读: 顶层必须是映射；语法错误和类型错误统一报 ConfigError（带文件位置）
- 写: 保持键顺序，多行字符串（安装脚本等）用块样式输出，经临时文件原子替换
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from sealbuild.core.exceptions import ConfigError

logger = logging.getLogger(__name__)


class _BlockDumper(yaml.SafeDumper):
    """多行字符串输出为 | 块，元组按列表输出"""


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.Node:
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


_BlockDumper.add_representer(str, _represent_str)
_BlockDumper.add_representer(tuple, yaml.SafeDumper.represent_list)


def atomic_write(path: Path, content: str | bytes) -> None:
    """同目录临时文件 + os.replace；已存在的目标保留原权限位"""
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = path.stat().st_mode & 0o7777 if path.exists() else None
    data = content.encode("utf-8") if isinstance(content, str) else content
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取 YAML 映射；文件不存在或为空时返回空字典"""
    p = Path(path)
    if not p.exists():
        return {}
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f"{p}:{mark.line + 1}" if mark is not None else str(p)
        raise ConfigError(f"YAML 语法错误: {where}: {getattr(e, 'problem', e)}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"YAML 顶层必须是映射: {p} (实际 {type(data).__name__})")
    return data


def dump_yaml(data: Any) -> str:
    return yaml.dump(
        data, Dumper=_BlockDumper, default_flow_style=False,
        allow_unicode=True, sort_keys=False,
    )


def save_yaml(path: str | Path, data: Any) -> None:
    """原子写入 YAML 文件"""
    atomic_write(Path(path), dump_yaml(data))
    logger.debug("已写入 %s", path)
