"""宿主机配置

宿主机相关的设置（工作目录、工具路径、网络隔离开关）与构建声明分离：
同一份声明在不同机器上应得到同样的哈希，机器差异只出现在这里。

优先级: 环境变量 SEALBUILD_<字段名大写> > YAML 文件 > 字段默认值
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields

from sealbuild.core.exceptions import ConfigError
from sealbuild.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "SEALBUILD_"
_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass
class Config:
    """宿主机配置"""

    # 源码树 / vendor 存储 / 构建产物 / 发布结果 的根目录
    workspace_dir: str = "data/workspaces"
    store_dir: str = "data/store"
    output_dir: str = "data/output"
    publish_dir: str = "data/publish"

    # 工具可执行文件
    mvn: str = "mvn"
    pnpm: str = "pnpm"
    git: str = "git"

    # 可用时在独立网络命名空间 (unshare -rn) 中运行构建工具
    isolate_network: bool = True

    log_level: str = "INFO"

    # 未识别的键原样保留
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = "configs/default.yml",
                  environ: Mapping[str, str] | None = None) -> Config:
        """从 YAML 文件加载，再叠加环境变量覆盖；文件不存在时只用默认值"""
        data = load_yaml(path)
        known = {f.name: f for f in fields(cls) if f.name != "extra"}
        values = {k: _coerce(k, v, known[k].type) for k, v in data.items() if k in known}
        cfg = cls(**values)
        cfg.extra = {k: v for k, v in data.items() if k not in known}
        cfg.apply_env(os.environ if environ is None else environ)
        return cfg

    def apply_env(self, environ: Mapping[str, str]) -> None:
        for f in fields(self):
            if f.name == "extra":
                continue
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is not None:
                setattr(self, f.name, _coerce(f.name, raw, f.type))
                logger.debug("环境变量覆盖配置: %s", f.name)

    def tools(self) -> dict[str, str]:
        """命令模板中的工具占位符"""
        return {"mvn": self.mvn, "pnpm": self.pnpm, "git": self.git}

    def to_dict(self) -> dict:
        return asdict(self)


def _coerce(name: str, value: object, type_name: object) -> object:
    # from __future__ annotations 下 field.type 是字符串
    if type_name in (bool, "bool"):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"配置项 {name} 应为布尔值: {value!r}")
    if isinstance(value, (dict, list)):
        raise ConfigError(f"配置项 {name} 应为字符串: {value!r}")
    return str(value)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "configs/default.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
