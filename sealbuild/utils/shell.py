"""外部工具调用

git / mvn / pnpm / unshare 都经由 CommandExecutor 协议执行。各阶段只看返回码和输出，
由自己把失败映射成阶段异常；测试注入 fake 执行器来模拟生态工具。

命令模板（构建声明里的 vendor 命令、构建命令）用 {name} 占位符，
由 expand / expand_command 展开。
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from sealbuild.core.exceptions import ConfigError, ExecutionError

logger = logging.getLogger(__name__)

# 与 coreutils 约定一致
RC_TIMEOUT = 124
RC_NOT_FOUND = 127


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return f"{self.stdout}\n{self.stderr}"

    def tail(self, limit: int = 2000) -> str:
        """输出末尾片段（stderr 优先），用于错误信息"""
        text = self.stderr.strip() or self.stdout.strip()
        return text[-limit:]


class CommandExecutor(Protocol):
    """命令执行器协议；字符串命令按 shell 规则切分，不经过 shell"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        ...


def describe(cmd: str | list[str]) -> str:
    return cmd if isinstance(cmd, str) else shlex.join(cmd)


class LocalExecutor:
    """本机 subprocess 执行

    工具不存在 (127) 和超时 (124) 都以返回码报告，不抛异常。
    构建工具的输出可能不是 UTF-8，无法解码的字节替换为 U+FFFD。
    """

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        args = shlex.split(cmd) if isinstance(cmd, str) else list(cmd)
        logger.debug("exec: %s (cwd=%s)", describe(args), cwd)
        try:
            r = subprocess.run(
                args, capture_output=True, text=True, errors="replace",
                cwd=cwd, env=env, check=False, timeout=timeout,
            )
        except FileNotFoundError as e:
            return CommandResult(RC_NOT_FOUND, "", str(e))
        except subprocess.TimeoutExpired as e:
            return CommandResult(RC_TIMEOUT, _text(e.stdout), f"超时 ({timeout}s): {describe(args)}")
        return CommandResult(r.returncode, r.stdout, r.stderr)


def _text(data: str | bytes | None) -> str:
    if data is None:
        return ""
    return data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data


_XDG_DIRS = {
    "XDG_CONFIG_HOME": ".config",
    "XDG_CACHE_HOME": ".cache",
    "XDG_DATA_HOME": ".local/share",
    "XDG_STATE_HOME": ".local/state",
}


def private_home_env(home: Path) -> dict[str, str]:
    """继承当前环境，但 HOME 与 XDG 目录全部指向 home 之下

    pnpm 的 --global 配置写入 $XDG_CONFIG_HOME，元数据缓存写入 $XDG_CACHE_HOME，
    不改写时会落到宿主用户目录并在并发实例之间共享。
    """
    env = {**os.environ, "HOME": str(home)}
    for name, rel in _XDG_DIRS.items():
        path = home / rel
        path.mkdir(parents=True, exist_ok=True)
        env[name] = str(path)
    return env


_default_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    return _default_executor


def set_executor(executor: CommandExecutor) -> None:
    """替换全局默认执行器"""
    global _default_executor  # noqa: PLW0603
    _default_executor = executor


def run_cmd(
    cmd: str | list[str], *, cwd: str = ".",
    env: dict[str, str] | None = None,
    label: str = "cmd",
    executor: CommandExecutor | None = None,
) -> CommandResult:
    """执行命令，非零退出抛 ExecutionError"""
    logger.info("  %s: %s", label, describe(cmd))
    r = (executor or get_executor()).execute(cmd, cwd=cwd, env=env)
    if not r.success:
        raise ExecutionError(f"{label} 失败 (rc={r.returncode}): {r.tail(500)}")
    return r


_PLACEHOLDER_RE = re.compile(r"\{([a-z_]+)\}")


def expand(template: str, values: dict[str, str]) -> str:
    """替换 {name} 占位符；剩下未知占位符时抛 ConfigError"""
    text = template
    for key, value in values.items():
        text = text.replace(f"{{{key}}}", value)
    unknown = _PLACEHOLDER_RE.findall(text)
    if unknown:
        raise ConfigError(f"命令模板含未知占位符 {sorted(set(unknown))}: {template}")
    return text


def expand_command(template: str, values: dict[str, str]) -> list[str]:
    """展开后按 shell 规则切分为参数列表"""
    return shlex.split(expand(template, values))
