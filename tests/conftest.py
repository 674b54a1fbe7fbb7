"""共享测试夹具: fake 命令执行器、tar 包构造"""

from __future__ import annotations

import io
import shlex
import tarfile
from collections.abc import Callable
from pathlib import Path

import pytest

from sealbuild.core.config import Config
from sealbuild.utils.shell import CommandResult

Handler = Callable[[list[str], str, dict], "CommandResult | None"]


class FakeExecutor:
    """记录每次调用；handler 返回 None 时视为成功"""

    def __init__(self, handler: Handler | None = None) -> None:
        self.handler = handler
        self.calls: list[dict] = []

    def execute(self, cmd, *, cwd=".", env=None, timeout=None) -> CommandResult:
        args = shlex.split(cmd) if isinstance(cmd, str) else list(cmd)
        self.calls.append({"cmd": args, "cwd": cwd, "env": env or {}})
        if self.handler is not None:
            result = self.handler(args, cwd, env or {})
            if result is not None:
                return result
        return CommandResult(returncode=0, stdout="", stderr="")

    def commands(self) -> list[str]:
        return [" ".join(c["cmd"]) for c in self.calls]


def build_tar(dest: Path, files: dict[str, str | bytes], root: str = "pkg-1.0") -> Path:
    """构造 tar.gz；root 为空时文件直接位于顶层"""
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, "w:gz") as tf:
        if root:
            info = tarfile.TarInfo(root)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tf.addfile(info)
        for name, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(f"{root}/{name}" if root else name)
            info.size = len(data)
            info.mode = 0o755 if name.endswith(".sh") else 0o644
            tf.addfile(info, io.BytesIO(data))
    return dest


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def make_tar() -> Callable[..., Path]:
    return build_tar


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """所有目录都位于 tmp_path 下、关闭网络命名空间的配置"""
    return Config(
        workspace_dir=str(tmp_path / "ws"),
        store_dir=str(tmp_path / "store"),
        output_dir=str(tmp_path / "out"),
        publish_dir=str(tmp_path / "publish"),
        isolate_network=False,
    )
