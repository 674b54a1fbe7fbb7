"""源码来源适配器 - 支持 Tar / Git

职责：
- Tar 包解压（本地/远程），剥离顶层包裹目录
- Git 仓库按固定修订检出，并删除 .git（版本库元数据不属于源码内容）

两种来源都只负责把源码放到指定目录，完整性校验由 SourcePreparer 统一完成。
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Protocol

from sealbuild.core.declaration import SourceSpec
from sealbuild.core.exceptions import ExecutionError, ValidationError
from sealbuild.utils.archive import unpack_tar
from sealbuild.utils.net import download, is_remote
from sealbuild.utils.shell import CommandExecutor, get_executor, run_cmd

logger = logging.getLogger(__name__)

_SAFE_REF_RE = re.compile(r"^[a-zA-Z0-9_./@\-]+$")


class SourceFetcher(Protocol):
    def fetch(self, spec: SourceSpec, dest: Path) -> Path:
        """把源码放到 dest（dest 不存在），返回源码根目录"""
        ...


class TarSource:
    """Tar 包来源（本地/远程）"""

    def fetch(self, spec: SourceSpec, dest: Path) -> Path:
        archive = Path(spec.url)
        if is_remote(spec.url):
            archive = dest.parent / f"{dest.name}.src-archive"
            try:
                download(spec.url, archive, context="source")
            except ConnectionError as e:
                raise ExecutionError(f"源码下载失败: {e}") from e
        elif not archive.is_file():
            raise ValidationError(f"源码 tar 包不存在: {spec.url}")

        try:
            unpack_tar(archive, dest, strip=1)
        finally:
            if is_remote(spec.url):
                archive.unlink(missing_ok=True)
        logger.info("Tar 源码就绪: %s -> %s", spec.url, dest)
        return dest


class GitSource:
    """Git 仓库来源"""

    def __init__(self, git: str = "git", executor: CommandExecutor | None = None) -> None:
        self.git = git
        self.executor = executor or get_executor()

    def fetch(self, spec: SourceSpec, dest: Path) -> Path:
        """从 Git 仓库检出固定修订，删除 .git 后返回"""
        if not _SAFE_REF_RE.match(spec.rev):
            raise ValidationError(f"rev 包含非法字符: {spec.rev}")
        dest.mkdir(parents=True, exist_ok=True)

        self._git(["init", "--quiet"], dest)
        self._git(["remote", "add", "origin", spec.url], dest)
        # 先尝试浅拉取目标修订，服务端不支持按 SHA 拉取时回退完整拉取
        shallow = self.executor.execute(
            [self.git, "fetch", "--depth", "1", "origin", spec.rev], cwd=str(dest),
        )
        if shallow.success:
            self._git(["checkout", "--quiet", "FETCH_HEAD"], dest)
        else:
            logger.info("浅拉取失败，回退完整拉取: %s", shallow.tail(300))
            self._git(["fetch", "origin"], dest)
            self._git(["checkout", "--quiet", spec.rev], dest)

        shutil.rmtree(dest / ".git")
        logger.info("Git 源码就绪: %s@%s -> %s", spec.url, spec.rev, dest)
        return dest

    def _git(self, args: list[str], cwd: Path) -> None:
        run_cmd([self.git, *args], cwd=str(cwd), label=f"git {args[0]}", executor=self.executor)


def get_fetcher(source_type: str, *, git: str = "git",
                executor: CommandExecutor | None = None) -> SourceFetcher:
    """按来源类型选择适配器"""
    if source_type == "tar":
        return TarSource()
    if source_type == "git":
        return GitSource(git=git, executor=executor)
    raise ValidationError(f"不支持的来源类型: {source_type}")
