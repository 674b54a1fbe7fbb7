"""补丁拉取与应用

职责:
- 拉取补丁（本地路径或 http/https URL）
- 校验补丁内容哈希（下载到的原始字节，不做任何规整）
- 按声明顺序逐个应用，每个补丁都基于前一个补丁的结果

应用使用 ``git apply``（源码树不是 Git 仓库时按普通 patch 方式工作），
先 ``--check`` 预演，失败则源码树保持该补丁之前的状态。
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from sealbuild.core.declaration import PatchSpec
from sealbuild.core.exceptions import ExecutionError, PatchApplyError, SourceIntegrityError
from sealbuild.core.hashing import file_sha256, hashes_equal
from sealbuild.utils.net import download, is_remote
from sealbuild.utils.shell import CommandExecutor, get_executor

logger = logging.getLogger(__name__)


class PatchApplier:
    """有序补丁应用器"""

    def __init__(
        self,
        download_dir: Path,
        git: str = "git",
        executor: CommandExecutor | None = None,
    ) -> None:
        self.download_dir = download_dir
        self.git = git
        self.executor = executor or get_executor()

    def fetch(self, patch: PatchSpec, index: int) -> Path:
        """拉取补丁并校验哈希，返回本地文件路径"""
        if is_remote(patch.url):
            local = self.download_dir / f"{index:03d}-{patch.label}"
            try:
                download(patch.url, local, context=f"patch {patch.label}")
            except ConnectionError as e:
                raise ExecutionError(f"补丁下载失败: {e}") from e
        else:
            local = Path(patch.url)
            if not local.is_file():
                raise PatchApplyError(f"补丁文件不存在: {patch.url}")

        actual = file_sha256(local)
        if not hashes_equal(patch.hash, actual):
            raise SourceIntegrityError(
                f"补丁内容哈希不符 ({patch.label})",
                expected=patch.hash, actual=actual,
            )
        return local

    def apply(self, tree: Path, patch_file: Path, label: str) -> None:
        """在当前源码树状态上应用单个补丁"""
        env = {
            **os.environ,
            # 阻止 git 向上发现外层仓库，保证补丁路径相对源码树根目录
            "GIT_CEILING_DIRECTORIES": str(tree.resolve().parent),
        }
        base = [self.git, "apply", "--whitespace=nowarn"]
        check = self.executor.execute(
            [*base, "--check", str(patch_file.resolve())], cwd=str(tree), env=env,
        )
        if not check.success:
            raise PatchApplyError(f"补丁无法干净应用: {label}: {check.tail(800)}")
        r = self.executor.execute(
            [*base, str(patch_file.resolve())], cwd=str(tree), env=env,
        )
        if not r.success:
            raise PatchApplyError(f"补丁应用失败: {label}: {r.tail(800)}")

    def apply_all(self, tree: Path, patches: tuple[PatchSpec, ...]) -> list[str]:
        """按声明顺序拉取并应用全部补丁，返回已应用的补丁标签"""
        applied: list[str] = []
        if not patches:
            return applied
        self.download_dir.mkdir(parents=True, exist_ok=True)
        try:
            for i, patch in enumerate(patches, start=1):
                label = f"#{i} {patch.label}"
                local = self.fetch(patch, i)
                self.apply(tree, local, label)
                applied.append(patch.label)
                logger.info("  补丁已应用: %s", label)
        finally:
            shutil.rmtree(self.download_dir, ignore_errors=True)
        return applied
