"""源码准备服务 - 拉取 → 完整性校验 → 补丁 → 工具链版本 → 钩子

流程:
  1. 拉取源码到暂存目录（tar 解压 / git 检出）
  2. 计算打补丁前的 NAR 哈希并与声明核对（不符即 SourceIntegrityError，不重试）
  3. 按声明顺序应用补丁
  4. 结构化改写工具链版本字段
  5. 建立工具链符号链接
  6. 执行 post-patch 钩子
  7. 暂存目录原子改名为 workspace/source-<key>

任一步失败都会删除暂存目录，不留下半成品。
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from sealbuild.core.declaration import PipelineDeclaration, SourceSpec
from sealbuild.core.exceptions import PatchApplyError, SourceIntegrityError, ValidationError
from sealbuild.core.hashing import hashes_equal, nar_hash
from sealbuild.core.models import PreparedSource
from sealbuild.services.source.fetch import get_fetcher
from sealbuild.services.source.manifest import apply_pin
from sealbuild.services.source.patches import PatchApplier
from sealbuild.utils.shell import CommandExecutor, get_executor

logger = logging.getLogger(__name__)


class SourcePreparer:
    """源码准备阶段"""

    def __init__(
        self,
        workspace_root: str = "",
        git: str = "",
        executor: CommandExecutor | None = None,
    ) -> None:
        if not workspace_root or not git:
            from sealbuild.core.config import get_config
            cfg = get_config()
            workspace_root = workspace_root or cfg.workspace_dir
            git = git or cfg.git
        self.workspace_root = Path(workspace_root)
        self.git = git
        self.executor = executor or get_executor()

    def prepare(self, decl: PipelineDeclaration) -> PreparedSource:
        """执行完整的源码准备流程，返回不可变的 PreparedSource"""
        key = decl.source_key()
        final = self.workspace_root / f"source-{key}"
        self.workspace_root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".source-{key}-", dir=self.workspace_root))
        try:
            tree = staging / "src"
            content_hash = self.fetch_verified(decl.source, tree)
            PatchApplier(
                staging / "patches", git=self.git, executor=self.executor,
            ).apply_all(tree, decl.source.patches)
            for pin in decl.pins:
                apply_pin(tree, pin)
            self._link_toolchain(tree, decl.source.links)
            self._run_post_patch(tree, decl.source.post_patch)

            if final.exists():
                logger.info("替换已有源码目录: %s", final)
                shutil.rmtree(final)
            os.replace(tree, final)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info("源码准备完成: %s (%s)", final, content_hash)
        return PreparedSource(path=final, content_hash=content_hash, key=key)

    def fetch_verified(self, spec: SourceSpec, dest: Path) -> str:
        """拉取源码并核对打补丁前的内容哈希，返回实际哈希"""
        fetcher = get_fetcher(spec.source_type, git=self.git, executor=self.executor)
        fetcher.fetch(spec, dest)
        actual = nar_hash(dest)
        if not hashes_equal(spec.hash, actual):
            raise SourceIntegrityError(
                f"源码内容哈希不符 ({spec.url}@{spec.rev})",
                expected=spec.hash, actual=actual,
            )
        logger.info("源码完整性校验通过: %s", actual)
        return actual

    @staticmethod
    def _link_toolchain(tree: Path, links: dict[str, str]) -> None:
        """在源码树内预置工具链链接（等价 ln -sf），供前端构建插件直接使用"""
        for rel, target in sorted(links.items()):
            rel_path = Path(rel)
            if rel_path.is_absolute() or ".." in rel_path.parts:
                raise ValidationError(f"链接路径越出源码树: {rel}")
            link = tree / rel_path
            link.parent.mkdir(parents=True, exist_ok=True)
            if link.is_symlink() or link.exists():
                link.unlink()
            link.symlink_to(target)
            logger.info("  工具链链接: %s -> %s", rel, target)

    def _run_post_patch(self, tree: Path, hook: str) -> None:
        if not hook.strip():
            return
        logger.info("  执行 post-patch 钩子")
        r = self.executor.execute(["sh", "-c", hook], cwd=str(tree), env=dict(os.environ))
        if not r.success:
            raise PatchApplyError(f"post-patch 钩子失败 (rc={r.returncode}): {r.tail(800)}")
