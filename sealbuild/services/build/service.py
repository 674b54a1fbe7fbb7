"""离线构建服务

流程:
  1. 复核 vendor 存储哈希（防篡改），不符即中止
  2. 把源码树与需要可写的缓存（Maven 本地仓库）复制到私有构建目录，
     vendor 存储本身从不被写入
  3. 按声明顺序执行构建目标，构建工具被强制离线:
     - 命令本身带离线参数（mvn --offline）
     - 代理指向不可达地址，pnpm 以 offline 模式运行
     - 可用时在独立网络命名空间中执行（unshare -rn）
  4. 失败输出命中离线违规特征 → OfflineViolationError，其余 → BuildToolError
  5. 定位并校验产物，经暂存目录原子改名到 output/build-<key>/{dist,api}
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from sealbuild.core.declaration import (
    DEFAULT_BUILD_COMMAND,
    DEFAULT_ECOSYSTEMS,
    ArtifactPatterns,
    EcosystemSpec,
    PipelineDeclaration,
)
from sealbuild.core.exceptions import AmbiguousArtifactError, BuildToolError, OfflineViolationError
from sealbuild.core.models import BuildArtifactSet, PreparedSource, VendorStore
from sealbuild.services.build.artifacts import locate_artifact, locate_schema_documents
from sealbuild.services.vendor.service import verify_store
from sealbuild.utils.shell import (
    CommandExecutor,
    CommandResult,
    expand,
    expand_command,
    get_executor,
    private_home_env,
)

logger = logging.getLogger(__name__)

# 构建工具访问网络时的典型输出
DEFAULT_OFFLINE_MARKERS: tuple[str, ...] = (
    "offline mode",
    "ERR_PNPM_NO_OFFLINE",
    "ERR_PNPM_META_FETCH_FAIL",
    "UnknownHostException",
    "ENOTFOUND",
    "EAI_AGAIN",
    "ECONNREFUSED",
    "Could not resolve host",
    "Network is unreachable",
)

# discard 端口，连接会被立即拒绝
UNREACHABLE_PROXY = "http://127.0.0.1:9"


def offline_env() -> dict[str, str]:
    """让工具的 HTTP 访问失败的环境变量"""
    env = {"npm_config_offline": "true", "no_proxy": "", "NO_PROXY": ""}
    for name in ("http_proxy", "https_proxy", "HTTP_PROXY", "HTTPS_PROXY",
                 "npm_config_proxy", "npm_config_https_proxy"):
        env[name] = UNREACHABLE_PROXY
    return env


def find_offline_marker(result: CommandResult, markers: tuple[str, ...]) -> str:
    """返回输出中命中的第一个离线违规特征（大小写不敏感），没有则返回空串"""
    text = result.output.lower()
    for marker in markers:
        if marker.lower() in text:
            return marker
    return ""


class BuildOrchestrator:
    """离线构建阶段"""

    def __init__(
        self,
        targets: tuple[tuple[str, str], ...],
        ecosystems: tuple[EcosystemSpec, ...] = DEFAULT_ECOSYSTEMS,
        build_command: str = DEFAULT_BUILD_COMMAND,
        artifacts: ArtifactPatterns | None = None,
        key: str = "",
        offline_markers: tuple[str, ...] = (),
        expected_vendor_hash: str = "",
        output_root: str = "",
        tools: dict[str, str] | None = None,
        isolate_network: bool | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        if not output_root or tools is None or isolate_network is None:
            from sealbuild.core.config import get_config
            cfg = get_config()
            output_root = output_root or cfg.output_dir
            tools = cfg.tools() if tools is None else tools
            isolate_network = cfg.isolate_network if isolate_network is None else isolate_network
        self.targets = targets
        self.ecosystems = ecosystems
        self.build_command = build_command
        self.artifacts = artifacts or ArtifactPatterns()
        self.key = key
        self.markers = DEFAULT_OFFLINE_MARKERS + tuple(offline_markers)
        self.expected_vendor_hash = expected_vendor_hash
        self.output_root = Path(output_root)
        self.tools = tools
        self.isolate_network = isolate_network
        self.executor = executor or get_executor()

    @classmethod
    def from_declaration(cls, decl: PipelineDeclaration, **kwargs) -> BuildOrchestrator:
        if not decl.run_tests:
            logger.warning("生产构建跳过测试 (-DskipTests)，测试需在独立的 CI 任务中执行")
        return cls(
            targets=tuple((t.name, decl.target_args(t)) for t in decl.targets),
            ecosystems=decl.ecosystems,
            build_command=decl.build_command,
            artifacts=decl.artifacts,
            key=decl.build_key(decl.vendor_hash),
            offline_markers=decl.offline_markers,
            expected_vendor_hash=decl.vendor_hash,
            **kwargs,
        )

    # ---- 对外操作 ----

    def build(self, source: PreparedSource, store: VendorStore) -> BuildArtifactSet:
        """在 vendor 存储之上离线构建，返回产物集合"""
        verify_store(store.path, self.expected_vendor_hash or store.hash)
        logger.info("vendor 存储复核通过: %s", store.path)

        key = self.key or store.hash
        self.output_root.mkdir(parents=True, exist_ok=True)
        work = Path(tempfile.mkdtemp(prefix=f".work-{key}-", dir=self.output_root))
        staging = Path(tempfile.mkdtemp(prefix=f".build-{key}-", dir=self.output_root))
        final = self.output_root / f"build-{key}"
        try:
            src = work / "src"
            shutil.copytree(source.path, src, symlinks=True)
            values, env = self._prepare_caches(store, work)

            prefix = self._isolation_prefix()
            for name, args in self.targets:
                cmd = expand_command(self.build_command, {**values, "args": args})
                logger.info("构建目标 %s: %s", name, " ".join(cmd))
                r = self.executor.execute([*prefix, *cmd], cwd=str(src), env=env)
                if not r.success:
                    self._raise_failure(name, r)
                logger.info("构建目标完成: %s", name)

            result = self._collect(src, staging)
            if final.exists():
                shutil.rmtree(final)
            os.replace(staging, final)
        finally:
            shutil.rmtree(work, ignore_errors=True)
            shutil.rmtree(staging, ignore_errors=True)

        artifacts = BuildArtifactSet(
            dist_archive=final / result[0],
            schema_documents=tuple(final / p for p in result[1]),
        )
        logger.info("构建完成: %s", final)
        return artifacts

    # ---- 内部 ----

    def _prepare_caches(
        self, store: VendorStore, work: Path,
    ) -> tuple[dict[str, str], dict[str, str]]:
        """返回 (命令占位符, 环境变量)

        需要可写的缓存复制到构建目录，其余缓存直接引用 vendor 存储。
        """
        values = {**self.tools, "src": str(work / "src"), "store": str(store.path)}
        env = private_home_env(work / "home")
        for eco in self.ecosystems:
            cache = store.cache_dir(eco.cache_subdir)
            if eco.copy_for_build:
                writable = work / eco.cache_subdir
                shutil.copytree(cache, writable, symlinks=True)
                cache = writable
            values[f"{eco.name}_cache"] = str(cache)
            for k, v in eco.env.items():
                env[k] = expand(v, {"cache": str(cache)})
        env.update(offline_env())
        return values, env

    def _isolation_prefix(self) -> list[str]:
        if not self.isolate_network:
            return []
        unshare = shutil.which("unshare")
        if unshare is None:
            logger.warning("未找到 unshare，仅依靠离线参数与代理阻断网络")
            return []
        probe = self.executor.execute([unshare, "-rn", "true"])
        if not probe.success:
            logger.warning("当前环境无法创建网络命名空间: %s", probe.tail(200))
            return []
        return [unshare, "-rn"]

    def _raise_failure(self, target: str, r: CommandResult) -> None:
        marker = find_offline_marker(r, self.markers)
        if marker:
            raise OfflineViolationError(
                f"构建目标 {target} 试图访问网络 (命中 {marker!r})，"
                f"vendor 存储缺少依赖: {r.tail(1500)}"
            )
        raise BuildToolError(f"构建目标 {target} 失败 (rc={r.returncode}): {r.tail(1500)}")

    def _collect(self, src: Path, staging: Path) -> tuple[str, list[str]]:
        """定位产物并复制到暂存目录，返回相对暂存目录的路径"""
        dist = locate_artifact(src, self.artifacts.dist)
        docs = locate_schema_documents(src, self.artifacts.schema)
        names = [d.name for d in docs]
        if len(set(names)) != len(names):
            raise AmbiguousArtifactError(
                f"API 描述文档重名: {self.artifacts.schema}",
                matches=[d.relative_to(src).as_posix() for d in docs],
            )

        (staging / "dist").mkdir()
        (staging / "api").mkdir()
        dist_rel = f"dist/{self.artifacts.dist_name}"
        shutil.copy2(dist, staging / dist_rel)
        doc_rels = []
        for doc in docs:
            rel = f"api/{doc.name}"
            shutil.copy2(doc, staging / rel)
            doc_rels.append(rel)
        logger.info("发行包: %s -> %s", dist.relative_to(src), dist_rel)
        return dist_rel, doc_rels
