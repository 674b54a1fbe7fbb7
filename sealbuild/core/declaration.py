"""构建声明 - 一次流水线运行的全部输入

声明文件 (YAML) 描述:
  - source:    源码坐标、修订、期望哈希、有序补丁列表、post-patch 钩子
  - toolchain: 需要写回源码树的精确工具链版本
  - vendor:    两个生态的依赖解析命令、规范化规则、期望的 vendor 哈希
  - build:     有序构建目标、离线构建命令
  - artifacts: 产物定位模式
  - package:   被覆盖的既有包定义

未声明的部分使用与 Keycloak (Maven + pnpm) 构建一致的默认值。

示例:
    name: keycloak
    version: unstable-2024-07-03
    source:
      url: https://github.com/keycloak/keycloak/archive/02d64d959c088815fbb3809106d8967dd7524a81.tar.gz
      rev: 02d64d959c088815fbb3809106d8967dd7524a81
      hash: sha256-ae/cORywijzvG/qMaX2tAMSqOwUgmvr9HQl6k/Afcpo=
      patches:
        - url: https://github.com/keycloak/keycloak/pull/26867/commits/7d6dd411b33b30d90428e474b6f0e4a671c87b58.patch
          hash: sha256-...   # 补丁文件原始字节的哈希
    toolchain:
      node: v20.15.0
      pnpm: 9.4.0
    vendor:
      hash: sha256-...   # vendor 存储的固定哈希
    package:
      definition: packages/keycloak.yml
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

from sealbuild.core.exceptions import ConfigError
from sealbuild.utils.net import is_remote
from sealbuild.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


# =========================================================================
# 源码
# =========================================================================

@dataclass(frozen=True)
class PatchSpec:
    """单个补丁: 来源（URL 或本地路径）+ 期望内容哈希"""

    url: str
    hash: str
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or self.url.rstrip("/").split("/")[-1]


@dataclass(frozen=True)
class SourceSpec:
    """源码树输入（不可变）

    source_type:
      - tar: tar 包（本地路径或 http/https URL），解压时剥离顶层目录
      - git: Git 仓库，检出 rev 后删除 .git
    """

    url: str
    rev: str
    hash: str
    source_type: str = "tar"
    patches: tuple[PatchSpec, ...] = ()
    post_patch: str = ""
    # 源码树内相对路径 -> 符号链接目标（让前端插件使用固定版本的 node/pnpm）
    links: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolchainPin:
    """源码树内一个工具链版本字段，按元素本地名路径定位"""

    file: str
    path: tuple[str, ...]
    value: str


# =========================================================================
# 依赖 vendor
# =========================================================================

@dataclass(frozen=True)
class EcosystemSpec:
    """一个生态的依赖解析调用

    commands 中可用占位符:
      {cache}  本生态私有缓存目录    {store} vendor 存储根目录
      {src}    源码树                {args}  构建目标参数（含此占位符的命令按目标逐个执行）
      {mvn} / {pnpm} / {git}  工具可执行文件（来自 Config）
    env 中的 {cache} 在 vendor 和构建阶段分别指向各自的缓存位置，
    所有生态的 env 会合并后导出给每一条命令（后端构建工具会在内部调用前端工具）。
    """

    name: str
    cache_subdir: str
    commands: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    # 构建阶段是否需要该缓存的可写副本（Maven 会在本地仓库写入构建产物）
    copy_for_build: bool = False


@dataclass(frozen=True)
class NormalizationRule:
    """规范化规则: (路径模式, 变换)

    action:
      - delete:     删除匹配文件
      - json_field: 递归把 JSON 中所有名为 json_key 的键改写为 sentinel
    pattern 为相对 vendor 存储根目录的 glob（支持 **）。
    """

    pattern: str
    action: str = "delete"
    json_key: str = ""
    sentinel: Any = 0


# =========================================================================
# 构建 / 产物
# =========================================================================

@dataclass(frozen=True)
class BuildTarget:
    """一个有序构建目标（后续目标依赖前面目标的产物）"""

    name: str
    args: str


@dataclass(frozen=True)
class ArtifactPatterns:
    """产物定位模式（相对源码树的 glob）"""

    schema: str = "services/target/apidocs-rest/swagger/apidocs/openapi.*"
    dist: str = "quarkus/dist/target/keycloak-*.tar.gz"
    dist_name: str = "keycloak.tar.gz"


MAVEN_ECOSYSTEM = EcosystemSpec(
    name="maven",
    cache_subdir=".m2",
    commands=("{mvn} package -Dmaven.repo.local={cache} {args}",),
    copy_for_build=True,
)

PNPM_ECOSYSTEM = EcosystemSpec(
    name="pnpm",
    cache_subdir="pnpm",
    commands=(
        "{pnpm} config set store-dir {cache} --global",
        "{pnpm} install --frozen-lockfile --ignore-scripts",
    ),
    env={"npm_config_store_dir": "{cache}"},
)

# pnpm 的 store 配置必须先于 Maven 写入，Maven 的前端插件会在内部调用 pnpm
DEFAULT_ECOSYSTEMS: tuple[EcosystemSpec, ...] = (PNPM_ECOSYSTEM, MAVEN_ECOSYSTEM)

DEFAULT_TARGETS: tuple[BuildTarget, ...] = (
    BuildTarget(name="dist", args="-am -pl quarkus/deployment,quarkus/dist"),
    BuildTarget(name="apidocs", args="-am -pl services -P jboss-release"),
)

DEFAULT_BUILD_COMMAND = (
    "{mvn} package --offline --no-snapshot-updates "
    "-Dmaven.repo.local={maven_cache} {args}"
)


def _node_pnpm_pins(mapping: dict[str, str]) -> tuple[ToolchainPin, ...]:
    """toolchain 简写 {node: v20, pnpm: 9} -> pom.xml 的 <name>.version 属性"""
    return tuple(
        ToolchainPin(
            file="pom.xml",
            path=("project", "properties", f"{name}.version"),
            value=str(value),
        )
        for name, value in mapping.items()
    )


def _require(data: dict[str, Any], key: str, section: str) -> Any:
    value = data.get(key)
    if value in (None, ""):
        label = f"{section}.{key}" if section else key
        raise ConfigError(f"构建声明缺少必填项: {label}")
    return value


def _resolve_local(location: str, base: Path) -> str:
    """本地相对路径按声明文件所在目录解析，URL 原样返回"""
    if is_remote(location) or Path(location).is_absolute():
        return location
    return str(base / location)


def input_key(*parts: Any) -> str:
    """由输入内容派生稳定的目录键（同样输入 → 同样目录，不同实例互不干扰）"""
    blob = json.dumps(parts, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()[:16]


@dataclass
class PipelineDeclaration:
    """一次流水线运行的完整输入声明"""

    name: str
    version: str
    source: SourceSpec
    pins: tuple[ToolchainPin, ...] = ()
    vendor_hash: str = ""
    ecosystems: tuple[EcosystemSpec, ...] = DEFAULT_ECOSYSTEMS
    rules: tuple[NormalizationRule, ...] = ()
    targets: tuple[BuildTarget, ...] = DEFAULT_TARGETS
    build_command: str = DEFAULT_BUILD_COMMAND
    offline_markers: tuple[str, ...] = ()
    run_tests: bool = False
    artifacts: ArtifactPatterns = field(default_factory=ArtifactPatterns)
    package_file: str = ""
    strip_components: int = 1

    # ---- 派生值 ----

    def target_args(self, target: BuildTarget) -> str:
        """目标参数；生产构建默认跳过测试（测试由独立 CI 任务执行）"""
        if self.run_tests:
            return target.args
        return f"-DskipTests {target.args}"

    def source_key(self) -> str:
        return input_key(asdict(self.source), [asdict(p) for p in self.pins])

    def build_key(self, vendor_hash: str) -> str:
        return input_key(
            self.source_key(), vendor_hash,
            [self.target_args(t) for t in self.targets],
            self.build_command, asdict(self.artifacts),
        )

    # ---- 加载 ----

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineDeclaration:
        src = data.get("source") or {}
        if not isinstance(src, dict):
            raise ConfigError("构建声明 source 段必须是映射")
        patches = tuple(
            PatchSpec(
                url=str(_require(p, "url", "source.patches")),
                # 留空时拉取后失败并报告实际哈希
                hash=str(p.get("hash") or ""),
                name=str(p.get("name", "")),
            )
            for p in (src.get("patches") or [])
        )
        source_type = src.get("type", "tar")
        if source_type not in ("tar", "git"):
            raise ConfigError(f"不支持的源码类型: {source_type}")
        source = SourceSpec(
            url=str(_require(src, "url", "source")),
            rev=str(src.get("rev", "")),
            hash=str(_require(src, "hash", "source")),
            source_type=source_type,
            patches=patches,
            post_patch=str(src.get("post_patch", "")),
            links={str(k): str(v) for k, v in (src.get("links") or {}).items()},
        )
        if source_type == "git" and not source.rev:
            raise ConfigError("git 源码必须声明 source.rev")

        toolchain = data.get("toolchain") or {}
        if isinstance(toolchain, dict):
            pins = _node_pnpm_pins(toolchain)
        else:
            pins = tuple(
                ToolchainPin(
                    file=str(_require(t, "file", "toolchain")),
                    path=tuple(str(_require(t, "path", "toolchain")).strip("/").split("/")),
                    value=str(_require(t, "value", "toolchain")),
                )
                for t in toolchain
            )

        vendor = data.get("vendor") or {}
        ecosystems = DEFAULT_ECOSYSTEMS
        if vendor.get("ecosystems"):
            ecosystems = tuple(
                EcosystemSpec(
                    name=str(_require(e, "name", "vendor.ecosystems")),
                    cache_subdir=str(_require(e, "cache_subdir", "vendor.ecosystems")),
                    commands=tuple(e.get("commands") or ()),
                    env=dict(e.get("env") or {}),
                    copy_for_build=bool(e.get("copy_for_build", False)),
                )
                for e in vendor["ecosystems"]
            )
        rules = tuple(
            NormalizationRule(
                pattern=str(_require(r, "pattern", "vendor.rules")),
                action=str(r.get("action", "delete")),
                json_key=str(r.get("field", "")),
                sentinel=r.get("sentinel", 0),
            )
            for r in (vendor.get("rules") or [])
        )

        build = data.get("build") or {}
        targets = DEFAULT_TARGETS
        if build.get("targets"):
            targets = tuple(
                BuildTarget(
                    name=str(t.get("name", f"target-{i}")),
                    args=str(_require(t, "args", "build.targets")),
                )
                for i, t in enumerate(build["targets"])
            )

        art = data.get("artifacts") or {}
        defaults = ArtifactPatterns()
        artifacts = ArtifactPatterns(
            schema=str(art.get("schema", defaults.schema)),
            dist=str(art.get("dist", defaults.dist)),
            dist_name=str(art.get("dist_name", defaults.dist_name)),
        )

        package = data.get("package") or {}
        return cls(
            name=str(_require(data, "name", "")),
            version=str(_require(data, "version", "")),
            source=source,
            pins=pins,
            vendor_hash=str(vendor.get("hash", "")),
            ecosystems=ecosystems,
            rules=rules,
            targets=targets,
            build_command=str(build.get("command", DEFAULT_BUILD_COMMAND)),
            offline_markers=tuple(build.get("offline_markers") or ()),
            run_tests=bool(build.get("run_tests", False)),
            artifacts=artifacts,
            package_file=str(package.get("definition", "")),
            strip_components=int(package.get("strip_components", 1)),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> PipelineDeclaration:
        """从 YAML 文件加载声明；包定义路径相对声明文件解析"""
        p = Path(path)
        if not p.exists():
            raise ConfigError(f"构建声明文件不存在: {p}")
        decl = cls.from_dict(load_yaml(p))
        base = p.parent
        if decl.package_file:
            decl.package_file = _resolve_local(decl.package_file, base)
        source = decl.source
        if source.source_type == "tar":
            source = replace(source, url=_resolve_local(source.url, base))
        decl.source = replace(source, patches=tuple(
            replace(patch, url=_resolve_local(patch.url, base))
            for patch in source.patches
        ))
        logger.info("构建声明已加载: %s (%s@%s)", p, decl.name, decl.version)
        return decl
