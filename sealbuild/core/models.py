"""核心数据模型

每个流水线阶段独占地产出自己的实体，实体在阶段完成后不再被修改:
  SourcePreparation → PreparedSource
  DependencyVendor  → VendorStore
  BuildOrchestrator → BuildArtifactSet
  ArtifactPublisher → PackageDefinition（覆盖后的视图）
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class PreparedSource:
    """打完补丁、改写过工具链版本的源码树"""

    path: Path
    content_hash: str          # 打补丁前的 NAR 哈希（已与声明核对）
    key: str


@dataclass
class NormalizationReport:
    """一次规范化的改动记录（相对 vendor 存储根目录的路径）"""

    ruleset_version: int
    deleted: list[str] = field(default_factory=list)
    rewritten: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.deleted or self.rewritten)


@dataclass(frozen=True)
class VendorStore:
    """内容寻址的 vendor 存储（两个生态的缓存位于互不相交的子目录）"""

    path: Path
    hash: str
    ecosystems: tuple[str, ...] = ()
    cached: bool = False

    def cache_dir(self, subdir: str) -> Path:
        return self.path / subdir


@dataclass(frozen=True)
class BuildArtifactSet:
    """构建产物: 发行包 + API 描述文档"""

    dist_archive: Path
    schema_documents: tuple[Path, ...]

    @property
    def schema_document(self) -> Path:
        """客户端生成器消费的主文档（优先 JSON）"""
        for doc in self.schema_documents:
            if doc.suffix == ".json":
                return doc
        return self.schema_documents[0]

    @property
    def api_dir(self) -> Path:
        return self.schema_document.parent


@dataclass(frozen=True)
class PackageDefinition:
    """既有包定义

    phases: 安装步骤（阶段名 -> 脚本）
    runtime_dependencies: 运行时依赖
    passthru: 透传元数据（部署环境变量等，流水线不解释）
    """

    name: str
    version: str
    src: str
    phases: dict[str, str] = field(default_factory=dict)
    runtime_dependencies: tuple[str, ...] = ()
    passthru: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageDefinition:
        return cls(
            name=str(data.get("name", "")),
            version=str(data.get("version", "")),
            src=str(data.get("src", "")),
            phases=dict(data.get("phases") or {}),
            runtime_dependencies=tuple(data.get("runtime_dependencies") or ()),
            passthru=dict(data.get("passthru") or {}),
            meta=dict(data.get("meta") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "src": self.src,
            "phases": dict(self.phases),
            "runtime_dependencies": list(self.runtime_dependencies),
            "passthru": dict(self.passthru),
            "meta": dict(self.meta),
        }
