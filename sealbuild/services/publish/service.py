"""产物发布 - 解压发行包并覆盖既有包定义

override_package 是纯函数: 只返回新定义，不修改传入对象，
除 version / src / passthru 新增的 dist、api 之外的字段（安装步骤、运行时依赖、
部署用的透传环境变量等）全部原样保留。
"""

from __future__ import annotations

import copy
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path

from sealbuild.core.declaration import PipelineDeclaration
from sealbuild.core.exceptions import ConfigError
from sealbuild.core.hashing import file_sha256, hex_digest
from sealbuild.core.models import BuildArtifactSet, PackageDefinition
from sealbuild.utils.archive import unpack_tar
from sealbuild.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)

PACKAGE_FILE = "package.yml"


def override_package(
    original: PackageDefinition,
    version: str,
    src: str,
    passthru: dict[str, str],
) -> PackageDefinition:
    """返回版本、源码位置、透传元数据被覆盖后的新包定义"""
    # 嵌套的 dict 不能与 original 共享
    return replace(
        original,
        version=version,
        src=src,
        phases=copy.deepcopy(original.phases),
        meta=copy.deepcopy(original.meta),
        passthru={**copy.deepcopy(original.passthru), **copy.deepcopy(passthru)},
    )


def load_package(path: str | Path) -> PackageDefinition:
    """读取既有包定义"""
    if not path or not Path(path).is_file():
        raise ConfigError(f"包定义文件不存在: {path or '(未声明 package.definition)'}")
    return PackageDefinition.from_dict(load_yaml(path))


@dataclass(frozen=True)
class PackageOverride:
    """发布结果: 解压后的发行树 + 覆盖后的包定义"""

    tree: Path
    definition: PackageDefinition
    manifest: Path


class ArtifactPublisher:
    """产物发布阶段

    输出写到 output_root/package-<key>，不写入构建阶段的目录。
    key 未给出时取发行包内容摘要。
    """

    def __init__(
        self, strip_components: int = 1, output_root: str = "", key: str = "",
    ) -> None:
        if not output_root:
            from sealbuild.core.config import get_config
            output_root = get_config().publish_dir
        self.strip_components = strip_components
        self.output_root = Path(output_root)
        self.key = key

    @classmethod
    def from_declaration(cls, decl: PipelineDeclaration, **kwargs) -> ArtifactPublisher:
        return cls(
            strip_components=decl.strip_components,
            key=decl.build_key(decl.vendor_hash),
            **kwargs,
        )

    def publish(
        self,
        artifacts: BuildArtifactSet,
        definition: PackageDefinition,
        version: str,
    ) -> PackageOverride:
        """解压发行包到 package-<key>/tree，写出覆盖后的 package.yml"""
        key = self.key or hex_digest(file_sha256(artifacts.dist_archive))[:16]
        self.output_root.mkdir(parents=True, exist_ok=True)
        final = self.output_root / f"package-{key}"
        staging = Path(tempfile.mkdtemp(prefix=f".package-{key}-", dir=self.output_root))
        try:
            unpack_tar(artifacts.dist_archive, staging / "tree", strip=self.strip_components)
            tree = final / "tree"
            overridden = override_package(
                definition, version, str(tree),
                {"dist": str(tree), "api": str(artifacts.api_dir)},
            )
            save_yaml(staging / PACKAGE_FILE, overridden.to_dict())
            if final.exists():
                shutil.rmtree(final)
            os.replace(staging, final)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info("包定义已覆盖: %s %s -> %s", definition.name, definition.version, version)
        return PackageOverride(
            tree=final / "tree", definition=overridden, manifest=final / PACKAGE_FILE,
        )
