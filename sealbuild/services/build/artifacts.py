"""构建产物定位与校验

- 发行包: 必须恰好匹配一个文件（0 个或多个都视为错误，不做猜测）
- API 描述文档: 至少一个，且每个都必须能解析并带有 openapi / swagger 顶层键
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml

from sealbuild.core.exceptions import AmbiguousArtifactError, ArtifactNotFoundError, ValidationError

logger = logging.getLogger(__name__)

_SCHEMA_KEYS = ("openapi", "swagger")


def _matches(root: Path, pattern: str) -> list[Path]:
    return sorted(p for p in root.glob(pattern) if p.is_file())


def locate_artifact(root: Path, pattern: str) -> Path:
    """返回唯一匹配 pattern 的文件"""
    found = _matches(root, pattern)
    if not found:
        raise ArtifactNotFoundError(f"未找到产物: {pattern} (在 {root})")
    if len(found) > 1:
        rels = [p.relative_to(root).as_posix() for p in found]
        raise AmbiguousArtifactError(
            f"产物匹配不唯一: {pattern} 命中 {len(found)} 个文件", matches=rels,
        )
    return found[0]


def validate_schema_document(path: Path) -> None:
    """文档必须是带 openapi / swagger 键的映射"""
    try:
        text = path.read_text(encoding="utf-8")
        doc = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ValidationError(f"API 描述文档无法解析: {path.name}", details=[str(e)]) from e
    if not isinstance(doc, dict) or not any(k in doc for k in _SCHEMA_KEYS):
        raise ValidationError(f"API 描述文档缺少 openapi/swagger 顶层键: {path.name}")


def locate_schema_documents(root: Path, pattern: str) -> list[Path]:
    """返回全部匹配 pattern 的 API 描述文档（至少一个，逐个校验）"""
    found = _matches(root, pattern)
    if not found:
        raise ArtifactNotFoundError(f"未找到 API 描述文档: {pattern} (在 {root})")
    for doc in found:
        validate_schema_document(doc)
    logger.info("API 描述文档: %s", ", ".join(p.name for p in found))
    return found
