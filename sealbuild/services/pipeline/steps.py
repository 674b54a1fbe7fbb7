"""流水线步骤实现 - 4 个阶段

步骤顺序:
1. prepare - 拉取、校验、打补丁、改写工具链版本
2. vendor  - 联网解析依赖，规范化后核对固定哈希
3. build   - 在 vendor 存储之上离线构建
4. publish - 解压发行包，覆盖既有包定义

每个步骤只消费前一步骤的产出，并把结果记录到 report.stages。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sealbuild.services.pipeline.models import StageReport
from sealbuild.services.publish import load_package

if TYPE_CHECKING:
    from sealbuild.services.container import ServiceContainer
    from sealbuild.services.pipeline.models import PipelineReport

logger = logging.getLogger(__name__)


class PipelineSteps:
    """流水线步骤集合"""

    def __init__(self, container: ServiceContainer, force_vendor: bool = False) -> None:
        self.c = container
        self.force_vendor = force_vendor

    def prepare(self, report: PipelineReport) -> None:
        """步骤1: 准备源码树"""
        prepared = self.c.source.prepare(report.declaration)
        report.prepared = prepared
        report.stages.append(StageReport("prepare", "done", {
            "path": str(prepared.path), "content_hash": prepared.content_hash,
            "patches": len(report.declaration.source.patches),
        }))
        logger.info("[Step 1] 源码就绪: %s", prepared.path)

    def vendor(self, report: PipelineReport) -> None:
        """步骤2: 生成并核对 vendor 存储"""
        decl = report.declaration
        store = self.c.vendor(decl).vendor(
            report.prepared, decl.vendor_hash, force=self.force_vendor,
        )
        report.store = store
        report.stages.append(StageReport("vendor", "done", {
            "path": str(store.path), "hash": store.hash, "cached": store.cached,
        }))
        logger.info("[Step 2] vendor 存储就绪: %s (%s)", store.path, store.hash)

    def build(self, report: PipelineReport) -> None:
        """步骤3: 离线构建并提取产物"""
        artifacts = self.c.builder(report.declaration).build(report.prepared, report.store)
        report.artifacts = artifacts
        report.stages.append(StageReport("build", "done", {
            "dist": str(artifacts.dist_archive),
            "schema": str(artifacts.schema_document),
        }))
        logger.info("[Step 3] 构建产物: %s", artifacts.dist_archive)

    def publish(self, report: PipelineReport) -> None:
        """步骤4: 发布产物并覆盖包定义"""
        decl = report.declaration
        definition = load_package(decl.package_file)
        override = self.c.publisher(decl).publish(report.artifacts, definition, decl.version)
        report.override = override
        report.stages.append(StageReport("publish", "done", {
            "tree": str(override.tree), "manifest": str(override.manifest),
            "version": override.definition.version,
        }))
        logger.info("[Step 4] 包定义已覆盖: %s", override.manifest)
