"""流水线驱动器 - 顺序执行 4 个阶段

职责:
- 按 prepare → vendor → build → publish 顺序执行
- 任一阶段失败立即中止，异常标记失败阶段后原样抛出
- 渲染失败摘要（阶段、错误码、哈希差异）
"""

from __future__ import annotations

import logging

from sealbuild.core.declaration import PipelineDeclaration
from sealbuild.core.exceptions import HashMismatchError, SealBuildError
from sealbuild.services.container import ServiceContainer
from sealbuild.services.pipeline.models import STAGES, PipelineReport, StageReport
from sealbuild.services.pipeline.steps import PipelineSteps
from sealbuild.utils.logger import stage_context

logger = logging.getLogger(__name__)


class PipelineRunner:
    """4 阶段流水线驱动器（首个失败即中止，不重试）"""

    def __init__(
        self, container: ServiceContainer | None = None, force_vendor: bool = False,
    ) -> None:
        self.c = container or ServiceContainer()
        self.steps = PipelineSteps(self.c, force_vendor=force_vendor)

    def run(self, decl: PipelineDeclaration, until: str = "") -> PipelineReport:
        """顺序执行各阶段；until 指定时执行到该阶段为止"""
        if until and until not in STAGES:
            raise ValueError(f"未知阶段: {until}")
        stages = STAGES[: STAGES.index(until) + 1] if until else STAGES
        report = PipelineReport(declaration=decl)
        logger.info("流水线开始: %s@%s", decl.name, decl.version)
        for stage in stages:
            try:
                with stage_context(stage):
                    getattr(self.steps, stage)(report)
            except SealBuildError as e:
                e.stage = stage
                report.stages.append(StageReport(stage, "failed", {
                    "code": e.code, "error": str(e),
                }))
                logger.error("阶段失败: %s", e, extra={"stage": stage, "code": e.code})
                raise
        logger.info("流水线完成: %s@%s", decl.name, decl.version)
        return report


def describe_failure(error: SealBuildError) -> str:
    """失败摘要: 阶段、错误码、消息；哈希类错误附上期望值与实际值"""
    lines = [f"阶段: {error.stage or '-'}", f"错误码: {error.code}"]
    if isinstance(error, HashMismatchError):
        lines.append(f"原因: {error.reason}")
        lines.append(f"期望哈希: {error.expected or '(未声明)'}")
        lines.append(f"实际哈希: {error.actual}")
    else:
        lines.append(f"原因: {error}")
    details = getattr(error, "details", None) or getattr(error, "matches", None)
    if details:
        lines.extend(f"  - {d}" for d in details)
    return "\n".join(lines)
