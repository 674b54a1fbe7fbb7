"""流水线模块

拆分说明:
- models.py: 阶段/运行报告
- steps.py: 4 个阶段步骤
- runner.py: 驱动器与失败摘要
"""

from sealbuild.services.pipeline.models import STAGES, PipelineReport, StageReport
from sealbuild.services.pipeline.runner import PipelineRunner, describe_failure
from sealbuild.services.pipeline.steps import PipelineSteps

__all__ = [
    "STAGES",
    "PipelineReport",
    "StageReport",
    "PipelineRunner",
    "describe_failure",
    "PipelineSteps",
]
