"""流水线数据模型

数据类:
- StageReport: 单个阶段的结果
- PipelineReport: 整次运行的报告
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sealbuild.core.declaration import PipelineDeclaration
from sealbuild.core.models import BuildArtifactSet, PreparedSource, VendorStore

STAGES = ("prepare", "vendor", "build", "publish")


@dataclass
class StageReport:
    """阶段结果 (status: done / failed)"""

    stage: str
    status: str
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"stage": self.stage, "status": self.status, **self.detail}


@dataclass
class PipelineReport:
    """流水线运行报告"""

    declaration: PipelineDeclaration
    prepared: PreparedSource | None = None
    store: VendorStore | None = None
    artifacts: BuildArtifactSet | None = None
    override: Any = None
    stages: list[StageReport] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.stages) and all(s.status == "done" for s in self.stages)

    @property
    def failed_stage(self) -> str:
        for s in self.stages:
            if s.status == "failed":
                return s.stage
        return ""
