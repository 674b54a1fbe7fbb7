"""离线构建模块

拆分说明:
- artifacts.py: 产物定位与 API 描述文档校验
- service.py: 离线构建编排
"""

from sealbuild.services.build.artifacts import locate_artifact, locate_schema_documents
from sealbuild.services.build.service import BuildOrchestrator

__all__ = [
    "locate_artifact",
    "locate_schema_documents",
    "BuildOrchestrator",
]
