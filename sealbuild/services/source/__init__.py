"""源码准备模块

拆分说明:
- fetch.py: 来源适配器（tar / git）
- patches.py: 补丁拉取、校验与有序应用
- manifest.py: 工具链版本字段结构化改写
- service.py: 阶段协调（暂存 → 校验 → 改名）
"""

from sealbuild.services.source.fetch import GitSource, TarSource, get_fetcher
from sealbuild.services.source.manifest import apply_pin, rewrite_field
from sealbuild.services.source.patches import PatchApplier
from sealbuild.services.source.service import SourcePreparer

__all__ = [
    "GitSource",
    "TarSource",
    "get_fetcher",
    "apply_pin",
    "rewrite_field",
    "PatchApplier",
    "SourcePreparer",
]
