"""统一异常体系

所有业务异常继承 SealBuildError。每个流水线阶段以独立的异常类型报告失败，
流水线驱动器据此立即中止，CLI 据此输出阶段名、错误码以及哈希差异。

所有异常均为致命错误，框架内部不做任何自动重试。
"""

from __future__ import annotations


class SealBuildError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        # 由流水线驱动器在阶段失败时填写
        self.stage: str = ""


class ConfigError(SealBuildError):
    """配置文件或构建声明缺失、内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(SealBuildError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ExecutionError(SealBuildError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"


class HashMismatchError(SealBuildError):
    """携带期望哈希与实际哈希的异常基类，便于调用方做 diff"""

    def __init__(self, message: str, *, expected: str, actual: str) -> None:
        super().__init__(f"{message}: 期望 {expected or '(未声明)'}, 实际 {actual}")
        # 不含哈希的原始描述，失败摘要里哈希另起一行
        self.reason = message
        self.expected = expected
        self.actual = actual


# =========================================================================
# SourcePreparation
# =========================================================================

class SourceIntegrityError(HashMismatchError):
    """拉取的源码树或补丁内容哈希与声明不符（防供应链替换）"""

    code = "SOURCE_INTEGRITY_ERROR"


class PatchApplyError(SealBuildError):
    """补丁无法在当前源码树状态上干净应用"""

    code = "PATCH_APPLY_ERROR"


# =========================================================================
# DependencyVendor
# =========================================================================

class VendorResolutionError(SealBuildError):
    """生态工具无法解析或下载依赖（网络失败、制品缺失、工具自身校验失败）

    唯一可能在输入不变时重复出现的错误类型（瞬时网络故障）。
    调用方可选择整体重跑 vendor 阶段，框架本身不做重试决策。
    """

    code = "VENDOR_RESOLUTION_ERROR"


class VendorHashMismatchError(HashMismatchError):
    """vendor 存储的递归哈希与声明的固定哈希不符

    依赖集合漂移或可复现性回退的主要信号。
    """

    code = "VENDOR_HASH_MISMATCH"


# =========================================================================
# BuildOrchestrator
# =========================================================================

class OfflineViolationError(SealBuildError):
    """离线构建期间构建工具试图访问网络（vendor 阶段遗漏了依赖）"""

    code = "OFFLINE_VIOLATION"


class BuildToolError(SealBuildError):
    """构建工具以非零状态退出（非网络原因）"""

    code = "BUILD_TOOL_ERROR"


class ArtifactNotFoundError(SealBuildError):
    """构建输出中未找到约定的产物"""

    code = "ARTIFACT_NOT_FOUND"


class AmbiguousArtifactError(SealBuildError):
    """构建输出中有多个文件匹配同一产物模式"""

    code = "AMBIGUOUS_ARTIFACT"

    def __init__(self, message: str, matches: list[str] | None = None) -> None:
        super().__init__(message)
        self.matches = matches or []


# =========================================================================
# ArtifactPublisher
# =========================================================================

class UnpackLayoutError(SealBuildError):
    """发行包顶层结构不符合「单一包裹目录」约定"""

    code = "UNPACK_LAYOUT_ERROR"
