"""产物发布模块"""

from sealbuild.services.publish.service import (
    ArtifactPublisher,
    PackageOverride,
    load_package,
    override_package,
)

__all__ = [
    "ArtifactPublisher",
    "PackageOverride",
    "load_package",
    "override_package",
]
