"""服务容器 - 统一依赖注入，消除各阶段服务的裸构造

容器持有 Config 与 CommandExecutor，四个阶段服务都从这里获取，
保证同一次运行使用同一套目录、工具路径和执行器。

与构建声明无关的服务懒加载并在容器内共享；
依赖声明内容的服务（vendor / 构建 / 发布）每次按声明构造。

用法:
    container = ServiceContainer()
    prepared = container.source.prepare(decl)
    store = container.vendor(decl).vendor(prepared, decl.vendor_hash)

    # 测试中注入 fake 执行器
    container = ServiceContainer(config=cfg, executor=FakeExecutor())
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sealbuild.utils.shell import CommandExecutor, get_executor

if TYPE_CHECKING:
    from sealbuild.core.config import Config
    from sealbuild.core.declaration import PipelineDeclaration
    from sealbuild.services.build import BuildOrchestrator
    from sealbuild.services.publish import ArtifactPublisher
    from sealbuild.services.source import SourcePreparer
    from sealbuild.services.vendor import DependencyVendor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """服务容器 - 每个实例持有一份配置和一个命令执行器"""

    def __init__(
        self, config: Config | None = None, executor: CommandExecutor | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from sealbuild.core.config import get_config
            config = get_config()
        self._config = config
        self._executor = executor or get_executor()

    @property
    def config(self) -> Config:
        return self._config

    @property
    def executor(self) -> CommandExecutor:
        return self._executor

    # ---- 与声明无关的服务 ----

    @property
    def source(self) -> SourcePreparer:
        if "source" not in self._instances:
            from sealbuild.services.source import SourcePreparer
            self._instances["source"] = SourcePreparer(
                workspace_root=self._config.workspace_dir,
                git=self._config.git,
                executor=self._executor,
            )
        return self._instances["source"]  # type: ignore[return-value]

    # ---- 按声明构造的服务 ----

    def vendor(self, decl: PipelineDeclaration) -> DependencyVendor:
        from sealbuild.services.vendor import DependencyVendor
        return DependencyVendor.from_declaration(
            decl,
            store_root=self._config.store_dir,
            tools=self._config.tools(),
            executor=self._executor,
        )

    def builder(self, decl: PipelineDeclaration) -> BuildOrchestrator:
        from sealbuild.services.build import BuildOrchestrator
        return BuildOrchestrator.from_declaration(
            decl,
            output_root=self._config.output_dir,
            tools=self._config.tools(),
            isolate_network=self._config.isolate_network,
            executor=self._executor,
        )

    def publisher(self, decl: PipelineDeclaration) -> ArtifactPublisher:
        from sealbuild.services.publish import ArtifactPublisher
        return ArtifactPublisher.from_declaration(
            decl, output_root=self._config.publish_dir,
        )
