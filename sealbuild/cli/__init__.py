"""sealbuild 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
任何 SealBuildError 都会被转换为失败摘要（阶段、错误码、哈希差异）并以非零状态退出。
"""

import os
from typing import Any

import click

from sealbuild import __version__
from sealbuild.core.exceptions import SealBuildError
from sealbuild.utils.logger import setup_logging

EXIT_FAILURE = 1


class _FailClosedGroup(click.Group):
    """把业务异常渲染为失败摘要"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except SealBuildError as e:
            from sealbuild.services.pipeline import describe_failure
            click.echo(describe_failure(e), err=True)
            ctx.exit(EXIT_FAILURE)


def _container(ctx: click.Context) -> Any:
    """当前命令使用的服务容器"""
    from sealbuild.services.container import ServiceContainer
    return ServiceContainer(config=ctx.obj["config"])


@click.group(cls=_FailClosedGroup)
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default="configs/default.yml",
              help="宿主机配置文件路径")
@click.pass_context
def main(ctx: click.Context, config_path: str) -> None:
    """sealbuild - 可复现的 vendor + 固定哈希离线构建流水线"""
    from sealbuild.core.config import init_config
    cfg = init_config(config_path)
    # 日志级别取自配置（SEALBUILD_LOG_LEVEL 可覆盖）
    setup_logging(level=cfg.log_level, json_output=os.getenv("SEALBUILD_LOG_JSON", "") == "1")
    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg


# 注册各领域子命令
from sealbuild.cli.cmd_pipeline import register as _reg_pipeline  # noqa: E402
from sealbuild.cli.cmd_hash import register as _reg_hash  # noqa: E402

_reg_pipeline(main)
_reg_hash(main)
