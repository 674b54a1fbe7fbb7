"""CLI - 流水线阶段命令（prepare / vendor / build / publish / run）

单独的阶段命令会先执行它之前的阶段；已存在且复核通过的 vendor 存储会被复用，
因此在 vendor 完成后单独执行 build 不会再次联网。
"""

from __future__ import annotations

import click

from sealbuild.cli import _container
from sealbuild.core.declaration import PipelineDeclaration
from sealbuild.services.pipeline import PipelineReport, PipelineRunner


def register(group: click.Group) -> None:
    group.add_command(prepare)
    group.add_command(vendor)
    group.add_command(build)
    group.add_command(publish)
    group.add_command(run)


def _run(ctx: click.Context, decl_path: str, until: str = "",
         force_vendor: bool = False) -> PipelineReport:
    decl = PipelineDeclaration.from_file(decl_path)
    runner = PipelineRunner(_container(ctx), force_vendor=force_vendor)
    return runner.run(decl, until=until)


def _print_report(report: PipelineReport) -> None:
    click.echo("\n=== 流水线报告 ===")
    for stage in report.stages:
        fields = stage.to_dict()
        fields.pop("stage")
        status = fields.pop("status")
        detail = "  ".join(f"{k}={v}" for k, v in fields.items())
        click.echo(f"  [{status:6s}] {stage.stage:8s} {detail}")
    click.echo(f"成功: {'是' if report.success else '否'}")


@click.command()
@click.argument("decl", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def prepare(ctx: click.Context, decl: str) -> None:
    """准备源码树（拉取、校验、补丁、工具链版本）"""
    report = _run(ctx, decl, until="prepare")
    click.echo(f"源码就绪: {report.prepared.path}")
    click.echo(f"内容哈希: {report.prepared.content_hash}")


@click.command()
@click.argument("decl", type=click.Path(exists=True, dir_okay=False))
@click.option("--force", is_flag=True, help="忽略已有存储，重新联网解析")
@click.pass_context
def vendor(ctx: click.Context, decl: str, force: bool) -> None:
    """生成 vendor 存储并核对固定哈希"""
    report = _run(ctx, decl, until="vendor", force_vendor=force)
    store = report.store
    suffix = " (复用)" if store.cached else ""
    click.echo(f"vendor 存储: {store.path}{suffix}")
    click.echo(f"哈希: {store.hash}")


@click.command()
@click.argument("decl", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def build(ctx: click.Context, decl: str) -> None:
    """离线构建并提取产物"""
    report = _run(ctx, decl, until="build")
    click.echo(f"发行包: {report.artifacts.dist_archive}")
    click.echo(f"API 文档: {report.artifacts.schema_document}")


@click.command()
@click.argument("decl", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def publish(ctx: click.Context, decl: str) -> None:
    """发布产物并输出覆盖后的包定义"""
    report = _run(ctx, decl)
    click.echo(f"包定义: {report.override.manifest}")


@click.command()
@click.argument("decl", type=click.Path(exists=True, dir_okay=False))
@click.option("--force-vendor", is_flag=True, help="忽略已有 vendor 存储")
@click.pass_context
def run(ctx: click.Context, decl: str, force_vendor: bool) -> None:
    """执行完整流水线并打印各阶段报告"""
    report = _run(ctx, decl, force_vendor=force_vendor)
    _print_report(report)
