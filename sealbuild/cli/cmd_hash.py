"""CLI - 哈希工具命令（hash / verify / normalize）"""

from __future__ import annotations

from pathlib import Path

import click

from sealbuild.core.hashing import nar_hash
from sealbuild.services.vendor import Normalizer, verify_store


def register(group: click.Group) -> None:
    group.add_command(hash_cmd)
    group.add_command(verify)
    group.add_command(normalize)


@click.command(name="hash")
@click.argument("path", type=click.Path(exists=True))
def hash_cmd(path: str) -> None:
    """计算文件树的递归内容哈希（SRI 形式）"""
    click.echo(nar_hash(path))


@click.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.option("--expected", required=True, help="期望的固定哈希")
def verify(path: str, expected: str) -> None:
    """复核 vendor 存储哈希，不符时非零退出"""
    actual = verify_store(path, expected)
    click.echo(f"校验通过: {actual}")


@click.command()
@click.argument("store", type=click.Path(exists=True, file_okay=False))
def normalize(store: str) -> None:
    """对 vendor 存储执行一次规范化并输出新哈希"""
    report = Normalizer().normalize(Path(store))
    for rel in report.deleted:
        click.echo(f"  删除 {rel}")
    for rel in report.rewritten:
        click.echo(f"  改写 {rel}")
    click.echo(nar_hash(store))
