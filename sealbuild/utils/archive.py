"""tar 包解压工具 - 剥离前导路径分量

源码 tar 包（如 GitHub archive）和构建产出的发行包都约定只含一个顶层包裹目录，
解压时剥离该目录，使内容直接落在目标目录下（等价于 tar --strip-components 1）。
"""

from __future__ import annotations

import logging
import tarfile
from pathlib import Path, PurePosixPath

from sealbuild.core.exceptions import UnpackLayoutError

logger = logging.getLogger(__name__)


def _parts(name: str) -> tuple[str, ...]:
    return PurePosixPath(name).parts


def top_level_entries(members: list[tarfile.TarInfo]) -> dict[str, bool]:
    """返回 {顶层名称: 是否为目录}

    顶层名称既可能来自显式目录条目，也可能只由更深路径隐含。
    """
    tops: dict[str, bool] = {}
    for m in members:
        parts = _parts(m.name)
        if not parts:
            continue
        head = parts[0]
        is_dir = len(parts) > 1 or m.isdir()
        tops[head] = tops.get(head, False) or is_dir
        if len(parts) == 1 and not m.isdir():
            # 顶层出现普通文件/链接，无论是否同名目录都视为非法布局
            tops[head] = False
    return tops


def check_single_root(members: list[tarfile.TarInfo], archive: Path) -> str:
    """校验 tar 包恰好只有一个顶层目录，返回其名称"""
    tops = top_level_entries(members)
    if not tops:
        raise UnpackLayoutError(f"归档为空: {archive}")
    if len(tops) != 1:
        raise UnpackLayoutError(
            f"归档顶层应只有一个包裹目录，实际 {len(tops)} 项: "
            f"{sorted(tops)[:10]} ({archive})"
        )
    (name, is_dir), = tops.items()
    if name == "/" or not is_dir:
        raise UnpackLayoutError(f"归档顶层条目不是目录: {name} ({archive})")
    return name


def unpack_tar(archive: Path, dest: Path, *, strip: int = 1) -> Path:
    """解压 tar 包到 dest，剥离 strip 个前导路径分量

    strip >= 1 时要求归档只含一个顶层包裹目录，否则抛 UnpackLayoutError。
    """
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive) as tf:
            members = tf.getmembers()
            if strip > 0:
                root = check_single_root(members, archive)
                logger.info("  剥离顶层目录: %s", root)
            selected: list[tarfile.TarInfo] = []
            for m in members:
                parts = _parts(m.name)
                if len(parts) <= strip:
                    continue
                m.name = "/".join(parts[strip:])
                if m.islnk():
                    link_parts = _parts(m.linkname)
                    if len(link_parts) <= strip:
                        raise UnpackLayoutError(
                            f"硬链接指向被剥离的路径: {m.linkname} ({archive})"
                        )
                    m.linkname = "/".join(link_parts[strip:])
                selected.append(m)
            tf.extractall(path=str(dest), members=selected, filter="data")  # noqa: S202
    except tarfile.TarError as e:
        raise UnpackLayoutError(f"解压失败 {archive}: {e}") from e
    logger.info("解压完成: %s -> %s (%d 项)", archive, dest, len(selected))
    return dest
