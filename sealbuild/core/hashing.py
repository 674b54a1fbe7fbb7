"""递归内容哈希

以 Nix 归档 (NAR) 格式序列化文件树后取 sha256，输出 SRI 形式 ``sha256-<base64>``，
与 Nix ``outputHashMode = "recursive"`` 的固定输出哈希一致，可直接互相对照。

NAR 只编码文件类型、内容、可执行位和符号链接目标；目录项按名称字节序排列。
修改时间、属主、其余权限位以及文件系统的遍历顺序都不参与哈希。
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
import stat
import struct
from collections.abc import Callable
from pathlib import Path

from sealbuild.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

NAR_MAGIC = b"nix-archive-1"
_CHUNK = 1024 * 1024

Writer = Callable[[bytes], None]


def _write_str(write: Writer, data: bytes) -> None:
    write(struct.pack("<Q", len(data)))
    write(data)
    pad = (8 - len(data) % 8) % 8
    if pad:
        write(b"\0" * pad)


def _write_file_contents(write: Writer, path: Path, size: int) -> None:
    write(struct.pack("<Q", size))
    written = 0
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            write(chunk)
            written += len(chunk)
    if written != size:
        raise ValidationError(f"文件在哈希过程中被修改: {path}")
    pad = (8 - size % 8) % 8
    if pad:
        write(b"\0" * pad)


def _dump(write: Writer, path: Path) -> None:
    st = path.lstat()
    mode = st.st_mode
    _write_str(write, b"(")
    if stat.S_ISLNK(mode):
        _write_str(write, b"type")
        _write_str(write, b"symlink")
        _write_str(write, b"target")
        _write_str(write, os.fsencode(os.readlink(path)))
    elif stat.S_ISREG(mode):
        _write_str(write, b"type")
        _write_str(write, b"regular")
        if mode & stat.S_IXUSR:
            _write_str(write, b"executable")
            _write_str(write, b"")
        _write_str(write, b"contents")
        _write_file_contents(write, path, st.st_size)
    elif stat.S_ISDIR(mode):
        _write_str(write, b"type")
        _write_str(write, b"directory")
        for name in sorted(os.listdir(os.fsencode(path))):
            _write_str(write, b"entry")
            _write_str(write, b"(")
            _write_str(write, b"name")
            _write_str(write, name)
            _write_str(write, b"node")
            _dump(write, path / os.fsdecode(name))
            _write_str(write, b")")
    else:
        raise ValidationError(f"不支持的文件类型（仅支持普通文件/目录/符号链接）: {path}")
    _write_str(write, b")")


def dump_nar(path: str | Path, write: Writer) -> None:
    """把 path 以 NAR 格式序列化，逐块交给 write"""
    _write_str(write, NAR_MAGIC)
    _dump(write, Path(path))


def nar_hash(path: str | Path) -> str:
    """计算文件树的递归内容哈希，返回 SRI 形式"""
    p = Path(path)
    if not p.exists() and not p.is_symlink():
        raise ValidationError(f"哈希目标不存在: {p}")
    h = hashlib.sha256()
    dump_nar(p, h.update)
    result = to_sri(h.digest())
    logger.debug("NAR 哈希: %s -> %s", p, result)
    return result


def file_sha256(path: str | Path) -> str:
    """单个文件的平坦哈希（SRI 形式），用于补丁等单文件输入"""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return to_sri(h.digest())


def to_sri(digest: bytes) -> str:
    return "sha256-" + base64.b64encode(digest).decode("ascii")


def normalize_hash(text: str) -> str:
    """把声明中的哈希统一为 SRI 形式

    支持:
      - ``sha256-<base64>`` (SRI)
      - ``sha256:<hex>``
      - 64 位十六进制
    """
    value = (text or "").strip()
    if not value:
        raise ValidationError("哈希为空")
    try:
        if value.startswith("sha256-"):
            digest = base64.b64decode(value[len("sha256-"):], validate=True)
        else:
            hex_part = value[len("sha256:"):] if value.startswith("sha256:") else value
            if len(hex_part) != 64:
                raise ValueError(hex_part)
            digest = bytes.fromhex(hex_part)
    except (ValueError, binascii.Error) as e:
        raise ValidationError(f"无法识别的哈希格式: {text}") from e
    if len(digest) != hashlib.sha256().digest_size:
        raise ValidationError(f"哈希长度错误（需要 sha256）: {text}")
    return to_sri(digest)


def hashes_equal(expected: str, actual: str) -> bool:
    """比较两个哈希（允许不同记法）；期望值为空时视为不相等"""
    if not expected:
        return False
    return normalize_hash(expected) == normalize_hash(actual)


def hex_digest(sri: str) -> str:
    """SRI 哈希 -> 十六进制摘要（用作内容寻址目录名）"""
    return base64.b64decode(normalize_hash(sri)[len("sha256-"):]).hex()
