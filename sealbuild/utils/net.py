"""网络工具 - URL 安全校验 + 下载

只有 vendor 阶段和源码/补丁拉取允许联网，构建阶段从不调用此模块。
"""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from pathlib import Path
from urllib.parse import urlparse

from sealbuild.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset(("http", "https"))


def is_remote(location: str) -> bool:
    """判断来源是远程 URL 还是本地路径"""
    return urlparse(location).scheme in _ALLOWED_SCHEMES


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )


def download(url: str, dest: Path, *, context: str = "", timeout: int = 300) -> Path:
    """下载 URL 到目标文件，失败时删除残留文件并抛 ConnectionError"""
    validate_url_scheme(url, context=context)
    dest.parent.mkdir(parents=True, exist_ok=True)
    logger.info("  下载: %s", url)
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:  # nosec B310
            dest.write_bytes(resp.read())
    except (urllib.error.HTTPError, urllib.error.URLError, OSError) as e:
        dest.unlink(missing_ok=True)
        raise ConnectionError(f"下载失败: {url} - {e}") from e
    logger.info("  已保存: %s", dest)
    return dest
