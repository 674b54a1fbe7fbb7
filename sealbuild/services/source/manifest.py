"""工具链版本字段的结构化改写

按元素本地名路径（如 project/properties/node.version）用 XML 解析器定位字段，
只替换该元素的文本字节，文件其余字节（注释、缩进、命名空间前缀、属性顺序）
保持原样。不做文本搜索替换，避免误改同名文本。

改写是幂等的: 字段已是目标值时不写文件。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from xml.parsers import expat
from xml.sax.saxutils import escape

from sealbuild.core.declaration import ToolchainPin
from sealbuild.core.exceptions import ValidationError
from sealbuild.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

# expat 展开命名空间后的名称形如 "uri}local"
_NS_SEP = "}"


@dataclass
class FieldLocation:
    """元素在文件中的字节位置"""

    tag_start: int     # 起始标签 '<' 的偏移
    tag_end: int       # 起始标签 '>' 之后的偏移
    content_end: int   # 结束标签 '</' 的偏移（自闭合时等于 tag_end）
    self_closing: bool


def _start_tag_end(data: bytes, start: int) -> int:
    """从 '<' 开始扫描到起始标签结束的 '>'，跳过属性值中的引号内容"""
    quote = 0
    for i in range(start + 1, len(data)):
        c = data[i]
        if quote:
            if c == quote:
                quote = 0
        elif c in (0x22, 0x27):  # " '
            quote = c
        elif c == 0x3E:  # >
            return i + 1
    raise ValidationError("XML 起始标签未闭合")


def locate_field(data: bytes, path: tuple[str, ...]) -> FieldLocation:
    """定位按本地名路径唯一匹配的元素"""
    parser = expat.ParserCreate(namespace_separator=_NS_SEP)
    stack: list[str] = []
    starts: list[int] = []
    ends: list[int] = []

    def on_start(name: str, attrs: dict[str, str]) -> None:
        stack.append(name.rsplit(_NS_SEP, 1)[-1])
        if tuple(stack) == path:
            starts.append(parser.CurrentByteIndex)

    def on_end(name: str) -> None:
        if tuple(stack) == path:
            ends.append(parser.CurrentByteIndex)
        stack.pop()

    parser.StartElementHandler = on_start
    parser.EndElementHandler = on_end
    try:
        parser.Parse(data, True)
    except expat.ExpatError as e:
        raise ValidationError(f"XML 解析失败: {e}") from e

    label = "/".join(path)
    if not starts:
        raise ValidationError(f"未找到字段: {label}")
    if len(starts) > 1:
        raise ValidationError(f"字段不唯一: {label} ({len(starts)} 处)")

    tag_start = starts[0]
    tag_end = _start_tag_end(data, tag_start)
    self_closing = data[tag_end - 2:tag_end] == b"/>"
    content_end = tag_end if self_closing else ends[0]
    return FieldLocation(tag_start, tag_end, content_end, self_closing)


def _raw_tag_name(tag: bytes) -> bytes:
    """起始标签原文中的限定名（含命名空间前缀）"""
    name = bytearray()
    for c in tag[1:]:
        if c in b" \t\r\n/>":
            break
        name.append(c)
    return bytes(name)


def rewrite_field(data: bytes, path: tuple[str, ...], value: str) -> bytes:
    """返回改写后的字节；字段已是目标值时原样返回"""
    loc = locate_field(data, path)
    new_text = escape(value).encode("utf-8")

    if loc.self_closing:
        tag = data[loc.tag_start:loc.tag_end]
        qname = _raw_tag_name(tag)
        open_tag = tag[:-2].rstrip() + b">"
        replacement = open_tag + new_text + b"</" + qname + b">"
        return data[:loc.tag_start] + replacement + data[loc.tag_end:]

    current = data[loc.tag_end:loc.content_end]
    if b"<" in current:
        raise ValidationError(f"字段包含子节点，无法按值改写: {'/'.join(path)}")
    if current == new_text:
        return data
    return data[:loc.tag_end] + new_text + data[loc.content_end:]


def apply_pin(tree: Path, pin: ToolchainPin) -> bool:
    """把一个工具链版本写回源码树，返回是否有改动"""
    target = tree / pin.file
    if not target.is_file():
        raise ValidationError(f"工具链版本文件不存在: {pin.file}")
    original = target.read_bytes()
    updated = rewrite_field(original, pin.path, pin.value)
    if updated == original:
        logger.info("  工具链版本已是目标值: %s:%s = %s", pin.file, "/".join(pin.path), pin.value)
        return False
    atomic_write(target, updated)
    logger.info("  工具链版本已改写: %s:%s -> %s", pin.file, "/".join(pin.path), pin.value)
    return True
