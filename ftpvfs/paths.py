"""
标识符（identifier）工具函数。

标识符是相对 base path、以 / 开头的路径字符串；文件夹以 / 结尾，文件不以 / 结尾。
"""

from __future__ import annotations

import hashlib
import posixpath


def canonical_folder(identifier: str) -> str:
    """规范化文件夹标识符：/ 开头、/ 结尾，根目录为 "/"。"""
    stripped = identifier.strip("/")
    return f"/{stripped}/" if stripped else "/"


def canonical_file(identifier: str) -> str:
    """规范化文件标识符：/ 开头、不以 / 结尾。"""
    return "/" + identifier.strip("/")


def canonical(identifier: str, is_directory: bool) -> str:
    return canonical_folder(identifier) if is_directory else canonical_file(identifier)


def parent_folder(identifier: str) -> str:
    """返回所在父文件夹的标识符，如 "/a/b.txt" -> "/a/"，"/a/" -> "/"。"""
    parent = posixpath.dirname(identifier.rstrip("/"))
    return canonical_folder(parent)


def name_of(identifier: str) -> str:
    """标识符的最后一段名称（不含斜杠）。"""
    return posixpath.basename(identifier.rstrip("/"))


def join(folder: str, name: str, is_directory: bool = False) -> str:
    """在文件夹下拼接子项标识符。"""
    return canonical(canonical_folder(folder) + name, is_directory)


def hash_identifier(identifier: str) -> str:
    """标识符的 sha1 十六进制摘要，用作 identifier_hash / folder_hash。"""
    return hashlib.sha1(identifier.encode("utf-8")).hexdigest()
