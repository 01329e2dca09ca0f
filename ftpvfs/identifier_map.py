"""
重命名/移动文件夹时的新旧标识符映射。

必须在服务器上执行重命名之前构建：重命名一旦成功，旧标识符就无法再列出。
遍历使用客户端的实时列表而不是目录缓存，保证映射覆盖服务器上的真实内容。
"""

from __future__ import annotations

from typing import Protocol

from ftpvfs.models import ParsedLine
from ftpvfs.paths import canonical_file, canonical_folder, join


class ListingClient(Protocol):
    def directory_exists(self, directory: str) -> bool: ...

    def fetch_directory_list(self, directory: str) -> list[ParsedLine]: ...


def build_identifier_map(client: ListingClient, old_identifier: str, new_identifier: str) -> dict[str, str]:
    """
    返回 {旧标识符: 新标识符}。

    旧标识符是文件时只有一对；是文件夹时包含所有后代（先子项，最后是文件夹自身）。
    """
    if not client.directory_exists(old_identifier):
        return {canonical_file(old_identifier): canonical_file(new_identifier)}
    return _map_folder(client, canonical_folder(old_identifier), canonical_folder(new_identifier))


def _map_folder(client: ListingClient, old_folder: str, new_folder: str) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for entry in client.fetch_directory_list(old_folder):
        old_child = join(old_folder, entry.name, entry.is_directory)
        new_child = join(new_folder, entry.name, entry.is_directory)
        if entry.is_directory:
            mapping.update(_map_folder(client, old_child, new_child))
        else:
            mapping[old_child] = new_child
    mapping[old_folder] = new_folder
    return mapping
