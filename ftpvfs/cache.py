"""
按文件夹缓存的目录列表。

每个文件夹对应一个只读快照（identifier -> ResourceEntry），刷新时整体替换，
从不合并部分结果：要么是完整的旧快照，要么是完整的新快照。
缓存只在显式刷新（修改操作或未命中）时变化，没有后台刷新与过期时间。

缓存归单个驱动实例私有，不做任何加锁。
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Callable, Mapping

from ftpvfs.models import ResourceEntry
from ftpvfs.paths import canonical_folder, parent_folder

logger = logging.getLogger(__name__)

Snapshot = Mapping[str, ResourceEntry]
Loader = Callable[[str], Mapping[str, ResourceEntry]]


class DirectoryCache:
    """
    :param loader: 给定文件夹标识符，返回 {identifier: ResourceEntry} 的完整列表；
                   抛出异常时缓存保持不变（失败的刷新会移除该文件夹旧快照）
    """

    def __init__(self, loader: Loader):
        self._loader = loader
        self._snapshots: dict[str, Snapshot] = {}

    def fetch(self, folder: str, force_refresh: bool = False) -> Snapshot:
        """返回文件夹快照；未命中或 force_refresh 时重新加载并整体替换。"""
        folder = canonical_folder(folder)
        if not force_refresh:
            snapshot = self._snapshots.get(folder)
            if snapshot is not None:
                return snapshot
        # 刷新失败时不能留下旧快照冒充最新状态
        self._snapshots.pop(folder, None)
        snapshot = MappingProxyType(dict(self._loader(folder)))
        self._snapshots[folder] = snapshot
        logger.debug("Cached %d entries for %s", len(snapshot), folder)
        return snapshot

    def lookup(self, identifier: str) -> ResourceEntry | None:
        """
        查找单个条目。协议只提供文件夹粒度的列表，
        因此快照来自缓存且未命中时，强制刷新所属文件夹后再查一次，仍不存在则返回 None。
        刚加载的快照已是最新，不再重复刷新。
        """
        folder = parent_folder(identifier)
        cached = folder in self
        entry = self.fetch(folder).get(identifier)
        if entry is None and cached:
            entry = self.fetch(folder, force_refresh=True).get(identifier)
        return entry

    def invalidate(self, folder: str) -> None:
        self._snapshots.pop(canonical_folder(folder), None)

    def invalidate_tree(self, folder: str) -> None:
        """丢弃文件夹自身及其下所有子文件夹的快照（用于删除/重命名/移动整棵子树）。"""
        prefix = canonical_folder(folder)
        for key in [k for k in self._snapshots if k.startswith(prefix)]:
            del self._snapshots[key]

    def clear(self) -> None:
        self._snapshots.clear()

    def __contains__(self, folder: object) -> bool:
        return isinstance(folder, str) and canonical_folder(folder) in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)
