"""
列表条目过滤器链：解析之后、校验之前执行，排除不应出现在逻辑视图中的条目。

每个过滤器的 exclude(entry, line) 返回 True 表示排除；第一个排除的过滤器即终止该条目的后续过滤。
"""

from __future__ import annotations

import fnmatch
from typing import Iterable

from ftpvfs.models import ParsedLine


class ListingFilter:
    def exclude(self, entry: ParsedLine, line: str) -> bool:
        raise NotImplementedError


class DotsFilter(ListingFilter):
    """排除 "." 与 ".." 自引用条目。"""

    def exclude(self, entry: ParsedLine, line: str) -> bool:
        return entry.name in (".", "..")


class SummaryLineFilter(ListingFilter):
    """排除被 SummaryLineParser 标记的汇总行与空行。"""

    def exclude(self, entry: ParsedLine, line: str) -> bool:
        return entry.is_summary


class NamePatternFilter(ListingFilter):
    """
    按文件名通配符（fnmatch）排除条目，如 [".htaccess", "*.tmp"]。

    :param patterns: 通配符列表
    :param case_sensitive: 是否区分大小写
    """

    def __init__(self, patterns: Iterable[str], *, case_sensitive: bool = True):
        self.case_sensitive = case_sensitive
        self.patterns = [p if case_sensitive else p.lower() for p in patterns]

    def exclude(self, entry: ParsedLine, line: str) -> bool:
        name = entry.name if self.case_sensitive else entry.name.lower()
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.patterns)


def default_filters() -> list[ListingFilter]:
    return [DotsFilter(), SummaryLineFilter()]


def is_excluded(filters: Iterable[ListingFilter], entry: ParsedLine, line: str) -> bool:
    return any(f.exclude(entry, line) for f in filters)
