"""
条目过滤器单元测试，以及过滤器在客户端列目录时的效果（FakeFTP）。
"""

from __future__ import annotations

from ftpvfs.client import FTPClient
from ftpvfs.config import ConnectionConfig
from ftpvfs.filters import (
    DotsFilter,
    NamePatternFilter,
    SummaryLineFilter,
    default_filters,
    is_excluded,
)
from ftpvfs.models import ParsedLine

from tests.fake_ftp import FakeFTP


def test_dots_filter() -> None:
    f = DotsFilter()
    assert f.exclude(ParsedLine(is_directory=True, name="."), ".")
    assert f.exclude(ParsedLine(is_directory=True, name=".."), "..")
    assert not f.exclude(ParsedLine(is_directory=True, name=".hidden"), ".hidden")


def test_summary_line_filter() -> None:
    f = SummaryLineFilter()
    assert f.exclude(ParsedLine(name="total 3", is_summary=True), "total 3")
    assert not f.exclude(ParsedLine(is_directory=False, name="total"), "total")


def test_name_pattern_filter_case_handling() -> None:
    entry = ParsedLine(is_directory=False, name="Backup.TMP")
    assert not NamePatternFilter(["*.tmp"]).exclude(entry, "")
    assert NamePatternFilter(["*.tmp"], case_sensitive=False).exclude(entry, "")
    assert NamePatternFilter([".htaccess", "Backup.*"]).exclude(entry, "")


def test_is_excluded_stops_at_first_match() -> None:
    calls: list[str] = []

    class Recording(DotsFilter):
        def exclude(self, entry: ParsedLine, line: str) -> bool:
            calls.append(entry.name)
            return False

    entry = ParsedLine(is_directory=True, name=".")
    assert is_excluded([DotsFilter(), Recording()], entry, ".") is True
    assert calls == []
    assert is_excluded([Recording()], entry, ".") is False
    assert calls == ["."]


def test_default_filters() -> None:
    assert [type(f) for f in default_filters()] == [DotsFilter, SummaryLineFilter]


def test_client_listing_applies_custom_filters(fake_ftp: FakeFTP, connection_config: ConnectionConfig) -> None:
    """自定义过滤器追加到默认过滤器之后，被过滤的条目不出现在列表中。"""
    fake_ftp.add_file("/docs/a.txt", b"a")
    fake_ftp.add_file("/docs/a.tmp", b"tmp")
    fake_ftp.add_file("/docs/.htaccess", b"deny")
    filters = default_filters() + [NamePatternFilter(["*.tmp", ".htaccess"])]
    client = FTPClient(connection_config, filters=filters, ftp_factory=lambda: fake_ftp)
    try:
        names = [e.name for e in client.fetch_directory_list("/docs/")]
    finally:
        client.close()
    assert names == ["a.txt"]
