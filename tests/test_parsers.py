"""
列表解析器链单元测试：各方言格式、优先级、无法识别的行与年份推断。
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from ftpvfs.exceptions import UnsupportedFormatError
from ftpvfs.models import ParsedLine, parse_permissions
from ftpvfs.parsers import (
    AS400Parser,
    ListingParser,
    ParserChain,
    StrictRulesParser,
    default_parsers,
)


def _ts(*args: int) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


# 2024-01-10 12:00 UTC
FIXED_NOW = float(_ts(2024, 1, 10, 12, 0))


@pytest.fixture
def chain() -> ParserChain:
    return ParserChain(default_parsers(clock=lambda: FIXED_NOW))


def test_unix_file_line(chain: ParserChain) -> None:
    """标准 ls -l 行由严格解析器识别，所有者 rw 权限解析为 r/w。"""
    entry = chain.parse("-rw-r--r-- 1 owner group 1024 Jan 01 00:00 file.txt")
    assert entry.is_directory is False
    assert entry.name == "file.txt"
    assert entry.size == 1024
    assert entry.owner == "owner"
    assert entry.group == "group"
    assert entry.parser == "StrictRulesParser"
    mode = parse_permissions(entry.permissions)
    assert mode.r is True and mode.w is True
    assert entry.mtime == _ts(2024, 1, 1, 0, 0)


def test_unix_directory_line_with_year(chain: ParserChain) -> None:
    entry = chain.parse("drwxr-xr-x 2 owner group 4096 Mar 3 2021 my folder")
    assert entry.is_directory is True
    assert entry.name == "my folder"
    assert entry.mtime == _ts(2021, 3, 3)


def test_symlink_name_drops_target(chain: ParserChain) -> None:
    entry = chain.parse("lrwxrwxrwx 1 owner group 11 Jan 01 2021 link -> target")
    assert entry.is_directory is False
    assert entry.name == "link"


def test_date_in_future_rolls_back_one_year(chain: ParserChain) -> None:
    """不带年份且比当前时间晚一天以上的日期属于去年。"""
    entry = chain.parse("-rw-r--r-- 1 owner group 1 Dec 31 12:00 old.txt")
    assert entry.mtime == _ts(2023, 12, 31, 12, 0)
    entry = chain.parse("-rw-r--r-- 1 owner group 1 Jan 11 08:00 tomorrow.txt")
    assert entry.mtime == _ts(2024, 1, 11, 8, 0)


def test_less_strict_extended_permission_marker(chain: ParserChain) -> None:
    entry = chain.parse("drwxr-xr-x+ 2 owner group 4096 Jan 01 2021 acl-folder")
    assert entry.parser == "LessStrictRulesParser"
    assert entry.is_directory is True
    assert entry.name == "acl-folder"


def test_less_strict_iso_date_without_group(chain: ParserChain) -> None:
    entry = chain.parse("-rw-r--r--   1 1001  512 2023-11-17 10:00 name.txt")
    assert entry.parser == "LessStrictRulesParser"
    assert entry.name == "name.txt"
    assert entry.size == 512
    assert entry.owner == "1001"
    assert entry.group == ""
    assert entry.mtime == _ts(2023, 11, 17, 10, 0)


def test_windows_lines(chain: ParserChain) -> None:
    folder = chain.parse("01-15-21  02:30PM       <DIR>          folder")
    assert folder.parser == "WindowsParser"
    assert folder.is_directory is True
    assert folder.name == "folder"
    assert folder.mtime == _ts(2021, 1, 15, 14, 30)
    assert folder.permissions is None

    file = chain.parse("01-15-2021  12:05AM             1024 file name.txt")
    assert file.is_directory is False
    assert file.size == 1024
    assert file.name == "file name.txt"
    assert file.mtime == _ts(2021, 1, 15, 0, 5)


def test_netware_flags_become_owner_permissions(chain: ParserChain) -> None:
    entry = chain.parse("- [R----F--] admin      15360 Jan 02 2020 readme.txt")
    assert entry.parser == "NetwareParser"
    assert entry.is_directory is False
    assert entry.size == 15360
    mode = parse_permissions(entry.permissions)
    assert mode.r is True and mode.w is False

    folder = chain.parse("d [RWCEAFMS] admin        512 Mar 12 2020 SYSTEM")
    assert folder.is_directory is True
    assert parse_permissions(folder.permissions) == (True, True)


def test_as400_lines(chain: ParserChain) -> None:
    folder = chain.parse("QSYS           77824 02/23/00 15:09:55 *DIR       QOpenSys/")
    assert folder.parser == "AS400Parser"
    assert folder.is_directory is True
    assert folder.name == "QOpenSys"
    assert folder.size == 0

    file = chain.parse("USER            1024 12/01/21 08:00:00 *STMF      report.txt")
    assert file.is_directory is False
    assert file.size == 1024
    assert file.mtime == _ts(2021, 12, 1, 8, 0, 0)


def test_titan_year_and_time(chain: ParserChain) -> None:
    """同时带年份和时间的行不会被 Unix 解析器误读，名称中不含时间。"""
    entry = chain.parse("-rw-rw-rw-   1 owner    group       1024 Jan 01 2021 12:00 file.txt")
    assert entry.parser == "TitanParser"
    assert entry.name == "file.txt"
    assert entry.mtime == _ts(2021, 1, 1, 12, 0)


@pytest.mark.parametrize("line", ["total 12", "TOTAL 0", "", "   "])
def test_summary_lines_are_marked(chain: ParserChain, line: str) -> None:
    assert chain.parse(line).is_summary is True


def test_unsupported_line_raises_with_line(chain: ParserChain) -> None:
    line = "this is not a listing line"
    with pytest.raises(UnsupportedFormatError) as exc_info:
        chain.parse(line)
    assert exc_info.value.line == line
    assert line in str(exc_info.value)


def test_unknown_month_declines() -> None:
    assert StrictRulesParser().parse("-rw-r--r-- 1 owner group 1 Foo 01 2021 file.txt") is None


def test_chain_is_extensible() -> None:
    """插入自定义解析器后，它优先于后面的解析器。"""

    class MLSDParser(ListingParser):
        pattern = re.compile(r"^type=(?P<type>file|dir);size=(?P<size>\d+); (?P<name>.+)$")

        def build(self, match):
            return ParsedLine(
                is_directory=match["type"] == "dir",
                name=match["name"],
                size=int(match["size"]),
                parser=self.name,
            )

    chain = ParserChain()
    with pytest.raises(UnsupportedFormatError):
        chain.parse("type=file;size=3; a.txt")
    chain.insert(0, MLSDParser())
    entry = chain.parse("type=file;size=3; a.txt")
    assert entry.parser == "MLSDParser"
    assert entry.name == "a.txt"
    assert chain.parsers[0].name == "MLSDParser"


def test_default_order() -> None:
    names = [p.name for p in ParserChain().parsers]
    assert names == [
        "SummaryLineParser",
        "StrictRulesParser",
        "LessStrictRulesParser",
        "WindowsParser",
        "NetwareParser",
        "AS400Parser",
        "TitanParser",
    ]
    assert isinstance(ParserChain().parsers[5], AS400Parser)
