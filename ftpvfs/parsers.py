"""
LIST 输出行解析器链。

FTP 协议没有机器可读的列表格式，不同服务器的 LIST 输出各不相同。
每种方言由一个独立的解析器负责：能识别则返回 ParsedLine，否则返回 None（无副作用）。
ParserChain 按固定优先级依次尝试（语法最严格的在前，宽松或厂商专用格式在后），
第一个成功的结果即为该行的解析结果；全部失败则抛出 UnsupportedFormatError，
绝不跳过该行，以免错误的部分匹配悄悄破坏目录视图。

新增方言只需实现一个 ListingParser 子类并加入链中，无需修改已有解析器。
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from ftpvfs.exceptions import UnsupportedFormatError
from ftpvfs.models import ParsedLine

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

# 「年份」后紧跟「时:分」时交给 TitanParser，Unix 解析器不能把时间吞进文件名
_UNIX_TIME_OR_YEAR = r"(?P<time>\d{1,2}:\d{2}|\d{4}(?!\s+\d{1,2}:\d{2}\s))"


def _epoch(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> int:
    """UTC 时间转 epoch 秒；日期非法时返回 0（未知）。"""
    try:
        return int(datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc).timestamp())
    except ValueError:
        return 0


def _two_digit_year(year: str) -> int:
    value = int(year)
    if len(year) > 2:
        return value
    return value + (2000 if value < 70 else 1900)


class ListingParser:
    """解析器基类。子类提供 pattern 与 build()。"""

    pattern: re.Pattern[str]

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    @property
    def name(self) -> str:
        return type(self).__name__

    def parse(self, line: str) -> ParsedLine | None:
        match = self.pattern.match(line)
        if match is None:
            return None
        return self.build(match)

    def build(self, match: re.Match[str]) -> ParsedLine | None:
        raise NotImplementedError

    def _unix_mtime(self, month: str, day: str, time_or_year: str) -> int | None:
        """
        解析 "Mon DD HH:MM" 或 "Mon DD YYYY"。

        不带年份时取当前年；若由此得到的时间超过当前时间一天以上，则视为去年。
        月份无法识别时返回 None，调用方应放弃匹配。
        """
        month_no = _MONTHS.get(month[:3].lower())
        if month_no is None:
            return None
        if ":" not in time_or_year:
            return _epoch(int(time_or_year), month_no, int(day))
        hour, minute = (int(part) for part in time_or_year.split(":"))
        now = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        mtime = _epoch(now.year, month_no, int(day), hour, minute)
        if mtime and mtime - now.timestamp() > timedelta(days=1).total_seconds():
            mtime = _epoch(now.year - 1, month_no, int(day), hour, minute)
        return mtime


class SummaryLineParser(ListingParser):
    """空行、"total N" 等汇总行：只做标记，由 SummaryLineFilter 排除。"""

    pattern = re.compile(r"^\s*$|^total\s+\d+\s*$", re.IGNORECASE)

    def build(self, match: re.Match[str]) -> ParsedLine:
        return ParsedLine(name=match.group(0).strip(), is_summary=True, parser=self.name)


def _split_link(name: str, kind: str) -> str:
    if kind == "l":
        return name.split(" -> ", 1)[0]
    return name


class StrictRulesParser(ListingParser):
    """
    标准 Unix ls -l 格式：

        -rw-r--r-- 1 owner group 1024 Jan 01 00:00 file.txt
        drwxr-xr-x 2 owner group 4096 Mar 3 2021 folder
        lrwxrwxrwx 1 owner group 11 Jan 01 00:00 link -> target
    """

    pattern = re.compile(
        r"^(?P<type>[-dlbcps])(?P<perms>[-rwxsStT]{9})\s+(?P<links>\d+)\s+"
        r"(?P<owner>\S+)\s+(?P<group>\S+)\s+(?P<size>\d+)\s+"
        r"(?P<month>[A-Za-z]{3})\s+(?P<day>\d{1,2})\s+" + _UNIX_TIME_OR_YEAR + r"\s+(?P<name>.+)$"
    )

    def build(self, match: re.Match[str]) -> ParsedLine | None:
        mtime = self._unix_mtime(match["month"], match["day"], match["time"])
        if mtime is None:
            return None
        kind = match["type"]
        return ParsedLine(
            is_directory=kind == "d",
            name=_split_link(match["name"], kind),
            size=int(match["size"]),
            owner=match["owner"],
            group=match["group"],
            permissions=match["perms"],
            mtime=mtime,
            parser=self.name,
        )


class LessStrictRulesParser(ListingParser):
    """
    Unix 变体：权限后带扩展标记（+ @ .）、缺少链接数或组、ISO 日期等。

        drwxr-xr-x+  folder 0 Nov 17 10:00 name
        -rw-r--r--   1 1001  512 2023-11-17 10:00 name
    """

    pattern = re.compile(
        r"^(?P<type>[-dl])(?P<perms>[-rwxsStT]{9})\S*\s+(?:(?P<links>\d+)\s+)?"
        r"(?P<owner>\S+)\s+(?:(?P<group>\S+)\s+)?(?P<size>\d+)\s+"
        r"(?:(?P<month>[A-Za-z]{3})\s+(?P<day>\d{1,2})\s+" + _UNIX_TIME_OR_YEAR + r"|"
        r"(?P<isodate>\d{4}-\d{2}-\d{2})\s+(?P<isotime>\d{2}:\d{2})(?::\d{2})?)"
        r"\s+(?P<name>.+)$"
    )

    def build(self, match: re.Match[str]) -> ParsedLine | None:
        if match["isodate"]:
            year, month, day = (int(part) for part in match["isodate"].split("-"))
            hour, minute = (int(part) for part in match["isotime"].split(":"))
            mtime = _epoch(year, month, day, hour, minute)
        else:
            mtime = self._unix_mtime(match["month"], match["day"], match["time"])
            if mtime is None:
                return None
        kind = match["type"]
        return ParsedLine(
            is_directory=kind == "d",
            name=_split_link(match["name"], kind),
            size=int(match["size"]),
            owner=match["owner"],
            group=match["group"] or "",
            permissions=match["perms"],
            mtime=mtime,
            parser=self.name,
        )


class WindowsParser(ListingParser):
    """
    IIS / DOS 格式：

        01-15-21  02:30PM       <DIR>          folder
        01-15-2021  14:30             1024 file.txt
    """

    pattern = re.compile(
        r"^(?P<month>\d{2})-(?P<day>\d{2})-(?P<year>\d{2}|\d{4})\s+"
        r"(?P<hour>\d{1,2}):(?P<minute>\d{2})\s*(?P<ampm>[AaPp][Mm])?\s+"
        r"(?P<size><DIR>|\d+)\s+(?P<name>.+)$"
    )

    def build(self, match: re.Match[str]) -> ParsedLine:
        hour = int(match["hour"])
        ampm = (match["ampm"] or "").upper()
        if ampm == "PM" and hour < 12:
            hour += 12
        elif ampm == "AM" and hour == 12:
            hour = 0
        is_directory = match["size"].upper() == "<DIR>"
        return ParsedLine(
            is_directory=is_directory,
            name=match["name"],
            size=0 if is_directory else int(match["size"]),
            mtime=_epoch(_two_digit_year(match["year"]), int(match["month"]), int(match["day"]), hour, int(match["minute"])),
            parser=self.name,
        )


class NetwareParser(ListingParser):
    """
    Novell Netware 格式，权限为方括号中的 RWCEAFMS 标志：

        d [RWCEAFMS] admin        512 Mar 12 10:45 SYSTEM
        - [R----F--] admin      15360 Jan 02  2020 readme.txt
    """

    pattern = re.compile(
        r"^(?P<type>[-d])\s+\[(?P<flags>[-RWCEAFMS]{8})\]\s+(?P<owner>\S+)\s+(?P<size>\d+)\s+"
        r"(?P<month>[A-Za-z]{3})\s+(?P<day>\d{1,2})\s+(?P<time>\d{1,2}:\d{2}|\d{4})\s+(?P<name>.+)$"
    )

    def build(self, match: re.Match[str]) -> ParsedLine | None:
        mtime = self._unix_mtime(match["month"], match["day"], match["time"])
        if mtime is None:
            return None
        flags = match["flags"]
        # 转成 Unix 风格的所有者权限位，其余位不使用
        permissions = ("r" if "R" in flags else "-") + ("w" if "W" in flags else "-") + "-------"
        return ParsedLine(
            is_directory=match["type"] == "d",
            name=match["name"],
            size=int(match["size"]),
            owner=match["owner"],
            permissions=permissions,
            mtime=mtime,
            parser=self.name,
        )


class AS400Parser(ListingParser):
    """
    IBM AS/400 (OS/400) 格式，对象类型以 * 开头：

        QSYS           77824 02/23/00 15:09:55 *DIR       QOpenSys/
        USER            1024 12/01/21 08:00:00 *STMF      report.txt
    """

    pattern = re.compile(
        r"^(?P<owner>\S+)\s+(?P<size>\d+)\s+(?P<month>\d{2})/(?P<day>\d{2})/(?P<year>\d{2}|\d{4})\s+"
        r"(?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})\s+(?P<type>\*\S+)\s+(?P<name>.+)$"
    )

    DIRECTORY_TYPES = ("*DIR", "*LIB")

    def build(self, match: re.Match[str]) -> ParsedLine | None:
        name = match["name"]
        is_directory = match["type"].upper() in self.DIRECTORY_TYPES or name.endswith("/")
        name = name.rstrip("/")
        if not name:
            return None
        return ParsedLine(
            is_directory=is_directory,
            name=name,
            size=0 if is_directory else int(match["size"]),
            owner=match["owner"],
            mtime=_epoch(
                _two_digit_year(match["year"]), int(match["month"]), int(match["day"]),
                int(match["hour"]), int(match["minute"]), int(match["second"]),
            ),
            parser=self.name,
        )


class TitanParser(ListingParser):
    """
    Titan FTP Server：Unix 风格，但同时给出年份与时间：

        -rw-rw-rw-   1 owner    group       1024 Jan 01 2021 12:00 file.txt
    """

    pattern = re.compile(
        r"^(?P<type>[-dl])(?P<perms>[-rwxsStT]{9})\s+(?P<links>\d+)\s+(?P<owner>\S+)\s+(?P<group>\S+)\s+"
        r"(?P<size>\d+)\s+(?P<month>[A-Za-z]{3})\s+(?P<day>\d{1,2})\s+(?P<year>\d{4})\s+"
        r"(?P<hour>\d{1,2}):(?P<minute>\d{2})\s+(?P<name>.+)$"
    )

    def build(self, match: re.Match[str]) -> ParsedLine | None:
        month_no = _MONTHS.get(match["month"].lower())
        if month_no is None:
            return None
        kind = match["type"]
        return ParsedLine(
            is_directory=kind == "d",
            name=_split_link(match["name"], kind),
            size=int(match["size"]),
            owner=match["owner"],
            group=match["group"],
            permissions=match["perms"],
            mtime=_epoch(int(match["year"]), month_no, int(match["day"]), int(match["hour"]), int(match["minute"])),
            parser=self.name,
        )


def default_parsers(clock: Callable[[], float] = time.time) -> list[ListingParser]:
    """默认解析器顺序：汇总行 → 严格 Unix → 宽松 Unix → Windows → Netware → AS400 → Titan。"""
    return [
        SummaryLineParser(clock),
        StrictRulesParser(clock),
        LessStrictRulesParser(clock),
        WindowsParser(clock),
        NetwareParser(clock),
        AS400Parser(clock),
        TitanParser(clock),
    ]


class ParserChain:
    """
    有序解析器链，在构造时组装，可由调用方追加、插入或整体替换。

    :param parsers: 解析器列表；None 表示使用 default_parsers()
    """

    def __init__(self, parsers: Iterable[ListingParser] | None = None):
        self._parsers: list[ListingParser] = list(parsers) if parsers is not None else default_parsers()

    @property
    def parsers(self) -> tuple[ListingParser, ...]:
        return tuple(self._parsers)

    def append(self, parser: ListingParser) -> ParserChain:
        self._parsers.append(parser)
        return self

    def insert(self, index: int, parser: ListingParser) -> ParserChain:
        self._parsers.insert(index, parser)
        return self

    def parse(self, line: str) -> ParsedLine:
        """返回第一个匹配的解析结果；全部不匹配时抛出 UnsupportedFormatError。"""
        for parser in self._parsers:
            result = parser.parse(line)
            if result is not None:
                return result
        raise UnsupportedFormatError(line)
