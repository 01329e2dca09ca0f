"""
ftpvfs 数据模型。

- ParsedLine：解析器从一行 LIST 输出得到的原始字段（不可变）
- Permissions：所有者读/写权限对
- ResourceEntry：经过过滤与规范化后的文件/文件夹条目，即目录缓存中的值

权限只取所有者的 r/w 两位，组/其他用户位与 x 位被有意忽略。
"""

from __future__ import annotations

import mimetypes
from dataclasses import asdict, dataclass
from typing import Any, NamedTuple

DEFAULT_MIMETYPE = "application/octet-stream"


class Permissions(NamedTuple):
    r: bool = True
    w: bool = True


@dataclass(frozen=True)
class ParsedLine:
    """一行列表输出的解析结果；path 由客户端在列目录时补上。"""

    is_directory: bool | None = None
    name: str = ""
    size: int = 0
    owner: str = ""
    group: str = ""
    permissions: str | None = None
    mtime: int = 0
    is_summary: bool = False
    path: str = ""
    parser: str = ""


@dataclass(frozen=True)
class ResourceEntry:
    """目录缓存中的一个文件或文件夹。ctime/atime 协议不提供，固定为 0。"""

    path: str
    name: str
    is_directory: bool
    identifier: str
    identifier_hash: str
    folder_hash: str
    size: int = 0
    owner: str = ""
    group: str = ""
    mode: Permissions = Permissions()
    mimetype: str | None = None
    mtime: int = 0
    ctime: int = 0
    atime: int = 0

    def to_dict(self) -> dict[str, Any]:
        """转为宿主层使用的字典形式（mode 为 {"r": bool, "w": bool}）。"""
        data = asdict(self)
        data["mode"] = self.mode._asdict()
        return data


def parse_permissions(permissions: str | None) -> Permissions:
    """
    将权限字符串解析为 (r, w)。

    接受 "rw-r--r--"（9 位）或带类型位的 "-rw-r--r--"（10 位）；
    没有权限字符串的格式（如 Windows 列表）视为可读可写。
    """
    if not permissions:
        return Permissions(True, True)
    bits = permissions[1:] if len(permissions) >= 10 else permissions
    return Permissions(bits[:1] == "r", bits[1:2] == "w")


def mime_type_for(name: str) -> str:
    """按扩展名推断 mime 类型，未知时为 application/octet-stream。"""
    mimetype, _ = mimetypes.guess_type(name, strict=False)
    return mimetype or DEFAULT_MIMETYPE
