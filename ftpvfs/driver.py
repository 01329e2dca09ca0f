"""
FTP 存储驱动：把 FTP 服务器以文件/文件夹树的形式提供给宿主存储抽象层。

- 协议操作交给 FTPClient
- 元数据来自 DirectoryCache（按文件夹缓存的列表快照）
- 重命名/移动文件夹前用 build_identifier_map 生成新旧标识符映射
- 哈希可交给远程哈希服务，否则下载到本地临时副本计算

所有改变文件夹成员的操作在返回前都会强制刷新受影响文件夹的缓存，
移动操作刷新源与目标两端，复制操作刷新目标文件夹。
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import posixpath
import re
import tempfile
from typing import IO, Any, Callable, Iterable, Iterator, Sequence

from ftpvfs.cache import DirectoryCache, Snapshot
from ftpvfs.client import FTPClient
from ftpvfs.config import DriverConfig
from ftpvfs.exceptions import (
    FTPConnectionError,
    InvalidDirectoryError,
    InvalidFileNameError,
    LocalResourceError,
    ResourceDoesNotExistError,
)
from ftpvfs.filters import ListingFilter
from ftpvfs.identifier_map import build_identifier_map
from ftpvfs.models import ParsedLine, ResourceEntry, mime_type_for, parse_permissions
from ftpvfs.parsers import ListingParser, ParserChain
from ftpvfs.paths import (
    canonical_file,
    canonical_folder,
    hash_identifier,
    join,
    name_of,
    parent_folder,
)
from ftpvfs.remote_service import RemoteHashService

logger = logging.getLogger(__name__)

# 名称过滤回调：(name, identifier, parent_identifier) -> 是否保留
NameFilterCallback = Callable[[str, str, str], bool]

UNSAFE_FILENAME_RE = re.compile(r"[\x00-\x2C/\x3A-\x3F\x5B-\x60\x7B-\xBF]")

HASH_CHUNK_SIZE = 1024 * 1024  # 1 MiB


def sanitize_file_name(file_name: str) -> str:
    """
    将不安全字符替换为 "_" 并去掉末尾的点。

    保留 "."、"-"、数字、字母以及 U+00C0 之后的所有字符；结果为空时抛出 InvalidFileNameError。
    """
    clean = UNSAFE_FILENAME_RE.sub("_", file_name.strip()).rstrip(".")
    if not clean:
        raise InvalidFileNameError(f'File name "{file_name}" is invalid.')
    return clean


def _hash_local_file(path: str, algorithm: str) -> str:
    digest = hashlib.new(algorithm)
    try:
        with open(path, "rb") as fp:
            for chunk in iter(lambda: fp.read(HASH_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as exc:
        raise LocalResourceError(f'Reading local copy "{path}" failed.') from exc
    return digest.hexdigest()


def _sort_key(sort: str) -> Callable[[ResourceEntry], Any] | None:
    if sort == "name":
        return lambda e: e.name.lower()
    if sort == "fileext":
        return lambda e: (posixpath.splitext(e.name)[1].lower(), e.name.lower())
    if sort == "size":
        return lambda e: (e.size, e.name.lower())
    if sort == "tstamp":
        return lambda e: (e.mtime, e.name.lower())
    if sort == "rw":
        return lambda e: (e.mode.r, e.mode.w, e.name.lower())
    return None


class FTPDriver:
    """
    FTP 存储驱动。

    :param config: 驱动配置
    :param client: 可选，外部创建的 FTPClient；默认按 config.connection 创建
    :param parsers: 列表解析器链（仅在未传入 client 时使用）
    :param filters: 条目过滤器（仅在未传入 client 时使用）
    :param ftp_factory: 底层 ftplib 对象工厂（仅在未传入 client 时使用）
    :param remote_service: 可选，外部创建的远程哈希服务
    """

    def __init__(
        self,
        config: DriverConfig,
        *,
        client: FTPClient | None = None,
        parsers: ParserChain | Iterable[ListingParser] | None = None,
        filters: Iterable[ListingFilter] | None = None,
        ftp_factory: Callable[[], Any] | None = None,
        remote_service: RemoteHashService | None = None,
    ):
        self.config = config
        self.client = client or FTPClient(config.connection, parsers=parsers, filters=filters, ftp_factory=ftp_factory)
        self.cache = DirectoryCache(self._load_folder)
        self.supported_hash_algorithms: tuple[str, ...] = config.hash_algorithms
        self._local_copies: list[str] = []
        self.remote_service: RemoteHashService | None = None
        if remote_service is not None or config.remote_service:
            if config.writable:
                self.remote_service = remote_service or RemoteHashService.from_config(self.client, config)
            else:
                logger.warning("Remote service is enabled but the storage is not writable; hashing falls back to local copies")

    # ------------------------- 生命周期 -------------------------

    def close(self) -> None:
        """删除所有本地临时副本并关闭连接。"""
        while self._local_copies:
            self._remove_local_copy(self._local_copies[-1])
        if self.remote_service is not None:
            self.remote_service.close()
        self.client.close()

    def __enter__(self) -> FTPDriver:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ------------------------- 标识符 -------------------------

    def get_root_level_folder(self) -> str:
        return "/"

    def get_default_folder(self) -> str:
        """默认上传目录（如 /user_upload/）；不存在且存储可写时自动创建。"""
        folder = canonical_folder(self.config.default_folder)
        if folder != "/" and self.config.writable and not self.folder_exists(folder):
            folder = self.create_folder(name_of(folder), parent_folder(folder))
        return folder

    def get_public_url(self, identifier: str) -> str:
        return self.config.public_url + identifier

    def get_folder_in_folder(self, folder_name: str, folder: str) -> str:
        return join(folder, folder_name, True)

    def get_file_in_folder(self, file_name: str, folder: str) -> str:
        return join(folder, file_name)

    def is_within(self, folder: str, identifier: str) -> bool:
        """identifier 是否位于 folder 内（或就是 folder 本身）。"""
        folder = canonical_folder(folder)
        identifier = "/" + identifier.lstrip("/")
        return identifier == folder or identifier.startswith(folder)

    sanitize_file_name = staticmethod(sanitize_file_name)

    # ------------------------- 存在性与信息 -------------------------

    def folder_exists(self, folder: str) -> bool:
        return self.client.directory_exists(canonical_folder(folder))

    def folder_exists_in_folder(self, folder_name: str, folder: str) -> bool:
        return self.folder_exists(join(folder, folder_name, True))

    def file_exists(self, file: str) -> bool:
        return self.client.file_exists(canonical_file(file))

    def file_exists_in_folder(self, file_name: str, folder: str) -> bool:
        return self.file_exists(join(folder, file_name))

    def is_folder_empty(self, folder: str) -> bool:
        return len(self.cache.fetch(folder, force_refresh=True)) == 0

    def get_folder_info_by_identifier(self, folder: str) -> dict[str, Any]:
        folder = canonical_folder(folder)
        if not self.folder_exists(folder):
            raise ResourceDoesNotExistError(f'Folder "{folder}" does not exist.')
        return {"identifier": folder, "name": name_of(folder)}

    def get_file_info_by_identifier(self, file: str, properties_to_extract: Sequence[str] = ()) -> dict[str, Any]:
        """
        返回文件信息字典（ResourceEntry.to_dict()）。

        :param properties_to_extract: 只返回这些键；为空时返回全部
        """
        file = canonical_file(file)
        entry = self._lookup(file)
        if entry is None:
            raise ResourceDoesNotExistError(f'File "{file}" does not exist.')
        info = entry.to_dict()
        if properties_to_extract:
            return {key: info[key] for key in properties_to_extract if key in info}
        return info

    def get_permissions(self, identifier: str) -> dict[str, bool]:
        """返回 {"r": bool, "w": bool}；根目录始终可读写。"""
        if identifier in ("", "/"):
            return {"r": True, "w": True}
        if identifier.endswith("/"):
            identifier = canonical_folder(identifier)
        else:
            identifier = canonical_file(identifier)
        entry = self._lookup(identifier)
        if entry is None:
            raise ResourceDoesNotExistError(f'Resource "{identifier}" does not exist.')
        return entry.mode._asdict()

    def _lookup(self, identifier: str) -> ResourceEntry | None:
        # 所属文件夹不存在时无法 CWD，资源同样视为不存在
        try:
            return self.cache.lookup(identifier)
        except InvalidDirectoryError as exc:
            raise ResourceDoesNotExistError(f'Resource "{identifier}" does not exist.') from exc

    # ------------------------- 列表 -------------------------

    def _make_entry(self, parsed: ParsedLine) -> ResourceEntry:
        is_directory = bool(parsed.is_directory)
        identifier = join(parsed.path, parsed.name, is_directory)
        mtime = parsed.mtime
        if self.config.exact_modification_time:
            try:
                mtime = self.client.get_modification_time(identifier)
            except FTPConnectionError:
                logger.debug("MDTM unavailable for %s, keeping listing time", identifier)
        return ResourceEntry(
            path=parsed.path,
            name=parsed.name,
            is_directory=is_directory,
            identifier=identifier,
            identifier_hash=hash_identifier(identifier),
            folder_hash=hash_identifier(parsed.path),
            size=0 if is_directory else parsed.size,
            owner=parsed.owner,
            group=parsed.group,
            mode=parse_permissions(parsed.permissions),
            mimetype=None if is_directory else mime_type_for(parsed.name),
            mtime=mtime,
        )

    def _load_folder(self, folder: str) -> dict[str, ResourceEntry]:
        entries = (self._make_entry(parsed) for parsed in self.client.fetch_directory_list(folder))
        return {entry.identifier: entry for entry in entries}

    def fetch_directory_list(self, folder: str, force_refresh: bool = False) -> Snapshot:
        """文件夹的缓存快照 {identifier: ResourceEntry}。"""
        return self.cache.fetch(folder, force_refresh=force_refresh)

    def _refresh(self, folder: str) -> None:
        self.cache.fetch(folder, force_refresh=True)

    def _walk(self, folder: str, recursive: bool) -> Iterator[ResourceEntry]:
        for entry in self.cache.fetch(folder).values():
            yield entry
            if recursive and entry.is_directory:
                yield from self._walk(entry.identifier, True)

    def _get_directory_item_list(
        self,
        folder: str,
        start: int,
        number_of_items: int,
        filter_callbacks: Iterable[NameFilterCallback],
        include_files: bool,
        include_dirs: bool,
        recursive: bool,
        sort: str = "",
        sort_rev: bool = False,
    ) -> list[str]:
        folder = canonical_folder(folder)
        if not self.folder_exists(folder):
            raise ResourceDoesNotExistError(f'Cannot list items in directory "{folder}" - does not exist or is no directory.')
        callbacks = list(filter_callbacks)
        items = [
            entry for entry in self._walk(folder, recursive)
            if (include_dirs if entry.is_directory else include_files)
            and all(callback(entry.name, entry.identifier, entry.path) for callback in callbacks)
        ]
        key = _sort_key(sort)
        if key is not None:
            items.sort(key=key, reverse=sort_rev)
        elif sort_rev:
            items.reverse()
        end = start + number_of_items if number_of_items > 0 else None
        return [entry.identifier for entry in items[start:end]]

    def get_files_in_folder(
        self,
        folder: str,
        start: int = 0,
        number_of_items: int = 0,
        recursive: bool = False,
        filename_filter_callbacks: Iterable[NameFilterCallback] = (),
        sort: str = "",
        sort_rev: bool = False,
    ) -> list[str]:
        """
        列出文件夹中的文件标识符。

        :param start: 跳过的条目数
        :param number_of_items: 最多返回条数，0 表示全部
        :param recursive: 是否包含子文件夹中的文件
        :param filename_filter_callbacks: 回调 (name, identifier, parent) 返回假值时排除该条目
        :param sort: "" / name / fileext / size / tstamp / rw
        """
        return self._get_directory_item_list(folder, start, number_of_items, filename_filter_callbacks, True, False, recursive, sort, sort_rev)

    def get_folders_in_folder(
        self,
        folder: str,
        start: int = 0,
        number_of_items: int = 0,
        recursive: bool = False,
        folder_name_filter_callbacks: Iterable[NameFilterCallback] = (),
        sort: str = "",
        sort_rev: bool = False,
    ) -> list[str]:
        return self._get_directory_item_list(folder, start, number_of_items, folder_name_filter_callbacks, False, True, recursive, sort, sort_rev)

    def count_files_in_folder(self, folder: str, recursive: bool = False, filename_filter_callbacks: Iterable[NameFilterCallback] = ()) -> int:
        return len(self.get_files_in_folder(folder, recursive=recursive, filename_filter_callbacks=filename_filter_callbacks))

    def count_folders_in_folder(self, folder: str, recursive: bool = False, folder_name_filter_callbacks: Iterable[NameFilterCallback] = ()) -> int:
        return len(self.get_folders_in_folder(folder, recursive=recursive, folder_name_filter_callbacks=folder_name_filter_callbacks))

    # ------------------------- 文件夹操作 -------------------------

    def create_folder(self, new_folder_name: str, parent_folder_identifier: str = "/", recursive: bool = False) -> str:
        """
        创建文件夹，返回新文件夹标识符。

        recursive 为 True 时 new_folder_name 可含多级（"a/b/c"），缺失的中间文件夹会一并创建。
        """
        parent = canonical_folder(parent_folder_identifier)
        segments = [s for s in new_folder_name.split("/") if s] if recursive else [new_folder_name]
        if not segments:
            raise InvalidFileNameError(f'Folder name "{new_folder_name}" is invalid.')
        folder = parent
        for index, segment in enumerate(segments):
            folder = join(folder, sanitize_file_name(segment), True)
            if index < len(segments) - 1 and self.folder_exists(folder):
                continue
            self.client.create_directory(folder)
        self._refresh(parent)
        return folder

    def rename_folder(self, folder: str, new_name: str) -> dict[str, str]:
        """重命名文件夹，返回所有受影响资源的 {旧标识符: 新标识符}。"""
        folder = canonical_folder(folder)
        parent = parent_folder(folder)
        new_folder = join(parent, sanitize_file_name(new_name), True)
        identifier_map = build_identifier_map(self.client, folder, new_folder)
        self.client.rename_directory(folder, new_folder)
        self.cache.invalidate_tree(folder)
        self._refresh(parent)
        return identifier_map

    def delete_folder(self, folder: str, delete_recursively: bool = False) -> bool:
        folder = canonical_folder(folder)
        parent = parent_folder(folder)
        try:
            self.client.delete_directory(folder, delete_recursively)
        finally:
            # 失败时也可能已删除部分文件
            self.cache.invalidate_tree(folder)
            self.cache.invalidate(parent)
        self._refresh(parent)
        return True

    def move_folder_within_storage(self, source_folder: str, target_folder: str, new_folder_name: str) -> dict[str, str]:
        source = canonical_folder(source_folder)
        target_folder = canonical_folder(target_folder)
        new_folder = join(target_folder, sanitize_file_name(new_folder_name), True)
        identifier_map = build_identifier_map(self.client, source, new_folder)
        self.client.move_directory(source, new_folder)
        self.cache.invalidate_tree(source)
        self._refresh(parent_folder(source))
        self._refresh(target_folder)
        return identifier_map

    def copy_folder_within_storage(self, source_folder: str, target_folder: str, new_folder_name: str) -> bool:
        target_folder = canonical_folder(target_folder)
        target = join(target_folder, sanitize_file_name(new_folder_name), True)
        self.client.copy_directory(canonical_folder(source_folder), target)
        self._refresh(target_folder)
        return True

    # ------------------------- 文件操作 -------------------------

    def add_file(self, local_file_path: str, target_folder: str, new_file_name: str = "", remove_original: bool = True) -> str:
        """上传本地文件，返回新文件标识符；remove_original 时上传成功后删除本地文件。"""
        target_folder = canonical_folder(target_folder)
        identifier = join(target_folder, sanitize_file_name(new_file_name or os.path.basename(local_file_path)))
        self.client.upload_file(identifier, local_file_path)
        if remove_original:
            try:
                os.remove(local_file_path)
            except OSError as exc:
                raise LocalResourceError(f'Removing local file "{local_file_path}" failed.') from exc
        self._refresh(target_folder)
        return identifier

    def create_file(self, file_name: str, parent_folder_identifier: str) -> str:
        parent = canonical_folder(parent_folder_identifier)
        identifier = join(parent, sanitize_file_name(file_name))
        self.client.create_file(identifier)
        self._refresh(parent)
        return identifier

    def rename_file(self, file: str, new_name: str) -> str:
        file = canonical_file(file)
        parent = parent_folder(file)
        new_file = join(parent, sanitize_file_name(new_name))
        self.client.rename_file(file, new_file)
        self._refresh(parent)
        return new_file

    def replace_file(self, file: str, local_file_path: str) -> bool:
        file = canonical_file(file)
        self.client.replace_file(file, local_file_path)
        self._refresh(parent_folder(file))
        return True

    def delete_file(self, file: str) -> bool:
        file = canonical_file(file)
        self.client.delete_file(file)
        self._refresh(parent_folder(file))
        return True

    def set_file_contents(self, file: str, contents: bytes | str) -> int:
        """写入文件内容，返回字节数。"""
        file = canonical_file(file)
        written = self.client.set_file_contents(file, contents)
        self._refresh(parent_folder(file))
        return written

    def get_file_contents(self, file: str) -> bytes:
        return self.client.get_file_contents(canonical_file(file))

    def dump_file_contents(self, file: str, stream: IO[bytes]) -> None:
        """把文件内容直接写入 stream（如响应体或标准输出），不经过内存缓冲。"""
        file = canonical_file(file)
        if not self.file_exists(file):
            raise ResourceDoesNotExistError(f'File "{file}" does not exist.')
        self.client.dump_file(file, stream)

    def move_file_within_storage(self, file: str, target_folder: str, new_file_name: str) -> str:
        file = canonical_file(file)
        target_folder = canonical_folder(target_folder)
        target = join(target_folder, sanitize_file_name(new_file_name))
        self.client.move_file(file, target)
        self._refresh(parent_folder(file))
        self._refresh(target_folder)
        return target

    def copy_file_within_storage(self, file: str, target_folder: str, file_name: str) -> str:
        target_folder = canonical_folder(target_folder)
        target = join(target_folder, sanitize_file_name(file_name))
        self.client.copy_file(canonical_file(file), target)
        self._refresh(target_folder)
        return target

    # ------------------------- 本地副本与哈希 -------------------------

    def get_file_for_local_processing(self, file: str, writable: bool = True) -> str:
        """
        下载到本地临时文件并返回路径。

        副本在 close() 时删除；调用方修改副本后需自行 replace_file。
        writable 仅为接口兼容保留，每次调用都会重新下载。
        """
        file = canonical_file(file)
        try:
            fd, path = tempfile.mkstemp(prefix="ftpvfs-", suffix=posixpath.splitext(file)[1])
            os.close(fd)
        except OSError as exc:
            raise LocalResourceError(f'Creating temporary file for "{file}" failed.') from exc
        self._local_copies.append(path)
        try:
            self.client.download_file(file, path)
        except BaseException:
            self._remove_local_copy(path)
            raise
        return path

    def _remove_local_copy(self, path: str) -> None:
        self._local_copies.remove(path)
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)

    @contextlib.contextmanager
    def _local_copy(self, file: str) -> Iterator[str]:
        path = self.get_file_for_local_processing(file, writable=False)
        try:
            yield path
        finally:
            self._remove_local_copy(path)

    def hash(self, file: str, hash_algorithm: str) -> str:
        """
        计算文件摘要。

        :raises ValueError: 算法不在白名单中
        """
        if hash_algorithm not in self.supported_hash_algorithms:
            raise ValueError(f'Hash algorithm "{hash_algorithm}" is not supported.')
        file = canonical_file(file)
        if self.remote_service is not None:
            return self.remote_service.hash_file(file, hash_algorithm)
        with self._local_copy(file) as path:
            return _hash_local_file(path, hash_algorithm)
