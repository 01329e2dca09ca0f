"""
FTP 连接管理器（基于标准库 ftplib）。

一个 FTPClient 持有一条控制连接，不可在多个并发操作间共享；并发场景请各自创建实例。
所有路径参数都是相对 base_path 的标识符（如 "/a/b.txt"、"/a/"），发送前统一转换为绝对路径。

覆盖约定：所有可能与已有目标冲突的修改操作都带 overwrite 参数；为 False 且目标存在时，
在发出任何修改命令之前抛出 ExistingResourceError，避免留下半完成的协议状态。
"""

from __future__ import annotations

import contextlib
import ftplib
import logging
import os
import re
import tempfile
from calendar import timegm
from dataclasses import replace
from typing import IO, Any, BinaryIO, Callable, Iterable, Iterator, Union
from urllib.parse import unquote

from ftpvfs.config import TRANSFER_ASCII, ConnectionConfig
from ftpvfs.exceptions import (
    ExistingResourceError,
    FTPConnectionError,
    InvalidAttributeError,
    InvalidConfigurationError,
    InvalidDirectoryError,
    LocalResourceError,
    ResourceDoesNotExistError,
)
from ftpvfs.filters import ListingFilter, default_filters, is_excluded
from ftpvfs.models import ParsedLine
from ftpvfs.parsers import ListingParser, ParserChain
from ftpvfs.paths import canonical_folder, join, name_of, parent_folder

logger = logging.getLogger(__name__)

LocalSource = Union[str, "os.PathLike[str]", BinaryIO]

_MDTM_RE = re.compile(r"^213\s+(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})")


def _natural_key(name: str) -> list[Any]:
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", name)]


def _is_local_path(value: Any) -> bool:
    return isinstance(value, (str, os.PathLike))


class _LocalStream:
    """
    传输中本地一侧的文件对象；读写抛出的 OSError 转为 LocalResourceError，不计入协议错误。
    """

    def __init__(self, fp: IO[bytes], file: str):
        self._fp = fp
        self._file = file

    def _call(self, action: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except OSError as exc:
            raise LocalResourceError(f'{action} local data for "{self._file}" failed: {exc}') from exc

    def read(self, size: int = -1) -> bytes:
        return self._call("Reading", self._fp.read, size)

    def readline(self, size: int = -1) -> bytes:
        return self._call("Reading", self._fp.readline, size)

    def write(self, data: bytes) -> int:
        return self._call("Writing", self._fp.write, data)


class FTPClient:
    """
    FTP 客户端。

    :param config: 连接配置
    :param parsers: 列表行解析器链（ParserChain 或解析器列表）；None 使用默认链
    :param filters: 条目过滤器列表；None 使用默认过滤器（. / .. 与汇总行）
    :param ftp_factory: 创建底层 ftplib.FTP 对象的工厂，默认按 ssl 选择 FTP / FTP_TLS
    """

    MODE_ACTIVE = False
    MODE_PASSIVE = True

    TRANSFER_BLOCK_SIZE = 64 * 1024  # 64 KiB

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        parsers: ParserChain | Iterable[ListingParser] | None = None,
        filters: Iterable[ListingFilter] | None = None,
        ftp_factory: Callable[[], ftplib.FTP] | None = None,
    ):
        self.config = config
        self.base_path = config.base_path
        self.passive_mode = config.passive_mode
        self.parsers = parsers if isinstance(parsers, ParserChain) else ParserChain(parsers)
        self.filters: list[ListingFilter] = list(filters) if filters is not None else default_filters()
        self._ftp_factory = ftp_factory or self._default_ftp_factory
        self._username = config.username
        self._password = config.password
        self._ftp: ftplib.FTP | None = None

    def _default_ftp_factory(self) -> ftplib.FTP:
        return ftplib.FTP_TLS() if self.config.ssl else ftplib.FTP()

    # ------------------------- 连接与会话 -------------------------

    @property
    def is_connected(self) -> bool:
        return self._ftp is not None

    @property
    def ftp(self) -> ftplib.FTP:
        """底层 ftplib 对象；首次访问时自动连接并登录。"""
        if self._ftp is None:
            self.connect()
        if self._ftp is None:
            raise FTPConnectionError(f'Not connected to "{self.config.host}".')
        return self._ftp

    def connect(self, username: str | None = None, password: str | None = None) -> FTPClient:
        """连接并登录；已连接时直接返回。失败抛出 InvalidConfigurationError。"""
        if self._ftp is not None:
            return self
        host, port = self.config.host, self.config.port
        ftp = self._ftp_factory()
        try:
            ftp.connect(host, port, timeout=self.config.timeout)
        except ftplib.all_errors as exc:
            raise InvalidConfigurationError(f'Couldn\'t connect to host "{host}:{port}".') from exc
        self._ftp = ftp
        logger.info("Connected to %s:%s", host, port)
        if username:
            self._username, self._password = username, password
        try:
            self.login(self._username, self._password)
        except InvalidConfigurationError:
            self.close()
            raise
        self.set_passive_mode(self.passive_mode)
        return self

    def login(self, username: str | None = None, password: str | None = None) -> FTPClient:
        """
        登录；未提供用户名时匿名登录。FTPS 下登录后启用数据通道保护（PROT P）。
        尚未连接时等同于 connect(username, password)，只登录一次。
        """
        ftp = self._ftp
        if ftp is None:
            return self.connect(username, password)
        user = unquote(username) if username else "anonymous"
        try:
            ftp.login(user=user, passwd=password or "")
            if self.config.ssl:
                ftp.prot_p()
        except ftplib.all_errors as exc:
            raise InvalidConfigurationError(f'Couldn\'t login with username "{user}".') from exc
        logger.debug("Logged in as %s", user)
        return self

    def disconnect(self) -> FTPClient:
        """发送 QUIT 关闭连接；失败抛出 FTPConnectionError（连接仍会被关闭）。"""
        ftp, self._ftp = self._ftp, None
        if ftp is None:
            return self
        try:
            ftp.quit()
        except ftplib.all_errors as exc:
            ftp.close()
            raise FTPConnectionError("Closing connection failed.") from exc
        logger.info("Disconnected from %s:%s", self.config.host, self.config.port)
        return self

    def close(self) -> None:
        """关闭连接；QUIT 失败时直接关闭套接字（与 ftplib.FTP.__exit__ 行为一致）。"""
        ftp, self._ftp = self._ftp, None
        if ftp is None:
            return
        try:
            ftp.quit()
        except (OSError, EOFError, ftplib.Error):
            logger.debug("QUIT failed, closing socket", exc_info=True)
        finally:
            ftp.close()

    def __enter__(self) -> FTPClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def set_passive_mode(self, passive_mode: bool) -> FTPClient:
        self.passive_mode = bool(passive_mode)
        self.ftp.set_pasv(self.passive_mode)
        return self

    # ------------------------- 路径 -------------------------

    def absolute_path(self, identifier: str) -> str:
        """标识符转服务器绝对路径："/a/b/" -> "{base_path}/a/b"。"""
        path = self.base_path.rstrip("/") + "/" + identifier.strip("/")
        return path.rstrip("/") or "/"

    def _run(self, message: str, func: Callable[..., Any], *args: Any, error: type[Exception] = FTPConnectionError) -> Any:
        try:
            return func(*args)
        except ftplib.all_errors as exc:
            raise error(f"{message}: {exc}") from exc

    # ------------------------- 存在性与元数据 -------------------------

    def resource_exists(self, resource: str) -> bool:
        return self.directory_exists(resource) or self.file_exists(resource)

    def directory_exists(self, directory: str) -> bool:
        ftp = self.ftp
        try:
            ftp.cwd(self.absolute_path(directory))
        except ftplib.error_perm:
            return False
        except ftplib.all_errors as exc:
            raise FTPConnectionError(f'Checking directory "{directory}" failed: {exc}') from exc
        return True

    def _size(self, file: str) -> int | None:
        ftp = self.ftp
        try:
            # SIZE 在 ASCII 模式下常被拒绝
            ftp.voidcmd("TYPE I")
            return ftp.size(self.absolute_path(file))
        except ftplib.error_perm:
            return None
        except ftplib.all_errors as exc:
            raise FTPConnectionError(f'Checking file "{file}" failed: {exc}') from exc

    def file_exists(self, file: str) -> bool:
        return self._size(file) is not None

    def get_file_size(self, file: str) -> int:
        size = self._size(file)
        if size is None:
            raise ResourceDoesNotExistError(f'File "{file}" does not exist.')
        return size

    def get_modification_time(self, resource: str) -> int:
        """MDTM 返回的修改时间（epoch 秒，UTC）。服务器不支持或失败时抛出 FTPConnectionError。"""
        response = self._run(
            f'Getting modification time of resource "{resource}" failed',
            self.ftp.sendcmd,
            f"MDTM {self.absolute_path(resource)}",
        )
        match = _MDTM_RE.match(response)
        if match is None:
            raise FTPConnectionError(f'Unexpected MDTM response for "{resource}": {response}')
        year, month, day, hour, minute, second = (int(g) for g in match.groups())
        return timegm((year, month, day, hour, minute, second))

    # ------------------------- 目录 -------------------------

    def change_directory(self, directory: str) -> FTPClient:
        self._run(f'Changing directory "{directory}" failed', self.ftp.cwd, self.absolute_path(directory), error=InvalidDirectoryError)
        return self

    def change_to_parent_directory(self, directory: str) -> FTPClient:
        # ftplib 对 ".." 发送 CDUP
        self._run(f'Changing to parent directory from "{directory}" failed', self.ftp.cwd, "..", error=InvalidDirectoryError)
        return self

    def create_directory(self, directory: str, overwrite: bool = False) -> FTPClient:
        """创建目录（MKD）；overwrite 为 False 且同名资源存在时，不发 MKD 直接抛出 ExistingResourceError。"""
        if not overwrite and self.resource_exists(directory):
            raise ExistingResourceError(f'Directory "{directory}" already exists.')
        self._run(f'Creating directory "{directory}" failed', self.ftp.mkd, self.absolute_path(directory))
        logger.debug("Created directory %s", directory)
        return self

    def rename_resource(self, source: str, target: str, overwrite: bool = False) -> FTPClient:
        """重命名/移动文件或目录（RNFR/RNTO）。"""
        if not overwrite and self.resource_exists(target):
            raise ExistingResourceError(f'Resource "{target}" already exists.')
        self._run(
            f'Renaming resource "{source}" to "{target}" failed',
            self.ftp.rename,
            self.absolute_path(source),
            self.absolute_path(target),
        )
        logger.debug("Renamed %s -> %s", source, target)
        return self

    rename_directory = rename_resource
    move_directory = rename_resource
    rename_file = rename_resource
    move_file = rename_resource

    def copy_directory(self, source: str, target: str, overwrite: bool = False) -> FTPClient:
        """
        递归复制目录（服务器无原生复制命令）。

        覆盖检查只在顶层调用执行；子目录与文件都是新建的，递归时以 overwrite=True 调用。
        源目录在创建目标之前列出，目标位于源目录内部时也不会把自身复制进去。
        """
        if not self.directory_exists(source):
            raise ResourceDoesNotExistError(f'Directory "{source}" does not exist.')
        if not overwrite and self.resource_exists(target):
            raise ExistingResourceError(f'Directory "{target}" already exists.')
        children = self.fetch_directory_list(source)
        self.create_directory(target, True)
        for entry in children:
            if entry.is_directory:
                self.copy_directory(join(source, entry.name, True), join(target, entry.name, True), True)
            else:
                self.copy_file(join(source, entry.name), join(target, entry.name), True)
        return self

    def delete_directory(self, directory: str, recursively: bool = True) -> FTPClient:
        """
        删除目录：先删除其中的文件，recursively 时递归删除子目录，
        再切换到父目录并只用目录名执行 RMD（部分服务器拒绝完整路径）。
        子目录未删除时最后的 RMD 会失败并抛出 FTPConnectionError。
        """
        name = name_of(directory)
        if not name:
            raise ValueError("Refusing to delete the root directory.")
        for entry in self.fetch_directory_list(directory):
            if not entry.is_directory:
                self.delete_file(join(directory, entry.name))
            elif recursively:
                self.delete_directory(join(directory, entry.name, True), recursively)
        self.change_directory(parent_folder(directory))
        self._run(f'Deleting directory "{directory}" failed', self.ftp.rmd, name)
        logger.debug("Deleted directory %s", directory)
        return self

    # ------------------------- 传输 -------------------------

    def _store(self, target: str, fp: IO[bytes]) -> None:
        command = f"STOR {self.absolute_path(target)}"
        local = _LocalStream(fp, target)
        if self.config.transfer_mode == TRANSFER_ASCII:
            self._run(f'Upload file "{target}" failed', self.ftp.storlines, command, local)
        else:
            self._run(f'Upload file "{target}" failed', self.ftp.storbinary, command, local, self.TRANSFER_BLOCK_SIZE)

    def _retrieve(self, source: str, fp: IO[bytes]) -> None:
        ftp = self.ftp
        command = f"RETR {self.absolute_path(source)}"
        local = _LocalStream(fp, source)
        if self.config.transfer_mode == TRANSFER_ASCII:
            encoding = ftp.encoding
            self._run(f'Download file "{source}" failed', ftp.retrlines, command, lambda line: local.write(line.encode(encoding) + b"\n"))
        else:
            self._run(f'Download file "{source}" failed', ftp.retrbinary, command, local.write, self.TRANSFER_BLOCK_SIZE)

    def upload_file(self, target: str, source: LocalSource, overwrite: bool = False) -> FTPClient:
        """
        上传本地文件到服务器。

        :param target: 远程文件标识符
        :param source: 本地文件路径，或已打开的二进制文件对象（从头上传）
        :param overwrite: 为 False 且目标存在时抛出 ExistingResourceError
        """
        if _is_local_path(source) and not os.path.isfile(source):
            raise ResourceDoesNotExistError(f'File "{source}" does not exist.')
        if not overwrite and self.resource_exists(target):
            raise ExistingResourceError(f'File "{target}" already exists.')
        if _is_local_path(source):
            try:
                fp = open(source, "rb")
            except OSError as exc:
                raise LocalResourceError(f'Opening local file "{source}" failed.') from exc
            with fp:
                self._store(target, fp)
        else:
            source.seek(0)
            self._store(target, source)
        logger.debug("Uploaded %s", target)
        return self

    def download_file(self, source: str, target: LocalSource) -> FTPClient:
        """
        下载远程文件。

        :param source: 远程文件标识符
        :param target: 本地路径（会被创建/覆盖），或已打开的二进制文件对象（下载后回到开头）
        """
        if _is_local_path(target):
            try:
                fp = open(target, "wb")
            except OSError as exc:
                raise LocalResourceError(f'Opening local file "{target}" failed.') from exc
            with fp:
                self._retrieve(source, fp)
        else:
            self._retrieve(source, target)
            target.seek(0)
        logger.debug("Downloaded %s", source)
        return self

    def dump_file(self, source: str, stream: IO[bytes]) -> FTPClient:
        """把远程文件内容写入 stream（如标准输出），不回卷，stream 无需可 seek。"""
        self._retrieve(source, stream)
        logger.debug("Dumped %s", source)
        return self

    @contextlib.contextmanager
    def _staging_buffer(self, file: str) -> Iterator[IO[bytes]]:
        """本地临时缓冲文件；退出时（包括异常）一定被关闭并删除。"""
        try:
            buffer = tempfile.TemporaryFile()
        except OSError as exc:
            raise LocalResourceError(f'Creating temporary file for "{file}" failed.') from exc
        with buffer:
            yield buffer

    def set_file_contents(self, file: str, contents: bytes | str) -> int:
        """覆盖写入文件内容，返回写入的字节数。"""
        data = contents.encode("utf-8") if isinstance(contents, str) else contents
        with self._staging_buffer(file) as buffer:
            try:
                buffer.write(data)
            except OSError as exc:
                raise LocalResourceError(f'Writing temporary file for "{file}" failed.') from exc
            self.upload_file(file, buffer, overwrite=True)
        return len(data)

    def get_file_contents(self, file: str) -> bytes:
        with self._staging_buffer(file) as buffer:
            self.download_file(file, buffer)
            try:
                return buffer.read()
            except OSError as exc:
                raise LocalResourceError(f'Reading temporary file for "{file}" failed.') from exc

    def create_file(self, file: str, overwrite: bool = False) -> FTPClient:
        if not overwrite and self.resource_exists(file):
            raise ExistingResourceError(f'File "{file}" already exists.')
        self.set_file_contents(file, b"")
        return self

    def replace_file(self, target: str, source: LocalSource) -> FTPClient:
        return self.upload_file(target, source, overwrite=True)

    def copy_file(self, source: str, target: str, overwrite: bool = False) -> FTPClient:
        """往返复制：下载到临时缓冲再上传，缓冲在任何情况下都会释放。"""
        if not overwrite and self.resource_exists(target):
            raise ExistingResourceError(f'File "{target}" already exists.')
        with self._staging_buffer(source) as buffer:
            self.download_file(source, buffer)
            self.upload_file(target, buffer, overwrite=True)
        return self

    def delete_file(self, file: str) -> FTPClient:
        self._run(f'Deleting file "{file}" failed', self.ftp.delete, self.absolute_path(file))
        logger.debug("Deleted file %s", file)
        return self

    # ------------------------- 列表 -------------------------

    def _list(self, directory: str, command: str) -> list[str]:
        lines: list[str] = []
        self._run(f'Fetching directory "{directory}" failed', self.ftp.retrlines, command, lines.append)
        return lines

    def fetch_raw_list(self, directory: str) -> list[str]:
        """
        返回目录的原始 LIST 输出行。

        先用 "LIST -a" 以包含隐藏文件；部分服务器对 -a 不返回内容，此时改用不带参数的 LIST。
        """
        self.change_directory(directory)
        lines = self._list(directory, "LIST -a")
        if len(lines) <= 1:
            lines = self._list(directory, "LIST")
        logger.debug("LIST %s returned %d lines", directory, len(lines))
        return lines

    def parse_line(self, line: str) -> ParsedLine | None:
        """对单行执行解析器链与过滤器链；被过滤时返回 None。"""
        entry = self.parsers.parse(line)
        if is_excluded(self.filters, entry, line):
            return None
        if entry.is_directory is None:
            raise InvalidAttributeError(f'FTP resource attribute "is_directory" can not be None: "{line}"')
        if not entry.name:
            raise InvalidAttributeError(f'FTP resource attribute "name" can not be empty: "{line}"')
        return entry

    def fetch_directory_list(self, directory: str) -> list[ParsedLine]:
        """
        列出目录并解析为条目，按名称自然排序（不区分大小写）。

        :raises UnsupportedFormatError: 某行无法被任何解析器识别
        :raises InvalidAttributeError: 某条目缺少类型或名称
        """
        folder = canonical_folder(directory)
        entries = []
        for line in self.fetch_raw_list(folder):
            entry = self.parse_line(line)
            if entry is not None:
                entries.append(replace(entry, path=folder))
        entries.sort(key=lambda e: _natural_key(e.name))
        return entries
