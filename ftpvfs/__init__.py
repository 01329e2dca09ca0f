"""FTP 虚拟文件存储驱动：把 FTP 服务器以文件/文件夹树的形式提供给宿主存储层"""

from ftpvfs.cache import DirectoryCache
from ftpvfs.client import FTPClient
from ftpvfs.config import ConnectionConfig, DriverConfig
from ftpvfs.driver import FTPDriver, sanitize_file_name
from ftpvfs.exceptions import (
    ExistingResourceError,
    FTPConnectionError,
    FTPVFSError,
    InvalidAttributeError,
    InvalidConfigurationError,
    InvalidDirectoryError,
    InvalidFileNameError,
    LocalResourceError,
    RemoteServiceError,
    ResourceDoesNotExistError,
    UnsupportedFormatError,
)
from ftpvfs.identifier_map import build_identifier_map
from ftpvfs.models import ParsedLine, Permissions, ResourceEntry
from ftpvfs.parsers import ParserChain
from ftpvfs.remote_service import RemoteHashService

__all__ = [
    "FTPDriver",
    "FTPClient",
    "ConnectionConfig",
    "DriverConfig",
    "DirectoryCache",
    "ParserChain",
    "RemoteHashService",
    "build_identifier_map",
    "sanitize_file_name",
    "ParsedLine",
    "Permissions",
    "ResourceEntry",
    "FTPVFSError",
    "InvalidConfigurationError",
    "FTPConnectionError",
    "InvalidDirectoryError",
    "RemoteServiceError",
    "ExistingResourceError",
    "ResourceDoesNotExistError",
    "InvalidAttributeError",
    "UnsupportedFormatError",
    "LocalResourceError",
    "InvalidFileNameError",
]
