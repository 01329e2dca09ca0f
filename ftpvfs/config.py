"""
连接与驱动配置。

from_dict 接受宿主层的存储配置字典（键名沿用 host/port/username/password/ssl/
timeout/passiveMode/transferMode/basePath/publicUrl 等），并做与原驱动一致的归一化：
- host 做 URL 解码并去掉首尾斜杠
- port/timeout 为空或 0 时回退为 21/90
- 旧键 mode == "passiv" 在未设置 passiveMode 时映射为被动模式
- basePath 统一为以 / 开头、不以 / 结尾（根为 "/"）
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import unquote

from ftpvfs.exceptions import InvalidConfigurationError

TRANSFER_BINARY = "binary"
TRANSFER_ASCII = "ascii"

DEFAULT_PORT = 21
DEFAULT_TIMEOUT = 90
DEFAULT_REMOTE_SERVICE_FILE_NAME = "/.FtpVfsRemoteService.php"
DEFAULT_HASH_ALGORITHMS = ("sha1", "md5")


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def normalize_base_path(base_path: str | None) -> str:
    return "/" + (base_path or "").strip("/")


@dataclass(frozen=True)
class ConnectionConfig:
    host: str
    port: int = DEFAULT_PORT
    username: str | None = None
    password: str | None = None
    ssl: bool = False
    timeout: float = DEFAULT_TIMEOUT
    passive_mode: bool = True
    transfer_mode: str = TRANSFER_BINARY
    base_path: str = "/"

    def __post_init__(self) -> None:
        if not self.host:
            raise InvalidConfigurationError("FTP host must not be empty.")
        if self.transfer_mode not in (TRANSFER_BINARY, TRANSFER_ASCII):
            raise InvalidConfigurationError(f'Unknown transfer mode "{self.transfer_mode}".')
        object.__setattr__(self, "base_path", normalize_base_path(self.base_path))

    @classmethod
    def from_dict(cls, settings: Mapping[str, Any]) -> ConnectionConfig:
        if "passiveMode" in settings:
            passive_mode = _as_bool(settings["passiveMode"])
        elif "mode" in settings:
            passive_mode = settings["mode"] == "passiv"
        else:
            passive_mode = True
        transfer_mode = str(settings.get("transferMode") or TRANSFER_BINARY).lower()
        return cls(
            host=unquote(str(settings.get("host") or "").strip("/")),
            port=int(settings.get("port") or 0) or DEFAULT_PORT,
            username=settings.get("username") or None,
            password=settings.get("password"),
            ssl=_as_bool(settings.get("ssl", False)),
            timeout=float(settings.get("timeout") or 0) or DEFAULT_TIMEOUT,
            passive_mode=passive_mode,
            transfer_mode=transfer_mode,
            base_path=str(settings.get("basePath") or ""),
        )


@dataclass(frozen=True)
class DriverConfig:
    """
    驱动配置。

    :param exact_modification_time: 为 True 时对每个条目发 MDTM 获取精确修改时间（更准但更慢）
    :param remote_service: 启用远程哈希服务（仅在存储可写时生效）
    :param remote_service_autodeploy: 远程服务应答异常时是否自动重新部署端点脚本并重试一次
    :param hash_algorithms: 允许的哈希算法白名单
    """

    connection: ConnectionConfig
    public_url: str = ""
    exact_modification_time: bool = False
    remote_service: bool = False
    remote_service_encryption_key: str = ""
    remote_service_file_name: str = DEFAULT_REMOTE_SERVICE_FILE_NAME
    remote_service_additional_headers: str = ""
    remote_service_autodeploy: bool = True
    hash_algorithms: tuple[str, ...] = DEFAULT_HASH_ALGORITHMS
    writable: bool = True
    default_folder: str = "/user_upload/"

    def __post_init__(self) -> None:
        unknown = [a for a in self.hash_algorithms if a not in hashlib.algorithms_guaranteed]
        if unknown:
            raise InvalidConfigurationError(f"Unsupported hash algorithms: {', '.join(unknown)}")
        if self.remote_service and not self.remote_service_encryption_key:
            raise InvalidConfigurationError("remote_service requires an encryption key.")
        object.__setattr__(self, "public_url", self.public_url.rstrip("/"))
        object.__setattr__(self, "remote_service_file_name", "/" + self.remote_service_file_name.strip().lstrip("/"))

    @property
    def remote_service_secret(self) -> str:
        """发送给远程服务的共享密钥：配置密钥的 md5。"""
        return hashlib.md5(self.remote_service_encryption_key.encode("utf-8")).hexdigest()

    @property
    def remote_service_headers(self) -> dict[str, str]:
        """解析 "Name: value; Name2: value2" 形式的附加请求头。"""
        headers: dict[str, str] = {}
        for part in self.remote_service_additional_headers.split(";"):
            name, sep, value = part.partition(":")
            if sep and name.strip():
                headers[name.strip()] = value.strip()
        return headers

    @classmethod
    def from_dict(cls, settings: Mapping[str, Any]) -> DriverConfig:
        remote = settings.get("remoteService") or {}
        algorithms = settings.get("hashAlgorithms") or DEFAULT_HASH_ALGORITHMS
        return cls(
            connection=ConnectionConfig.from_dict(settings),
            public_url=str(settings.get("publicUrl") or "").strip("/"),
            exact_modification_time=_as_bool(settings.get("exactModificationTime", False)),
            remote_service=_as_bool(remote.get("enable", False)),
            remote_service_encryption_key=str(remote.get("encryptionKey") or ""),
            remote_service_file_name=str(remote.get("fileName") or DEFAULT_REMOTE_SERVICE_FILE_NAME),
            remote_service_additional_headers=str(remote.get("additionalHeaders") or ""),
            remote_service_autodeploy=_as_bool(remote.get("autodeploy", True)),
            hash_algorithms=tuple(a.lower() for a in algorithms),
            writable=_as_bool(settings.get("writable", True)),
            default_folder=str(settings.get("defaultFolder") or "/user_upload/"),
        )
