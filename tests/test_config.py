"""
连接与驱动配置单元测试：from_dict 归一化与校验。
"""

from __future__ import annotations

import hashlib

import pytest

from ftpvfs.config import (
    DEFAULT_HASH_ALGORITHMS,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    TRANSFER_ASCII,
    ConnectionConfig,
    DriverConfig,
)
from ftpvfs.exceptions import InvalidConfigurationError

from tests.config import FTP_HOST, REMOTE_SERVICE_KEY


def test_connection_from_dict_normalizes() -> None:
    config = ConnectionConfig.from_dict(
        {
            "host": "ftp%2Eexample.com/",
            "port": "",
            "username": "user",
            "password": "pw",
            "ssl": "1",
            "timeout": 0,
            "transferMode": "ASCII",
            "basePath": "srv/ftp/",
        }
    )
    assert config.host == FTP_HOST
    assert config.port == DEFAULT_PORT
    assert config.timeout == DEFAULT_TIMEOUT
    assert config.ssl is True
    assert config.transfer_mode == TRANSFER_ASCII
    assert config.base_path == "/srv/ftp"
    assert config.passive_mode is True


@pytest.mark.parametrize(
    "settings, expected",
    [
        ({"host": FTP_HOST, "mode": "passiv"}, True),
        ({"host": FTP_HOST, "mode": "activ"}, False),
        ({"host": FTP_HOST, "passiveMode": False, "mode": "passiv"}, False),
        ({"host": FTP_HOST, "passiveMode": "true"}, True),
    ],
)
def test_passive_mode_keys(settings: dict, expected: bool) -> None:
    assert ConnectionConfig.from_dict(settings).passive_mode is expected


def test_connection_validation() -> None:
    with pytest.raises(InvalidConfigurationError):
        ConnectionConfig(host="")
    with pytest.raises(InvalidConfigurationError):
        ConnectionConfig(host=FTP_HOST, transfer_mode="ebcdic")
    assert ConnectionConfig(host=FTP_HOST).base_path == "/"


def test_driver_from_dict() -> None:
    config = DriverConfig.from_dict(
        {
            "host": FTP_HOST,
            "publicUrl": "https://files.example.com/",
            "exactModificationTime": "1",
            "hashAlgorithms": ["SHA1"],
            "remoteService": {
                "enable": True,
                "encryptionKey": REMOTE_SERVICE_KEY,
                "fileName": "hash.php",
                "additionalHeaders": "Authorization: Basic abc; X-Env: prod",
                "autodeploy": False,
            },
        }
    )
    assert config.connection.host == FTP_HOST
    assert config.public_url == "https://files.example.com"
    assert config.exact_modification_time is True
    assert config.hash_algorithms == ("sha1",)
    assert config.remote_service is True
    assert config.remote_service_file_name == "/hash.php"
    assert config.remote_service_autodeploy is False
    assert config.remote_service_headers == {"Authorization": "Basic abc", "X-Env": "prod"}
    assert config.remote_service_secret == hashlib.md5(REMOTE_SERVICE_KEY.encode("utf-8")).hexdigest()


def test_driver_defaults() -> None:
    config = DriverConfig.from_dict({"host": FTP_HOST})
    assert config.hash_algorithms == DEFAULT_HASH_ALGORITHMS
    assert config.remote_service is False
    assert config.writable is True
    assert config.default_folder == "/user_upload/"
    assert config.remote_service_headers == {}


def test_driver_validation() -> None:
    connection = ConnectionConfig(host=FTP_HOST)
    with pytest.raises(InvalidConfigurationError):
        DriverConfig(connection=connection, hash_algorithms=("sha1", "crc32"))
    with pytest.raises(InvalidConfigurationError):
        DriverConfig(connection=connection, remote_service=True)
