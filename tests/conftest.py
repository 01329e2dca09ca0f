"""
pytest 配置与共享 fixture。

所有测试都针对内存中的 FakeFTP（见 tests.fake_ftp），不需要真实服务器。
服务器地址与账号见 tests.config。
"""

from __future__ import annotations

from typing import Iterator

import pytest

from ftpvfs.client import FTPClient
from ftpvfs.config import ConnectionConfig, DriverConfig
from ftpvfs.driver import FTPDriver

from tests.config import FTP_HOST, FTP_PASSWORD, FTP_PORT, FTP_USERNAME
from tests.fake_ftp import FakeFTP


@pytest.fixture
def fake_ftp() -> FakeFTP:
    return FakeFTP()


@pytest.fixture
def connection_config() -> ConnectionConfig:
    return ConnectionConfig(host=FTP_HOST, port=FTP_PORT, username=FTP_USERNAME, password=FTP_PASSWORD)


@pytest.fixture
def driver_config(connection_config: ConnectionConfig) -> DriverConfig:
    return DriverConfig(connection=connection_config)


@pytest.fixture
def client(fake_ftp: FakeFTP, connection_config: ConnectionConfig) -> Iterator[FTPClient]:
    """连接到 fake_ftp 的客户端。"""
    c = FTPClient(connection_config, ftp_factory=lambda: fake_ftp)
    yield c
    c.close()


@pytest.fixture
def driver(fake_ftp: FakeFTP, driver_config: DriverConfig) -> Iterator[FTPDriver]:
    """连接到 fake_ftp 的驱动（默认配置：可写、无远程服务）。"""
    d = FTPDriver(driver_config, ftp_factory=lambda: fake_ftp)
    yield d
    d.close()
