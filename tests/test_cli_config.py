"""
CLI 连接配置（cli_config）单元测试。host/账号均从 tests.config 读取。
"""

from __future__ import annotations

from pathlib import Path

import pytest

from ftpvfs.cli_config import clear_config, load_config, save_config

from tests.config import FTP_HOST, FTP_PASSWORD, FTP_USERNAME


@pytest.fixture(autouse=True)
def _patch_config_path(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """将配置路径指向临时目录，避免污染用户 ~/.config/ftpvfs。"""
    config_dir = tmp_path / "ftpvfs"
    config_dir.mkdir(parents=True, exist_ok=True)

    def _config_dir():
        return config_dir

    monkeypatch.setattr("ftpvfs.cli_config._config_dir", _config_dir)


def test_load_config_missing_returns_none() -> None:
    assert load_config() is None


def test_load_config_invalid_json_returns_none(tmp_path: Path) -> None:
    (tmp_path / "ftpvfs" / "config.json").write_text("not json", encoding="utf-8")
    assert load_config() is None


def test_load_config_missing_host_returns_none(tmp_path: Path) -> None:
    (tmp_path / "ftpvfs" / "config.json").write_text('{"username": "u"}', encoding="utf-8")
    assert load_config() is None


def test_save_config_roundtrip() -> None:
    save_config(FTP_HOST, FTP_USERNAME, FTP_PASSWORD, port=2121, ssl=True, base_path="srv/ftp/")
    cfg = load_config()
    assert cfg == {
        "host": FTP_HOST,
        "port": 2121,
        "ssl": True,
        "base_path": "/srv/ftp",
        "username": FTP_USERNAME,
        "password": FTP_PASSWORD,
    }


def test_save_config_strips_slashes_and_keeps_unicode() -> None:
    save_config(f"/{FTP_HOST}/", "你好", "abc123")
    cfg = load_config()
    assert cfg is not None
    assert cfg["host"] == FTP_HOST
    assert cfg["username"] == "你好"


def test_save_config_anonymous() -> None:
    save_config(FTP_HOST)
    cfg = load_config()
    assert cfg is not None
    assert "username" not in cfg
    assert "password" not in cfg
    assert cfg["base_path"] == "/"


def test_clear_config() -> None:
    save_config(FTP_HOST, "u", "p")
    assert clear_config() is True
    assert load_config() is None
    assert clear_config() is False
