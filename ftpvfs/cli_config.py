"""
CLI 连接配置：本地保存/读取 host、port、username、password、ssl、base_path。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ftpvfs.config import DEFAULT_PORT, normalize_base_path


def _config_dir() -> Path:
    """配置目录：~/.config/ftpvfs（所有平台统一）。"""
    return Path.home() / ".config" / "ftpvfs"


def _config_path() -> Path:
    return _config_dir() / "config.json"


def load_config() -> dict[str, Any] | None:
    """读取本地配置；不存在、不是合法 JSON 或缺少 host 时返回 None。"""
    p = _config_path()
    if not p.exists():
        return None
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict) or not data.get("host"):
        return None
    return data


def save_config(
    host: str,
    username: str | None = None,
    password: str | None = None,
    *,
    port: int = DEFAULT_PORT,
    ssl: bool = False,
    base_path: str = "/",
) -> None:
    """保存连接信息到本地。"""
    p = _config_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    data: dict[str, Any] = {
        "host": host.strip().strip("/"),
        "port": port,
        "ssl": ssl,
        "base_path": normalize_base_path(base_path),
    }
    if username is not None:
        data["username"] = username
    if password is not None:
        data["password"] = password
    p.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def clear_config() -> bool:
    """清除本地配置；存在则删除并返回 True。"""
    p = _config_path()
    if p.exists():
        p.unlink()
        return True
    return False
