"""
ftpvfs CLI：连接信息保存一次到本地，之后所有命令复用；未保存时可用 --host 临时指定（匿名登录）。
"""

from __future__ import annotations

import getpass
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer

from ftpvfs.cli_config import clear_config, load_config, save_config
from ftpvfs.config import DEFAULT_PORT, DEFAULT_TIMEOUT, ConnectionConfig, DriverConfig
from ftpvfs.driver import FTPDriver
from ftpvfs.exceptions import FTPVFSError
from ftpvfs.paths import canonical_file, canonical_folder, name_of, parent_folder


def _format_size(n: int) -> str:
    """将字节数格式化为人类可读（KiB/MiB/GiB）。"""
    if n < 1024:
        return f"{n} B"
    if n < 1024 * 1024:
        return f"{n / 1024:.1f} KiB"
    if n < 1024 * 1024 * 1024:
        return f"{n / (1024 * 1024):.1f} MiB"
    return f"{n / (1024 * 1024 * 1024):.1f} GiB"


def _format_mtime(ts: int) -> str:
    if ts <= 0:
        return "-"
    return datetime.fromtimestamp(ts, timezone.utc).strftime("%Y-%m-%d %H:%M")


app = typer.Typer(
    name="ftpvfs",
    help="FTP storage CLI. Save connection settings once; use them for all commands.",
)

# 可选参数：覆盖保存的 host（未登录时必填）
_host_option: type = Annotated[
    Optional[str],
    typer.Option("--host", "-H", help="Override saved FTP host (or required if not logged in)"),
]


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _get_driver(host: str | None) -> FTPDriver | None:
    cfg = load_config() or {}
    host = host or cfg.get("host")
    if not host:
        return None
    connection = ConnectionConfig(
        host=host,
        port=int(cfg.get("port") or DEFAULT_PORT),
        username=cfg.get("username"),
        password=cfg.get("password"),
        ssl=bool(cfg.get("ssl", False)),
        timeout=DEFAULT_TIMEOUT,
        base_path=cfg.get("base_path") or "/",
    )
    return FTPDriver(DriverConfig(connection=connection))


def _require_driver(host: str | None) -> FTPDriver:
    driver = _get_driver(host)
    if driver is None:
        typer.echo("error: no saved connection. run 'ftpvfs login' or pass --host", err=True)
        raise typer.Exit(1)
    return driver


def _fail(message: object) -> NoReturn:
    typer.echo(f"error: {message}", err=True)
    raise typer.Exit(1)


# ------------------------- login / logout / auth -------------------------


@app.command("login", help="Save connection settings to local config")
def login(
    host: Annotated[Optional[str], typer.Option("--host", "-H", help="FTP host")] = None,
    port: Annotated[int, typer.Option("--port", "-P", help="FTP port")] = DEFAULT_PORT,
    username: Annotated[Optional[str], typer.Option("--username", "-u", help="Username (empty: anonymous)")] = None,
    password: Annotated[Optional[str], typer.Option("--password", "-p", help="Password (unsafe in shell)")] = None,
    ssl: Annotated[bool, typer.Option("--ssl/--no-ssl", help="Use explicit FTPS")] = False,
    base_path: Annotated[str, typer.Option("--base-path", help="Root folder on the server")] = "/",
) -> None:
    host = host or input("Host (e.g. ftp.example.com): ").strip()
    if not host:
        _fail("host required")
    username = username or input("Username (empty for anonymous): ").strip() or None
    if username and password is None:
        password = getpass.getpass("Password: ")
    save_config(host, username, password, port=port, ssl=ssl, base_path=base_path)
    typer.echo("Saved.")


@app.command("logout", help="Clear saved connection settings")
def logout() -> None:
    if clear_config():
        typer.echo("Cleared.")
    else:
        typer.echo("No saved credentials.")


auth_app = typer.Typer(help="Auth subcommands")
app.add_typer(auth_app, name="auth")


@auth_app.command("status", help="Show whether connection settings are saved")
def auth_status() -> None:
    cfg = load_config()
    if not cfg:
        typer.echo("Not logged in.")
        return
    typer.echo(f"host: {cfg['host']}:{cfg.get('port', DEFAULT_PORT)}")
    typer.echo(f"base_path: {cfg.get('base_path', '/')}")
    typer.echo(f"ssl: {'yes' if cfg.get('ssl') else 'no'}")
    typer.echo(f"auth: {'yes' if cfg.get('username') else 'anonymous'}")


# ------------------------- list / ls -------------------------


def _echo_folder(driver: FTPDriver, folder: str, recursive: bool) -> None:
    for entry in driver.fetch_directory_list(folder).values():
        size = "-" if entry.is_directory else _format_size(entry.size)
        typer.echo(f"  {entry.identifier}  {size}  {_format_mtime(entry.mtime)}")
        if recursive and entry.is_directory:
            _echo_folder(driver, entry.identifier, True)


def _cmd_list_impl(folder: str, recursive: bool, host: str | None) -> None:
    driver = _require_driver(host)
    folder = canonical_folder(folder)
    try:
        if not driver.folder_exists(folder):
            _fail(f"not found: {folder}")
        _echo_folder(driver, folder, recursive)
    except FTPVFSError as e:
        _fail(e)
    finally:
        driver.close()


@app.command("list", help="List a folder")
def list_cmd(
    folder: Annotated[str, typer.Argument(help="Remote folder (default: /)")] = "/",
    recursive: Annotated[bool, typer.Option("--recursive", "-r", help="Include subfolders")] = False,
    host: _host_option = None,
) -> None:
    _cmd_list_impl(folder, recursive, host)


@app.command("ls", help="Alias for list")
def ls_cmd(
    folder: Annotated[str, typer.Argument(help="Remote folder (default: /)")] = "/",
    recursive: Annotated[bool, typer.Option("--recursive", "-r", help="Include subfolders")] = False,
    host: _host_option = None,
) -> None:
    _cmd_list_impl(folder, recursive, host)


# ------------------------- download / upload -------------------------


@app.command("download", help="Download a file")
def download_cmd(
    remote_path: Annotated[str, typer.Argument(help="Remote file (e.g. docs/report.pdf)")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Local path (default: same name)")] = None,
    host: _host_option = None,
) -> None:
    remote = canonical_file(remote_path)
    out = output if output is not None else Path(name_of(remote))
    driver = _require_driver(host)
    try:
        if not driver.file_exists(remote):
            _fail(f"not found: {remote}")
        driver.client.download_file(remote, str(out))
    except FTPVFSError as e:
        _fail(e)
    finally:
        driver.close()
    typer.echo(f"Saved to {out}.")


def _upload_tree(driver: FTPDriver, root: Path, folder: str) -> int:
    """递归上传本地目录，返回上传的文件数。"""
    count = 0
    for child in sorted(root.iterdir()):
        if child.is_dir():
            sub = driver.get_folder_in_folder(driver.sanitize_file_name(child.name), folder)
            if not driver.folder_exists(sub):
                sub = driver.create_folder(child.name, folder)
            count += _upload_tree(driver, child, sub)
        elif child.is_file():
            driver.add_file(str(child), folder, child.name, remove_original=False)
            count += 1
    return count


@app.command("upload", help="Upload a file or a folder (folder: upload recursively)")
def upload_cmd(
    path: Annotated[Path, typer.Argument(help="Local file or directory path")],
    folder: Annotated[str, typer.Option("--folder", "-f", help="Remote target folder")] = "/",
    name: Annotated[Optional[str], typer.Option("--name", "-n", help="Remote name (default: local name)")] = None,
    host: _host_option = None,
) -> None:
    if not path.exists():
        _fail(f"not found: {path}")
    driver = _require_driver(host)
    folder = canonical_folder(folder)
    try:
        if path.is_dir():
            target = driver.get_folder_in_folder(driver.sanitize_file_name(name or path.name), folder)
            if not driver.folder_exists(target):
                target = driver.create_folder(name or path.name, folder)
            count = _upload_tree(driver, path, target)
            typer.echo(f"Uploaded {count} file(s) to {target}.")
        else:
            identifier = driver.add_file(str(path), folder, name or path.name, remove_original=False)
            typer.echo(f"Uploaded {identifier}.")
    except FTPVFSError as e:
        _fail(e)
    finally:
        driver.close()


# ------------------------- mkdir / rm / mv / cp -------------------------


@app.command("mkdir", help="Create a folder (missing parents are created)")
def mkdir_cmd(
    path: Annotated[str, typer.Argument(help="Remote folder path (e.g. docs/2024)")],
    host: _host_option = None,
) -> None:
    driver = _require_driver(host)
    try:
        identifier = driver.create_folder(path.strip("/"), "/", recursive=True)
    except FTPVFSError as e:
        _fail(e)
    finally:
        driver.close()
    typer.echo(f"Created {identifier}.")


@app.command("rm", help="Delete a file or a folder")
def rm_cmd(
    path: Annotated[str, typer.Argument(help="Remote file or folder")],
    recursive: Annotated[bool, typer.Option("--recursive", "-r", help="Delete non-empty folders")] = False,
    host: _host_option = None,
) -> None:
    driver = _require_driver(host)
    try:
        if driver.folder_exists(path):
            driver.delete_folder(path, recursive)
        elif driver.file_exists(path):
            driver.delete_file(path)
        else:
            _fail(f"not found: {path}")
    except (FTPVFSError, ValueError) as e:
        _fail(e)
    finally:
        driver.close()
    typer.echo("Deleted.")


def _transfer(source: str, target: str, host: str | None, move: bool) -> None:
    driver = _require_driver(host)
    target_folder, target_name = parent_folder(target), name_of(target)
    try:
        if driver.folder_exists(source):
            if move:
                result = driver.move_folder_within_storage(source, target_folder, target_name)[canonical_folder(source)]
            else:
                driver.copy_folder_within_storage(source, target_folder, target_name)
                result = driver.get_folder_in_folder(driver.sanitize_file_name(target_name), target_folder)
        elif driver.file_exists(source):
            if move:
                result = driver.move_file_within_storage(source, target_folder, target_name)
            else:
                result = driver.copy_file_within_storage(source, target_folder, target_name)
        else:
            _fail(f"not found: {source}")
    except FTPVFSError as e:
        _fail(e)
    finally:
        driver.close()
    typer.echo(f"{'Moved' if move else 'Copied'} to {result}.")


@app.command("mv", help="Move or rename a file or folder")
def mv_cmd(
    source: Annotated[str, typer.Argument(help="Remote source")],
    target: Annotated[str, typer.Argument(help="Remote target path (including new name)")],
    host: _host_option = None,
) -> None:
    _transfer(source, target, host, move=True)


@app.command("cp", help="Copy a file or folder")
def cp_cmd(
    source: Annotated[str, typer.Argument(help="Remote source")],
    target: Annotated[str, typer.Argument(help="Remote target path (including new name)")],
    host: _host_option = None,
) -> None:
    _transfer(source, target, host, move=False)


# ------------------------- hash -------------------------


@app.command("hash", help="Print a file digest")
def hash_cmd(
    path: Annotated[str, typer.Argument(help="Remote file")],
    algorithm: Annotated[str, typer.Option("--algorithm", "-a", help="sha1 or md5")] = "sha1",
    host: _host_option = None,
) -> None:
    driver = _require_driver(host)
    try:
        digest = driver.hash(path, algorithm)
    except (FTPVFSError, ValueError) as e:
        _fail(e)
    finally:
        driver.close()
    typer.echo(digest)


# ------------------------- main -------------------------


def main() -> None:
    app()


if __name__ == "__main__":
    main()
