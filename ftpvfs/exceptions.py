"""
ftpvfs 异常体系。

所有异常均继承 FTPVFSError，调用方可按类别区分：
- 配置错误（无法连接/登录，致命，不重试）
- 连接错误（单条协议命令失败，由调用方决定跳过或中止）
- 目标已存在 / 源不存在
- 列表行格式不支持、条目缺少必需属性
- 本地临时文件读写失败（区分「本机磁盘」与「远端服务器」）
"""

from __future__ import annotations


class FTPVFSError(Exception):
    """ftpvfs 所有异常的基类。"""


class InvalidConfigurationError(FTPVFSError):
    """无法连接主机或登录失败，或配置本身无效。"""


class FTPConnectionError(FTPVFSError):
    """某条 FTP 命令执行失败（含超时）。"""


class InvalidDirectoryError(FTPConnectionError):
    """切换工作目录失败。"""


class RemoteServiceError(FTPConnectionError):
    """远程哈希服务在自愈重试后仍失败，或明确返回 result=false。"""


class ExistingResourceError(FTPVFSError):
    """目标已存在且不允许覆盖。"""


class ResourceDoesNotExistError(FTPVFSError):
    """所需的源文件或目录不存在（本地或远端）。"""


class InvalidAttributeError(FTPVFSError):
    """解析出的条目缺少 is_directory 或 name。"""


class UnsupportedFormatError(FTPVFSError):
    """没有任何解析器能识别某一行列表输出。"""

    def __init__(self, line: str):
        super().__init__(f'FTP listing format not supported: "{line}"')
        self.line = line


class LocalResourceError(FTPVFSError):
    """本地临时文件写入或读取失败。"""


class InvalidFileNameError(FTPVFSError):
    """文件名清理后为空。"""
