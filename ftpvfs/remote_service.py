"""
远程哈希服务：在服务器端计算文件摘要，避免仅为计算哈希而下载整个文件。

请求以 GET query 发送：action、parameters[...]、encryptionKey（配置密钥的 md5）；
应答为 JSON：{"result": true, "hash": "..."} 或 {"result": false, "message": "..."}。

应答无法解析或端点不可达时，自愈一次：重新部署嵌入当前密钥的端点脚本后重试；
第二次仍失败即抛出 RemoteServiceError。关闭 autodeploy 时端点被视为独立部署的服务，
首次失败即报错。
"""

from __future__ import annotations

import logging
from importlib import resources
from typing import Any

import httpx

from ftpvfs.client import FTPClient
from ftpvfs.config import DriverConfig
from ftpvfs.exceptions import RemoteServiceError

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_PLACEHOLDER = "###ENCRYPTION_KEY###"


def endpoint_template() -> str:
    """随包发布的端点脚本模板（PHP）。"""
    return resources.files("ftpvfs").joinpath("resources/remote_service.php").read_text(encoding="utf-8")


class RemoteHashService:
    """
    :param client: 用于部署端点脚本的 FTP 客户端
    :param url: 端点的完整 URL（public_url + file_name）
    :param secret: 共享密钥（已派生的 md5）
    :param file_name: 端点脚本在存储中的标识符，如 "/.FtpVfsRemoteService.php"
    :param headers: 附加请求头
    :param autodeploy: 应答异常时是否重新部署并重试一次
    :param transport: 可选的 httpx 传输层（测试时注入 httpx.MockTransport）
    """

    def __init__(
        self,
        client: FTPClient,
        url: str,
        secret: str,
        *,
        file_name: str,
        headers: dict[str, str] | None = None,
        autodeploy: bool = True,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        endpoint_source: str | None = None,
    ):
        self.client = client
        self.url = url
        self.secret = secret
        self.file_name = file_name
        self.headers = headers or {}
        self.autodeploy = autodeploy
        self.timeout = timeout
        self._transport = transport
        self._endpoint_source = endpoint_source
        self._http: httpx.Client | None = None

    @classmethod
    def from_config(cls, client: FTPClient, config: DriverConfig, **kwargs: Any) -> RemoteHashService:
        return cls(
            client,
            config.public_url + config.remote_service_file_name,
            config.remote_service_secret,
            file_name=config.remote_service_file_name,
            headers=config.remote_service_headers,
            autodeploy=config.remote_service_autodeploy,
            timeout=config.connection.timeout,
            **kwargs,
        )

    def _get_client(self) -> httpx.Client:
        if self._http is None or self._http.is_closed:
            self._http = httpx.Client(
                headers=self.headers,
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._http

    def close(self) -> None:
        """关闭底层 HTTP 客户端。"""
        if self._http and not self._http.is_closed:
            self._http.close()
            self._http = None

    def __enter__(self) -> RemoteHashService:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def deploy(self) -> None:
        """上传嵌入当前密钥的端点脚本（覆盖已有文件）。"""
        source = self._endpoint_source if self._endpoint_source is not None else endpoint_template()
        self.client.set_file_contents(self.file_name, source.replace(ENCRYPTION_KEY_PLACEHOLDER, self.secret))
        logger.info("Deployed remote service endpoint to %s", self.file_name)

    def _request(self, query: dict[str, str]) -> dict[str, Any] | None:
        """发送一次请求；不可达或应答格式不对时返回 None。"""
        try:
            r = self._get_client().get(self.url, params=query)
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Remote service request to %s failed: %s", self.url, exc)
            return None
        if not isinstance(data, dict) or "result" not in data:
            logger.warning("Remote service at %s returned a malformed response", self.url)
            return None
        return data

    def send(self, action: str, parameters: dict[str, str]) -> dict[str, Any]:
        """
        调用远程服务动作，返回 result 为真的应答。

        :raises RemoteServiceError: 自愈后仍无法通信，或服务返回 result=false
        """
        query = {"action": action, "encryptionKey": self.secret}
        query.update({f"parameters[{key}]": value for key, value in parameters.items()})
        response = self._request(query)
        if response is None and self.autodeploy:
            self.deploy()
            response = self._request(query)
        if response is None:
            raise RemoteServiceError("Remote service communication failed.")
        if not response["result"]:
            raise RemoteServiceError(str(response.get("message") or f'Remote service action "{action}" failed.'))
        return response

    def hash_file(self, identifier: str, algorithm: str) -> str:
        response = self.send("hashFile", {"fileIdentifier": identifier, "hashAlgorithm": algorithm})
        digest = response.get("hash")
        if not isinstance(digest, str) or not digest:
            raise RemoteServiceError(f'Remote service returned no hash for "{identifier}".')
        return digest
