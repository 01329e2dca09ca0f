"""
远程哈希服务单元测试：通过 httpx.MockTransport 模拟端点，端点脚本部署到 FakeFTP。
"""

from __future__ import annotations

import hashlib

import httpx
import pytest

from ftpvfs.client import FTPClient
from ftpvfs.config import ConnectionConfig, DriverConfig
from ftpvfs.exceptions import RemoteServiceError
from ftpvfs.remote_service import ENCRYPTION_KEY_PLACEHOLDER, RemoteHashService, endpoint_template

from tests.config import PUBLIC_URL, REMOTE_SERVICE_KEY
from tests.fake_ftp import FakeFTP

SECRET = hashlib.md5(REMOTE_SERVICE_KEY.encode("utf-8")).hexdigest()
ENDPOINT_FILE = "/.FtpVfsRemoteService.php"


class Endpoint:
    """按顺序返回预设应答，并记录收到的请求。"""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def _config(connection_config: ConnectionConfig, **kwargs: object) -> DriverConfig:
    return DriverConfig(
        connection=connection_config,
        public_url=PUBLIC_URL + "/",
        remote_service=True,
        remote_service_encryption_key=REMOTE_SERVICE_KEY,
        **kwargs,
    )


def _service(client: FTPClient, config: DriverConfig, endpoint: Endpoint) -> RemoteHashService:
    return RemoteHashService.from_config(client, config, transport=httpx.MockTransport(endpoint))


def test_endpoint_template_has_placeholder() -> None:
    source = endpoint_template()
    assert source.startswith("<?php")
    assert ENCRYPTION_KEY_PLACEHOLDER in source


def test_hash_file_request(client: FTPClient, connection_config: ConnectionConfig) -> None:
    endpoint = Endpoint(httpx.Response(200, json={"result": True, "hash": "abc123"}))
    with _service(client, _config(connection_config), endpoint) as service:
        assert service.hash_file("/docs/a.txt", "sha1") == "abc123"
    request = endpoint.requests[0]
    assert str(request.url).startswith(f"{PUBLIC_URL}{ENDPOINT_FILE}?")
    params = request.url.params
    assert params["action"] == "hashFile"
    assert params["encryptionKey"] == SECRET
    assert params["parameters[fileIdentifier]"] == "/docs/a.txt"
    assert params["parameters[hashAlgorithm]"] == "sha1"


def test_additional_headers_are_sent(client: FTPClient, connection_config: ConnectionConfig) -> None:
    endpoint = Endpoint(httpx.Response(200, json={"result": True, "hash": "x"}))
    config = _config(connection_config, remote_service_additional_headers="X-Token: t1; X-Env: test")
    with _service(client, config, endpoint) as service:
        service.hash_file("/a.txt", "md5")
    assert endpoint.requests[0].headers["X-Token"] == "t1"
    assert endpoint.requests[0].headers["X-Env"] == "test"


def test_self_heal_redeploys_once(client: FTPClient, fake_ftp: FakeFTP, connection_config: ConnectionConfig) -> None:
    """第一次应答不是 JSON 时重新部署端点脚本并重试一次。"""
    endpoint = Endpoint(
        httpx.Response(200, text="<html>not found</html>"),
        httpx.Response(200, json={"result": True, "hash": "healed"}),
    )
    with _service(client, _config(connection_config), endpoint) as service:
        assert service.hash_file("/a.txt", "sha1") == "healed"
    assert len(endpoint.requests) == 2
    deployed = fake_ftp.files[ENDPOINT_FILE].decode("utf-8")
    assert SECRET in deployed
    assert ENCRYPTION_KEY_PLACEHOLDER not in deployed


def test_second_failure_raises(client: FTPClient, fake_ftp: FakeFTP, connection_config: ConnectionConfig) -> None:
    endpoint = Endpoint(httpx.Response(500), httpx.Response(404))
    with _service(client, _config(connection_config), endpoint) as service:
        with pytest.raises(RemoteServiceError):
            service.hash_file("/a.txt", "sha1")
    assert len(endpoint.requests) == 2
    assert ENDPOINT_FILE in fake_ftp.files


def test_autodeploy_disabled_fails_immediately(client: FTPClient, fake_ftp: FakeFTP, connection_config: ConnectionConfig) -> None:
    endpoint = Endpoint(httpx.Response(200, text="garbage"))
    config = _config(connection_config, remote_service_autodeploy=False)
    with _service(client, config, endpoint) as service:
        with pytest.raises(RemoteServiceError):
            service.hash_file("/a.txt", "sha1")
    assert len(endpoint.requests) == 1
    assert ENDPOINT_FILE not in fake_ftp.files


def test_result_false_is_not_retried(client: FTPClient, fake_ftp: FakeFTP, connection_config: ConnectionConfig) -> None:
    endpoint = Endpoint(httpx.Response(200, json={"result": False, "message": "File not found."}))
    with _service(client, _config(connection_config), endpoint) as service:
        with pytest.raises(RemoteServiceError, match="File not found."):
            service.hash_file("/missing.txt", "sha1")
    assert len(endpoint.requests) == 1
    assert ENDPOINT_FILE not in fake_ftp.files


def test_connection_error_triggers_self_heal(client: FTPClient, connection_config: ConnectionConfig) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"result": True, "hash": "ok"})

    service = RemoteHashService.from_config(client, _config(connection_config), transport=httpx.MockTransport(handler))
    try:
        assert service.hash_file("/a.txt", "sha1") == "ok"
    finally:
        service.close()
    assert len(calls) == 2
