from __future__ import annotations

import asyncio
import base64
from pathlib import Path

import h11
import pytest

from asyshare.common.config import ServerConfig
from asyshare.fileserver import FileServer


class Reply:
    def __init__(self, status: int, headers: dict, body: bytes) -> None:
        self.status = status
        self.headers = headers
        self.body = body


async def http_request(port: int, method: str, path: str, headers=None, body: bytes = b"", ssl_ctx=None) -> Reply:
    """Send one request with Connection: close and collect the whole response."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port, ssl=ssl_ctx)
    conn = h11.Connection(h11.CLIENT)
    req_headers = [("Host", "127.0.0.1"), ("Connection", "close"), ("Content-Length", str(len(body)))]
    req_headers.extend(headers or [])
    writer.write(conn.send(h11.Request(method=method, target=path, headers=req_headers)))
    if body:
        writer.write(conn.send(h11.Data(data=body)))
    writer.write(conn.send(h11.EndOfMessage()))
    await writer.drain()

    response = None
    data = b""
    try:
        while True:
            event = conn.next_event()
            if event is h11.NEED_DATA:
                conn.receive_data(await reader.read(65536))
                continue
            if type(event) is h11.Response:
                response = event
            elif type(event) is h11.Data:
                data += event.data
            elif type(event) in (h11.EndOfMessage, h11.ConnectionClosed):
                break
    finally:
        writer.close()
    assert response is not None
    hdrs = {k.decode("ascii").lower(): v.decode("latin-1") for k, v in response.headers}
    return Reply(response.status_code, hdrs, data)


def basic_auth_header(username: str, password: str):
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return ("Authorization", f"Basic {token}")


def multipart_body(filename: str, content: bytes, field: str = "file", boundary: str = "----asyshareboundary"):
    body = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{field}"; filename="{filename}"\r\n'
        "Content-Type: application/octet-stream\r\n"
        "\r\n"
    ).encode("utf-8") + content + f"\r\n--{boundary}--\r\n".encode("ascii")
    return body, f"multipart/form-data; boundary={boundary}"


def run_with_server(config: ServerConfig, scenario):
    """Start a FileServer for config, await scenario(port) and stop the server again."""
    async def runner():
        async with FileServer(config) as server:
            return await scenario(server.sock_port)
    return asyncio.run(runner())


@pytest.fixture
def webroot(tmp_path: Path) -> Path:
    root = tmp_path / "root"
    root.mkdir()
    (root / "docs").mkdir()
    (root / "docs" / "readme.txt").write_text("hello docs")
    (root / "Banana.txt").write_text("banana")
    (root / "apple").mkdir()
    (root / "data.bin").write_bytes(bytes(range(256)) * 1024)
    return root


@pytest.fixture
def plain_config(webroot: Path) -> ServerConfig:
    return ServerConfig(str(webroot), port=0, host="127.0.0.1")
