from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Iterator

import pytest


@dataclass
class RecordedRequest:
    method: str
    path: str
    headers: dict[str, str]
    body: bytes

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


@dataclass
class StubGraphQLServer:
    """Local HTTP server answering every POST with one configured reply."""

    url: str = ""
    status: int = 200
    body: bytes = b'{"data":null}'
    delay_seconds: float = 0.0
    requests: list[RecordedRequest] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def reply(self, status: int, body: str | bytes | dict[str, Any], *, delay_seconds: float = 0.0) -> None:
        if isinstance(body, dict):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.status = status
        self.body = body
        self.delay_seconds = delay_seconds


def _handler_for(stub: StubGraphQLServer) -> type[BaseHTTPRequestHandler]:
    class _Handler(BaseHTTPRequestHandler):
        def do_POST(self) -> None:  # noqa: N802
            length = int(self.headers.get("Content-Length") or 0)
            raw = self.rfile.read(length) if length else b""
            with stub.lock:
                stub.requests.append(
                    RecordedRequest(
                        method="POST",
                        path=self.path,
                        headers={k.lower(): v for k, v in self.headers.items()},
                        body=raw,
                    )
                )
            if stub.delay_seconds:
                time.sleep(stub.delay_seconds)
            try:
                self.send_response(stub.status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(stub.body)))
                self.end_headers()
                self.wfile.write(stub.body)
            except (BrokenPipeError, ConnectionResetError):
                pass

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            del format, args

    return _Handler


@pytest.fixture
def graphql_server() -> Iterator[StubGraphQLServer]:
    stub = StubGraphQLServer()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _handler_for(stub))
    server.daemon_threads = True
    host, port = server.server_address[:2]
    stub.url = f"http://{host}:{port}/graphql"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield stub
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Point credentials and endpoint config away from the real home dir."""
    auth_file = tmp_path / "auth.json"
    monkeypatch.setenv("LINCTL_AUTH_FILE", str(auth_file))
    monkeypatch.delenv("LINEAR_API_KEY", raising=False)
    monkeypatch.delenv("LINCTL_ENDPOINT", raising=False)
    monkeypatch.delenv("LINCTL_TIMEOUT_SECONDS", raising=False)
    return auth_file
