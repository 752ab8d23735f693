"""Shared fixtures: a local HTTP server and stand-ins for keytool/bundletool."""

from __future__ import annotations

import shutil
import subprocess
import threading
import zipfile
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Iterator

import pytest

JAR_BYTES = b"PK\x03\x04 fake bundletool jar " * 64
APK_BYTES = b"PK\x03\x04 fake universal apk payload " * 32


class _ArtifactHandler(BaseHTTPRequestHandler):
    """Serves the jar behind configurable redirect chains.

    /jar            200 with JAR_BYTES
    /hop/<n>        redirects n times (relative Location), then serves the jar
    /loop           redirects to itself forever
    /status/<code>  responds with the given status and a short body
    """

    def do_GET(self) -> None:
        parts = self.path.strip("/").split("/")

        if parts == ["jar"]:
            self._send(200, JAR_BYTES)
        elif parts[0] == "hop" and len(parts) == 2:
            remaining = int(parts[1])
            if remaining == 0:
                self._send(200, JAR_BYTES)
            else:
                self._redirect(f"/hop/{remaining - 1}")
        elif parts == ["loop"]:
            self._redirect("/loop")
        elif parts[0] == "status" and len(parts) == 2:
            self._send(int(parts[1]), b"nope")
        else:
            self._send(404, b"not found")

    def _send(self, status: int, body: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-Type", "application/octet-stream")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _redirect(self, location: str) -> None:
        self.send_response(302)
        self.send_header("Location", location)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format: str, *args: Any) -> None:
        pass


@pytest.fixture
def http_server() -> Iterator[str]:
    """Run the artifact server on an ephemeral port and yield its base URL."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _ArtifactHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    try:
        yield f"http://{host}:{port}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


class FakeTools:
    """Replaces keytool and ``java -jar bundletool`` behind subprocess.run.

    Any other command is passed to the real subprocess.run, so archive
    utilities such as unzip still execute for real.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.keytool_available: bool = True
        self.keytool_exit_code: int = 0
        self.build_exit_code: int = 0
        self.apk_bytes: bytes = APK_BYTES
        self._real_run = subprocess.run
        self._real_which = shutil.which

    def which(self, name: str, *args: Any, **kwargs: Any) -> str | None:
        if name == "keytool":
            return "/usr/bin/keytool" if self.keytool_available else None
        return self._real_which(name, *args, **kwargs)

    def run(self, command: list[str], *args: Any, **kwargs: Any) -> subprocess.CompletedProcess:
        if command and command[0] == "keytool":
            self.calls.append(list(command))
            return self._keytool(command)
        if "build-apks" in command:
            self.calls.append(list(command))
            return self._bundletool(command)
        return self._real_run(command, *args, **kwargs)

    @property
    def keytool_calls(self) -> list[list[str]]:
        return [c for c in self.calls if c[0] == "keytool"]

    @property
    def build_calls(self) -> list[list[str]]:
        return [c for c in self.calls if "build-apks" in c]

    def _keytool(self, command: list[str]) -> subprocess.CompletedProcess:
        if self.keytool_exit_code != 0:
            return subprocess.CompletedProcess(
                command, self.keytool_exit_code, stdout="", stderr="keytool error: boom"
            )
        keystore = Path(command[command.index("-keystore") + 1])
        keystore.write_bytes(b"fake keystore")
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    def _bundletool(self, command: list[str]) -> subprocess.CompletedProcess:
        if self.build_exit_code != 0:
            return subprocess.CompletedProcess(command, self.build_exit_code)
        output = next(arg.split("=", 1)[1] for arg in command if arg.startswith("--output="))
        with zipfile.ZipFile(output, "w") as zf:
            zf.writestr("toc.pb", b"table of contents")
            zf.writestr("universal.apk", self.apk_bytes)
        return subprocess.CompletedProcess(command, 0)


@pytest.fixture
def fake_tools(monkeypatch: pytest.MonkeyPatch) -> FakeTools:
    tools = FakeTools()
    monkeypatch.setattr(subprocess, "run", tools.run)
    monkeypatch.setattr(shutil, "which", tools.which)
    return tools
