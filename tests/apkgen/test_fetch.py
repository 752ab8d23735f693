"""Tests for the bundletool download: redirects, status handling, cleanup."""

from __future__ import annotations

from io import StringIO
from pathlib import Path
from typing import Any, Iterator

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from rich.console import Console

from apkgen.errors import FetchError
from apkgen.models import Stage, ToolchainSettings
from toolchain.fetch import download_with_redirects, ensure_bundletool

from conftest import JAR_BYTES


class _BrokenResponse(requests.Response):
    """200 response whose body stream dies after the first chunk."""

    def __init__(self, error: BaseException | None = None) -> None:
        super().__init__()
        self.error = error or requests.ConnectionError("connection reset by peer")
        self.status_code = 200
        self.headers = CaseInsensitiveDict({"Content-Length": "1000"})

    def iter_content(self, chunk_size: int = 1, decode_unicode: bool = False) -> Iterator[bytes]:
        yield b"partial-bytes"
        raise self.error

    def close(self) -> None:
        pass


class _BrokenSession:
    def __init__(self, error: BaseException | None = None) -> None:
        self.error = error

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return _BrokenResponse(self.error)

    def close(self) -> None:
        pass


class TestDownloadWithRedirects:
    """Test redirect following and the no-partial-file guarantee."""

    def test_direct_download(self, http_server: str, tmp_path: Path) -> None:
        dest = tmp_path / "tool.jar"
        result = download_with_redirects(f"{http_server}/jar", dest)
        assert result == dest
        assert dest.read_bytes() == JAR_BYTES

    @pytest.mark.parametrize("hops", [1, 3, 5])
    def test_follows_up_to_five_redirects(self, http_server: str, tmp_path: Path, hops: int) -> None:
        dest = tmp_path / "tool.jar"
        download_with_redirects(f"{http_server}/hop/{hops}", dest, max_redirects=5)
        assert dest.read_bytes() == JAR_BYTES

    def test_six_redirects_exceed_bound(self, http_server: str, tmp_path: Path) -> None:
        dest = tmp_path / "tool.jar"
        with pytest.raises(FetchError, match="more than 5 redirects"):
            download_with_redirects(f"{http_server}/hop/6", dest, max_redirects=5)
        assert not dest.exists()

    def test_redirect_loop_fails(self, http_server: str, tmp_path: Path) -> None:
        dest = tmp_path / "tool.jar"
        with pytest.raises(FetchError):
            download_with_redirects(f"{http_server}/loop", dest)
        assert not dest.exists()

    def test_custom_bound(self, http_server: str, tmp_path: Path) -> None:
        dest = tmp_path / "tool.jar"
        with pytest.raises(FetchError):
            download_with_redirects(f"{http_server}/hop/2", dest, max_redirects=1)

    @pytest.mark.parametrize("status", [404, 500])
    def test_non_200_leaves_no_file(self, http_server: str, tmp_path: Path, status: int) -> None:
        dest = tmp_path / "tool.jar"
        with pytest.raises(FetchError, match=f"status {status}") as exc_info:
            download_with_redirects(f"{http_server}/status/{status}", dest)
        assert exc_info.value.stage == Stage.FETCH
        assert not dest.exists()

    def test_interrupted_body_removes_partial_file(self, tmp_path: Path) -> None:
        dest = tmp_path / "tool.jar"
        with pytest.raises(FetchError, match="connection reset"):
            download_with_redirects(
                "http://example.invalid/tool.jar",
                dest,
                session=_BrokenSession(),  # type: ignore[arg-type]
            )
        assert not dest.exists()

    def test_connection_refused_is_fetch_error(self, tmp_path: Path) -> None:
        dest = tmp_path / "tool.jar"
        with pytest.raises(FetchError):
            download_with_redirects("http://127.0.0.1:9/tool.jar", dest, timeout=2)
        assert not dest.exists()

    def test_progress_output_with_console(self, http_server: str, tmp_path: Path) -> None:
        dest = tmp_path / "tool.jar"
        console = Console(file=StringIO(), width=120)
        download_with_redirects(f"{http_server}/jar", dest, console=console)
        assert dest.read_bytes() == JAR_BYTES


class TestEnsureBundletool:
    """Test fetch-if-missing behaviour."""

    def test_existing_jar_is_reused(self, tmp_path: Path) -> None:
        toolchain = ToolchainSettings(bundletool_url="http://127.0.0.1:9/never-called.jar")
        jar = tmp_path / toolchain.jar_name
        jar.write_bytes(b"cached")

        assert ensure_bundletool(tmp_path, toolchain) == jar
        assert jar.read_bytes() == b"cached"

    def test_missing_jar_is_downloaded(self, http_server: str, tmp_path: Path) -> None:
        toolchain = ToolchainSettings(bundletool_url=f"{http_server}/hop/2")
        work_dir = tmp_path / "nested" / "build"

        jar = ensure_bundletool(work_dir, toolchain)

        assert jar == work_dir / "bundletool-all-1.18.1.jar"
        assert jar.read_bytes() == JAR_BYTES

    def test_failed_download_propagates(self, http_server: str, tmp_path: Path) -> None:
        toolchain = ToolchainSettings(bundletool_url=f"{http_server}/status/404")
        with pytest.raises(FetchError):
            ensure_bundletool(tmp_path, toolchain)
        assert not (tmp_path / toolchain.jar_name).exists()

    def test_interrupted_download_is_not_reused(self, http_server: str, tmp_path: Path) -> None:
        toolchain = ToolchainSettings(bundletool_url=f"{http_server}/jar")
        jar = tmp_path / toolchain.jar_name

        with pytest.raises(KeyboardInterrupt):
            ensure_bundletool(tmp_path, toolchain, session=_BrokenSession(KeyboardInterrupt()))  # type: ignore[arg-type]

        assert not jar.exists()
        assert not (tmp_path / f"{toolchain.jar_name}.part").exists()
        assert ensure_bundletool(tmp_path, toolchain).read_bytes() == JAR_BYTES
