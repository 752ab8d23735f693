"""bundletool download with bounded redirect following.

The jar is fetched once per work directory and reused on later runs;
presence of the file is the only check, so the body is written to a
``.part`` sibling and only renamed onto the jar once complete.
Redirects are followed by hand so the bound is explicit and the error
names it.
"""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urljoin

import requests
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from apkgen.errors import FetchError
from apkgen.models import ToolchainSettings

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
CHUNK_SIZE = 1024 * 64


def download_with_redirects(
    url: str,
    dest: Path,
    max_redirects: int = 5,
    timeout: float = 60,
    session: requests.Session | None = None,
    console: Console | None = None,
) -> Path:
    """Download ``url`` to ``dest``, following at most ``max_redirects`` hops.

    Args:
        url: Initial URL to request.
        dest: File to write the response body to.
        max_redirects: Number of redirect responses tolerated before giving up.
        timeout: Per-request connect/read timeout in seconds.
        session: Optional requests session (a fresh one is used otherwise).
        console: Optional console for a progress bar.

    Returns:
        ``dest``, fully written.

    Raises:
        FetchError: On a non-200 final status, too many redirects, or any
            network or I/O failure. ``dest`` is only created once the whole
            body has arrived.
    """
    http = session or requests.Session()
    current = url
    redirects = 0
    partial = dest.with_suffix(dest.suffix + ".part")

    try:
        while True:
            resp = http.get(current, stream=True, allow_redirects=False, timeout=timeout)
            location = resp.headers.get("Location")
            if resp.status_code in REDIRECT_STATUSES and location:
                resp.close()
                redirects += 1
                if redirects > max_redirects:
                    raise FetchError(
                        f"Download failed: more than {max_redirects} redirects from {url}"
                    )
                current = urljoin(current, location)
                continue

            if resp.status_code != 200:
                resp.close()
                raise FetchError(f"Download failed (status {resp.status_code})")

            with resp:
                _stream_to_file(resp, partial, console)
            partial.replace(dest)
            return dest
    except (requests.RequestException, OSError) as exc:
        raise FetchError(f"Download of {dest.name} failed: {exc}") from exc
    finally:
        _discard(partial)
        if session is None:
            http.close()


def ensure_bundletool(
    work_dir: Path,
    toolchain: ToolchainSettings,
    console: Console | None = None,
    session: requests.Session | None = None,
) -> Path:
    """Return the bundletool jar in ``work_dir``, downloading it if absent."""
    jar_path = work_dir / toolchain.jar_name

    if jar_path.exists():
        if console is not None:
            console.print(f"[green]Found {toolchain.jar_name}[/green]")
        return jar_path

    if console is not None:
        console.print(f"[cyan]Downloading bundletool {toolchain.bundletool_version} to {work_dir}...[/cyan]")

    work_dir.mkdir(parents=True, exist_ok=True)
    download_with_redirects(
        toolchain.download_url,
        jar_path,
        max_redirects=toolchain.max_redirects,
        timeout=toolchain.download_timeout,
        session=session,
        console=console,
    )

    if console is not None:
        console.print("[green]bundletool downloaded[/green]")
    return jar_path


def _stream_to_file(resp: requests.Response, dest: Path, console: Console | None) -> None:
    total = int(resp.headers.get("Content-Length") or 0) or None

    with open(dest, "wb") as f:
        if console is None:
            for chunk in resp.iter_content(CHUNK_SIZE):
                f.write(chunk)
            return

        columns = (
            TextColumn("[cyan]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
        )
        with Progress(*columns, console=console, transient=True) as progress:
            task = progress.add_task(dest.name, total=total)
            for chunk in resp.iter_content(CHUNK_SIZE):
                f.write(chunk)
                progress.update(task, advance=len(chunk))


def _discard(path: Path) -> None:
    path.unlink(missing_ok=True)
