"""Platform-specific archive extraction.

The ``.apks`` container bundletool produces is a plain zip. Extraction
goes through whatever the running system offers natively: PowerShell's
.NET ZipFile APIs on Windows, ``unzip`` elsewhere, and Python's own
zipfile module when no ``unzip`` binary is installed. The choice is made
once by select_extractor() and the instance is reused for the run.

Every implementation overwrites existing files at the destination.
"""

from __future__ import annotations

import shutil
import subprocess
import sys
import zipfile
import zlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from apkgen.errors import ExtractError


class Extractor(ABC):
    """Extract a whole zip archive, or a single named entry, into a directory."""

    name: str = "extractor"

    @abstractmethod
    def extract(self, container: Path, dest_dir: Path, entry: str | None = None) -> Path:
        """Extract ``entry`` (or everything) from ``container`` into ``dest_dir``.

        Returns:
            Path of the extracted entry, or ``dest_dir`` for a full extraction.

        Raises:
            ExtractError: If the container is missing or corrupt, the entry
                does not exist, or the underlying tool fails.
        """

    def _check_container(self, container: Path) -> None:
        if not container.is_file():
            raise ExtractError(f"Failed to extract {container}: file not found")


class ZipfileExtractor(Extractor):
    """Pure-Python extraction using the zipfile module."""

    name = "zipfile"

    def extract(self, container: Path, dest_dir: Path, entry: str | None = None) -> Path:
        self._check_container(container)
        dest_dir.mkdir(parents=True, exist_ok=True)

        try:
            with zipfile.ZipFile(container) as zf:
                if entry is None:
                    zf.extractall(dest_dir)
                    return dest_dir
                if entry not in zf.namelist():
                    raise ExtractError(
                        f"Failed to extract {container}: entry '{entry}' not found"
                    )
                return Path(zf.extract(entry, dest_dir))
        except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as exc:
            # A corrupt member may already be partly written.
            if entry is not None:
                (dest_dir / entry).unlink(missing_ok=True)
            raise ExtractError(f"Failed to extract {container}: {exc}") from exc
        except OSError as exc:
            raise ExtractError(f"Failed to extract {container}: {exc}") from exc


class UnzipExtractor(Extractor):
    """Extraction through the ``unzip`` command-line utility."""

    name = "unzip"

    def __init__(self, executable: str = "unzip") -> None:
        self.executable: str = executable

    def command(self, container: Path, dest_dir: Path, entry: str | None = None) -> list[str]:
        command = [self.executable, "-o", "-q", str(container)]
        if entry is not None:
            command.append(entry)
        return command + ["-d", str(dest_dir)]

    def extract(self, container: Path, dest_dir: Path, entry: str | None = None) -> Path:
        self._check_container(container)
        dest_dir.mkdir(parents=True, exist_ok=True)
        _run_tool(self.command(container, dest_dir, entry), container)
        return _verify_output(container, dest_dir, entry)


class PowerShellExtractor(Extractor):
    """Extraction through PowerShell and the .NET System.IO.Compression APIs."""

    name = "powershell"

    def __init__(self, executable: str = "powershell") -> None:
        self.executable: str = executable

    def script(self, container: Path, dest_dir: Path, entry: str | None = None) -> str:
        source = _ps_quote(str(container))

        if entry is None:
            return (
                f"Expand-Archive -LiteralPath {source} "
                f"-DestinationPath {_ps_quote(str(dest_dir))} -Force"
            )

        target = _ps_quote(str(dest_dir / entry))
        wanted = _ps_quote(entry)
        return (
            "$ErrorActionPreference = 'Stop'; "
            "Add-Type -AssemblyName System.IO.Compression.FileSystem; "
            f"$zip = [System.IO.Compression.ZipFile]::OpenRead({source}); "
            "try { "
            f"$entry = $zip.Entries | Where-Object {{ $_.FullName -eq {wanted} }} | Select-Object -First 1; "
            f"if (-not $entry) {{ throw ('entry ' + {wanted} + ' not found') }}; "
            f"[System.IO.Compression.ZipFileExtensions]::ExtractToFile($entry, {target}, $true) "
            "} finally { $zip.Dispose() }"
        )

    def command(self, container: Path, dest_dir: Path, entry: str | None = None) -> list[str]:
        return [
            self.executable,
            "-NoProfile",
            "-NonInteractive",
            "-Command",
            self.script(container, dest_dir, entry),
        ]

    def extract(self, container: Path, dest_dir: Path, entry: str | None = None) -> Path:
        self._check_container(container)
        dest_dir.mkdir(parents=True, exist_ok=True)
        if entry is not None:
            (dest_dir / entry).parent.mkdir(parents=True, exist_ok=True)
        _run_tool(self.command(container, dest_dir, entry), container)
        return _verify_output(container, dest_dir, entry)


def select_extractor(
    platform: str | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> Extractor:
    """Pick the native extraction mechanism for the running system."""
    platform = platform or sys.platform

    if platform.startswith("win"):
        for executable in ("powershell", "pwsh"):
            if which(executable) is not None:
                return PowerShellExtractor(executable)
        return ZipfileExtractor()

    if which("unzip") is not None:
        return UnzipExtractor()
    return ZipfileExtractor()


def _run_tool(command: list[str], container: Path) -> None:
    try:
        result = subprocess.run(command, capture_output=True, text=True)
    except OSError as exc:
        raise ExtractError(f"Failed to extract {container}: {exc}") from exc

    if result.returncode != 0:
        detail = (result.stderr or result.stdout).strip()
        raise ExtractError(
            f"Failed to extract {container}: exit status {result.returncode}: {detail}"
        )


def _verify_output(container: Path, dest_dir: Path, entry: str | None) -> Path:
    if entry is None:
        return dest_dir
    extracted = dest_dir / entry
    if not extracted.exists():
        raise ExtractError(f"Failed to extract {container}: entry '{entry}' not found")
    return extracted


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"
