"""bundletool build-apks invocation.

bundletool does all of the splitting and signing work; this module only
builds its command line and runs it with the user's terminal attached so
its progress output stays visible.
"""

from __future__ import annotations

import re
import subprocess
from pathlib import Path

from apkgen.errors import BuildError
from apkgen.models import SigningConfig

# Matches the value part of --ks-pass=pass:... / --key-pass=pass:...
_SECRET_ARG = re.compile(r"^(--(?:ks|key)-pass=pass:).*$")


def build_apks_command(
    java: str,
    jar_path: Path,
    bundle: Path,
    output: Path,
    signing: SigningConfig | None = None,
) -> list[str]:
    """Assemble ``java -jar bundletool build-apks`` for a universal APK set.

    Signing flags are appended only when a credential descriptor is given.
    """
    command = [
        java, "-jar", str(jar_path),
        "build-apks",
        f"--bundle={bundle}",
        f"--output={output}",
        "--mode=universal",
    ]

    if signing is not None:
        command += [
            f"--ks={signing.keystore_path}",
            f"--ks-pass=pass:{signing.store_pass.get_secret_value()}",
            f"--ks-key-alias={signing.alias}",
            f"--key-pass=pass:{signing.key_pass.get_secret_value()}",
        ]

    return command


def redact_command(command: list[str]) -> list[str]:
    """Return a copy of ``command`` with inline passwords masked."""
    return [_SECRET_ARG.sub(r"\1******", arg) for arg in command]


def run_build_apks(
    java: str,
    jar_path: Path,
    bundle: Path,
    output: Path,
    signing: SigningConfig | None = None,
    cwd: Path | None = None,
    timeout: float | None = None,
) -> Path:
    """Run bundletool and wait for it to produce the ``.apks`` container.

    Args:
        java: Java launcher executable.
        jar_path: bundletool jar.
        bundle: Input ``.aab`` file.
        output: Container path to create. A stale file here is removed first
            because bundletool refuses to overwrite.
        signing: Optional keystore descriptor.
        cwd: Working directory for the subprocess.
        timeout: Seconds to wait, or None to wait indefinitely.

    Returns:
        ``output``.

    Raises:
        BuildError: If java cannot be launched, bundletool exits non-zero,
            or the timeout expires.
    """
    output.unlink(missing_ok=True)
    command = build_apks_command(java, jar_path, bundle, output, signing)

    try:
        result = subprocess.run(command, cwd=cwd, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise BuildError(f"bundletool timed out after {exc.timeout}s") from exc
    except OSError as exc:
        raise BuildError(f"Could not launch '{java}': {exc}") from exc

    if result.returncode != 0:
        shown = " ".join(redact_command(command))
        raise BuildError(
            f"bundletool build-apks exited with status {result.returncode}. command={shown}"
        )

    return output
