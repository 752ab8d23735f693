"""Keystore provisioning for signed universal APKs.

An existing keystore always wins: it is reused as-is, without checking
its contents or passwords. When none exists, keytool (from the JDK)
creates one. If keytool is missing or fails, the build degrades to an
unsigned APK instead of aborting.

The default passwords are development-grade. They are fine for test
builds installed by hand; supply real ones through the config file for
anything you intend to distribute.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

from rich.console import Console

from apkgen.errors import CredentialError
from apkgen.models import CertificateIdentity, SigningConfig, SigningSettings


def default_signing(work_dir: Path, settings: SigningSettings) -> SigningConfig:
    """Describe the configured default keystore inside ``work_dir``."""
    return SigningConfig(
        keystore_path=work_dir / settings.keystore_name,
        alias=settings.alias,
        store_pass=settings.store_pass,
        key_pass=settings.key_pass,
    )


def build_keytool_command(
    signing: SigningConfig,
    identity: CertificateIdentity,
    keytool: str = "keytool",
) -> list[str]:
    """Assemble the keytool invocation that creates ``signing.keystore_path``."""
    return [
        keytool,
        "-genkey",
        "-keystore", str(signing.keystore_path),
        "-alias", signing.alias,
        "-keyalg", "RSA",
        "-keysize", "2048",
        "-validity", "10000",
        "-storepass", signing.store_pass.get_secret_value(),
        "-keypass", signing.key_pass.get_secret_value(),
        "-dname", identity.dname,
    ]


def generate_keystore(
    signing: SigningConfig,
    identity: CertificateIdentity,
    keytool: str = "keytool",
    timeout: float | None = None,
) -> SigningConfig:
    """Create a new keystore with keytool.

    Args:
        signing: Descriptor of the keystore to create (path, alias, passwords).
        identity: Certificate distinguished-name fields.
        keytool: keytool executable name or path.
        timeout: Seconds to wait for keytool, or None to wait indefinitely.

    Returns:
        ``signing``, now backed by a file on disk.

    Raises:
        CredentialError: If keytool is not available, exits non-zero, or
            times out.
    """
    if shutil.which(keytool) is None:
        raise CredentialError(
            f"Required tool '{keytool}' not found in PATH. "
            "Install a Java JDK and ensure keytool is on your PATH."
        )

    signing.keystore_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        result = subprocess.run(
            build_keytool_command(signing, identity, keytool),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise CredentialError(f"keytool timed out after {exc.timeout}s") from exc
    except OSError as exc:
        raise CredentialError(f"Could not run keytool: {exc}") from exc

    if result.returncode != 0:
        detail = (result.stderr or result.stdout).strip()
        raise CredentialError(f"keytool exited with status {result.returncode}: {detail}")

    return signing


def provision_keystore(
    signing: SigningConfig,
    identity: CertificateIdentity,
    keytool: str = "keytool",
    timeout: float | None = None,
    console: Console | None = None,
) -> SigningConfig | None:
    """Reuse or create the keystore described by ``signing``.

    Returns:
        The descriptor to sign with, or None when the keystore could not
        be created and the build should proceed unsigned.
    """
    name = signing.keystore_path.name

    if signing.keystore_path.exists():
        if console is not None:
            console.print(f"[green]Found keystore: {name}[/green]")
        return signing

    if console is not None:
        console.print("[cyan]Creating keystore for signed APK...[/cyan]")

    try:
        generate_keystore(signing, identity, keytool=keytool, timeout=timeout)
    except CredentialError as exc:
        if console is not None:
            console.print(f"[yellow]Failed to create keystore: {exc}[/yellow]")
            console.print("[yellow]Falling back to unsigned APK[/yellow]")
        return None

    if console is not None:
        console.print(f"[green]Keystore created: {name}[/green]")
    return signing
