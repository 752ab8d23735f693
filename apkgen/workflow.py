"""AAB to universal APK conversion pipeline.

Runs the five stages of a conversion in order, each blocking until done:
1. Fetch bundletool into the work directory if it is not there yet
2. Reuse or create the signing keystore (falls back to unsigned)
3. Run bundletool build-apks in universal mode
4. Extract universal.apk from the resulting .apks container
5. Rename it to the final name and delete intermediate files

A failure in any stage other than 2 aborts the run with an error that
names the stage. There are no retries.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable

import requests
from rich.console import Console

from apkgen.errors import BundleNotFoundError, GenerateApkError
from apkgen.models import BuildResult, CertificateIdentity, Config, SigningConfig
from archive.extractor import Extractor, select_extractor
from archive.finalizer import default_apk_name, ensure_apk_extension, finalize_apk
from toolchain.bundletool import run_build_apks
from toolchain.fetch import ensure_bundletool
from toolchain.signer import default_signing, provision_keystore

# Entry bundletool writes for --mode=universal
UNIVERSAL_APK = "universal.apk"


class ApkBuilder:
    """Conversion pipeline for one bundle in one work directory.

    Stages are exposed individually so the interactive flow can prompt
    between them; convert() runs them back to back.

    Args:
        bundle: The ``.aab`` file to convert.
        work_dir: Directory holding bundletool, the keystore, intermediates
            and the final APK.
        config: Toolchain and signing configuration.
        extractor: Archive extractor. Chosen for the platform if omitted.
        console: Console for progress output. Silent if omitted.
        session: Optional requests session used for the bundletool download.
    """

    def __init__(
        self,
        bundle: Path,
        work_dir: Path,
        config: Config | None = None,
        extractor: Extractor | None = None,
        console: Console | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.bundle: Path = bundle
        self.work_dir: Path = work_dir
        self.config: Config = config or Config.default()
        self.extractor: Extractor = extractor or select_extractor()
        self.console: Console | None = console
        self.session: requests.Session | None = session

    @property
    def container_path(self) -> Path:
        return self.work_dir / f"{self.bundle.stem}.apks"

    def ensure_toolchain(self) -> Path:
        """Stage 1: make sure the bundletool jar is present."""
        return ensure_bundletool(
            self.work_dir,
            self.config.toolchain,
            console=self.console,
            session=self.session,
        )

    def provision_signing(
        self,
        signing: SigningConfig | None,
        identity: CertificateIdentity | None = None,
    ) -> SigningConfig | None:
        """Stage 2: reuse or create the keystore. None means build unsigned."""
        if signing is None:
            return None
        return provision_keystore(
            signing,
            identity or self.config.signing.identity,
            keytool=self.config.toolchain.keytool,
            timeout=self.config.toolchain.process_timeout,
            console=self.console,
        )

    def build_container(self, jar_path: Path, signing: SigningConfig | None) -> Path:
        """Stage 3: run bundletool build-apks."""
        kind = "signed" if signing is not None else "unsigned"
        self._say(f"[cyan]Building {kind} APKS from {self.bundle.name}...[/cyan]")
        return run_build_apks(
            self.config.toolchain.java,
            jar_path,
            self.bundle,
            self.container_path,
            signing=signing,
            cwd=self.work_dir,
            timeout=self.config.toolchain.process_timeout,
        )

    def extract_apk(self, container: Path) -> Path:
        """Stage 4: pull universal.apk out of the container."""
        stale = self.work_dir / UNIVERSAL_APK
        stale.unlink(missing_ok=True)

        self._say(f"[cyan]Extracting {UNIVERSAL_APK}...[/cyan]")
        return self.extractor.extract(container, self.work_dir, UNIVERSAL_APK)

    def finalize(
        self,
        extracted: Path,
        final_name: str,
        intermediates: Iterable[Path] = (),
    ) -> Path:
        """Stage 5: rename into place and clean up."""
        final_path = self.work_dir / ensure_apk_extension(final_name)
        if final_path.exists():
            self._say(f"[yellow]{final_path.name} already exists, overwriting...[/yellow]")
        return finalize_apk(extracted, final_name, self.work_dir, intermediates)

    def convert(
        self,
        output_name: str | None = None,
        signing: SigningConfig | None = None,
        identity: CertificateIdentity | None = None,
        intermediates: Iterable[Path] = (),
    ) -> BuildResult:
        """Run all five stages.

        Args:
            output_name: Final APK name. Defaults to the signed/unsigned
                name derived from the bundle.
            signing: Keystore to reuse or create. None builds unsigned.
            identity: Certificate fields for a newly created keystore.
            intermediates: Extra files to delete after finalizing. The
                ``.apks`` container is always deleted.

        Returns:
            BuildResult describing the final APK.
        """
        jar_path = self.ensure_toolchain()
        active = self.provision_signing(signing, identity)
        container = self.build_container(jar_path, active)
        extracted = self.extract_apk(container)

        name = (output_name or "").strip() or default_apk_name(self.bundle, signed=active is not None)
        apk_path = self.finalize(extracted, name, [container, *intermediates])

        return BuildResult(apk_path=apk_path, signed=active is not None, work_dir=self.work_dir)

    def _say(self, message: str) -> None:
        if self.console is not None:
            self.console.print(message)


def prepare_build_dir(path: Path, console: Console | None = None) -> Path:
    """Create the automated-mode build directory if needed."""
    if path.is_dir():
        if console is not None:
            console.print(f"[dim]Using existing build directory: {path}[/dim]")
        return path

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise GenerateApkError(f"Could not create build directory {path}: {exc}") from exc

    if console is not None:
        console.print(f"[dim]Created build directory: {path}[/dim]")
    return path


def build_apk_from_aab(
    aab_file: Path,
    output_name: str | None = None,
    config: Config | None = None,
    console: Console | None = None,
    extractor: Extractor | None = None,
    session: requests.Session | None = None,
) -> BuildResult:
    """Automated conversion with default settings and no prompts.

    Copies the bundle into the build directory, provisions the default
    keystore there, builds, and leaves only the final APK (plus the
    reusable bundletool jar and keystore) behind.

    Raises:
        BundleNotFoundError: If ``aab_file`` does not exist.
        GenerateApkError: Any fatal stage failure.
    """
    config = config or Config.default()

    if not aab_file.is_file():
        raise BundleNotFoundError(f"AAB file not found: {aab_file}")

    work_dir = prepare_build_dir(config.resolve_build_dir(), console)

    work_bundle = work_dir / aab_file.name
    copied = work_bundle.resolve() != aab_file.resolve()
    if copied:
        shutil.copyfile(aab_file, work_bundle)

    builder = ApkBuilder(
        work_bundle,
        work_dir,
        config=config,
        extractor=extractor,
        console=console,
        session=session,
    )
    result = builder.convert(
        output_name=output_name,
        signing=default_signing(work_dir, config.signing),
        identity=config.signing.identity,
        intermediates=[work_bundle] if copied else [],
    )

    if console is not None:
        print_summary(result, console)
    return result


def print_summary(result: BuildResult, console: Console) -> None:
    """Print where the APK went and whether it is signed."""
    console.print()
    console.print("[green bold]APK conversion completed![/green bold]")
    console.print(f"APK file: [bold]{result.apk_path.name}[/bold] ({result.sign_status})")
    console.print(f"Location: {result.work_dir}")
    if result.signed:
        console.print("[dim]Signed with the keystore in the build directory.[/dim]")
        console.print("[green]Your signed APK is ready for distribution and installation![/green]")
    else:
        console.print("[yellow]Your unsigned APK is ready for testing (requires manual installation).[/yellow]")
