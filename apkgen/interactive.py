"""Interactive conversion in the current directory.

Asks, in order: which bundle to convert, how to sign, and what to call
the result. The signing answers are collected once into a
SigningConfig value and handed to the build; nothing is remembered at
module level.
"""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm, IntPrompt, Prompt

from apkgen.errors import BundleNotFoundError
from apkgen.models import CertificateIdentity, Config, SigningConfig, SigningSettings
from apkgen.workflow import ApkBuilder
from archive.extractor import Extractor
from archive.finalizer import default_apk_name, ensure_apk_extension
from toolchain.fetch import ensure_bundletool

SKIP_ANSWERS = ("skip", "s")


class Prompter:
    """Thin wrapper over rich.prompt so the question flow can be scripted in tests."""

    def __init__(self, console: Console | None = None) -> None:
        self.console: Console = console or Console()

    def ask(self, question: str, default: str = "", secret: bool = False) -> str:
        answer = Prompt.ask(
            question,
            console=self.console,
            default=default,
            show_default=not secret and bool(default),
            password=secret,
        )
        return answer.strip()

    def confirm(self, question: str, default: bool = True) -> bool:
        return Confirm.ask(question, console=self.console, default=default)

    def choose(self, question: str, count: int) -> int:
        """Ask for a 1-based choice until the answer is in range."""
        while True:
            index = IntPrompt.ask(question, console=self.console)
            if 1 <= index <= count:
                return index
            self.console.print("[red]Invalid choice, try again.[/red]")


def pick_bundle(cwd: Path, arg: str | None, prompter: Prompter) -> Path:
    """Resolve which ``.aab`` to convert.

    An explicit argument must exist. Otherwise the ``.aab`` files in
    ``cwd`` are listed: one is used directly, several are offered as a
    numbered menu.

    Raises:
        BundleNotFoundError: If the argument is missing on disk or no
            bundles are found.
    """
    console = prompter.console

    if arg:
        path = Path(arg)
        if not path.is_absolute():
            path = cwd / path
        if not path.is_file():
            raise BundleNotFoundError(f"File not found: {arg}")
        return path

    bundles = sorted(p for p in cwd.iterdir() if p.suffix == ".aab" and p.is_file())
    if not bundles:
        raise BundleNotFoundError("No .aab files found in this directory.")

    if len(bundles) == 1:
        console.print(f"[cyan]Only one .aab found, using {bundles[0].name}[/cyan]")
        return bundles[0]

    console.print("Select the AAB to convert:")
    for i, bundle in enumerate(bundles, start=1):
        console.print(f"  [{i}] {bundle.name}")
    choice = prompter.choose(f"Enter number (1-{len(bundles)})", len(bundles))
    return bundles[choice - 1]


def ask_identity(prompter: Prompter, defaults: CertificateIdentity) -> CertificateIdentity:
    """Ask for the certificate fields of a new keystore."""
    while True:
        fields = {
            "common_name": prompter.ask("Your name", defaults.common_name),
            "org_unit": prompter.ask("Organization unit", defaults.org_unit),
            "organization": prompter.ask("Organization", defaults.organization),
            "locality": prompter.ask("City", defaults.locality),
            "state": prompter.ask("State", defaults.state),
            "country": prompter.ask("Country code (2 letters)", defaults.country),
        }
        try:
            return CertificateIdentity(**fields)
        except ValueError:
            prompter.console.print("[red]Country must be a two-letter code, try again.[/red]")


def ask_signing(
    builder: ApkBuilder,
    prompter: Prompter,
) -> SigningConfig | None:
    """Collect signing settings and make sure the keystore exists.

    Returns:
        The keystore descriptor, or None for an unsigned build (skipped,
        declined, or keystore creation failed).
    """
    console = prompter.console
    settings = builder.config.signing

    console.print()
    console.print('[bold]Signing setup[/bold] (press Enter for defaults or "skip" for an unsigned APK)')

    answer = prompter.ask('Keystore path or "skip"', settings.keystore_name)
    if answer.lower() in SKIP_ANSWERS:
        console.print("[yellow]Creating unsigned APK (not suitable for production)[/yellow]")
        return None

    keystore_path = Path(answer or settings.keystore_name)
    if not keystore_path.is_absolute():
        keystore_path = builder.work_dir / keystore_path

    if keystore_path.exists():
        signing = _ask_secrets(prompter, keystore_path, settings)
        console.print("[green]Keystore details captured[/green]")
        return builder.provision_signing(signing)

    console.print(f"Keystore not found at {keystore_path}")
    if not prompter.confirm("Create new keystore?", default=True):
        console.print("[yellow]Creating unsigned APK[/yellow]")
        return None

    signing = _ask_secrets(prompter, keystore_path, settings)
    identity = ask_identity(prompter, settings.identity)

    result = builder.provision_signing(signing, identity)
    if result is None:
        console.print("[dim]Make sure a Java JDK is installed (keytool command).[/dim]")
    return result


def _ask_secrets(prompter: Prompter, keystore_path: Path, settings: SigningSettings) -> SigningConfig:
    alias = prompter.ask("Key alias", settings.alias)
    store_pass = prompter.ask("Keystore password (Enter for default)", secret=True)
    key_pass = prompter.ask("Key password (Enter for default)", secret=True)

    return SigningConfig(
        keystore_path=keystore_path,
        alias=alias or settings.alias,
        store_pass=store_pass or settings.store_pass,
        key_pass=key_pass or settings.key_pass,
    )


def run_interactive(
    bundle_arg: str | None = None,
    config: Config | None = None,
    cwd: Path | None = None,
    prompter: Prompter | None = None,
    extractor: Extractor | None = None,
) -> Path:
    """Convert a bundle in ``cwd`` with prompts for every choice.

    Returns:
        Path to the final APK.
    """
    config = config or Config.default()
    cwd = cwd or Path.cwd()
    prompter = prompter or Prompter()
    console = prompter.console

    jar_path = ensure_bundletool(cwd, config.toolchain, console=console)
    bundle = pick_bundle(cwd, bundle_arg, prompter)
    builder = ApkBuilder(bundle, cwd, config=config, extractor=extractor, console=console)

    signing = ask_signing(builder, prompter)

    container = builder.build_container(jar_path, signing)
    extracted = builder.extract_apk(container)

    default_name = default_apk_name(bundle, signed=signing is not None)
    name = prompter.ask("Enter final APK name", default_name).strip() or default_name
    final_path = builder.finalize(extracted, ensure_apk_extension(name), [container])

    console.print()
    console.print(f"[green bold]APK ready: {final_path.name}[/green bold]")
    return final_path
