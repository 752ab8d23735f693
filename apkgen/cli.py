"""generate-apk command-line interface built on Click.

Provides two ways to turn an Android App Bundle into an installable APK:
- (no arguments): interactive conversion in the current directory
- build: automated conversion into the desktop build folder, no prompts
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from apkgen.errors import GenerateApkError
from apkgen.models import Config, Stage

console = Console()
err_console = Console(stderr=True)

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to YAML config file.",
)


class InteractiveFallbackGroup(click.Group):
    """Group that routes an unrecognised first argument to interactive mode.

    ``generate-apk app.aab`` therefore behaves like
    ``generate-apk interactive app.aab``. Usage errors, whether raised for
    the group or a subcommand, exit 1 like every other failure.
    """

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        own_options = {"--version", *CONTEXT_SETTINGS["help_option_names"]}
        if args and args[0] not in self.commands and args[0] not in own_options:
            args = ["interactive", *args]
        return super().parse_args(ctx, args)

    def make_context(
        self,
        info_name: str | None,
        args: list[str],
        parent: click.Context | None = None,
        **extra: Any,
    ) -> click.Context:
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise


@click.group(
    cls=InteractiveFallbackGroup,
    invoke_without_command=True,
    context_settings=CONTEXT_SETTINGS,
)
@click.version_option(version="1.0.0", prog_name="generate-apk")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """generate-apk: convert Android App Bundles to APK.

    \b
    Usage:
      generate-apk                                    # Interactive mode
      generate-apk build <file.aab> --name=<output>   # Build mode (automated)
      generate-apk --help                             # Show this help

    \b
    Build mode:
      - Uses the 'build' folder on the desktop (created if not present)
      - Uses default settings (no prompts)
      - Generates a signed APK (creates a keystore automatically)
    """
    if ctx.invoked_subcommand is None:
        ctx.invoke(interactive)


@cli.command()
@click.argument("bundle", required=False)
@_config_option
def interactive(bundle: str | None, config_path: Path | None) -> None:
    """Convert a bundle in the current directory, prompting for each choice.

    BUNDLE is optional; without it the .aab files in the current directory
    are offered.
    """
    from apkgen.interactive import Prompter, run_interactive

    config = _load_config(config_path)

    try:
        run_interactive(bundle, config=config, prompter=Prompter(console))
    except GenerateApkError as exc:
        _fail(exc)


@cli.command()
@click.argument("bundle", type=click.Path(path_type=Path))
@click.option("--name", "output_name", help="Output APK name (.apk is added if missing).")
@click.option("--build-dir", type=click.Path(file_okay=False, path_type=Path), help="Build directory. Defaults to ~/Desktop/build.")
@_config_option
def build(
    bundle: Path,
    output_name: str | None,
    build_dir: Path | None,
    config_path: Path | None,
) -> None:
    """Build an APK from BUNDLE with default settings (no prompts).

    Example: generate-apk build app-release.aab --name=myapp.apk
    """
    from apkgen.workflow import build_apk_from_aab

    config = _load_config(config_path)
    if build_dir is not None:
        config.build_dir = build_dir

    try:
        build_apk_from_aab(bundle, output_name, config=config, console=console)
    except GenerateApkError as exc:
        _fail(exc)


# ── Helper functions ─────────────────────────────────────────

def _load_config(config_path: Path | None) -> Config:
    """Load configuration from a file or use defaults."""
    try:
        if config_path is not None:
            return Config.from_yaml(config_path)
        return Config.default()
    except (yaml.YAMLError, ValidationError) as exc:
        err_console.print(f"[red]Invalid configuration: {escape(str(exc))}[/red]")
        sys.exit(1)


def _fail(exc: GenerateApkError) -> None:
    """Report a stage failure on stderr and exit 1."""
    if exc.stage == Stage.INPUT:
        label = "Error"
    else:
        label = f"{exc.stage.value.capitalize()} failed"
    err_console.print(f"[red]❌ {label}: {escape(str(exc))}[/red]", highlight=False)
    sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
