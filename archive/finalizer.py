"""Final placement of the extracted universal APK."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from apkgen.errors import FinalizeError

APK_SUFFIX = ".apk"


def ensure_apk_extension(name: str) -> str:
    """Append ``.apk`` unless ``name`` already ends with it (any case)."""
    name = name.strip()
    if name.lower().endswith(APK_SUFFIX):
        return name
    return name + APK_SUFFIX


def default_apk_name(bundle: Path, signed: bool) -> str:
    """Derive ``<bundle-stem>-signed.apk`` or ``<bundle-stem>-unsigned.apk``."""
    status = "signed" if signed else "unsigned"
    return f"{bundle.stem}-{status}{APK_SUFFIX}"


def finalize_apk(
    extracted: Path,
    final_name: str,
    work_dir: Path,
    intermediates: Iterable[Path] = (),
) -> Path:
    """Rename the extracted APK into place and delete intermediate files.

    A file already present at the final path is replaced. Intermediates
    that no longer exist are ignored.

    Args:
        extracted: The extracted ``universal.apk``.
        final_name: Desired output file name; ``.apk`` is added if missing.
        work_dir: Directory the final APK is placed in.
        intermediates: Files to delete once the APK is in place (the
            ``.apks`` container, a copied bundle).

    Returns:
        Path to the final APK.

    Raises:
        FinalizeError: If the extracted APK is missing or cannot be moved.
    """
    if not extracted.is_file():
        raise FinalizeError(f"Failed to create {extracted.name}: not found in {extracted.parent}")

    final_path = work_dir / ensure_apk_extension(final_name)

    try:
        if final_path.exists() and final_path.resolve() != extracted.resolve():
            final_path.unlink()
        extracted.rename(final_path)
    except OSError as exc:
        raise FinalizeError(f"Could not move {extracted.name} to {final_path}: {exc}") from exc

    for leftover in intermediates:
        if leftover.resolve() == final_path.resolve():
            continue
        try:
            leftover.unlink(missing_ok=True)
        except OSError as exc:
            raise FinalizeError(f"Could not remove intermediate file {leftover}: {exc}") from exc

    return final_path
