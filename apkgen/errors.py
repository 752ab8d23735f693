"""Exception hierarchy for the conversion stages.

Each error records the stage that failed so the CLI can report it.
Only CredentialError is recovered from automatically (the build falls
back to unsigned); every other kind aborts the run.
"""

from __future__ import annotations

from apkgen.models import Stage


class GenerateApkError(Exception):
    """Base class for failures that abort (or degrade) a conversion."""

    stage: Stage = Stage.INPUT

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __str__(self) -> str:
        return self.message


class BundleNotFoundError(GenerateApkError):
    stage = Stage.INPUT


class FetchError(GenerateApkError):
    stage = Stage.FETCH


class CredentialError(GenerateApkError):
    stage = Stage.CREDENTIAL


class BuildError(GenerateApkError):
    stage = Stage.BUILD


class ExtractError(GenerateApkError):
    stage = Stage.EXTRACT


class FinalizeError(GenerateApkError):
    stage = Stage.FINALIZE
