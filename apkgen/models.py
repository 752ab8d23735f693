"""Pydantic models for generate-apk.

Defines the configuration schema and the values threaded through a
conversion run:
- ToolchainSettings / SigningSettings / Config: YAML configuration schema
- CertificateIdentity: distinguished-name fields for a new keystore
- SigningConfig: credential descriptor handed to the build step
- BuildResult: what a finished conversion produced
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator

DEFAULT_BUNDLETOOL_VERSION = "1.18.1"
DEFAULT_BUNDLETOOL_URL = (
    "https://github.com/google/bundletool/releases/download/"
    "{version}/bundletool-all-{version}.jar"
)

# Development-grade default. Override in the config file for anything real.
DEFAULT_PASSWORD = "123456"


class Stage(str, Enum):
    """Sequential stages of a conversion run."""

    INPUT = "input"
    FETCH = "fetch"
    CREDENTIAL = "credential"
    BUILD = "build"
    EXTRACT = "extract"
    FINALIZE = "finalize"


class CertificateIdentity(BaseModel):
    """Distinguished-name fields used when keytool creates a new keystore."""

    common_name: str = "Generate APK Tool"
    org_unit: str = "Dev"
    organization: str = "Dev"
    locality: str = "Dev"
    state: str = "Dev"
    country: str = "US"

    @field_validator("country")
    @classmethod
    def _two_letter_country(cls, value: str) -> str:
        value = value.strip()
        if len(value) != 2 or not value.isalpha():
            raise ValueError("country must be a two-letter code")
        return value.upper()

    @property
    def dname(self) -> str:
        """Render the identity as a keytool -dname string."""
        return (
            f"CN={self.common_name}, OU={self.org_unit}, O={self.organization}, "
            f"L={self.locality}, S={self.state}, C={self.country}"
        )


class SigningConfig(BaseModel):
    """Credential descriptor: a keystore file plus the secrets to open it.

    Passwords are SecretStr so that printing or logging the descriptor
    never reveals them. Call ``get_secret_value()`` only where the value
    is handed to an external tool.
    """

    keystore_path: Path
    alias: str
    store_pass: SecretStr
    key_pass: SecretStr


class ToolchainSettings(BaseModel):
    """Where bundletool comes from and how external tools are launched."""

    bundletool_version: str = DEFAULT_BUNDLETOOL_VERSION
    bundletool_url: str = DEFAULT_BUNDLETOOL_URL
    max_redirects: int = Field(default=5, ge=0)
    download_timeout: float = Field(default=60, gt=0)
    java: str = "java"
    keytool: str = "keytool"
    process_timeout: float | None = Field(default=None, gt=0)

    @property
    def jar_name(self) -> str:
        return f"bundletool-all-{self.bundletool_version}.jar"

    @property
    def download_url(self) -> str:
        return self.bundletool_url.format(version=self.bundletool_version)


class SigningSettings(BaseModel):
    """Defaults for the keystore provisioned in automated mode."""

    keystore_name: str = "release.keystore"
    alias: str = "release"
    store_pass: SecretStr = SecretStr(DEFAULT_PASSWORD)
    key_pass: SecretStr = SecretStr(DEFAULT_PASSWORD)
    identity: CertificateIdentity = Field(default_factory=CertificateIdentity)


class Config(BaseModel):
    """Top-level configuration loaded from YAML.

    Sections:
    - toolchain: bundletool download and external tool settings
    - signing: default keystore used by automated builds
    - build_dir: output directory for automated builds
    """

    toolchain: ToolchainSettings = Field(default_factory=ToolchainSettings)
    signing: SigningSettings = Field(default_factory=SigningSettings)
    build_dir: Path | None = None

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file.

        Returns:
            Parsed Config instance.

        Raises:
            FileNotFoundError: If the config file doesn't exist.
            yaml.YAMLError: If the YAML is malformed.
        """
        content = path.read_text(encoding="utf-8")
        raw = yaml.safe_load(content)
        if raw is None:
            return cls()
        return cls.model_validate(raw)

    @classmethod
    def default(cls) -> Config:
        """Return the default configuration.

        Tries to load from config/default.yaml relative to the project root.
        Falls back to built-in defaults if the file doesn't exist.
        """
        default_path = Path(__file__).parent.parent / "config" / "default.yaml"
        if default_path.exists():
            return cls.from_yaml(default_path)
        return cls()

    def resolve_build_dir(self) -> Path:
        """Return the automated-mode build directory, ~/Desktop/build unless set."""
        if self.build_dir is not None:
            return self.build_dir.expanduser()
        return Path.home() / "Desktop" / "build"


class BuildResult(BaseModel):
    """Outcome of a successful conversion."""

    apk_path: Path
    signed: bool
    work_dir: Path

    @property
    def sign_status(self) -> str:
        return "signed" if self.signed else "unsigned"
