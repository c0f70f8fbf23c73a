"""Configuration models for kelvin-submit."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from kelvin_submit.errors import ConfigError

# Default operational settings
DEFAULT_KELVIN_URL: str = "https://kelvin.cs.vsb.cz"
DEFAULT_TIMEOUT_SECONDS: float = 60.0
DEFAULT_MAX_FILE_SIZE: int = 1024 * 1024  # 1 MiB
TOKEN_ENV_VAR: str = "KELVIN_API_TOKEN"


class ScanConfig(BaseModel):
    """Rules deciding which workspace files end up in the archive.

    Attributes:
        manifest_name: File that marks a project root.
        allowed_extensions: Extensions (without the dot) that are included.
        excluded_dirs: Directory names never descended into, at any depth.
        ignore_files: Gitignore-style rule files honoured in every directory.
        include_hidden: Whether dot-files and dot-directories are included.
        max_file_size: Files larger than this many bytes are skipped.
    """

    manifest_name: str = "Cargo.toml"
    allowed_extensions: list[str] = Field(default_factory=lambda: ["rs", "toml", "lock", "md", "txt"])
    excluded_dirs: list[str] = Field(default_factory=lambda: ["target", ".git"])
    ignore_files: list[str] = Field(default_factory=lambda: [".gitignore", ".ignore"])
    include_hidden: bool = False
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0)

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def strip_leading_dots(cls, v: Any) -> Any:
        """Accept both ``.rs`` and ``rs``."""
        if isinstance(v, list):
            return [e.lstrip(".") if isinstance(e, str) else e for e in v]
        return v

    @field_validator("allowed_extensions", "excluded_dirs", "ignore_files")
    @classmethod
    def reject_empty_entries(cls, v: list[str]) -> list[str]:
        if any(not item.strip() for item in v):
            raise ValueError("entries must not be empty")
        return v


class FileConfig(BaseModel):
    """Settings that may be stored in a YAML configuration file."""

    kelvin_url: str = DEFAULT_KELVIN_URL
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    open_browser: bool = True
    allow_empty: bool = True
    scan: ScanConfig = Field(default_factory=ScanConfig)

    @field_validator("kelvin_url")
    @classmethod
    def normalize_url(cls, v: str) -> str:
        """Strip trailing slashes and require an HTTP(S) scheme."""
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Kelvin URL must start with http:// or https://, got {v!r}")
        return v


class SubmitConfig(FileConfig):
    """Fully resolved configuration for one run.

    Attributes:
        assignment_id: Kelvin assignment identifier (from the task URL).
        token: Kelvin API token.
        root: Directory to start looking for the project from.
        dry_run: Scan and build the archive without uploading it.
    """

    assignment_id: str
    token: str = Field(repr=False)
    root: Path = Field(default_factory=Path.cwd)
    dry_run: bool = False

    @field_validator("assignment_id", "token", mode="before")
    @classmethod
    def check_not_blank(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("must not be empty")
        return v.strip() if isinstance(v, str) else v

    @field_validator("root", mode="before")
    @classmethod
    def convert_root_to_path(cls, v: Any) -> Path:
        """Convert root to Path object."""
        return Path(v) if not isinstance(v, Path) else v


def load_file_config(path: Path) -> dict[str, Any]:
    """Load a YAML configuration file into a plain mapping.

    Args:
        path: Path to the YAML file.

    Returns:
        The validated settings, with unset keys omitted.

    Raises:
        ConfigError: If the file is missing, malformed or invalid.
    """
    if not path.exists():
        raise ConfigError(f"configuration file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"malformed configuration file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"cannot read configuration file {path}: {e}") from e

    if yaml_data is None:
        return {}
    if not isinstance(yaml_data, dict):
        raise ConfigError(f"configuration file {path} must contain a mapping")

    try:
        parsed = FileConfig.model_validate(yaml_data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration file {path}: {e}") from e
    return parsed.model_dump(exclude_unset=True)


def resolve_config(
    assignment_id: str | None,
    token: str | None,
    root: Path | None = None,
    config_path: Path | None = None,
    **overrides: Any,
) -> SubmitConfig:
    """Build the configuration for one run.

    Values from ``overrides`` that are ``None`` are ignored, so CLI options that
    were not given fall back to the configuration file, then to the defaults.

    Raises:
        ConfigError: If the token or assignment ID is missing, or any value is invalid.
    """
    if assignment_id is None or not str(assignment_id).strip():
        raise ConfigError("missing assignment ID")
    if token is None or not token.strip():
        raise ConfigError(f"missing API token: pass --token or set {TOKEN_ENV_VAR}")

    data: dict[str, Any] = load_file_config(config_path) if config_path else {}
    data.update({k: v for k, v in overrides.items() if v is not None})
    data["assignment_id"] = str(assignment_id)
    data["token"] = token
    if root is not None:
        data["root"] = root

    try:
        return SubmitConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e
