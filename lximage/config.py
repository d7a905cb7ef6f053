"""Builder configuration — env-driven host settings.

Centralized config using pydantic-settings for environment variable
support.  Reads from a .env file and LXIMAGE_* environment variables.
Per-build inputs (archive, kernel, name...) are not settings; they arrive
on the ``BuildRequest``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lximage.models.build import DEFAULT_HOMEPAGE


class BuilderSettings(BaseSettings):
    """Host-level configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export LXIMAGE_ZPOOL=zones
        export LXIMAGE_TAR_BIN=gtar
        export LXIMAGE_MANIFEST_TOOL=create-manifest
        export LXIMAGE_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LXIMAGE_",
        env_file_encoding="utf-8",
    )

    # Logging
    log_level: str = "INFO"
    debug: bool = False

    # Dataset
    zpool: str = "zones"
    snapshot_name: str = "final"
    cleanup_on_failure: bool = True  # destroy the dataset on any post-create failure

    # Archive classification: magic-byte signatures or `file -b`
    archive_inspector: Literal["signature", "file"] = "signature"

    # Extraction and serialization
    strip_components: int = Field(default=2, ge=0)
    compression_level: int = Field(default=9, ge=1, le=9)

    # Host tools
    zfs_bin: str = "zfs"
    tar_bin: str = "gtar"
    crle_bin: str = "crle"
    file_bin: str = "file"
    manifest_tool: str = "builtin"  # or a command such as "create-manifest"

    # Manifest
    default_homepage: str = DEFAULT_HOMEPAGE
    os_tag: str = "linux"

    @property
    def effective_log_level(self) -> str:
        """Log level after applying the debug switch."""
        return "DEBUG" if self.debug else self.log_level.upper()

    @property
    def uses_file_inspector(self) -> bool:
        return self.archive_inspector == "file"

    @property
    def uses_builtin_manifest(self) -> bool:
        return self.manifest_tool == "builtin"


# Module-level singleton: import as `from lximage.config import settings`
settings = BuilderSettings()
