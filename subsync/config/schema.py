# Subsync Configuration Schema
# Pydantic models for YAML configuration validation

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from subsync.utils.paths import expand_path


class ConflictStrategy(str, Enum):
    """Policy applied when local and remote versions of an entity differ."""

    LAST_WRITE_WINS = "LAST_WRITE_WINS"
    SERVER_WINS = "SERVER_WINS"
    CLIENT_WINS = "CLIENT_WINS"


class SyncSettings(BaseModel):
    """Settings consumed by the reconciliation engine."""

    sync_interval: int = Field(default=60000, ge=1000, description="Auto-sync interval in milliseconds")
    max_retry_attempts: int = Field(default=3, ge=1, description="Attempts before a queued operation is dropped")
    conflict_resolution: ConflictStrategy = Field(
        default=ConflictStrategy.LAST_WRITE_WINS, description="Conflict resolution strategy"
    )
    auto_sync: bool = Field(default=True, description="Run sync passes periodically")


class RemoteConfig(BaseModel):
    """Remote subscription API settings."""

    base_url: str = Field(default="http://localhost:3000/api", description="Base URL of the subscription API")
    token: str | None = Field(default=None, description="Bearer token for authenticated calls")
    timeout: float | None = Field(default=30.0, description="Per-request timeout in seconds (None = no timeout)")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalise base URL so paths can be appended."""
        return v.rstrip("/")


class StorageConfig(BaseModel):
    """Local persistence settings."""

    data_dir: str = Field(
        default="~/.config/subsync/data",
        validate_default=True,
        description="Directory for queue and replica files",
    )

    @field_validator("data_dir")
    @classmethod
    def expand_data_dir(cls, v: str) -> str:
        """Expand ~ and environment variables in path."""
        return str(expand_path(v))


class OutputConfig(BaseModel):
    """Output and logging configuration."""

    verbose: bool = Field(default=False, description="Enable verbose output")
    colored: bool = Field(default=True, description="Enable colored output")
    log_level: str = Field(default="WARNING", description="Log level for the subsync logger")
    log_file: str | None = Field(default=None, description="Path to log file")

    @field_validator("log_level")
    @classmethod
    def normalise_level(cls, v: str) -> str:
        """Upper-case and validate the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("log_file")
    @classmethod
    def expand_optional_path(cls, v: str | None) -> str | None:
        """Expand ~ in optional paths."""
        if v is None:
            return None
        return str(expand_path(v))


class SubsyncConfig(BaseModel):
    """Root configuration model for subsync."""

    remote: RemoteConfig = Field(default_factory=RemoteConfig, description="Remote API settings")
    sync: SyncSettings = Field(default_factory=SyncSettings, description="Sync engine settings")
    storage: StorageConfig = Field(default_factory=StorageConfig, description="Local storage settings")
    output: OutputConfig = Field(default_factory=OutputConfig, description="Output settings")

    @property
    def data_path(self) -> Path:
        """Directory holding persisted local state."""
        return Path(self.storage.data_dir)
