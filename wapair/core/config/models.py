"""Pydantic configuration models for wapair.

This module defines all configuration models used throughout wapair.
For loading and merging logic, see loader.py.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class SessionsConfig(BaseModel):
    """Configuration for the session coordinator."""

    directory: Path = Field(default=Path("sessions"), description="Root directory for per-session credentials")
    qr_timeout_seconds: float = Field(
        default=60.0,
        description="Seconds a QR session may stay unlinked before it times out",
    )
    pairing_timeout_seconds: float = Field(
        default=180.0,
        description="Seconds a pairing-code session may stay unlinked before it times out",
    )
    artifact_wait_seconds: float = Field(
        default=30.0,
        description="Max seconds a request waits for a QR payload or pairing code",
    )
    reconnect_backoff_seconds: float = Field(
        default=5.0,
        description="Delay before the single reconnection attempt after a transient close",
    )
    handle_close_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound for logout/close of a protocol handle during disposal",
    )
    notify_timeout_seconds: float = Field(
        default=15.0,
        description="Upper bound for sending the final message to the linked account",
    )
    min_phone_digits: int = Field(default=10, description="Minimum digits in a normalized phone number")
    tombstone_limit: int = Field(
        default=256,
        description="Number of finished sessions whose final status stays queryable",
    )
    stale_directory_hours: float = Field(
        default=24.0,
        description="Credential directories older than this are purged on startup",
    )

    @field_validator(
        "qr_timeout_seconds",
        "pairing_timeout_seconds",
        "artifact_wait_seconds",
        "reconnect_backoff_seconds",
        "handle_close_timeout_seconds",
        "notify_timeout_seconds",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Timeouts must be strictly positive."""
        if v <= 0:
            raise ValueError("timeout values must be greater than zero")
        return v


class SweepConfig(BaseModel):
    """Configuration for the periodic leak sweep."""

    enabled: bool = Field(default=True, description="Enable the periodic session sweep")
    interval_minutes: int = Field(default=15, description="Minutes between sweeps")
    max_session_age_hours: float = Field(
        default=3.0,
        description="Sessions older than this are force-disposed regardless of state",
    )


class ArchiveConfig(BaseModel):
    """Remote archive configuration.

    When ``upload_url`` is empty the placeholder archive is used and locators
    are marked ``placeholder://``.
    """

    provider: str = Field(default="http", description="Archive provider (http, placeholder)")
    upload_url: str | None = Field(default=None, description="Endpoint receiving credential uploads")
    api_key: str | None = Field(default=None, description="Bearer token for the upload endpoint")
    timeout_seconds: float = Field(default=30.0, description="HTTP timeout for uploads")
    name_prefix: str = Field(default="whatsapp_session_", description="Prefix for archived blob names")


class ProtocolConfig(BaseModel):
    """Protocol client configuration."""

    provider: str = Field(default="pyaileys", description="Protocol client implementation")
    pairing_request_delay_seconds: float = Field(
        default=1.5,
        description="Delay between opening the socket and requesting a pairing code",
    )


class ApiConfig(BaseModel):
    """HTTP server configuration."""

    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=3000, description="Bind port")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")


class LoggingConfig(BaseModel):
    """Configuration for logging system."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    directory: str = Field(default="logs", description="Directory for log files")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")


class Config(BaseModel):
    """Root configuration for wapair."""

    sessions: SessionsConfig = Field(default_factory=SessionsConfig, description="Session coordinator settings")
    sweep: SweepConfig = Field(default_factory=SweepConfig, description="Leak sweep settings")
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig, description="Remote archive settings")
    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig, description="Protocol client settings")
    api: ApiConfig = Field(default_factory=ApiConfig, description="HTTP server settings")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")

    model_config = {"extra": "allow"}
