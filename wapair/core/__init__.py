"""Core functionality for wapair: configuration, logging, errors and helpers."""

from wapair.core.config import Config, load_config
from wapair.core.errors import (
    ArchiveError,
    CreationError,
    SessionNotFoundError,
    SessionTimeoutError,
    ValidationError,
    WapairError,
)
from wapair.core.phone import format_pairing_code, normalize_phone_number

__all__ = [
    "Config",
    "load_config",
    "ArchiveError",
    "CreationError",
    "SessionNotFoundError",
    "SessionTimeoutError",
    "ValidationError",
    "WapairError",
    "format_pairing_code",
    "normalize_phone_number",
]
