"""Session coordination: registry, state machine and credential storage."""

from wapair.runtime.session.coordinator import SessionCoordinator
from wapair.runtime.session.credentials import CredentialStore

__all__ = ["CredentialStore", "SessionCoordinator"]
