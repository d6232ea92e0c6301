"""Text delivered to the linked account once a session finishes."""

from typing import Any

LOCATOR_MESSAGE = (
    "Your device is linked and the session backup is stored.\n\n"
    "Session ID:\n{locator}\n\n"
    "Keep this ID private. It restores your linked session."
)

FALLBACK_MESSAGE = (
    "Your device is linked, but the session backup could not be stored.\n\n"
    "Session: {session_id}\n"
    "{summary}\n\n"
    "Create a new session to retry the backup."
)


def build_locator_message(locator: str) -> str:
    """Message sent after a successful archive upload."""
    return LOCATOR_MESSAGE.format(locator=locator)


def build_fallback_message(session_id: str, summary: dict[str, Any]) -> str:
    """Message sent when the archive upload failed.

    Args:
        session_id: The local session id.
        summary: Non-secret credential fields from CredentialStore.safe_summary().
    """
    lines = [f"{key.capitalize()}: {value}" for key, value in summary.items()]
    return FALLBACK_MESSAGE.format(
        session_id=session_id,
        summary="\n".join(lines) if lines else "No account details available.",
    )
