"""On-disk credential directories, one per session."""

import json
import logging
import shutil
import time
from pathlib import Path
from typing import Any

from wapair.core.phone import jid_to_phone

logger = logging.getLogger(__name__)


class CredentialStore:
    """Owns the sessions root directory and the per-session folders under it.

    Each session gets ``{root}/{session_id}/``. The protocol client writes its
    multi-file auth state there; ``creds.json`` holds the account credentials
    that get archived.

    Example:
        >>> store = CredentialStore(Path("sessions"))
        >>> path = store.create("qr_1739452800123_k3j9x0a1b")
        >>> store.read_bundle(path)  # None until the client saved creds
    """

    CREDS_FILE = "creds.json"

    # Only these creds.json fields may be shown to the account owner
    SAFE_FIELDS = ("platform", "registered")

    def __init__(self, root: Path):
        """Initialize the store and create the root directory.

        Args:
            root: Directory that holds one subdirectory per session.
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Sessions directory: {self.root.resolve()}")

    def path_for(self, session_id: str) -> Path:
        """Directory for a session id (not created)."""
        return self.root / session_id

    def create(self, session_id: str) -> Path:
        """Create a fresh directory for a session.

        Raises:
            FileExistsError: If the directory already exists (ids are never reused).
        """
        path = self.path_for(session_id)
        path.mkdir(parents=True, exist_ok=False)
        return path

    def read_bundle(self, path: Path) -> bytes | None:
        """Read the credential bundle to archive.

        Returns:
            The raw ``creds.json`` bytes, or None if the client has not written it.
        """
        creds_path = Path(path) / self.CREDS_FILE
        if not creds_path.exists():
            return None
        return creds_path.read_bytes()

    def safe_summary(self, path: Path) -> dict[str, Any]:
        """Non-secret fields from ``creds.json`` for the fallback notification.

        Key material (noise keys, identity keys, signed pre-keys, adv secret)
        is never included.
        """
        creds_path = Path(path) / self.CREDS_FILE
        if not creds_path.exists():
            return {}

        try:
            with creds_path.open("r", encoding="utf-8") as f:
                creds = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read {creds_path} for summary: {e}")
            return {}

        if not isinstance(creds, dict):
            return {}

        summary: dict[str, Any] = {}
        me = creds.get("me")
        if isinstance(me, dict):
            if me.get("id"):
                summary["account"] = me["id"]
                phone = jid_to_phone(me["id"])
                if phone:
                    summary["phone"] = phone
            if me.get("name"):
                summary["name"] = me["name"]
        for field in self.SAFE_FIELDS:
            if field in creds:
                summary[field] = creds[field]
        return summary

    def wipe(self, path: Path) -> bool:
        """Delete a session directory. Missing directories are not an error.

        Returns:
            True if something was removed.
        """
        path = Path(path)
        if not path.exists():
            return False
        shutil.rmtree(path, ignore_errors=True)
        return True

    def purge_stale(self, max_age_hours: float, keep: set[str] | None = None) -> int:
        """Remove session directories not modified within ``max_age_hours``.

        Leftovers from a crashed process would otherwise accumulate forever.

        Args:
            max_age_hours: Age threshold based on directory mtime.
            keep: Session ids that must not be removed (live sessions).

        Returns:
            Number of directories removed.
        """
        keep = keep or set()
        cutoff = time.time() - max_age_hours * 3600
        removed = 0

        for entry in self.root.iterdir():
            if entry.name in keep:
                continue
            try:
                if entry.stat().st_mtime >= cutoff:
                    continue
            except OSError:
                continue

            if entry.is_dir():
                shutil.rmtree(entry, ignore_errors=True)
            else:
                entry.unlink(missing_ok=True)
            removed += 1
            logger.info(f"Removed stale session directory: {entry.name}")

        return removed
