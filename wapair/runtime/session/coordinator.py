"""Session coordinator: registry and state machine for linking sessions.

Every session owns an ordered event queue, a worker task draining it, and an
``asyncio.Condition`` guarding its fields. Protocol callbacks, deadline timers,
reconnect timers and archive uploads only enqueue events; the worker applies
them one at a time while holding the session's condition. Artifact waiters
block on the same condition.
"""

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from wapair.archive.base import RemoteArchive
from wapair.archive.placeholder import is_placeholder_locator
from wapair.core.config import SessionsConfig
from wapair.core.errors import (
    ArchiveError,
    CreationError,
    SessionNotFoundError,
    SessionTimeoutError,
)
from wapair.core.phone import normalize_phone_number
from wapair.model.events import (
    ArchiveFinished,
    ConnectionClosed,
    ConnectionOpened,
    DeadlineExpired,
    ProtocolEvent,
    QrIssued,
    ReconnectDue,
    SessionEvent,
)
from wapair.model.session import Session, SessionKind, SessionState
from wapair.protocol.base import ProtocolClient, ProtocolHandle
from wapair.runtime.session.credentials import CredentialStore
from wapair.runtime.session.messages import build_fallback_message, build_locator_message

logger = logging.getLogger(__name__)


@dataclass
class _SessionRuntime:
    """Mutable runtime state attached to a Session."""

    session: Session
    queue: asyncio.Queue[SessionEvent] = field(default_factory=asyncio.Queue)
    cond: asyncio.Condition = field(default_factory=asyncio.Condition)
    handle: ProtocolHandle | None = None
    # Bumped whenever a handle is retired; events from older handles are dropped
    generation: int = 0
    disposed: bool = False
    worker: asyncio.Task[None] | None = None
    deadline_task: asyncio.Task[None] | None = None
    reconnect_task: asyncio.Task[None] | None = None
    archive_task: asyncio.Task[None] | None = None


class SessionCoordinator:
    """Creates, drives and disposes linking sessions.

    Lifecycle per session:
    1. create_*_session() opens a protocol handle (and requests a pairing code)
    2. The handle emits qr/open/close events into the session queue
    3. On open the credentials are uploaded to the remote archive
    4. The locator (or a safe summary on failure) is sent to the linked account
    5. The session is disposed: handle closed, credentials wiped, entry removed

    Timeouts, logout and unrecoverable closes dispose the session early.

    Example:
        >>> coordinator = SessionCoordinator(protocol, archive, SessionsConfig())
        >>> await coordinator.start()
        >>> session = await coordinator.create_qr_session()
        >>> session = await coordinator.wait_for_artifact(session.id)
        >>> session.qr_payload
    """

    ARCHIVE_NAME_PREFIX = "whatsapp_session_"

    def __init__(
        self,
        protocol: ProtocolClient,
        archive: RemoteArchive,
        config: SessionsConfig,
        credentials: CredentialStore | None = None,
        archive_name_prefix: str | None = None,
    ):
        """Initialize the coordinator.

        Args:
            protocol: Protocol client used to open connections.
            archive: Remote archive for credential backups (owned by the caller).
            config: Session timing and limits.
            credentials: Credential store (defaults to one rooted at config.directory).
            archive_name_prefix: Prefix for archived blob names.
        """
        self.protocol = protocol
        self.archive = archive
        self.config = config
        self.credentials = credentials or CredentialStore(config.directory)
        self._archive_prefix = archive_name_prefix or self.ARCHIVE_NAME_PREFIX
        self._sessions: dict[str, _SessionRuntime] = {}
        self._tombstones: OrderedDict[str, dict[str, Any]] = OrderedDict()
        self._uploads: set[asyncio.Task[None]] = set()
        self._closed = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Purge credential directories left behind by a previous process."""
        removed = self.credentials.purge_stale(
            self.config.stale_directory_hours,
            keep=set(self._sessions),
        )
        logger.info(f"SessionCoordinator started ({removed} stale session directories removed)")

    async def shutdown(self) -> None:
        """Dispose every live session and wait briefly for in-flight uploads."""
        self._closed = True
        session_ids = list(self._sessions)
        for session_id in session_ids:
            await self.dispose_session(session_id, reason="shutdown")

        pending = [task for task in self._uploads if not task.done()]
        if pending:
            await asyncio.wait(pending, timeout=self.config.handle_close_timeout_seconds)

        logger.info(f"SessionCoordinator stopped ({len(session_ids)} sessions disposed)")

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_qr_session(self) -> Session:
        """Create a QR-linking session.

        Raises:
            CreationError: If the protocol client could not open a connection.
            SessionTimeoutError: If opening took longer than the QR deadline.
        """
        return await self._create(SessionKind.QR)

    async def create_pairing_session(self, phone_number: str) -> Session:
        """Create a phone-number pairing session.

        The pairing code is requested before this returns, so the session is
        already in PAIRING_CODE_ISSUED.

        Args:
            phone_number: Phone number in any format; non-digits are stripped.

        Raises:
            ValidationError: If fewer than ``min_phone_digits`` digits remain.
            CreationError: If the connection or the code request failed.
            SessionTimeoutError: If no code arrived within the pairing deadline.
        """
        number = normalize_phone_number(phone_number, self.config.min_phone_digits)
        return await self._create(SessionKind.PAIRING, number)

    async def _create(self, kind: SessionKind, phone_number: str | None = None) -> Session:
        if self._closed:
            raise CreationError("Session coordinator is shut down")

        session_id = self._new_session_id(kind)
        try:
            credential_path = self.credentials.create(session_id)
        except OSError as e:
            raise CreationError(f"Could not create session directory: {e}") from e
        session = Session(
            id=session_id,
            kind=kind,
            credential_path=credential_path,
            phone_number=phone_number,
        )
        rt = _SessionRuntime(session=session)
        timeout = self._deadline_seconds(kind)
        logger.info(f"Creating {kind} session: {session_id}")

        try:
            async with asyncio.timeout(timeout):
                rt.handle = await self._open_handle(rt)
                if kind == SessionKind.PAIRING:
                    assert phone_number is not None
                    code = await rt.handle.request_pairing_code(phone_number)
                    if not code:
                        raise CreationError("Protocol client returned an empty pairing code")
                    session.pairing_code = code
                    session.transition(SessionState.PAIRING_CODE_ISSUED)
        except BaseException as e:
            rt.generation += 1
            rt.disposed = True
            await self._release_handle(rt.handle, logout=False)
            rt.handle = None
            self.credentials.wipe(credential_path)
            if not isinstance(e, Exception):
                raise
            if isinstance(e, TimeoutError):
                logger.warning(f"Protocol client did not respond within {timeout}s for session {session_id}")
                raise SessionTimeoutError(
                    f"Session {session_id} was not ready within {timeout}s", session_id
                ) from e
            logger.error(f"Failed to create session {session_id}: {e}")
            if isinstance(e, CreationError):
                raise
            raise CreationError(f"Failed to open session: {e}") from e

        self._sessions[session_id] = rt
        rt.worker = asyncio.create_task(self._run_worker(rt), name=f"wapair-session-{session_id}")

        remaining = max(0.0, timeout - session.age_seconds())
        rt.deadline_task = asyncio.create_task(self._deadline_timer(rt, remaining))

        if kind == SessionKind.PAIRING:
            logger.info(f"Pairing code issued for session {session_id}")
        return session

    def _deadline_seconds(self, kind: SessionKind) -> float:
        if kind == SessionKind.QR:
            return self.config.qr_timeout_seconds
        return self.config.pairing_timeout_seconds

    def _new_session_id(self, kind: SessionKind) -> str:
        prefix = "qr" if kind == SessionKind.QR else "pair"
        millis = int(datetime.now(UTC).timestamp() * 1000)
        return f"{prefix}_{millis}_{uuid.uuid4().hex[:9]}"

    async def _open_handle(self, rt: _SessionRuntime) -> ProtocolHandle:
        """Open a protocol handle whose events feed this session's queue."""
        rt.generation += 1
        generation = rt.generation

        def sink(event: ProtocolEvent) -> None:
            if rt.disposed or rt.generation != generation:
                logger.debug(f"Dropping stale {type(event).__name__} for session {rt.session.id}")
                return
            rt.queue.put_nowait(event)

        return await self.protocol.open(rt.session.credential_path, sink)

    # =========================================================================
    # Event processing
    # =========================================================================

    async def _run_worker(self, rt: _SessionRuntime) -> None:
        """Apply queued events to one session, in arrival order."""
        session_id = rt.session.id
        while not rt.disposed:
            event = await rt.queue.get()
            try:
                async with rt.cond:
                    if rt.disposed:
                        break
                    await self._apply(rt, event)
                    rt.cond.notify_all()
            except Exception as e:
                logger.error(
                    f"Error handling {type(event).__name__} for session {session_id}: {e}",
                    exc_info=True,
                )

    async def _apply(self, rt: _SessionRuntime, event: SessionEvent) -> None:
        """Dispatch one event. Caller holds ``rt.cond``."""
        rt.session.touch()

        if isinstance(event, QrIssued):
            self._on_qr(rt, event)
        elif isinstance(event, ConnectionOpened):
            self._on_open(rt, event)
        elif isinstance(event, ConnectionClosed):
            await self._on_close(rt, event)
        elif isinstance(event, DeadlineExpired):
            await self._on_deadline(rt)
        elif isinstance(event, ReconnectDue):
            await self._on_reconnect_due(rt)
        elif isinstance(event, ArchiveFinished):
            await self._on_archive_finished(rt, event)
        else:
            logger.warning(f"Unknown event for session {rt.session.id}: {event!r}")

    def _on_qr(self, rt: _SessionRuntime, event: QrIssued) -> None:
        session = rt.session
        if session.kind != SessionKind.QR or session.state not in (
            SessionState.INITIALIZING,
            SessionState.QR_ISSUED,
        ):
            logger.debug(f"Ignoring QR for session {session.id} in state {session.state}")
            return

        session.qr_payload = event.payload
        session.transition(SessionState.QR_ISSUED)
        logger.info(f"QR generated for session {session.id}")

    def _on_open(self, rt: _SessionRuntime, event: ConnectionOpened) -> None:
        session = rt.session
        if session.state in (SessionState.CONNECTED, SessionState.ARCHIVING):
            logger.debug(f"Duplicate open for session {session.id} ignored")
            return

        session.connected_identity = event.identity
        session.transition(SessionState.CONNECTED)
        self._cancel_task(rt.deadline_task)
        rt.deadline_task = None
        logger.info(f"WhatsApp connected: {session.id} as {event.identity}")

        if not session.archive_attempted:
            self._start_archive(rt)

    def _start_archive(self, rt: _SessionRuntime) -> None:
        """Move to ARCHIVING and upload the credentials outside the lock."""
        session = rt.session
        session.archive_attempted = True
        session.transition(SessionState.ARCHIVING)

        data = self.credentials.read_bundle(session.credential_path)
        if data is None:
            logger.error(f"No credentials file for session {session.id}; skipping upload")
            rt.queue.put_nowait(ArchiveFinished(error="credentials file missing"))
            return

        name = f"{self._archive_prefix}{session.id}.json"
        rt.archive_task = asyncio.create_task(self._upload(rt, data, name))
        self._uploads.add(rt.archive_task)
        rt.archive_task.add_done_callback(self._uploads.discard)

    async def _upload(self, rt: _SessionRuntime, data: bytes, name: str) -> None:
        try:
            locator = await self.archive.archive(data, name)
            result = ArchiveFinished(locator=locator)
        except ArchiveError as e:
            result = ArchiveFinished(error=str(e))
        except Exception as e:
            logger.error(f"Unexpected archive failure for session {rt.session.id}: {e}", exc_info=True)
            result = ArchiveFinished(error=str(e))

        if rt.disposed:
            logger.info(f"Session {rt.session.id} disposed during upload; archive result discarded")
            return
        rt.queue.put_nowait(result)

    async def _on_archive_finished(self, rt: _SessionRuntime, event: ArchiveFinished) -> None:
        session = rt.session
        if session.state != SessionState.ARCHIVING:
            return

        if event.ok:
            assert event.locator is not None
            session.remote_locator = event.locator
            if is_placeholder_locator(event.locator):
                logger.warning(f"Session {session.id} was not stored remotely (no archive configured)")
            logger.info(f"Session {session.id} archived: {event.locator}")
            text = build_locator_message(event.locator)
            reason = "archived"
        else:
            logger.error(f"Failed to archive session {session.id}: {event.error}")
            summary = self.credentials.safe_summary(session.credential_path)
            text = build_fallback_message(session.id, summary)
            reason = "archive_failed"

        await self._notify(rt, text)
        # Keep the device linked: the archived credentials must stay valid
        await self._dispose_locked(rt, logout=False, reason=reason)

    async def _notify(self, rt: _SessionRuntime, text: str) -> None:
        """Send the final message to the linked account. Failures are logged only."""
        identity = rt.session.connected_identity
        if rt.handle is None or not identity:
            logger.debug(f"No connected identity for session {rt.session.id}; skipping notification")
            return
        try:
            async with asyncio.timeout(self.config.notify_timeout_seconds):
                await rt.handle.send_text(identity, text)
        except Exception as e:
            logger.warning(f"Failed to notify {identity} for session {rt.session.id}: {e}")

    async def _on_close(self, rt: _SessionRuntime, event: ConnectionClosed) -> None:
        session = rt.session

        if session.state == SessionState.ARCHIVING:
            # Upload already has its bytes; disposal follows the archive result
            logger.debug(f"Connection closed while archiving session {session.id}")
            return

        if event.reason.is_logout:
            logger.info(f"Session {session.id} logged out; cleaning up")
            session.transition(SessionState.DISCONNECTED)
            await self._dispose_locked(rt, logout=False, reason="logged_out")
            return

        if rt.reconnect_task is not None:
            logger.debug(f"Reconnect already pending for session {session.id}")
            return

        if session.reconnect_attempts >= 1:
            logger.warning(
                f"Connection closed again for session {session.id} ({event.reason}); giving up"
            )
            session.transition(SessionState.DISCONNECTED)
            await self._dispose_locked(rt, logout=True, reason="reconnect_failed")
            return

        delay = self.config.reconnect_backoff_seconds
        logger.info(f"Connection closed for session {session.id} ({event.reason}); reconnecting in {delay}s")
        rt.reconnect_task = asyncio.create_task(self._reconnect_timer(rt, delay))

    async def _on_reconnect_due(self, rt: _SessionRuntime) -> None:
        session = rt.session
        rt.reconnect_task = None
        if session.state.is_terminal or session.state == SessionState.ARCHIVING:
            return

        session.reconnect_attempts += 1
        old_handle, rt.handle = rt.handle, None
        rt.generation += 1
        await self._release_handle(old_handle, logout=False)

        try:
            rt.handle = await self._open_handle(rt)
        except Exception as e:
            logger.error(f"Reconnection failed for session {session.id}: {e}")
            session.transition(SessionState.DISCONNECTED)
            await self._dispose_locked(rt, logout=False, reason="reconnect_failed")
            return

        logger.info(f"Session {session.id} reconnected")

    async def _on_deadline(self, rt: _SessionRuntime) -> None:
        rt.deadline_task = None
        await self._time_out(rt)

    async def _time_out(self, rt: _SessionRuntime) -> bool:
        """TIMED_OUT -> DISPOSED unless the session already connected. Caller holds ``rt.cond``."""
        session = rt.session
        if session.state.is_terminal or session.state in (SessionState.CONNECTED, SessionState.ARCHIVING):
            return False

        logger.warning(f"Session {session.id} timed out in state {session.state}")
        session.transition(SessionState.TIMED_OUT)
        await self._dispose_locked(rt, logout=True, reason="timed_out")
        return True

    # =========================================================================
    # Timers
    # =========================================================================

    async def _deadline_timer(self, rt: _SessionRuntime, delay: float) -> None:
        """Enqueue DeadlineExpired after ``delay`` seconds."""
        try:
            await asyncio.sleep(delay)
            if not rt.disposed:
                rt.queue.put_nowait(DeadlineExpired())
        except asyncio.CancelledError:
            pass

    async def _reconnect_timer(self, rt: _SessionRuntime, delay: float) -> None:
        """Enqueue ReconnectDue after the backoff."""
        try:
            await asyncio.sleep(delay)
            if not rt.disposed:
                rt.queue.put_nowait(ReconnectDue())
        except asyncio.CancelledError:
            pass

    @staticmethod
    def _cancel_task(task: asyncio.Task[None] | None) -> None:
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # =========================================================================
    # Disposal
    # =========================================================================

    async def dispose_session(self, session_id: str, logout: bool = True, reason: str = "removed") -> bool:
        """Dispose a session: close its handle, wipe credentials, drop the entry.

        Safe to call repeatedly; later calls are no-ops.

        Args:
            session_id: Session to dispose.
            logout: Unlink the device before closing (best effort).
            reason: Recorded as the session's end reason.

        Returns:
            True if this call disposed the session, False if it was unknown or
            already disposed.
        """
        rt = self._sessions.get(session_id)
        if rt is None:
            return False
        async with rt.cond:
            return await self._dispose_locked(rt, logout=logout, reason=reason)

    async def _dispose_locked(self, rt: _SessionRuntime, logout: bool, reason: str) -> bool:
        """Disposal body. Caller holds ``rt.cond``."""
        if rt.disposed:
            return False
        rt.disposed = True
        rt.generation += 1

        session = rt.session
        if session.end_reason is None:
            session.end_reason = reason

        self._cancel_task(rt.deadline_task)
        self._cancel_task(rt.reconnect_task)
        rt.deadline_task = None
        rt.reconnect_task = None

        handle, rt.handle = rt.handle, None
        await self._release_handle(handle, logout=logout)

        self.credentials.wipe(session.credential_path)
        session.transition(SessionState.DISPOSED)
        self._sessions.pop(session.id, None)
        self._remember(session)
        rt.cond.notify_all()

        self._cancel_task(rt.worker)
        logger.info(f"Session disposed: {session.id} ({session.end_reason})")
        return True

    async def _release_handle(self, handle: ProtocolHandle | None, logout: bool) -> None:
        """Logout (optionally) and close a handle, ignoring errors from broken connections."""
        if handle is None:
            return
        timeout = self.config.handle_close_timeout_seconds
        if logout:
            try:
                async with asyncio.timeout(timeout):
                    await handle.logout()
            except Exception as e:
                logger.debug(f"Ignoring logout error: {e}")
        try:
            async with asyncio.timeout(timeout):
                await handle.close()
        except Exception as e:
            logger.debug(f"Ignoring close error: {e}")

    def _remember(self, session: Session) -> None:
        """Keep the final snapshot of a disposed session for status polls."""
        self._tombstones[session.id] = session.snapshot()
        self._tombstones.move_to_end(session.id)
        while len(self._tombstones) > self.config.tombstone_limit:
            self._tombstones.popitem(last=False)

    # =========================================================================
    # Queries
    # =========================================================================

    async def wait_for_artifact(self, session_id: str, timeout: float | None = None) -> Session:
        """Block until the session's QR payload or pairing code is available.

        Args:
            session_id: Session to wait on.
            timeout: Max seconds to wait (defaults to ``artifact_wait_seconds``).

        Returns:
            The session, with ``qr_payload`` or ``pairing_code`` set.

        Raises:
            SessionNotFoundError: Unknown session id.
            SessionTimeoutError: Nothing arrived in time; the session was disposed.
            CreationError: The session ended before issuing its artifact.
        """
        rt = self._sessions.get(session_id)
        if rt is None:
            tombstone = self._tombstones.get(session_id)
            if tombstone is None:
                raise SessionNotFoundError(session_id)
            raise CreationError(f"Session {session_id} already ended ({tombstone['end_reason']})")

        session = rt.session
        wait_seconds = timeout if timeout is not None else self.config.artifact_wait_seconds

        def ready() -> bool:
            return session.artifact is not None or session.state.is_terminal

        try:
            async with rt.cond:
                await asyncio.wait_for(rt.cond.wait_for(ready), wait_seconds)
        except TimeoutError:
            async with rt.cond:
                if session.artifact is None:
                    await self._time_out(rt)

        if session.artifact is not None:
            return session

        what = "QR code" if session.kind == SessionKind.QR else "pairing code"
        if session.end_reason in (None, "timed_out"):
            raise SessionTimeoutError(f"{what} generation timed out", session_id)
        raise CreationError(f"Session {session_id} ended before a {what} was issued ({session.end_reason})")

    def get_session(self, session_id: str) -> dict[str, Any] | None:
        """Snapshot of a live session, or the final snapshot of a disposed one."""
        rt = self._sessions.get(session_id)
        if rt is not None:
            return rt.session.snapshot()
        return self._tombstones.get(session_id)

    def list_sessions(self) -> list[dict[str, Any]]:
        """Snapshots of all live sessions."""
        return [rt.session.snapshot() for rt in self._sessions.values()]

    def is_live(self, session_id: str) -> bool:
        return session_id in self._sessions

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    # =========================================================================
    # Sweep
    # =========================================================================

    async def sweep_expired(self, max_age_seconds: float) -> int:
        """Force-dispose sessions older than ``max_age_seconds``.

        Returns:
            Number of sessions disposed.
        """
        now = datetime.now(UTC)
        expired = [
            session_id
            for session_id, rt in list(self._sessions.items())
            if rt.session.age_seconds(now) > max_age_seconds
        ]

        disposed = 0
        for session_id in expired:
            if await self.dispose_session(session_id, reason="expired"):
                disposed += 1

        if disposed:
            logger.info(f"Sweep disposed {disposed} expired session(s)")
        return disposed
