"""Tests for SessionCoordinator lifecycle, events and disposal."""

import asyncio
import json
import os
import time

import pytest
from fakes import FAKE_CREDS, FakeArchive, FakeProtocolClient, wait_until

from wapair.core.errors import (
    CreationError,
    SessionNotFoundError,
    SessionTimeoutError,
    ValidationError,
)
from wapair.core.phone import format_pairing_code
from wapair.model.events import ConnectionClosed, ConnectionOpened, DisconnectReason, QrIssued
from wapair.model.session import SessionState
from wapair.runtime.session.coordinator import SessionCoordinator


def _disposed(coordinator: SessionCoordinator, session_id: str):
    return lambda: not coordinator.is_live(session_id)


class TestQrScenario:
    """End-to-end QR linking with a successful archive."""

    async def test_qr_link_archive_and_notify(self, coordinator, protocol, archive):
        """QR is returned, open triggers one archive, the locator is sent, the session is disposed."""
        session = await coordinator.create_qr_session()
        handle = protocol.last
        assert session.id.startswith("qr_")
        assert session.credential_path.exists()

        handle.emit(QrIssued("ABCD"))
        session = await coordinator.wait_for_artifact(session.id)
        assert session.qr_payload == "ABCD"
        assert session.state == SessionState.QR_ISSUED

        handle.emit(ConnectionOpened("12345@domain"))
        await wait_until(_disposed(coordinator, session.id))

        assert len(archive.calls) == 1
        name, data = archive.calls[0]
        assert name == f"whatsapp_session_{session.id}.json"
        assert json.loads(data) == FAKE_CREDS

        assert len(handle.sent) == 1
        jid, text = handle.sent[0]
        assert jid == "12345@domain"
        assert f"https://archive.test/{name}" in text

        snapshot = coordinator.get_session(session.id)
        assert snapshot["state"] == "disposed"
        assert snapshot["end_reason"] == "archived"
        assert snapshot["locator"] == f"https://archive.test/{name}"
        assert snapshot["history"] == ["initializing", "qr_issued", "connected", "archiving", "disposed"]
        assert not session.credential_path.exists()

    async def test_success_path_keeps_device_linked(self, coordinator, protocol):
        """Disposal after archival closes the handle without logging out."""
        session = await coordinator.create_qr_session()
        handle = protocol.last
        handle.emit(QrIssued("ABCD"))
        handle.emit(ConnectionOpened("12345@domain"))
        await wait_until(_disposed(coordinator, session.id))

        assert handle.logout_calls == 0
        assert handle.close_calls == 1

    async def test_qr_reissue_overwrites_payload(self, coordinator, protocol):
        """A new QR replaces the previous payload without leaving QR_ISSUED."""
        session = await coordinator.create_qr_session()
        protocol.last.emit(QrIssued("first"))
        protocol.last.emit(QrIssued("second"))
        await wait_until(lambda: session.qr_payload == "second")

        assert session.state == SessionState.QR_ISSUED
        assert session.history.count(SessionState.QR_ISSUED) == 1

    async def test_initial_qr_from_client(self, sessions_config, archive):
        """A QR emitted during open is available to the first waiter."""
        protocol = FakeProtocolClient(initial_qr="QR-PAYLOAD")
        coordinator = SessionCoordinator(protocol, archive, sessions_config)
        try:
            session = await coordinator.create_qr_session()
            session = await coordinator.wait_for_artifact(session.id)
            assert session.qr_payload == "QR-PAYLOAD"
        finally:
            await coordinator.shutdown()


class TestPairingScenario:
    """End-to-end pairing with a failing archive."""

    async def test_pairing_code_issued_before_return(self, coordinator, protocol):
        """The raw code is stored and the session is PAIRING_CODE_ISSUED once creation returns."""
        session = await coordinator.create_pairing_session("+94 70-123 4567")

        assert session.id.startswith("pair_")
        assert session.phone_number == "94701234567"
        assert session.pairing_code == "ABCD1234"
        assert session.state == SessionState.PAIRING_CODE_ISSUED
        assert protocol.last.pairing_requests == ["94701234567"]
        assert format_pairing_code(session.pairing_code) == "ABCD-1234"

    async def test_archive_failure_still_disposes(self, sessions_config):
        """A failed upload sends a safe summary and disposes without raising."""
        protocol = FakeProtocolClient()
        archive = FakeArchive(fail=True)
        coordinator = SessionCoordinator(protocol, archive, sessions_config)
        try:
            session = await coordinator.create_pairing_session("94701234567")
            handle = protocol.last
            handle.emit(ConnectionOpened("12345@domain"))
            await wait_until(_disposed(coordinator, session.id))

            assert len(archive.calls) == 1
            snapshot = coordinator.get_session(session.id)
            assert snapshot["end_reason"] == "archive_failed"
            assert snapshot["locator"] is None

            assert len(handle.sent) == 1
            _, text = handle.sent[0]
            assert "12345@domain" in text
            assert "android" in text
            assert FAKE_CREDS["noiseKey"]["private"] not in text
            assert FAKE_CREDS["advSecretKey"] not in text
            assert not session.credential_path.exists()
        finally:
            await coordinator.shutdown()

    async def test_notification_failure_is_absorbed(self, coordinator, protocol):
        """A send_text failure does not stop disposal."""
        session = await coordinator.create_pairing_session("94701234567")
        handle = protocol.last
        handle.send_error = ConnectionError("socket closed")
        handle.emit(ConnectionOpened("12345@domain"))
        await wait_until(_disposed(coordinator, session.id))

        assert coordinator.get_session(session.id)["end_reason"] == "archived"


class TestCreation:
    """Creation validation and failure cleanup."""

    async def test_short_phone_number_rejected(self, coordinator, sessions_config, protocol):
        """Fewer than 10 digits raises before any session or directory exists."""
        with pytest.raises(ValidationError):
            await coordinator.create_pairing_session("12345")

        assert coordinator.active_count == 0
        assert protocol.handles == []
        assert list(sessions_config.directory.iterdir()) == []

    async def test_open_failure_leaves_nothing(self, coordinator, sessions_config, protocol):
        """A protocol open error becomes CreationError with no registry entry or directory."""
        protocol.open_error = OSError("network down")

        with pytest.raises(CreationError):
            await coordinator.create_qr_session()

        assert coordinator.active_count == 0
        assert list(sessions_config.directory.iterdir()) == []

    async def test_pairing_request_failure_closes_handle(self, coordinator, sessions_config, protocol):
        """A failed code request closes the handle and wipes the directory."""
        protocol.pairing_error = RuntimeError("rate limited")

        with pytest.raises(CreationError):
            await coordinator.create_pairing_session("94701234567")

        assert protocol.last.close_calls == 1
        assert coordinator.active_count == 0
        assert list(sessions_config.directory.iterdir()) == []

    async def test_empty_pairing_code_is_creation_error(self, coordinator, protocol):
        """An empty code is treated as a creation failure."""
        protocol.pairing_code = ""

        with pytest.raises(CreationError):
            await coordinator.create_pairing_session("94701234567")
        assert coordinator.active_count == 0

    async def test_hung_pairing_request_times_out(self, protocol, archive, sessions_config):
        """A code request that never answers raises SessionTimeoutError and cleans up."""
        sessions_config.pairing_timeout_seconds = 0.2
        protocol.pairing_gate = asyncio.Event()
        coordinator = SessionCoordinator(protocol, archive, sessions_config)
        try:
            with pytest.raises(SessionTimeoutError):
                await asyncio.wait_for(coordinator.create_pairing_session("94701234567"), 2.0)

            assert protocol.last.close_calls == 1
            assert coordinator.active_count == 0
            assert list(sessions_config.directory.iterdir()) == []
        finally:
            await coordinator.shutdown()

    async def test_hung_open_times_out(self, protocol, archive, sessions_config):
        """An open that never completes is bounded by the QR deadline."""
        sessions_config.qr_timeout_seconds = 0.2
        protocol.open_gate = asyncio.Event()
        coordinator = SessionCoordinator(protocol, archive, sessions_config)
        try:
            with pytest.raises(SessionTimeoutError):
                await asyncio.wait_for(coordinator.create_qr_session(), 2.0)

            assert protocol.handles == []
            assert coordinator.active_count == 0
            assert list(sessions_config.directory.iterdir()) == []
        finally:
            await coordinator.shutdown()

    async def test_session_ids_are_unique(self, coordinator):
        """Ids never repeat across sessions."""
        sessions = [await coordinator.create_qr_session() for _ in range(5)]
        assert len({s.id for s in sessions}) == 5


class TestDisposal:
    """Idempotent disposal and tombstones."""

    async def test_double_dispose_is_noop(self, coordinator, protocol):
        """A second dispose returns False and does not touch the handle again."""
        session = await coordinator.create_qr_session()
        handle = protocol.last

        assert await coordinator.dispose_session(session.id) is True
        assert await coordinator.dispose_session(session.id) is False

        assert handle.logout_calls == 1
        assert handle.close_calls == 1
        assert not session.credential_path.exists()
        assert coordinator.get_session(session.id)["end_reason"] == "removed"

    async def test_events_after_dispose_are_dropped(self, coordinator, protocol, archive):
        """Events from a disposed session's handle have no effect."""
        session = await coordinator.create_qr_session()
        handle = protocol.last
        await coordinator.dispose_session(session.id)

        handle.emit(ConnectionOpened("12345@domain"))
        await asyncio.sleep(0.05)

        assert archive.calls == []
        assert session.state == SessionState.DISPOSED

    async def test_tombstone_limit(self, protocol, archive, sessions_config):
        """Only the newest tombstones are kept."""
        sessions_config.tombstone_limit = 2
        coordinator = SessionCoordinator(protocol, archive, sessions_config)
        ids = []
        for _ in range(3):
            session = await coordinator.create_qr_session()
            await coordinator.dispose_session(session.id)
            ids.append(session.id)

        assert coordinator.get_session(ids[0]) is None
        assert coordinator.get_session(ids[1]) is not None
        assert coordinator.get_session(ids[2]) is not None

    async def test_unknown_session(self, coordinator):
        """Unknown ids are reported as absent."""
        assert coordinator.get_session("qr_0_missing") is None
        assert await coordinator.dispose_session("qr_0_missing") is False

    async def test_archive_result_discarded_after_dispose(self, coordinator, protocol, archive):
        """An upload finishing after removal neither notifies nor records a locator."""
        archive.gate = asyncio.Event()
        session = await coordinator.create_qr_session()
        handle = protocol.last
        handle.emit(ConnectionOpened("12345@domain"))
        await wait_until(lambda: session.state == SessionState.ARCHIVING)

        await coordinator.dispose_session(session.id)
        archive.gate.set()
        await asyncio.sleep(0.05)

        assert handle.sent == []
        snapshot = coordinator.get_session(session.id)
        assert snapshot["locator"] is None
        assert snapshot["end_reason"] == "removed"


class TestArchiveOnce:
    """Archival happens at most once per session."""

    async def test_repeated_open_archives_once(self, coordinator, protocol, archive):
        """Two open events trigger a single upload."""
        archive.gate = asyncio.Event()
        session = await coordinator.create_qr_session()
        handle = protocol.last
        handle.emit(ConnectionOpened("12345@domain"))
        handle.emit(ConnectionOpened("12345@domain"))
        await wait_until(lambda: session.state == SessionState.ARCHIVING)
        await asyncio.sleep(0.05)
        archive.gate.set()
        await wait_until(_disposed(coordinator, session.id))

        assert len(archive.calls) == 1

    async def test_missing_creds_file_is_archive_failure(self, sessions_config):
        """No creds.json means no upload, a fallback message and disposal."""
        protocol = FakeProtocolClient(write_creds=False)
        archive = FakeArchive()
        coordinator = SessionCoordinator(protocol, archive, sessions_config)
        try:
            session = await coordinator.create_qr_session()
            protocol.last.emit(ConnectionOpened("12345@domain"))
            await wait_until(_disposed(coordinator, session.id))

            assert archive.calls == []
            assert coordinator.get_session(session.id)["end_reason"] == "archive_failed"
            assert len(protocol.last.sent) == 1
        finally:
            await coordinator.shutdown()


class TestDisconnects:
    """Logout and transient close handling."""

    async def test_logout_disposes_without_reconnect(self, coordinator, protocol):
        """A LOGGED_OUT close goes DISCONNECTED -> DISPOSED with no new handle."""
        session = await coordinator.create_qr_session()
        protocol.last.emit(ConnectionClosed(DisconnectReason.LOGGED_OUT))
        await wait_until(_disposed(coordinator, session.id))
        await asyncio.sleep(0.1)

        assert len(protocol.handles) == 1
        snapshot = coordinator.get_session(session.id)
        assert snapshot["end_reason"] == "logged_out"
        assert snapshot["history"][-2:] == ["disconnected", "disposed"]

    async def test_transient_close_reconnects_once(self, coordinator, protocol):
        """A non-logout close opens exactly one new handle after the backoff."""
        session = await coordinator.create_qr_session()
        first = protocol.last
        first.emit(ConnectionClosed(DisconnectReason.RESTART_REQUIRED))
        await wait_until(lambda: len(protocol.handles) == 2)

        assert first.close_calls == 1
        assert session.reconnect_attempts == 1
        assert coordinator.is_live(session.id)

        # The new handle can still complete the link
        protocol.last.emit(ConnectionOpened("12345@domain"))
        await wait_until(_disposed(coordinator, session.id))
        assert coordinator.get_session(session.id)["end_reason"] == "archived"

    async def test_close_while_reconnect_pending_is_ignored(self, coordinator, protocol):
        """Several closes before the backoff elapses still produce one reconnect."""
        session = await coordinator.create_qr_session()
        handle = protocol.last
        handle.emit(ConnectionClosed(DisconnectReason.CONNECTION_LOST))
        handle.emit(ConnectionClosed(DisconnectReason.CONNECTION_LOST))
        await wait_until(lambda: len(protocol.handles) == 2)
        await asyncio.sleep(0.1)

        assert len(protocol.handles) == 2
        assert session.reconnect_attempts == 1

    async def test_second_close_after_reconnect_disposes(self, coordinator, protocol):
        """A close after the single reconnect ends the session."""
        session = await coordinator.create_qr_session()
        protocol.last.emit(ConnectionClosed(DisconnectReason.CONNECTION_LOST))
        await wait_until(lambda: len(protocol.handles) == 2)

        protocol.last.emit(ConnectionClosed(DisconnectReason.CONNECTION_LOST))
        await wait_until(_disposed(coordinator, session.id))

        assert len(protocol.handles) == 2
        assert coordinator.get_session(session.id)["end_reason"] == "reconnect_failed"

    async def test_reconnect_open_failure_disposes(self, coordinator, protocol):
        """If the new handle cannot be opened the session is disposed."""
        session = await coordinator.create_qr_session()
        protocol.open_error = OSError("network down")
        protocol.last.emit(ConnectionClosed(DisconnectReason.CONNECTION_LOST))
        await wait_until(_disposed(coordinator, session.id))

        snapshot = coordinator.get_session(session.id)
        assert snapshot["end_reason"] == "reconnect_failed"
        assert "disconnected" in snapshot["history"]

    async def test_stale_handle_events_dropped(self, coordinator, protocol, archive):
        """After a reconnect the retired handle can no longer drive the session."""
        session = await coordinator.create_qr_session()
        old = protocol.last
        old.emit(ConnectionClosed(DisconnectReason.CONNECTION_LOST))
        await wait_until(lambda: len(protocol.handles) == 2)

        old.emit(ConnectionOpened("12345@domain"))
        await asyncio.sleep(0.05)

        assert archive.calls == []
        assert session.state == SessionState.INITIALIZING

    async def test_close_during_archiving_is_ignored(self, coordinator, protocol, archive):
        """The upload result, not the close, decides how the session ends."""
        archive.gate = asyncio.Event()
        session = await coordinator.create_qr_session()
        handle = protocol.last
        handle.emit(ConnectionOpened("12345@domain"))
        await wait_until(lambda: session.state == SessionState.ARCHIVING)

        handle.emit(ConnectionClosed(DisconnectReason.RESTART_REQUIRED))
        await asyncio.sleep(0.1)
        assert len(protocol.handles) == 1

        archive.gate.set()
        await wait_until(_disposed(coordinator, session.id))
        assert coordinator.get_session(session.id)["end_reason"] == "archived"


class TestTimeouts:
    """Deadlines and artifact waits."""

    async def test_deadline_times_out_session(self, protocol, archive, sessions_config):
        """No events before the deadline leads to TIMED_OUT then DISPOSED."""
        sessions_config.qr_timeout_seconds = 0.1
        coordinator = SessionCoordinator(protocol, archive, sessions_config)
        try:
            session = await coordinator.create_qr_session()
            await wait_until(_disposed(coordinator, session.id))

            snapshot = coordinator.get_session(session.id)
            assert snapshot["history"][-2:] == ["timed_out", "disposed"]
            assert snapshot["end_reason"] == "timed_out"
            assert protocol.last.logout_calls == 1
            assert not session.credential_path.exists()
        finally:
            await coordinator.shutdown()

    async def test_deadline_cancelled_on_open(self, protocol, archive, sessions_config):
        """A connected session is never timed out."""
        sessions_config.pairing_timeout_seconds = 0.1
        archive.gate = asyncio.Event()
        coordinator = SessionCoordinator(protocol, archive, sessions_config)
        try:
            session = await coordinator.create_pairing_session("94701234567")
            protocol.last.emit(ConnectionOpened("12345@domain"))
            await wait_until(lambda: session.state == SessionState.ARCHIVING)
            await asyncio.sleep(0.2)

            assert coordinator.is_live(session.id)
            archive.gate.set()
            await wait_until(_disposed(coordinator, session.id))
            assert coordinator.get_session(session.id)["end_reason"] == "archived"
        finally:
            await coordinator.shutdown()

    async def test_wait_for_artifact_timeout_disposes(self, coordinator):
        """No QR within the wait raises SessionTimeoutError and disposes the session."""
        session = await coordinator.create_qr_session()

        with pytest.raises(SessionTimeoutError) as exc_info:
            await coordinator.wait_for_artifact(session.id, timeout=0.1)

        assert exc_info.value.session_id == session.id
        assert not coordinator.is_live(session.id)
        assert coordinator.get_session(session.id)["end_reason"] == "timed_out"

    async def test_wait_for_artifact_session_ended(self, coordinator, protocol):
        """A session that ends before issuing a QR raises CreationError."""
        session = await coordinator.create_qr_session()
        protocol.last.emit(ConnectionClosed(DisconnectReason.LOGGED_OUT))

        with pytest.raises(CreationError):
            await coordinator.wait_for_artifact(session.id, timeout=1.0)

    async def test_wait_for_unknown_session(self, coordinator):
        """Waiting on an unknown id raises SessionNotFoundError."""
        with pytest.raises(SessionNotFoundError):
            await coordinator.wait_for_artifact("qr_0_missing")


class TestSweepAndLifecycle:
    """Sweep, startup purge and shutdown."""

    async def test_sweep_expired(self, coordinator):
        """Sessions older than the ceiling are disposed with reason 'expired'."""
        old = await coordinator.create_qr_session()
        await asyncio.sleep(0.05)

        assert await coordinator.sweep_expired(max_age_seconds=0.01) == 1
        assert coordinator.get_session(old.id)["end_reason"] == "expired"
        assert await coordinator.sweep_expired(max_age_seconds=0.01) == 0

    async def test_sweep_keeps_young_sessions(self, coordinator):
        """Sessions younger than the ceiling survive."""
        session = await coordinator.create_qr_session()

        assert await coordinator.sweep_expired(max_age_seconds=3600) == 0
        assert coordinator.is_live(session.id)

    async def test_start_purges_stale_directories(self, protocol, archive, sessions_config):
        """Leftover directories older than the threshold are removed at start."""
        root = sessions_config.directory
        root.mkdir(parents=True)
        stale = root / "qr_1_stale"
        stale.mkdir()
        (stale / "creds.json").write_text("{}")
        two_days_ago = time.time() - 48 * 3600
        os.utime(stale, (two_days_ago, two_days_ago))
        fresh = root / "qr_2_fresh"
        fresh.mkdir()

        coordinator = SessionCoordinator(protocol, archive, sessions_config)
        await coordinator.start()

        assert not stale.exists()
        assert fresh.exists()

    async def test_shutdown_disposes_everything(self, protocol, archive, sessions_config):
        """Shutdown disposes live sessions and refuses new ones."""
        coordinator = SessionCoordinator(protocol, archive, sessions_config)
        first = await coordinator.create_qr_session()
        second = await coordinator.create_pairing_session("94701234567")

        await coordinator.shutdown()

        assert coordinator.active_count == 0
        assert coordinator.get_session(first.id)["end_reason"] == "shutdown"
        assert coordinator.get_session(second.id)["end_reason"] == "shutdown"
        with pytest.raises(CreationError):
            await coordinator.create_qr_session()

    async def test_list_sessions(self, coordinator):
        """Only live sessions are listed."""
        live = await coordinator.create_qr_session()
        gone = await coordinator.create_qr_session()
        await coordinator.dispose_session(gone.id)

        ids = [s["session_id"] for s in coordinator.list_sessions()]
        assert ids == [live.id]
