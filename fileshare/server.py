"""
File Server - Session Coordinator

This is the object every request handler shares. It owns:
- Transfer status (what is happening now)
- Transfer log (what happened so far)
- Admission gate (who may transfer)
- Event broadcaster (who is watching)
- File sender / upload receiver (moving the bytes)

One FileServer is one session. It is passed explicitly to the API
factory, so tests can build as many independent sessions as they like.
"""

import asyncio
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Optional, Union

from .errors import ModeMismatchError, PeerBusyError, StartupError
from .session import (
    AdmissionGate, EventBroadcaster, Mode, Phase, StatusSnapshot,
    TransferLog, TransferStatus, LOG_CAPACITY, SUBSCRIBER_BUFFER,
)
from .transfer import FileSender, UploadReceiver, CHUNK_SIZE

logger = logging.getLogger(__name__)


def prepare_target(mode: Union[str, Mode], path: Union[str, Path]) -> Path:
    """
    Validate the session target before anything is bound.

    send: the path must exist and be accessible.
    recv: the directory is created (with parents) if needed.

    Raises:
        StartupError: with a message suitable for the terminal
    """
    mode = Mode(mode)
    path = Path(path)

    if mode is Mode.SEND:
        try:
            os.stat(path)
        except OSError as e:
            raise StartupError(f"cannot access '{path}': {e.strerror or e}") from e
    else:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StartupError(f"cannot create directory '{path}': {e.strerror or e}") from e
        if not path.is_dir():
            raise StartupError(f"cannot create directory '{path}': not a directory")

    return path.resolve()


class FileServer:
    """
    A single transfer session.

    Args:
        mode: "send" to serve a file/directory, "recv" to accept uploads
        path: the served path or the receive directory
        auto_exit: whether the process should stop after a terminal phase
        chunk_size: bytes moved per read/write step
    """

    def __init__(self, mode: Union[str, Mode], path: Union[str, Path],
                 auto_exit: bool = False, chunk_size: int = CHUNK_SIZE,
                 log_capacity: int = LOG_CAPACITY,
                 subscriber_buffer: int = SUBSCRIBER_BUFFER):
        self.mode = Mode(mode)
        self.path = Path(path)
        self.auto_exit = auto_exit

        self.status = TransferStatus(self.mode, self.path.resolve().name)
        self.log = TransferLog(log_capacity)
        self.gate = AdmissionGate()
        self.events = EventBroadcaster(subscriber_buffer)

        self.sender = FileSender(self, chunk_size)
        self.receiver = UploadReceiver(self, chunk_size)

    @property
    def target_name(self) -> str:
        return self.status.target_name

    # === Snapshots & Notifications ===

    def snapshot(self, status: Optional[StatusSnapshot] = None) -> StatusSnapshot:
        """Status snapshot with the gate's current holder as client_ip."""
        if status is None:
            status = self.status.snapshot()
        # status lock is already released here; the gate has its own
        return replace(status, client_ip=self.gate.holder)

    def broadcast_status(self, status: Optional[StatusSnapshot] = None):
        """Push a snapshot to every observer."""
        self.events.publish(self.snapshot(status).to_json())

    def add_log(self, message: str):
        """Append to the transfer log and notify observers."""
        self.log.append(message)
        logger.info(message)
        self.broadcast_status()

    # === Admission ===

    def require_mode(self, mode: Mode):
        if self.mode is not mode:
            raise ModeMismatchError(mode.value)

    def admit(self, peer: str):
        """
        Claim the transfer slot for a peer.

        Raises:
            PeerBusyError: if another peer holds the slot
        """
        if not self.gate.try_acquire(peer):
            holder = self.gate.holder or ""
            logger.warning(f"Rejected {peer}: {holder} is active")
            raise PeerBusyError(peer, holder)
        self.add_log(f"Client {peer} connected")

    def release_peer(self, peer: str):
        """Free the slot if this peer holds it."""
        if self.gate.release(peer):
            self.add_log(f"Client {peer} disconnected")

    # === Transfer Progress ===

    def begin_transfer(self, peer: str, size: int) -> int:
        """Start a new attempt for an admitted peer. Returns the attempt number."""
        attempt = self.status.begin(peer, size)
        self.broadcast_status()
        return attempt

    def is_live(self, attempt: int) -> bool:
        return self.status.is_live(attempt)

    def report_progress(self, attempt: int, transferred: int) -> bool:
        """
        Record progress of an attempt.

        Returns:
            False once the attempt is no longer live (cancelled or
            superseded), telling the caller to stop
        """
        snapshot = self.status.advance(attempt, transferred)
        if snapshot is None:
            return False
        self.broadcast_status(snapshot)
        return True

    def complete_transfer(self, attempt: int, message: str) -> bool:
        snapshot = self.status.complete(attempt)
        if snapshot is None:
            return False
        self.broadcast_status(snapshot)
        self.add_log(message)
        return True

    def fail_transfer(self, attempt: int, message: str) -> bool:
        snapshot = self.status.fail(attempt, message)
        if snapshot is None:
            return False
        logger.error(f"Transfer failed: {message}")
        self.broadcast_status(snapshot)
        self.add_log(f"Transfer failed: {message}")
        return True

    def cancel(self, peer: str) -> Phase:
        """
        Cancel the session on behalf of any caller.

        Frees the slot whoever holds it and forces phase cancelled. An
        in-flight chunk loop stops at its next chunk boundary.
        """
        previous = self.gate.clear()
        if previous is not None:
            self.add_log(f"Client {previous} disconnected")
        snapshot = self.status.cancel()
        self.broadcast_status(snapshot)
        self.add_log(f"Transfer cancelled by {peer}")
        return snapshot.status

    # === Lifecycle ===

    async def wait_for_terminal(self, poll_interval: float = 0.1) -> Phase:
        """Block until the session reaches completed, cancelled or error."""
        while True:
            phase = self.status.phase
            if phase.is_terminal:
                return phase
            await asyncio.sleep(poll_interval)

    def get_stats(self) -> dict:
        """Get session statistics."""
        return {
            'mode': self.mode.value,
            'target': self.target_name,
            'phase': self.status.phase.value,
            'observers': self.events.subscriber_count,
            'messages_dropped': self.events.messages_dropped,
            'log_entries': len(self.log),
            'downloads_completed': self.sender.downloads_completed,
            'bytes_sent': self.sender.bytes_sent,
            'uploads_completed': self.receiver.uploads_completed,
            'bytes_received': self.receiver.bytes_received,
        }
