"""
Transfer Status

The single mutable record describing the session's current transfer.

Phase machine:
```
waiting ──> transferring ──> completed
                 │
                 ├─────────> cancelled
                 └─────────> error
```
completed, cancelled and error are terminal for an attempt. A newly
admitted peer begins a new attempt, which re-enters transferring.

Every mutation returns the snapshot taken under the same lock hold, so a
published snapshot can never show the byte counter going backwards.
Mutations carry the attempt number they belong to; calls from an older
attempt (for example a loop that has not yet noticed a cancel) are
ignored and return None.
"""

import json
import threading
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional


class Mode(Enum):
    """What the session serves."""
    SEND = "send"
    RECV = "recv"


class Phase(Enum):
    """Lifecycle stage of the current transfer."""
    WAITING = "waiting"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETED, Phase.CANCELLED, Phase.ERROR)


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time copy of the transfer status."""
    mode: Mode
    path: str
    size: int
    transferred: int
    progress: float
    status: Phase
    error: Optional[str]
    client_ip: Optional[str]
    start_time: float
    last_update_time: float
    attempt: int

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data['mode'] = self.mode.value
        data['status'] = self.status.value
        data['progress'] = round(self.progress, 2)
        data['error'] = self.error or ""
        data['client_ip'] = self.client_ip or ""
        del data['attempt']
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class TransferStatus:
    """
    Current transfer state, guarded by one lock.

    Args:
        mode: send or recv, fixed for the session
        target_name: display name of the served path
    """

    def __init__(self, mode: Mode, target_name: str):
        self.mode = mode
        self.target_name = target_name

        self._lock = threading.Lock()
        self._size = 0
        self._transferred = 0
        self._phase = Phase.WAITING
        self._error: Optional[str] = None
        self._client_ip: Optional[str] = None
        self._attempt = 0
        self._start_time = time.time()
        self._last_update = self._start_time

    @property
    def phase(self) -> Phase:
        with self._lock:
            return self._phase

    @property
    def attempt(self) -> int:
        with self._lock:
            return self._attempt

    def snapshot(self) -> StatusSnapshot:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> StatusSnapshot:
        # caller holds self._lock
        if self._size > 0:
            progress = min(self._transferred / self._size * 100, 100.0)
        else:
            progress = 0.0
        if self._phase is Phase.COMPLETED:
            progress = 100.0
        return StatusSnapshot(
            mode=self.mode,
            path=self.target_name,
            size=self._size,
            transferred=self._transferred,
            progress=progress,
            status=self._phase,
            error=self._error,
            client_ip=self._client_ip,
            start_time=self._start_time,
            last_update_time=self._last_update,
            attempt=self._attempt,
        )

    def _is_live(self, attempt: int) -> bool:
        return attempt == self._attempt and self._phase is Phase.TRANSFERRING

    def is_live(self, attempt: int) -> bool:
        """True while the given attempt is the current one and still transferring."""
        with self._lock:
            return self._is_live(attempt)

    def begin(self, client_ip: str, size: int) -> int:
        """Start a new attempt. Returns its attempt number."""
        with self._lock:
            self._attempt += 1
            self._phase = Phase.TRANSFERRING
            self._size = max(size, 0)
            self._transferred = 0
            self._error = None
            self._client_ip = client_ip
            self._start_time = self._last_update = time.time()
            return self._attempt

    def advance(self, attempt: int, transferred: int) -> Optional[StatusSnapshot]:
        """Record the running byte count of an attempt."""
        with self._lock:
            if not self._is_live(attempt):
                return None
            self._transferred = max(self._transferred, transferred)
            self._last_update = time.time()
            return self._snapshot()

    def complete(self, attempt: int) -> Optional[StatusSnapshot]:
        """Mark an attempt finished; progress becomes 100."""
        with self._lock:
            if not self._is_live(attempt):
                return None
            # declared size may have been unknown (0) or short
            self._size = max(self._size, self._transferred)
            self._phase = Phase.COMPLETED
            self._last_update = time.time()
            return self._snapshot()

    def fail(self, attempt: int, message: str) -> Optional[StatusSnapshot]:
        """Mark an attempt failed with the underlying error message."""
        with self._lock:
            if not self._is_live(attempt):
                return None
            self._phase = Phase.ERROR
            self._error = message
            self._last_update = time.time()
            return self._snapshot()

    def cancel(self) -> StatusSnapshot:
        """Force the session into cancelled, whatever attempt is running."""
        with self._lock:
            self._phase = Phase.CANCELLED
            self._error = None
            self._last_update = time.time()
            return self._snapshot()
