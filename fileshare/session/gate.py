"""
Admission Gate

Design Decision: One Peer at a Time
===================================

Options Considered:
1. Queue waiting peers
   - Fair, but a browser tab left open would block everyone behind it
2. Reject immediately
   - Peer sees "busy" and can retry
3. Allow parallel transfers
   - Progress reporting would no longer describe one transfer

Decision: Reject immediately
- The slot is held by a peer identifier (its address)
- The same peer may re-enter (retried connection, range requests)
- Only the holder's own release, or an explicit cancel, frees the slot
"""

import threading
from typing import Optional


class AdmissionGate:
    """Holds at most one active peer."""

    def __init__(self):
        self._holder: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def holder(self) -> Optional[str]:
        with self._lock:
            return self._holder

    def try_acquire(self, peer: str) -> bool:
        """
        Claim the slot for a peer.

        Returns:
            True if the slot was free or already held by this peer,
            False if a different peer holds it (nothing is changed)
        """
        with self._lock:
            if self._holder is not None and self._holder != peer:
                return False
            self._holder = peer
            return True

    def release(self, peer: str) -> bool:
        """Free the slot if this peer holds it. Returns True if it was freed."""
        with self._lock:
            if self._holder != peer or self._holder is None:
                return False
            self._holder = None
            return True

    def clear(self) -> Optional[str]:
        """Free the slot whoever holds it. Returns the previous holder."""
        with self._lock:
            previous, self._holder = self._holder, None
            return previous
