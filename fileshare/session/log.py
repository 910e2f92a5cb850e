"""
Transfer Log

A short, human-readable history of what happened in the session,
shown to observers in the web page. Not persisted.
"""

import threading
import time
from collections import deque
from typing import List

# Maximum number of retained entries
LOG_CAPACITY = 100


class TransferLog:
    """
    Bounded FIFO of timestamped messages.

    Once capacity is exceeded the oldest entry is dropped.
    """

    def __init__(self, capacity: int = LOG_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, message: str) -> str:
        """Append a message, returning the stored "[HH:MM:SS] message" entry."""
        entry = f"[{time.strftime('%H:%M:%S')}] {message}"
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self) -> List[str]:
        """Copy of all entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
