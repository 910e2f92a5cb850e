"""
Event Broadcaster

Design Decision: Delivery to Observers
======================================

Options Considered:
1. Blocking delivery (await each subscriber)
   - Every observer sees every update
   - One stalled browser tab stalls the transfer loop
2. Unbounded queues
   - Never blocks, but a dead observer grows memory forever
3. Small bounded queues, drop when full
   - Never blocks, bounded memory
   - Slow observers skip intermediate updates

Decision: Bounded queues with drop-on-full
- Each snapshot is complete, so skipping one loses nothing the next
  one won't carry
- The observer's own loop owns its queue; we only hold a reference
"""

import asyncio
import logging
import threading
from typing import List, Set

logger = logging.getLogger(__name__)

# Per-subscriber queue capacity
SUBSCRIBER_BUFFER = 10


class EventBroadcaster:
    """Best-effort fan-out of status updates to live subscribers."""

    def __init__(self, buffer_size: int = SUBSCRIBER_BUFFER):
        self.buffer_size = buffer_size
        self._subscribers: Set[asyncio.Queue] = set()
        self._lock = threading.Lock()

        # Statistics
        self.messages_dropped = 0

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        """Create and register a delivery queue for a new observer."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.buffer_size)
        with self._lock:
            self._subscribers.add(queue)
        logger.debug(f"Observer subscribed ({self.subscriber_count} active)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        """Remove an observer's queue. Unknown queues are ignored."""
        with self._lock:
            self._subscribers.discard(queue)
        logger.debug(f"Observer unsubscribed ({self.subscriber_count} active)")

    def publish(self, data: str) -> int:
        """
        Offer a message to every subscriber without waiting.

        Returns:
            Number of subscribers that accepted the message
        """
        with self._lock:
            subscribers: List[asyncio.Queue] = list(self._subscribers)

        delivered = 0
        for queue in subscribers:
            try:
                queue.put_nowait(data)
                delivered += 1
            except asyncio.QueueFull:
                self.messages_dropped += 1
        return delivered
