"""
Deferred-callback clocks.

The warp scheduler hands completed warps to a second clock domain: the
recycle happens after a fixed real-time delay, not on a scheduler tick. Any
object with an asyncio-style ``call_later(delay, callback, *args)`` returning
a cancellable handle can serve as that clock:

- ``asyncio`` event loops, when the simulation runs in real time
- ``VirtualTimer``, when a driver steps virtual time explicitly
"""

import heapq
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CancellableHandle(Protocol):
    """Handle returned by ``call_later``."""

    def cancel(self) -> None: ...


@runtime_checkable
class Deferrer(Protocol):
    """Anything that can run a callback after a delay in seconds."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Any: ...


@dataclass
class TimerHandle:
    """Handle for a callback queued on a ``VirtualTimer``."""

    when: float
    callback: Callable[..., Any]
    args: tuple
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class VirtualTimer:
    """
    Virtual-time one-shot timer queue.

    Time is in seconds, like the asyncio loop it stands in for, and only moves
    when ``advance_to`` or ``advance`` is called.
    """

    now: float = 0.0
    _queue: list = field(default_factory=list)
    _seq: itertools.count = field(default_factory=itertools.count)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Queue ``callback(*args)`` to run ``delay`` seconds from now."""
        handle = TimerHandle(when=self.now + max(0.0, delay), callback=callback, args=args)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    def next_deadline(self) -> float | None:
        """Time of the earliest live callback, or None if nothing is queued."""
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)
        return self._queue[0][0] if self._queue else None

    def advance_to(self, when: float) -> int:
        """
        Move time forward, running every callback due by ``when``.

        Returns:
            Number of callbacks run.
        """
        ran = 0
        while True:
            deadline = self.next_deadline()
            if deadline is None or deadline > when:
                break
            _, _, handle = heapq.heappop(self._queue)
            self.now = max(self.now, handle.when)
            handle.callback(*handle.args)
            ran += 1
        self.now = max(self.now, when)
        return ran

    def advance(self, delay: float) -> int:
        """Move time forward by ``delay`` seconds."""
        return self.advance_to(self.now + delay)

    def pending(self) -> int:
        """Number of live callbacks still queued."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def clear(self) -> None:
        """Cancel everything still queued."""
        for _, _, handle in self._queue:
            handle.cancel()
        self._queue.clear()
