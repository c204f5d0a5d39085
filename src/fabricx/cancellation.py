"""Cooperative cancellation tokens shared by every long-running operation."""

import threading
import time
from typing import List, Optional

from fabricx.errors import OperationCancelled, OperationTimeout


class CancellationToken:
    """Thread-safe cancel flag with an optional monotonic deadline.

    A child token created with :meth:`child` is cancelled together with its
    parent and may carry a tighter deadline of its own.
    """

    def __init__(self, deadline: Optional[float] = None, parent: Optional["CancellationToken"] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: List["CancellationToken"] = []
        self._parent = parent
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline
        if parent is not None:
            parent._register(self)

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "CancellationToken":
        if seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def _register(self, child: "CancellationToken"):
        with self._lock:
            self._children.append(child)
            cancelled = self._event.is_set()
        if cancelled:
            child.cancel()

    def cancel(self):
        self._event.set()
        with self._lock:
            children = list(self._children)
        for child in children:
            child.cancel()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def child(self, timeout: Optional[float] = None) -> "CancellationToken":
        deadline = None if timeout is None else time.monotonic() + timeout
        return CancellationToken(deadline=deadline, parent=self)

    def check(self, operation: str = "operation"):
        if self.cancelled:
            raise OperationCancelled("operation was cancelled", operation=operation)
        if self.expired:
            raise OperationTimeout("deadline exceeded", operation=operation)

    def sleep(self, seconds: float, operation: str = "operation"):
        """Waits up to ``seconds``, waking early on cancellation, then checks the token."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._event.wait(seconds)
        self.check(operation)


def ensure_token(token: Optional[CancellationToken]) -> CancellationToken:
    return token if token is not None else CancellationToken()
