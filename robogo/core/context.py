"""Cancellation and deadline signal threaded through step execution."""

from __future__ import annotations

import threading
import time


class ExecutionContext:
    """Cancellation flag plus optional monotonic deadline.

    Child contexts share the parent's cancel event, so cancelling either
    cancels both. A child's deadline is the earlier of its own and the
    parent's.
    """

    def __init__(
        self,
        timeout: float | None = None,
        *,
        parent: ExecutionContext | None = None,
    ) -> None:
        self._event = parent._event if parent is not None else threading.Event()
        deadline = time.monotonic() + timeout if timeout is not None else None
        if parent is not None and parent._deadline is not None:
            deadline = parent._deadline if deadline is None else min(deadline, parent._deadline)
        self._deadline = deadline

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    @property
    def deadline(self) -> float | None:
        return self._deadline

    @property
    def reason(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.expired:
            return "deadline exceeded"
        return ""

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on cancel or deadline.

        Returns True if the wait was interrupted.
        """
        if self.done:
            return True
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(remaining)
            return True
        if self._event.wait(max(0.0, seconds)):
            return True
        return self.done

    def child(self, timeout: float | None = None) -> ExecutionContext:
        return ExecutionContext(timeout, parent=self)
