"""
Cancellation token shared by a task run and every call it makes
"""

import threading
import time
from typing import Optional


class CancellationToken:
    """
    Cooperative cancellation flag with an optional deadline.

    Task loops check ``cancelled`` at their checkpoints and sleep through
    ``wait()`` so that ``cancel()`` wakes them immediately. Bridge calls ask
    ``timeout_for()`` so that no call outlives the deadline.
    """

    def __init__(self, deadline: Optional[float] = None):
        """
        Args:
            deadline: Absolute ``time.monotonic()`` value after which the
                token counts as cancelled, or None for no deadline
        """
        self._event = threading.Event()
        self.deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None when there is no deadline"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def timeout_for(self, default: float) -> float:
        """Timeout for a blocking call: the default, capped by the deadline"""
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)

    def wait(self, seconds: float) -> bool:
        """
        Sleep for ``seconds`` or until cancelled.

        Returns:
            True if the token was cancelled (caller should stop), False if
            the full interval elapsed
        """
        if seconds <= 0:
            return self.cancelled
        self._event.wait(self.timeout_for(seconds))
        return self.cancelled
