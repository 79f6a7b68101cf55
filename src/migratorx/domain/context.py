"""Cancellation and deadline context threaded through every run."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field


@dataclass
class RunContext:
    """Cooperative cancellation signal with an optional monotonic deadline.

    Components receive a ``RunContext`` and pass it on to inspector and action
    calls. Nothing is interrupted mid-call; the workflow runner only looks at
    ``done`` between steps.
    """

    deadline: float | None = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def background(cls) -> "RunContext":
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "RunContext":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    @property
    def reason(self) -> str | None:
        if self.cancelled:
            return "cancelled"
        if self.expired:
            return "deadline exceeded"
        return None

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())
