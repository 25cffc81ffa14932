import time
from threading import Event
from typing import Self

from pydantic import ConfigDict
from pydantic import Field

from hostvisor.common.frozen_model import FrozenModel
from hostvisor.errors import CancellationError


class OperationContext(FrozenModel):
    """A cancellable, deadline-bound execution context supplied by the caller of every network operation.

    Children share cancellation with their parent: cancelling a parent is observed by every
    context derived from it, and a child's deadline is never later than its parent's.
    Nothing here retries; callers decide retry policy by how they build the context.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Absolute time.monotonic() value after which the context is done, or None for no deadline.
    deadline: float | None = None
    cancel_event: Event = Field(default_factory=Event)
    parent: "OperationContext | None" = None

    @classmethod
    def build_root(cls, timeout_seconds: float | None = None) -> Self:
        deadline = None if timeout_seconds is None else time.monotonic() + timeout_seconds
        return cls(deadline=deadline)

    def with_timeout(self, timeout_seconds: float) -> "OperationContext":
        """Derive a child context whose deadline is the earlier of its own and this one's."""
        deadline = time.monotonic() + timeout_seconds
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return OperationContext(deadline=deadline, parent=self)

    def cancel(self) -> None:
        self.cancel_event.set()

    def is_cancelled(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self.parent is not None and self.parent.is_cancelled()

    def is_expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def is_done(self) -> bool:
        return self.is_cancelled() or self.is_expired()

    def remaining_seconds(self) -> float | None:
        """Seconds left before the deadline (never negative), or None if there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_done(self) -> None:
        if self.is_cancelled():
            raise CancellationError("operation context was cancelled")
        if self.is_expired():
            raise CancellationError("operation context deadline exceeded")
