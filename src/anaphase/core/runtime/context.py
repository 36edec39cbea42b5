"""Caller-owned cancellation and deadline handle passed through generation calls."""

from __future__ import annotations

import threading
import time
import weakref

from anaphase.core.runtime.errors import ContextCancelledError, ContextDeadlineExceededError


class CallContext:
    def __init__(self, *, deadline: float | None = None, parent: CallContext | None = None) -> None:
        self._cancelled = threading.Event()
        # Held weakly: a child nobody references drops out of the set.
        self._children: weakref.WeakSet[CallContext] = weakref.WeakSet()
        self._lock = threading.Lock()
        self.parent = parent
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

    @classmethod
    def background(cls) -> CallContext:
        return cls()

    def with_timeout(self, seconds: float) -> CallContext:
        child = CallContext(deadline=time.monotonic() + max(0.0, seconds), parent=self)
        with self._lock:
            self._children.add(child)
        if self.cancelled:
            child.cancel()
        return child

    def cancel(self) -> None:
        self._cancelled.set()
        with self._lock:
            children = list(self._children)
        for child in children:
            child.cancel()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.parent.cancelled if self.parent is not None else False

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def error(self) -> ContextCancelledError | None:
        if self.cancelled:
            return ContextCancelledError("context cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            return ContextDeadlineExceededError("context deadline exceeded")
        return None

    def raise_if_done(self) -> None:
        err = self.error()
        if err is not None:
            raise err

    def sleep(self, seconds: float) -> None:
        """Block for ``seconds`` unless the context ends first, in which case raise."""
        self.raise_if_done()
        end = time.monotonic() + max(0.0, seconds)
        while True:
            left = end - time.monotonic()
            if left <= 0:
                return
            remaining = self.remaining()
            if remaining is not None:
                left = min(left, remaining)
            self._cancelled.wait(left)
            self.raise_if_done()
