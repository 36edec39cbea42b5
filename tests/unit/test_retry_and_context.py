from __future__ import annotations

import gc
import threading
import time

import pytest

from anaphase.core.runtime.context import CallContext
from anaphase.core.runtime.errors import (
    ContextCancelledError,
    ContextDeadlineExceededError,
    ProviderTransportError,
    RetriesExhaustedError,
)
from anaphase.core.runtime.retries import RetryPolicy, run_with_retry_sync


class RecordingContext(CallContext):
    def __init__(self) -> None:
        super().__init__()
        self.sleeps: list[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def _always_failing(counter: dict):
    def fn():
        counter["n"] += 1
        raise ProviderTransportError("groq API error (503): overloaded", provider="groq", status_code=503)

    return fn


def test_backoff_is_linear_in_attempt_index():
    ctx = RecordingContext()
    counter = {"n": 0}

    with pytest.raises(RetriesExhaustedError, match="failed after 3 retries"):
        run_with_retry_sync(
            _always_failing(counter),
            policy=RetryPolicy(max_retries=3, backoff_seconds=1.0),
            ctx=ctx,
            component="groq",
        )

    assert counter["n"] == 4
    assert ctx.sleeps == [1.0, 2.0, 3.0]


def test_zero_retries_means_single_attempt():
    ctx = RecordingContext()
    counter = {"n": 0}
    with pytest.raises(RetriesExhaustedError):
        run_with_retry_sync(_always_failing(counter), policy=RetryPolicy(max_retries=0), ctx=ctx, component="groq")
    assert counter["n"] == 1
    assert ctx.sleeps == []


def test_success_after_failures_reports_attempts():
    ctx = RecordingContext()
    attempts = {"n": 0}
    seen: list[tuple[int, str]] = []

    def flaky():
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise ProviderTransportError("timeout", provider="gemini")
        return "done"

    out = run_with_retry_sync(
        flaky,
        policy=RetryPolicy(max_retries=5, backoff_seconds=0.5),
        ctx=ctx,
        component="gemini",
        on_attempt=lambda attempt, status, err, delay: seen.append((attempt, status)),
    )
    assert out == "done"
    assert ctx.sleeps == [0.5, 1.0]
    assert seen == [(1, "error"), (2, "error"), (3, "ok")]


def test_non_transport_errors_are_not_retried():
    attempts = {"n": 0}

    def broken():
        attempts["n"] += 1
        raise KeyError("bug")

    with pytest.raises(KeyError):
        run_with_retry_sync(broken, policy=RetryPolicy(max_retries=3), ctx=RecordingContext(), component="groq")
    assert attempts["n"] == 1


def test_deadline_interrupts_backoff_sleep():
    ctx = CallContext.background().with_timeout(0.05)
    counter = {"n": 0}
    started = time.monotonic()

    with pytest.raises(ContextDeadlineExceededError):
        run_with_retry_sync(
            _always_failing(counter),
            policy=RetryPolicy(max_retries=3, backoff_seconds=10.0),
            ctx=ctx,
            component="groq",
        )

    assert counter["n"] == 1
    assert time.monotonic() - started < 2.0


def test_cancel_from_another_thread_wakes_sleeper():
    ctx = CallContext.background()
    timer = threading.Timer(0.05, ctx.cancel)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(ContextCancelledError):
            ctx.sleep(10.0)
    finally:
        timer.cancel()
    assert time.monotonic() - started < 2.0


def test_parent_cancel_reaches_child_and_deadlines_nest():
    parent = CallContext.background().with_timeout(5)
    child = parent.with_timeout(60)
    assert child.deadline == parent.deadline
    assert child.remaining() <= 5

    parent.cancel()
    assert child.cancelled
    with pytest.raises(ContextCancelledError):
        child.raise_if_done()


def test_background_context_never_expires():
    ctx = CallContext.background()
    assert ctx.remaining() is None
    assert ctx.error() is None
    ctx.sleep(0)


def test_deadline_error_is_a_timeout_error():
    ctx = CallContext.background().with_timeout(0)
    assert isinstance(ctx.error(), TimeoutError)


def test_dropped_children_are_released_by_parent():
    parent = CallContext.background()
    for _ in range(1000):
        parent.with_timeout(1)
    gc.collect()
    assert len(parent._children) == 0

    kept = parent.with_timeout(5)
    parent.cancel()
    assert kept._cancelled.is_set()
