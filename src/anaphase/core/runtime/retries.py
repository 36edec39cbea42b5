from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception_type, stop_after_attempt

from anaphase.core.runtime.context import CallContext
from anaphase.core.runtime.errors import ProviderTransportError, RetriesExhaustedError

T = TypeVar("T")


@dataclass(slots=True)
class RetryPolicy:
    max_retries: int = 3
    backoff_seconds: float = 1.0

    @property
    def max_attempts(self) -> int:
        return max(0, self.max_retries) + 1

    def delay_for(self, attempt: int) -> float:
        # Linear: the wait before 0-based attempt N is N * backoff_seconds.
        return max(0, attempt) * self.backoff_seconds


def run_with_retry_sync(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    ctx: CallContext,
    component: str,
    on_attempt: Callable[[int, str, Exception | None, float], None] | None = None,
) -> T:
    """Call ``fn`` until it succeeds or ``policy.max_attempts`` attempts fail.

    Only ``ProviderTransportError`` (which includes parse errors) consumes a retry; anything
    else, including context cancellation, propagates unchanged. Backoff sleeps run through
    ``ctx.sleep`` so they stop as soon as the caller's context ends.
    """

    def _wait(state: RetryCallState) -> float:
        return policy.delay_for(state.attempt_number)

    def _after(state: RetryCallState) -> None:
        if on_attempt and state.outcome is not None and state.outcome.failed:
            on_attempt(state.attempt_number, "error", state.outcome.exception(), _wait(state))

    def _attempt() -> T:
        ctx.raise_if_done()
        return fn()

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=_wait,
        retry=retry_if_exception_type(ProviderTransportError),
        sleep=ctx.sleep,
        after=_after,
        reraise=False,
    )
    try:
        value = retrying(_attempt)
    except RetryError as exc:
        last_error = exc.last_attempt.exception()
        raise RetriesExhaustedError(
            provider=component,
            retries=policy.max_retries,
            last_error=last_error,
        ) from last_error
    if on_attempt:
        on_attempt(retrying.statistics.get("attempt_number", 1), "ok", None, 0.0)
    return value
