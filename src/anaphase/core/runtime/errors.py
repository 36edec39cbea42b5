from __future__ import annotations

import re


class AnaphaseAIError(Exception):
    """Base class for every error raised by the AI orchestration layer."""


class ConfigurationError(AnaphaseAIError):
    pass


class ProviderTransportError(AnaphaseAIError):
    """A single provider attempt failed: network, timeout or a non-2xx vendor reply."""

    def __init__(self, message: str, *, provider: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ResponseParseError(ProviderTransportError):
    pass


class RetriesExhaustedError(ProviderTransportError):
    def __init__(self, *, provider: str, retries: int, last_error: Exception) -> None:
        super().__init__(
            f"{provider} request failed after {retries} retries: {last_error}",
            provider=provider,
            status_code=getattr(last_error, "status_code", None),
        )
        self.retries = retries
        self.last_error = last_error


class CacheIOError(AnaphaseAIError):
    pass


class ChainExhaustedError(AnaphaseAIError):
    def __init__(self, last_error: Exception | None, *, provider: str | None = None, attempts: int = 0) -> None:
        super().__init__(f"all providers failed, last error: {last_error}")
        self.last_error = last_error
        self.provider = provider
        self.attempts = attempts


class NoProvidersAttemptedError(ChainExhaustedError):
    """The chain held no configured provider, so nothing was tried."""

    def __init__(self, chain: list[str]) -> None:
        super().__init__(None)
        self.chain = list(chain)
        self.args = (f"all providers failed: no providers attempted (chain={self.chain})",)


class ContextCancelledError(AnaphaseAIError):
    pass


class ContextDeadlineExceededError(ContextCancelledError, TimeoutError):
    pass


class ProviderCheckError(AnaphaseAIError):
    def __init__(self, stage: str, cause: Exception) -> None:
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause


def _compact_message(message: str, max_len: int = 220) -> str:
    msg = re.sub(r"\s+", " ", message)
    return msg.strip()[:max_len]


def compact_error_summary(exc: Exception, max_len: int = 220) -> str:
    return f"{exc.__class__.__name__}: {_compact_message(str(exc), max_len=max_len)}"
