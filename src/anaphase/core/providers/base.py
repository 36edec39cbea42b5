from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from anaphase.core.runtime.context import CallContext


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    RECITATION = "recitation"
    UNKNOWN = "unknown"

    @classmethod
    def from_vendor(cls, value: str | None) -> FinishReason:
        key = (value or "").strip().lower()
        return _VENDOR_FINISH_REASONS.get(key, cls.UNKNOWN)


_VENDOR_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "end_turn": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "max_tokens": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
    "safety": FinishReason.CONTENT_FILTER,
    "recitation": FinishReason.RECITATION,
}


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int) -> TokenUsage:
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )


class GenerateRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    system_prompt: str = ""
    user_prompt: str = ""
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(default=1024, ge=0)
    top_p: float = 1.0
    metadata: dict[str, str] = Field(default_factory=dict)


class GenerateResponse(BaseModel):
    content: str = ""
    provider: str
    model: str
    duration: timedelta = timedelta(0)
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)
    cost: float = 0.0
    finish_reason: FinishReason = FinishReason.UNKNOWN
    cache_hit: bool = False
    metadata: dict[str, str] = Field(default_factory=dict)


HEALTH_CHECK_REQUEST = GenerateRequest(
    system_prompt="You are a test assistant.",
    user_prompt="Respond with 'OK'",
    temperature=0.0,
    max_tokens=10,
)


class ProviderAdapter(ABC):
    name: str

    @abstractmethod
    def generate(self, request: GenerateRequest, ctx: CallContext | None = None) -> GenerateResponse:
        raise NotImplementedError

    @abstractmethod
    def validate(self) -> None:
        """Raise ``ConfigurationError`` when the adapter cannot be used. No network access."""
        raise NotImplementedError

    def health(self, ctx: CallContext | None = None) -> None:
        """Liveness probe: one minimal generation, raising whatever it raises."""
        self.generate(HEALTH_CHECK_REQUEST, ctx)

    @abstractmethod
    def estimate_cost(self, request: GenerateRequest) -> float:
        raise NotImplementedError
