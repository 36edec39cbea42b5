from __future__ import annotations

from dataclasses import dataclass

from anaphase.core.providers.base import GenerateRequest, TokenUsage


@dataclass(frozen=True, slots=True)
class ModelPrice:
    input_per_million: float
    output_per_million: float

    @property
    def free(self) -> bool:
        return self.input_per_million == 0 and self.output_per_million == 0


FREE = ModelPrice(0.0, 0.0)

# USD per 1M tokens. Models not listed here are treated as free.
MODEL_PRICES: dict[str, ModelPrice] = {
    "gemini-1.5-pro": ModelPrice(0.35, 1.05),
    "gemini-1.5-pro-latest": ModelPrice(0.35, 1.05),
    "gemini-1.5-flash": FREE,
    "gemini-1.5-flash-latest": FREE,
    "gemini-2.0-flash-exp": FREE,
    "llama-3.3-70b-versatile": FREE,
    "llama-3.1-8b-instant": FREE,
    "mixtral-8x7b-32768": FREE,
    "gpt-4o-mini": ModelPrice(0.15, 0.60),
    "gpt-4o": ModelPrice(2.50, 10.00),
    "gpt-4-turbo": ModelPrice(10.00, 30.00),
}


def price_for(model: str) -> ModelPrice:
    return MODEL_PRICES.get(model, FREE)


def estimate_input_tokens(request: GenerateRequest) -> int:
    return len(request.system_prompt + request.user_prompt) // 4


def cost_for_tokens(model: str, input_tokens: int, output_tokens: int) -> float:
    price = price_for(model)
    if price.free:
        return 0.0
    return (input_tokens * price.input_per_million + output_tokens * price.output_per_million) / 1_000_000


def cost_for_usage(model: str, usage: TokenUsage) -> float:
    return cost_for_tokens(model, usage.prompt_tokens, usage.completion_tokens)


def estimate_request_cost(model: str, request: GenerateRequest) -> float:
    return cost_for_tokens(model, estimate_input_tokens(request), request.max_tokens)
