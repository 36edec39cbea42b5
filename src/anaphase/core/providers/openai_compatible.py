"""Shared adapter for vendors exposing an OpenAI-style ``/chat/completions`` endpoint."""

from __future__ import annotations

import threading
from datetime import timedelta
from time import perf_counter
from typing import Any

import httpx

from anaphase.core.config.schema import ProviderConfig
from anaphase.core.providers.base import FinishReason, GenerateRequest, GenerateResponse, ProviderAdapter, TokenUsage
from anaphase.core.providers.pricing import cost_for_usage, estimate_request_cost
from anaphase.core.runtime.context import CallContext
from anaphase.core.runtime.errors import ConfigurationError, ProviderTransportError, ResponseParseError
from anaphase.core.runtime.retries import RetryPolicy, run_with_retry_sync
from anaphase.core.telemetry.logging import get_logger

logger = get_logger("anaphase.providers")

_CANCEL_POLL_SECONDS = 0.05


class OpenAICompatibleAdapter(ProviderAdapter):
    name = "openai_compatible"
    default_base_url = ""
    default_model = ""

    def __init__(self, config: ProviderConfig, *, backoff_seconds: float = 1.0) -> None:
        self.api_key = config.api_key
        self.base_url = (config.base_url or self.default_base_url).rstrip("/")
        self.model = (config.model or "").strip() or self.default_model
        self.timeout_seconds = config.timeout.total_seconds()
        self.retry_policy = RetryPolicy(max_retries=config.max_retries, backoff_seconds=backoff_seconds)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _payload(self, request: GenerateRequest) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "top_p": request.top_p,
            "stream": False,
        }

    def generate(self, request: GenerateRequest, ctx: CallContext | None = None) -> GenerateResponse:
        ctx = ctx or CallContext.background()
        started = perf_counter()
        payload = self._payload(request)

        def _on_attempt(attempt: int, status: str, error: Exception | None, delay: float) -> None:
            if status == "error":
                logger.debug(
                    "provider attempt failed",
                    provider=self.name,
                    attempt=attempt,
                    error=str(error),
                    next_delay_s=delay,
                )

        return run_with_retry_sync(
            lambda: self._parse_response(self._post(payload, ctx), started),
            policy=self.retry_policy,
            ctx=ctx,
            component=self.name,
            on_attempt=_on_attempt,
        )

    def _attempt_timeout(self, ctx: CallContext) -> float:
        remaining = ctx.remaining()
        if remaining is None:
            return self.timeout_seconds
        return min(self.timeout_seconds, remaining)

    def _send(self, client: httpx.Client, payload: dict[str, Any], ctx: CallContext) -> httpx.Response:
        """Run the POST on a worker thread so the caller can abandon it when ``ctx`` ends.

        Leaving the client's ``with`` block on cancellation closes it, which tears down the
        in-flight connection; the worker's late result is discarded.
        """
        outcome: dict[str, Any] = {}
        done = threading.Event()

        def _run() -> None:
            try:
                outcome["response"] = client.post(self.endpoint, json=payload, headers=self._headers())
            except Exception as exc:  # noqa: BLE001 - re-raised on the calling thread
                outcome["error"] = exc
            finally:
                done.set()

        threading.Thread(target=_run, name=f"{self.name}-post", daemon=True).start()
        while not done.wait(_CANCEL_POLL_SECONDS):
            ctx.raise_if_done()
        ctx.raise_if_done()
        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

    def _post(self, payload: dict[str, Any], ctx: CallContext) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self._attempt_timeout(ctx)) as client:
                resp = self._send(client, payload, ctx)
        except httpx.HTTPError as exc:
            ctx.raise_if_done()
            raise ProviderTransportError(f"http request: {exc}", provider=self.name) from exc

        if resp.status_code != 200:
            raise ProviderTransportError(
                f"{self.name} API error ({resp.status_code}): {self._error_message(resp)}",
                provider=self.name,
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise ResponseParseError(f"unmarshal response: {exc}", provider=self.name) from exc
        if not isinstance(body, dict):
            raise ResponseParseError("unmarshal response: expected a JSON object", provider=self.name)
        return body

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            envelope = resp.json()
        except ValueError:
            return resp.text
        if isinstance(envelope, list) and envelope:
            # Gemini wraps its error envelope in a single-element list.
            envelope = envelope[0]
        if isinstance(envelope, dict):
            error = envelope.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        return resp.text

    def _parse_response(self, body: dict[str, Any], started: float) -> GenerateResponse:
        content = ""
        finish_reason = None
        try:
            choices = body.get("choices") or []
            if choices:
                message = choices[0].get("message") or {}
                content = str(message.get("content") or "")
                finish_reason = choices[0].get("finish_reason")

            usage_body = body.get("usage") or {}
            usage = TokenUsage.from_counts(
                int(usage_body.get("prompt_tokens") or 0),
                int(usage_body.get("completion_tokens") or 0),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ResponseParseError(f"unexpected response shape: {exc}", provider=self.name) from exc
        model = self._normalize_model(str(body.get("model") or self.model))

        return GenerateResponse(
            content=content,
            provider=self.name,
            model=model,
            duration=timedelta(seconds=perf_counter() - started),
            tokens_used=usage,
            cost=cost_for_usage(model, usage),
            finish_reason=FinishReason.from_vendor(finish_reason),
            cache_hit=False,
        )

    def _normalize_model(self, model: str) -> str:
        return model

    def validate(self) -> None:
        if not self.api_key:
            raise ConfigurationError(f"{self.name} API key is required")

    def estimate_cost(self, request: GenerateRequest) -> float:
        return estimate_request_cost(self.model, request)
