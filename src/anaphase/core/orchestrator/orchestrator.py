from __future__ import annotations

from time import perf_counter

from anaphase.core.cache.response_cache import ResponseCache
from anaphase.core.config.schema import OrchestratorConfig
from anaphase.core.providers.base import GenerateRequest, GenerateResponse, ProviderAdapter
from anaphase.core.providers.registry import ProviderRegistry, default_registry
from anaphase.core.runtime.context import CallContext
from anaphase.core.runtime.errors import (
    CacheIOError,
    ChainExhaustedError,
    ConfigurationError,
    ContextCancelledError,
    NoProvidersAttemptedError,
    ProviderCheckError,
)
from anaphase.core.telemetry.logging import get_logger

logger = get_logger("anaphase.orchestrator")


class Orchestrator:
    """Cache-first generation across a primary provider and an ordered fallback chain.

    Construction builds one adapter per provider that is enabled, has an API key and has a
    registered factory. Raises ``ConfigurationError`` when none remain.
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        *,
        registry: ProviderRegistry | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        registry = registry or default_registry()

        providers: dict[str, ProviderAdapter] = {}
        for name, provider_cfg in config.providers.items():
            if not provider_cfg.usable:
                continue
            adapter = registry.create(name, provider_cfg)
            if adapter is None:
                logger.warning("provider adapter not registered", provider=name)
                continue
            providers[name] = adapter

        if not providers:
            raise ConfigurationError("no AI providers configured - please set at least one API key")

        self._providers = providers
        self.primary_provider = config.primary_provider
        self.fallback_chain = list(config.fallback_providers)
        self.cache = cache or ResponseCache.from_config(config.cache)

    @property
    def providers(self) -> list[str]:
        return sorted(self._providers.keys())

    def provider_chain(self) -> list[str]:
        # Not deduplicated: a primary listed again in the fallbacks is tried twice.
        return [self.primary_provider, *self.fallback_chain]

    def generate(self, request: GenerateRequest, ctx: CallContext | None = None) -> GenerateResponse:
        ctx = ctx or CallContext.background()

        cached = self.cache.get(request)
        if cached is not None:
            logger.info("cache hit", provider=cached.provider, tokens=cached.tokens_used.total_tokens)
            return cached

        chain = self.provider_chain()
        last_error: Exception | None = None
        last_provider: str | None = None
        attempts = 0

        for provider_name in chain:
            adapter = self._providers.get(provider_name)
            if adapter is None:
                logger.warning("provider not available", provider=provider_name)
                continue

            logger.info("attempting generation", provider=provider_name)
            started = perf_counter()
            attempts += 1
            try:
                response = adapter.generate(request, ctx)
            except ContextCancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "provider failed",
                    provider=provider_name,
                    error=str(exc),
                    duration_ms=round((perf_counter() - started) * 1000, 2),
                )
                last_error = exc
                last_provider = provider_name
                continue

            logger.info(
                "generation successful",
                provider=provider_name,
                tokens=response.tokens_used.total_tokens,
                cost=f"${response.cost:.6f}",
                duration_ms=round(response.duration.total_seconds() * 1000, 2),
            )
            try:
                self.cache.set(request, response)
            except CacheIOError as exc:
                logger.warning("failed to cache response", error=str(exc))
            return response

        if last_error is None:
            raise NoProvidersAttemptedError(chain)
        raise ChainExhaustedError(last_error, provider=last_provider, attempts=attempts) from last_error

    def validate_providers(self, ctx: CallContext | None = None) -> dict[str, Exception | None]:
        """Validate then health-check every configured provider; one live call each."""
        ctx = ctx or CallContext.background()
        results: dict[str, Exception | None] = {}
        for name, adapter in self._providers.items():
            try:
                adapter.validate()
            except ConfigurationError as exc:
                results[name] = ProviderCheckError("validation", exc)
                continue
            try:
                adapter.health(ctx)
            except Exception as exc:  # noqa: BLE001
                results[name] = ProviderCheckError("health check", exc)
                continue
            results[name] = None
        return results

    def estimate_cost(self, request: GenerateRequest) -> float:
        adapter = self._providers.get(self.primary_provider)
        if adapter is None:
            raise ConfigurationError("primary provider not available")
        return adapter.estimate_cost(request)
