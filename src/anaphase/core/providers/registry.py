from __future__ import annotations

from collections.abc import Callable

from anaphase.core.config.schema import ProviderConfig
from anaphase.core.providers.base import ProviderAdapter
from anaphase.core.providers.gemini_adapter import GeminiAdapter
from anaphase.core.providers.groq_adapter import GroqAdapter
from anaphase.core.providers.openai_adapter import OpenAIAdapter

ProviderFactory = Callable[[ProviderConfig], ProviderAdapter]


class ProviderRegistry:
    """Maps provider names to factories that build adapters from their config."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        self._factories[name] = factory

    def names(self) -> list[str]:
        return sorted(self._factories.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._factories

    def create(self, name: str, config: ProviderConfig) -> ProviderAdapter | None:
        factory = self._factories.get(name)
        if factory is None:
            return None
        return factory(config)


def default_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(GeminiAdapter.name, GeminiAdapter)
    registry.register(GroqAdapter.name, GroqAdapter)
    registry.register(OpenAIAdapter.name, OpenAIAdapter)
    return registry
