from __future__ import annotations

from anaphase.core.providers.openai_compatible import OpenAICompatibleAdapter


class GeminiAdapter(OpenAICompatibleAdapter):
    """Google Gemini through its OpenAI-compatible surface."""

    name = "gemini"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta/openai"
    default_model = "gemini-2.0-flash-exp"
    _compat_suffix = "/v1beta/openai"

    @property
    def endpoint(self) -> str:
        base = self.base_url
        if not base.endswith(self._compat_suffix):
            # Bare host, e.g. https://generativelanguage.googleapis.com
            base = f"{base}{self._compat_suffix}"
        return f"{base}/chat/completions"

    def _normalize_model(self, model: str) -> str:
        return model.removeprefix("models/")
