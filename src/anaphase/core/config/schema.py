from __future__ import annotations

import re
from datetime import timedelta
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> Any:
    """Accept Go-style durations ("30s", "1m30s", "24h") and bare seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not text:
        return timedelta(0)
    try:
        return timedelta(seconds=float(text))
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        # Leave it to pydantic (ISO 8601 etc.) to accept or reject.
        return value
    return timedelta(seconds=total)


Duration = Annotated[timedelta, BeforeValidator(parse_duration)]


class ProviderConfig(BaseModel):
    enabled: bool = False
    api_key: str = ""
    base_url: str | None = None
    model: str | None = None
    timeout: Duration = timedelta(seconds=30)
    max_retries: int = Field(default=3, ge=0)

    @property
    def usable(self) -> bool:
        return self.enabled and self.api_key != ""


class CacheConfig(BaseModel):
    enabled: bool = True
    directory: str = "~/.anaphase/cache"
    ttl: Duration = timedelta(hours=24)


class TelemetryConfig(BaseModel):
    log_level: str = "INFO"
    json_logs: bool = True


class OrchestratorConfig(BaseModel):
    primary_provider: str = "gemini"
    fallback_providers: list[str] = Field(default_factory=lambda: ["groq", "openai"])
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
