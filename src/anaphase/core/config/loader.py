from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from anaphase.core.config.schema import OrchestratorConfig

CONFIG_ENV = "ANAPHASE_CONFIG_FILE"
DEFAULT_CONFIG_PATH = Path("~/.anaphase/config.yaml")

# Environment keys that override (and enable) a provider's API key.
PROVIDER_KEY_ENV = {
    "gemini": "GEMINI_API_KEY",
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
    "claude": "CLAUDE_API_KEY",
}

DEFAULT_CONFIG_YAML = """\
# Anaphase configuration
version: "1.0"

ai:
  # Tried first
  primary_provider: gemini

  # Tried in order if the primary fails
  fallback_providers:
    - groq
    - openai

  providers:
    gemini:
      enabled: true
      api_key: ${GEMINI_API_KEY}
      base_url: https://generativelanguage.googleapis.com/v1beta/openai
      model: gemini-2.0-flash-exp
      timeout: 30s
      max_retries: 3

    groq:
      enabled: false
      api_key: ${GROQ_API_KEY}
      base_url: https://api.groq.com/openai/v1
      model: llama-3.3-70b-versatile
      timeout: 30s
      max_retries: 3

    openai:
      enabled: false
      api_key: ${OPENAI_API_KEY}
      base_url: https://api.openai.com/v1
      model: gpt-4o-mini
      timeout: 30s
      max_retries: 3

cache:
  enabled: true
  directory: ~/.anaphase/cache
  ttl: 24h

telemetry:
  log_level: INFO
  json_logs: true
"""

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _expand_placeholders(value: Any) -> Any:
    if isinstance(value, str):
        return _PLACEHOLDER.sub(lambda m: os.getenv(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _expand_placeholders(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_placeholders(v) for v in value]
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    content = yaml.safe_load(path.read_text(encoding="utf-8"))
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return content


def _apply_env_overrides(merged: dict[str, Any]) -> None:
    providers = merged.get("providers") or {}
    merged["providers"] = providers
    for name, env_key in PROVIDER_KEY_ENV.items():
        key = os.getenv(env_key)
        if not key:
            continue
        entry = providers.get(name)
        if not isinstance(entry, dict):
            entry = {}
            providers[name] = entry
        entry["api_key"] = key
        entry["enabled"] = True


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    explicit = config_path or os.getenv(CONFIG_ENV)
    return Path(explicit or DEFAULT_CONFIG_PATH).expanduser()


def write_default_config(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")


def load_app_config(config_path: str | Path | None = None, *, create_default: bool = True) -> OrchestratorConfig:
    """Read the YAML config, overlay environment keys and return a resolved value.

    The ``ai:`` section is flattened into the top level of ``OrchestratorConfig``.
    """
    path = resolve_config_path(config_path)
    if create_default and not path.exists():
        write_default_config(path)

    raw = _expand_placeholders(_load_yaml(path))
    ai_section = raw.get("ai") or {}
    if not isinstance(ai_section, dict):
        raise ValueError(f"Config section 'ai' must be a mapping: {path}")

    merged: dict[str, Any] = dict(ai_section)
    for section in ("cache", "telemetry"):
        if raw.get(section) is not None:
            merged[section] = raw[section]

    _apply_env_overrides(merged)

    cache_cfg = merged.get("cache")
    if isinstance(cache_cfg, dict) and isinstance(cache_cfg.get("directory"), str):
        cache_cfg["directory"] = str(Path(cache_cfg["directory"]).expanduser())

    try:
        return OrchestratorConfig.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid Anaphase configuration: {exc}") from exc
