from __future__ import annotations

import httpx
import pytest

from anaphase.apps import provider_check

_KEY_ENVS = ("GEMINI_API_KEY", "GROQ_API_KEY", "OPENAI_API_KEY", "CLAUDE_API_KEY", "ANAPHASE_CONFIG_FILE")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in _KEY_ENVS:
        monkeypatch.delenv(key, raising=False)


def _write_config(tmp_path, *, groq_key: str = "gsk-test", gemini_key: str = "") -> str:
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
ai:
  primary_provider: groq
  fallback_providers: [gemini]
  providers:
    groq:
      enabled: true
      api_key: "{groq_key}"
      max_retries: 0
    gemini:
      enabled: true
      api_key: "{gemini_key}"
      max_retries: 0
cache:
  directory: {tmp_path / "cache"}
""".strip(),
        encoding="utf-8",
    )
    return str(path)


def _install_client(monkeypatch, handler):
    class FakeClient:
        def __init__(self, *args, **kwargs):
            pass

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def post(self, url, json=None, headers=None):
            return handler(url, json, headers)

    monkeypatch.setattr("anaphase.core.providers.openai_compatible.httpx.Client", FakeClient)


def test_no_action_prints_hint(monkeypatch, capsys):
    monkeypatch.setattr("sys.argv", ["anaphase-providers"])
    assert provider_check.main() == 0
    assert "providers-ready" in capsys.readouterr().out


def test_show_lists_chain_and_configured_providers(tmp_path, monkeypatch, capsys):
    config = _write_config(tmp_path, gemini_key="AIza-test")
    monkeypatch.setattr("sys.argv", ["anaphase-providers", "--config", config, "--show"])

    rc = provider_check.main()
    out = capsys.readouterr().out
    assert rc == 0
    assert "primary=groq fallback=gemini" in out
    assert "configured=gemini,groq" in out


def test_check_providers_reports_ok_and_failures(tmp_path, monkeypatch, capsys):
    config = _write_config(tmp_path, gemini_key="AIza-test")

    def handler(url, payload, headers):
        if "groq" in url:
            return httpx.Response(
                200,
                json={
                    "model": "llama-3.3-70b-versatile",
                    "choices": [{"message": {"content": "OK"}, "finish_reason": "stop"}],
                    "usage": {"prompt_tokens": 9, "completion_tokens": 1},
                },
            )
        return httpx.Response(403, json={"error": {"message": "API key not valid"}})

    _install_client(monkeypatch, handler)
    monkeypatch.setattr("sys.argv", ["anaphase-providers", "--config", config, "--check-providers", "--timeout", "5"])

    rc = provider_check.main()
    out = capsys.readouterr().out
    assert rc == 1
    assert "provider-checks:" in out
    assert "- groq: ok" in out
    assert "- gemini: error=ProviderCheckError: health check failed" in out
    assert "API key not valid" in out


def test_unusable_configuration_exits_non_zero(tmp_path, monkeypatch, capsys):
    config = _write_config(tmp_path, groq_key="")
    monkeypatch.setattr("sys.argv", ["anaphase-providers", "--config", config, "--show"])

    rc = provider_check.main()
    assert rc == 1
    assert "config-invalid" in capsys.readouterr().out


def test_estimate_cost_uses_primary(tmp_path, monkeypatch, capsys):
    config = _write_config(tmp_path)
    monkeypatch.setattr("sys.argv", ["anaphase-providers", "--config", config, "--estimate-cost", "a shop"])

    rc = provider_check.main()
    assert rc == 0
    assert "estimated-cost provider=groq usd=0.000000" in capsys.readouterr().out


def test_clear_cache_works_without_usable_providers(tmp_path, monkeypatch, capsys):
    config = _write_config(tmp_path, groq_key="")
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "stale.json").write_text("{}", encoding="utf-8")
    monkeypatch.setattr("sys.argv", ["anaphase-providers", "--config", config, "--clear-cache"])

    rc = provider_check.main()
    assert rc == 0
    assert "cache-cleared" in capsys.readouterr().out
    assert not cache_dir.exists()
