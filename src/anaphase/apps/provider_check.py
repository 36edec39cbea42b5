from __future__ import annotations

from anaphase.cli import base_parser
from anaphase.core.cache.response_cache import ResponseCache
from anaphase.core.config.loader import load_app_config
from anaphase.core.orchestrator.orchestrator import Orchestrator
from anaphase.core.providers.base import GenerateRequest
from anaphase.core.runtime.context import CallContext
from anaphase.core.runtime.errors import AnaphaseAIError, ConfigurationError, compact_error_summary
from anaphase.core.telemetry.logging import configure_logging


def main() -> int:
    parser = base_parser("anaphase-providers", "Anaphase AI provider diagnostics")
    parser.add_argument("--config", default=None, help="Config file path")
    parser.add_argument("--show", action="store_true", help="Print primary, fallback chain and configured providers")
    parser.add_argument("--check-providers", action="store_true", help="Validate and health-check every provider")
    parser.add_argument("--timeout", type=float, default=30.0, help="Overall timeout for provider checks (seconds)")
    parser.add_argument("--estimate-cost", default=None, metavar="TEXT", help="Estimate primary-provider cost for TEXT")
    parser.add_argument("--max-tokens", type=int, default=1024, help="Output tokens assumed by --estimate-cost")
    parser.add_argument("--clear-cache", action="store_true", help="Remove every cached response")
    args = parser.parse_args()

    if not any([args.show, args.check_providers, args.estimate_cost is not None, args.clear_cache]):
        print("providers-ready (use --show/--check-providers/--estimate-cost/--clear-cache)")
        return 0

    try:
        cfg = load_app_config(args.config)
    except Exception as exc:  # noqa: BLE001
        print(f"config-invalid error={exc}")
        return 1
    configure_logging(cfg.telemetry.log_level, cfg.telemetry.json_logs)

    rc = 0
    if args.clear_cache:
        cache = ResponseCache.from_config(cfg.cache)
        try:
            cache.clear()
        except AnaphaseAIError as exc:
            rc = 1
            print(f"cache-clear-failed error={exc}")
        else:
            print(f"cache-cleared dir={cache.directory}")

    if not any([args.show, args.check_providers, args.estimate_cost is not None]):
        return rc

    try:
        orchestrator = Orchestrator(cfg)
    except ConfigurationError as exc:
        print(f"config-invalid error={exc}")
        return 1

    if args.show:
        print(f"primary={orchestrator.primary_provider} fallback={','.join(orchestrator.fallback_chain)}")
        print(f"configured={','.join(orchestrator.providers)}")
        print(f"cache enabled={orchestrator.cache.enabled} dir={orchestrator.cache.directory}")

    if args.check_providers:
        print("provider-checks:")
        ctx = CallContext.background().with_timeout(args.timeout)
        results = orchestrator.validate_providers(ctx)
        for name in sorted(results):
            err = results[name]
            if err is None:
                print(f"- {name}: ok")
            else:
                rc = 1
                print(f"- {name}: error={compact_error_summary(err)}")

    if args.estimate_cost is not None:
        request = GenerateRequest(user_prompt=args.estimate_cost, max_tokens=args.max_tokens)
        try:
            cost = orchestrator.estimate_cost(request)
        except ConfigurationError as exc:
            rc = 1
            print(f"estimate-failed error={exc}")
        else:
            print(f"estimated-cost provider={orchestrator.primary_provider} usd={cost:.6f}")

    return rc


if __name__ == "__main__":
    raise SystemExit(main())
