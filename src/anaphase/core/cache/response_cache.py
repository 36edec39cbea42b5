"""File-backed response cache keyed by the semantic content of a request.

Each entry lives in ``<directory>/<sha256>.json``. The key ignores which provider produced the
response, so an entry written by one provider satisfies a later lookup routed to another.
Reads fail open: anything unreadable is a miss. Expired entries are removed lazily on lookup.
"""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import AwareDatetime, BaseModel, ValidationError

from anaphase.core.config.schema import CacheConfig
from anaphase.core.providers.base import GenerateRequest, GenerateResponse
from anaphase.core.runtime.errors import CacheIOError
from anaphase.core.telemetry.logging import get_logger

logger = get_logger("anaphase.cache")


class CachedEntry(BaseModel):
    request: GenerateRequest
    response: GenerateResponse
    cached_at: AwareDatetime
    expires_at: AwareDatetime
    prompt_hash: str


def cache_key(request: GenerateRequest) -> str:
    combined = (
        f"{request.system_prompt}|{request.user_prompt}|{request.temperature:.2f}|"
        f"{request.max_tokens}|{request.top_p:.2f}"
    )
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


class ResponseCache:
    def __init__(self, directory: str | Path, ttl: timedelta, enabled: bool = True) -> None:
        self.directory = Path(directory)
        self.ttl = ttl
        self.enabled = enabled

    @classmethod
    def from_config(cls, cfg: CacheConfig) -> ResponseCache:
        return cls(Path(cfg.directory).expanduser(), cfg.ttl, cfg.enabled)

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def path_for(self, request: GenerateRequest) -> Path:
        return self.directory / f"{cache_key(request)}.json"

    def get(self, request: GenerateRequest) -> GenerateResponse | None:
        if not self.enabled:
            return None

        path = self.path_for(request)
        try:
            data = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("cache read failed", path=str(path), error=str(exc))
            return None

        try:
            entry = CachedEntry.model_validate_json(data)
        except ValidationError as exc:
            logger.debug("cache read failed", path=str(path), error=str(exc))
            return None

        if self._now() > entry.expires_at:
            logger.debug("cache entry expired", path=str(path), expired_at=entry.expires_at.isoformat())
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("cache eviction failed", path=str(path), error=str(exc))
            return None

        return entry.response.model_copy(update={"cache_hit": True})

    def set(self, request: GenerateRequest, response: GenerateResponse) -> None:
        if not self.enabled:
            return

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheIOError(f"create cache directory: {exc}") from exc

        digest = cache_key(request)
        now = self._now()
        entry = CachedEntry(
            request=request,
            response=response,
            cached_at=now,
            expires_at=now + self.ttl,
            prompt_hash=digest,
        )
        payload = entry.model_dump_json(indent=2)

        target = self.directory / f"{digest}.json"
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.directory,
                prefix=f".{digest}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
            os.replace(tmp_name, target)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise CacheIOError(f"write cache file: {exc}") from exc

    def clear(self) -> None:
        try:
            shutil.rmtree(self.directory)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise CacheIOError(f"clear cache directory: {exc}") from exc
