from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from produce_sync.core.errors import StorageError
from produce_sync.domain.models import now_utc, parse_iso, to_iso
from produce_sync.domain.ports import KeyValueStorePort

logger = logging.getLogger(__name__)

CACHE_PREFIX = "offline_cache_"
CACHE_METADATA_KEY = "offline_cache_metadata"
DEFAULT_TTL_MINUTES = 60

FetchFn = Callable[[], Awaitable[Any]]


class CacheUnavailableError(LookupError):
    """Offline (or the fetch failed) and nothing is cached for the key."""


@dataclass(frozen=True)
class CacheResult:
    data: Any
    from_cache: bool
    last_updated: datetime | None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class OfflineCache:
    """Read-through cache of remote lookups, usable without connectivity.

    Values are stored as JSON in the key/value store under ``offline_cache_<key>``;
    freshness lives in a single metadata document.
    """

    def __init__(
        self,
        storage: KeyValueStorePort,
        *,
        is_online: Callable[[], bool],
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._storage = storage
        self._is_online = is_online
        self._ttl_minutes = ttl_minutes
        self._clock = clock
        self._refreshes: set[asyncio.Task[None]] = set()

    async def fetch(
        self,
        key: str,
        fetch_fn: FetchFn,
        *,
        ttl_minutes: int | None = None,
        force_refresh: bool = False,
    ) -> CacheResult:
        self._validate_key(key)
        ttl = self._ttl_minutes if ttl_minutes is None else ttl_minutes

        if not self._is_online():
            cached = self._load(key)
            if cached is not None:
                return cached
            return CacheResult(None, False, None, CacheUnavailableError("Sem conexão e sem dados em cache"))

        if not force_refresh and not self.is_expired(key):
            cached = self._load(key)
            if cached is not None:
                self._refresh_in_background(key, fetch_fn, ttl)
                return cached

        try:
            fresh = await fetch_fn()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cache fetch failed key=%s error=%s", key, exc)
            cached = self._load(key)
            if cached is not None:
                return cached
            return CacheResult(None, False, None, exc)

        saved_at = self._save(key, fresh, ttl)
        return CacheResult(fresh, False, saved_at)

    async def refresh(self, key: str, fetch_fn: FetchFn, *, ttl_minutes: int | None = None) -> CacheResult:
        return await self.fetch(key, fetch_fn, ttl_minutes=ttl_minutes, force_refresh=True)

    def is_expired(self, key: str) -> bool:
        info = self._metadata().get(key)
        if not info:
            return True
        try:
            return self._clock() > parse_iso(info["expires_at"])
        except (KeyError, TypeError, ValueError):
            return True

    def last_updated(self, key: str) -> datetime | None:
        info = self._metadata().get(key) or {}
        try:
            return parse_iso(info["last_updated"])
        except (KeyError, TypeError, ValueError):
            return None

    def clear(self, key: str) -> None:
        self._validate_key(key)
        metadata = self._metadata()
        metadata.pop(key, None)
        try:
            self._storage.remove(f"{CACHE_PREFIX}{key}")
            self._storage.set(CACHE_METADATA_KEY, json.dumps(metadata))
        except StorageError:
            logger.warning("Cache clear failed key=%s", key, exc_info=True)

    def clear_expired(self) -> int:
        metadata = self._metadata()
        now = self._clock()
        expired = []
        for key, info in metadata.items():
            try:
                if parse_iso(info["expires_at"]) < now:
                    expired.append(key)
            except (KeyError, TypeError, ValueError):
                expired.append(key)
        try:
            for key in expired:
                self._storage.remove(f"{CACHE_PREFIX}{key}")
                del metadata[key]
            self._storage.set(CACHE_METADATA_KEY, json.dumps(metadata))
        except StorageError:
            logger.warning("Purging expired cache entries failed", exc_info=True)
        if expired:
            logger.info("Expired cache entries purged count=%s", len(expired))
        return len(expired)

    async def wait_for_refreshes(self) -> None:
        if self._refreshes:
            await asyncio.gather(*list(self._refreshes), return_exceptions=True)

    def _refresh_in_background(self, key: str, fetch_fn: FetchFn, ttl: int) -> None:
        async def _refresh() -> None:
            try:
                fresh = await fetch_fn()
            except Exception as exc:  # noqa: BLE001
                logger.debug("Background cache refresh failed key=%s error=%s", key, exc)
                return
            self._save(key, fresh, ttl)

        task = asyncio.get_running_loop().create_task(_refresh())
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)

    def _load(self, key: str) -> CacheResult | None:
        try:
            raw = self._storage.get(f"{CACHE_PREFIX}{key}")
            if raw is None:
                return None
            data = json.loads(raw)
        except (StorageError, ValueError):
            logger.warning("Cache read failed key=%s", key, exc_info=True)
            return None
        return CacheResult(data, True, self.last_updated(key))

    def _save(self, key: str, value: Any, ttl: int) -> datetime | None:
        now = self._clock()
        metadata = self._metadata()
        metadata[key] = {
            "last_updated": to_iso(now),
            "expires_at": to_iso(now + timedelta(minutes=ttl)),
        }
        try:
            self._storage.set(f"{CACHE_PREFIX}{key}", json.dumps(value, ensure_ascii=False))
            self._storage.set(CACHE_METADATA_KEY, json.dumps(metadata))
        except (StorageError, TypeError, ValueError):
            logger.warning("Cache write failed key=%s; purging expired entries", key, exc_info=True)
            self.clear_expired()
            return None
        return now

    def _metadata(self) -> dict[str, dict[str, str]]:
        try:
            raw = self._storage.get(CACHE_METADATA_KEY)
            parsed = json.loads(raw) if raw else {}
        except (StorageError, ValueError):
            return {}
        return parsed if isinstance(parsed, dict) else {}

    @staticmethod
    def _validate_key(key: str) -> None:
        if not key or f"{CACHE_PREFIX}{key}" == CACHE_METADATA_KEY:
            raise ValueError(f"Invalid cache key: {key!r}")
