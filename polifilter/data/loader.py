"""Async dataset loader with memoization, request de-duplication and retries.

This is the Data Loader collaborator the services consume. Its contract is
``await load_data(key, fetch_fn)`` plus two notifications:
``load-success {key, data}`` and ``cache-cleared {}``.

Example:
    >>> import asyncio
    >>> loader = DataLoader(retries=0)
    >>> asyncio.run(loader.load_data("parties", lambda: {"parties": []}))
    {'parties': []}
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ..errors import LoadError
from ..events import CACHE_CLEARED, CACHE_HIT, LOAD_ERROR, LOAD_SUCCESS, EventEmitter
from ..services.cache import TTLCache
from ..services.single_flight import SingleFlight

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Union[Any, Awaitable[Any]]]


class DataLoader(EventEmitter):
    """Loads raw datasets by key and memoizes them for ``cache_ttl`` seconds."""

    def __init__(
        self,
        cache_ttl: float = 300.0,
        retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        max_entries: Optional[int] = None,
    ) -> None:
        super().__init__()
        self.retries = max(0, int(retries))
        self.retry_delay = max(0.0, float(retry_delay))
        self.timeout = float(timeout)
        self._cache: TTLCache[Any] = TTLCache(cache_ttl, max_entries=max_entries)
        self._flight = SingleFlight()
        # bumped by set_data/invalidate so a slower fetch cannot overwrite them
        self._versions: Dict[str, int] = {}
        self._metrics: Dict[str, float] = {
            "total_requests": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "errors": 0,
            "average_load_time": 0.0,
            "loads": 0,
        }

    async def load_data(
        self,
        key: str,
        fetch_fn: FetchFn,
        *,
        cache_ttl: Optional[float] = None,
        skip_cache: bool = False,
    ) -> Any:
        """Return the dataset for ``key``, fetching it when not memoized.

        Args:
            key: Dataset key (e.g. ``"parties"``)
            fetch_fn: Sync or async callable producing the raw payload
            cache_ttl: Override of the memo TTL for this key
            skip_cache: Bypass the memo for both read and write

        Raises:
            LoadError: If every attempt failed or timed out
        """
        self._metrics["total_requests"] += 1
        if not skip_cache:
            cached = self._cache.get(key)
            if cached is not None:
                self._metrics["cache_hits"] += 1
                self.emit(CACHE_HIT, {"key": key})
                return cached
            self._metrics["cache_misses"] += 1

        async def _load() -> Any:
            started = time.perf_counter()
            version = self._versions.get(key, 0)
            data = await self._fetch_with_retry(key, fetch_fn)
            self._record_load_time(time.perf_counter() - started)
            if self._versions.get(key, 0) != version:
                logger.info(f"Discarding stale load of {key}: dataset changed during fetch")
                current = self._cache.get(key)
                return data if current is None else current
            if not skip_cache:
                self._cache.set(key, data, ttl_seconds=cache_ttl)
            self.emit(LOAD_SUCCESS, {"key": key, "data": data})
            return data

        try:
            return await self._flight.do(key, _load)
        except LoadError as e:
            self._metrics["errors"] += 1
            self.emit(LOAD_ERROR, {"key": key, "error": e})
            raise

    async def _fetch_with_retry(self, key: str, fetch_fn: FetchFn) -> Any:
        last_error: Optional[BaseException] = None
        for attempt in range(self.retries + 1):
            try:
                return await asyncio.wait_for(self._call(fetch_fn), self.timeout)
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(f"Loading {key} timed out after {self.timeout}s")
                # Timeouts are not retried
                break
            except LoadError as e:
                # Raised by the fetcher itself (missing file, bad JSON): final
                last_error = e
                logger.warning(f"Loading {key} failed: {e}")
                break
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Loading {key} failed (attempt {attempt + 1}/{self.retries + 1}): {e}"
                )
                if attempt < self.retries:
                    await asyncio.sleep(self.retry_delay * (2**attempt))
        raise LoadError(f"Failed to load dataset '{key}': {last_error}", key=key) from (
            last_error
        )

    @staticmethod
    async def _call(fetch_fn: FetchFn) -> Any:
        if inspect.iscoroutinefunction(fetch_fn):
            return await fetch_fn()
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, fetch_fn)
        if inspect.isawaitable(result):
            return await result
        return result

    def _record_load_time(self, seconds: float) -> None:
        loads = self._metrics["loads"] + 1
        avg = self._metrics["average_load_time"]
        self._metrics["average_load_time"] = (avg * (loads - 1) + seconds) / loads
        self._metrics["loads"] = loads

    def set_data(self, key: str, data: Any, cache_ttl: Optional[float] = None) -> None:
        """Replace the dataset for ``key`` and notify subscribers.

        A fetch of ``key`` already in flight finishes without touching the
        cache or emitting ``load-success``.
        """
        self._bump(key)
        self._cache.set(key, data, ttl_seconds=cache_ttl)
        logger.info(f"Dataset {key} updated")
        self.emit(LOAD_SUCCESS, {"key": key, "data": data})

    def get_cached(self, key: str) -> Any:
        return self._cache.get(key)

    def invalidate(self, key: str) -> bool:
        self._bump(key)
        return self._cache.invalidate(key)

    def _bump(self, key: str) -> None:
        self._versions[key] = self._versions.get(key, 0) + 1

    def clear_cache(self) -> None:
        self._cache.clear()
        self.emit(CACHE_CLEARED, {})

    def get_metrics(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self._metrics)
        out["cached_keys"] = len(self._cache)
        out["in_flight"] = len(self._flight)
        return out
