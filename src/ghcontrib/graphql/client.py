from __future__ import annotations

import logging
from typing import Any

import httpx

from ghcontrib.config import ClientConfig, default_cache_dir

from .cache import DiskCache, cache_key
from .errors import MissingTokenError
from .query import QueryNode
from .scheduler import RequestEnvelope, Scheduler
from .serialize import query_cost

logger = logging.getLogger(__name__)


class GraphQLClient:
    """Runs queries through the response cache, then the scheduler.

    Construct once per process and pass it to every call site. Use
    ``async with`` (or ``aclose``) so that shutdown waits for queued
    requests and pending cache writes. Leaving the ``async with`` block
    with an exception cancels whatever is still queued instead.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        cache: DiskCache | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._config = config
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.timeout_sec)

        if cache is None and config.use_cache:
            cache = DiskCache(
                config.cache_dir or default_cache_dir({}),
                ttl_sec=config.cache_ttl_sec,
            )
        self._cache = cache

        self._scheduler = scheduler or Scheduler(
            http_client=self._http,
            endpoint=config.endpoint,
            user_agent=config.user_agent,
            max_concurrent=config.max_concurrent,
            max_per_minute=config.max_per_minute,
            window_sec=config.window_sec,
        )

        self.cache_hits: int = 0
        self.cache_misses: int = 0

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def cache(self) -> DiskCache | None:
        return self._cache

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    async def execute(
        self, query: QueryNode, *, name: str, dry_run: bool | None = None
    ) -> dict[str, Any]:
        """Return the ``data`` object of the response to ``query``."""
        token = self._config.token
        if not token:
            raise MissingTokenError()

        dry = self._config.dry_run if dry_run is None else dry_run
        query_text = query_cost(query, dry)

        key: str | None = None
        if self._cache is not None:
            key = cache_key(query_text, dry)
            cached = await self._cache.get(key)
            if cached is not None:
                self.cache_hits += 1
                log = logger.info if self._config.verbose else logger.debug
                log("Cache hit for %s (cache_hit=True)", name)
                return cached["data"]
            self.cache_misses += 1

        body = await self._scheduler.submit(
            RequestEnvelope(
                token=token,
                query_text=query_text,
                name=name,
                verbose=self._config.verbose,
                debug=self._config.debug,
                dry_run=dry,
            )
        )
        if key is not None:
            self._cache.put(key, body)  # type: ignore[union-attr]
        return body["data"]

    def wipe_cache(self) -> int:
        """Delete every cache entry. Only safe before queries start."""
        if self._cache is None:
            return 0
        return self._cache.wipe()

    async def aclose(self) -> None:
        await self._scheduler.drain()
        if self._cache is not None:
            await self._cache.flush()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> GraphQLClient:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is not None:
            # Nobody is left to read the queued results.
            self._scheduler.cancel_queued()
        await self.aclose()
