from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from .errors import (
    AbuseDetected,
    GraphQLError,
    HTTPError,
    NetworkError,
    RateLimitExceeded,
    RateLimitInfo,
    parse_int,
    parse_rate_limit,
)
from .serialize import request_body

logger = logging.getLogger(__name__)

GITHUB_GRAPHQL = "https://api.github.com/graphql"
DEFAULT_USER_AGENT = "ghcontrib"
DEFAULT_BACKOFF_SEC = 60.0


@dataclass(frozen=True, slots=True)
class RequestEnvelope:
    token: str
    query_text: str
    name: str
    verbose: bool = False
    debug: bool = False
    dry_run: bool = False


@dataclass(slots=True)
class _Pending:
    seq: int
    envelope: RequestEnvelope
    future: asyncio.Future[dict[str, Any]]
    attempts: int = 0


def _settle(
    future: asyncio.Future[dict[str, Any]],
    *,
    result: dict[str, Any] | None = None,
    error: BaseException | None = None,
) -> None:
    # The caller may have been cancelled while the request was in flight.
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result or {})


class Scheduler:
    """
    Single FIFO admission queue in front of the GraphQL endpoint.

    A request is admitted only while all of these hold, checked in order:

    - fewer than ``max_concurrent`` requests are in flight;
    - fewer than ``max_per_minute`` requests were admitted in the trailing
      ``window_sec`` seconds;
    - no rate-limit/abuse backoff is active.

    When GitHub reports an exhausted quota (200, ``data: null``,
    ``X-RateLimit-Remaining: 0``) or secondary abuse limit (403 without the
    quota header), the same request goes back to the head of the queue and
    admission stops until the reported wait has passed. Retries are
    unbounded.

    All state lives on the event loop that runs ``submit``.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        endpoint: str = GITHUB_GRAPHQL,
        user_agent: str = DEFAULT_USER_AGENT,
        max_concurrent: int = 3,
        max_per_minute: int = 300,
        window_sec: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if max_per_minute < 1:
            raise ValueError("max_per_minute must be >= 1")
        self._http = http_client
        self._endpoint = endpoint
        self._user_agent = user_agent
        self._max_concurrent = max_concurrent
        self._max_per_minute = max_per_minute
        self._window_sec = window_sec
        self._clock = clock

        self._queue: deque[_Pending] = deque()
        self._seq = itertools.count()
        self._in_flight = 0
        self._admitted = 0
        self._locked = False
        self._unlock_at = 0.0
        self._idle: asyncio.Event | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

        self.requests_sent: int = 0
        self.responses_ok: int = 0
        self.rate_limit_events: int = 0
        self.abuse_events: int = 0
        self.last_rate_limit: RateLimitInfo | None = None

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def idle(self) -> bool:
        return not self._queue and self._in_flight == 0

    async def submit(self, envelope: RequestEnvelope) -> dict[str, Any]:
        future: asyncio.Future[dict[str, Any]] = (
            asyncio.get_running_loop().create_future()
        )
        self._queue.append(_Pending(next(self._seq), envelope, future))
        self._pump()
        return await future

    async def drain(self) -> None:
        while not self.idle:
            await self._idle_event().wait()

    def cancel_queued(self) -> int:
        """Cancel every request that has not been sent yet.

        Requests already in flight are left to finish. Returns how many
        callers were cancelled.
        """
        cancelled = 0
        while self._queue:
            pending = self._queue.popleft()
            if pending.future.cancel():
                cancelled += 1
        if cancelled:
            logger.info("Cancelled %d queued requests", cancelled)
        self._update_idle()
        return cancelled

    def _idle_event(self) -> asyncio.Event:
        if self._idle is None:
            self._idle = asyncio.Event()
            self._update_idle()
        return self._idle

    def _update_idle(self) -> None:
        if self._idle is None:
            return
        if self.idle:
            self._idle.set()
        else:
            self._idle.clear()

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _pump(self) -> None:
        loop = asyncio.get_running_loop()
        while (
            self._queue
            and self._in_flight < self._max_concurrent
            and self._admitted < self._max_per_minute
            and not self._locked
        ):
            pending = self._queue.popleft()
            if pending.future.done():
                continue
            self._in_flight += 1
            self._admitted += 1
            loop.call_later(self._window_sec, self._expire_admission)
            self._spawn(self._dispatch(pending))
        self._update_idle()

    def _expire_admission(self) -> None:
        self._admitted -= 1
        self._pump()

    async def _dispatch(self, pending: _Pending) -> None:
        pending.attempts += 1
        try:
            body = await self._send(pending.envelope)
        except (RateLimitExceeded, AbuseDetected) as signal:
            self._in_flight -= 1
            logger.warning(
                "%s [%s, attempt %d]", signal, pending.envelope.name, pending.attempts
            )
            self._requeue(pending, signal.wait_sec)
            return
        except Exception as error:
            self._in_flight -= 1
            _settle(pending.future, error=error)
        else:
            self._in_flight -= 1
            _settle(pending.future, result=body)
        self._pump()

    def _requeue(self, pending: _Pending, wait_sec: float) -> None:
        # Requests put back keep their original submission order.
        index = 0
        while index < len(self._queue) and self._queue[index].seq < pending.seq:
            index += 1
        self._queue.insert(index, pending)

        deadline = asyncio.get_running_loop().time() + wait_sec
        if self._locked:
            self._unlock_at = max(self._unlock_at, deadline)
        else:
            self._locked = True
            self._unlock_at = deadline
            self._spawn(self._unlock_after_backoff())
        self._update_idle()

    async def _unlock_after_backoff(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            remaining = self._unlock_at - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(remaining)
        self._locked = False
        logger.info("Backoff finished; resuming %d queued requests", len(self._queue))
        self._pump()

    def _headers(self, envelope: RequestEnvelope) -> dict[str, str]:
        return {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "*/*",
            "User-Agent": self._user_agent,
            "Authorization": f"bearer {envelope.token}",
        }

    async def _send(self, envelope: RequestEnvelope) -> dict[str, Any]:
        if envelope.debug:
            logger.debug("Query[%s]: %s", envelope.name, envelope.query_text)
        self.requests_sent += 1
        try:
            response = await self._http.post(
                self._endpoint,
                content=request_body(envelope.query_text),
                headers=self._headers(envelope),
            )
        except httpx.TransportError as error:
            raise NetworkError(
                str(error) or type(error).__name__, url=self._endpoint
            ) from None
        return self._classify(envelope, response)

    def _reset_wait(self, headers: httpx.Headers) -> float:
        reset = parse_int(headers.get("X-RateLimit-Reset"))
        if reset is None:
            return DEFAULT_BACKOFF_SEC
        return max(0.0, reset - self._clock())

    @staticmethod
    def _retry_after(headers: httpx.Headers) -> float:
        raw = headers.get("Retry-After")
        if raw:
            try:
                return max(0.0, float(raw))
            except ValueError:
                pass
        return DEFAULT_BACKOFF_SEC

    def _classify(
        self, envelope: RequestEnvelope, response: httpx.Response
    ) -> dict[str, Any]:
        rate_limit = parse_rate_limit(response.headers)
        if rate_limit is not None:
            self.last_rate_limit = rate_limit
        remaining = response.headers.get("X-RateLimit-Remaining")

        if response.status_code == 403 and remaining is None:
            self.abuse_events += 1
            raise AbuseDetected(wait_sec=self._retry_after(response.headers))

        if response.status_code != 200:
            logger.error(
                "GraphQL request %s failed: status=%s reason=%s",
                envelope.name,
                response.status_code,
                response.reason_phrase,
            )
            raise HTTPError(
                response.reason_phrase or f"HTTP {response.status_code}",
                status=response.status_code,
                url=self._endpoint,
                body=response.text,
                rate_limit=rate_limit,
            )

        try:
            payload = response.json()
        except ValueError:
            raise GraphQLError(
                "GraphQL response is not valid JSON", payload=response.text
            ) from None

        data = payload.get("data") if isinstance(payload, dict) else None
        if data is None and parse_int(remaining) == 0:
            self.rate_limit_events += 1
            raise RateLimitExceeded(
                wait_sec=self._reset_wait(response.headers), rate_limit=rate_limit
            )

        if data is None:
            raise GraphQLError(
                "Graphql error: " + json.dumps(payload, indent=2), payload=payload
            )

        if payload.get("errors"):
            logger.warning(
                "Partial result for %s: %s", envelope.name, json.dumps(payload["errors"])
            )

        self.responses_ok += 1
        level = logging.INFO if envelope.verbose else logging.DEBUG
        logger.log(
            level,
            "Cost of[%s]: (#%d) %s",
            envelope.name,
            self.responses_ok,
            json.dumps(data.get("rateLimit")),
        )
        if envelope.debug:
            logger.debug("Result of[%s]: %s", envelope.name, json.dumps(data, indent=2))
        return payload
