from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class RateLimitInfo:
    limit: int | None = None
    remaining: int | None = None
    reset_at: str | None = None
    resource: str | None = None


def parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _iso_from_unix_seconds(value: str | None) -> str | None:
    seconds = parse_int(value)
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def parse_rate_limit(headers: Mapping[str, str] | Any) -> RateLimitInfo | None:
    # httpx.Headers lookups are case-insensitive.
    limit = parse_int(headers.get("X-RateLimit-Limit"))
    remaining = parse_int(headers.get("X-RateLimit-Remaining"))
    reset_at = _iso_from_unix_seconds(headers.get("X-RateLimit-Reset"))
    resource = headers.get("X-RateLimit-Resource")

    if limit is None and remaining is None and reset_at is None and resource is None:
        return None
    return RateLimitInfo(
        limit=limit, remaining=remaining, reset_at=reset_at, resource=resource
    )


class GraphQLClientError(RuntimeError):
    """Base class for everything the GraphQL runtime raises."""


class NetworkError(GraphQLClientError):
    def __init__(self, message: str, *, url: str) -> None:
        super().__init__(message)
        self.url = url


class HTTPError(GraphQLClientError):
    def __init__(
        self,
        message: str,
        *,
        status: int,
        url: str,
        body: str = "",
        rate_limit: RateLimitInfo | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.url = url
        self.body = body
        self.rate_limit = rate_limit


class GraphQLError(GraphQLClientError):
    def __init__(self, message: str, *, payload: Any) -> None:
        super().__init__(message)
        self.payload = payload

    @property
    def errors(self) -> list[Any]:
        if isinstance(self.payload, dict) and isinstance(
            self.payload.get("errors"), list
        ):
            return self.payload["errors"]
        return []


class RateLimitExceeded(GraphQLClientError):
    """Primary quota exhausted. Handled inside the scheduler."""

    def __init__(self, *, wait_sec: float, rate_limit: RateLimitInfo | None) -> None:
        super().__init__(f"Rate limit exceeded; retrying in {wait_sec:.1f}s")
        self.wait_sec = wait_sec
        self.rate_limit = rate_limit


class AbuseDetected(GraphQLClientError):
    """Secondary (abuse) limit tripped. Handled inside the scheduler."""

    def __init__(self, *, wait_sec: float) -> None:
        super().__init__(f"Abuse detection triggered; retrying in {wait_sec:.1f}s")
        self.wait_sec = wait_sec


class MissingArgumentsError(GraphQLClientError, ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(f"No args passed to {name}")
        self.name = name


class MissingTokenError(GraphQLClientError):
    def __init__(self) -> None:
        super().__init__("Unauthorized")


class DepaginationError(GraphQLClientError):
    pass
