"""Render query trees to GraphQL text and to the JSON wire body."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, Mapping

from .errors import MissingArgumentsError
from .query import QueryNode

RATE_LIMIT_FIELDS = "cost, remaining, resetAt"


def escape_arg_value(value: Any) -> str:
    """Render an argument value.

    Strings are emitted as JSON string literals, which GraphQL shares, so a
    value cannot terminate its own quotes and inject query text.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        iso = value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return json.dumps(iso)
    if isinstance(value, date):
        return json.dumps(value.isoformat())
    return str(value)


def args_string(args: Mapping[str, Any]) -> str:
    if not args:
        return ""
    return "(" + ", ".join(f"{k}: {escape_arg_value(v)}" for k, v in args.items()) + ")"


def children_string(children: tuple[QueryNode, ...]) -> str:
    if not children:
        return ""
    return "{" + "\n".join(to_graphql(c) for c in children) + "}"


def to_graphql(item: QueryNode) -> str:
    if item.args is None:
        raise MissingArgumentsError(item.name)
    return item.name + args_string(item.args) + children_string(item.children)


def format_query(item: QueryNode) -> str:
    return "query{" + to_graphql(item) + "}"


def query_cost(item: QueryNode, dry_run: bool = False) -> str:
    """Query text that also asks for the quota state, optionally without running."""
    flag = "true" if dry_run else "false"
    return (
        f"query{{rateLimit(dryRun: {flag}){{{RATE_LIMIT_FIELDS}}}\n"
        + to_graphql(item)
        + "}"
    )


def request_body(query_text: str) -> str:
    return json.dumps({"query": query_text})
