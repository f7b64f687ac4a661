"""Complete every paginated edge of a response, then optionally prune it.

GitHub paginates each connection independently, at every depth of the
tree. The walker descends the response together with the query that
produced it. Whenever an edge reports ``hasNextPage`` it re-requests that
edge alone, addressed through the parent object's ``id``:

    node(id: "<parent id>"){__typename
    ... on <ParentType>{<edge>(after: "<cursor>", first: <page size>){...}}}

and appends the new page. Pages of one edge are fetched in order; siblings
are walked concurrently, and the first failure cancels the rest.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Iterable, Mapping, Protocol

from ghcontrib.graphql.errors import DepaginationError
from ghcontrib.graphql.query import (
    ID_FIELD,
    NODES_FIELD,
    PAGE_INFO_FIELD,
    TYPENAME_FIELD,
    Edge,
    Fragment,
    Leaf,
    Node,
    Noid,
    QueryNode,
    Typed,
    typed,
)

logger = logging.getLogger(__name__)

BOOKKEEPING_FIELDS = frozenset({ID_FIELD, TYPENAME_FIELD, PAGE_INFO_FIELD})


class QueryExecutor(Protocol):
    async def execute(
        self, query: QueryNode, *, name: str, dry_run: bool | None = None
    ) -> dict[str, Any]: ...


def continuation_query(
    parent_id: str, parent_type: str, query: Edge, cursor: str, page_size: int
) -> Typed:
    """Query for the page of ``query`` that follows ``cursor`` on one parent."""
    return typed(
        "node",
        {"id": parent_id},
        [(parent_type, [query.with_args(after=cursor, first=page_size)])],
    )


def _fields(children: Iterable[QueryNode]) -> Iterable[QueryNode]:
    # Fragment fields live on the enclosing object.
    for child in children:
        if isinstance(child, Fragment):
            yield from _fields(child.children)
        else:
            yield child


def _expect_object(query: QueryNode, value: Any) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise DepaginationError(
            f"Expected an object for {query.name}, got {type(value).__name__}"
        )
    return value


async def _cancel_all(tasks: Iterable[asyncio.Task[Any]]) -> None:
    tasks = list(tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


async def gather_or_cancel(coros: Iterable[Awaitable[Any]]) -> list[Any]:
    """Run ``coros`` concurrently and return their results in order.

    The first failure cancels every sibling that is still running, so their
    queued requests never reach the network, and is then re-raised.
    """
    tasks = [asyncio.ensure_future(c) for c in coros]
    if not tasks:
        return []
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await _cancel_all(tasks)
        raise
    if pending:
        await _cancel_all(pending)
    for task in tasks:
        if task in done and not task.cancelled() and task.exception() is not None:
            raise task.exception()  # type: ignore[misc]
    return [task.result() for task in tasks]


class Depaginator:
    def __init__(self, client: QueryExecutor, *, page_size: int = 100) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._client = client
        self._page_size = page_size
        self.continuations: int = 0

    async def depaginate(self, query: QueryNode, data: Mapping[str, Any]) -> dict[str, Any]:
        """Return ``data`` with the field for ``query`` fully materialized."""
        out = dict(data)
        out[query.name] = await self._walk(query, data.get(query.name), None)
        return out

    async def fetch(self, query: QueryNode, *, name: str) -> dict[str, Any]:
        data = await self._client.execute(query, name=name)
        return await self.depaginate(query, data)

    async def _walk(
        self, query: QueryNode, value: Any, parent: Mapping[str, Any] | None
    ) -> Any:
        if value is None or isinstance(query, Leaf):
            return value
        if isinstance(query, Edge):
            return await self._complete_edge(query, _expect_object(query, value), parent)
        if isinstance(query, Typed):
            obj = _expect_object(query, value)
            branch = query.branch_for(obj.get(TYPENAME_FIELD))
            if branch is None:
                return dict(obj)
            return await self._complete_object(branch.children, obj)
        if isinstance(query, (Node, Noid, Fragment)):
            return await self._complete_object(query.children, _expect_object(query, value))
        raise TypeError(f"Unknown query node: {query!r}")

    async def _complete_object(
        self, children: Iterable[QueryNode], obj: Mapping[str, Any]
    ) -> dict[str, Any]:
        out = dict(obj)
        pending = [
            c for c in _fields(children) if not isinstance(c, Leaf) and c.name in obj
        ]
        results = await gather_or_cancel(
            self._walk(c, obj[c.name], obj) for c in pending
        )
        for child, result in zip(pending, results, strict=True):
            out[child.name] = result
        return out

    async def _complete_edge(
        self, query: Edge, connection: Mapping[str, Any], parent: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        nodes = list(connection.get(NODES_FIELD) or [])
        page_info = connection.get(PAGE_INFO_FIELD) or {}

        while page_info.get("hasNextPage"):
            parent_id = parent.get(ID_FIELD) if parent else None
            parent_type = parent.get(TYPENAME_FIELD) if parent else None
            if not parent_id or not parent_type:
                raise DepaginationError(
                    f"Cannot continue {query.name}: parent has no id/__typename"
                )
            cursor = page_info.get("endCursor")
            if not cursor:
                raise DepaginationError(
                    f"Cannot continue {query.name} on {parent_id}: no endCursor"
                )

            self.continuations += 1
            logger.debug("Continuing %s on %s %s after %s", query.name, parent_type, parent_id, cursor)
            data = await self._client.execute(
                continuation_query(parent_id, parent_type, query, cursor, self._page_size),
                name=f"{parent_type}.{query.name}@{cursor}",
            )
            page = (data.get("node") or {}).get(query.name)
            if not isinstance(page, Mapping):
                raise DepaginationError(
                    f"Continuation of {query.name} on {parent_id} returned no connection"
                )
            nodes.extend(page.get(NODES_FIELD) or [])
            page_info = page.get(PAGE_INFO_FIELD) or {}

        completed = await gather_or_cancel(
            self._walk(query.nodes, n, None) for n in nodes
        )
        out = dict(connection)
        out[NODES_FIELD] = list(completed)
        out[PAGE_INFO_FIELD] = dict(page_info)
        return out


def _prune(query: QueryNode, value: Any) -> Any:
    if value is None or isinstance(query, Leaf):
        return value
    if isinstance(query, Edge):
        return [_prune(query.nodes, n) for n in value.get(NODES_FIELD) or []]
    if isinstance(query, Typed):
        branch = query.branch_for(value.get(TYPENAME_FIELD))
        return _prune_object(branch.children if branch else (), value)
    if isinstance(query, (Node, Noid, Fragment)):
        return _prune_object(query.children, value)
    raise TypeError(f"Unknown query node: {query!r}")


def _prune_object(children: Iterable[QueryNode], obj: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for child in _fields(children):
        if child.name in BOOKKEEPING_FIELDS or child.name not in obj:
            continue
        out[child.name] = _prune(child, obj[child.name])
    return out


def prune(query: QueryNode, data: Mapping[str, Any]) -> dict[str, Any]:
    """Strip ids, typenames and pageInfo; turn every edge into a plain list.

    Must run after ``depaginate``; unfetched pages are silently lost otherwise.
    """
    return {query.name: _prune(query, data.get(query.name))}
