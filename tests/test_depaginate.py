from __future__ import annotations

import asyncio
from typing import Any

import pytest

from ghcontrib.depaginate import Depaginator, continuation_query, gather_or_cancel, prune
from ghcontrib.graphql.errors import DepaginationError
from ghcontrib.graphql.query import Node, QueryNode, Typed, edge, leaf, node, typed
from ghcontrib.graphql.serialize import to_graphql

RATE_LIMIT = {"cost": 1, "remaining": 4000, "resetAt": "2023-11-14T23:13:20Z"}

AUTHOR = typed("author", {}, [("User", [leaf("login")])])

QUERY = node(
    "repository",
    {"owner": "acme", "name": "widget"},
    [
        leaf("nameWithOwner"),
        edge(
            "pullRequests",
            {},
            [leaf("title"), AUTHOR, edge("comments", {}, [leaf("createdAt")])],
        ),
    ],
)


def _conn(nodes: list[dict[str, Any]], cursor: str | None, more: bool) -> dict[str, Any]:
    return {"pageInfo": {"endCursor": cursor, "hasNextPage": more}, "nodes": nodes}


def _pr(pr_id: str, title: str, comments: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": pr_id,
        "__typename": "PullRequest",
        "title": title,
        "author": {"__typename": "User", "login": f"{title}-author"},
        "comments": comments,
    }


def _comment(comment_id: str, created: str) -> dict[str, Any]:
    return {"id": comment_id, "__typename": "IssueComment", "createdAt": created}


class FakeExecutor:
    """Serves the first page of QUERY and continuation pages by (parent, edge, cursor)."""

    def __init__(self, first: dict[str, Any], pages: dict[tuple[str, str, str], dict[str, Any]]) -> None:
        self.first = first
        self.pages = pages
        self.calls: list[tuple[QueryNode, str]] = []

    async def execute(
        self, query: QueryNode, *, name: str, dry_run: bool | None = None
    ) -> dict[str, Any]:
        self.calls.append((query, name))
        await asyncio.sleep(0)
        if isinstance(query, Node):
            return {"rateLimit": RATE_LIMIT, query.name: self.first}
        assert isinstance(query, Typed)
        fragment = query.children[1]
        edge_query = fragment.children[0]
        key = (query.args["id"], edge_query.name, edge_query.args["after"])
        return {
            "rateLimit": RATE_LIMIT,
            "node": {"__typename": fragment.on_type, edge_query.name: self.pages[key]},
        }


def _repository(prs: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": "R_1",
        "__typename": "Repository",
        "nameWithOwner": "acme/widget",
        "pullRequests": prs,
    }


def _three_page_executor() -> FakeExecutor:
    first = _repository(
        _conn([_pr("PR_1", "one", _conn([], None, False))], "c1", True)
    )
    pages = {
        ("R_1", "pullRequests", "c1"): _conn(
            [
                _pr(
                    "PR_2",
                    "two",
                    _conn([_comment("C_1", "2017-11-21T00:00:00Z")], "k1", True),
                )
            ],
            "c2",
            True,
        ),
        ("R_1", "pullRequests", "c2"): _conn(
            [_pr("PR_3", "three", _conn([], None, False))], "c3", False
        ),
        ("PR_2", "comments", "k1"): _conn(
            [_comment("C_2", "2017-11-22T00:00:00Z")], "k2", False
        ),
    }
    return FakeExecutor(first, pages)


def test_continuation_query_addresses_parent_by_id() -> None:
    comments = edge("comments", {}, [leaf("createdAt")])

    text = to_graphql(continuation_query("PR_1", "PullRequest", comments, "abc", 50))

    assert text.startswith(
        'node(id: "PR_1"){__typename\n... on PullRequest{comments(first: 50, after: "abc")'
    )


def test_edges_are_followed_to_the_last_page() -> None:
    executor = _three_page_executor()
    depaginator = Depaginator(executor, page_size=1)

    data = asyncio.run(depaginator.fetch(QUERY, name="repository acme/widget"))

    prs = data["repository"]["pullRequests"]
    assert [pr["title"] for pr in prs["nodes"]] == ["one", "two", "three"]
    assert prs["pageInfo"]["hasNextPage"] is False
    assert depaginator.continuations == 3
    assert len(executor.calls) == 4

    continuation = executor.calls[1][0]
    assert dict(continuation.children[1].children[0].args) == {"first": 1, "after": "c1"}


def test_nested_edges_continue_on_their_own_parent() -> None:
    executor = _three_page_executor()

    data = asyncio.run(Depaginator(executor, page_size=1).fetch(QUERY, name="repo"))

    second = data["repository"]["pullRequests"]["nodes"][1]
    assert [c["id"] for c in second["comments"]["nodes"]] == ["C_1", "C_2"]
    assert second["comments"]["pageInfo"]["hasNextPage"] is False
    names = [name for _, name in executor.calls]
    assert "PullRequest.comments@k1" in names


def test_complete_connections_need_no_requests() -> None:
    executor = FakeExecutor(
        _repository(_conn([_pr("PR_1", "one", _conn([], None, False))], "c1", False)), {}
    )

    data = asyncio.run(Depaginator(executor).fetch(QUERY, name="repo"))

    assert len(executor.calls) == 1
    assert data["rateLimit"] == RATE_LIMIT
    assert data["repository"]["pullRequests"]["nodes"][0]["title"] == "one"


def test_missing_root_is_passed_through() -> None:
    executor = FakeExecutor(None, {})  # type: ignore[arg-type]

    data = asyncio.run(Depaginator(executor).fetch(QUERY, name="repo"))

    assert data["repository"] is None


def test_parent_without_id_cannot_be_continued() -> None:
    first = _repository(_conn([], "c1", True))
    del first["id"]
    executor = FakeExecutor(first, {})

    with pytest.raises(DepaginationError, match="no id"):
        asyncio.run(Depaginator(executor).fetch(QUERY, name="repo"))


def test_next_page_without_cursor_is_an_error() -> None:
    executor = FakeExecutor(_repository(_conn([], None, True)), {})

    with pytest.raises(DepaginationError, match="no endCursor"):
        asyncio.run(Depaginator(executor).fetch(QUERY, name="repo"))


def test_gather_or_cancel_keeps_input_order() -> None:
    async def after(delay: float, value: str) -> str:
        await asyncio.sleep(delay)
        return value

    async def main() -> tuple[list[Any], list[Any]]:
        return await gather_or_cancel([after(0.02, "a"), after(0, "b")]), await gather_or_cancel([])

    assert asyncio.run(main()) == (["a", "b"], [])


def test_gather_or_cancel_stops_siblings_on_first_failure() -> None:
    finished: list[str] = []

    async def fail() -> None:
        await asyncio.sleep(0)
        raise DepaginationError("boom")

    async def slow() -> None:
        await asyncio.sleep(5)
        finished.append("slow")

    async def main() -> None:
        with pytest.raises(DepaginationError, match="boom"):
            await gather_or_cancel([slow(), fail()])

    asyncio.run(main())

    assert finished == []


def test_page_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        Depaginator(FakeExecutor({}, {}), page_size=0)


def test_prune_strips_bookkeeping_and_flattens_edges() -> None:
    executor = _three_page_executor()
    data = asyncio.run(Depaginator(executor, page_size=1).fetch(QUERY, name="repo"))

    pruned = prune(QUERY, data)

    assert set(pruned) == {"repository"}
    repo = pruned["repository"]
    assert repo["nameWithOwner"] == "acme/widget"
    assert "id" not in repo and "__typename" not in repo
    assert [pr["title"] for pr in repo["pullRequests"]] == ["one", "two", "three"]
    assert repo["pullRequests"][0]["author"] == {"login": "one-author"}
    assert repo["pullRequests"][1]["comments"] == [
        {"createdAt": "2017-11-21T00:00:00Z"},
        {"createdAt": "2017-11-22T00:00:00Z"},
    ]


def test_prune_unknown_type_branch_is_empty() -> None:
    query = node("issue", {}, [AUTHOR])
    data = {"issue": {"id": "I_1", "__typename": "Issue", "author": {"__typename": "Bot"}}}

    assert prune(query, data) == {"issue": {"author": {}}}


def test_prune_keeps_null_root() -> None:
    assert prune(QUERY, {"repository": None}) == {"repository": None}
