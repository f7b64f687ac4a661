"""GitHub schema adapter: every field name this tool asks GitHub for.

The walker and the aggregator only see the trees built here and the
entity shapes returned by the helpers below, so a schema change stays local
to this module. Bump ``SCHEMA_VERSION`` when the shape of the pruned result
changes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Mapping

from ghcontrib.graphql.query import (
    Edge,
    Node,
    QueryNode,
    edge,
    leaf,
    node,
    noid,
    typed,
)

SCHEMA_VERSION = 3

REPOS_PER_OWNER_PAGE = 25
ITEMS_PER_REPO_PAGE = 100

OwnerKind = Literal["organization", "user"]

USER_FIELDS = (leaf("login"), leaf("name"), leaf("url"), leaf("email"))

# `author` is the Actor interface, which has no id; ask per concrete type.
ACTOR = typed(
    "author",
    {},
    [
        ("User", USER_FIELDS),
        ("Organization", USER_FIELDS),
        ("Bot", (leaf("login"), leaf("url"))),
        ("Mannequin", (leaf("login"), leaf("url"), leaf("email"))),
        ("EnterpriseUserAccount", (leaf("login"), leaf("name"), leaf("url"))),
    ],
)

AUTHORED = (ACTOR, leaf("createdAt"))

REACTIONS = edge("reactions", {}, [node("user", {}, USER_FIELDS), leaf("createdAt")])

LABELS = edge("labels", {}, [leaf("name")])


def _comments(reactions: bool) -> Edge:
    return edge("comments", {}, [*AUTHORED, *((REACTIONS,) if reactions else ())])


def pull_requests(*, reactions: bool = False, labels: bool = False) -> Edge:
    children: list[QueryNode] = [
        *AUTHORED,
        _comments(reactions),
        edge("reviews", {}, AUTHORED),
    ]
    if reactions:
        children.append(REACTIONS)
    if labels:
        children.append(LABELS)
    return edge("pullRequests", {"first": ITEMS_PER_REPO_PAGE}, children)


def issues(*, reactions: bool = False, labels: bool = False) -> Edge:
    children: list[QueryNode] = [*AUTHORED, _comments(reactions)]
    if reactions:
        children.append(REACTIONS)
    if labels:
        children.append(LABELS)
    return edge("issues", {"first": ITEMS_PER_REPO_PAGE}, children)


def commit_history(
    *, after: datetime | None = None, before: datetime | None = None
) -> Node:
    """Commits on the default branch, narrowed server-side to the window."""
    args: dict[str, Any] = {"first": ITEMS_PER_REPO_PAGE}
    if after is not None:
        args["since"] = after
    if before is not None:
        args["until"] = before
    history = edge(
        "history",
        args,
        [noid("author", {}, [node("user", {}, USER_FIELDS)]), leaf("committedDate")],
    )
    return node(
        "defaultBranchRef",
        {},
        [typed("target", {}, [("Commit", [leaf("id"), history])])],
    )


def repository_fields(
    *,
    after: datetime | None = None,
    before: datetime | None = None,
    commits: bool = False,
    reactions: bool = False,
    labels: bool = False,
) -> list[QueryNode]:
    fields: list[QueryNode] = [
        leaf("nameWithOwner"),
        pull_requests(reactions=reactions, labels=labels),
        issues(reactions=reactions, labels=labels),
    ]
    if commits:
        fields.append(commit_history(after=after, before=before))
        fields.append(edge("commitComments", {"first": ITEMS_PER_REPO_PAGE}, AUTHORED))
    return fields


def repository(owner: str, name: str, **options: Any) -> Node:
    """Query for all contributions to one repository."""
    return node("repository", {"owner": owner, "name": name}, repository_fields(**options))


def owner_repositories(kind: OwnerKind, login: str, **options: Any) -> Node:
    """Query for contributions to every repository of an organization or user."""
    return node(
        kind,
        {"login": login},
        [
            edge(
                "repositories",
                {"first": REPOS_PER_OWNER_PAGE},
                repository_fields(**options),
            )
        ],
    )


def user_repositories(login: str) -> Node:
    """Query for the names of all repositories of a user."""
    return node(
        "user",
        {"login": login},
        [edge("repositories", {"first": 100}, [leaf("name")])],
    )


def commit_entities(repository: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Present pruned commits as authored entities (``author``/``createdAt``)."""
    ref = repository.get("defaultBranchRef") or {}
    target = ref.get("target") or {}
    out: list[dict[str, Any]] = []
    for commit in target.get("history") or []:
        git_actor = commit.get("author") or {}
        out.append({"author": git_actor.get("user"), "createdAt": commit.get("committedDate")})
    return out
