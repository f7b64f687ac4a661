"""Entry points: who contributed to a repository, organization or user."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ghcontrib import queries
from ghcontrib.aggregate import (
    Synopsis,
    clean_repo,
    merge_repo_results,
    time_filter_full_tree,
)
from ghcontrib.depaginate import Depaginator, prune
from ghcontrib.graphql.client import GraphQLClient
from ghcontrib.graphql.errors import GraphQLError
from ghcontrib.graphql.query import Node

logger = logging.getLogger(__name__)


async def _fetch_pruned(client: GraphQLClient, query: Node, *, name: str) -> Any:
    depaginator = Depaginator(client, page_size=client.config.page_size)
    data = await depaginator.fetch(query, name=name)
    if depaginator.continuations:
        logger.info("%s needed %d continuation queries", name, depaginator.continuations)
    root = prune(query, data)[query.name]
    if root is None and not client.config.dry_run:
        raise GraphQLError(f"{name} not found", payload=data)
    return root


def _options(
    before: datetime | None,
    after: datetime | None,
    commits: bool,
    reactions: bool,
    labels: bool,
) -> dict[str, Any]:
    return {
        "before": before,
        "after": after,
        "commits": commits,
        "reactions": reactions,
        "labels": labels,
    }


async def repo_contributors(
    client: GraphQLClient,
    *,
    owner: str,
    repo: str,
    before: datetime | None = None,
    after: datetime | None = None,
    commits: bool = False,
    reactions: bool = False,
    labels: bool = False,
    full: bool = False,
) -> Synopsis | dict[str, Any] | None:
    """Contributors to ``owner/repo`` between ``after`` and ``before``.

    Returns a Synopsis, or with ``full=True`` the pruned repository tree
    filtered to the window (``None`` if nothing happened in it).
    """
    query = queries.repository(
        owner, repo, **_options(before, after, commits, reactions, labels)
    )
    repository = await _fetch_pruned(client, query, name=f"repository {owner}/{repo}")
    if full:
        return time_filter_full_tree({"repository": repository}, before, after)
    return clean_repo(repository or {}, before, after, labels=labels)


async def _owner_contributors(
    client: GraphQLClient,
    kind: queries.OwnerKind,
    login: str,
    *,
    before: datetime | None,
    after: datetime | None,
    commits: bool,
    reactions: bool,
    labels: bool,
    full: bool,
) -> Synopsis | dict[str, Any] | None:
    query = queries.owner_repositories(
        kind, login, **_options(before, after, commits, reactions, labels)
    )
    owner = await _fetch_pruned(client, query, name=f"{kind} {login}")
    if full:
        return time_filter_full_tree({kind: owner}, before, after)
    repos = (owner or {}).get("repositories") or []
    logger.info("Aggregating %d repositories of %s", len(repos), login)
    return merge_repo_results(
        clean_repo(repo, before, after, labels=labels) for repo in repos
    )


async def org_contributors(
    client: GraphQLClient,
    *,
    org: str,
    before: datetime | None = None,
    after: datetime | None = None,
    commits: bool = False,
    reactions: bool = False,
    labels: bool = False,
    full: bool = False,
) -> Synopsis | dict[str, Any] | None:
    """Contributors to every repository of organization ``org``."""
    return await _owner_contributors(
        client,
        "organization",
        org,
        before=before,
        after=after,
        commits=commits,
        reactions=reactions,
        labels=labels,
        full=full,
    )


async def user_contributors(
    client: GraphQLClient,
    *,
    login: str,
    before: datetime | None = None,
    after: datetime | None = None,
    commits: bool = False,
    reactions: bool = False,
    labels: bool = False,
    full: bool = False,
) -> Synopsis | dict[str, Any] | None:
    """Contributors to every repository owned by user ``login``."""
    return await _owner_contributors(
        client,
        "user",
        login,
        before=before,
        after=after,
        commits=commits,
        reactions=reactions,
        labels=labels,
        full=full,
    )


async def user_repo_names(client: GraphQLClient, *, login: str) -> list[str]:
    query = queries.user_repositories(login)
    user = await _fetch_pruned(client, query, name=f"user repositories {login}")
    return [r["name"] for r in (user or {}).get("repositories") or []]
