from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from ghcontrib.aggregate import Synopsis, parse_time
from ghcontrib.config import ClientConfig, load_client_config
from ghcontrib.contributors import (
    org_contributors,
    repo_contributors,
    user_contributors,
    user_repo_names,
)
from ghcontrib.env import load_dotenv
from ghcontrib.graphql.client import GraphQLClient
from ghcontrib.graphql.errors import GraphQLClientError, MissingTokenError
from ghcontrib.logging_config import setup_logging
from ghcontrib.render import to_csv, to_json

logger = logging.getLogger(__name__)

EPILOG = """\
Authentication:
  A GitHub token is read from --token, else GITHUB_TOKEN (a local .env file
  is honored).

Examples:
  ghcontrib -u ipfs -r ipfs --after 2016-01-15T00:20:24Z --before 2016-01-20T00:20:24Z
  ghcontrib -o ipfs -a 2017-01-01 > ipfs-contrib-2017.json
"""


def _date(value: str) -> datetime:
    try:
        return parse_time(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ghcontrib",
        description="Name the contributors of a GitHub repository, user or organization.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-a", "--after", type=_date, help="only contributions after this date")
    p.add_argument("-b", "--before", type=_date, help="only contributions before this date")
    p.add_argument("-o", "--org", help="search all repos within this organization")
    p.add_argument("-r", "--repo", help="repository to search (requires --user)")
    p.add_argument("-u", "--user", help="user to which the repository belongs")
    p.add_argument("-t", "--token", help="GitHub auth token (default: GITHUB_TOKEN)")
    p.add_argument("-c", "--csv", action="store_true", help="output CSV instead of JSON")
    p.add_argument("--full", action="store_true", help="output the full filtered tree")
    p.add_argument("--commits", action="store_true", help="include commit authors and commit comments")
    p.add_argument("--reactions", action="store_true", help="include reactors")
    p.add_argument("--labels", action="store_true", help="collect labels of created PRs and issues")
    p.add_argument("--list-repos", action="store_true", help="only list the repositories of --user")
    p.add_argument("--wipe-cache", action="store_true", help="delete cached responses before querying")
    p.add_argument("--no-cache", action="store_true", help="do not read or write the response cache")
    p.add_argument("--dry-run", action="store_true", help="ask GitHub for query cost only")
    p.add_argument("-v", "--verbose", action="store_true", help="log query costs")
    p.add_argument("--debug", action="store_true", help="log every query and response")
    return p


def _validate(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if args.org and (args.repo or args.user):
        parser.error("--org cannot be combined with --user/--repo")
    if not args.org and not args.user:
        parser.error("you must specify --org, or --user (optionally with --repo)")
    if args.repo and not args.user:
        parser.error("--repo requires --user")
    if args.list_repos and (args.repo or args.org):
        parser.error("--list-repos only works with --user alone")
    if args.csv and (args.full or args.list_repos):
        parser.error("--csv is only available for contributor summaries")


def _config_from_args(args: argparse.Namespace) -> ClientConfig:
    return load_client_config(
        token=args.token,
        use_cache=False if args.no_cache else None,
        verbose=args.verbose or None,
        debug=args.debug or None,
        dry_run=args.dry_run or None,
    )


async def run(args: argparse.Namespace, config: ClientConfig) -> Any:
    before = args.before or datetime.now(timezone.utc)
    options = {
        "before": before,
        "after": args.after,
        "commits": args.commits,
        "reactions": args.reactions,
        "labels": args.labels,
        "full": args.full,
    }
    async with GraphQLClient(config) as client:
        if args.wipe_cache:
            # Must finish before any query is issued.
            client.wipe_cache()
        if args.list_repos:
            return await user_repo_names(client, login=args.user)
        if args.org:
            return await org_contributors(client, org=args.org, **options)
        if args.repo:
            return await repo_contributors(client, owner=args.user, repo=args.repo, **options)
        return await user_contributors(client, login=args.user, **options)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    _validate(parser, args)

    setup_logging("DEBUG" if args.debug else "INFO" if args.verbose else None)

    try:
        config = _config_from_args(args)
    except ValueError as error:
        print(f"Invalid configuration: {error}", file=sys.stderr)
        return 2

    try:
        result = asyncio.run(run(args, config))
    except MissingTokenError:
        print(
            "Unauthorized: provide a GitHub token with --token or GITHUB_TOKEN.",
            file=sys.stderr,
        )
        return 1
    except GraphQLClientError as error:
        logger.debug("Query failed", exc_info=True)
        print(f"Error: {error}", file=sys.stderr)
        return 1

    if args.csv and isinstance(result, Synopsis):
        out = to_csv(result)
    else:
        out = to_json(result)
    sys.stdout.write(out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
