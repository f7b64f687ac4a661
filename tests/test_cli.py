from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from ghcontrib import cli
from ghcontrib.graphql.client import GraphQLClient

RATE_LIMIT = {"cost": 1, "remaining": 4999, "resetAt": "2023-11-14T23:13:20Z"}


def _conn(nodes: list[dict[str, Any]]) -> dict[str, Any]:
    return {"pageInfo": {"endCursor": None, "hasNextPage": False}, "nodes": nodes}


REPOSITORY = {
    "id": "R_1",
    "__typename": "Repository",
    "nameWithOwner": "acme/widget",
    "pullRequests": _conn(
        [
            {
                "id": "PR_1",
                "__typename": "PullRequest",
                "author": {"__typename": "User", "login": "alice", "name": "Alice, A."},
                "createdAt": "2017-11-21T10:00:00Z",
                "comments": _conn([]),
                "reviews": _conn([]),
            }
        ]
    ),
    "issues": _conn([]),
}


class FakeGitHub:
    def __init__(self) -> None:
        self.queries: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        query = json.loads(request.content)["query"]
        self.queries.append(query)
        if 'name: "missing"' in query:
            data: dict[str, Any] = {"repository": None}
        elif "repository(owner:" in query:
            data = {"repository": REPOSITORY}
        else:
            data = {
                "user": {
                    "id": "U_1",
                    "__typename": "User",
                    "repositories": _conn(
                        [{"id": "R_1", "__typename": "Repository", "name": "widget"}]
                    ),
                }
            }
        return httpx.Response(
            200,
            json={"data": {"rateLimit": RATE_LIMIT, **data}},
            headers={"X-RateLimit-Remaining": "4999"},
        )


@pytest.fixture
def github(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> FakeGitHub:
    fake = FakeGitHub()

    def client_factory(config):  # noqa: ANN001
        http = httpx.AsyncClient(transport=httpx.MockTransport(fake))
        return GraphQLClient(config, http_client=http)

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "GraphQLClient", client_factory)
    monkeypatch.setenv("GITHUB_TOKEN", "tok")
    monkeypatch.setenv("GHCONTRIB_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.delenv("GHCONTRIB_NO_CACHE", raising=False)
    return fake


def test_requires_a_target(github: FakeGitHub, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main([])

    assert exc.value.code == 2
    assert "--org" in capsys.readouterr().err


@pytest.mark.parametrize(
    "argv",
    [
        ["-o", "acme", "-u", "alice"],
        ["-r", "widget"],
        ["-u", "acme", "-r", "widget", "--list-repos"],
        ["-u", "acme", "-r", "widget", "--full", "--csv"],
        ["-u", "acme", "-a", "not-a-date"],
    ],
)
def test_usage_errors_exit_2(github: FakeGitHub, argv: list[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)

    assert exc.value.code == 2
    assert github.queries == []


def test_repository_summary_as_json(github: FakeGitHub, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["-u", "acme", "-r", "widget", "-a", "2017-11-01", "-b", "2017-12-01"])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert [r["login"] for r in payload["prCreators"]] == ["alice"]
    assert payload["issueCreators"] == []
    assert len(github.queries) == 1


def test_repository_summary_as_csv(github: FakeGitHub, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["-u", "acme", "-r", "widget", "-a", "2017-11-01", "-b", "2017-12-01", "--csv"])

    assert code == 0
    assert capsys.readouterr().out == (
        "TYPE,LOGIN,NAME,COUNT\n" 'pr creator,alice,"Alice, A.",1\n'
    )


def test_list_repos(github: FakeGitHub, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["-u", "acme", "--list-repos"]) == 0

    assert json.loads(capsys.readouterr().out) == ["widget"]


def test_responses_are_cached_until_wiped(github: FakeGitHub) -> None:
    argv = ["-u", "acme", "-r", "widget"]

    assert cli.main(argv) == 0
    assert cli.main(argv) == 0
    assert len(github.queries) == 1

    assert cli.main([*argv, "--wipe-cache"]) == 0
    assert len(github.queries) == 2


def test_no_cache_flag(github: FakeGitHub) -> None:
    argv = ["-u", "acme", "-r", "widget", "--no-cache"]

    cli.main(argv)
    cli.main(argv)

    assert len(github.queries) == 2


def test_missing_token_exits_1(
    github: FakeGitHub, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv("GITHUB_TOKEN")

    assert cli.main(["-u", "acme", "-r", "widget"]) == 1

    assert "Unauthorized" in capsys.readouterr().err
    assert github.queries == []


def test_token_flag_is_used(github: FakeGitHub, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GITHUB_TOKEN")

    assert cli.main(["-u", "acme", "-r", "widget", "-t", "cli-token"]) == 0


def test_query_errors_exit_1(github: FakeGitHub, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["-u", "acme", "-r", "missing"]) == 1

    assert "not found" in capsys.readouterr().err


def test_invalid_environment_exits_2(
    github: FakeGitHub, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("GHCONTRIB_MAX_CONCURRENT", "lots")

    assert cli.main(["-u", "acme", "-r", "widget"]) == 2

    assert "GHCONTRIB_MAX_CONCURRENT" in capsys.readouterr().err


def test_dotenv_supplies_the_token(
    github: FakeGitHub, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("GITHUB_TOKEN")
    (tmp_path / ".env").write_text("GITHUB_TOKEN=from-dotenv\n", encoding="utf-8")

    try:
        assert cli.main(["-u", "acme", "-r", "widget", "--no-cache"]) == 0
    finally:
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
