from __future__ import annotations

import csv
import io
import json

from ghcontrib.aggregate import ContributionRecord, Synopsis
from ghcontrib.render import CSV_HEADER, to_csv, to_json

SYNOPSIS = Synopsis(
    pr_creators=(
        ContributionRecord("alice", name="Alice", url="https://github.com/alice", count=2),
    ),
    reviewers=(ContributionRecord("bob", count=1),),
    commit_authors=(ContributionRecord("carol", name="Carol, Jr.", count=3),),
)


def test_json_uses_camel_case_categories() -> None:
    payload = json.loads(to_json(SYNOPSIS))

    assert payload["prCreators"] == [
        {
            "login": "alice",
            "name": "Alice",
            "url": "https://github.com/alice",
            "email": None,
            "count": 2,
        }
    ]
    assert payload["commitAuthors"][0]["count"] == 3
    assert payload["issueCreators"] == []


def test_json_passes_plain_values_through() -> None:
    out = to_json(["one", "two"])

    assert out.endswith("\n")
    assert json.loads(out) == ["one", "two"]
    assert to_json(None) == "null\n"


def test_csv_has_one_row_per_contributor() -> None:
    rows = list(csv.reader(io.StringIO(to_csv(SYNOPSIS))))

    assert rows == [
        CSV_HEADER,
        ["pr creator", "alice", "Alice", "2"],
        ["reviewer", "bob", "", "1"],
        ["commit author", "carol", "Carol, Jr.", "3"],
    ]


def test_csv_without_headers() -> None:
    assert to_csv(Synopsis(), headers=False) == ""
    assert to_csv(Synopsis()) == "TYPE,LOGIN,NAME,COUNT\n"
