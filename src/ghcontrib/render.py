from __future__ import annotations

import csv
import io
import json
from typing import Any

from ghcontrib.aggregate import Synopsis

CSV_HEADER = ["TYPE", "LOGIN", "NAME", "COUNT"]

CATEGORY_LABELS = {
    "pr_creators": "pr creator",
    "pr_commentators": "pr commentator",
    "issue_creators": "issue creator",
    "issue_commentators": "issue commentator",
    "reviewers": "reviewer",
    "reactors": "reactor",
    "commit_authors": "commit author",
    "commit_commentators": "commit commentator",
}


def to_json(result: Synopsis | Any) -> str:
    payload = result.to_dict() if isinstance(result, Synopsis) else result
    return json.dumps(payload, ensure_ascii=False, indent=2) + "\n"


def to_csv(synopsis: Synopsis, *, headers: bool = True) -> str:
    buf = io.StringIO()
    w = csv.writer(buf, lineterminator="\n")
    if headers:
        w.writerow(CSV_HEADER)
    for name, records in synopsis.categories().items():
        for r in records:
            w.writerow([CATEGORY_LABELS[name], r.login, r.name or "", r.count])
    return buf.getvalue()
