from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from ghcontrib.queries import commit_entities

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_time(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True, slots=True)
class ContributionRecord:
    login: str
    name: str | None = None
    url: str | None = None
    email: str | None = None
    count: int = 1
    labels: tuple[str, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "login": self.login,
            "name": self.name,
            "url": self.url,
            "email": self.email,
            "count": self.count,
        }
        if self.labels is not None:
            out["labels"] = list(self.labels)
        return out


def time_filter(
    before: str | datetime | None = None, after: str | datetime | None = None
) -> Callable[[Iterable[Mapping[str, Any]]], list[Mapping[str, Any]]]:
    """Keep entities with ``after <= createdAt <= before`` (both inclusive)."""
    upper = parse_time(before) if before is not None else datetime.now(timezone.utc)
    lower = parse_time(after) if after is not None else EPOCH

    def apply(entities: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
        out = []
        for entity in entities:
            created = entity.get("createdAt")
            if created is None:
                continue
            if lower <= parse_time(created) <= upper:
                out.append(entity)
        return out

    return apply


def _actor(entity: Mapping[str, Any]) -> Mapping[str, Any] | None:
    actor = entity.get("author") if "author" in entity else entity.get("user")
    if not isinstance(actor, Mapping) or not actor.get("login"):
        # Deleted accounts come back as null; unknown actor types as {}.
        return None
    return actor


def _record(actor: Mapping[str, Any], *, count: int = 1, labels: tuple[str, ...] | None = None) -> ContributionRecord:
    return ContributionRecord(
        login=actor["login"],
        name=actor.get("name"),
        url=actor.get("url"),
        email=actor.get("email"),
        count=count,
        labels=labels,
    )


def users(entities: Iterable[Mapping[str, Any]]) -> list[ContributionRecord]:
    out = []
    for entity in entities:
        actor = _actor(entity)
        if actor is not None:
            out.append(_record(actor))
    return out


def _union(a: tuple[str, ...] | None, b: tuple[str, ...] | None) -> tuple[str, ...] | None:
    if a is None and b is None:
        return None
    merged = list(a or ())
    for label in b or ():
        if label not in merged:
            merged.append(label)
    return tuple(merged)


def merge_contributions(records: Iterable[ContributionRecord]) -> list[ContributionRecord]:
    """Fold records into one per login, in first-seen order.

    The first record of a login keeps its name/url/email; counts add up.
    Inputs are never modified.
    """
    merged: dict[str, ContributionRecord] = {}
    for record in records:
        seen = merged.get(record.login)
        if seen is None:
            merged[record.login] = record
        else:
            merged[record.login] = replace(
                seen,
                count=seen.count + record.count,
                labels=_union(seen.labels, record.labels),
            )
    return list(merged.values())


def merge_arrays(
    a: Iterable[ContributionRecord], b: Iterable[ContributionRecord]
) -> list[ContributionRecord]:
    return merge_contributions([*a, *b])


def _label_names(labels: Any) -> tuple[str, ...]:
    if isinstance(labels, Mapping):
        labels = labels.get("nodes")
    if not isinstance(labels, list):
        return ()
    names: list[str] = []
    for label in labels:
        name = label.get("name") if isinstance(label, Mapping) else None
        if isinstance(name, str) and name not in names:
            names.append(name)
    return tuple(names)


def merge_extended_contributions(
    entities: Iterable[Mapping[str, Any]],
) -> list[ContributionRecord]:
    """Like ``merge_contributions(users(...))`` but also collects label names."""
    records = []
    for entity in entities:
        actor = _actor(entity)
        if actor is None:
            continue
        records.append(
            _record(
                actor,
                count=int(entity.get("count", 1)),
                labels=_label_names(entity.get("labels")),
            )
        )
    return merge_contributions(records)


def sort_by_count(records: Iterable[ContributionRecord]) -> list[ContributionRecord]:
    return sorted(records, key=lambda r: -r.count)


def flatten(lists: Iterable[Iterable[Any]]) -> list[Any]:
    return [x for xs in lists for x in xs]


@dataclass(frozen=True, slots=True)
class Synopsis:
    pr_creators: tuple[ContributionRecord, ...] = ()
    pr_commentators: tuple[ContributionRecord, ...] = ()
    issue_creators: tuple[ContributionRecord, ...] = ()
    issue_commentators: tuple[ContributionRecord, ...] = ()
    reviewers: tuple[ContributionRecord, ...] = ()
    reactors: tuple[ContributionRecord, ...] = ()
    commit_authors: tuple[ContributionRecord, ...] = ()
    commit_commentators: tuple[ContributionRecord, ...] = ()

    def categories(self) -> dict[str, tuple[ContributionRecord, ...]]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def is_empty(self) -> bool:
        return not any(self.categories().values())

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            CATEGORY_KEYS[name]: [r.to_dict() for r in records]
            for name, records in self.categories().items()
        }


CATEGORY_KEYS = {
    "pr_creators": "prCreators",
    "pr_commentators": "prCommentators",
    "issue_creators": "issueCreators",
    "issue_commentators": "issueCommentators",
    "reviewers": "reviewers",
    "reactors": "reactors",
    "commit_authors": "commitAuthors",
    "commit_commentators": "commitCommentators",
}


def merge_repo_results(synopses: Iterable[Synopsis]) -> Synopsis:
    """Combine per-repository synopses category by category."""
    merged: dict[str, list[ContributionRecord]] = {name: [] for name in CATEGORY_KEYS}
    for synopsis in synopses:
        for name, records in synopsis.categories().items():
            merged[name] = merge_arrays(merged[name], records)
    return Synopsis(**{name: tuple(sort_by_count(rs)) for name, rs in merged.items()})


def clean_repo(
    repository: Mapping[str, Any],
    before: str | datetime | None = None,
    after: str | datetime | None = None,
    *,
    labels: bool = False,
) -> Synopsis:
    """Reduce one pruned repository tree to a Synopsis for the time window."""
    tf = time_filter(before, after)

    def process(entities: Iterable[Mapping[str, Any]]) -> tuple[ContributionRecord, ...]:
        return tuple(sort_by_count(merge_contributions(users(tf(entities)))))

    def creators(entities: list[Mapping[str, Any]]) -> tuple[ContributionRecord, ...]:
        if labels:
            return tuple(sort_by_count(merge_extended_contributions(tf(entities))))
        return process(entities)

    prs = repository.get("pullRequests") or []
    issues = repository.get("issues") or []
    pr_comments = flatten(pr.get("comments") or [] for pr in prs)
    issue_comments = flatten(issue.get("comments") or [] for issue in issues)
    reactions = flatten(
        x.get("reactions") or [] for x in (*prs, *issues, *pr_comments, *issue_comments)
    )

    return Synopsis(
        pr_creators=creators(prs),
        pr_commentators=process(pr_comments),
        issue_creators=creators(issues),
        issue_commentators=process(issue_comments),
        reviewers=process(flatten(pr.get("reviews") or [] for pr in prs)),
        reactors=process(reactions),
        commit_authors=process(commit_entities(repository)),
        commit_commentators=process(repository.get("commitComments") or []),
    )


def time_filter_full_tree(
    tree: Any,
    before: str | datetime | None = None,
    after: str | datetime | None = None,
) -> Any:
    """Filter a pruned tree down to the parts active within the window.

    A list keeps its active elements. An object is active when its own
    ``createdAt`` is in range or anything below it is. Objects without lists
    or ``createdAt`` (authors, say) ride along with their parent. Returns
    ``None`` when nothing is active.
    """
    upper = parse_time(before) if before is not None else datetime.now(timezone.utc)
    lower = parse_time(after) if after is not None else EPOCH

    def walk(value: Any) -> tuple[Any, bool]:
        if isinstance(value, list):
            kept = []
            for item in value:
                filtered, active = walk(item)
                if active:
                    kept.append(filtered)
            return kept, bool(kept)
        if isinstance(value, Mapping):
            out: dict[str, Any] = {}
            created = value.get("createdAt")
            active = created is not None and lower <= parse_time(created) <= upper
            for key, child in value.items():
                filtered, child_active = walk(child)
                out[key] = filtered
                active = active or child_active
            return out, active
        return value, False

    filtered, active = walk(tree)
    return filtered if active else None
