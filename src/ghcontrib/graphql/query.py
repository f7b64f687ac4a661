"""Immutable query trees.

A query is a tree of five node kinds:

- ``Leaf``: a scalar field.
- ``Node``: an object with a stable id. ``id`` and ``__typename`` are always
  selected so that any edge below it can be continued later.
- ``Noid``: an object without an id (``pageInfo``, ``rateLimit``, actors).
- ``Edge``: a paginated connection, always rendered as
  ``pageInfo{endCursor hasNextPage}`` plus a ``nodes`` selection.
- ``Typed``: an interface or union field, one inline fragment per concrete
  type plus ``__typename`` to tell which one came back.

Nodes are frozen; ``add_child`` returns a new tree that shares every
unaffected child, so fragments of a query can be reused freely.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence, Union

from .errors import MissingArgumentsError

DEFAULT_EDGE_FIRST = 1

ID_FIELD = "id"
TYPENAME_FIELD = "__typename"
PAGE_INFO_FIELD = "pageInfo"
NODES_FIELD = "nodes"

_EMPTY_ARGS: Mapping[str, Any] = MappingProxyType({})


def _freeze_args(name: str, args: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if args is None:
        raise MissingArgumentsError(name)
    if not isinstance(args, Mapping):
        raise TypeError(
            f"Args of {name} must be a mapping, got {type(args).__name__}"
        )
    return MappingProxyType(dict(args))


def _freeze_children(name: str, children: Iterable[Any]) -> tuple[Any, ...]:
    # A lone node passed where a list was expected is the usual mistake here.
    if isinstance(children, (str, bytes, *_CHILD_TYPES)) or not isinstance(
        children, Iterable
    ):
        raise TypeError(
            f"Children of {name} must be a sequence of query nodes, got {children!r}"
        )
    out = tuple(children)
    for child in out:
        if not isinstance(child, _CHILD_TYPES):
            raise TypeError(f"Invalid child of {name}: {child!r}")
    return out


@dataclass(frozen=True, slots=True)
class Leaf:
    name: str
    args: Mapping[str, Any] = field(default_factory=lambda: _EMPTY_ARGS)
    children: tuple[QueryNode, ...] = ()

    def add_child(self, child: QueryNode) -> Leaf:
        raise TypeError(f"Leaf {self.name} cannot have children")


@dataclass(frozen=True, slots=True)
class Node:
    name: str
    args: Mapping[str, Any]
    children: tuple[QueryNode, ...] = ()

    @property
    def fields(self) -> tuple[QueryNode, ...]:
        """Children requested by the caller, without the implicit identity leaves."""
        return tuple(
            c
            for c in self.children
            if not (isinstance(c, Leaf) and c.name in (ID_FIELD, TYPENAME_FIELD))
        )

    def add_child(self, child: QueryNode) -> Node:
        return node(self.name, self.args, (*self.fields, child))

    def add_children(self, *children: QueryNode) -> Node:
        return node(self.name, self.args, (*self.fields, *children))


@dataclass(frozen=True, slots=True)
class Noid:
    name: str
    args: Mapping[str, Any]
    children: tuple[QueryNode, ...] = ()

    def add_child(self, child: QueryNode) -> Noid:
        return replace(self, children=self.children + (child,))

    def add_children(self, *children: QueryNode) -> Noid:
        return replace(self, children=self.children + _freeze_children(self.name, children))


@dataclass(frozen=True, slots=True)
class Edge:
    name: str
    args: Mapping[str, Any]
    children: tuple[QueryNode, ...] = ()

    @property
    def page_info(self) -> Noid:
        return self.children[0]

    @property
    def nodes(self) -> Node:
        return self.children[1]

    def add_child(self, child: QueryNode) -> Edge:
        return replace(self, children=(self.page_info, self.nodes.add_child(child)))

    def add_children(self, *children: QueryNode) -> Edge:
        return replace(
            self, children=(self.page_info, self.nodes.add_children(*children))
        )

    def with_args(self, **overrides: Any) -> Edge:
        return replace(self, args=_freeze_args(self.name, {**self.args, **overrides}))


@dataclass(frozen=True, slots=True)
class Fragment:
    """Inline fragment ``... on <on_type>{...}``."""

    on_type: str
    children: tuple[QueryNode, ...] = ()

    @property
    def name(self) -> str:
        return f"... on {self.on_type}"

    @property
    def args(self) -> Mapping[str, Any]:
        return _EMPTY_ARGS

    def add_child(self, child: QueryNode) -> Fragment:
        return replace(self, children=self.children + (child,))


@dataclass(frozen=True, slots=True)
class Typed:
    name: str
    args: Mapping[str, Any]
    children: tuple[Leaf | Fragment, ...] = ()

    @property
    def branches(self) -> dict[str, Fragment]:
        return {c.on_type: c for c in self.children if isinstance(c, Fragment)}

    def branch_for(self, typename: str | None) -> Fragment | None:
        if typename is None:
            return None
        return self.branches.get(typename)

    def add_child(self, child: QueryNode) -> Typed:
        if not isinstance(child, Fragment):
            raise TypeError(
                f"Typed node {self.name} only accepts fragments, got {child!r}"
            )
        return replace(self, children=self.children + (child,))


QueryNode = Union[Leaf, Node, Noid, Edge, Typed, Fragment]

_CHILD_TYPES = (Leaf, Node, Noid, Edge, Typed, Fragment)


def leaf(name: str) -> Leaf:
    return Leaf(name)


def node(
    name: str, args: Mapping[str, Any] | None, children: Iterable[QueryNode] = ()
) -> Node:
    frozen_args = _freeze_args(name, args)
    kids = _freeze_children(name, children)
    present = {c.name for c in kids if isinstance(c, Leaf)}
    implicit = tuple(
        Leaf(n) for n in (ID_FIELD, TYPENAME_FIELD) if n not in present
    )
    return Node(name, frozen_args, kids + implicit)


def noid(
    name: str, args: Mapping[str, Any] | None, children: Iterable[QueryNode] = ()
) -> Noid:
    return Noid(name, _freeze_args(name, args), _freeze_children(name, children))


PAGE_INFO = noid(PAGE_INFO_FIELD, {}, [leaf("endCursor"), leaf("hasNextPage")])


def edge(
    name: str, args: Mapping[str, Any] | None, children: Iterable[QueryNode] = ()
) -> Edge:
    if args is None:
        raise MissingArgumentsError(name)
    frozen_args = _freeze_args(name, {"first": DEFAULT_EDGE_FIRST, **args})
    return Edge(name, frozen_args, (PAGE_INFO, node(NODES_FIELD, {}, children)))


def fragment(on_type: str, children: Iterable[QueryNode]) -> Fragment:
    return Fragment(on_type, _freeze_children(f"... on {on_type}", children))


def typed(
    name: str,
    args: Mapping[str, Any] | None,
    branches: Sequence[tuple[str, Iterable[QueryNode]]],
) -> Typed:
    frozen_args = _freeze_args(name, args)
    fragments = tuple(fragment(on_type, kids) for on_type, kids in branches)
    return Typed(name, frozen_args, (Leaf(TYPENAME_FIELD), *fragments))
