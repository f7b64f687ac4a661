"""GraphQL query trees, serialization, errors and transport."""
from .errors import (
    DepaginationError,
    GraphQLClientError,
    GraphQLError,
    HTTPError,
    MissingArgumentsError,
    MissingTokenError,
    NetworkError,
    RateLimitInfo,
)
from .query import Edge, Fragment, Leaf, Node, Noid, QueryNode, Typed, edge, fragment, leaf, node, noid, typed
from .serialize import format_query, query_cost, to_graphql

__all__ = [
    "DepaginationError",
    "GraphQLClientError",
    "GraphQLError",
    "HTTPError",
    "MissingArgumentsError",
    "MissingTokenError",
    "NetworkError",
    "RateLimitInfo",
    "Edge",
    "Fragment",
    "Leaf",
    "Node",
    "Noid",
    "QueryNode",
    "Typed",
    "edge",
    "fragment",
    "leaf",
    "node",
    "noid",
    "typed",
    "format_query",
    "query_cost",
    "to_graphql",
]
