"""Deferred queries.

Primary components:
- ``query``: ``SearchQuery``, the immutable composable query object.
- ``provider``: ``AsyncQueryExecutor`` contract and ``SearchQueryProvider``.
- ``translator``: folds expressions into search text and parameters.
- ``expressions``: the expression nodes queries are built from.

Guidance:
- Obtain queries via ``SearchConnection.query(EntityType)``.
"""

from .expressions import Expression, MethodCall, QuerySource
from .provider import AsyncQueryExecutor, SearchQueryProvider
from .query import SearchQuery
from .translator import QueryTranslator, TranslatedQuery

__all__ = [
    "AsyncQueryExecutor",
    "Expression",
    "MethodCall",
    "QuerySource",
    "QueryTranslator",
    "SearchQuery",
    "SearchQueryProvider",
    "TranslatedQuery",
]
