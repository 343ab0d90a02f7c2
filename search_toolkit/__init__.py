"""Typed client toolkit for a remote document-search service.

Subpackages:
- ``search_toolkit.common``: configuration, logging, retry, metrics and small
  shared helpers.
- ``search_toolkit.query``: deferred, composable queries and their provider.

Main entry point:
- ``SearchConnection`` maps entity classes to remote indexes and exposes
  index lifecycle, batch mutation and search operations.

Usage:
- ``async with SearchConnection("svc", "key", "hotels") as conn: ...``
"""

from .attributes import search_index
from .connection import OperationResult, SearchConnection
from .errors import (
    IndexNotFoundError,
    InvalidArgumentError,
    InvalidConfigurationError,
    PartialBatchFailure,
    SearchToolkitError,
    ServiceRequestError,
    TransientServiceFault,
)
from .models import (
    IndexActionType,
    IndexScoringProfiles,
    IndexStatistics,
    ScoringProfile,
    SearchParameters,
    SearchResponse,
)
from .query import SearchQuery, SearchQueryProvider

__all__ = [
    "IndexActionType",
    "IndexNotFoundError",
    "IndexScoringProfiles",
    "IndexStatistics",
    "InvalidArgumentError",
    "InvalidConfigurationError",
    "OperationResult",
    "PartialBatchFailure",
    "ScoringProfile",
    "SearchConnection",
    "SearchParameters",
    "SearchQuery",
    "SearchQueryProvider",
    "SearchResponse",
    "SearchToolkitError",
    "ServiceRequestError",
    "TransientServiceFault",
    "search_index",
]
