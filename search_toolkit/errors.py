"""Exceptions raised by the search toolkit.

Construction and precondition failures (``InvalidArgumentError``,
``InvalidConfigurationError``) are raised to the caller. Runtime faults from
the remote service (``TransientServiceFault`` and friends) are raised by the
client layer; connection operations decide whether to surface or convert them.
"""

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .models import IndexingResult


class SearchToolkitError(Exception):
    """Base exception for search toolkit operations."""
    pass


class InvalidArgumentError(SearchToolkitError, ValueError):
    """A required argument was missing, blank or empty."""

    def __init__(self, argument: str, message: Optional[str] = None):
        self.argument = argument
        super().__init__(message or f"Argument '{argument}' is invalid")


class InvalidConfigurationError(SearchToolkitError, ValueError):
    """Type to index bindings are inconsistent (duplicate types or names)."""
    pass


class IndexNotFoundError(SearchToolkitError, LookupError):
    """No index could be resolved for an entity type."""

    def __init__(self, entity_type: type):
        self.entity_type = entity_type
        name = getattr(entity_type, "__qualname__", repr(entity_type))
        super().__init__(f"Search index for type {name} was not found!")


class TransientServiceFault(SearchToolkitError):
    """The remote service or the transport failed during an operation."""
    pass


class ServiceRequestError(TransientServiceFault):
    """The remote service answered with an unexpected HTTP status."""

    def __init__(self, status_code: int, message: str, operation: str = "request"):
        self.status_code = status_code
        self.operation = operation
        super().__init__(f"{operation} failed with status {status_code}: {message}")


class PartialBatchFailure(SearchToolkitError):
    """A document batch was processed but some documents were not indexed."""

    def __init__(self, results: List["IndexingResult"]):
        self.results = results
        failed = self.failed_keys
        super().__init__(
            f"Failed to index {len(failed)} of {len(results)} documents"
        )

    @property
    def failed_keys(self) -> List[str]:
        """Keys of the documents the service did not acknowledge."""
        return [result.key for result in self.results if not result.succeeded]
