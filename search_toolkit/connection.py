"""Connection to a search service.

``SearchConnection`` resolves entity types to indexes, owns the lazily built
``SearchServiceClient`` and exposes the operations callers use:

- index lifecycle: ``ensure_index``, ``delete_index``,
  ``get_index_statistics``, ``list_indexes``
- batch mutation: ``change_documents``
- search: ``search`` (raw HTTP-level response), ``search_typed`` and the
  deferred ``query`` surface

Index lifecycle and batch operations never raise runtime faults; they log the
fault to the diagnostic sink and report failure. ``search`` re-raises
transport faults after logging, since an empty result would be ambiguous.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union
import structlog

from .client import DEFAULT_API_VERSION, DEFAULT_ENDPOINT_SUFFIX, SearchServiceClient, search_id_headers
from .common.cancellation import run_cancellable
from .common.config import SearchToolkitConfig
from .common.lazy import Lazy
from .common.logging import NULL_SINK, DiagnosticSink, Severity, configure_logging
from .common.metrics import SearchMetrics
from .common.retry import RetryPolicy
from .common.validation import ensure_not_blank, ensure_not_empty, ensure_not_null
from .documents import document_key, from_document, to_document
from .errors import (
    IndexNotFoundError,
    InvalidArgumentError,
    InvalidConfigurationError,
    PartialBatchFailure,
    SearchToolkitError,
    ServiceRequestError,
)
from .fields import FieldBuilder
from .models import (
    IndexAction,
    IndexActionType,
    IndexBatch,
    IndexDefinition,
    IndexScoringProfiles,
    IndexStatistics,
    SearchParameters,
    SearchResponse,
    SearchResults,
)
from .query.provider import SearchQueryProvider
from .query.query import SearchQuery
from .registry import IndexBindings, IndexRegistry

logger = structlog.get_logger("search_toolkit.connection")

T = TypeVar("T")

ChangedDocuments = Union[Mapping[Any, Any], Sequence[Tuple[Any, Any]]]


@dataclass
class OperationResult:
    """Outcome of an index lifecycle operation; truthy on success."""
    succeeded: bool
    reason: Optional[str] = None
    error: Optional[BaseException] = None

    def __bool__(self) -> bool:
        return self.succeeded

    @classmethod
    def ok(cls) -> "OperationResult":
        return cls(succeeded=True)

    @classmethod
    def failed(cls, reason: str, error: Optional[BaseException] = None) -> "OperationResult":
        return cls(succeeded=False, reason=reason, error=error)


class SearchConnection:
    """Typed access to the indexes of one search service.

    Index bindings are configured with one of:

    - ``index`` alone: a placeholder bound to the first type used
    - ``index`` and ``index_type``: a single explicit binding
    - ``indexes``: an explicit ``type -> index name`` map

    Types without a binding fall back to their ``@search_index`` annotation.

    Args:
        service_name: Search service name
        service_key: API key
        index: Placeholder index name, or the name bound to ``index_type``
        index_type: Entity type bound to ``index``
        indexes: Explicit bindings
        retry_policy: Retry policy for transient remote faults
        sink: Default diagnostic sink; operations accept an override
        metrics: Optional ``SearchMetrics`` collector
        api_version: REST API version
        endpoint: Base URL override
        endpoint_suffix: DNS suffix of the service
        timeout: Request timeout in seconds
        transport: httpx transport override (tests, proxies)
    """

    def __init__(
        self,
        service_name: str,
        service_key: str,
        index: Optional[str] = None,
        index_type: Optional[type] = None,
        indexes: Optional[IndexBindings] = None,
        retry_policy: Optional[RetryPolicy] = None,
        *,
        sink: Optional[DiagnosticSink] = None,
        metrics: Optional[SearchMetrics] = None,
        api_version: str = DEFAULT_API_VERSION,
        endpoint: Optional[str] = None,
        endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX,
        timeout: float = 30.0,
        transport: Optional[Any] = None,
    ):
        if indexes is not None:
            ensure_not_empty("indexes", indexes)
        ensure_not_blank("service_name", service_name)
        ensure_not_blank("service_key", service_key)

        if indexes is not None:
            if index is not None or index_type is not None:
                raise InvalidArgumentError("indexes", "Pass either 'indexes' or 'index'/'index_type', not both")
            self._registry = IndexRegistry(bindings=indexes)
        elif index_type is not None:
            ensure_not_blank("index", index)
            self._registry = IndexRegistry(bindings={index_type: index})
        else:
            self._registry = IndexRegistry(placeholder=index)

        self.service_name = service_name
        self.sink = sink or NULL_SINK
        self.metrics = metrics
        self._closed = False
        self._provider: Optional[SearchQueryProvider] = None

        self._client: Lazy[SearchServiceClient] = Lazy(
            lambda: SearchServiceClient(
                service_name,
                service_key,
                retry_policy=retry_policy,
                api_version=api_version,
                endpoint=endpoint,
                endpoint_suffix=endpoint_suffix,
                timeout=timeout,
                transport=transport,
                metrics=metrics,
            )
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[SearchToolkitConfig] = None,
        indexes: Optional[IndexBindings] = None,
        **kwargs: Any
    ) -> "SearchConnection":
        """Build a connection from environment-driven settings.

        ``config.index_name`` is used as the placeholder index unless explicit
        ``indexes`` or an ``index`` keyword are given. The logging settings of
        ``config`` are applied on the way.
        """
        config = config or SearchToolkitConfig()
        configure_logging(config.service_name or "search_toolkit", config.log_level, config.log_format)

        index = kwargs.pop("index", None)
        if index is None and indexes is None:
            index = config.index_name

        return cls(
            config.service_name,
            config.service_key,
            index=index,
            indexes=indexes,
            retry_policy=kwargs.pop("retry_policy", config.retry_policy()),
            api_version=kwargs.pop("api_version", config.api_version),
            endpoint=kwargs.pop("endpoint", config.endpoint),
            endpoint_suffix=kwargs.pop("endpoint_suffix", config.endpoint_suffix),
            timeout=kwargs.pop("timeout", config.request_timeout),
            **kwargs
        )

    # Lifecycle

    @property
    def client(self) -> SearchServiceClient:
        """The shared service client, built on first access."""
        if self._closed:
            raise SearchToolkitError("Search connection is closed")
        return self._client.value

    @property
    def is_client_created(self) -> bool:
        return self._client.is_value_created

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def registry(self) -> IndexRegistry:
        return self._registry

    async def aclose(self) -> None:
        """Release the client if it was built. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        client = self._client.reset()
        if client is not None:
            await client.aclose()
            logger.debug("Search connection closed", service_name=self.service_name)

    async def __aenter__(self) -> "SearchConnection":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def get_index(self, entity_type: type) -> str:
        """Index name bound to ``entity_type``.

        Raises ``IndexNotFoundError`` when nothing resolves and
        ``InvalidConfigurationError`` when the resolved name already belongs to
        another type.
        """
        return self._registry.resolve(entity_type)

    def _fail(
        self,
        sink: DiagnosticSink,
        operation: str,
        message: str,
        error: Optional[BaseException] = None,
        **context: Any
    ) -> OperationResult:
        sink.log(Severity.ERROR, message, error, {"operation": operation, **context})
        if self.metrics is not None:
            self.metrics.record_failure(operation)
        return OperationResult.failed(message, error)

    # Index lifecycle

    async def ensure_index(
        self,
        entity_type: type,
        scoring_profiles: Optional[IndexScoringProfiles] = None,
        sink: Optional[DiagnosticSink] = None,
    ) -> OperationResult:
        """Create the index for ``entity_type`` unless it already exists."""
        sink = sink or self.sink

        try:
            index = self.get_index(entity_type)
        except (IndexNotFoundError, InvalidConfigurationError) as e:
            return self._fail(sink, "ensure_index", str(e), e)

        try:
            index_exists = await self.client.index_exists(index)
        except Exception as e:
            return self._fail(sink, "ensure_index", f"Error on checking if {index} exists!", e, index_name=index)

        if index_exists:
            return OperationResult.ok()

        try:
            definition = IndexDefinition(
                name=index,
                fields=FieldBuilder.build_for_type(entity_type),
                scoring_profiles=scoring_profiles.profiles if scoring_profiles else None,
                default_scoring_profile=scoring_profiles.default_profile if scoring_profiles else None,
            )
            result = await self.client.create_index(definition)
        except Exception as e:
            return self._fail(sink, "ensure_index", f"Index {index} was not created!", e, index_name=index)

        if result is None:
            return self._fail(sink, "ensure_index", f"Index {index} was not created!", index_name=index)

        logger.info("Search index created", index_name=index, fields=len(definition.fields))
        return OperationResult.ok()

    async def delete_index(self, entity_type: type, sink: Optional[DiagnosticSink] = None) -> OperationResult:
        """Delete the index for ``entity_type``; a missing index is not an error."""
        sink = sink or self.sink

        try:
            index = self.get_index(entity_type)
        except (IndexNotFoundError, InvalidConfigurationError) as e:
            return self._fail(sink, "delete_index", str(e), e)

        try:
            await self.client.delete_index(index)
        except Exception as e:
            return self._fail(sink, "delete_index", f"Error on deleting {index}!", e, index_name=index)

        logger.info("Search index deleted", index_name=index)
        return OperationResult.ok()

    async def get_index_statistics(
        self,
        entity_type: type,
        sink: Optional[DiagnosticSink] = None,
    ) -> Optional[IndexStatistics]:
        """Document count and storage size, or ``None`` on failure."""
        sink = sink or self.sink

        try:
            index = self.get_index(entity_type)
        except (IndexNotFoundError, InvalidConfigurationError) as e:
            self._fail(sink, "index_statistics", str(e), e)
            return None

        try:
            return await self.client.get_index_statistics(index)
        except Exception as e:
            self._fail(sink, "index_statistics", f"Error on getting {index} statistics!", e, index_name=index)
            return None

    async def list_indexes(self, sink: Optional[DiagnosticSink] = None) -> List[str]:
        """Names of every index on the service; empty on failure."""
        sink = sink or self.sink

        try:
            return await self.client.list_index_names()
        except Exception as e:
            self._fail(sink, "list_indexes", "Error on listing indexes!", e)
            return []

    # Documents

    async def change_documents(
        self,
        entity_type: type,
        changed_documents: ChangedDocuments,
        sink: Optional[DiagnosticSink] = None,
    ) -> bool:
        """Apply uploads, merges and deletes to the index in one batch.

        Args:
            entity_type: Entity type whose index receives the batch
            changed_documents: Entity to ``IndexActionType`` mapping, or
                ``(entity, action)`` pairs; order is submission order
            sink: Diagnostic sink override

        Returns:
            True only when every submitted document was acknowledged.
        """
        ensure_not_empty("changed_documents", changed_documents)
        sink = sink or self.sink

        if isinstance(changed_documents, Mapping):
            entries = list(changed_documents.items())
        else:
            entries = list(changed_documents)

        actions: List[IndexAction] = []
        seen_keys = set()
        for entity, kind in entries:
            ensure_not_null("entity", entity)
            key = document_key(entity, entity_type)
            if key in seen_keys:
                raise InvalidArgumentError("changed_documents", f"Duplicate document key {key}")
            seen_keys.add(key)
            action_type = IndexActionType.coerce(kind)
            actions.append(IndexAction(action_type, to_document(entity), key))

        try:
            index = self.get_index(entity_type)
        except (IndexNotFoundError, InvalidConfigurationError) as e:
            self._fail(sink, "change_documents", str(e), e)
            return False

        batch = IndexBatch(actions)
        if self.metrics is not None:
            for action in actions:
                self.metrics.record_batch_document(action.action_type.value)

        try:
            result = await self.client.index_documents(index, batch)
        except PartialBatchFailure as e:
            self._log_failed_keys(sink, index, e.failed_keys, e)
            return False
        except Exception as e:
            self._fail(sink, "change_documents", "Search index failed", e, index_name=index, documents=len(batch))
            return False

        if result.results is not None and len(result.results) == len(entries) and not result.failed:
            logger.debug("Index batch acknowledged", index_name=index, documents=len(batch))
            return True

        acknowledged = {r.key for r in result.results or [] if r.succeeded}
        failed_keys = [action.key for action in actions if action.key not in acknowledged]
        self._log_failed_keys(sink, index, failed_keys)
        return False

    def _log_failed_keys(
        self,
        sink: DiagnosticSink,
        index: str,
        failed_keys: List[str],
        error: Optional[BaseException] = None,
    ) -> None:
        for key in failed_keys:
            sink.log(
                Severity.ERROR,
                f"Failed to index document {key}",
                error,
                {"operation": "change_documents", "index_name": index, "document_key": key},
            )
        self._fail(
            sink,
            "change_documents",
            f"Failed to index some of the documents: {', '.join(failed_keys)}",
            error,
            index_name=index,
            failed_count=len(failed_keys),
        )

    # Search

    async def search(
        self,
        search_parameters: SearchParameters,
        search_type: type,
        search_text: Optional[str] = None,
        sink: Optional[DiagnosticSink] = None,
    ) -> SearchResponse:
        """Search the index of ``search_type`` and return the raw response.

        A non-success HTTP status is logged as a warning and returned. A
        transport or service fault is logged and re-raised.
        """
        sink = sink or self.sink
        search_index = self.get_index(search_type)
        client = self.client

        try:
            response = await client.search(
                search_index, search_text, search_parameters, headers=search_id_headers()
            )
        except Exception as e:
            sink.log(
                Severity.ERROR,
                f"Search failed for indexName {search_index}. Query text: {search_text}, "
                f"Query: {search_parameters}, Reason: {e}",
                e,
                {
                    "index_name": search_index,
                    "query_terms": search_text,
                    "search_parameters": str(search_parameters),
                },
            )
            if self.metrics is not None:
                self.metrics.record_failure("search")
            raise

        if response.is_success:
            if response.search_id is not None:
                sink.log(
                    Severity.INFORMATION,
                    "Search",
                    context={
                        "service_name": client.service_name,
                        "search_id": response.search_id,
                        "index_name": search_index,
                        "query_terms": search_text,
                    },
                )
        else:
            sink.log(
                Severity.WARNING,
                f"Search failed for indexName {search_index}. Reason: {response.reason_phrase}",
                context={"index_name": search_index, "status_code": response.status_code},
            )

        return response

    async def search_typed(
        self,
        search_parameters: SearchParameters,
        result_type: Type[T],
        search_text: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        search_type: Optional[type] = None,
    ) -> SearchResults[T]:
        """Search and convert each hit to ``result_type``.

        The index is resolved from ``search_type`` when given (projections),
        else from ``result_type``. Raises ``ServiceRequestError`` on a
        non-success status and ``asyncio.CancelledError`` when
        ``cancel_event`` fires first.
        """
        index = self.get_index(search_type or result_type)
        response = await run_cancellable(
            self.client.search(index, search_text, search_parameters), cancel_event
        )
        return self._typed_results(response, result_type)

    def search_typed_sync(
        self,
        search_parameters: SearchParameters,
        result_type: Type[T],
        search_text: Optional[str] = None,
        search_type: Optional[type] = None,
    ) -> SearchResults[T]:
        """Blocking counterpart of ``search_typed``."""
        index = self.get_index(search_type or result_type)
        response = self.client.search_sync(index, search_text, search_parameters)
        return self._typed_results(response, result_type)

    @staticmethod
    def _typed_results(response: SearchResponse, result_type: Type[T]) -> SearchResults[T]:
        if not response.is_success:
            raise ServiceRequestError(response.status_code, response.reason_phrase, "search")
        return SearchResults(
            results=[from_document(result_type, document) for document in response.results],
            count=response.count,
        )

    # Queries

    @property
    def provider(self) -> SearchQueryProvider:
        """Query provider executing deferred queries against this connection."""
        if self._provider is None:
            self._provider = SearchQueryProvider(self)
        return self._provider

    def query(self, entity_type: Type[T]) -> SearchQuery[T]:
        """Deferred query over the index of ``entity_type``."""
        return self.provider.create_query(entity_type)
