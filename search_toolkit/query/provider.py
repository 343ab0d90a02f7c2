"""Query provider executing deferred queries against a connection."""

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, List, Optional, Type, TypeVar
import structlog

from ..common.validation import ensure_not_null
from ..errors import InvalidArgumentError, SearchToolkitError
from ..models import SearchResults
from .expressions import Expression
from .query import SearchQuery
from .translator import QueryTranslator, TranslatedQuery

if TYPE_CHECKING:  # pragma: no cover
    from ..connection import SearchConnection

logger = structlog.get_logger("search_toolkit.query")

T = TypeVar("T")


class AsyncQueryExecutor(ABC):
    """Executes query expressions asynchronously.

    Implementations must honour ``cancel_event``: once it is set the in-flight
    remote call is abandoned and ``asyncio.CancelledError`` is raised.
    """

    @abstractmethod
    async def execute_async(self, expression: Expression, cancel_event: Optional[asyncio.Event] = None) -> Any:
        """Execute ``expression`` and return its value (a list, count or item)."""

    @abstractmethod
    async def execute_typed_async(
        self,
        expression: Expression,
        result_type: Type[T],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[T]:
        """Execute a sequence expression, converting each result to ``result_type``."""


class SearchQueryProvider(AsyncQueryExecutor):
    """Creates ``SearchQuery`` objects and runs their expressions.

    Args:
        connection: Connection the queries run against
        translator: Expression translator, ``QueryTranslator`` by default
    """

    def __init__(self, connection: "SearchConnection", translator: Optional[QueryTranslator] = None):
        ensure_not_null("connection", connection)
        self.connection = connection
        self.translator = translator or QueryTranslator()

    def create_query(self, element_type: Type[T]) -> SearchQuery[T]:
        return SearchQuery(self, element_type=element_type)

    def create_query_from(self, expression: Expression) -> SearchQuery:
        return SearchQuery(self, expression=expression)

    def _translate(self, expression: Expression) -> TranslatedQuery:
        ensure_not_null("expression", expression)
        translated = self.translator.translate(expression)
        logger.debug(
            "Query translated",
            source_type=translated.source_type.__name__,
            search_text=translated.search_text,
            parameters=str(translated.parameters),
            terminal=translated.terminal,
        )
        return translated

    @staticmethod
    def _shape(translated: TranslatedQuery, results: SearchResults) -> Any:
        if translated.terminal == "count":
            return results.count or 0
        if translated.terminal == "first":
            return results.results[0] if results.results else None
        return list(results.results)

    def execute(self, expression: Expression) -> Any:
        """Execute ``expression`` synchronously.

        Not available inside a running event loop; use ``execute_async``.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            raise SearchToolkitError(
                "Synchronous query execution inside a running event loop; use the async API"
            )

        translated = self._translate(expression)
        results = self.connection.search_typed_sync(
            translated.parameters,
            translated.result_type,
            translated.search_text,
            search_type=translated.source_type,
        )
        return self._shape(translated, results)

    async def execute_async(self, expression: Expression, cancel_event: Optional[asyncio.Event] = None) -> Any:
        translated = self._translate(expression)
        results = await self.connection.search_typed(
            translated.parameters,
            translated.result_type,
            translated.search_text,
            cancel_event=cancel_event,
            search_type=translated.source_type,
        )
        return self._shape(translated, results)

    async def execute_typed_async(
        self,
        expression: Expression,
        result_type: Type[T],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[T]:
        ensure_not_null("result_type", result_type)
        translated = self._translate(expression)
        if translated.terminal is not None:
            raise InvalidArgumentError("expression", "execute_typed_async requires a sequence expression")

        results = await self.connection.search_typed(
            translated.parameters,
            result_type,
            translated.search_text,
            cancel_event=cancel_event,
            search_type=translated.source_type,
        )
        return list(results.results)
