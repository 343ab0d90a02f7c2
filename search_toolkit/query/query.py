"""Deferred, composable search queries."""

import asyncio
from typing import Any, AsyncIterator, Dict, Generic, Iterator, List, Optional, TypeVar

from ..common.validation import ensure_not_blank, ensure_not_null
from ..errors import InvalidArgumentError
from .expressions import Expression, MethodCall, QuerySource, calls_of

T = TypeVar("T")


def _is_assignable(source: type, target: type) -> bool:
    try:
        return issubclass(source, target)
    except TypeError:
        return source is target


def _ensure_count(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise InvalidArgumentError(name, f"Argument '{name}' must be a non-negative integer")


class SearchQuery(Generic[T]):
    """A query that runs when it is iterated.

    Operators return a new ``SearchQuery`` wrapping the extended expression;
    the source query is never modified. Iterating executes synchronously through
    the provider, ``async for`` and the ``*_async`` helpers execute
    asynchronously.

        query = (
            connection.query(Hotel)
            .search("beach")
            .where("rating ge 4")
            .order_by_descending("rating")
            .take(10)
        )
        hotels = await query.to_list_async()
    """

    def __init__(self, provider: Any, element_type: Optional[type] = None, expression: Optional[Expression] = None):
        ensure_not_null("provider", provider)

        if expression is None:
            ensure_not_null("element_type", element_type)
            expression = QuerySource(element_type)
        else:
            if element_type is None:
                element_type = expression.element_type
            if not expression.is_sequence or not _is_assignable(expression.element_type, element_type):
                raise InvalidArgumentError(
                    "expression",
                    f"Expression does not produce a sequence of {getattr(element_type, '__name__', element_type)}",
                )

        self._provider = provider
        self._element_type = element_type
        self._expression = expression

    @property
    def provider(self) -> Any:
        return self._provider

    @property
    def element_type(self) -> type:
        return self._element_type

    @property
    def expression(self) -> Expression:
        return self._expression

    def __repr__(self) -> str:
        methods = ".".join(call.method for call in calls_of(self._expression))
        return f"<SearchQuery {self._element_type.__name__}{'.' + methods if methods else ''}>"

    def _compose(self, method: str, *arguments: Any, element_type: Optional[type] = None) -> "SearchQuery":
        expression = MethodCall(
            element_type=element_type or self._expression.element_type,
            method=method,
            source=self._expression,
            arguments=arguments,
        )
        return self._provider.create_query_from(expression)

    def _terminal(self, method: str, element_type: type) -> MethodCall:
        return MethodCall(
            element_type=element_type,
            method=method,
            source=self._expression,
            sequence=False,
        )

    # Operators

    def search(self, text: str) -> "SearchQuery[T]":
        ensure_not_null("text", text)
        return self._compose("search", text)

    def where(self, odata_filter: str) -> "SearchQuery[T]":
        """Restrict results with an OData filter expression, e.g. ``rating ge 4``."""
        ensure_not_blank("odata_filter", odata_filter)
        return self._compose("where", odata_filter)

    def select(self, *fields: str) -> "SearchQuery[Dict[str, Any]]":
        """Project to the named fields; results become dictionaries."""
        if not fields:
            raise InvalidArgumentError("fields", "select requires at least one field")
        for name in fields:
            ensure_not_blank("fields", name)
        return self._compose("select", *fields, element_type=dict)

    def search_fields(self, *fields: str) -> "SearchQuery[T]":
        if not fields:
            raise InvalidArgumentError("fields", "search_fields requires at least one field")
        return self._compose("search_fields", *fields)

    def order_by(self, field_name: str) -> "SearchQuery[T]":
        ensure_not_blank("field_name", field_name)
        return self._compose("order_by", field_name)

    def order_by_descending(self, field_name: str) -> "SearchQuery[T]":
        ensure_not_blank("field_name", field_name)
        return self._compose("order_by_descending", field_name)

    def _ensure_ordered(self, method: str) -> None:
        if not any(call.method in ("order_by", "order_by_descending") for call in calls_of(self._expression)):
            raise InvalidArgumentError("field_name", f"{method} requires a preceding order_by")

    def then_by(self, field_name: str) -> "SearchQuery[T]":
        ensure_not_blank("field_name", field_name)
        self._ensure_ordered("then_by")
        return self._compose("then_by", field_name)

    def then_by_descending(self, field_name: str) -> "SearchQuery[T]":
        ensure_not_blank("field_name", field_name)
        self._ensure_ordered("then_by_descending")
        return self._compose("then_by_descending", field_name)

    def skip(self, count: int) -> "SearchQuery[T]":
        _ensure_count("count", count)
        return self._compose("skip", count)

    def take(self, count: int) -> "SearchQuery[T]":
        _ensure_count("count", count)
        return self._compose("take", count)

    def with_scoring_profile(self, name: str) -> "SearchQuery[T]":
        ensure_not_blank("name", name)
        return self._compose("with_scoring_profile", name)

    def include_total_count(self) -> "SearchQuery[T]":
        return self._compose("include_total_count")

    # Synchronous execution

    def __iter__(self) -> Iterator[T]:
        return iter(self._provider.execute(self._expression))

    def to_list(self) -> List[T]:
        return list(self)

    def count(self) -> int:
        """Number of documents matching the query (paging ignored)."""
        return self._provider.execute(self._terminal("count", int))

    def first(self) -> Optional[T]:
        """First result, or ``None`` when nothing matches."""
        return self._provider.execute(self._terminal("first", self._expression.element_type))

    # Asynchronous execution

    async def to_list_async(self, cancel_event: Optional[asyncio.Event] = None) -> List[T]:
        return list(await self._provider.execute_async(self._expression, cancel_event))

    async def count_async(self, cancel_event: Optional[asyncio.Event] = None) -> int:
        return await self._provider.execute_async(self._terminal("count", int), cancel_event)

    async def first_async(self, cancel_event: Optional[asyncio.Event] = None) -> Optional[T]:
        return await self._provider.execute_async(
            self._terminal("first", self._expression.element_type), cancel_event
        )

    async def __aiter__(self) -> AsyncIterator[T]:
        for item in await self._provider.execute_async(self._expression):
            yield item
