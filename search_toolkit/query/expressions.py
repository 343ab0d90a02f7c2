"""Query expression nodes.

A query is a chain of immutable nodes: a ``QuerySource`` naming the entity
type at the root, then one ``MethodCall`` per applied operator. Each node
records the element type it produces and whether it yields a sequence.
"""

from dataclasses import dataclass
from typing import Any, List, Tuple


@dataclass(frozen=True)
class Expression:
    element_type: type

    @property
    def is_sequence(self) -> bool:
        return True


@dataclass(frozen=True)
class QuerySource(Expression):
    """Root of every query: all documents of the entity type's index."""


@dataclass(frozen=True)
class MethodCall(Expression):
    """An operator applied to ``source``."""
    method: str
    source: Expression
    arguments: Tuple[Any, ...] = ()
    sequence: bool = True

    @property
    def is_sequence(self) -> bool:
        return self.sequence


def root_of(expression: Expression) -> QuerySource:
    while isinstance(expression, MethodCall):
        expression = expression.source
    if not isinstance(expression, QuerySource):
        raise TypeError(f"Unsupported expression node {type(expression).__name__}")
    return expression


def calls_of(expression: Expression) -> List[MethodCall]:
    """Operator calls in the order they were applied."""
    calls: List[MethodCall] = []
    while isinstance(expression, MethodCall):
        calls.append(expression)
        expression = expression.source
    calls.reverse()
    return calls
