"""Entity type to index name resolution.

Resolution walks an ordered chain of resolvers:

1. ``ExplicitBindingResolver`` returns an existing binding.
2. ``PlaceholderResolver`` hands out a single placeholder index name to the
   first type that asks, then forgets it.
3. ``AnnotationResolver`` uses the name declared with ``@search_index``.

A type nothing resolves raises ``IndexNotFoundError``.
"""

import threading
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import structlog

from .attributes import get_index_name
from .common.validation import ensure_not_blank, ensure_not_empty, ensure_not_null
from .errors import IndexNotFoundError, InvalidConfigurationError

logger = structlog.get_logger("search_toolkit.registry")

IndexBindings = Union[Mapping[type, str], Sequence[Tuple[type, str]]]


class IndexResolver(ABC):
    """One step of the resolution chain."""

    @abstractmethod
    def resolve(self, registry: "IndexRegistry", entity_type: type) -> Optional[str]:
        """Return an index name for ``entity_type`` or ``None`` to pass."""


class ExplicitBindingResolver(IndexResolver):
    def resolve(self, registry, entity_type):
        return registry._bindings.get(entity_type)


class PlaceholderResolver(IndexResolver):
    def resolve(self, registry, entity_type):
        placeholder = registry._placeholder
        if placeholder and not registry._bindings:
            registry._placeholder = None
            return placeholder
        return None


class AnnotationResolver(IndexResolver):
    def resolve(self, registry, entity_type):
        return get_index_name(entity_type)


DEFAULT_RESOLVERS: Tuple[IndexResolver, ...] = (
    ExplicitBindingResolver(),
    PlaceholderResolver(),
    AnnotationResolver(),
)


class IndexRegistry:
    """Binds entity types to index names, one to one.

    Parameters
    - placeholder: Index name handed to the first type resolved when no
      explicit bindings were given
    - bindings: Explicit ``type -> index name`` map, or ``(type, name)`` pairs
    - resolvers: Resolution chain, defaults to ``DEFAULT_RESOLVERS``
    """

    def __init__(
        self,
        placeholder: Optional[str] = None,
        bindings: Optional[IndexBindings] = None,
        resolvers: Iterable[IndexResolver] = DEFAULT_RESOLVERS,
    ):
        self._lock = threading.Lock()
        self._resolvers: List[IndexResolver] = list(resolvers)
        self._bindings: Dict[type, str] = {}
        self._placeholder: Optional[str] = None

        if bindings is not None:
            self._bindings = self._validate_bindings(bindings)
        elif placeholder is not None and placeholder.strip():
            self._placeholder = placeholder

    @staticmethod
    def _validate_bindings(bindings: IndexBindings) -> Dict[type, str]:
        ensure_not_empty("bindings", bindings)

        pairs = list(bindings.items()) if isinstance(bindings, Mapping) else list(bindings)
        for entity_type, index in pairs:
            ensure_not_null("entity_type", entity_type)
            ensure_not_blank("index", index)

        types = [entity_type for entity_type, _ in pairs]
        if len(set(types)) != len(types):
            raise InvalidConfigurationError("Duplicate types found in indexes!")

        names = [index for _, index in pairs]
        if len(set(names)) != len(names):
            raise InvalidConfigurationError("Duplicate index names found in indexes!")

        return dict(pairs)

    @property
    def bindings(self) -> Mapping[type, str]:
        """Read-only snapshot of the current bindings."""
        with self._lock:
            return MappingProxyType(dict(self._bindings))

    @property
    def placeholder(self) -> Optional[str]:
        return self._placeholder

    def resolve(self, entity_type: type) -> str:
        """Return the index bound to ``entity_type``, binding it if needed."""
        ensure_not_null("entity_type", entity_type)

        existing = self._bindings.get(entity_type)
        if existing is not None:
            return existing

        with self._lock:
            for resolver in self._resolvers:
                index = resolver.resolve(self, entity_type)
                if index:
                    break
            else:
                raise IndexNotFoundError(entity_type)

            if entity_type not in self._bindings:
                self._bind(entity_type, index)
            return self._bindings[entity_type]

    def _bind(self, entity_type: type, index: str) -> None:
        owner = next((t for t, name in self._bindings.items() if name == index), None)
        if owner is not None:
            raise InvalidConfigurationError(
                f"Index {index} is already bound to type {owner.__qualname__}"
            )
        self._bindings[entity_type] = index
        logger.debug("Index bound", entity_type=entity_type.__qualname__, index_name=index)
