"""Declarative index annotation for entity classes.

    @search_index("hotels", key="hotel_id")
    class Hotel(BaseModel):
        hotel_id: str
        name: str

The registry falls back to the annotated name when a type has no explicit
binding, and the field builder uses ``key`` to mark the document key.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Type, TypeVar

T = TypeVar("T")

DEFAULT_KEY_FIELD = "id"

_ATTRIBUTE = "__search_index__"


@dataclass(frozen=True)
class SearchIndexAnnotation:
    index: Optional[str]
    key: str = DEFAULT_KEY_FIELD


def search_index(index: Optional[str] = None, key: str = DEFAULT_KEY_FIELD) -> Callable[[Type[T]], Type[T]]:
    """Class decorator attaching an index name and key field to a type."""

    def decorate(cls: Type[T]) -> Type[T]:
        setattr(cls, _ATTRIBUTE, SearchIndexAnnotation(index=index, key=key))
        return cls

    return decorate


def get_annotation(entity_type: type) -> Optional[SearchIndexAnnotation]:
    """Annotation declared directly on ``entity_type`` (not inherited)."""
    annotation = vars(entity_type).get(_ATTRIBUTE) if isinstance(entity_type, type) else None
    return annotation if isinstance(annotation, SearchIndexAnnotation) else None


def get_index_name(entity_type: type) -> Optional[str]:
    annotation = get_annotation(entity_type)
    if annotation is None or not annotation.index or not annotation.index.strip():
        return None
    return annotation.index


def get_key_field(entity_type: type) -> str:
    annotation = get_annotation(entity_type)
    return annotation.key if annotation is not None else DEFAULT_KEY_FIELD
