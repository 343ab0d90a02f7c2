"""Field schema generation for entity classes.

``FieldBuilder.build_for_type`` reads the type annotations of a pydantic
model, dataclass or plain annotated class and maps them to index fields.
"""

import collections.abc
import datetime
import enum
import typing
from typing import Any, Dict, List, Optional, Tuple
import structlog

from .attributes import get_key_field
from .errors import InvalidConfigurationError
from .models import SearchField

logger = structlog.get_logger("search_toolkit.fields")

_PRIMITIVES: List[Tuple[type, str]] = [
    # bool first: it is a subclass of int
    (bool, "Edm.Boolean"),
    (int, "Edm.Int64"),
    (float, "Edm.Double"),
    (datetime.datetime, "Edm.DateTimeOffset"),
    (datetime.date, "Edm.DateTimeOffset"),
    (str, "Edm.String"),
]

_COLLECTION_ORIGINS = (list, tuple, set, frozenset, collections.abc.Sequence, collections.abc.Set)


def _unwrap_optional(annotation: Any) -> Any:
    if typing.get_origin(annotation) is typing.Union:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _edm_type(annotation: Any) -> Optional[str]:
    annotation = _unwrap_optional(annotation)
    origin = typing.get_origin(annotation)

    if origin is not None:
        try:
            is_collection = issubclass(origin, _COLLECTION_ORIGINS)
        except TypeError:
            is_collection = False
        if not is_collection:
            return None
        args = typing.get_args(annotation)
        inner = _edm_type(args[0]) if args else None
        if inner is None or inner.startswith("Collection("):
            return None
        return f"Collection({inner})"

    if not isinstance(annotation, type):
        return None
    if issubclass(annotation, enum.Enum):
        return "Edm.String"
    for python_type, edm in _PRIMITIVES:
        if issubclass(annotation, python_type):
            return edm
    return None


def _pydantic_fields(entity_type: type) -> Dict[str, Any]:
    model_fields = getattr(entity_type, "model_fields", None)
    return model_fields if isinstance(model_fields, dict) else {}


def field_annotations(entity_type: type) -> Dict[str, Any]:
    """Attribute name to type annotation, in declaration order."""
    model_fields = _pydantic_fields(entity_type)
    if model_fields:
        return {name: info.annotation for name, info in model_fields.items()}
    return typing.get_type_hints(entity_type)


def field_aliases(entity_type: type) -> Dict[str, str]:
    """Attribute name to serialized name, for pydantic aliases."""
    model_fields = _pydantic_fields(entity_type)
    return {name: info.alias for name, info in model_fields.items() if getattr(info, "alias", None)}


class FieldBuilder:
    """Builds the index field schema for an entity type."""

    @staticmethod
    def build_for_type(entity_type: type) -> List[SearchField]:
        hints = field_annotations(entity_type)
        aliases = field_aliases(entity_type)
        key_field = get_key_field(entity_type)

        fields: List[SearchField] = []
        for attribute, annotation in hints.items():
            if attribute.startswith("_") or typing.get_origin(annotation) is typing.ClassVar:
                continue

            edm = _edm_type(annotation)
            if edm is None:
                logger.debug(
                    "Skipping field with unsupported type",
                    entity_type=entity_type.__name__,
                    field=attribute,
                    annotation=repr(annotation),
                )
                continue

            name = aliases.get(attribute, attribute)
            is_key = attribute == key_field or name == key_field
            is_collection = edm.startswith("Collection(")
            is_text = edm in ("Edm.String", "Collection(Edm.String)")

            fields.append(
                SearchField(
                    name=name,
                    type=edm,
                    key=is_key,
                    searchable=is_text and not is_key,
                    filterable=True,
                    sortable=not is_collection,
                    facetable=not is_key,
                )
            )

        keys = [f for f in fields if f.key]
        if len(keys) != 1:
            raise InvalidConfigurationError(
                f"Type {entity_type.__name__} must declare exactly one key field, "
                f"expected '{key_field}'"
            )
        if keys[0].type != "Edm.String":
            raise InvalidConfigurationError(
                f"Key field '{keys[0].name}' of {entity_type.__name__} must be a string"
            )

        return fields
