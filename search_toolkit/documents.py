"""Conversion between entity instances and service documents."""

import dataclasses
import datetime
import enum
from typing import Any, Dict, Mapping, Type, TypeVar

from .attributes import get_key_field
from .errors import InvalidArgumentError
from .fields import field_aliases

T = TypeVar("T")


def _json_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return value.isoformat()
    if isinstance(value, datetime.date):
        return datetime.datetime(value.year, value.month, value.day, tzinfo=datetime.timezone.utc).isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_value(item) for item in value]
    if isinstance(value, Mapping):
        return {key: _json_value(item) for key, item in value.items()}
    return value


def to_document(entity: Any) -> Dict[str, Any]:
    """Serialize an entity to the JSON document the service stores."""
    if hasattr(entity, "model_dump"):
        return entity.model_dump(mode="json", by_alias=True)
    if dataclasses.is_dataclass(entity) and not isinstance(entity, type):
        data = dataclasses.asdict(entity)
    elif isinstance(entity, Mapping):
        data = dict(entity)
    elif hasattr(entity, "__dict__"):
        data = {key: value for key, value in vars(entity).items() if not key.startswith("_")}
    else:
        raise InvalidArgumentError("entity", f"Cannot convert {type(entity).__name__} to a document")
    return {key: _json_value(value) for key, value in data.items()}


def document_key(entity: Any, entity_type: type) -> str:
    """Value of the key field of ``entity``, as a string."""
    key_field = get_key_field(entity_type)
    if isinstance(entity, Mapping):
        value = entity.get(key_field)
    else:
        value = getattr(entity, key_field, None)
        if value is None:
            value = to_document(entity).get(field_aliases(entity_type).get(key_field, key_field))
    return "" if value is None else str(value)


def from_document(result_type: Type[T], document: Mapping[str, Any]) -> T:
    """Build a ``result_type`` instance from a search hit.

    ``@search.*`` metadata (score, highlights) is dropped.
    """
    data = {key: value for key, value in document.items() if not key.startswith("@search.")}
    if result_type is dict or result_type is Dict:
        return data  # type: ignore[return-value]
    if hasattr(result_type, "model_validate"):
        return result_type.model_validate(data)  # type: ignore[attr-defined]
    if dataclasses.is_dataclass(result_type):
        names = {f.name for f in dataclasses.fields(result_type)}
        return result_type(**{key: value for key, value in data.items() if key in names})
    return result_type(**data)
