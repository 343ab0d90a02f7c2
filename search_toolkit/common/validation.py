"""Argument guards.

Each helper raises ``InvalidArgumentError`` naming the offending argument so
callers fail fast, before any deferred or remote work happens.
"""

from typing import Any, Optional, Sized

from ..errors import InvalidArgumentError


def ensure_not_null(name: str, value: Any) -> None:
    """Reject ``None``."""
    if value is None:
        raise InvalidArgumentError(name, f"Argument '{name}' must not be None")


def ensure_not_blank(name: str, value: Optional[str]) -> None:
    """Reject ``None``, empty and whitespace-only strings."""
    if value is None or not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(name, f"Argument '{name}' must not be blank")


def ensure_not_empty(name: str, value: Optional[Sized]) -> None:
    """Reject ``None`` and empty collections."""
    if value is None or len(value) == 0:
        raise InvalidArgumentError(name, f"Argument '{name}' must contain at least one item")
