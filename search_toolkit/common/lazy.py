"""Compute-once holder for shared resources."""

import threading
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class Lazy(Generic[T]):
    """Builds a value on first access and returns the same value afterwards.

    The factory runs under a lock, so concurrent first accesses from threads
    or tasks observe exactly one stored value. A factory that raises leaves
    the holder empty and the next access tries again.
    """

    def __init__(self, factory: Callable[[], T]):
        self._factory = factory
        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self._created = False

    @property
    def is_value_created(self) -> bool:
        return self._created

    @property
    def value(self) -> T:
        if self._created:
            return self._value  # type: ignore[return-value]

        with self._lock:
            if not self._created:
                self._value = self._factory()
                self._created = True

        return self._value  # type: ignore[return-value]

    def reset(self) -> Optional[T]:
        """Forget the stored value and return it, if one was built."""
        with self._lock:
            value = self._value if self._created else None
            self._value = None
            self._created = False
        return value
