"""
Observable values.

A ``Signal`` holds one value that is always replaced wholesale. Nothing is
emitted until the first ``emit``, which is how "not resolved yet" stays
distinguishable from a resolved ``None``.
"""

import threading
from typing import Callable, Generic, List, Optional, TypeVar

from health_companion.utils.logger import get_logger

logger = get_logger("signals")

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class Signal(Generic[T]):
    """Single observable value with explicit subscribe/unsubscribe."""

    def __init__(self, name: str = "signal"):
        self.name = name
        self._value: Optional[T] = None
        self._resolved = False
        self._subscribers: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    @property
    def is_resolved(self) -> bool:
        """True once a value has been emitted."""
        return self._resolved

    @property
    def value(self) -> Optional[T]:
        """Last emitted value, or None before the first emit."""
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        """
        Register a callback for every future value.

        A subscriber added after resolution immediately receives the
        current value.

        Returns:
            Callable that removes the subscription (idempotent)
        """
        with self._lock:
            self._subscribers.append(callback)
            resolved, current = self._resolved, self._value

        if resolved:
            callback(current)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, value: T) -> None:
        """Replace the value and notify every subscriber."""
        with self._lock:
            self._value = value
            self._resolved = True
            subscribers = list(self._subscribers)

        for callback in subscribers:
            callback(value)

    @property
    def subscriber_count(self) -> int:
        """Number of active subscriptions."""
        with self._lock:
            return len(self._subscribers)
