"""
Observable value holder.

Lets callers read the current value synchronously and subscribe to changes,
which is how providers publish availability and the engine publishes state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class ObservableValue(Generic[T]):
    """A value with change notifications."""

    def __init__(self, initial: T):
        self._value = initial
        self._listeners: list[Listener[T]] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> T:
        return self._value

    def set(self, new_value: T) -> bool:
        """
        Replace the value.

        Listeners are notified only when the value actually changes.

        Returns:
            True if the value changed
        """
        with self._lock:
            if new_value == self._value:
                return False
            self._value = new_value
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(new_value)
            except Exception as e:
                logger.warning(f"Observable listener raised: {e}")
        return True

    def subscribe(
        self, listener: Listener[T], emit_current: bool = True
    ) -> Callable[[], None]:
        """
        Register a change listener.

        Args:
            listener: Called with each new value
            emit_current: Call the listener immediately with the current value

        Returns:
            Callable that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)
            current = self._value

        if emit_current:
            try:
                listener(current)
            except Exception as e:
                logger.warning(f"Observable listener raised: {e}")

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def __repr__(self) -> str:
        return f"ObservableValue({self._value!r})"
