"""Listener registry used by the specialist, collaboration and task engines."""

import logging
import threading
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")

Listener = Callable[[E], None]


class EventBus(Generic[E]):
    """Thread-safe observer registry.

    Dispatch holds the registry lock, so ``remove`` returns only after any
    in-flight dispatch has finished; once it returns, the listener receives
    nothing further. A listener removed by another listener during dispatch
    is skipped for the rest of that dispatch.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()

    def add(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove(self, listener: Listener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def emit(self, event: E) -> None:
        """Notify every registered listener, in registration order."""
        with self._lock:
            for listener in list(self._listeners):
                if listener not in self._listeners:
                    continue
                try:
                    listener(event)
                except Exception as e:
                    logger.warning("Event listener error for %s: %s", type(event).__name__, e)

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
