import threading
from contextlib import contextmanager
from typing import Type, Callable, List, Dict, Any, Optional, Iterator
from vidreprocess.domain.events import Event

class EventBus:
    """A simple synchronous event bus for decoupled communication.

    Callbacks run on the publishing thread. The subscriber table is guarded
    by a lock because the engine publishes log events from its worker thread
    while the presentation layer may subscribe or unsubscribe.
    """

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[Event], callback: Optional[Callable[[Any], None]] = None):
        """Subscribes a callback to a specific event type. Can be used as a decorator."""
        if callback is None:
            def decorator(func: Callable[[Any], None]):
                self.subscribe(event_type, func)
                return func
            return decorator

        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: Type[Event], callback: Callable[[Any], None]) -> bool:
        """Removes a callback. Returns False if it was not subscribed."""
        with self._lock:
            callbacks = self._subscribers.get(event_type)
            if not callbacks or callback not in callbacks:
                return False
            callbacks.remove(callback)
            if not callbacks:
                del self._subscribers[event_type]
            return True

    @contextmanager
    def subscription(self, event_type: Type[Event], callback: Callable[[Any], None]) -> Iterator[None]:
        """Subscribes for the duration of a with-block."""
        self.subscribe(event_type, callback)
        try:
            yield
        finally:
            self.unsubscribe(event_type, callback)

    def publish(self, event: Event):
        """Publishes an event to all interested subscribers."""
        with self._lock:
            callbacks = list(self._subscribers.get(type(event), ()))
        for callback in callbacks:
            callback(event)
