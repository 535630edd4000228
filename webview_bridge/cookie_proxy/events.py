import logging
import threading
from typing import Callable, Dict, List

logger = logging.getLogger("uvicorn.error")

Subscriber = Callable[[], None]


class EventChannel:
    """
    Named lifecycle signals with explicit subscription.

    ``emit`` runs every subscriber synchronously, in subscription order, on
    the calling thread. Subscribers must not block. ``subscribe`` returns a
    callable that removes the registration again.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._lock = threading.Lock()

    def subscribe(self, name: str, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.setdefault(name, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(name, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def subscriber_count(self, name: str) -> int:
        with self._lock:
            return len(self._subscribers.get(name, []))

    def emit(self, name: str) -> None:
        # Snapshot so subscribers may unsubscribe while being notified
        with self._lock:
            callbacks = list(self._subscribers.get(name, []))
        logger.debug(f"[Events] Emitting '{name}' to {len(callbacks)} subscriber(s)")
        for callback in callbacks:
            callback()
