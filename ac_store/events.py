"""Listener bookkeeping shared by the identity provider and the address directory."""
import logging
from typing import Callable, Generic, Hashable, TypeVar

log = logging.getLogger("shop.events")

L = TypeVar("L", bound=Callable)


class Subscription:
    """Handle returned by ``subscribe``. ``unsubscribe`` runs its cancel hook at most once."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._cancel()


class ListenerSet(Generic[L]):
    """Listeners grouped by topic (a user id, or ``None`` for everything)."""

    def __init__(self):
        self._listeners: dict[Hashable, list[L]] = {}

    def add(self, topic: Hashable, listener: L) -> Subscription:
        self._listeners.setdefault(topic, []).append(listener)

        def cancel():
            bucket = self._listeners.get(topic, [])
            if listener in bucket:
                bucket.remove(listener)
            if not bucket:
                self._listeners.pop(topic, None)

        return Subscription(cancel)

    def count(self, topic: Hashable) -> int:
        return len(self._listeners.get(topic, []))

    def emit(self, topic: Hashable, *args) -> None:
        # copy: listeners may unsubscribe while being called
        for listener in list(self._listeners.get(topic, [])):
            try:
                listener(*args)
            except Exception:
                log.exception(f"listener for {topic!r} failed")
