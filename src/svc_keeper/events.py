"""Cross-module event models and subscription handles for controller signaling."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from svc_keeper.services.lifecycle import ServiceState

logger = logging.getLogger(__name__)

E = TypeVar("E")


@dataclass(frozen=True)
class ServiceStateChanged:
    """Emitted when the controller's effective service state changes."""

    previous: ServiceState
    state: ServiceState
    reason: str | None = None


class Subscription:
    """Handle returned by `EventHub.subscribe`; closing it unsubscribes."""

    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe: Callable[[], None] | None = unsubscribe

    @property
    def closed(self) -> bool:
        return self._unsubscribe is None

    def close(self) -> None:
        if self._unsubscribe is None:
            return
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        unsubscribe()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class EventHub(Generic[E]):
    """Synchronous fan-out of events to registered listeners."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[E], None]] = []

    def subscribe(self, listener: Callable[[E], None]) -> Subscription:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_remove)

    def publish(self, event: E) -> None:
        # Listeners may unsubscribe while being notified.
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.exception("Event listener failed for %r: %s", event, exc)

    def __len__(self) -> int:
        return len(self._listeners)
