"""
In-process property change notifications.

Views and background consumers living in the same process subscribe to be
told when a listing was added, updated or deleted so they can refetch.
Nothing is persisted and nothing crosses process boundaries; a listener that
is not subscribed when an event fires simply misses it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional
import enum
import logging

logger = logging.getLogger(__name__)


class PropertyEventType(str, enum.Enum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"
    REFRESH = "refresh"


@dataclass(frozen=True)
class PropertyEvent:
    type: PropertyEventType
    property_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


PropertyEventListener = Callable[[PropertyEvent], None]


class PropertyEventManager:
    """
    Minimal synchronous event emitter.
    Listener failures are logged and never reach the emitter or other listeners.
    """

    def __init__(self):
        self._listeners: List[PropertyEventListener] = []

    def subscribe(self, listener: PropertyEventListener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener again; calling it twice is harmless
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: PropertyEvent) -> None:
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Property event listener failed for {event.type.value}: {e}", exc_info=True)

    def notify_added(self, property_id: str) -> None:
        self.emit(PropertyEvent(PropertyEventType.ADDED, str(property_id)))

    def notify_updated(self, property_id: str) -> None:
        self.emit(PropertyEvent(PropertyEventType.UPDATED, str(property_id)))

    def notify_deleted(self, property_id: str) -> None:
        self.emit(PropertyEvent(PropertyEventType.DELETED, str(property_id)))

    def notify_refresh(self) -> None:
        self.emit(PropertyEvent(PropertyEventType.REFRESH))

    def clear(self) -> None:
        self._listeners.clear()


# Shared instance for the whole process
property_events = PropertyEventManager()
