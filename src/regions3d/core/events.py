from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

ERROR = "error"
REGIONS_PROCESSED = "regions_processed"
REGION_VISIBILITY_CHANGED = "region_visibility_changed"

EVENTS = (ERROR, REGIONS_PROCESSED, REGION_VISIBILITY_CHANGED)


class EventChannel:
    """
    Fire-and-forget notifications.

    Events:
        error(message)
        regions_processed()
        region_visibility_changed(label, visible)

    Callbacks run synchronously on the emitting thread. A callback that
    raises is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._callbacks: Dict[str, List[Callable[..., Any]]] = {name: [] for name in EVENTS}

    def connect(self, event: str, callback: Callable[..., Any]) -> None:
        self._listeners(event).append(callback)

    def disconnect(self, event: str, callback: Callable[..., Any]) -> None:
        listeners = self._listeners(event)
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners(event)):
            try:
                callback(*args)
            except Exception:  # noqa: BLE001
                logger.exception("Listener for %r failed", event)

    def _listeners(self, event: str) -> List[Callable[..., Any]]:
        try:
            return self._callbacks[event]
        except KeyError:
            raise ValueError(f"Unknown event {event!r}; expected one of {EVENTS}") from None
