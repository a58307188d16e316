from __future__ import annotations

from typing import Optional

from PySide6.QtCore import QObject, Signal

from regions3d.core.events import ERROR, REGION_VISIBILITY_CHANGED, REGIONS_PROCESSED, EventChannel


class RegionSignals(QObject):
    """
    Qt face of an EventChannel.

    Signals:
        error(message)
        regionsProcessed()
        regionVisibilityChanged(label, visible)

    Events emitted from a worker thread reach slots on the GUI thread
    through Qt's queued connections.
    """

    error = Signal(str)
    regionsProcessed = Signal()
    regionVisibilityChanged = Signal(int, bool)

    def __init__(self, events: Optional[EventChannel] = None, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._events: Optional[EventChannel] = None
        if events is not None:
            self.bind(events)

    def bind(self, events: EventChannel) -> None:
        if self._events is not None:
            self.unbind()
        events.connect(ERROR, self._on_error)
        events.connect(REGIONS_PROCESSED, self._on_processed)
        events.connect(REGION_VISIBILITY_CHANGED, self._on_visibility)
        self._events = events

    def unbind(self) -> None:
        if self._events is None:
            return
        self._events.disconnect(ERROR, self._on_error)
        self._events.disconnect(REGIONS_PROCESSED, self._on_processed)
        self._events.disconnect(REGION_VISIBILITY_CHANGED, self._on_visibility)
        self._events = None

    def _on_error(self, message: str) -> None:
        self.error.emit(str(message))

    def _on_processed(self) -> None:
        self.regionsProcessed.emit()

    def _on_visibility(self, label: int, visible: bool) -> None:
        self.regionVisibilityChanged.emit(int(label), bool(visible))
