from __future__ import annotations

from typing import Any, Callable, Optional

from PySide6.QtCore import QThread, Signal

from regions3d.api import RegionVisualizer


# ---------------------------------------------------------------------------
# Base QThread worker
# ---------------------------------------------------------------------------

class WorkerBase(QThread):
    """
    Base class for threaded workers.

    Signals:
        finished(result)
        error(message)
    """

    finished = Signal(object)
    error = Signal(str)

    def __init__(self, parent: Optional[object] = None) -> None:
        super().__init__(parent)

    def _handle_exception(self, exc: BaseException) -> None:  # noqa: BLE001
        self.error.emit(str(exc))


# ---------------------------------------------------------------------------
# Region processing
# ---------------------------------------------------------------------------

class ProcessRegionsWorker(WorkerBase):
    """
    Run RegionVisualizer.process_regions off the GUI thread.

    The façade's scene must be detached while this runs; the caller attaches
    it again on `finished` so actors are only created on the GUI thread.
    """

    def __init__(
        self,
        viz: RegionVisualizer,
        min_gray: Optional[float] = None,
        max_gray: Optional[float] = None,
    ) -> None:
        super().__init__()
        self._viz = viz
        self._min_gray = min_gray
        self._max_gray = max_gray

    def run(self) -> None:  # type: ignore[override]
        try:
            ok = self._viz.process_regions(self._min_gray, self._max_gray)
            self.finished.emit(ok)
        except BaseException as exc:  # noqa: BLE001
            self._handle_exception(exc)


# ---------------------------------------------------------------------------
# Generic worker for arbitrary long-running functions
# ---------------------------------------------------------------------------

class FunctionWorker(WorkerBase):
    """
    Generic worker that runs an arbitrary callable in a thread.
    """

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self._func = func
        self._args = args
        self._kwargs = kwargs

    def run(self) -> None:  # type: ignore[override]
        try:
            result = self._func(*self._args, **self._kwargs)
            self.finished.emit(result)
        except BaseException as exc:  # noqa: BLE001
            self._handle_exception(exc)
