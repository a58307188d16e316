from __future__ import annotations

from typing import Callable, List, Optional

from PySide6.QtCore import QObject
from PySide6.QtWidgets import QMessageBox, QProgressDialog, QStatusBar, QWidget

from regions3d.gui.workers import WorkerBase


class StatusController(QObject):
    """
    Central helper to manage status bar messages, message boxes,
    and running background workers with a modal busy dialog.
    """

    def __init__(self, status_bar: QStatusBar, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self._status_bar = status_bar
        self._parent = parent

        # Keep strong references to running workers so they are not
        # garbage-collected while still executing.
        self._active_workers: List[WorkerBase] = []

    # ------------------------------------------------------------------ #
    # Simple status / message helpers
    # ------------------------------------------------------------------ #
    def show_message(self, text: str, timeout_ms: int = 5000) -> None:
        """Show a transient message in the status bar."""
        if self._status_bar is not None:
            self._status_bar.showMessage(text, timeout_ms)

    def show_error(self, text: str) -> None:
        """Show an error in the status bar and a modal message box."""
        if self._status_bar is not None:
            self._status_bar.showMessage(text, 8000)
        QMessageBox.critical(self._parent, "Error", text)

    def show_info(self, text: str) -> None:
        if self._status_bar is not None:
            self._status_bar.showMessage(text, 5000)
        QMessageBox.information(self._parent, "Information", text)

    # ------------------------------------------------------------------ #
    # Threaded workers
    # ------------------------------------------------------------------ #
    @property
    def busy(self) -> bool:
        return bool(self._active_workers)

    def run_threaded(
        self,
        worker: WorkerBase,
        title: Optional[str] = None,
        on_success: Optional[Callable[[object], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Run a WorkerBase (QThread) behind an indeterminate progress dialog.

        `on_success` is called with the worker's result on the GUI thread.
        `on_error` is called with the failure message before it is shown.
        Region builds cannot be interrupted, so the dialog has no cancel
        button.
        """
        dlg_title = title or "Working..."
        dialog = QProgressDialog(dlg_title, None, 0, 0, self._parent)
        dialog.setWindowTitle(dlg_title)
        dialog.setMinimumDuration(0)
        dialog.setAutoClose(False)

        self._active_workers.append(worker)

        def cleanup_worker() -> None:
            dialog.hide()
            if worker in self._active_workers:
                self._active_workers.remove(worker)

        def on_failed(message: str) -> None:
            cleanup_worker()
            if on_error is not None:
                on_error(message)
            self.show_error(message)

        def on_finished(result: object) -> None:
            cleanup_worker()
            if on_success is not None:
                on_success(result)

        worker.error.connect(on_failed)       # type: ignore[arg-type]
        worker.finished.connect(on_finished)  # type: ignore[arg-type]
        worker.finished.connect(worker.deleteLater)

        self.show_message(dlg_title, 0)
        worker.start()
        dialog.show()
