from __future__ import annotations

import sys
from typing import Optional

from PySide6.QtWidgets import QApplication

from regions3d.core.models import ProjectConfig

from .main_window import MainWindow


def get_qapp() -> QApplication:
    """
    Get or create the global QApplication instance.
    """
    app = QApplication.instance()
    if app is None:
        app = QApplication(sys.argv)
    return app


def run(project: Optional[ProjectConfig] = None) -> int:
    """
    Launch the regions3d viewer, optionally preloading a project's volumes.
    """
    app = get_qapp()

    window = MainWindow(project)
    window.show()

    return app.exec()
