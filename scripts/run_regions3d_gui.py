"""
Launch the regions3d viewer.

Run this from the project root, e.g.:

    python scripts/run_regions3d_gui.py [project.yaml]
"""

import os
import sys
from pathlib import Path

# Set QT_API to pyside6 before any imports to avoid warnings from qtpy (used by pyvistaqt)
os.environ['QT_API'] = 'pyside6'

from regions3d.core.config_io import load_project_config
from regions3d.gui.app import run


def main() -> None:
    project = load_project_config(Path(sys.argv[1])) if len(sys.argv) > 1 else None
    sys.exit(run(project))


if __name__ == "__main__":
    main()
