import os

# pyvistaqt goes through qtpy; pin it to PySide6 before any Qt import
os.environ.setdefault("QT_API", "pyside6")
