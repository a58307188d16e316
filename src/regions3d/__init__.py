"""
regions3d top-level package.

This project turns a co-registered intensity volume and label volume into
independently controllable 3D surface regions through a clean, modular core
and an optional Qt/PyVista GUI.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
