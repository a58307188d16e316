from __future__ import annotations


class Regions3DError(Exception):
    """Base class for every error raised by the regions3d core."""


class InputError(Regions3DError):
    """A volume file is missing, unreadable or the path is empty."""


class AlignmentError(Regions3DError):
    """Resampling one grid onto another failed (e.g. degenerate spacing)."""


class GeometryError(Regions3DError):
    """Isosurface extraction produced nothing even after the fallback ladder."""


class StateError(Regions3DError):
    """An operation was requested before its prerequisites were met."""
