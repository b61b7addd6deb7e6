"""Exception types raised by sdfatlas.

Every error derives from :class:`SdfAtlasError` so callers (and the CLI)
can catch the whole family at once.  Where a builtin category fits, the
error also inherits from it (``ValueError`` for bad input, ``OSError`` for
file problems).
"""

from __future__ import annotations

__all__ = [
    "SdfAtlasError",
    "InvalidMesh",
    "UnsupportedMeshCount",
    "MeshImportError",
    "IOFailure",
    "InvalidConfig",
]


class SdfAtlasError(Exception):
    """Base class for all sdfatlas errors."""


class InvalidMesh(SdfAtlasError, ValueError):
    """Mesh is empty, degenerate, or references vertices that do not exist."""


class UnsupportedMeshCount(SdfAtlasError):
    """An imported file holds zero or several meshes; exactly one is supported."""

    def __init__(self, count: int) -> None:
        super().__init__(f"expected exactly one mesh, found {count}")
        self.count = count


class MeshImportError(SdfAtlasError):
    """A mesh file is missing, unreadable, or malformed."""


class IOFailure(SdfAtlasError, OSError):
    """A field file cannot be opened, written, or has the wrong size."""


class InvalidConfig(SdfAtlasError, ValueError):
    """A configuration value is out of range (e.g. grid resolution < 2)."""
