"""Triangle meshes: the in-memory model, import, and normalization.

Import
------
STL files (binary and ASCII) are read by a small numpy parser and their
corners are welded into an indexed mesh.  Every other format goes through
:func:`trimesh.load`; a file that holds a scene must contain exactly one
geometry.

Normalization
-------------
:func:`normalize_mesh` rescales and recentres a mesh so that it occupies the
central ``fill`` fraction (0.8 by default) of the unit sampling cube
``[0, 1]^3``, leaving a margin for distance samples beyond its surface.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import numpy as np
import numpy.typing as npt
import trimesh

from .errors import InvalidMesh, MeshImportError, UnsupportedMeshCount

logger = logging.getLogger(__name__)

_F = npt.NDArray[np.floating]
_I = npt.NDArray[np.integer]

UNIT_CENTER = np.array([0.5, 0.5, 0.5])


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AABB:
    """Axis-aligned bounding box with ``lo <= hi`` on every axis."""

    lo: _F
    hi: _F

    def __post_init__(self) -> None:
        lo = np.asarray(self.lo, dtype=np.float64).reshape(3)
        hi = np.asarray(self.hi, dtype=np.float64).reshape(3)
        if np.any(lo > hi):
            raise ValueError(f"AABB lo {lo} exceeds hi {hi}")
        object.__setattr__(self, "lo", lo)
        object.__setattr__(self, "hi", hi)

    @classmethod
    def of_points(cls, points: _F) -> "AABB":
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if len(pts) == 0:
            raise ValueError("cannot bound an empty point set")
        return cls(pts.min(axis=0), pts.max(axis=0))

    @property
    def extents(self) -> _F:
        return self.hi - self.lo

    @property
    def center(self) -> _F:
        return (self.hi + self.lo) * 0.5

    def contains(self, other: "AABB", tol: float = 0.0) -> bool:
        """True if *other* lies inside this box (within *tol*)."""
        return bool(np.all(other.lo >= self.lo - tol) and np.all(other.hi <= self.hi + tol))


@dataclass(frozen=True)
class Mesh:
    """Indexed triangle mesh.

    ``vertices`` is ``(V, 3)`` float64 and ``faces`` is ``(F, 3)`` int64.
    Both arrays are read-only once the mesh exists.
    """

    vertices: _F
    faces: _I

    def __post_init__(self) -> None:
        vertices = np.array(self.vertices, dtype=np.float64).reshape(-1, 3)
        faces = np.array(self.faces, dtype=np.int64).reshape(-1, 3)
        vertices.setflags(write=False)
        faces.setflags(write=False)
        object.__setattr__(self, "vertices", vertices)
        object.__setattr__(self, "faces", faces)

    @classmethod
    def from_triangles(cls, triangles: _F) -> "Mesh":
        """Build an indexed mesh from a ``(F, 3, 3)`` corner array, welding identical corners."""
        tris = np.asarray(triangles, dtype=np.float64).reshape(-1, 3, 3)
        corners = tris.reshape(-1, 3)
        if len(corners) == 0:
            return cls(np.empty((0, 3)), np.empty((0, 3), dtype=np.int64))
        vertices, inverse = np.unique(corners, axis=0, return_inverse=True)
        return cls(vertices, inverse.reshape(-1, 3))

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        return len(self.faces)

    @property
    def triangles(self) -> _F:
        """``(F, 3, 3)`` corner positions."""
        return self.vertices[self.faces]

    @property
    def bounds(self) -> AABB:
        return AABB.of_points(self.vertices)

    def validate(self) -> None:
        """Raise :class:`InvalidMesh` unless the mesh can be sampled."""
        if self.n_vertices == 0:
            raise InvalidMesh("mesh has no vertices")
        if self.n_faces == 0:
            raise InvalidMesh("mesh has no faces")
        if not np.all(np.isfinite(self.vertices)):
            raise InvalidMesh("mesh has non-finite vertex coordinates")
        if self.faces.min() < 0 or self.faces.max() >= self.n_vertices:
            raise InvalidMesh(
                f"face indices must lie in [0, {self.n_vertices}), "
                f"got [{self.faces.min()}, {self.faces.max()}]"
            )

    def is_watertight(self) -> bool:
        """Every undirected edge is shared by exactly two faces."""
        edges = self.faces[:, [0, 1, 1, 2, 2, 0]].reshape(-1, 2)
        edges = np.sort(edges, axis=1)
        _, counts = np.unique(edges, axis=0, return_counts=True)
        return bool(np.all(counts == 2))


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NormalizationResult:
    """Similarity transform applied by :func:`normalize_mesh`.

    ``unit = (model - center_before) * scale + 0.5``
    """

    scale: float
    translation: _F
    bounds_before: AABB
    bounds_after: AABB

    def to_unit(self, points: _F) -> _F:
        """Map model-space points into the unit sampling cube."""
        return np.asarray(points, dtype=np.float64) * self.scale + self.translation

    def to_model(self, points: _F) -> _F:
        """Map unit-cube points back into the source model frame."""
        return (np.asarray(points, dtype=np.float64) - self.translation) / self.scale


def normalize_mesh(mesh: Mesh, fill: float = 0.8) -> Tuple[Mesh, NormalizationResult]:
    """Scale and centre *mesh* into the unit cube.

    The largest bounding-box extent becomes *fill* and the box centre moves
    to ``(0.5, 0.5, 0.5)``.  Topology is untouched.

    Raises
    ------
    InvalidMesh
        Empty vertex or face set, bad indices, non-finite coordinates, or a
        mesh with zero extent.
    """
    mesh.validate()

    bounds = mesh.bounds
    max_extent = float(bounds.extents.max())
    if max_extent <= 0.0:
        raise InvalidMesh("mesh has zero extent and cannot be normalized")

    scale = fill / max_extent
    translation = UNIT_CENTER - bounds.center * scale
    vertices = mesh.vertices * scale + translation
    normalized = Mesh(vertices, mesh.faces)

    logger.info(
        f"Normalized mesh: max extent {max_extent:.6g} -> {fill:.3g} (scale={scale:.6g})"
    )
    return normalized, NormalizationResult(
        scale=scale,
        translation=translation,
        bounds_before=bounds,
        bounds_after=normalized.bounds,
    )


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

def load_mesh(path: Union[str, Path]) -> Mesh:
    """Load a single triangle mesh from *path*.

    ``.stl`` files use the built-in parser; other extensions are handed to
    trimesh.  Identical vertices are joined either way.

    Raises
    ------
    MeshImportError
        The file is missing or cannot be parsed.
    UnsupportedMeshCount
        The file is a scene with zero or several meshes.
    """
    path = Path(path)
    if not path.is_file():
        raise MeshImportError(f"mesh file not found: {path}")

    if path.suffix.lower() == ".stl":
        mesh = Mesh.from_triangles(load_stl(path))
    else:
        mesh = _load_with_trimesh(path)

    logger.info(f"Loaded {path}: {mesh.n_vertices} vertices, {mesh.n_faces} faces")
    if mesh.n_faces and not mesh.is_watertight():
        logger.warning(f"{path} is not watertight; inside/outside results may be wrong")
    return mesh


def _load_with_trimesh(path: Path) -> Mesh:
    try:
        loaded = trimesh.load(str(path), process=True)
    except (OSError, ValueError, KeyError, IndexError, struct.error) as exc:
        raise MeshImportError(f"failed to import {path}: {exc}") from exc

    if isinstance(loaded, trimesh.Scene):
        meshes = [g for g in loaded.geometry.values() if isinstance(g, trimesh.Trimesh)]
        if len(meshes) != 1:
            raise UnsupportedMeshCount(len(meshes))
        loaded = meshes[0]
    if not isinstance(loaded, trimesh.Trimesh):
        raise MeshImportError(f"{path} does not contain a triangle mesh")

    loaded.merge_vertices()
    return Mesh(np.asarray(loaded.vertices), np.asarray(loaded.faces))


def load_stl(path: Union[str, Path]) -> np.ndarray:
    """Load an STL file and return its triangles as a ``(F, 3, 3)`` float64 array.

    Supports both binary and ASCII STL.  Normals are discarded.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise MeshImportError(f"cannot read {path}: {exc}") from exc

    # A valid binary STL satisfies len(raw) == 84 + 50 * triangle_count, even
    # when its 80-byte header happens to start with "solid".
    if len(raw) >= 84:
        count = struct.unpack_from("<I", raw, 80)[0]
        if len(raw) == 84 + 50 * count:
            return _load_binary_stl(raw)
    return _load_ascii_stl(raw.decode("ascii", errors="replace"), path)


def _load_binary_stl(raw: bytes) -> np.ndarray:
    count = struct.unpack_from("<I", raw, 80)[0]
    # Each record: 12 bytes normal + 36 bytes vertices + 2 bytes attr = 50 bytes
    dtype = np.dtype([
        ("normal", "<f4", (3,)),
        ("vertices", "<f4", (3, 3)),
        ("attr", "<u2"),
    ])
    records = np.frombuffer(raw, dtype=dtype, count=count, offset=84)
    return records["vertices"].astype(np.float64)


def _load_ascii_stl(text: str, path: Path) -> np.ndarray:
    if not text.lstrip().startswith("solid"):
        raise MeshImportError(f"{path} is neither binary nor ASCII STL")
    verts: list[list[float]] = []
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("vertex"):
            parts = line.split()
            try:
                verts.append([float(parts[1]), float(parts[2]), float(parts[3])])
            except (IndexError, ValueError) as exc:
                raise MeshImportError(f"malformed vertex line in {path}: {line!r}") from exc
    if len(verts) % 3:
        raise MeshImportError(f"{path} has {len(verts)} vertices, not a multiple of 3")
    return np.array(verts, dtype=np.float64).reshape(-1, 3, 3)
