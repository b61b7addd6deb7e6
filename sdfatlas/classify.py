"""Inside/outside classification by parity ray casting.

A ray cast from a point inside a closed surface crosses it an odd number of
times.  Three rays are cast per point along fixed directions with irrational
components (no ray is axis-aligned or parallel to a grid plane), and the
majority parity decides.  A single ray that grazes an edge or vertex is
therefore outvoted by the other two.

Limitation: the result is only meaningful for **watertight** meshes.  Near
holes or non-manifold edges the parity is arbitrary and no error is raised.
"""

from __future__ import annotations

import enum
from math import sqrt

import numpy as np
import numpy.typing as npt

from .bvh import SpatialIndex

__all__ = ["Containment", "InsideOutsideClassifier", "DEFAULT_DIRECTIONS", "is_solid"]


def _unit(v) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64)
    return v / np.linalg.norm(v)


DEFAULT_DIRECTIONS: np.ndarray = np.stack([
    _unit([sqrt(2) - 1.0, sqrt(3) - 1.0, 1.0 / sqrt(3)]),
    _unit([-1.0 / sqrt(7), sqrt(5) - 2.0, -(sqrt(11) - 3.0)]),
    _unit([sqrt(13) - 3.0, -1.0 / sqrt(19), -(sqrt(6) - 2.0)]),
])


class Containment(enum.IntEnum):
    """Where a point lies relative to a closed surface."""

    OUTSIDE = 0
    INSIDE = 1
    ON_BOUNDARY = 2


def is_solid(codes: npt.ArrayLike) -> np.ndarray:
    """True where *codes* are ``INSIDE`` or ``ON_BOUNDARY`` (both quantize to 0)."""
    codes = np.asarray(codes)
    return (codes == Containment.INSIDE) | (codes == Containment.ON_BOUNDARY)


class InsideOutsideClassifier:
    """Classify points against the mesh held by a built :class:`SpatialIndex`.

    Parameters
    ----------
    index:
        Spatial index over the (normalized) mesh.
    directions:
        ``(R, 3)`` ray directions; *R* should be odd so the vote cannot tie.
    tolerance:
        Distance along a ray within which a point counts as lying on a
        triangle (``ON_BOUNDARY``).
    """

    def __init__(
        self,
        index: SpatialIndex,
        directions: npt.ArrayLike = DEFAULT_DIRECTIONS,
        tolerance: float = 1e-9,
    ) -> None:
        dirs = np.atleast_2d(np.asarray(directions, dtype=np.float64))
        if dirs.shape[1] != 3 or len(dirs) == 0:
            raise ValueError(f"directions must be (R, 3), got {dirs.shape}")
        self._index = index
        self._directions = dirs / np.linalg.norm(dirs, axis=1, keepdims=True)
        self._tolerance = tolerance

    @property
    def directions(self) -> np.ndarray:
        return self._directions.copy()

    def classify(self, point: npt.ArrayLike) -> Containment:
        """Classify a single ``(3,)`` point."""
        return Containment(int(self.classify_many(np.reshape(point, (1, 3)))[0]))

    def classify_many(self, points: npt.ArrayLike) -> np.ndarray:
        """Classify ``(P, 3)`` points; returns ``(P,)`` int8 :class:`Containment` codes."""
        P = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        odd_votes = np.zeros(len(P), dtype=np.int64)
        boundary = np.zeros(len(P), dtype=bool)
        for direction in self._directions:
            crossings, on_surface = self._index.count_crossings(P, direction, self._tolerance)
            odd_votes += crossings % 2
            boundary |= on_surface

        codes = np.where(2 * odd_votes > len(self._directions),
                         Containment.INSIDE, Containment.OUTSIDE).astype(np.int8)
        codes[boundary] = Containment.ON_BOUNDARY
        return codes
