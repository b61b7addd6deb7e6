"""Bounding-volume hierarchy over the triangles of a mesh.

The tree is a flat arena: node ``i`` is row ``i`` of a handful of parallel
numpy arrays, children are referenced by row index, and leaves reference a
contiguous slice of the leaf-ordered triangle arrays.  Nothing is ever
removed, so there is no ownership to manage and the structure can be read
from any number of threads once :meth:`SpatialIndex.build` returns.

Queries are batched.  Traversal keeps a stack of ``(node, active points)``
pairs; a point leaves the active set of a subtree as soon as the subtree's
box cannot improve on (or, for rays, cannot be reached by) that point.
"""

from __future__ import annotations

import logging
from typing import List, Tuple, Union

import numpy as np
import numpy.typing as npt

from ._math import _ray_hits_box, _ray_triangle_hits, _sq_dist_to_box, _sq_dist_to_triangles
from .mesh import AABB, Mesh

logger = logging.getLogger(__name__)

_F = npt.NDArray[np.floating]

__all__ = ["SpatialIndex"]


class SpatialIndex:
    """Immutable median-split BVH answering nearest-distance and ray-crossing queries.

    Build with :meth:`build`; the constructor only wraps already-built arrays.
    """

    def __init__(
        self,
        corners: _F,
        order: npt.NDArray[np.integer],
        node_lo: _F,
        node_hi: _F,
        node_left: npt.NDArray[np.integer],
        node_right: npt.NDArray[np.integer],
        node_start: npt.NDArray[np.integer],
        node_count: npt.NDArray[np.integer],
        depth: int,
    ) -> None:
        self._order = order
        self._a = np.ascontiguousarray(corners[:, 0])
        self._b = np.ascontiguousarray(corners[:, 1])
        self._c = np.ascontiguousarray(corners[:, 2])
        self._lo = node_lo
        self._hi = node_hi
        self._left = node_left
        self._right = node_right
        self._start = node_start
        self._count = node_count
        self._depth = depth
        for arr in (self._order, self._a, self._b, self._c, self._lo, self._hi,
                    self._left, self._right, self._start, self._count):
            arr.setflags(write=False)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, source: Union[Mesh, _F], max_leaf_size: int = 4) -> "SpatialIndex":
        """Build the hierarchy over *source* (a :class:`Mesh` or ``(F, 3, 3)`` corners).

        Each interior node splits its triangles at the median centroid along
        the longest axis of the centroid bounds.
        """
        if max_leaf_size < 1:
            raise ValueError(f"max_leaf_size must be >= 1, got {max_leaf_size}")
        tris = source.triangles if isinstance(source, Mesh) else np.asarray(source, dtype=np.float64)
        tris = tris.reshape(-1, 3, 3)
        n_tris = len(tris)
        if n_tris == 0:
            raise ValueError("cannot build a spatial index without triangles")

        centroids = tris.mean(axis=1)
        tri_lo = tris.min(axis=1)
        tri_hi = tris.max(axis=1)
        order = np.arange(n_tris)

        lo: List[_F] = []
        hi: List[_F] = []
        left: List[int] = []
        right: List[int] = []
        start: List[int] = []
        count: List[int] = []

        def new_node(s: int, e: int) -> int:
            members = order[s:e]
            lo.append(tri_lo[members].min(axis=0))
            hi.append(tri_hi[members].max(axis=0))
            left.append(-1)
            right.append(-1)
            start.append(s)
            count.append(e - s)
            return len(lo) - 1

        depth = 0
        stack = [(new_node(0, n_tris), 0)]
        while stack:
            node, level = stack.pop()
            depth = max(depth, level)
            s, n = start[node], count[node]
            if n <= max_leaf_size:
                continue

            members = order[s:s + n]
            c = centroids[members]
            axis = int(np.argmax(c.max(axis=0) - c.min(axis=0)))
            mid = n // 2
            order[s:s + n] = members[np.argpartition(c[:, axis], mid)]

            left[node] = new_node(s, s + mid)
            right[node] = new_node(s + mid, s + n)
            stack.append((left[node], level + 1))
            stack.append((right[node], level + 1))

        index = cls(
            corners=tris[order],
            order=order,
            node_lo=np.array(lo),
            node_hi=np.array(hi),
            node_left=np.array(left, dtype=np.int64),
            node_right=np.array(right, dtype=np.int64),
            node_start=np.array(start, dtype=np.int64),
            node_count=np.array(count, dtype=np.int64),
            depth=depth,
        )
        logger.debug(
            f"Built BVH: {index.n_triangles} triangles, {index.n_nodes} nodes, depth {depth}"
        )
        return index

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def n_nodes(self) -> int:
        return len(self._lo)

    @property
    def n_triangles(self) -> int:
        return len(self._a)

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def bounds(self) -> AABB:
        return AABB(self._lo[0], self._hi[0])

    def is_leaf(self, node: int) -> bool:
        return bool(self._left[node] < 0)

    def validate(self, tol: float = 1e-12) -> None:
        """Raise ``AssertionError`` if a child box escapes its parent or a leaf box misses a triangle."""
        for node in range(self.n_nodes):
            parent = AABB(self._lo[node], self._hi[node])
            if self.is_leaf(node):
                s, n = self._start[node], self._count[node]
                corners = np.concatenate([self._a[s:s + n], self._b[s:s + n], self._c[s:s + n]])
                if not parent.contains(AABB.of_points(corners), tol):
                    raise AssertionError(f"leaf {node} misses triangles")
                continue
            for child in (self._left[node], self._right[node]):
                if not parent.contains(AABB(self._lo[child], self._hi[child]), tol):
                    raise AssertionError(f"node {child} escapes parent {node}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def nearest_squared_distance(self, points: _F) -> Union[float, _F]:
        """Exact squared distance from *points* to the nearest triangle.

        Accepts a single ``(3,)`` point (returns a float) or a ``(P, 3)``
        batch (returns ``(P,)``).
        """
        P = np.asarray(points, dtype=np.float64)
        single = P.ndim == 1
        P = P.reshape(-1, 3)

        best = np.full(len(P), np.inf)
        stack = [(0, np.arange(len(P)))]
        while stack:
            node, idx = stack.pop()
            box_sq = _sq_dist_to_box(P[idx], self._lo[node], self._hi[node])
            idx = idx[box_sq < best[idx]]
            if idx.size == 0:
                continue

            if self._left[node] < 0:
                sq = self._leaf_sq_dist(P, idx, node)
                best[idx] = np.minimum(best[idx], sq)
                continue

            near, far = self._left[node], self._right[node]
            d_near = _sq_dist_to_box(P[idx], self._lo[near], self._hi[near]).mean()
            d_far = _sq_dist_to_box(P[idx], self._lo[far], self._hi[far]).mean()
            if d_far < d_near:
                near, far = far, near
            # Nearer child on top of the stack tightens `best` before the far one is visited.
            stack.append((far, idx))
            stack.append((near, idx))

        return float(best[0]) if single else best

    def count_crossings(
        self,
        points: _F,
        direction: _F,
        tolerance: float = 1e-9,
    ) -> Tuple[npt.NDArray[np.integer], npt.NDArray[np.bool_]]:
        """Count triangle crossings of rays cast from *points* along *direction*.

        Returns
        -------
        (crossings, on_surface)
            ``(P,)`` int64 crossing counts and ``(P,)`` bool flags for points
            lying on a triangle within *tolerance*.
        """
        P = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        d = np.asarray(direction, dtype=np.float64)
        d = d / np.linalg.norm(d)
        with np.errstate(divide="ignore"):
            inv_d = 1.0 / d

        crossings = np.zeros(len(P), dtype=np.int64)
        on_surface = np.zeros(len(P), dtype=bool)
        stack = [(0, np.arange(len(P)))]
        while stack:
            node, idx = stack.pop()
            reach = _ray_hits_box(P[idx], inv_d, self._lo[node] - tolerance, self._hi[node] + tolerance)
            idx = idx[reach]
            if idx.size == 0:
                continue

            if self._left[node] < 0:
                hits, surf = self._leaf_ray_hits(P, idx, node, d, tolerance)
                crossings[idx] += hits.sum(axis=1)
                on_surface[idx] |= surf.any(axis=1)
                continue

            stack.append((self._right[node], idx))
            stack.append((self._left[node], idx))

        return crossings, on_surface

    # ------------------------------------------------------------------
    # Leaf kernels
    # ------------------------------------------------------------------

    def _leaf_pairs(self, idx: npt.NDArray[np.integer], node: int):
        s, n = int(self._start[node]), int(self._count[node])
        pi = np.repeat(idx, n)
        ti = np.tile(np.arange(s, s + n), idx.size)
        return pi, ti, n

    def _leaf_sq_dist(self, P: _F, idx: npt.NDArray[np.integer], node: int) -> _F:
        pi, ti, n = self._leaf_pairs(idx, node)
        sq = _sq_dist_to_triangles(P[pi], self._a[ti], self._b[ti], self._c[ti])
        return sq.reshape(idx.size, n).min(axis=1)

    def _leaf_ray_hits(self, P: _F, idx, node: int, d: _F, tolerance: float):
        pi, ti, n = self._leaf_pairs(idx, node)
        hits, surf = _ray_triangle_hits(P[pi], d, self._a[ti], self._b[ti], self._c[ti], tolerance)
        return hits.reshape(idx.size, n), surf.reshape(idx.size, n)
