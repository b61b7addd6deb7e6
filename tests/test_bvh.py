"""Tests for the bounding-volume hierarchy."""
from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest

from sdfatlas import Mesh, SpatialIndex
from sdfatlas._math import _ray_triangle_hits, _sq_dist_to_triangles


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _random_triangles(n: int = 200, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    centres = rng.uniform(0.1, 0.9, size=(n, 1, 3))
    return centres + rng.normal(scale=0.05, size=(n, 3, 3))


def _brute_sq_dist(P: np.ndarray, tris: np.ndarray) -> np.ndarray:
    best = np.full(len(P), np.inf)
    for tri in tris:
        best = np.minimum(best, _sq_dist_to_triangles(P, tri[0], tri[1], tri[2]))
    return best


def _brute_crossings(P: np.ndarray, d: np.ndarray, tris: np.ndarray) -> np.ndarray:
    total = np.zeros(len(P), dtype=np.int64)
    for tri in tris:
        hits, _ = _ray_triangle_hits(P, d, tri[0], tri[1], tri[2])
        total += hits
    return total


def _unit_box() -> Mesh:
    verts = np.array([
        [0.1, 0.1, 0.1], [0.9, 0.1, 0.1], [0.9, 0.9, 0.1], [0.1, 0.9, 0.1],
        [0.1, 0.1, 0.9], [0.9, 0.1, 0.9], [0.9, 0.9, 0.9], [0.1, 0.9, 0.9],
    ])
    faces = [(0, 2, 1), (0, 3, 2), (4, 5, 6), (4, 6, 7), (0, 4, 7), (0, 7, 3),
             (1, 2, 6), (1, 6, 5), (0, 1, 5), (0, 5, 4), (3, 7, 6), (3, 6, 2)]
    return Mesh(verts, faces)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

class TestBuild:
    def test_counts(self):
        index = SpatialIndex.build(_random_triangles(100), max_leaf_size=4)
        assert index.n_triangles == 100
        # Binary tree: interior nodes = leaves - 1.
        assert index.n_nodes % 2 == 1
        assert index.depth >= 4

    def test_containment_invariant(self):
        SpatialIndex.build(_random_triangles(300, seed=3)).validate()

    def test_root_bounds(self):
        tris = _random_triangles(50)
        index = SpatialIndex.build(tris)
        npt.assert_allclose(index.bounds.lo, tris.reshape(-1, 3).min(axis=0))
        npt.assert_allclose(index.bounds.hi, tris.reshape(-1, 3).max(axis=0))

    def test_from_mesh(self):
        index = SpatialIndex.build(_unit_box())
        assert index.n_triangles == 12
        index.validate()

    def test_single_triangle_is_leaf(self):
        index = SpatialIndex.build(_random_triangles(1))
        assert index.n_nodes == 1
        assert index.is_leaf(0)

    def test_leaf_size_one(self):
        index = SpatialIndex.build(_random_triangles(33), max_leaf_size=1)
        assert index.n_nodes == 2 * 33 - 1
        index.validate()

    def test_identical_triangles(self):
        tris = np.repeat(_random_triangles(1), 20, axis=0)
        index = SpatialIndex.build(tris, max_leaf_size=2)
        index.validate()
        npt.assert_allclose(
            index.nearest_squared_distance(np.array([[2.0, 2.0, 2.0]])),
            _brute_sq_dist(np.array([[2.0, 2.0, 2.0]]), tris[:1]),
        )

    def test_validate_detects_escaping_child(self):
        index = SpatialIndex.build(_random_triangles(2), max_leaf_size=1)
        corners = np.stack([index._a, index._b, index._c], axis=1)
        hi = index._hi.copy()
        hi[1] += 1.0
        broken = SpatialIndex(
            corners, index._order.copy(), index._lo.copy(), hi,
            index._left.copy(), index._right.copy(), index._start.copy(), index._count.copy(),
            index.depth,
        )
        with pytest.raises(AssertionError):
            broken.validate()

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            SpatialIndex.build(np.empty((0, 3, 3)))

    def test_arrays_read_only(self):
        index = SpatialIndex.build(_random_triangles(10))
        assert not index._lo.flags.writeable
        assert not index._a.flags.writeable


# ---------------------------------------------------------------------------
# Nearest distance
# ---------------------------------------------------------------------------

class TestNearestSquaredDistance:
    def setup_method(self):
        self.tris = _random_triangles(250, seed=7)
        self.index = SpatialIndex.build(self.tris)

    def test_matches_brute_force(self):
        P = np.random.default_rng(11).uniform(-0.5, 1.5, size=(400, 3))
        npt.assert_allclose(
            self.index.nearest_squared_distance(P),
            _brute_sq_dist(P, self.tris),
            rtol=1e-12, atol=1e-14,
        )

    def test_single_point_returns_float(self):
        d = self.index.nearest_squared_distance(np.array([0.5, 0.5, 0.5]))
        assert isinstance(d, float)
        assert d == pytest.approx(_brute_sq_dist(np.array([[0.5, 0.5, 0.5]]), self.tris)[0])

    def test_far_point(self):
        P = np.array([[10.0, 10.0, 10.0]])
        npt.assert_allclose(self.index.nearest_squared_distance(P), _brute_sq_dist(P, self.tris))

    def test_box_faces(self):
        index = SpatialIndex.build(_unit_box())
        P = np.array([[0.5, 0.5, 0.5], [0.5, 0.5, 1.5], [1.0, 1.0, 1.0], [0.5, 0.9, 0.3]])
        npt.assert_allclose(
            index.nearest_squared_distance(P),
            [0.16, 0.36, 0.03, 0.0],
            atol=1e-12,
        )

    def test_nonnegative(self):
        P = np.random.default_rng(5).uniform(0, 1, size=(100, 3))
        assert np.all(self.index.nearest_squared_distance(P) >= 0.0)


# ---------------------------------------------------------------------------
# Ray crossings
# ---------------------------------------------------------------------------

class TestCountCrossings:
    def test_matches_brute_force(self):
        tris = _random_triangles(150, seed=2)
        index = SpatialIndex.build(tris)
        P = np.random.default_rng(4).uniform(0, 1, size=(200, 3))
        d = np.array([0.3, -0.5, 0.8])
        d = d / np.linalg.norm(d)
        crossings, _ = index.count_crossings(P, d)
        npt.assert_array_equal(crossings, _brute_crossings(P, d, tris))

    def test_box_parity(self):
        index = SpatialIndex.build(_unit_box())
        d = np.array([0.31, 0.47, 0.83])
        crossings, on_surface = index.count_crossings(
            np.array([[0.5, 0.5, 0.5], [1.5, 0.5, 0.5], [0.05, 0.4, 0.3]]), d
        )
        assert list(crossings % 2) == [1, 0, 0]
        assert not on_surface.any()

    def test_on_surface_flag(self):
        index = SpatialIndex.build(_unit_box())
        _, on_surface = index.count_crossings(np.array([[0.9, 0.3, 0.6]]), np.array([0.31, 0.47, 0.83]))
        assert on_surface[0]
