"""Internal geometry kernels for point/triangle and ray/box queries.

All symbols here are private (underscore-prefixed).  Users should go through
:class:`sdfatlas.bvh.SpatialIndex` instead.

Every kernel works on *paired* rows: row ``i`` of the point array is tested
against row ``i`` of the triangle corner arrays.  The BVH builds those pairs
for each leaf it visits, so a whole batch of queries runs through numpy in
one call.

Algorithms
----------
Unsigned distance: Christer Ericson's Voronoi-region closest-point method
    (Real-Time Collision Detection §5.1.5).  Six dot products d1–d6 and three
    cross-term determinants va/vb/vc identify one of seven regions.
    ``np.select`` picks the formula; denominators are guarded with
    ``np.maximum(..., 1e-30)`` because np.select evaluates every branch.

Crossings: Möller–Trumbore ray/triangle intersection.
    A hit needs barycentric ``u, v >= 0``, ``u + v <= 1`` and a ray
    parameter ``t`` beyond the tolerance.  A point whose ``|t|`` is within
    the tolerance lies on the triangle itself.

Pruning: squared point/box distance and the slab ray/box test.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
import numpy.typing as npt

_F = npt.NDArray[np.floating]


def _dot(a: _F, b: _F) -> _F:
    """Row-wise dot product along the last axis."""
    return np.sum(a * b, axis=-1)


# ---------------------------------------------------------------------------
# Unsigned distance, Ericson Voronoi-region method
# ---------------------------------------------------------------------------

def _sq_dist_to_triangles(P: _F, A: _F, B: _F, C: _F) -> _F:
    """Squared distance from each point in *P* to the paired triangle ``(A, B, C)``.

    Parameters
    ----------
    P:
        ``(M, 3)`` query points.
    A, B, C:
        ``(M, 3)`` triangle corners (or ``(3,)`` to test every point against
        one triangle).

    Returns
    -------
    numpy.ndarray
        ``(M,)`` squared distances.
    """
    AB = B - A
    AC = C - A
    AP = P - A
    BP = P - B
    CP = P - C

    d1 = _dot(AB, AP)
    d2 = _dot(AC, AP)
    d3 = _dot(AB, BP)
    d4 = _dot(AC, BP)
    d5 = _dot(AB, CP)
    d6 = _dot(AC, CP)

    vc = d1 * d4 - d3 * d2
    vb = d5 * d2 - d1 * d6
    va = d3 * d6 - d5 * d4

    denom_uv = np.maximum(va + vb + vc, 1e-30)
    denom_ab = np.maximum(d1 - d3, 1e-30)
    denom_ac = np.maximum(d2 - d6, 1e-30)
    denom_bc = np.maximum((d4 - d3) + (d5 - d6), 1e-30)

    # Ericson's test order: A, B, AB, C, AC, BC, then the face interior.
    cond_A  = (d1 <= 0.0) & (d2 <= 0.0)
    cond_B  = (d3 >= 0.0) & (d4 <= d3)
    cond_AB = (vc <= 0.0) & (d1 >= 0.0) & (d3 <= 0.0)
    cond_C  = (d6 >= 0.0) & (d5 <= d6)
    cond_AC = (vb <= 0.0) & (d2 >= 0.0) & (d6 <= 0.0)
    cond_BC = (va <= 0.0) & ((d4 - d3) >= 0.0) & ((d5 - d6) >= 0.0)

    def _sq(cp):
        diff = P - cp
        return _dot(diff, diff)

    t_ab  = np.clip(d1 / denom_ab, 0.0, 1.0)
    cp_ab = A + t_ab[:, None] * AB

    t_ac  = np.clip(d2 / denom_ac, 0.0, 1.0)
    cp_ac = A + t_ac[:, None] * AC

    t_bc  = np.clip((d4 - d3) / denom_bc, 0.0, 1.0)
    cp_bc = B + t_bc[:, None] * (C - B)

    v = np.clip(vb / denom_uv, 0.0, 1.0)
    w = np.clip(vc / denom_uv, 0.0, 1.0)
    cp_face = A + v[:, None] * AB + w[:, None] * AC

    return np.select(
        [cond_A, cond_B, cond_AB, cond_C, cond_AC, cond_BC],
        [_sq(A), _sq(B), _sq(cp_ab), _sq(C), _sq(cp_ac), _sq(cp_bc)],
        default=_sq(cp_face),
    )


# ---------------------------------------------------------------------------
# Crossings, Möller–Trumbore
# ---------------------------------------------------------------------------

def _ray_triangle_hits(
    P: _F,
    ray_dir: _F,
    A: _F,
    B: _F,
    C: _F,
    tolerance: float = 1e-9,
) -> Tuple[npt.NDArray[np.bool_], npt.NDArray[np.bool_]]:
    """Intersect rays from *P* along *ray_dir* with the paired triangles.

    Returns
    -------
    (hits, on_surface)
        Two ``(M,)`` boolean arrays: the ray crosses the triangle strictly
        ahead of its origin, and the origin itself lies on the triangle.
    """
    e1 = B - A
    e2 = C - A
    h = np.cross(ray_dir, e2)
    det = _dot(e1, h)

    usable = np.abs(det) > 1e-12
    inv_det = np.where(usable, 1.0 / np.where(usable, det, 1.0), 0.0)

    s = P - A
    u = inv_det * _dot(s, h)
    q = np.cross(s, e1)
    v = inv_det * _dot(q, ray_dir)
    t = inv_det * _dot(q, e2)

    within = usable & (u >= 0.0) & (v >= 0.0) & ((u + v) <= 1.0)
    return within & (t > tolerance), within & (np.abs(t) <= tolerance)


# ---------------------------------------------------------------------------
# Box pruning
# ---------------------------------------------------------------------------

def _sq_dist_to_box(P: _F, lo: _F, hi: _F) -> _F:
    """Squared distance from each point in *P* ``(M, 3)`` to the box ``[lo, hi]``."""
    gap = np.maximum(lo - P, 0.0) + np.maximum(P - hi, 0.0)
    return _dot(gap, gap)


def _ray_hits_box(P: _F, inv_dir: _F, lo: _F, hi: _F) -> npt.NDArray[np.bool_]:
    """Slab test: does the ray from each point in *P* reach the box ``[lo, hi]``?

    *inv_dir* is ``1 / ray_dir`` (``inf`` for zero components).  Axes where
    the slab product is undefined (0 * inf) place no constraint, which only
    ever keeps extra nodes.
    """
    with np.errstate(invalid="ignore"):
        t1 = (lo - P) * inv_dir
        t2 = (hi - P) * inv_dir
    t_near = np.nan_to_num(np.minimum(t1, t2), nan=-np.inf, posinf=np.inf, neginf=-np.inf)
    t_far = np.nan_to_num(np.maximum(t1, t2), nan=np.inf, posinf=np.inf, neginf=-np.inf)
    t_near = t_near.max(axis=-1)
    t_far = t_far.min(axis=-1)
    return t_far >= np.maximum(t_near, 0.0)
