"""Decode an atlas into distance estimates and sphere-trace it.

Decoding
--------
:func:`sample_distance` mirrors the per-fragment lookup of a texture-only
renderer.  Along z it blends the two nearest slices linearly; along x and y
it takes the nearest texel with no interpolation at all.  The asymmetry is
part of the atlas format (bilinear filtering across a packed image would
bleed neighbouring slices into each other) and is kept as is.

Points outside the unit cube are clamped onto it, and the distance to the
clamped point is added to the field value found there.

Marching
--------
:func:`sphere_trace` always runs exactly ``steps`` iterations of
``t += sample_distance(origin + t * direction)``.  The result is an
accumulated depth, not a verified hit.  ``stop_distance`` is the only way to
freeze converged rays, and it must be asked for explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .config import RenderConfig

__all__ = [
    "Camera",
    "sample_distance",
    "sphere_trace",
    "primary_rays",
    "render",
    "render_with_config",
]

_F = npt.NDArray[np.floating]


def _normalize(v: _F) -> _F:
    return v / np.linalg.norm(v, axis=-1, keepdims=True)


def sample_distance(atlas: npt.ArrayLike, p: npt.ArrayLike) -> _F:
    """Distance estimate at *p* (shape ``(..., 3)``) from a ``(N, N*N)`` uint8 atlas.

    Returns an array of shape ``p.shape[:-1]`` in normalized units
    (texel value / 255).
    """
    atlas = np.asarray(atlas)
    n = atlas.shape[0]
    p = np.asarray(p, dtype=np.float64)
    q = np.clip(p, 0.0, 1.0)

    s = q[..., 2] * n
    s_floor = np.floor(s)
    frac = s - s_floor
    z0 = np.minimum(s_floor, n - 1).astype(np.intp)
    z1 = np.minimum(z0 + 1, n - 1)

    xi = np.minimum(np.floor(q[..., 0] * n), n - 1).astype(np.intp)
    yi = np.minimum(np.floor(q[..., 1] * n), n - 1).astype(np.intp)

    d0 = atlas[yi, z0 * n + xi] / 255.0
    d1 = atlas[yi, z1 * n + xi] / 255.0
    outside = np.linalg.norm(p - q, axis=-1)
    return outside + d0 + (d1 - d0) * frac


def sphere_trace(
    atlas: npt.ArrayLike,
    origins: npt.ArrayLike,
    directions: npt.ArrayLike,
    steps: int = 10,
    stop_distance: Optional[float] = None,
) -> _F:
    """March rays through the decoded field and return the accumulated ``t``.

    *origins* and *directions* broadcast against each other (``(..., 3)``);
    directions are expected to be unit length.  With ``stop_distance`` set,
    a ray stops advancing once a step shorter than it is sampled.
    """
    o = np.asarray(origins, dtype=np.float64)
    d = np.asarray(directions, dtype=np.float64)
    o, d = np.broadcast_arrays(o, d)
    t = np.zeros(o.shape[:-1])
    active = np.ones(o.shape[:-1], dtype=bool)

    for _ in range(steps):
        h = sample_distance(atlas, o + t[..., None] * d)
        if stop_distance is None:
            t = t + h
        else:
            active &= h >= stop_distance
            t = np.where(active, t + h, t)
    return t


@dataclass(frozen=True)
class Camera:
    """Pinhole camera: eye position plus an orthogonal forward/right/up basis."""

    eye: _F
    forward: _F
    right: _F
    up: _F

    @classmethod
    def orbit(
        cls,
        radius: float = 1.5,
        theta: float = 1.39,
        phi: float = -2.8,
        target: Sequence[float] = (0.5, 0.5, 0.5),
    ) -> "Camera":
        """Camera on a sphere of *radius* around *target*, looking at it.

        *theta* is the polar angle from +z, *phi* the azimuth in the xy-plane.
        """
        target = np.asarray(target, dtype=np.float64)
        eye = target + radius * np.array([
            np.sin(theta) * np.cos(phi),
            np.sin(theta) * np.sin(phi),
            np.cos(theta),
        ])
        forward = _normalize(target - eye)
        right = np.array([np.cos(phi - np.pi / 2), np.sin(phi - np.pi / 2), 0.0])
        up = np.cross(right, forward)
        return cls(eye=eye, forward=forward, right=right, up=up)


def primary_rays(camera: Camera, width: int, height: int) -> Tuple[_F, _F]:
    """Per-pixel ray origins and unit directions, each ``(height, width, 3)``.

    Row 0 is the top of the viewport.  Pixel coordinates are measured from
    the bottom-left corner at pixel centres, and the vertical axis is scaled
    by the aspect ratio ``height / width``.
    """
    px = np.arange(width, dtype=np.float64) + 0.5
    py = (height - 1 - np.arange(height, dtype=np.float64)) + 0.5
    x = (px - width / 2.0) / width
    y = (height / width) * (py - height / 2.0) / height
    Y, X = np.meshgrid(y, x, indexing="ij")

    forward = np.asarray(camera.forward, dtype=np.float64)
    right = np.asarray(camera.right, dtype=np.float64)
    up = np.asarray(camera.up, dtype=np.float64)
    dirs = _normalize(forward + X[..., None] * right + Y[..., None] * up)
    origins = np.broadcast_to(np.asarray(camera.eye, dtype=np.float64), dirs.shape)
    return origins, dirs


def render(
    atlas: npt.ArrayLike,
    camera: Camera,
    width: int,
    height: int,
    steps: int = 10,
    stop_distance: Optional[float] = None,
) -> _F:
    """Sphere-trace every pixel; returns a ``(height, width)`` buffer of raw march distances."""
    origins, dirs = primary_rays(camera, width, height)
    return sphere_trace(atlas, origins, dirs, steps=steps, stop_distance=stop_distance)


def render_with_config(atlas: npt.ArrayLike, config: RenderConfig) -> _F:
    """:func:`render` from an orbital camera described by *config*."""
    config.validate()
    camera = Camera.orbit(config.radius, config.theta, config.phi)
    return render(atlas, camera, config.width, config.height,
                  steps=config.steps, stop_distance=config.stop_distance)
