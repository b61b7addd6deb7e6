"""Atlas packing: an N³ field as a single ``(N, N*N)`` image.

z-slice ``z`` occupies columns ``[z*N, (z+1)*N)`` across all N rows; the
row is ``y`` and the column within a slice is ``x``.  A consumer without
3-D textures uploads this image as one 2-D resource.  Because the field is
stored ``[y, z, x]``, packing is a pure reshape of the same bytes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union

import numpy as np
import numpy.typing as npt
from skimage import io as skio

from .errors import IOFailure

__all__ = ["pack", "unpack", "atlas_column", "save_png", "load_png"]


def _cube_size(field: np.ndarray) -> int:
    if field.ndim != 3 or not (field.shape[0] == field.shape[1] == field.shape[2]):
        raise ValueError(f"field must be an (N, N, N) cube, got shape {field.shape}")
    return field.shape[0]


def _atlas_size(atlas: np.ndarray) -> int:
    if atlas.ndim != 2 or atlas.shape[1] != atlas.shape[0] ** 2:
        raise ValueError(f"atlas must have shape (N, N*N), got {atlas.shape}")
    return atlas.shape[0]


def pack(field: npt.ArrayLike) -> np.ndarray:
    """Reshape an ``(N, N, N)`` field indexed ``[y, z, x]`` into its ``(N, N*N)`` atlas."""
    field = np.asarray(field)
    n = _cube_size(field)
    return np.ascontiguousarray(field).reshape(n, n * n).copy()


def unpack(atlas: npt.ArrayLike) -> np.ndarray:
    """Inverse of :func:`pack`."""
    atlas = np.asarray(atlas)
    n = _atlas_size(atlas)
    return np.ascontiguousarray(atlas).reshape(n, n, n).copy()


def atlas_column(x: npt.ArrayLike, z: npt.ArrayLike, n: int) -> np.ndarray:
    """Atlas column of voxel ``(x, z)`` in a size-*n* atlas."""
    return np.asarray(z) * n + np.asarray(x)


def save_png(path: Union[str, Path], atlas: npt.ArrayLike) -> None:
    """Write *atlas* as an 8-bit greyscale PNG."""
    atlas = np.asarray(atlas)
    _atlas_size(atlas)
    if atlas.dtype != np.uint8:
        raise ValueError(f"atlas must be uint8, got {atlas.dtype}")
    try:
        skio.imsave(str(path), atlas, check_contrast=False)
    except (OSError, ValueError) as exc:
        raise IOFailure(f"cannot write atlas image {path}: {exc}") from exc


def load_png(path: Union[str, Path]) -> np.ndarray:
    """Read an atlas PNG written by :func:`save_png`."""
    try:
        atlas = skio.imread(str(path))
    except (OSError, ValueError) as exc:
        raise IOFailure(f"cannot read atlas image {path}: {exc}") from exc
    if atlas.dtype != np.uint8 or atlas.ndim != 2 or atlas.shape[1] != atlas.shape[0] ** 2:
        raise IOFailure(
            f"{path} is not an 8-bit single-channel (N, N*N) atlas "
            f"(got {atlas.dtype} {atlas.shape})"
        )
    return atlas
