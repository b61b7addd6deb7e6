"""Preview a field file: atlas image, sphere-traced depth and isosurface.

Three panels on one page:

* the packed ``(N, N*N)`` atlas, one z-slice per block of columns;
* the depth buffer from the fixed-step sphere tracer (orbital camera);
* the solid's boundary, extracted with marching cubes (scikit-image) at
  half a quantization step above zero.

Usage::

    python scripts/preview_field.py distfield.bin                 # saves distfield_preview.png
    python scripts/preview_field.py distfield.bin --out view.png
    python scripts/preview_field.py distfield.bin --width 320 --height 180 --steps 20

Requirements: numpy, matplotlib, scikit-image
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Ensure the repo root (parent of scripts/) is importable regardless of cwd
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
from mpl_toolkits.mplot3d.art3d import Poly3DCollection
from skimage import measure

from sdfatlas import RenderConfig, pack, read_field
from sdfatlas.tracer import render_with_config


_FACE_COLOR = np.array([1.0, 0.82, 0.2])
_LIGHT      = np.array([0.577, 0.577, 0.577])


# ---------------------------------------------------------------------------
# Isosurface
# ---------------------------------------------------------------------------

def _boundary_surface(field: np.ndarray):
    """Return (verts, faces) of the solid boundary in unit-cube coordinates, or None."""
    n = field.shape[0]
    # [y, z, x] -> [x, y, z]
    vol = field.transpose(2, 0, 1).astype(float)
    if vol.min() > 0.5 or vol.max() < 0.5:
        return None
    verts, faces, _, _ = measure.marching_cubes(vol, level=0.5)
    return (verts + 0.5) / n, faces


def _shade(verts: np.ndarray, faces: np.ndarray) -> np.ndarray:
    tris  = verts[faces]
    norms = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
    nlen  = np.linalg.norm(norms, axis=1, keepdims=True)
    norms = norms / np.where(nlen > 0, nlen, 1.0)
    diffuse = np.abs(norms @ _LIGHT)
    return np.outer(0.3 + 0.7 * diffuse, _FACE_COLOR)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def render_preview(field: np.ndarray, out_path: str, config: RenderConfig) -> None:
    atlas = pack(field)
    depth = render_with_config(atlas, config)
    n = field.shape[0]

    fig = plt.figure(figsize=(15, 4.5), facecolor="#111111")

    ax = fig.add_subplot(1, 3, 1)
    ax.imshow(atlas, cmap="magma", aspect="auto", interpolation="nearest")
    for z in range(1, n):
        ax.axvline(z * n - 0.5, color="#333333", linewidth=0.4)
    ax.set_title(f"atlas  ({n} x {n * n})", color="white", fontsize=9)
    ax.set_axis_off()

    ax = fig.add_subplot(1, 3, 2)
    ax.imshow(depth, cmap="gray_r")
    ax.set_title(f"sphere trace  ({config.steps} steps)", color="white", fontsize=9)
    ax.set_axis_off()

    ax = fig.add_subplot(1, 3, 3, projection="3d")
    ax.set_facecolor("#111111")
    ax.set_axis_off()
    ax.set_title("boundary (marching cubes)", color="white", fontsize=9)
    surface = _boundary_surface(field)
    if surface is None:
        ax.text2D(0.5, 0.5, "no surface", ha="center", va="center",
                  color="gray", transform=ax.transAxes, fontsize=8)
    else:
        verts, faces = surface
        ax.add_collection3d(Poly3DCollection(verts[faces], facecolors=_shade(verts, faces),
                                             edgecolors="none"))
        ax.set_xlim(0, 1); ax.set_ylim(0, 1); ax.set_zlim(0, 1)
        ax.set_box_aspect([1, 1, 1])
        ax.view_init(elev=20, azim=35)

    plt.tight_layout(pad=0.5)
    fig.savefig(out_path, dpi=150, bbox_inches="tight", facecolor=fig.get_facecolor())
    plt.close(fig)
    print(f"Saved: {out_path}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Preview an sdfatlas field file.")
    parser.add_argument("field", type=Path, help="Field file written by 'sdfatlas generate'")
    parser.add_argument("--out", default=None, help="Output PNG path (default <field>_preview.png)")
    parser.add_argument("--width",  type=int, default=320)
    parser.add_argument("--height", type=int, default=180)
    parser.add_argument("--steps",  type=int, default=RenderConfig.steps)
    args = parser.parse_args()

    out = args.out or str(args.field.with_name(args.field.stem + "_preview.png"))
    config = RenderConfig(width=args.width, height=args.height, steps=args.steps)
    render_preview(read_field(args.field), out, config)


if __name__ == "__main__":
    main()
