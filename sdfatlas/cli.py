"""Command-line entry point.

Usage::

    sdfatlas generate -i path/to/mesh.obj -o distfield.bin --size 64
    sdfatlas generate -i bunny.stl -o bunny.bin --atlas-png bunny_atlas.png
    sdfatlas render distfield.bin -o depth.png --width 640 --height 360
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

from . import __version__
from .atlas import pack
from .config import GeneratorConfig, RenderConfig
from .errors import IOFailure, SdfAtlasError
from .io import read_field
from .mesh import load_mesh
from .pipeline import generate_field
from .tracer import render_with_config

logger = logging.getLogger("sdfatlas")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sdfatlas",
        description="Bake a triangle mesh into a quantized distance field and sphere-trace it.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Sample a mesh into an N^3 byte field")
    gen.add_argument("-i", "--input", type=Path, required=True, help="Input mesh file")
    gen.add_argument("-o", "--output", type=Path, required=True, help="Output field file")
    gen.add_argument("--size", type=int, default=GeneratorConfig.resolution,
                     help="Grid resolution N per axis (default 64, must be >= 2)")
    gen.add_argument("--fill", type=float, default=GeneratorConfig.fill,
                     help="Fraction of the unit cube spanned by the mesh (default 0.8)")
    gen.add_argument("--workers", type=int, default=None,
                     help="Sampling threads (default: executor default; 1 = single-threaded)")
    gen.add_argument("--atlas-png", type=Path, default=None,
                     help="Also write the (N, N*N) atlas as a greyscale PNG")

    ren = sub.add_parser("render", help="Sphere-trace a field into a depth buffer")
    ren.add_argument("field", type=Path, help="Field file written by 'generate'")
    ren.add_argument("-o", "--output", type=Path, required=True, help="Output PNG of the depth buffer")
    ren.add_argument("--npy", type=Path, default=None, help="Also save the raw buffer as .npy")
    ren.add_argument("--width", type=int, default=RenderConfig.width)
    ren.add_argument("--height", type=int, default=RenderConfig.height)
    ren.add_argument("--steps", type=int, default=RenderConfig.steps,
                     help="March iterations per ray (default 10)")
    ren.add_argument("--stop-distance", type=float, default=None,
                     help="Freeze rays once a step is shorter than this (off by default)")
    ren.add_argument("--radius", type=float, default=RenderConfig.radius)
    ren.add_argument("--theta", type=float, default=RenderConfig.theta)
    ren.add_argument("--phi", type=float, default=RenderConfig.phi)
    return parser


def _generate(args: argparse.Namespace) -> None:
    config = GeneratorConfig(resolution=args.size, fill=args.fill, workers=args.workers).validate()
    logger.debug(f"Generator config: {config.to_dict()}")
    mesh = load_mesh(args.input)
    generate_field(mesh, args.output, config, atlas_png=args.atlas_png)
    logger.info("Computation complete.")


def _render(args: argparse.Namespace) -> None:
    config = RenderConfig(
        width=args.width,
        height=args.height,
        steps=args.steps,
        stop_distance=args.stop_distance,
        radius=args.radius,
        theta=args.theta,
        phi=args.phi,
    ).validate()
    logger.debug(f"Render config: {config.to_dict()}")
    atlas = pack(read_field(args.field))
    depth = render_with_config(atlas, config)
    logger.info(f"Rendered {config.width}x{config.height}: t in [{depth.min():.4f}, {depth.max():.4f}]")

    if args.npy is not None:
        np.save(args.npy, depth)
        logger.info(f"Saved raw buffer: {args.npy}")

    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    try:
        plt.imsave(args.output, depth, cmap="gray_r")
    except OSError as exc:
        raise IOFailure(f"cannot write {args.output}: {exc}") from exc
    logger.info(f"Saved: {args.output}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "generate":
            _generate(args)
        else:
            _render(args)
    except SdfAtlasError as exc:
        logger.error(str(exc))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
