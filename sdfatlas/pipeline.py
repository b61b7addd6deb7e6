"""End-to-end field generation: mesh in, N³ bytes out.

Order of work:

1. validate the configuration and normalize the mesh (``InvalidConfig`` /
   ``InvalidMesh`` abort before anything else happens);
2. open the output (``IOFailure`` aborts before any compute);
3. build the spatial index, and only then sample the grid;
4. write the field (and optionally its atlas PNG) and move both into place.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np

from .atlas import pack, save_png
from .bvh import SpatialIndex
from .classify import InsideOutsideClassifier
from .config import GeneratorConfig
from .io import atomic_output, atomic_path, field_bytes
from .mesh import Mesh, NormalizationResult, normalize_mesh
from .sampler import FieldSampler

logger = logging.getLogger(__name__)

__all__ = ["GenerationResult", "build_field", "generate_field"]


@dataclass
class GenerationResult:
    """A sampled field together with the transform that produced its frame."""

    field: np.ndarray
    normalization: NormalizationResult
    output: Optional[Path] = None
    atlas_png: Optional[Path] = None

    @property
    def resolution(self) -> int:
        return self.field.shape[0]


def _sample(normalized: Mesh, config: GeneratorConfig) -> np.ndarray:
    index = SpatialIndex.build(normalized, max_leaf_size=config.max_leaf_size)
    logger.info(f"Spatial index ready: {index.n_nodes} nodes, depth {index.depth}")
    sampler = FieldSampler(
        index,
        InsideOutsideClassifier(index),
        workers=config.workers,
        clamp_distance=config.clamp_distance,
    )
    return sampler.sample(config.resolution)


def build_field(mesh: Mesh, config: Optional[GeneratorConfig] = None) -> GenerationResult:
    """Normalize *mesh* and sample its quantized field in memory."""
    config = (config or GeneratorConfig()).validate()
    normalized, normalization = normalize_mesh(mesh, fill=config.fill)
    return GenerationResult(_sample(normalized, config), normalization)


def generate_field(
    mesh: Mesh,
    output: Union[str, Path],
    config: Optional[GeneratorConfig] = None,
    atlas_png: Optional[Union[str, Path]] = None,
) -> GenerationResult:
    """Generate the field of *mesh* and write it to *output*.

    With *atlas_png* the packed atlas is also written as a PNG.  Both
    destinations are opened before sampling and committed together, so a
    failed run leaves neither file behind.

    Raises
    ------
    InvalidConfig, InvalidMesh
        Before any output is touched.
    IOFailure
        If an output cannot be opened (raised before sampling starts) or
        the atlas image cannot be encoded.
    """
    config = (config or GeneratorConfig()).validate()
    n = config.resolution
    logger.info(f"Using distance field size: {n}x{n}x{n}")
    normalized, normalization = normalize_mesh(mesh, fill=config.fill)

    output = Path(output)
    png = Path(atlas_png) if atlas_png is not None else None
    with contextlib.ExitStack() as stack:
        fh = stack.enter_context(atomic_output(output))
        png_tmp = stack.enter_context(atomic_path(png)) if png is not None else None
        field = _sample(normalized, config)
        fh.write(field_bytes(field))
        if png_tmp is not None:
            save_png(png_tmp, pack(field))
    logger.info(f"Wrote {field.nbytes} bytes to {output}")
    if png is not None:
        logger.info(f"Saved atlas image: {png}")
    return GenerationResult(field, normalization, output, png)
