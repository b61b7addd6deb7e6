"""sdfatlas: triangle mesh to quantized distance-field atlas (numpy).

Bakes a closed triangle mesh into an N³ grid of 8-bit distances over the
unit cube, packs the grid into a single ``(N, N*N)`` image, and sphere-traces
that image back into a depth buffer.

Quick start
-----------
>>> from sdfatlas import load_mesh, generate_field, pack, Camera, render
>>> mesh = load_mesh("bunny.stl")
>>> result = generate_field(mesh, "bunny.bin")
>>> atlas = pack(result.field)
>>> depth = render(atlas, Camera.orbit(), 320, 180)
>>> depth.shape
(180, 320)

Field format
------------
``N³`` bytes, ``index = y*N*N + z*N + x``; ``0`` on or inside the surface,
``255`` at or beyond distance 1.0 (the mesh spans 0.8 of the cube).

Watertight requirement
----------------------
Inside/outside uses parity ray casting, which is only meaningful for
**watertight** (closed, 2-manifold) meshes.  Near holes or non-manifold
edges the sign is arbitrary; no error is raised.
"""

__version__ = "0.1.0"

from .atlas import atlas_column, load_png, pack, save_png, unpack
from .bvh import SpatialIndex
from .classify import Containment, InsideOutsideClassifier
from .config import GeneratorConfig, RenderConfig
from .errors import (
    InvalidConfig,
    InvalidMesh,
    IOFailure,
    MeshImportError,
    SdfAtlasError,
    UnsupportedMeshCount,
)
from .io import read_field, write_field
from .mesh import AABB, Mesh, NormalizationResult, load_mesh, load_stl, normalize_mesh
from .pipeline import GenerationResult, build_field, generate_field
from .sampler import FieldSampler, quantize_distance
from .tracer import Camera, primary_rays, render, sample_distance, sphere_trace

__all__ = [
    # Mesh
    "Mesh",
    "AABB",
    "NormalizationResult",
    "load_mesh",
    "load_stl",
    "normalize_mesh",

    # Generation
    "SpatialIndex",
    "Containment",
    "InsideOutsideClassifier",
    "FieldSampler",
    "quantize_distance",
    "GeneratorConfig",
    "GenerationResult",
    "build_field",
    "generate_field",

    # Storage
    "pack",
    "unpack",
    "atlas_column",
    "save_png",
    "load_png",
    "read_field",
    "write_field",

    # Rendering
    "RenderConfig",
    "Camera",
    "sample_distance",
    "sphere_trace",
    "primary_rays",
    "render",

    # Errors
    "SdfAtlasError",
    "InvalidMesh",
    "UnsupportedMeshCount",
    "MeshImportError",
    "IOFailure",
    "InvalidConfig",
]
