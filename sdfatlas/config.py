"""Configuration for field generation and rendering.

Defaults: a 64³ field with the mesh filling 80%
of the unit cube, and a 1280×720 viewer marching 10 steps from an orbital
camera at radius 1.5.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .errors import InvalidConfig

__all__ = ["GeneratorConfig", "RenderConfig"]


@dataclass
class GeneratorConfig:
    """Settings for :func:`sdfatlas.pipeline.generate_field`.

    Attributes
    ----------
    resolution:
        Voxels per axis N; the field holds N³ bytes.  Must be >= 2.
    fill:
        Fraction of the unit cube spanned by the mesh's largest extent.
    clamp_distance:
        Distance (normalized units) that quantizes to 255.
    max_leaf_size:
        Triangles per BVH leaf.
    workers:
        Sampling threads; ``None`` lets the executor choose, ``1`` samples
        inline.
    """

    resolution: int = 64
    fill: float = 0.8
    clamp_distance: float = 1.0
    max_leaf_size: int = 4
    workers: Optional[int] = None

    def validate(self) -> "GeneratorConfig":
        if self.resolution < 2:
            raise InvalidConfig(f"grid resolution must be >= 2, got {self.resolution}")
        if not 0.0 < self.fill <= 1.0:
            raise InvalidConfig(f"fill must lie in (0, 1], got {self.fill}")
        if self.clamp_distance <= 0.0:
            raise InvalidConfig(f"clamp_distance must be positive, got {self.clamp_distance}")
        if self.max_leaf_size < 1:
            raise InvalidConfig(f"max_leaf_size must be >= 1, got {self.max_leaf_size}")
        if self.workers is not None and self.workers < 1:
            raise InvalidConfig(f"workers must be >= 1, got {self.workers}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RenderConfig:
    """Viewport, march and orbital-camera settings for :func:`sdfatlas.tracer.render`.

    ``stop_distance`` stays ``None`` for the fixed-step march; setting it
    enables early termination and changes the depth values produced.
    """

    width: int = 1280
    height: int = 720
    steps: int = 10
    stop_distance: Optional[float] = None
    radius: float = 1.5
    theta: float = 1.39
    phi: float = -2.8

    def validate(self) -> "RenderConfig":
        if self.width < 1 or self.height < 1:
            raise InvalidConfig(f"viewport must be at least 1x1, got {self.width}x{self.height}")
        if self.steps < 0:
            raise InvalidConfig(f"steps must be >= 0, got {self.steps}")
        if self.stop_distance is not None and self.stop_distance < 0.0:
            raise InvalidConfig(f"stop_distance must be >= 0, got {self.stop_distance}")
        if self.radius <= 0.0:
            raise InvalidConfig(f"camera radius must be positive, got {self.radius}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
