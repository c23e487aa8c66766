"""
Telescope pupil models.

A pupil is an immutable transmission mask sampled over the square that
circumscribes the aperture. Pupil geometries form a closed, table-driven
set of kinds: generic shapes (circular, annular, hexagon) and named
telescope presets (HST, JWST, GMT). Each kind registers an inside-test
factory with ``register_pupil``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Union

import numpy as np

from ..errors import InvalidGeometry, UnknownPreset
from ..utils.logging import get_logger


logger = get_logger("crowdfield.pupils")


class PupilKind(Enum):
    """Supported pupil geometries."""
    CIRCULAR = 'circular'
    ANNULAR = 'annular'
    HEXAGON = 'hexagon'
    HST = 'hst'
    JWST = 'jwst'
    GMT = 'gmt'


# Inside test: (X, Y) coordinate arrays in meters -> boolean mask
InsideTest = Callable[[np.ndarray, np.ndarray], np.ndarray]


@dataclass(frozen=True)
class PupilGeometry:
    """
    Registry entry for one pupil kind.

    Attributes:
        kind: Pupil kind
        factory: (diameter, obscuration) -> inside test
        native_diameter: Preset diameter in meters, None for generic shapes
        native_obscuration: Preset obscuration diameter in meters
    """
    kind: PupilKind
    factory: Callable[[float, float], InsideTest]
    native_diameter: Optional[float] = None
    native_obscuration: float = 0.0


@dataclass(frozen=True, eq=False)
class Pupil:
    """
    Sampled telescope pupil.

    Attributes:
        kind: Pupil kind
        diameter: Circumscribed diameter (meters)
        resolution: Samples across the diameter
        obscuration: Central obscuration diameter (meters)
        mask: Read-only (resolution, resolution) transmission in [0, 1]
    """
    kind: PupilKind
    diameter: float
    resolution: int
    obscuration: float
    mask: np.ndarray = field(repr=False)

    @property
    def sampling(self) -> float:
        """Sample spacing in meters."""
        return self.diameter / self.resolution

    @property
    def area(self) -> float:
        """Collecting area in m^2."""
        return float(self.mask.sum()) * self.sampling ** 2

    @property
    def fill_factor(self) -> float:
        """Collecting area over the circumscribed disk area."""
        return self.area / (np.pi * (self.diameter / 2) ** 2)

    def __str__(self) -> str:
        return (f"{self.kind.value} pupil: {self.diameter:.3f}m diameter, "
                f"{self.area:.3f}m^2 collecting area, {self.resolution}px")


# =============================================================================
# Registry
# =============================================================================

_PUPILS: Dict[PupilKind, PupilGeometry] = {}


def register_pupil(kind: PupilKind, native_diameter: Optional[float] = None,
                   native_obscuration: float = 0.0):
    """
    Decorator to register a pupil geometry factory.

    Usage:
        @register_pupil(PupilKind.HST, native_diameter=2.4, native_obscuration=0.6)
        def hst(diameter, obscuration):
            ...
            return inside
    """
    def decorator(factory):
        _PUPILS[kind] = PupilGeometry(kind, factory, native_diameter, native_obscuration)
        return factory
    return decorator


def resolve_kind(kind: Union[str, PupilKind]) -> PupilKind:
    """Map a kind name (case-insensitive) to ``PupilKind``."""
    if isinstance(kind, PupilKind):
        return kind
    try:
        return PupilKind(str(kind).strip().lower())
    except ValueError:
        available = [k.value for k in PupilKind]
        raise UnknownPreset(f"Unknown pupil '{kind}'. Available: {available}") from None


def list_pupils():
    """List available pupil kinds."""
    return [k.value for k in _PUPILS]


def get_geometry(kind: Union[str, PupilKind]) -> PupilGeometry:
    """Registry entry for a pupil kind."""
    kind = resolve_kind(kind)
    if kind not in _PUPILS:
        raise UnknownPreset(f"Pupil '{kind.value}' has no registered geometry")
    return _PUPILS[kind]


# =============================================================================
# Sampling
# =============================================================================

def _sample_mask(inside: InsideTest, diameter: float, resolution: int, supersampling: int):
    """
    Sample an inside test with anti-aliased edges.

    Each pixel is split into supersampling^2 sub-samples whose mean gives
    the transmission.
    """
    n_large = resolution * supersampling
    step = diameter / n_large
    x = (np.arange(n_large) + 0.5) * step - diameter / 2
    X, Y = np.meshgrid(x, x)

    large = inside(X, Y).astype(np.float64)

    # Rebin to target size
    sh = resolution, supersampling, resolution, supersampling
    return large.reshape(sh).mean(-1).mean(1)


def build(
    kind: Union[str, PupilKind] = PupilKind.CIRCULAR,
    diameter: Optional[float] = None,
    resolution: int = 256,
    obscuration: Optional[float] = None,
    supersampling: int = 4,
) -> Pupil:
    """
    Build a sampled pupil.

    Args:
        kind: Pupil kind or name
        diameter: Circumscribed diameter (meters); presets default to their
            native diameter and are scaled when another value is given
        resolution: Samples across the diameter (>= 2)
        obscuration: Central obscuration diameter (meters); presets default
            to their native obscuration, scaled with the diameter
        supersampling: Sub-samples per pixel edge for anti-aliasing

    Returns:
        Pupil

    Raises:
        UnknownPreset: unknown kind
        InvalidGeometry: non-positive diameter, resolution < 2, or an
            obscuration outside [0, diameter)
    """
    geometry = get_geometry(kind)

    if diameter is None:
        if geometry.native_diameter is None:
            raise InvalidGeometry(f"{geometry.kind.value} pupil needs an explicit diameter")
        diameter = geometry.native_diameter
    diameter = float(diameter)
    if not diameter > 0:
        raise InvalidGeometry(f"diameter must be positive, got {diameter}")
    if int(resolution) != resolution or resolution < 2:
        raise InvalidGeometry(f"resolution must be an integer >= 2, got {resolution}")
    resolution = int(resolution)
    if supersampling < 1:
        raise InvalidGeometry(f"supersampling must be >= 1, got {supersampling}")

    if obscuration is None:
        scale = diameter / geometry.native_diameter if geometry.native_diameter else 1.0
        obscuration = geometry.native_obscuration * scale
    obscuration = float(obscuration)
    if obscuration < 0 or obscuration >= diameter:
        raise InvalidGeometry(
            f"obscuration must lie in [0, diameter), got {obscuration} for diameter {diameter}"
        )

    inside = geometry.factory(diameter, obscuration)
    mask = _sample_mask(inside, diameter, resolution, int(supersampling))
    mask = np.clip(mask, 0.0, 1.0)
    mask.setflags(write=False)

    pupil = Pupil(geometry.kind, diameter, resolution, obscuration, mask)
    logger.debug(f"Built {pupil}")
    return pupil


# Import geometry implementations to register them
from . import generic
from . import telescopes

__all__ = [
    'PupilKind',
    'Pupil',
    'PupilGeometry',
    'register_pupil',
    'resolve_kind',
    'get_geometry',
    'list_pupils',
    'build',
]
