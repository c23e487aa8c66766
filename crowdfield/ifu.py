"""
IFU aperture masks and throughput.

Geometries are inside tests on the sky (arcsec), evaluated at the pixel
centers of a field image:
- hex: bundle of seven hexagonal lenslets
- round: circular aperture
- slit: rectangular slit

Throughput is the fraction of the image flux inside the mask.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .errors import GeometryOutOfBounds, InvalidGeometry, UnknownPreset
from .image import FieldImage
from .pupils.generic import COS30, SIN30, disk_inside, hexagon_inside
from .utils.logging import get_logger


logger = get_logger("crowdfield.ifu")

# Slack on the bounds check for geometries that exactly fill the image
_BOUNDS_TOLERANCE = 1e-9


def _check_size(name: str, value: float):
    if value is None or not value > 0:
        raise InvalidGeometry(f"{name} must be positive, got {value}")


# =============================================================================
# Geometries
# =============================================================================

class IfuGeometry(ABC):
    """Aperture on the sky."""

    center: Tuple[float, float] = (0.0, 0.0)

    @abstractmethod
    def inside(self, X, Y):
        """Boolean mask of the points (arcsec, relative to ``center``) inside."""
        pass

    @abstractmethod
    def half_size(self, image: FieldImage) -> Tuple[float, float]:
        """Half-width of the bounding box along x and y (arcsec)."""
        pass

    def elements(self) -> List['IfuGeometry']:
        """Individual apertures reported separately."""
        return [self]

    def bounding_box(self, image: FieldImage) -> Tuple[float, float, float, float]:
        """(x_min, x_max, y_min, y_max) in arcsec."""
        hx, hy = self.half_size(image)
        cx, cy = self.center
        return (cx - hx, cx + hx, cy - hy, cy + hy)

    def check_bounds(self, image: FieldImage):
        """
        Raises:
            GeometryOutOfBounds: if the bounding box exceeds the image
        """
        x_min, x_max, y_min, y_max = self.bounding_box(image)
        limit = image.extent * (1 + _BOUNDS_TOLERANCE)
        if min(x_min, y_min) < -limit or max(x_max, y_max) > limit:
            raise GeometryOutOfBounds(
                f"{self} spans x [{x_min:.3f}, {x_max:.3f}]\", y [{y_min:.3f}, {y_max:.3f}]\" "
                f"beyond the +/-{image.extent:.3f}\" image"
            )

    def mask(self, image: FieldImage) -> np.ndarray:
        """Boolean mask over the image pixels."""
        self.check_bounds(image)
        X, Y = image.coordinates()
        return self.inside(X - self.center[0], Y - self.center[1])


@dataclass(frozen=True)
class Hexagon(IfuGeometry):
    """Single hexagonal lenslet with flats parallel to x."""
    flat_to_flat: float
    center: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self):
        _check_size("hexagon flat-to-flat width", self.flat_to_flat)

    def inside(self, X, Y):
        return hexagon_inside(X, Y, self.flat_to_flat)

    def half_size(self, image):
        return (0.5 * self.flat_to_flat / COS30, 0.5 * self.flat_to_flat)

    def __str__(self) -> str:
        return f"hexagon {self.flat_to_flat:.3f}\" @({self.center[0]:.3f},{self.center[1]:.3f})"


@dataclass(frozen=True)
class HexagonBundle(IfuGeometry):
    """
    Seven contiguous hexagons: one central and six around it at
    (0, +/-w) and (+/-cos30 w, +/-sin30 w).
    """
    flat_to_flat: float
    center: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self):
        _check_size("hexagon flat-to-flat width", self.flat_to_flat)

    def offsets(self) -> List[Tuple[float, float]]:
        w = self.flat_to_flat
        return [
            (0.0, 0.0),
            (0.0, w),
            (0.0, -w),
            (COS30 * w, SIN30 * w),
            (COS30 * w, -SIN30 * w),
            (-COS30 * w, SIN30 * w),
            (-COS30 * w, -SIN30 * w),
        ]

    def elements(self) -> List[Hexagon]:
        cx, cy = self.center
        return [Hexagon(self.flat_to_flat, (cx + ox, cy + oy)) for ox, oy in self.offsets()]

    def inside(self, X, Y):
        mask = np.zeros(np.shape(X), dtype=bool)
        for ox, oy in self.offsets():
            mask |= hexagon_inside(X, Y, self.flat_to_flat, ox, oy)
        return mask

    def half_size(self, image):
        w = self.flat_to_flat
        return (COS30 * w + 0.5 * w / COS30, 1.5 * w)

    def __str__(self) -> str:
        return f"7-hexagon IFU {self.flat_to_flat:.3f}\""


@dataclass(frozen=True)
class CircularAperture(IfuGeometry):
    """Round aperture."""
    diameter: float
    center: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self):
        _check_size("aperture diameter", self.diameter)

    def inside(self, X, Y):
        return disk_inside(X, Y, 0.5 * self.diameter)

    def half_size(self, image):
        return (0.5 * self.diameter, 0.5 * self.diameter)

    def __str__(self) -> str:
        return f"round IFU {self.diameter:.3f}\""


@dataclass(frozen=True)
class Slit(IfuGeometry):
    """Slit of ``width`` along x and ``length`` along y (default the field height)."""
    width: float
    length: Optional[float] = None
    center: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self):
        _check_size("slit width", self.width)
        if self.length is not None:
            _check_size("slit length", self.length)

    def _length(self, image: Optional[FieldImage]) -> float:
        if self.length is not None:
            return self.length
        return 2 * image.extent

    def half_size(self, image):
        return (0.5 * self.width, 0.5 * self._length(image))

    def inside(self, X, Y):
        half_length = 0.5 * self.length if self.length is not None else np.inf
        return (np.abs(X) < 0.5 * self.width) & (np.abs(Y) < half_length)

    def __str__(self) -> str:
        length = f"{self.length:.3f}\"" if self.length is not None else "full-field"
        return f"slit IFU {self.width:.3f}\" x {length}"


IFU_KINDS = {
    'hex': HexagonBundle,
    'round': CircularAperture,
    'slit': Slit,
}

_ALIASES = {'hexagon': 'hex', 'circular': 'round', 'circle': 'round'}


def get_ifu(kind: str, size: float, length: Optional[float] = None,
            center: Tuple[float, float] = (0.0, 0.0)) -> IfuGeometry:
    """
    IFU geometry by name.

    Args:
        kind: 'hex', 'round' or 'slit'
        size: Hexagon flat-to-flat width, aperture diameter or slit width (arcsec)
        length: Slit length (arcsec), default the field height
        center: Aperture center (arcsec)

    Raises:
        UnknownPreset: unknown kind
        InvalidGeometry: non-positive size
    """
    name = _ALIASES.get(kind.lower(), kind.lower())
    if name not in IFU_KINDS:
        raise UnknownPreset(f"Unknown IFU '{kind}'. Available: {list(IFU_KINDS.keys())}")
    center = (float(center[0]), float(center[1]))
    if name == 'slit':
        return Slit(size, length, center)
    return IFU_KINDS[name](size, center)


# =============================================================================
# Throughput
# =============================================================================

@dataclass(frozen=True)
class IfuResult:
    """
    Attributes:
        geometry: Aperture used
        masked: Image with the pixels outside the aperture zeroed
        throughput: Masked flux over total flux, in [0, 1]
        elements: Throughput of each lenslet (hexagon bundle only)
    """
    geometry: IfuGeometry
    masked: FieldImage
    throughput: float
    elements: Optional[List[float]] = None


def measure_throughput(image: FieldImage, geometry: IfuGeometry) -> IfuResult:
    """
    Fraction of the field flux collected by an IFU.

    A field without flux has zero throughput.

    Raises:
        GeometryOutOfBounds: aperture larger than the image
    """
    masked = image.masked(geometry.mask(image))
    total = image.flux()

    def fraction(flux):
        return float(np.clip(flux / total, 0.0, 1.0)) if total > 0 else 0.0

    throughput = fraction(masked.flux())
    elements = None
    if len(geometry.elements()) > 1:
        elements = [fraction(image.masked(e.mask(image)).flux()) for e in geometry.elements()]

    logger.info(f"{geometry} throughput: {throughput:.3f}")
    if elements is not None:
        logger.info(f"Individual element throughput: {', '.join(f'{t:.3f}' for t in elements)}")
    return IfuResult(geometry, masked, throughput, elements)
