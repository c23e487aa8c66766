"""
Star field generation.

Provides the ``Star`` and ``StarField`` value objects and the ways to
obtain a field: random draws from spatial and magnitude laws, explicit
lists, text catalogs, and guide star asterisms.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from collections.abc import Sequence
from typing import Iterable, Optional, Tuple, Union

import numpy as np

from ..errors import EmptyField, InvalidParameter
from ..physics.noise import make_rng, RandomSource
from ..physics.photometry import get_band
from ..utils.logging import get_logger
from .distributions import (
    SpatialDistribution,
    MagnitudeDistribution,
    Uniform,
    Lorentz,
    Globular,
    Plummer,
    Normal,
    LogNormal,
    PowerLaw,
    get_spatial,
    get_magnitudes,
)


logger = get_logger("crowdfield.sources")


# =============================================================================
# Value Objects
# =============================================================================

@dataclass(frozen=True)
class Star:
    """
    Point source.

    Attributes:
        x: Position along x (arcsec), relative to the field center
        y: Position along y (arcsec)
        magnitude: Magnitude in the observing band
    """
    x: float
    y: float
    magnitude: float = 0.0

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)

    @property
    def distance(self) -> float:
        """Distance to the field center (arcsec)."""
        return math.hypot(self.x, self.y)

    def separation(self, other: Union['Star', Tuple[float, float]]) -> float:
        """Angular distance to another star or (x, y) position (arcsec)."""
        ox, oy = other.position if isinstance(other, Star) else other
        return math.hypot(self.x - ox, self.y - oy)

    def flux(self, band, area: float = 1.0) -> float:
        """Photon rate (photons/s) collected over ``area`` m^2."""
        return get_band(band).photon_rate(self.magnitude, area)

    def inside_box(self, width: float) -> bool:
        """True if inside the centered square of side ``width`` arcsec."""
        h = 0.5 * width
        return abs(self.x) <= h and abs(self.y) <= h

    def __str__(self) -> str:
        return f"star @({self.x:.3f},{self.y:.3f})arcsec with {self.magnitude:.3f} magnitude"


class StarField(Sequence):
    """
    Immutable, ordered collection of stars.
    """

    def __init__(self, stars: Iterable[Star]):
        self._stars = tuple(stars)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return StarField(self._stars[index])
        return self._stars[index]

    def __len__(self) -> int:
        return len(self._stars)

    def __eq__(self, other) -> bool:
        if not isinstance(other, StarField):
            return NotImplemented
        return self._stars == other._stars

    def __hash__(self):
        return hash(self._stars)

    def _require_stars(self):
        if not self._stars:
            raise EmptyField("star field is empty")

    @property
    def positions(self) -> np.ndarray:
        """(n, 2) array of (x, y) in arcsec."""
        return np.array([s.position for s in self._stars], dtype=np.float64).reshape(-1, 2)

    @property
    def magnitudes(self) -> np.ndarray:
        return np.array([s.magnitude for s in self._stars], dtype=np.float64)

    def brightest(self) -> Star:
        self._require_stars()
        return min(self._stars, key=lambda s: s.magnitude)

    def faintest(self) -> Star:
        self._require_stars()
        return max(self._stars, key=lambda s: s.magnitude)

    def closest(self) -> Star:
        """Star nearest the field center."""
        self._require_stars()
        return min(self._stars, key=lambda s: s.distance)

    def furthest(self) -> Star:
        """Star furthest from the field center."""
        self._require_stars()
        return max(self._stars, key=lambda s: s.distance)

    def filter(self, magnitude_limit: Optional[float] = None,
               field_of_view: Optional[float] = None) -> 'StarField':
        """
        Keep stars brighter than ``magnitude_limit`` and inside the centered
        square of side ``field_of_view`` arcsec.

        Raises:
            EmptyField: if no star remains
        """
        stars = self._stars
        if magnitude_limit is not None:
            stars = [s for s in stars if s.magnitude <= magnitude_limit]
        if field_of_view is not None:
            stars = [s for s in stars if s.inside_box(field_of_view)]
        if not stars:
            raise EmptyField(
                f"no star left after filtering {len(self)} stars "
                f"(magnitude limit {magnitude_limit}, field of view {field_of_view})"
            )
        return StarField(stars)

    def __str__(self) -> str:
        if not self._stars:
            return "0 stars"
        return (f"{len(self)} stars\n"
                f" . magnitudes ({self.brightest().magnitude:.3f}, {self.faintest().magnitude:.3f})\n"
                f" . distances ({self.closest().distance:.3f}, {self.furthest().distance:.3f})arcsec")

    def __repr__(self) -> str:
        return f"StarField({len(self)} stars)"


# =============================================================================
# Constructors
# =============================================================================

def from_list(entries: Iterable) -> StarField:
    """
    Star field from explicit entries, in the given order.

    Args:
        entries: ``Star`` objects, ``((x, y), magnitude)`` or
            ``(x, y, magnitude)`` tuples

    Raises:
        EmptyField: no entries
        InvalidParameter: malformed entry
    """
    stars = []
    for entry in entries:
        if isinstance(entry, Star):
            stars.append(entry)
            continue
        entry = tuple(entry)
        if len(entry) == 2 and isinstance(entry[0], (tuple, list)) and len(entry[0]) == 2:
            (x, y), magnitude = entry
        elif len(entry) == 3:
            x, y, magnitude = entry
        else:
            raise InvalidParameter(f"cannot interpret star entry {entry}")
        stars.append(Star(float(x), float(y), float(magnitude)))
    if not stars:
        raise EmptyField("star list is empty")
    return StarField(stars)


def load_catalog(path: str, delimiter: Optional[str] = None) -> StarField:
    """
    Read a text catalog with columns ``x y magnitude`` (arcsec, arcsec, mag).

    Lines starting with '#' are ignored; ``delimiter`` defaults to
    whitespace (use ',' for CSV).
    """
    table = np.loadtxt(path, delimiter=delimiter, comments='#', ndmin=2)
    if table.size == 0:
        raise EmptyField(f"catalog {path} has no stars")
    if table.shape[1] < 3:
        raise InvalidParameter(f"catalog {path} needs 3 columns (x, y, magnitude), got {table.shape[1]}")
    logger.info(f"Loaded {table.shape[0]} stars from {path}")
    return from_list(table[:, :3].tolist())


def asterism(rings: Sequence[Tuple[float, int, float]], magnitude: float = 0.0,
             center_star: bool = True) -> StarField:
    """
    Guide star pattern made of concentric rings.

    Args:
        rings: (radius arcsec, number of stars, azimuth offset deg) per ring
        magnitude: Magnitude of every star
        center_star: Add a star at the field center

    Example:
        asterism([(7.5, 8, 0.0), (2.5, 6, 30.0)])
    """
    stars = [Star(0.0, 0.0, magnitude)] if center_star else []
    for radius, n, offset in rings:
        for i in range(int(n)):
            o = math.radians(offset + 360.0 * i / n)
            stars.append(Star(radius * math.cos(o), radius * math.sin(o), magnitude))
    return from_list(stars)


def generate_field(
    n: int,
    spatial: SpatialDistribution,
    magnitudes: MagnitudeDistribution,
    rng: RandomSource = None,
    magnitude_limit: Optional[float] = None,
    field_of_view: Optional[float] = None,
) -> StarField:
    """
    Draw a random star field.

    Positions are drawn before magnitudes from the same generator, so a
    given seed always yields the same field.

    Args:
        n: Number of stars to draw (before filtering)
        spatial: Position law
        magnitudes: Magnitude law
        rng: Generator, seed, or None
        magnitude_limit: Drop stars fainter than this
        field_of_view: Drop stars outside this centered square (arcsec)

    Raises:
        EmptyField: n == 0 or nothing left after filtering
    """
    if n < 0:
        raise InvalidParameter(f"number of stars must be non-negative, got {n}")
    if n == 0:
        raise EmptyField("requested a field of 0 stars")

    generator = make_rng(rng)
    x, y = spatial.sample(n, generator)
    m = magnitudes.sample(n, generator)

    field = StarField(Star(float(xi), float(yi), float(mi)) for xi, yi, mi in zip(x, y, m))
    if magnitude_limit is not None or field_of_view is not None:
        field = field.filter(magnitude_limit, field_of_view)

    logger.debug(f"Generated {len(field)}/{n} stars with {spatial} and {magnitudes}")
    return field


__all__ = [
    'Star',
    'StarField',
    'from_list',
    'load_catalog',
    'asterism',
    'generate_field',
    'SpatialDistribution',
    'MagnitudeDistribution',
    'Uniform',
    'Lorentz',
    'Globular',
    'Plummer',
    'Normal',
    'LogNormal',
    'PowerLaw',
    'get_spatial',
    'get_magnitudes',
]
