"""
Random star field laws.

Spatial distributions draw sky positions (arcsec) and magnitude
distributions draw magnitudes. All draws go through an explicit
``numpy.random.Generator`` so that a seed reproduces a field exactly.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ..errors import InvalidParameter


# =============================================================================
# Spatial Distributions
# =============================================================================

class SpatialDistribution(ABC):
    """Law for star positions on the sky."""

    @abstractmethod
    def sample(self, n: int, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
        """
        Draw ``n`` positions.

        Returns:
            (x, y) arrays in arcsec
        """
        pass


@dataclass(frozen=True)
class Uniform(SpatialDistribution):
    """Uniform over a square field of view of side ``fov`` arcsec."""
    fov: float
    center: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self):
        if not self.fov > 0:
            raise InvalidParameter(f"field of view must be positive, got {self.fov}")

    def sample(self, n, rng):
        h = 0.5 * self.fov
        x = rng.uniform(-h, h, n) + self.center[0]
        y = rng.uniform(-h, h, n) + self.center[1]
        return x, y


@dataclass(frozen=True)
class Lorentz(SpatialDistribution):
    """Independent Cauchy laws along x and y with half-width ``scale`` arcsec."""
    scale: float
    center: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self):
        if not self.scale > 0:
            raise InvalidParameter(f"Lorentz scale must be positive, got {self.scale}")

    def sample(self, n, rng):
        x = self.center[0] + self.scale * rng.standard_cauchy(n)
        y = self.center[1] + self.scale * rng.standard_cauchy(n)
        return x, y


@dataclass(frozen=True)
class Globular(SpatialDistribution):
    """Cauchy-distributed radius with a uniform azimuth."""
    scale: float
    center: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self):
        if not self.scale > 0:
            raise InvalidParameter(f"globular scale must be positive, got {self.scale}")

    def sample(self, n, rng):
        r = self.scale * rng.standard_cauchy(n)
        o = rng.uniform(0.0, 2 * math.pi, n)
        return self.center[0] + r * np.cos(o), self.center[1] + r * np.sin(o)


@dataclass(frozen=True)
class Plummer(SpatialDistribution):
    """
    Projected Plummer cluster profile.

    Surface density ~ (1 + r^2/a^2)^-2, sampled through its inverse
    cumulative: r = a sqrt(u / (1 - u)).
    """
    scale: float
    center: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self):
        if not self.scale > 0:
            raise InvalidParameter(f"Plummer scale must be positive, got {self.scale}")

    def sample(self, n, rng):
        u = rng.uniform(0.0, 1.0, n)
        r = self.scale * np.sqrt(u / (1.0 - u))
        o = rng.uniform(0.0, 2 * math.pi, n)
        return self.center[0] + r * np.cos(o), self.center[1] + r * np.sin(o)


# =============================================================================
# Magnitude Distributions
# =============================================================================

class MagnitudeDistribution(ABC):
    """Law for star magnitudes."""

    @abstractmethod
    def sample(self, n: int, rng: np.random.Generator) -> np.ndarray:
        pass


@dataclass(frozen=True)
class Normal(MagnitudeDistribution):
    """Gaussian magnitudes."""
    mean: float
    std: float

    def __post_init__(self):
        if self.std < 0:
            raise InvalidParameter(f"standard deviation must be non-negative, got {self.std}")

    def sample(self, n, rng):
        return rng.normal(self.mean, self.std, n)


@dataclass(frozen=True)
class LogNormal(MagnitudeDistribution):
    """
    Magnitudes m = offset + X with X log-normal of the given mean and std.

    The normal parameters follow from the moments of X:
        mu' = ln(mean^2 / sqrt(mean^2 + std^2)), sigma' = sqrt(ln(1 + (std/mean)^2))
    """
    offset: float
    mean: float
    std: float

    def __post_init__(self):
        if not self.mean > 0:
            raise InvalidParameter(f"log-normal mean must be positive, got {self.mean}")
        if self.std < 0:
            raise InvalidParameter(f"standard deviation must be non-negative, got {self.std}")

    def sample(self, n, rng):
        mu = math.log(self.mean ** 2 / math.sqrt(self.mean ** 2 + self.std ** 2))
        sigma = math.sqrt(math.log(1.0 + (self.std / self.mean) ** 2))
        return self.offset + np.exp(rng.normal(mu, sigma, n))


@dataclass(frozen=True)
class PowerLaw(MagnitudeDistribution):
    """
    Luminosity function N(m) ~ 10^(slope m) between ``m_min`` and ``m_max``.

    Sampled through the inverse cumulative; slope 0 is uniform.
    """
    m_min: float
    m_max: float
    slope: float = 0.3

    def __post_init__(self):
        if not self.m_max > self.m_min:
            raise InvalidParameter(
                f"m_max must be greater than m_min, got [{self.m_min}, {self.m_max}]"
            )

    def sample(self, n, rng):
        u = rng.uniform(0.0, 1.0, n)
        if self.slope == 0:
            return self.m_min + u * (self.m_max - self.m_min)
        k = self.slope * math.log(10.0)
        lo, hi = math.exp(k * self.m_min), math.exp(k * self.m_max)
        return np.log(lo + u * (hi - lo)) / k


# =============================================================================
# Factories
# =============================================================================

SPATIAL_DISTRIBUTIONS = {
    'uniform': Uniform,
    'lorentz': Lorentz,
    'globular': Globular,
    'plummer': Plummer,
}

MAGNITUDE_DISTRIBUTIONS = {
    'normal': Normal,
    'lognormal': LogNormal,
    'powerlaw': PowerLaw,
}


def get_spatial(kind: str, **params) -> SpatialDistribution:
    """
    Spatial distribution by name.

    Args:
        kind: 'uniform', 'lorentz', 'globular' or 'plummer'
        **params: Distribution parameters

    Returns:
        SpatialDistribution instance
    """
    kind = kind.lower()
    if kind not in SPATIAL_DISTRIBUTIONS:
        raise InvalidParameter(
            f"Unknown spatial distribution: {kind}. Available: {list(SPATIAL_DISTRIBUTIONS.keys())}"
        )
    return SPATIAL_DISTRIBUTIONS[kind](**params)


def get_magnitudes(kind: str, **params) -> MagnitudeDistribution:
    """Magnitude distribution by name ('normal', 'lognormal' or 'powerlaw')."""
    kind = kind.lower()
    if kind not in MAGNITUDE_DISTRIBUTIONS:
        raise InvalidParameter(
            f"Unknown magnitude distribution: {kind}. Available: {list(MAGNITUDE_DISTRIBUTIONS.keys())}"
        )
    return MAGNITUDE_DISTRIBUTIONS[kind](**params)
