"""
Atmospheric turbulence models.

Von Karman phase statistics (variance, covariance, structure function),
Fried parameter scaling, isoplanatic angle from a layered Cn2 profile and
the residual phase spectrum left by an adaptive optics system.

References:
    Conan, R. (2000), PhD thesis, Universite de Nice, for the closed-form
    von Karman covariance.
    Jolissaint, Veran & Conan (2006), JOSA A 23, 382 for the
    PSD -> structure function -> OTF recipe.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple, List, Optional

import numpy as np
from scipy.special import gamma, kv

from ..utils.compute import get_backend
from .photometry import REFERENCE_WAVELENGTH, RAD2ARCSEC


# Kolmogorov PSD constant, W(f) = 0.023 r0^(-5/3) f^(-11/3) with f in cycles/m
PSD_CONSTANT = 0.023

# Default outer scale (meters)
DEFAULT_OUTER_SCALE = 25.0


# =============================================================================
# Turbulence Profile
# =============================================================================

@dataclass(frozen=True)
class TurbulenceProfile:
    """
    Layered Cn2 profile.

    Attributes:
        heights: Layer altitudes above the telescope (meters)
        weights: Fractional Cn2 of each layer (sums to 1)
    """
    heights: Tuple[float, ...] = (25., 275., 425., 1250., 4000., 8000., 13000.)
    weights: Tuple[float, ...] = (0.1257, 0.0874, 0.0666, 0.3498, 0.2273, 0.0681, 0.0751)

    def __post_init__(self):
        assert len(self.heights) == len(self.weights), "heights and weights must match"
        assert len(self.heights) > 0, "profile needs at least one layer"

    @property
    def layers(self) -> List[Tuple[float, float]]:
        """(height, normalized weight) pairs."""
        total = sum(self.weights)
        return [(h, w / total) for h, w in zip(self.heights, self.weights)]

    @property
    def mean_height(self) -> float:
        """
        Turbulence mean height for anisoplanatism.

        h_bar = (sum w h^(5/3))^(3/5)
        """
        moment = sum(w * h ** (5/3) for h, w in self.layers)
        return moment ** (3/5)


REFERENCE_PROFILE = TurbulenceProfile()


# =============================================================================
# Fried Parameter Scaling
# =============================================================================

def scale_fried_parameter(r0: float, wavelength: float, zenith_angle: float = 0.0) -> float:
    """
    Scale a Fried parameter quoted at 0.55um and zenith.

    r0(lambda, z) = r0 * cos(z)^(3/5) * (lambda / 0.55um)^(6/5)

    Args:
        r0: Fried parameter at the reference wavelength (meters)
        wavelength: Observing wavelength (meters)
        zenith_angle: Zenith angle (degrees)

    Returns:
        Scaled Fried parameter (meters)
    """
    airmass_scaling = math.cos(math.radians(zenith_angle)) ** (3/5)
    chromatic_scaling = (wavelength / REFERENCE_WAVELENGTH) ** (6/5)
    return r0 * airmass_scaling * chromatic_scaling


def seeing_fwhm(r0: float, wavelength: float, outer_scale: Optional[float] = DEFAULT_OUTER_SCALE) -> float:
    """
    Seeing-limited FWHM in arcseconds.

    Kolmogorov FWHM 0.98 lambda/r0, reduced by the finite outer scale
    following Tokovinin (2002): sqrt(1 - 2.183 (r0/L0)^0.356).

    Args:
        r0: Fried parameter at ``wavelength`` (meters)
        wavelength: Wavelength (meters)
        outer_scale: Outer scale (meters), None for pure Kolmogorov
    """
    fwhm = 0.98 * wavelength / r0
    if outer_scale:
        factor = 1.0 - 2.183 * (r0 / outer_scale) ** 0.356
        fwhm *= math.sqrt(max(factor, 0.0))
    return fwhm * RAD2ARCSEC


def isoplanatic_angle(r0: float, zenith_angle: float = 0.0,
                      profile: TurbulenceProfile = REFERENCE_PROFILE) -> float:
    """
    Isoplanatic angle theta0 in radians.

    theta0 = 0.314 r0 cos(z) / h_bar

    Args:
        r0: Fried parameter along the line of sight at the science wavelength (meters)
        zenith_angle: Zenith angle (degrees), layers are projected by sec(z)
        profile: Cn2 profile
    """
    h_bar = profile.mean_height
    return 0.314 * r0 * math.cos(math.radians(zenith_angle)) / max(h_bar, 1.0)


# =============================================================================
# Von Karman Phase Statistics
# =============================================================================

_G_11_6 = gamma(11/6)
_G_5_6 = gamma(5/6)
_P_5_6 = (24 * gamma(6/5) / 5) ** (5/6)
_PI_8_3 = math.pi ** (8/3)


def von_karman_psd(f, r0: float, L0: float = DEFAULT_OUTER_SCALE):
    """
    Von Karman phase power spectral density.

    W(f) = 0.023 r0^(-5/3) (f^2 + 1/L0^2)^(-11/6)

    Args:
        f: Spatial frequency array (cycles/meter)
        r0: Fried parameter (meters)
        L0: Outer scale (meters)
    """
    return PSD_CONSTANT * r0 ** (-5/3) * (f**2 + 1.0 / L0**2) ** (-11/6)


def phase_variance(r0: float, L0: float = DEFAULT_OUTER_SCALE) -> float:
    """Total von Karman phase variance (rad^2)."""
    return 0.5 * _G_11_6 * _G_5_6 * _P_5_6 * (L0 / r0) ** (5/3) / _PI_8_3


def phase_covariance(rho, r0: float, L0: float = DEFAULT_OUTER_SCALE):
    """
    Von Karman phase covariance B(rho) (rad^2).

    Args:
        rho: Separation(s) in the pupil plane (meters), NumPy array or scalar
        r0: Fried parameter (meters)
        L0: Outer scale (meters)
    """
    rho = np.abs(np.asarray(rho, dtype=np.float64))
    variance = phase_variance(r0, L0)

    red = 2 * np.pi * rho / L0
    safe = np.where(red > 0, red, 1.0)
    cov = (_G_11_6 * _P_5_6 * (L0 / r0) ** (5/3) * safe ** (5/6) * kv(5/6, safe)
           / (_PI_8_3 * 2 ** (5/6)))
    return np.where(red > 0, cov, variance)


def structure_function(rho, r0: float, L0: float = DEFAULT_OUTER_SCALE):
    """Von Karman phase structure function D(rho) = 2 (sigma^2 - B(rho))."""
    return 2.0 * (phase_variance(r0, L0) - phase_covariance(rho, r0, L0))


def atmosphere_otf(rho, r0: float, L0: float = DEFAULT_OUTER_SCALE):
    """
    Long-exposure atmosphere transfer function exp(-D(rho)/2).

    Returns a NumPy array with the shape of ``rho``.
    """
    return np.exp(-0.5 * structure_function(rho, r0, L0))


# =============================================================================
# AO Residual Phase
# =============================================================================

def fitting_cutoff(r0: float, variance: float) -> float:
    """
    Spatial frequency above which uncorrected turbulence leaves ``variance``.

    Solves 2 pi int_fc^inf f W(f) df = variance for a Kolmogorov spectrum:
    0.023 * 2 pi * (3/5) * (fc r0)^(-5/3) = variance.

    Args:
        r0: Fried parameter (meters)
        variance: Residual fitting variance (rad^2), > 0

    Returns:
        Cutoff frequency (cycles/meter)
    """
    coefficient = PSD_CONSTANT * 2 * math.pi * (3/5)
    return (coefficient / variance) ** (3/5) / r0


class FrequencyGrid:
    """
    Spatial frequency grid conjugate to a pupil-plane lag grid.

    Frequencies are in cycles/meter and in FFT order (zero at index 0).
    """

    def __init__(self, n_pix: int, pixel_size: float):
        """
        Initialize frequency grid.

        Args:
            n_pix: Grid size in pixels
            pixel_size: Lag spacing in the pupil plane (meters)
        """
        xp = get_backend().xp

        self.n_pix = n_pix
        self.pixel_size = pixel_size

        f = xp.fft.fftfreq(n_pix, d=float(pixel_size))
        self.FX, self.FY = xp.meshgrid(f, f)
        self.F = xp.sqrt(self.FX**2 + self.FY**2)

        # Frequency resolution and area element
        self.df = 1.0 / (n_pix * float(pixel_size))
        self.dA = self.df ** 2

    @property
    def f_max(self) -> float:
        """Largest frequency along an axis."""
        return 0.5 / self.pixel_size


def residual_covariance(psd, grid: FrequencyGrid):
    """
    Phase covariance from a power spectrum, B = IFT(PSD).

    B(0) equals the integrated variance sum(PSD) dA.
    """
    xp = get_backend().xp
    return xp.real(xp.fft.ifft2(psd)) * grid.n_pix**2 * grid.dA


def _normalize_psd(psd, grid: FrequencyGrid, variance: float):
    """Rescale ``psd`` so that it integrates to ``variance``."""
    xp = get_backend().xp
    total = float(xp.sum(psd)) * grid.dA
    if total <= 0:
        return None
    return psd * (variance / total)


def ao_residual_otf(
    grid: FrequencyGrid,
    r0: float,
    L0: float,
    fitting_variance: float,
    aniso_variance: float = 0.0,
    aniso_offset: Tuple[float, float] = (0.0, 0.0),
    zenith_angle: float = 0.0,
    profile: TurbulenceProfile = REFERENCE_PROFILE,
):
    """
    Long-exposure OTF of the AO-corrected atmosphere, in FFT order.

    The residual phase spectrum has two parts, each rescaled to its target
    variance so that OTF(inf) = exp(-sigma_fit^2 - sigma_aniso^2):

    - fitting: von Karman PSD above the fitting cutoff
    - anisoplanatism: von Karman PSD below the cutoff, filtered by
      sum_l w_l 2 (1 - cos(2 pi h_l sec(z) f . dtheta))

    A fitting halo entirely beyond the sampled frequencies is spread
    uniformly over the grid (delta covariance at zero lag).

    Args:
        grid: Frequency grid conjugate to the OTF lag grid
        r0: Fried parameter at the science wavelength (meters)
        L0: Outer scale (meters)
        fitting_variance: Target fitting variance (rad^2)
        aniso_variance: Target anisoplanatism variance (rad^2)
        aniso_offset: Angular offset from the corrected direction (radians)
        zenith_angle: Zenith angle (degrees)
        profile: Cn2 profile

    Returns:
        OTF array (backend array module)
    """
    xp = get_backend().xp
    n = grid.n_pix
    covariance = xp.zeros((n, n), dtype=xp.float64)

    psd = von_karman_psd(grid.F, r0, L0)
    f_c = fitting_cutoff(r0, fitting_variance) if fitting_variance > 0 else math.inf

    if fitting_variance > 0:
        fitting_psd = _normalize_psd(xp.where(grid.F >= f_c, psd, 0.0), grid, fitting_variance)
        if fitting_psd is None:
            covariance[0, 0] += fitting_variance
        else:
            covariance += residual_covariance(fitting_psd, grid)

    if aniso_variance > 0:
        dx, dy = aniso_offset
        secz = 1.0 / math.cos(math.radians(zenith_angle))
        projection = grid.FX * dx + grid.FY * dy
        filt = xp.zeros_like(psd)
        for h, w in profile.layers:
            filt += w * 2.0 * (1.0 - xp.cos(2 * math.pi * h * secz * projection))
        aniso_psd = xp.where(grid.F < f_c, psd * filt, 0.0)
        aniso_psd = _normalize_psd(aniso_psd, grid, aniso_variance)
        if aniso_psd is None:
            covariance[0, 0] += aniso_variance
        else:
            covariance += residual_covariance(aniso_psd, grid)

    return xp.exp(covariance - (fitting_variance + aniso_variance))
