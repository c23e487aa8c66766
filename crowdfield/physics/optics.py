"""
Fourier optics.

Telescope transfer function from a sampled pupil, pixel transfer function,
OTF to PSF conversion, sub-pixel shifts and simple PSF metrics.

OTF arrays are kept in FFT order (zero lag at index 0) unless stated
otherwise; PSF kernels are centered at ``(n // 2, n // 2)``.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy.ndimage import map_coordinates

from ..utils.compute import get_backend


# =============================================================================
# Transfer Functions
# =============================================================================

def telescope_otf(pupil):
    """
    Compute the telescope OTF (diffraction limit + pupil geometry).

    OTF_tel = autocorrelation of the pupil, normalized to 1 at zero lag.
    The pupil is zero-padded to twice its size so that the autocorrelation
    does not wrap.

    Args:
        pupil: 2D pupil transmission array (NumPy)

    Returns:
        Centered OTF of shape (2n, 2n) with zero lag at index n
    """
    pupil = np.asarray(pupil, dtype=np.float64)
    n = pupil.shape[0]

    padded = np.zeros((2 * n, 2 * n), dtype=np.float64)
    padded[:n, :n] = pupil

    spectrum = np.fft.fft2(padded)
    otf = np.real(np.fft.ifft2(np.abs(spectrum) ** 2))
    otf = otf / otf[0, 0]

    return np.fft.fftshift(otf)


def lag_coordinates(n: int, spacing: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Pupil-plane lag coordinates of an n x n grid in FFT order.

    Args:
        n: Grid size
        spacing: Lag spacing (meters)

    Returns:
        (X, Y) lag arrays in meters
    """
    lags = np.fft.fftfreq(n) * n * spacing
    return np.meshgrid(lags, lags)


def resample_otf(otf_centered, native_spacing: float, n: int, spacing: float):
    """
    Linearly interpolate a centered OTF onto a new lag grid.

    Args:
        otf_centered: OTF from ``telescope_otf`` (zero lag at the center)
        native_spacing: Lag spacing of ``otf_centered`` (meters)
        n: Output grid size
        spacing: Output lag spacing (meters)

    Returns:
        n x n OTF in FFT order, zero outside the native support
    """
    center = otf_centered.shape[0] // 2
    X, Y = lag_coordinates(n, spacing)
    coords = np.array([Y / native_spacing + center, X / native_spacing + center])
    return map_coordinates(otf_centered, coords, order=1, mode='constant', cval=0.0)


def pixel_transfer(n: int):
    """
    Transfer function of square pixels on an n x n grid, in FFT order.

    sinc(k/n) along each axis (numpy sinc is sin(pi x)/(pi x)).
    """
    s = np.sinc(np.fft.fftfreq(n))
    return np.outer(s, s)


# =============================================================================
# PSF Computation
# =============================================================================

def otf_to_psf(otf):
    """
    Convert an FFT-ordered OTF into a centered, unit-energy PSF.

    Round-off negatives are clipped before normalization.

    Args:
        otf: 2D OTF (backend array module)

    Returns:
        2D PSF as a NumPy array, sum = 1
    """
    backend = get_backend()
    xp = backend.xp

    psf = xp.real(xp.fft.ifft2(otf))
    psf = xp.fft.fftshift(psf)
    psf = xp.maximum(psf, 0.0)

    psf = backend.to_numpy(psf).astype(np.float64)
    return psf / psf.sum()


def fourier_shift(kernel, dx: float, dy: float, otf=None):
    """
    Shift a centered kernel by a sub-pixel amount with a linear phase ramp.

    Exact for band-limited kernels. Negative ringing from undersampled
    kernels is clipped and the original energy restored.

    Args:
        kernel: 2D kernel (NumPy)
        dx: Shift along columns (pixels)
        dy: Shift along rows (pixels)
        otf: Optional precomputed ``fft2(ifftshift(kernel))``

    Returns:
        Shifted kernel with the same sum as ``kernel``
    """
    if otf is None:
        otf = np.fft.fft2(np.fft.ifftshift(kernel))
    ny, nx = otf.shape
    fy = np.fft.fftfreq(ny)[:, None]
    fx = np.fft.fftfreq(nx)[None, :]
    ramp = np.exp(-2j * np.pi * (fx * dx + fy * dy))

    shifted = np.fft.fftshift(np.real(np.fft.ifft2(otf * ramp)))
    shifted = np.maximum(shifted, 0.0)

    energy = float(np.real(otf[0, 0]))
    total = shifted.sum()
    if total > 0:
        shifted *= energy / total
    return shifted


def bilinear_weights(dx: float, dy: float):
    """
    Weights of the four integer offsets (0,0), (0,1), (1,0), (1,1) as (row, col).

    Args:
        dx, dy: Fractional offsets in [0, 1)
    """
    return (
        ((0, 0), (1 - dx) * (1 - dy)),
        ((0, 1), dx * (1 - dy)),
        ((1, 0), (1 - dx) * dy),
        ((1, 1), dx * dy),
    )


# =============================================================================
# Array Utilities
# =============================================================================

def rebin(array, factor: int):
    """Sum-bin a square array by an integer factor (shape must divide)."""
    if factor == 1:
        return array
    n = array.shape[0] // factor
    return array[:n * factor, :n * factor].reshape(n, factor, n, factor).sum(axis=(1, 3))


# =============================================================================
# PSF Metrics
# =============================================================================

def measure_fwhm(psf, pixel_scale: float = 1.0) -> float:
    """
    FWHM of a PSF from its azimuthally averaged profile.

    The half-maximum crossing is interpolated between radial bins
    centered on the brightest pixel.

    Args:
        psf: 2D PSF array
        pixel_scale: Pixel scale (arcsec/pixel); 1.0 returns pixels

    Returns:
        FWHM in the units of ``pixel_scale``
    """
    psf = np.asarray(psf, dtype=np.float64)
    peak_y, peak_x = np.unravel_index(np.argmax(psf), psf.shape)
    peak = psf[peak_y, peak_x]
    if peak <= 0:
        return 0.0

    y, x = np.indices(psf.shape)
    r = np.hypot(x - peak_x, y - peak_y)

    # Radial profile with half-pixel bins
    bins = np.round(2 * r).astype(int)
    sums = np.bincount(bins.ravel(), weights=psf.ravel())
    counts = np.bincount(bins.ravel())
    valid = counts > 0
    radii = np.arange(len(sums))[valid] / 2.0
    profile = sums[valid] / counts[valid]
    profile[0] = peak

    below = np.nonzero(profile < 0.5 * peak)[0]
    if len(below) == 0:
        return float(2 * radii[-1] * pixel_scale)
    i = below[0]
    r0, r1 = radii[i - 1], radii[i]
    p0, p1 = profile[i - 1], profile[i]
    r_half = r0 + (p0 - 0.5 * peak) * (r1 - r0) / (p0 - p1)
    return float(2 * r_half * pixel_scale)


def peak_ratio(psf, reference) -> float:
    """
    Peak of ``psf`` over the peak of a diffraction-limited ``reference``.

    Both kernels must share sampling and normalization; for AO kernels this
    is the peak-normalized core energy fraction (Strehl ratio).
    """
    return float(np.max(psf) / np.max(reference))
