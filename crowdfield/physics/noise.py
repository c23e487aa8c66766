"""
Detector noise models.

Photon (Poisson) noise on expected photon counts, uniform sky background
and an SNR helper for reporting.
"""

from __future__ import annotations

from typing import Optional, Union

import numpy as np

from ..errors import NegativeExpectation, InvalidParameter


RandomSource = Union[None, int, np.random.Generator]


def make_rng(rng: RandomSource = None) -> np.random.Generator:
    """
    Normalize a random source into a ``numpy.random.Generator``.

    Args:
        rng: Existing generator, integer seed, or None for fresh entropy
    """
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


# =============================================================================
# Noise Sources
# =============================================================================

def check_expectation(expected):
    """
    Ensure an expected-count array is finite and non-negative.

    Raises:
        NegativeExpectation: if any pixel is negative or not finite
    """
    expected = np.asarray(expected)
    if not np.all(np.isfinite(expected)):
        raise NegativeExpectation("expected counts contain non-finite values")
    if expected.size and expected.min() < 0:
        n_bad = int(np.count_nonzero(expected < 0))
        raise NegativeExpectation(
            f"{n_bad} pixel(s) have negative expected counts (min {expected.min():.3e})"
        )


def poisson_counts(expected, rng: RandomSource = None):
    """
    Draw one Poisson sample per pixel.

    Args:
        expected: Expected photon counts (non-negative)
        rng: Generator, seed, or None

    Returns:
        Integer counts (int64) with the shape of ``expected``
    """
    check_expectation(expected)
    generator = make_rng(rng)
    return generator.poisson(np.asarray(expected, dtype=np.float64)).astype(np.int64)


def background_counts(level: float, exposure: float) -> float:
    """
    Expected sky photons per pixel over an exposure.

    Args:
        level: Sky level (photons/pixel/s)
        exposure: Exposure time (s)
    """
    if level < 0:
        raise InvalidParameter(f"background level must be non-negative, got {level}")
    return level * exposure


# =============================================================================
# SNR Computation
# =============================================================================

def compute_snr(signal, background: float = 0.0, read_noise: float = 0.0):
    """
    Compute signal-to-noise ratio.

    SNR = signal / sqrt(signal + background + read_noise^2)

    Args:
        signal: Signal counts
        background: Background counts
        read_noise: Read noise standard deviation

    Returns:
        SNR value(s)
    """
    signal = np.asarray(signal, dtype=np.float64)
    variance = signal + background + read_noise**2
    variance = np.maximum(variance, 1e-10)
    return signal / np.sqrt(variance)


# =============================================================================
# Field Images
# =============================================================================

def add_background(image, level: float):
    """
    Add a uniform sky level to an expected-photon image.

    Args:
        image: ``FieldImage`` of expected photons
        level: Sky level (photons/pixel/s)

    Returns:
        New ``FieldImage`` with ``level * exposure`` added to every pixel
    """
    if image.is_counts:
        raise InvalidParameter("background must be added before photon noise")
    counts = background_counts(level, image.exposure)
    return image.replace(data=image.data + counts, background=image.background + counts)


def apply_photon_noise(image, rng: RandomSource = None):
    """
    Replace every pixel by a Poisson draw of its expectation.

    Applying it to counts draws again around the current counts.

    Args:
        image: ``FieldImage``
        rng: Generator, seed, or None for fresh entropy

    Returns:
        New ``FieldImage`` of int64 counts with ``is_counts=True``

    Raises:
        NegativeExpectation: negative or non-finite expectation
    """
    counts = poisson_counts(image.data, rng)
    return image.replace(data=counts, is_counts=True)


def snr_map(image, background: Optional[float] = None, read_noise: float = 0.0):
    """
    Per-pixel SNR of an expected-photon image.

    Args:
        image: ``FieldImage``
        background: Background per pixel; defaults to the image's own sky
        read_noise: Read noise (electrons RMS)
    """
    if background is None:
        background = image.background
    signal = np.asarray(image.data, dtype=np.float64) - image.background
    return compute_snr(np.maximum(signal, 0.0), background, read_noise)
