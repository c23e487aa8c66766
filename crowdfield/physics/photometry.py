"""
Photometric bands.

Effective wavelengths and zero-points of the Johnson-Cousins bands used to
turn apparent magnitudes into photon rates.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Union

from ..errors import InvalidParameter


RAD2ARCSEC = 206264.80624709636
ARCSEC2RAD = 1.0 / RAD2ARCSEC

# Wavelength r0 values are quoted at
REFERENCE_WAVELENGTH = 0.55e-6


@dataclass(frozen=True)
class PhotometricBand:
    """
    A single photometric band.

    Attributes:
        name: Band letter
        wavelength: Effective wavelength (meters)
        zeropoint: Photon rate of a magnitude 0 star (photons/s/m^2)
        bandwidth: Spectral bandwidth (meters)
    """
    name: str
    wavelength: float
    zeropoint: float
    bandwidth: float

    def photon_rate(self, magnitude: float, area: float = 1.0) -> float:
        """Photons per second collected over ``area`` (m^2)."""
        return self.zeropoint * 10.0 ** (-0.4 * magnitude) * area

    def magnitude(self, photon_rate: float, area: float = 1.0) -> float:
        """Inverse of ``photon_rate``."""
        if photon_rate <= 0:
            raise InvalidParameter("photon rate must be positive")
        return -2.5 * math.log10(photon_rate / (self.zeropoint * area))


BANDS: Dict[str, PhotometricBand] = {
    'V': PhotometricBand('V', 0.55e-6, 8.97e9, 0.09e-6),
    'R': PhotometricBand('R', 0.64e-6, 10.87e9, 0.15e-6),
    'I': PhotometricBand('I', 0.79e-6, 7.34e9, 0.15e-6),
    'J': PhotometricBand('J', 1.215e-6, 5.16e9, 0.26e-6),
    'H': PhotometricBand('H', 1.654e-6, 2.99e9, 0.29e-6),
    'K': PhotometricBand('K', 2.179e-6, 1.90e9, 0.41e-6),
}


def get_band(band: Union[str, PhotometricBand]) -> PhotometricBand:
    """
    Look up a photometric band by name.

    Args:
        band: Band letter (case-insensitive) or a band instance

    Returns:
        PhotometricBand
    """
    if isinstance(band, PhotometricBand):
        return band
    key = str(band).strip().upper()
    if key not in BANDS:
        raise InvalidParameter(
            f"Unknown photometric band '{band}'. Available: {list(BANDS.keys())}"
        )
    return BANDS[key]


def list_bands():
    """List available band names."""
    return list(BANDS.keys())
