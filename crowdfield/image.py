"""
Field image value object.

A square array of expected photons (or detected counts after noise)
with its sky sampling. Pixel (n // 2, n // 2) is the field center; rows
follow +y and columns follow +x.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from .errors import InvalidParameter


@dataclass(frozen=True, eq=False)
class FieldImage:
    """
    Rendered field.

    Attributes:
        data: Read-only (n, n) array, photons (float) or counts (int64)
        pixel_scale: Pixel scale (arcsec/pixel)
        exposure: Exposure time (s)
        is_counts: True once photon noise has been applied
        background: Sky level included in ``data`` (photons/pixel)
    """
    data: np.ndarray = field(repr=False)
    pixel_scale: float
    exposure: float = 1.0
    is_counts: bool = False
    background: float = 0.0

    def __post_init__(self):
        data = np.array(self.data, copy=True)
        if data.ndim != 2 or data.shape[0] != data.shape[1]:
            raise InvalidParameter(f"field image must be a square 2D array, got shape {data.shape}")
        if not self.pixel_scale > 0:
            raise InvalidParameter(f"pixel scale must be positive, got {self.pixel_scale}")
        if not self.exposure > 0:
            raise InvalidParameter(f"exposure must be positive, got {self.exposure}")
        data.setflags(write=False)
        object.__setattr__(self, 'data', data)

    @classmethod
    def blank(cls, n_pix: int, pixel_scale: float, exposure: float = 1.0) -> 'FieldImage':
        """Empty (all zero) image."""
        if int(n_pix) != n_pix or n_pix < 1:
            raise InvalidParameter(f"image size must be a positive integer, got {n_pix}")
        return cls(np.zeros((int(n_pix), int(n_pix))), pixel_scale, exposure)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    @property
    def n_pix(self) -> int:
        return self.data.shape[0]

    @property
    def extent(self) -> float:
        """Half-width of the field (arcsec)."""
        return 0.5 * self.n_pix * self.pixel_scale

    @property
    def center(self) -> Tuple[int, int]:
        return (self.n_pix // 2, self.n_pix // 2)

    def flux(self) -> float:
        """Total photons (or counts) in the image."""
        return float(self.data.sum())

    def coordinates(self) -> Tuple[np.ndarray, np.ndarray]:
        """(X, Y) sky coordinates of the pixel centers (arcsec)."""
        offsets = (np.arange(self.n_pix) - self.n_pix // 2) * self.pixel_scale
        return np.meshgrid(offsets, offsets)

    def to_pixel(self, x: float, y: float) -> Tuple[float, float]:
        """Sky position (arcsec) to fractional (row, col)."""
        c = self.n_pix // 2
        return (c + y / self.pixel_scale, c + x / self.pixel_scale)

    def replace(self, **changes) -> 'FieldImage':
        """Copy with some attributes changed."""
        return dataclasses.replace(self, **changes)

    def masked(self, mask) -> 'FieldImage':
        """
        Copy with pixels outside ``mask`` set to zero.

        Args:
            mask: Boolean or [0, 1] weight array with the image shape
        """
        mask = np.asarray(mask)
        if mask.shape != self.shape:
            raise InvalidParameter(f"mask shape {mask.shape} does not match image {self.shape}")
        return self.replace(data=self.data * mask)

    def __str__(self) -> str:
        kind = "counts" if self.is_counts else "photons"
        return (f"{self.n_pix}x{self.n_pix} image at {self.pixel_scale:.4g}\"/px "
                f"({2 * self.extent:.2f}\" field), {self.flux():.4g} {kind} in {self.exposure:g}s")
