"""
PSF synthesis.

Builds sampled, unit-energy PSF kernels from a pupil and an
atmosphere/AO descriptor in the Fourier domain:

    OTF = OTF_tel * OTF_pix * OTF_atm

- OTF_tel: pupil autocorrelation, interpolated onto the lag grid set by
  the wavelength and pixel scale
- OTF_pix: square pixel integration
- OTF_atm: 1 (diffraction limit), exp(-D/2) (seeing, GLAO), or
  exp(B - sigma^2) for the AO residual phase (NGAO, LTAO)

Pixel scales coarser than the band limit are handled by synthesizing on an
integer-oversampled grid and summing blocks of fine pixels back to the
requested scale.

The lag grid makes the synthesized PSF periodic over its field. With a
turbulent halo the field is padded to several halo widths, normalized to
unit energy, and cropped to the requested kernel size; the energy that
falls outside the crop is lost rather than folded back into the kernel.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from .atmosphere import AtmosphereAoDescriptor, AOMode
from .errors import InvalidParameter
from .physics.photometry import RAD2ARCSEC, ARCSEC2RAD, get_band
from .physics.turbulence import atmosphere_otf, ao_residual_otf, FrequencyGrid
from .physics.optics import (
    telescope_otf,
    lag_coordinates,
    resample_otf,
    pixel_transfer,
    otf_to_psf,
    rebin,
    measure_fwhm,
    peak_ratio,
)
from .utils.compute import get_backend
from .utils.logging import get_logger


logger = get_logger("crowdfield.psf")

MIN_KERNEL_SIZE = 8

# Largest synthesis grid (pixels per side) after oversampling
MAX_GRID_SIZE = 4096

# Seeing OTF is negligible beyond this many Fried parameters
SEEING_LAG_LIMIT = 4.0

# Synthesis field spans at least this many seeing FWHM
HALO_FIELD_FACTOR = 6.0


# =============================================================================
# PSF Value
# =============================================================================

@dataclass(frozen=True, eq=False)
class Psf:
    """
    Sampled PSF kernel.

    The kernel is copied and made read-only, so one Psf can be shared
    between threads and caches.

    Attributes:
        kernel: (n, n) non-negative array, centered at (n // 2, n // 2).
            Sums to 1 unless halo energy was cropped away.
        pixel_scale: Pixel scale (arcsec/pixel)
        field_angle: Field position the kernel was computed for (arcsec)
        wavelength: Wavelength (meters)
        strehl: Strehl ratio achieved at ``field_angle`` (AO and diffraction
            limit only)
        requested_strehl: Target Strehl of the AO descriptor, if any
        undersampled: Pixel scale coarser than Nyquist
    """
    kernel: np.ndarray = field(repr=False)
    pixel_scale: float
    field_angle: Tuple[float, float] = (0.0, 0.0)
    wavelength: float = 0.0
    strehl: Optional[float] = None
    requested_strehl: Optional[float] = None
    undersampled: bool = False

    def __post_init__(self):
        kernel = np.array(self.kernel, dtype=np.float64, copy=True)
        kernel.setflags(write=False)
        object.__setattr__(self, 'kernel', kernel)

    @property
    def size(self) -> int:
        return self.kernel.shape[0]

    @property
    def center(self) -> Tuple[int, int]:
        """(row, col) of the kernel center."""
        return (self.size // 2, self.size // 2)

    @property
    def extent(self) -> float:
        """Field of view of the kernel (arcsec)."""
        return self.size * self.pixel_scale

    @property
    def peak(self) -> float:
        return float(self.kernel.max())

    @property
    def energy(self) -> float:
        return float(self.kernel.sum())

    @property
    def fwhm(self) -> float:
        """FWHM in arcseconds."""
        return measure_fwhm(self.kernel, self.pixel_scale)

    def encircled_energy(self, radius: float) -> float:
        """Energy within ``radius`` arcsec of the kernel center."""
        y, x = np.indices(self.kernel.shape)
        cy, cx = self.center
        r = np.hypot(x - cx, y - cy) * self.pixel_scale
        return float(self.kernel[r <= radius].sum())


def core_energy_fraction(psf: Psf, reference: Psf) -> float:
    """
    Peak-normalized core energy fraction of ``psf``.

    Ratio of the kernel peak to the peak of a diffraction-limited
    ``reference`` with the same sampling.
    """
    if psf.kernel.shape != reference.kernel.shape:
        raise InvalidParameter(
            f"kernel shapes differ: {psf.kernel.shape} vs {reference.kernel.shape}"
        )
    if not math.isclose(psf.pixel_scale, reference.pixel_scale, rel_tol=1e-9):
        raise InvalidParameter(
            f"pixel scales differ: {psf.pixel_scale} vs {reference.pixel_scale}"
        )
    return peak_ratio(psf.kernel, reference.kernel)


# =============================================================================
# Synthesizer
# =============================================================================

class PsfSynthesizer:
    """
    PSF synthesizer for one pupil, descriptor and sampling.

    The field-independent factors (telescope, pixel and, for seeing/GLAO,
    atmosphere OTFs) are computed once at construction. ``synthesize`` is
    a pure function of the field angle and can be called concurrently.
    """

    def __init__(
        self,
        pupil,
        descriptor: Optional[AtmosphereAoDescriptor] = None,
        band=None,
        pixel_scale: Optional[float] = None,
        nyquist_factor: float = 1.0,
        size: int = 128,
        allow_undersampling: bool = True,
        padding: Optional[int] = None,
    ):
        """
        Initialize synthesizer.

        Args:
            pupil: Sampled ``Pupil``
            descriptor: Atmosphere/AO descriptor, None for the diffraction limit
            band: Observing band, only used without a descriptor (default V)
            pixel_scale: Pixel scale (arcsec/pixel), default Nyquist
            nyquist_factor: Multiplier of the Nyquist scale when
                ``pixel_scale`` is not given
            size: Kernel size in pixels
            allow_undersampling: Accept pixel scales coarser than Nyquist
                (flagged on every PSF); otherwise raise
            padding: Synthesis field in kernel sizes, default chosen from
                the descriptor's seeing FWHM

        Raises:
            InvalidParameter: invalid sampling or conflicting band
        """
        self.pupil = pupil
        self.descriptor = descriptor

        if descriptor is not None:
            if band is not None and get_band(band) != descriptor.band:
                raise InvalidParameter(
                    f"band {get_band(band).name} conflicts with descriptor band {descriptor.band.name}"
                )
            self.band = descriptor.band
        else:
            self.band = get_band(band if band is not None else 'V')
        self.wavelength = self.band.wavelength

        if int(size) != size or size < MIN_KERNEL_SIZE:
            raise InvalidParameter(f"kernel size must be an integer >= {MIN_KERNEL_SIZE}, got {size}")
        self.size = int(size)

        if pixel_scale is None:
            if not nyquist_factor > 0:
                raise InvalidParameter(f"nyquist_factor must be positive, got {nyquist_factor}")
            pixel_scale = nyquist_factor * self.nyquist_pixel_scale
        if not pixel_scale > 0:
            raise InvalidParameter(f"pixel scale must be positive, got {pixel_scale}")
        self.pixel_scale = float(pixel_scale)

        self.undersampled = self.pixel_scale > self.nyquist_pixel_scale * (1 + 1e-9)
        if self.undersampled:
            if not allow_undersampling:
                raise InvalidParameter(
                    f"pixel scale {self.pixel_scale:.4g}\" is coarser than Nyquist "
                    f"({self.nyquist_pixel_scale:.4g}\")"
                )
            logger.warning(
                f"Pixel scale {self.pixel_scale:.4g}\" is coarser than Nyquist "
                f"({self.nyquist_pixel_scale:.4g}\"), PSFs are flagged as undersampled"
            )

        if padding is not None and (int(padding) != padding or padding < 1):
            raise InvalidParameter(f"padding must be a positive integer, got {padding}")

        self.oversampling = self._choose_oversampling()
        self.padding = self._choose_padding(int(padding) if padding is not None else None)
        self._static_otf = self._build_static_otf()
        self._isoplanatic_kernel = None
        self._reference = None
        self._lock = threading.Lock()

        logger.debug(
            f"PSF synthesizer: {self.size}px at {self.pixel_scale:.4g}\"/px, "
            f"band {self.band.name}, oversampling x{self.oversampling}, padding x{self.padding}"
        )

    # -------------------------------------------------------------------------
    # Sampling
    # -------------------------------------------------------------------------

    @property
    def nyquist_pixel_scale(self) -> float:
        """lambda / 2D in arcsec/pixel."""
        return self.wavelength / (2 * self.pupil.diameter) * RAD2ARCSEC

    @property
    def mode(self) -> Optional[AOMode]:
        return self.descriptor.mode if self.descriptor is not None else None

    @property
    def is_anisoplanatic(self) -> bool:
        return self.descriptor is not None and self.descriptor.is_anisoplanatic

    def _band_limit(self) -> float:
        """Largest lag (meters) where the OTF is not negligible."""
        limit = self.pupil.diameter
        if self.mode in (AOMode.SEEING, AOMode.GLAO):
            limit = min(limit, SEEING_LAG_LIMIT * self.descriptor.effective_r0)
        return limit

    def _choose_oversampling(self) -> int:
        """Smallest integer factor bringing the fine pixel below lambda / 2L."""
        alpha = self.pixel_scale * ARCSEC2RAD
        factor = max(1, math.ceil(alpha * 2 * self._band_limit() / self.wavelength - 1e-9))
        if factor * self.size > MAX_GRID_SIZE:
            capped = max(1, MAX_GRID_SIZE // self.size)
            logger.warning(
                f"Oversampling x{factor} exceeds the {MAX_GRID_SIZE}px grid limit, "
                f"using x{capped} (kernel is aliased)"
            )
            factor = capped
        return factor

    def _choose_padding(self, padding: Optional[int] = None) -> int:
        """Explicit field factor, or the smallest holding HALO_FIELD_FACTOR seeing FWHM."""
        if padding is None:
            if self.descriptor is None:
                return 1
            extent = self.size * self.pixel_scale
            padding = max(1, math.ceil(HALO_FIELD_FACTOR * self.descriptor.seeing_fwhm / extent - 1e-9))
        limit = max(1, MAX_GRID_SIZE // (self.size * self.oversampling))
        if padding > limit:
            logger.warning(
                f"Padding x{padding} exceeds the {MAX_GRID_SIZE}px grid limit, "
                f"using x{limit} (halo wraps into the kernel)"
            )
            padding = limit
        return padding

    @property
    def field_size(self) -> int:
        """Side of the padded synthesis field in output pixels."""
        return self.size * self.padding

    @property
    def grid_size(self) -> int:
        return self.field_size * self.oversampling

    @property
    def lag_spacing(self) -> float:
        """Pupil-plane lag spacing of the synthesis grid (meters)."""
        return self.wavelength / (self.field_size * self.pixel_scale * ARCSEC2RAD)

    # -------------------------------------------------------------------------
    # Transfer Functions
    # -------------------------------------------------------------------------

    def _centering_ramp(self):
        """
        Phase ramp moving the fine-grid center to the center of the
        coarse pixel it is binned into.
        """
        n, k = self.field_size, self.oversampling
        shift = (n // 2) * k + (k - 1) / 2 - (n * k) // 2
        f = np.fft.fftfreq(n * k)
        ramp = np.exp(-2j * np.pi * f * shift)
        return np.outer(ramp, ramp)

    def _build_static_otf(self):
        n = self.grid_size
        spacing = self.lag_spacing

        otf = resample_otf(telescope_otf(self.pupil.mask), self.pupil.sampling, n, spacing)
        otf = otf * pixel_transfer(n)

        if self.mode in (AOMode.SEEING, AOMode.GLAO):
            X, Y = lag_coordinates(n, spacing)
            otf = otf * atmosphere_otf(np.hypot(X, Y), self.descriptor.effective_r0,
                                       self.descriptor.outer_scale)

        if self.oversampling > 1:
            otf = otf * self._centering_ramp()

        return get_backend().to_device(otf)

    def _atmosphere_otf(self, field_angle):
        """Per-field AO residual OTF (backend array)."""
        descriptor = self.descriptor
        grid = FrequencyGrid(self.grid_size, self.lag_spacing)
        return ao_residual_otf(
            grid,
            r0=descriptor.effective_r0,
            L0=descriptor.outer_scale,
            fitting_variance=descriptor.residual_variance,
            aniso_variance=descriptor.anisoplanatic_variance(field_angle),
            aniso_offset=descriptor.anisoplanatic_offset_rad(field_angle),
            zenith_angle=descriptor.zenith_angle,
            profile=descriptor.profile,
        )

    def _kernel(self, otf) -> np.ndarray:
        """Unit-energy field, binned and cropped to the kernel size."""
        kernel = rebin(otf_to_psf(otf), self.oversampling)
        kernel = kernel / kernel.sum()
        if self.padding > 1:
            start = self.field_size // 2 - self.size // 2
            kernel = kernel[start:start + self.size, start:start + self.size]
        return kernel

    # -------------------------------------------------------------------------
    # Synthesis
    # -------------------------------------------------------------------------

    def diffraction_limited(self) -> Psf:
        """Diffraction-limited kernel with the same pupil and sampling."""
        with self._lock:
            if self._reference is None:
                if self.descriptor is None:
                    kernel = self._kernel(self._static_otf)
                else:
                    reference = PsfSynthesizer(
                        self.pupil, band=self.band, pixel_scale=self.pixel_scale,
                        size=self.size, allow_undersampling=True, padding=self.padding,
                    )
                    kernel = reference.diffraction_limited().kernel
                self._reference = Psf(kernel, self.pixel_scale, (0.0, 0.0), self.wavelength,
                                      1.0, None, self.undersampled)
            return self._reference

    def synthesize(self, field_angle: Tuple[float, float] = (0.0, 0.0)) -> Psf:
        """
        PSF at a field position.

        Args:
            field_angle: (x, y) position on the sky (arcsec) relative to the
                field center

        Returns:
            Psf with unit energy, less any halo cropped by the kernel size
        """
        field_angle = (float(field_angle[0]), float(field_angle[1]))

        if self.descriptor is None:
            reference = self.diffraction_limited()
            return Psf(reference.kernel, self.pixel_scale, field_angle, self.wavelength,
                       1.0, None, self.undersampled)

        if not self.is_anisoplanatic:
            return self._synthesize_isoplanatic(field_angle)

        otf = self._static_otf * self._atmosphere_otf(field_angle)
        kernel = self._kernel(otf)
        strehl = self.descriptor.strehl_at(field_angle)
        logger.debug(f"PSF at ({field_angle[0]:.2f}, {field_angle[1]:.2f})\": Strehl {strehl:.3f}")
        return Psf(kernel, self.pixel_scale, field_angle, self.wavelength,
                   strehl, self.descriptor.strehl, self.undersampled)

    def _synthesize_isoplanatic(self, field_angle) -> Psf:
        with self._lock:
            cached = self._isoplanatic_kernel
        if cached is None:
            cached = self._kernel(self._static_otf)
            cached.setflags(write=False)
            with self._lock:
                self._isoplanatic_kernel = cached
        return Psf(cached, self.pixel_scale, field_angle, self.wavelength,
                   None, None, self.undersampled)
