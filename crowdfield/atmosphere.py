"""
Atmosphere and adaptive optics descriptor.

Encodes the turbulence strength, observing geometry and correction mode
(natural seeing, ground-layer AO, natural guide star AO, laser tomography
AO). The descriptor is an immutable value: besides validation it only
exposes pure derived quantities consumed by the PSF synthesizer.

Residual error model: the target Strehl ratio S maps to a residual phase
variance through the Marechal approximation, sigma^2 = -ln(S). Off-axis
degradation follows S(theta) = S exp(-(theta / theta0)^(5/3)), where theta
is the angular distance from the corrected direction (NGAO) or the distance
beyond the laser asterism radius (LTAO).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from .errors import InvalidParameter
from .physics.photometry import PhotometricBand, get_band, ARCSEC2RAD, RAD2ARCSEC
from .physics.turbulence import (
    TurbulenceProfile,
    REFERENCE_PROFILE,
    DEFAULT_OUTER_SCALE,
    scale_fried_parameter,
    seeing_fwhm,
    isoplanatic_angle,
)
from .utils.logging import get_logger


logger = get_logger("crowdfield.atmosphere")

# Below this Strehl the Marechal approximation is poor
LOW_STREHL_WARNING = 0.1


class AOMode(Enum):
    """Turbulence correction modes."""
    SEEING = 'seeing'
    GLAO = 'glao'
    NGAO = 'ngao'
    LTAO = 'ltao'


def resolve_mode(mode: Union[str, AOMode]) -> AOMode:
    """Map a mode name (case-insensitive) to ``AOMode``."""
    if isinstance(mode, AOMode):
        return mode
    try:
        return AOMode(str(mode).strip().lower())
    except ValueError:
        raise InvalidParameter(
            f"Unknown AO mode '{mode}'. Available: {[m.value for m in AOMode]}"
        ) from None


@dataclass(frozen=True)
class AtmosphereAoDescriptor:
    """
    Turbulence and correction parameters.

    Attributes:
        r0: Fried parameter at 0.55um and zenith (meters)
        zenith_angle: Zenith angle (degrees), in [0, 90)
        band: Observing band
        mode: Correction mode
        outer_scale: Turbulence outer scale (meters)
        glao_fraction: GLAO seeing FWHM reduction fraction, in [0, 1)
        strehl: NGAO/LTAO target Strehl ratio at the corrected direction, in (0, 1]
        guide_star: NGAO guide star / LTAO asterism center (arcsec)
        asterism_diameter: LTAO laser asterism diameter (arcsec)
        profile: Cn2 profile used for the isoplanatic angle
    """
    r0: float
    zenith_angle: float = 0.0
    band: PhotometricBand = get_band('V')
    mode: AOMode = AOMode.SEEING
    outer_scale: float = DEFAULT_OUTER_SCALE
    glao_fraction: float = 0.0
    strehl: Optional[float] = None
    guide_star: Tuple[float, float] = (0.0, 0.0)
    asterism_diameter: Optional[float] = None
    profile: TurbulenceProfile = REFERENCE_PROFILE

    def __post_init__(self):
        # Normalize loosely typed inputs
        object.__setattr__(self, 'mode', resolve_mode(self.mode))
        object.__setattr__(self, 'band', get_band(self.band))
        gs = (0.0, 0.0) if self.guide_star is None else tuple(float(v) for v in self.guide_star)
        if len(gs) != 2:
            raise InvalidParameter(f"guide_star must be an (x, y) pair, got {self.guide_star}")
        object.__setattr__(self, 'guide_star', gs)

        if not self.r0 > 0:
            raise InvalidParameter(f"Fried parameter must be positive, got {self.r0}")
        if not 0 <= self.zenith_angle < 90:
            raise InvalidParameter(f"zenith angle must lie in [0, 90) deg, got {self.zenith_angle}")
        if not self.outer_scale > 0:
            raise InvalidParameter(f"outer scale must be positive, got {self.outer_scale}")

        if self.mode is AOMode.GLAO:
            if not 0 <= self.glao_fraction < 1:
                raise InvalidParameter(
                    f"GLAO FWHM reduction must lie in [0, 1), got {self.glao_fraction}"
                )

        if self.mode in (AOMode.NGAO, AOMode.LTAO):
            if self.strehl is None or not 0 < self.strehl <= 1:
                raise InvalidParameter(f"Strehl ratio must lie in (0, 1], got {self.strehl}")
            if self.strehl < LOW_STREHL_WARNING:
                logger.warning(
                    f"Strehl {self.strehl:.3f} is below {LOW_STREHL_WARNING}: "
                    "the Marechal residual model is inaccurate there"
                )

        if self.mode is AOMode.LTAO:
            if self.asterism_diameter is None or not self.asterism_diameter > 0:
                raise InvalidParameter(
                    f"LTAO asterism diameter must be positive, got {self.asterism_diameter}"
                )

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def seeing(cls, r0: float, band='V', zenith_angle: float = 0.0, **kwargs):
        """Natural seeing."""
        return cls(r0=r0, zenith_angle=zenith_angle, band=band, mode=AOMode.SEEING, **kwargs)

    @classmethod
    def glao(cls, r0: float, fraction: float, band='V', zenith_angle: float = 0.0, **kwargs):
        """Ground-layer AO reducing the seeing FWHM by ``fraction``."""
        return cls(r0=r0, zenith_angle=zenith_angle, band=band, mode=AOMode.GLAO,
                   glao_fraction=fraction, **kwargs)

    @classmethod
    def ngao(cls, r0: float, strehl: float, band='V', zenith_angle: float = 0.0,
             guide_star: Optional[Tuple[float, float]] = None, **kwargs):
        """Natural guide star AO delivering ``strehl`` toward ``guide_star``."""
        return cls(r0=r0, zenith_angle=zenith_angle, band=band, mode=AOMode.NGAO,
                   strehl=strehl, guide_star=guide_star or (0.0, 0.0), **kwargs)

    @classmethod
    def ltao(cls, r0: float, strehl: float, asterism_diameter: float, band='V',
             zenith_angle: float = 0.0, **kwargs):
        """Laser tomography AO with a laser asterism of ``asterism_diameter`` arcsec."""
        return cls(r0=r0, zenith_angle=zenith_angle, band=band, mode=AOMode.LTAO,
                   strehl=strehl, asterism_diameter=asterism_diameter, **kwargs)

    # -------------------------------------------------------------------------
    # Derived quantities
    # -------------------------------------------------------------------------

    @property
    def wavelength(self) -> float:
        """Effective wavelength of the observing band (meters)."""
        return self.band.wavelength

    @property
    def is_corrected(self) -> bool:
        """True for NGAO and LTAO."""
        return self.mode in (AOMode.NGAO, AOMode.LTAO)

    @property
    def is_anisoplanatic(self) -> bool:
        """True if the PSF depends on field angle."""
        return self.is_corrected

    @property
    def effective_r0(self) -> float:
        """
        Fried parameter at the band wavelength along the line of sight.

        GLAO divides it by (1 - fraction), shrinking the seeing FWHM
        by the configured fraction.
        """
        r0 = scale_fried_parameter(self.r0, self.wavelength, self.zenith_angle)
        if self.mode is AOMode.GLAO:
            r0 = r0 / (1.0 - self.glao_fraction)
        return r0

    @property
    def seeing_fwhm(self) -> float:
        """Seeing (or GLAO) FWHM in arcseconds."""
        return seeing_fwhm(self.effective_r0, self.wavelength, self.outer_scale)

    @property
    def residual_variance(self) -> Optional[float]:
        """On-axis residual phase variance (rad^2), -ln(S); None without AO."""
        if not self.is_corrected:
            return None
        return -math.log(self.strehl)

    @property
    def isoplanatic_angle(self) -> float:
        """Isoplanatic angle in arcseconds."""
        return isoplanatic_angle(self.effective_r0, self.zenith_angle, self.profile) * RAD2ARCSEC

    @property
    def asterism_radius(self) -> float:
        """LTAO asterism radius in arcseconds (0 otherwise)."""
        if self.mode is AOMode.LTAO:
            return 0.5 * self.asterism_diameter
        return 0.0

    def anisoplanatic_offset(self, field_angle: Tuple[float, float]) -> Tuple[float, float]:
        """
        Effective offset (arcsec) from the corrected direction.

        NGAO: full separation from the guide star.
        LTAO: separation beyond the asterism radius, along the same direction.
        Seeing/GLAO: none.
        """
        if not self.is_corrected:
            return (0.0, 0.0)
        dx = float(field_angle[0]) - self.guide_star[0]
        dy = float(field_angle[1]) - self.guide_star[1]
        separation = math.hypot(dx, dy)
        if separation == 0:
            return (0.0, 0.0)
        excess = max(separation - self.asterism_radius, 0.0)
        scale = excess / separation
        return (dx * scale, dy * scale)

    def anisoplanatic_variance(self, field_angle: Tuple[float, float]) -> float:
        """Anisoplanatism variance (theta / theta0)^(5/3) in rad^2."""
        offset = math.hypot(*self.anisoplanatic_offset(field_angle))
        if offset == 0:
            return 0.0
        return (offset / self.isoplanatic_angle) ** (5/3)

    def strehl_at(self, field_angle: Tuple[float, float] = (0.0, 0.0)) -> Optional[float]:
        """
        Effective Strehl ratio toward ``field_angle`` (arcsec).

        Returns None for uncorrected modes.
        """
        if not self.is_corrected:
            return None
        return self.strehl * math.exp(-self.anisoplanatic_variance(field_angle))

    def anisoplanatic_offset_rad(self, field_angle: Tuple[float, float]) -> Tuple[float, float]:
        """``anisoplanatic_offset`` in radians."""
        dx, dy = self.anisoplanatic_offset(field_angle)
        return (dx * ARCSEC2RAD, dy * ARCSEC2RAD)

    def __str__(self) -> str:
        text = (f"{self.mode.value}: r0={self.r0 * 1e2:.1f}cm @0.55um, z={self.zenith_angle:.1f}deg, "
                f"band {self.band.name} (r0_eff={self.effective_r0 * 1e2:.1f}cm)")
        if self.mode is AOMode.GLAO:
            text += f", FWHM reduction {self.glao_fraction:.2f}"
        if self.is_corrected:
            text += f", Strehl {self.strehl:.2f}"
        if self.mode is AOMode.LTAO:
            text += f", asterism {self.asterism_diameter:.1f}\""
        return text
