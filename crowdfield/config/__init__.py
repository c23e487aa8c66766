"""
Centralized configuration system.

Hierarchical dataclass configuration for a crowded-field simulation, with
YAML/JSON loading, scenario presets, and builders translating the
configuration into pupils, descriptors and star fields.
"""

from __future__ import annotations

import os
import copy
import json
from dataclasses import dataclass, field, asdict
from typing import List, Literal, Optional, Dict, Any
from datetime import datetime

import yaml

from ..errors import UnknownPreset


# =============================================================================
# Telescope and Atmosphere
# =============================================================================

@dataclass
class TelescopeConfig:
    """Telescope pupil."""

    kind: str = 'circular'
    diameter: Optional[float] = 8.0      # meters, None = preset native size
    obscuration: Optional[float] = None  # meters, None = preset default
    resolution: int = 256                # pupil samples across the diameter

    def __post_init__(self):
        assert self.resolution >= 2, "resolution must be >= 2"


@dataclass
class AtmosphereConfig:
    """Turbulence and AO correction."""

    mode: Literal['diffraction', 'seeing', 'glao', 'ngao', 'ltao'] = 'seeing'

    r0: float = 0.16              # meters at 0.55um and zenith
    zenith_angle: float = 30.0    # degrees
    outer_scale: float = 25.0     # meters

    # Mode parameters
    glao_fraction: float = 0.0               # GLAO FWHM reduction
    strehl: Optional[float] = None           # NGAO/LTAO target
    guide_star: List[float] = field(default_factory=lambda: [0.0, 0.0])  # arcsec
    asterism_diameter: Optional[float] = None  # LTAO, arcsec

    def __post_init__(self):
        assert len(self.guide_star) == 2, "guide_star must be [x, y]"


# =============================================================================
# Observation
# =============================================================================

@dataclass
class ObservationConfig:
    """Band, sampling and exposure."""

    band: str = 'V'
    exposure: float = 1.0               # seconds

    # Sampling: explicit pixel scale, or a multiple of Nyquist (lambda/2D)
    pixel_scale: Optional[float] = None  # arcsec/pixel
    nyquist_factor: float = 1.0
    allow_undersampling: bool = True

    # Grid sizes
    n_pix: int = 256      # field image
    psf_size: int = 128   # PSF kernel

    def __post_init__(self):
        assert self.exposure > 0, "exposure must be positive"
        assert self.n_pix > 0, "n_pix must be positive"
        assert self.psf_size >= 8, "psf_size must be >= 8"


@dataclass
class StarsConfig:
    """
    Star field source.

    A catalog file wins over an explicit list, which wins over a random
    draw.
    """

    catalog: Optional[str] = None
    stars: List[List[float]] = field(default_factory=list)  # [x, y, magnitude]

    # Random field
    n_stars: int = 100
    spatial: str = 'uniform'
    spatial_params: Dict[str, Any] = field(default_factory=lambda: {'fov': 10.0})
    magnitudes: str = 'normal'
    magnitude_params: Dict[str, Any] = field(default_factory=lambda: {'mean': 15.0, 'std': 2.0})

    # Filters
    magnitude_limit: Optional[float] = None
    field_of_view: Optional[float] = None  # arcsec

    def __post_init__(self):
        assert self.n_stars >= 0, "n_stars must be non-negative"


@dataclass
class NoiseConfig:
    """Detector noise."""

    photon_noise: bool = True
    background: float = 0.0   # photons/pixel/s

    def __post_init__(self):
        assert self.background >= 0, "background must be non-negative"


# Default IFU sizes (arcsec)
IFU_DEFAULT_SIZES = {'hex': 0.4, 'round': 0.84, 'slit': 0.4}


@dataclass
class IfuConfig:
    """IFU aperture, disabled when ``kind`` is None."""

    kind: Optional[Literal['hex', 'round', 'slit']] = None
    size: Optional[float] = None       # arcsec, None = kind default
    length: Optional[float] = None     # slit length, None = field height
    center: List[float] = field(default_factory=lambda: [0.0, 0.0])

    def __post_init__(self):
        if self.size is None and self.kind in IFU_DEFAULT_SIZES:
            self.size = IFU_DEFAULT_SIZES[self.kind]


@dataclass
class RenderConfig:
    """Rendering and compute settings."""

    placement: Literal['fourier', 'bilinear'] = 'fourier'
    psf_bucket: Optional[float] = 1.0  # arcsec
    cache_size: int = 512
    n_workers: Optional[int] = None    # None = auto-detect
    compute_mode: Literal['CPU', 'GPU'] = 'CPU'

    def __post_init__(self):
        assert self.cache_size >= 1, "cache_size must be >= 1"


# =============================================================================
# Path Configuration
# =============================================================================

@dataclass
class PathConfig:
    """Output directory structure."""

    output_dir: str = './outputs'
    run_name: str = ''

    # Derived (set in __post_init__)
    run_dir: str = ''

    def __post_init__(self):
        if not self.run_name:
            self.run_name = datetime.now().strftime('%Y%m%d-%H%M%S')
        if not self.run_dir:
            self.run_dir = os.path.join(self.output_dir, self.run_name)

    def ensure_dirs(self):
        """Create the run directory."""
        os.makedirs(self.run_dir, exist_ok=True)


# =============================================================================
# Master Configuration
# =============================================================================

@dataclass
class Config:
    """Master configuration combining all sub-configurations."""

    telescope: TelescopeConfig = field(default_factory=TelescopeConfig)
    atmosphere: AtmosphereConfig = field(default_factory=AtmosphereConfig)
    observation: ObservationConfig = field(default_factory=ObservationConfig)
    stars: StarsConfig = field(default_factory=StarsConfig)
    noise: NoiseConfig = field(default_factory=NoiseConfig)
    ifu: IfuConfig = field(default_factory=IfuConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    paths: PathConfig = field(default_factory=PathConfig)

    seed: Optional[int] = None

    @classmethod
    def from_yaml(cls, path: str) -> 'Config':
        """Load configuration from YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary, handling nested dataclasses."""
        data = copy.deepcopy(data)
        return cls(
            telescope=TelescopeConfig(**data.pop('telescope', {})),
            atmosphere=AtmosphereConfig(**data.pop('atmosphere', {})),
            observation=ObservationConfig(**data.pop('observation', {})),
            stars=StarsConfig(**data.pop('stars', {})),
            noise=NoiseConfig(**data.pop('noise', {})),
            ifu=IfuConfig(**data.pop('ifu', {})),
            render=RenderConfig(**data.pop('render', {})),
            paths=PathConfig(**data.pop('paths', {})),
            **data
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    def to_yaml(self, path: str):
        """Save configuration to YAML file."""
        with open(path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)

    def to_json(self, path: str):
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def validate(self):
        """Validate cross-section consistency."""
        mode = self.atmosphere.mode
        if mode in ('ngao', 'ltao'):
            assert self.atmosphere.strehl is not None, f"{mode} needs a target strehl"
        if mode == 'ltao':
            assert self.atmosphere.asterism_diameter is not None, "ltao needs an asterism_diameter"
        if self.ifu.kind is not None:
            assert self.ifu.size is not None, "IFU needs a size"

    # -------------------------------------------------------------------------
    # Builders
    # -------------------------------------------------------------------------

    def build_pupil(self):
        """Sampled pupil for the telescope section."""
        from .. import pupils

        tel = self.telescope
        return pupils.build(tel.kind, tel.diameter, tel.resolution, tel.obscuration)

    def build_descriptor(self):
        """Atmosphere/AO descriptor, None for a diffraction-limited run."""
        from ..atmosphere import AtmosphereAoDescriptor

        atm = self.atmosphere
        if atm.mode == 'diffraction':
            return None
        return AtmosphereAoDescriptor(
            r0=atm.r0,
            zenith_angle=atm.zenith_angle,
            band=self.observation.band,
            mode=atm.mode,
            outer_scale=atm.outer_scale,
            glao_fraction=atm.glao_fraction,
            strehl=atm.strehl,
            guide_star=tuple(atm.guide_star),
            asterism_diameter=atm.asterism_diameter,
        )

    def telescope_diameter(self) -> float:
        """Configured diameter, or the preset's native one."""
        from ..pupils import get_geometry
        from ..errors import InvalidGeometry

        if self.telescope.diameter is not None:
            return float(self.telescope.diameter)
        native = get_geometry(self.telescope.kind).native_diameter
        if native is None:
            raise InvalidGeometry(f"{self.telescope.kind} pupil needs an explicit diameter")
        return native

    def resolve_pixel_scale(self) -> float:
        """Pixel scale in arcsec: explicit, or nyquist_factor * lambda / 2D."""
        from ..physics.photometry import get_band, RAD2ARCSEC

        obs = self.observation
        if obs.pixel_scale is not None:
            return float(obs.pixel_scale)
        wavelength = get_band(obs.band).wavelength
        return obs.nyquist_factor * wavelength / (2 * self.telescope_diameter()) * RAD2ARCSEC

    def build_stars(self, rng=None):
        """Star field from the stars section."""
        from .. import sources

        cfg = self.stars
        if cfg.catalog:
            field_ = sources.load_catalog(cfg.catalog)
        elif cfg.stars:
            field_ = sources.from_list(cfg.stars)
        else:
            return sources.generate_field(
                cfg.n_stars,
                sources.get_spatial(cfg.spatial, **cfg.spatial_params),
                sources.get_magnitudes(cfg.magnitudes, **cfg.magnitude_params),
                rng=rng,
                magnitude_limit=cfg.magnitude_limit,
                field_of_view=cfg.field_of_view,
            )
        if cfg.magnitude_limit is not None or cfg.field_of_view is not None:
            field_ = field_.filter(cfg.magnitude_limit, cfg.field_of_view)
        return field_

    def build_ifu(self):
        """IFU geometry, None when disabled."""
        from ..ifu import get_ifu

        if self.ifu.kind is None:
            return None
        return get_ifu(self.ifu.kind, self.ifu.size, self.ifu.length, tuple(self.ifu.center))


# =============================================================================
# Convenience Functions
# =============================================================================

def load_config(path: str) -> Config:
    """Load configuration from file (auto-detects format)."""
    path = str(path)
    if path.endswith('.yaml') or path.endswith('.yml'):
        return Config.from_yaml(path)
    elif path.endswith('.json'):
        return Config.from_json(path)
    else:
        raise ValueError(f"Unknown config format: {path}")


def save_config(config: Config, path: str):
    """Save configuration to file (auto-detects format)."""
    path = str(path)
    if path.endswith('.yaml') or path.endswith('.yml'):
        config.to_yaml(path)
    elif path.endswith('.json'):
        config.to_json(path)
    else:
        raise ValueError(f"Unknown config format: {path}")


# =============================================================================
# Scenario Presets
# =============================================================================

SCENARIO_PRESETS: Dict[str, Dict[str, Any]] = {
    'hst': {
        'telescope': {'kind': 'hst', 'diameter': None, 'obscuration': None},
        'atmosphere': {'mode': 'diffraction'},
        'observation': {'band': 'V', 'nyquist_factor': 0.5},
    },
    'jwst': {
        'telescope': {'kind': 'jwst', 'diameter': None, 'obscuration': None},
        'atmosphere': {'mode': 'diffraction'},
        'observation': {'band': 'K', 'nyquist_factor': 0.5},
    },
    'gmt_seeing': {
        'telescope': {'kind': 'gmt', 'diameter': None, 'obscuration': None},
        'atmosphere': {'mode': 'seeing', 'r0': 0.16, 'zenith_angle': 30.0},
        'observation': {'band': 'K', 'pixel_scale': 0.05},
    },
    'glao': {
        'telescope': {'kind': 'circular', 'diameter': 8.0},
        'atmosphere': {'mode': 'glao', 'r0': 0.16, 'zenith_angle': 30.0, 'glao_fraction': 0.3},
        'observation': {'band': 'R', 'pixel_scale': 0.05},
    },
    'ngao': {
        'telescope': {'kind': 'circular', 'diameter': 8.0},
        'atmosphere': {'mode': 'ngao', 'r0': 0.16, 'zenith_angle': 30.0, 'strehl': 0.5},
        'observation': {'band': 'I', 'nyquist_factor': 1.0},
    },
    'ltao': {
        'telescope': {'kind': 'circular', 'diameter': 8.0},
        'atmosphere': {'mode': 'ltao', 'r0': 0.16, 'zenith_angle': 30.0, 'strehl': 0.5,
                       'asterism_diameter': 1.0},
        'observation': {'band': 'I', 'nyquist_factor': 1.0},
    },
}


def apply_preset(config: Config, preset_name: str) -> Config:
    """Apply a scenario preset to configuration."""
    if preset_name not in SCENARIO_PRESETS:
        raise UnknownPreset(f"Unknown preset: {preset_name}. Available: {list(SCENARIO_PRESETS.keys())}")

    preset = SCENARIO_PRESETS[preset_name]

    for section, values in preset.items():
        target = getattr(config, section)
        for key, value in values.items():
            setattr(target, key, value)

    return config
