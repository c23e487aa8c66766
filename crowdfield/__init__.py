"""
crowdfield: Crowded Star Field Image Simulation
===============================================

Synthesizes telescope images of star fields: PSFs from pupil geometry,
atmospheric turbulence and adaptive optics correction (seeing, GLAO,
NGAO, LTAO), star fields rendered with sub-pixel accuracy, photon noise,
and IFU aperture throughput.

Package Structure
-----------------
- config: Dataclass configuration, YAML/JSON I/O, scenario presets
- physics: Photometry, turbulence statistics, Fourier optics, noise
- pupils: Telescope pupils (generic shapes, HST, JWST, GMT)
- atmosphere: Atmosphere/AO descriptor
- psf: PSF synthesis
- sources: Star field generation
- renderer: Star field rendering
- ifu: IFU masks and throughput
- utils: Compute backend, logging

Quick Start
-----------
    from crowdfield import Config, Pipeline

    cfg = Config.from_yaml('field.yaml')
    result = Pipeline(cfg).run()
    result.save('./outputs/field')

Or run from command line:
    crowdfield render --preset ngao --n-stars 200 --seed 1 -o ./outputs
"""

__version__ = '1.0.0'

# Re-export main interfaces
from .errors import (
    CrowdfieldError,
    InvalidGeometry,
    UnknownPreset,
    InvalidParameter,
    EmptyField,
    NegativeExpectation,
    GeometryOutOfBounds,
    RenderCancelled,
)
from .config import (
    Config,
    load_config,
    save_config,
    apply_preset,
)
from .atmosphere import AOMode, AtmosphereAoDescriptor
from .image import FieldImage
from .psf import Psf, PsfSynthesizer, core_energy_fraction
from .renderer import FieldRenderer, CancelToken, RenderResult, RenderSummary
from .sources import Star, StarField, generate_field, from_list
from .ifu import get_ifu, measure_throughput
from .pipeline import Pipeline, PipelineResult
from .utils.logging import get_logger

__all__ = [
    'CrowdfieldError',
    'InvalidGeometry',
    'UnknownPreset',
    'InvalidParameter',
    'EmptyField',
    'NegativeExpectation',
    'GeometryOutOfBounds',
    'RenderCancelled',
    'Config',
    'load_config',
    'save_config',
    'apply_preset',
    'AOMode',
    'AtmosphereAoDescriptor',
    'FieldImage',
    'Psf',
    'PsfSynthesizer',
    'core_energy_fraction',
    'FieldRenderer',
    'CancelToken',
    'RenderResult',
    'RenderSummary',
    'Star',
    'StarField',
    'generate_field',
    'from_list',
    'get_ifu',
    'measure_throughput',
    'Pipeline',
    'PipelineResult',
    'get_logger',
]
