"""
Test configuration for crowdfield.
"""

import pytest
import sys
import os

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))


@pytest.fixture
def backend():
    """Fixture providing compute backend."""
    from crowdfield.utils.compute import init_backend
    return init_backend(compute_mode="CPU")


@pytest.fixture
def xp(backend):
    """NumPy/CuPy array module."""
    return backend.xp


@pytest.fixture
def default_config():
    """Default configuration for testing."""
    from crowdfield.config import Config
    return Config()


@pytest.fixture
def rng():
    """Seeded random generator."""
    import numpy as np
    return np.random.default_rng(1234)


@pytest.fixture
def small_pupil():
    """8m circular pupil, coarsely sampled."""
    from crowdfield import pupils
    return pupils.build('circular', 8.0, resolution=64)


@pytest.fixture
def dl_synthesizer(backend, small_pupil):
    """Diffraction-limited I band synthesizer at Nyquist."""
    from crowdfield.psf import PsfSynthesizer
    return PsfSynthesizer(small_pupil, band='I', size=32)


@pytest.fixture
def ngao_descriptor():
    """NGAO with a target Strehl of 0.8 in I band."""
    from crowdfield.atmosphere import AtmosphereAoDescriptor
    return AtmosphereAoDescriptor.ngao(r0=0.16, strehl=0.8, band='I', zenith_angle=30.0)


@pytest.fixture
def ngao_synthesizer(backend, small_pupil, ngao_descriptor):
    """NGAO synthesizer at Nyquist."""
    from crowdfield.psf import PsfSynthesizer
    return PsfSynthesizer(small_pupil, descriptor=ngao_descriptor, size=32)


@pytest.fixture
def small_config():
    """Fast end-to-end configuration."""
    from crowdfield.config import Config
    return Config.from_dict({
        'telescope': {'kind': 'circular', 'diameter': 8.0, 'resolution': 64},
        'atmosphere': {'mode': 'ngao', 'r0': 0.16, 'zenith_angle': 30.0, 'strehl': 0.8},
        'observation': {'band': 'I', 'n_pix': 64, 'psf_size': 32},
        'stars': {'n_stars': 10, 'spatial': 'uniform', 'spatial_params': {'fov': 0.4}},
        'render': {'n_workers': 2},
        'seed': 7,
    })
