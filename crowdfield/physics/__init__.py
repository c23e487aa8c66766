"""
Shared physics modules for image synthesis.

- photometry: Photometric bands, zero-points and angle units
- turbulence: Von Karman statistics, Fried scaling, AO residual OTF
- optics: Telescope OTF, OTF/PSF conversion, sub-pixel shifts, metrics
- noise: Photon noise and background
"""

from .photometry import (
    PhotometricBand,
    BANDS,
    RAD2ARCSEC,
    ARCSEC2RAD,
    get_band,
    list_bands,
)

from .turbulence import (
    TurbulenceProfile,
    REFERENCE_PROFILE,
    scale_fried_parameter,
    seeing_fwhm,
    isoplanatic_angle,
    von_karman_psd,
    phase_variance,
    phase_covariance,
    structure_function,
    atmosphere_otf,
    fitting_cutoff,
    FrequencyGrid,
    ao_residual_otf,
)

from .optics import (
    telescope_otf,
    resample_otf,
    pixel_transfer,
    otf_to_psf,
    fourier_shift,
    measure_fwhm,
    peak_ratio,
)

from .noise import (
    make_rng,
    check_expectation,
    poisson_counts,
    background_counts,
    compute_snr,
    add_background,
    apply_photon_noise,
    snr_map,
)

__all__ = [
    # Photometry
    'PhotometricBand',
    'BANDS',
    'RAD2ARCSEC',
    'ARCSEC2RAD',
    'get_band',
    'list_bands',
    # Turbulence
    'TurbulenceProfile',
    'REFERENCE_PROFILE',
    'scale_fried_parameter',
    'seeing_fwhm',
    'isoplanatic_angle',
    'von_karman_psd',
    'phase_variance',
    'phase_covariance',
    'structure_function',
    'atmosphere_otf',
    'fitting_cutoff',
    'FrequencyGrid',
    'ao_residual_otf',
    # Optics
    'telescope_otf',
    'resample_otf',
    'pixel_transfer',
    'otf_to_psf',
    'fourier_shift',
    'measure_fwhm',
    'peak_ratio',
    # Noise
    'make_rng',
    'check_expectation',
    'poisson_counts',
    'background_counts',
    'compute_snr',
    'add_background',
    'apply_photon_noise',
    'snr_map',
]
