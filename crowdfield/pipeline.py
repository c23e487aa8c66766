"""
End-to-end crowded field simulation.

pupil -> descriptor -> PSF synthesizer -> star field -> render
      -> background + photon noise -> IFU throughput
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
import yaml

from .config import Config
from .ifu import IfuResult, measure_throughput
from .image import FieldImage
from .physics.noise import add_background, apply_photon_noise, make_rng
from .psf import Psf, PsfSynthesizer
from .renderer import CancelToken, FieldRenderer, RenderSummary
from .utils.compute import init_backend
from .utils.logging import get_logger, Timer


logger = get_logger("crowdfield.pipeline")


@dataclass
class PipelineResult:
    """
    Outputs of a pipeline run.

    Attributes:
        image: Noiseless expected-photon image (with background)
        observed: Photon-noise realization, None if noise is disabled
        psf: On-axis PSF
        summary: Render summary
        ifu: IFU throughput, None without an IFU
        info: Run description for reporting
    """
    image: FieldImage
    psf: Psf
    summary: RenderSummary
    observed: Optional[FieldImage] = None
    ifu: Optional[IfuResult] = None
    info: Dict[str, Any] = field(default_factory=dict)

    def report(self) -> Dict[str, Any]:
        """Plain-type summary of the run."""
        report = dict(self.info)
        report['render'] = self.summary.to_dict()
        report['psf'] = {
            'pixel_scale': self.psf.pixel_scale,
            'size': self.psf.size,
            'fwhm': float(self.psf.fwhm),
            'strehl': self.psf.strehl,
            'requested_strehl': self.psf.requested_strehl,
            'undersampled': self.psf.undersampled,
        }
        report['image_flux'] = self.image.flux()
        if self.ifu is not None:
            report['ifu'] = {
                'geometry': str(self.ifu.geometry),
                'throughput': self.ifu.throughput,
                'elements': self.ifu.elements,
            }
        return report

    def save(self, output_dir: str):
        """
        Write arrays as .npy and the report as summary.yaml.

        Returns:
            Paths written
        """
        os.makedirs(output_dir, exist_ok=True)
        paths = {
            'image': os.path.join(output_dir, 'image.npy'),
            'psf': os.path.join(output_dir, 'psf.npy'),
            'summary': os.path.join(output_dir, 'summary.yaml'),
        }
        np.save(paths['image'], self.image.data)
        np.save(paths['psf'], self.psf.kernel)
        if self.observed is not None:
            paths['observed'] = os.path.join(output_dir, 'observed.npy')
            np.save(paths['observed'], self.observed.data)
        if self.ifu is not None:
            paths['ifu'] = os.path.join(output_dir, 'ifu.npy')
            np.save(paths['ifu'], self.ifu.masked.data)

        with open(paths['summary'], 'w') as f:
            yaml.safe_dump(self.report(), f, default_flow_style=False)

        logger.info(f"Saved results to {output_dir}")
        return paths


class Pipeline:
    """
    Runs a configured simulation.
    """

    def __init__(self, config: Config):
        """
        Initialize pipeline.

        Args:
            config: Simulation configuration
        """
        config.validate()
        self.config = config

    def build_synthesizer(self) -> PsfSynthesizer:
        cfg = self.config
        obs = cfg.observation
        return PsfSynthesizer(
            cfg.build_pupil(),
            descriptor=cfg.build_descriptor(),
            band=obs.band,
            pixel_scale=cfg.resolve_pixel_scale(),
            size=obs.psf_size,
            allow_undersampling=obs.allow_undersampling,
        )

    def run(self, cancel: Optional[CancelToken] = None) -> PipelineResult:
        """
        Run every stage.

        Args:
            cancel: Optional token to abort rendering

        Returns:
            PipelineResult

        Raises:
            EmptyField: the star field is empty
            RenderCancelled: cancelled during rendering
        """
        cfg = self.config
        init_backend(cfg.render.compute_mode)
        rng = make_rng(cfg.seed)

        with Timer("Setup", logger):
            synthesizer = self.build_synthesizer()
            logger.info(f"Pupil: {synthesizer.pupil}")
            if synthesizer.descriptor is not None:
                logger.info(f"Atmosphere: {synthesizer.descriptor}")
            psf = synthesizer.synthesize((0.0, 0.0))

        with Timer("Star field", logger):
            stars = cfg.build_stars(rng)
            logger.info(f"Stars: {stars}")

        renderer = FieldRenderer(
            synthesizer,
            n_pix=cfg.observation.n_pix,
            exposure=cfg.observation.exposure,
            placement=cfg.render.placement,
            psf_bucket=cfg.render.psf_bucket,
            cache_size=cfg.render.cache_size,
            n_workers=cfg.render.n_workers,
        )
        rendered = renderer.render(stars, cancel=cancel)
        summary = rendered.summary
        if summary.requested_strehl is not None and summary.min_strehl is not None:
            logger.info(
                f"Strehl achieved {summary.min_strehl:.3f}-{summary.max_strehl:.3f} "
                f"vs requested {summary.requested_strehl:.3f}"
            )

        image = rendered.image
        if cfg.noise.background > 0:
            image = add_background(image, cfg.noise.background)

        observed = None
        if cfg.noise.photon_noise:
            with Timer("Photon noise", logger):
                observed = apply_photon_noise(image, rng)

        ifu = None
        geometry = cfg.build_ifu()
        if geometry is not None:
            ifu = measure_throughput(rendered.image, geometry)

        info = {
            'telescope': cfg.telescope.kind,
            'diameter': synthesizer.pupil.diameter,
            'mode': cfg.atmosphere.mode,
            'band': synthesizer.band.name,
            'wavelength': synthesizer.wavelength,
            'exposure': cfg.observation.exposure,
            'n_pix': cfg.observation.n_pix,
            'seed': cfg.seed,
        }
        return PipelineResult(image, psf, summary, observed, ifu, info)
