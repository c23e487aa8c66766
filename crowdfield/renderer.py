"""
Field rendering.

Accumulates one PSF per star into a field image of expected photons.
Stars are spread over worker threads, each filling a private partial
image; the partials are summed in worker order. Stars are put in a
canonical order first so that the image does not depend on the order of
the input list.
"""

from __future__ import annotations

import math
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

import numpy as np

from .errors import EmptyField, InvalidParameter, RenderCancelled
from .image import FieldImage
from .physics.optics import fourier_shift, bilinear_weights
from .psf import Psf, PsfSynthesizer
from .utils.compute import split_work, resolve_n_workers
from .utils.logging import get_logger, Timer, ProgressTracker


logger = get_logger("crowdfield.renderer")


class Placement(Enum):
    """Sub-pixel placement methods."""
    FOURIER = 'fourier'      # Linear phase ramp
    BILINEAR = 'bilinear'    # Four weighted integer shifts


class CancelToken:
    """
    Thread-safe cancellation flag shared with a running render.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise RenderCancelled("rendering cancelled")


# =============================================================================
# PSF Cache
# =============================================================================

class PsfCache:
    """
    LRU cache of PSFs keyed by field-angle bucket.

    Isoplanatic synthesizers share a single entry. Anisoplanatic ones are
    evaluated at the bucket center, so a star always gets the same PSF
    whether or not it was cached.
    """

    def __init__(self, synthesizer: PsfSynthesizer, bucket: Optional[float] = 1.0,
                 max_size: int = 512):
        """
        Args:
            synthesizer: PSF synthesizer
            bucket: Bucket width (arcsec); None or 0 evaluates at the exact angle
            max_size: Maximum number of entries
        """
        if max_size < 1:
            raise InvalidParameter(f"cache size must be >= 1, got {max_size}")
        self.synthesizer = synthesizer
        self.bucket = bucket if bucket else None
        self.max_size = max_size
        self.hits = 0
        self.misses = 0
        self._entries = OrderedDict()
        self._lock = threading.Lock()

    def key(self, field_angle: Tuple[float, float]):
        if not self.synthesizer.is_anisoplanatic:
            return None
        if self.bucket is None:
            return (float(field_angle[0]), float(field_angle[1]))
        return (round(field_angle[0] / self.bucket), round(field_angle[1] / self.bucket))

    def _angle(self, key) -> Tuple[float, float]:
        if key is None:
            return (0.0, 0.0)
        if self.bucket is None:
            return key
        return (key[0] * self.bucket, key[1] * self.bucket)

    def get(self, field_angle: Tuple[float, float]):
        """
        PSF and its centered-kernel OTF for a field angle.

        Returns:
            (Psf, otf) with ``otf = fft2(ifftshift(kernel))``
        """
        key = self.key(field_angle)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
                self.hits += 1
                return entry
            self.misses += 1

        psf = self.synthesizer.synthesize(self._angle(key))
        entry = (psf, np.fft.fft2(np.fft.ifftshift(psf.kernel)))

        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
        return entry

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Results
# =============================================================================

@dataclass
class RenderSummary:
    """
    Render statistics for reporting.

    Attributes:
        n_stars: Stars submitted
        n_rendered: Stars accumulated into the image
        n_skipped: Stars whose PSF footprint misses the image
        n_psf_syntheses: PSFs synthesized (cache misses)
        requested_strehl: Target Strehl of the AO descriptor, if any
        min_strehl: Lowest Strehl achieved over rendered stars
        max_strehl: Highest Strehl achieved over rendered stars
        undersampled: Pixel scale coarser than Nyquist
        total_photons: Expected photons deposited in the image (the image
            flux; light clipped at the edges is not counted)
    """
    n_stars: int = 0
    n_rendered: int = 0
    n_skipped: int = 0
    n_psf_syntheses: int = 0
    requested_strehl: Optional[float] = None
    min_strehl: Optional[float] = None
    max_strehl: Optional[float] = None
    undersampled: bool = False
    total_photons: float = 0.0

    def to_dict(self) -> dict:
        from dataclasses import asdict
        return asdict(self)

    def __str__(self) -> str:
        text = (f"{self.n_rendered}/{self.n_stars} stars rendered ({self.n_skipped} skipped), "
                f"{self.total_photons:.4g} photons, {self.n_psf_syntheses} PSF(s) synthesized")
        if self.requested_strehl is not None and self.min_strehl is not None:
            text += (f", Strehl {self.min_strehl:.3f}-{self.max_strehl:.3f} "
                     f"(requested {self.requested_strehl:.3f})")
        if self.undersampled:
            text += ", undersampled"
        return text


@dataclass(frozen=True)
class RenderResult:
    """Rendered image and its summary."""
    image: FieldImage
    summary: RenderSummary


@dataclass
class _WorkerStats:
    n_rendered: int = 0
    n_skipped: int = 0
    photons: float = 0.0
    strehls: List[float] = field(default_factory=list)


# =============================================================================
# Renderer
# =============================================================================

def _add_stamp(image: np.ndarray, stamp: np.ndarray, top: int, left: int) -> float:
    """
    Add ``stamp`` with its top-left corner at (top, left), clipped to the image.

    Returns the flux that landed in the image.
    """
    n = image.shape[0]
    k = stamp.shape[0]
    r0, c0 = max(top, 0), max(left, 0)
    r1, c1 = min(top + k, n), min(left + k, n)
    if r0 >= r1 or c0 >= c1:
        return 0.0
    clipped = stamp[r0 - top:r1 - top, c0 - left:c1 - left]
    image[r0:r1, c0:c1] += clipped
    return float(clipped.sum())


class FieldRenderer:
    """
    Renders star fields with a PSF synthesizer.
    """

    def __init__(
        self,
        synthesizer: PsfSynthesizer,
        n_pix: int,
        exposure: float = 1.0,
        area: Optional[float] = None,
        placement: Union[str, Placement] = Placement.FOURIER,
        psf_bucket: Optional[float] = 1.0,
        cache_size: int = 512,
        n_workers: Optional[int] = 1,
    ):
        """
        Initialize renderer.

        Args:
            synthesizer: PSF synthesizer (sets the pixel scale and band)
            n_pix: Image size in pixels
            exposure: Exposure time (s)
            area: Collecting area (m^2), default the pupil area
            placement: 'fourier' or 'bilinear'
            psf_bucket: Field-angle bucket for anisoplanatic PSFs (arcsec)
            cache_size: Maximum cached PSFs
            n_workers: Worker threads, None for one per core
        """
        if int(n_pix) != n_pix or n_pix < 1:
            raise InvalidParameter(f"image size must be a positive integer, got {n_pix}")
        if not exposure > 0:
            raise InvalidParameter(f"exposure must be positive, got {exposure}")
        try:
            placement = Placement(placement.lower() if isinstance(placement, str) else placement)
        except ValueError:
            raise InvalidParameter(
                f"Unknown placement '{placement}'. Available: {[p.value for p in Placement]}"
            ) from None

        self.synthesizer = synthesizer
        self.n_pix = int(n_pix)
        self.exposure = float(exposure)
        self.area = float(area) if area is not None else synthesizer.pupil.area
        if not self.area > 0:
            raise InvalidParameter(f"collecting area must be positive, got {self.area}")
        self.placement = placement
        self.n_workers = n_workers
        self.cache = PsfCache(synthesizer, psf_bucket, cache_size)

    @property
    def pixel_scale(self) -> float:
        return self.synthesizer.pixel_scale

    def photons(self, star) -> float:
        """Expected photons collected from ``star`` during the exposure."""
        return self.synthesizer.band.photon_rate(star.magnitude, self.area) * self.exposure

    def _stamp_origin(self, star, kernel_size: int):
        """Integer origin, fractional offset (row, col) of a star's kernel."""
        c = self.n_pix // 2
        row = c + star.y / self.pixel_scale
        col = c + star.x / self.pixel_scale
        i_row, i_col = math.floor(row), math.floor(col)
        half = kernel_size // 2
        return (i_row - half, i_col - half), (row - i_row, col - i_col)

    def _footprint(self, star):
        """Stamp origin and offset of ``star``, or None if its kernel misses the image."""
        size = self.synthesizer.size
        (top, left), offset = self._stamp_origin(star, size)
        margin = 1 if self.placement is Placement.BILINEAR else 0
        if (top >= self.n_pix or left >= self.n_pix
                or top + size + margin <= 0 or left + size + margin <= 0):
            return None
        return (top, left), offset

    def _place(self, image: np.ndarray, star, psf: Psf, otf, footprint) -> float:
        """Accumulate one star; returns the photons deposited in the image."""
        (top, left), (dy, dx) = footprint
        photons = self.photons(star)
        if self.placement is Placement.FOURIER:
            stamp = fourier_shift(psf.kernel, dx, dy, otf=otf)
            return _add_stamp(image, photons * stamp, top, left)

        deposited = 0.0
        for (dr, dc), weight in bilinear_weights(dx, dy):
            if weight > 0:
                deposited += _add_stamp(image, (photons * weight) * psf.kernel, top + dr, left + dc)
        return deposited

    def _render_chunk(self, stars, cancel: Optional[CancelToken], progress: ProgressTracker):
        """Render a contiguous share of the stars into a private image."""
        partial = np.zeros((self.n_pix, self.n_pix), dtype=np.float64)
        stats = _WorkerStats()
        for star in stars:
            if cancel is not None:
                cancel.raise_if_cancelled()
            footprint = self._footprint(star)
            if footprint is None:
                stats.n_skipped += 1
            else:
                psf, otf = self.cache.get(star.position)
                stats.photons += self._place(partial, star, psf, otf, footprint)
                stats.n_rendered += 1
                if psf.strehl is not None:
                    stats.strehls.append(psf.strehl)
            progress.update()
        return partial, stats

    def render(self, stars, cancel: Optional[CancelToken] = None) -> RenderResult:
        """
        Render a star field.

        Args:
            stars: Sequence of ``Star``
            cancel: Optional token checked before every star

        Returns:
            RenderResult with the expected-photon image and a summary

        Raises:
            EmptyField: no stars
            RenderCancelled: the token was set during rendering
        """
        from joblib import Parallel, delayed

        stars = sorted(stars, key=lambda s: (s.x, s.y, s.magnitude))
        if not stars:
            raise EmptyField("cannot render an empty star field")
        if cancel is not None:
            cancel.raise_if_cancelled()

        n_workers = resolve_n_workers(self.n_workers, len(stars))
        chunks = split_work(stars, n_workers)
        progress = ProgressTracker(len(stars), "Rendering", logger)
        misses_before = self.cache.misses

        with Timer(f"Rendering {len(stars)} stars on {n_workers} worker(s)", logger):
            results = Parallel(n_jobs=n_workers, backend='threading')(
                delayed(self._render_chunk)(chunk, cancel, progress) for chunk in chunks
            )

        image = np.zeros((self.n_pix, self.n_pix), dtype=np.float64)
        summary = RenderSummary(
            n_stars=len(stars),
            n_psf_syntheses=self.cache.misses - misses_before,
            undersampled=self.synthesizer.undersampled,
        )
        strehls = []
        for partial, stats in results:
            image += partial
            summary.n_rendered += stats.n_rendered
            summary.n_skipped += stats.n_skipped
            summary.total_photons += stats.photons
            strehls.extend(stats.strehls)

        descriptor = self.synthesizer.descriptor
        if descriptor is not None and descriptor.is_corrected:
            summary.requested_strehl = descriptor.strehl
        if strehls:
            summary.min_strehl = min(strehls)
            summary.max_strehl = max(strehls)

        logger.info(f"Rendered: {summary}")
        if summary.n_skipped:
            logger.warning(f"{summary.n_skipped} star(s) fall outside the {self.n_pix}px field")

        return RenderResult(FieldImage(image, self.pixel_scale, self.exposure), summary)
