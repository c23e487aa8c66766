"""
Tests for star field rendering.
"""

import numpy as np
import pytest


def _random_stars(n, half_width, seed=0):
    from crowdfield.sources import Star

    rng = np.random.default_rng(seed)
    xy = rng.uniform(-half_width, half_width, (n, 2))
    mags = rng.uniform(8.0, 14.0, n)
    return [Star(float(x), float(y), float(m)) for (x, y), m in zip(xy, mags)]


class TestPsfCache:
    """Tests for the field-angle PSF cache."""

    def test_isoplanatic_single_entry(self, backend, small_pupil):
        """Seeing shares one PSF across the field."""
        from crowdfield.atmosphere import AtmosphereAoDescriptor
        from crowdfield.psf import PsfSynthesizer
        from crowdfield.renderer import PsfCache

        synthesizer = PsfSynthesizer(small_pupil, AtmosphereAoDescriptor.seeing(0.16, band='I'),
                                     pixel_scale=0.02, size=32)
        cache = PsfCache(synthesizer)
        for angle in [(0.0, 0.0), (3.0, 1.0), (-7.0, 2.0)]:
            cache.get(angle)

        assert len(cache) == 1
        assert cache.misses == 1
        assert cache.hits == 2

    def test_bucket_center(self, ngao_synthesizer):
        """Anisoplanatic PSFs are evaluated at the bucket center."""
        from crowdfield.renderer import PsfCache

        cache = PsfCache(ngao_synthesizer, bucket=0.5)
        psf, otf = cache.get((0.26, -0.1))

        assert psf.field_angle == (0.5, 0.0)
        assert otf.shape == psf.kernel.shape
        assert np.real(otf[0, 0]) == pytest.approx(psf.energy)

        again, _ = cache.get((0.6, 0.2))
        assert again is psf
        assert cache.hits == 1

    def test_exact_angles(self, ngao_synthesizer):
        """No bucketing when the bucket is None."""
        from crowdfield.renderer import PsfCache

        cache = PsfCache(ngao_synthesizer, bucket=None)
        psf, _ = cache.get((0.26, -0.1))

        assert psf.field_angle == (0.26, -0.1)

    def test_lru_eviction(self, ngao_synthesizer):
        """Cache size is bounded."""
        from crowdfield.renderer import PsfCache

        cache = PsfCache(ngao_synthesizer, bucket=0.1, max_size=2)
        for x in (0.0, 0.1, 0.2):
            cache.get((x, 0.0))
        assert len(cache) == 2

        # Oldest entry was evicted
        cache.get((0.0, 0.0))
        assert cache.misses == 4

    def test_invalid_size(self, ngao_synthesizer):
        """Cache needs room for one entry."""
        from crowdfield.renderer import PsfCache
        from crowdfield.errors import InvalidParameter

        with pytest.raises(InvalidParameter):
            PsfCache(ngao_synthesizer, max_size=0)


class TestPlacement:
    """Tests for single-star placement."""

    @pytest.mark.parametrize("placement", ['fourier', 'bilinear'])
    def test_flux_conservation(self, dl_synthesizer, placement):
        """A star inside the field keeps all its photons."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import Star

        renderer = FieldRenderer(dl_synthesizer, n_pix=64, placement=placement)
        ps = renderer.pixel_scale
        star = Star(0.3 * ps, -0.2 * ps, 10.0)

        result = renderer.render([star])

        assert result.image.flux() == pytest.approx(renderer.photons(star), rel=1e-9)
        assert result.summary.n_rendered == 1
        assert result.summary.total_photons == pytest.approx(renderer.photons(star))
        assert result.image.data.min() >= 0.0

    def test_photons(self, dl_synthesizer):
        """Expected photons from zero-point, area and exposure."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import Star

        renderer = FieldRenderer(dl_synthesizer, n_pix=32, exposure=2.0, area=10.0)
        zeropoint = dl_synthesizer.band.zeropoint

        assert renderer.photons(Star(0.0, 0.0, 0.0)) == pytest.approx(zeropoint * 20.0)
        assert renderer.photons(Star(0.0, 0.0, 5.0)) == pytest.approx(zeropoint * 20.0 / 100.0)

        default = FieldRenderer(dl_synthesizer, n_pix=32)
        assert default.area == pytest.approx(dl_synthesizer.pupil.area)

    def test_integer_position(self, dl_synthesizer):
        """Stars land on the pixel matching their sky position."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import Star

        renderer = FieldRenderer(dl_synthesizer, n_pix=64)
        ps = renderer.pixel_scale
        image = renderer.render([Star(2 * ps, -3 * ps, 10.0)]).image

        # rows follow +y, columns follow +x
        assert np.unravel_index(np.argmax(image.data), image.shape) == (29, 34)

    def test_methods_agree_on_pixel_centers(self, dl_synthesizer):
        """Fourier and bilinear placement coincide without sub-pixel offset."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import Star

        stars = [Star(0.0, 0.0, 10.0)]
        fourier = FieldRenderer(dl_synthesizer, 64, placement='fourier').render(stars).image
        bilinear = FieldRenderer(dl_synthesizer, 64, placement='BILINEAR').render(stars).image

        np.testing.assert_allclose(fourier.data, bilinear.data, rtol=1e-9,
                                   atol=1e-9 * bilinear.data.max())

    def test_out_of_field(self, dl_synthesizer):
        """Stars whose footprint misses the image are skipped."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import Star

        renderer = FieldRenderer(dl_synthesizer, n_pix=64)
        ps = renderer.pixel_scale
        inside = Star(0.0, 0.0, 10.0)
        edge = Star(33 * ps, 0.0, 10.0)
        outside = Star(500 * ps, 0.0, 10.0)

        result = renderer.render([inside, edge, outside])

        assert result.summary.n_stars == 3
        assert result.summary.n_rendered == 2
        assert result.summary.n_skipped == 1
        # Partially visible star loses photons
        assert result.image.flux() < 2 * renderer.photons(inside)
        assert result.image.flux() > renderer.photons(inside)

    def test_clipped_photons(self, dl_synthesizer):
        """Summary counts only the photons that land in the image."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import Star

        for placement in ('fourier', 'bilinear'):
            renderer = FieldRenderer(dl_synthesizer, n_pix=64, placement=placement)
            edge = Star(31.5 * renderer.pixel_scale, 0.0, 10.0)
            result = renderer.render([edge])

            assert result.summary.n_rendered == 1
            assert result.summary.total_photons == pytest.approx(result.image.flux(), rel=1e-9)
            assert result.summary.total_photons < 0.9 * renderer.photons(edge)

    def test_exposure_scaling(self, dl_synthesizer):
        """Flux is proportional to exposure."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import Star

        stars = [Star(0.0, 0.0, 10.0)]
        one = FieldRenderer(dl_synthesizer, 64, exposure=1.0).render(stars).image
        three = FieldRenderer(dl_synthesizer, 64, exposure=3.0).render(stars).image

        assert three.flux() == pytest.approx(3 * one.flux())
        assert three.exposure == 3.0
        assert three.pixel_scale == dl_synthesizer.pixel_scale


class TestFieldRenderer:
    """Tests for multi-star rendering."""

    def test_order_invariance(self, ngao_synthesizer):
        """Image does not depend on the order of the stars."""
        from crowdfield.renderer import FieldRenderer

        stars = _random_stars(12, 0.25)
        shuffled = list(reversed(stars))
        shuffled = shuffled[5:] + shuffled[:5]

        a = FieldRenderer(ngao_synthesizer, 64, n_workers=3).render(stars).image
        b = FieldRenderer(ngao_synthesizer, 64, n_workers=3).render(shuffled).image

        np.testing.assert_allclose(a.data, b.data, rtol=1e-12, atol=1e-12 * a.data.max())

    def test_worker_count_invariance(self, ngao_synthesizer):
        """Parallel and serial renders agree."""
        from crowdfield.renderer import FieldRenderer

        stars = _random_stars(12, 0.25, seed=3)

        serial = FieldRenderer(ngao_synthesizer, 64, n_workers=1).render(stars).image
        parallel = FieldRenderer(ngao_synthesizer, 64, n_workers=4).render(stars).image

        np.testing.assert_allclose(serial.data, parallel.data, rtol=1e-10,
                                   atol=1e-10 * serial.data.max())

    def test_summary_strehl(self, ngao_synthesizer):
        """Summary reports achieved vs requested Strehl."""
        from crowdfield.renderer import FieldRenderer

        stars = _random_stars(6, 0.2, seed=5)
        summary = FieldRenderer(ngao_synthesizer, 64, n_workers=1).render(stars).summary

        assert summary.requested_strehl == 0.8
        assert summary.min_strehl == pytest.approx(0.8)
        assert summary.max_strehl == pytest.approx(0.8)
        assert summary.n_psf_syntheses == 1
        assert summary.n_rendered == 6
        assert not summary.undersampled
        assert 'Strehl' in str(summary)
        assert summary.to_dict()['n_stars'] == 6

    def test_no_synthesis_for_skipped_stars(self, ngao_synthesizer):
        """Stars outside the field never reach the PSF cache."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import Star

        stars = [Star(0.0, 0.0, 10.0)] + [Star(100.0 + i, 0.0, 10.0) for i in range(40)]
        renderer = FieldRenderer(ngao_synthesizer, 64, n_workers=1)
        summary = renderer.render(stars).summary

        assert summary.n_rendered == 1
        assert summary.n_skipped == 40
        assert summary.n_psf_syntheses == 1
        assert len(renderer.cache) == 1

    def test_on_axis_peak(self, ngao_synthesizer):
        """Image peak of a centered star is photons times the kernel peak."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import Star

        renderer = FieldRenderer(ngao_synthesizer, 64)
        star = Star(0.0, 0.0, 10.0)
        image = renderer.render([star]).image
        psf = ngao_synthesizer.synthesize((0.0, 0.0))

        assert image.data.max() / renderer.photons(star) == pytest.approx(psf.peak, rel=1e-6)
        assert image.data[32, 32] == image.data.max()

    def test_summary_diffraction(self, dl_synthesizer):
        """No requested Strehl without AO."""
        from crowdfield.renderer import FieldRenderer

        summary = FieldRenderer(dl_synthesizer, 64).render(_random_stars(3, 0.1)).summary

        assert summary.requested_strehl is None
        assert summary.min_strehl == 1.0
        assert 'requested' not in str(summary)

    def test_empty_field(self, dl_synthesizer):
        """Zero stars raise EmptyField."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import StarField
        from crowdfield.errors import EmptyField

        renderer = FieldRenderer(dl_synthesizer, 64)
        with pytest.raises(EmptyField):
            renderer.render([])
        with pytest.raises(EmptyField):
            renderer.render(StarField([]))

    def test_accepts_star_field(self, dl_synthesizer):
        """StarField input renders like a list."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.sources import from_list

        field = from_list([(0.0, 0.0, 10.0), (0.05, 0.05, 11.0)])
        result = FieldRenderer(dl_synthesizer, 64).render(field)

        assert result.summary.n_rendered == 2

    @pytest.mark.parametrize("kwargs", [
        dict(n_pix=0),
        dict(n_pix=64, exposure=0.0),
        dict(n_pix=64, placement='nearest'),
        dict(n_pix=64, area=-1.0),
    ])
    def test_invalid(self, dl_synthesizer, kwargs):
        """Test errors on invalid renderer settings."""
        from crowdfield.renderer import FieldRenderer
        from crowdfield.errors import InvalidParameter

        with pytest.raises(InvalidParameter):
            FieldRenderer(dl_synthesizer, **kwargs)


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancel_token(self):
        """Token state."""
        from crowdfield.renderer import CancelToken
        from crowdfield.errors import RenderCancelled

        token = CancelToken()
        assert not token.cancelled
        token.raise_if_cancelled()

        token.cancel()
        assert token.cancelled
        with pytest.raises(RenderCancelled):
            token.raise_if_cancelled()

    def test_cancelled_before_render(self, dl_synthesizer):
        """A set token aborts immediately."""
        from crowdfield.renderer import FieldRenderer, CancelToken
        from crowdfield.errors import RenderCancelled

        token = CancelToken()
        token.cancel()

        with pytest.raises(RenderCancelled):
            FieldRenderer(dl_synthesizer, 64).render(_random_stars(5, 0.1), cancel=token)

    def test_cancelled_during_render(self, dl_synthesizer):
        """Cancellation between stars aborts without an image."""
        from crowdfield.renderer import FieldRenderer, CancelToken
        from crowdfield.errors import RenderCancelled

        class CountdownToken(CancelToken):
            def __init__(self, checks):
                super().__init__()
                self.checks = checks

            def raise_if_cancelled(self):
                self.checks -= 1
                if self.checks < 0:
                    self.cancel()
                super().raise_if_cancelled()

        token = CountdownToken(4)
        with pytest.raises(RenderCancelled):
            FieldRenderer(dl_synthesizer, 64, n_workers=1).render(_random_stars(10, 0.1), cancel=token)
        assert token.cancelled
