"""
Tests for telescope pupils.
"""

import math

import numpy as np
import pytest


class TestRegistry:
    """Tests for the pupil registry."""

    def test_list_pupils(self):
        """All kinds are registered."""
        from crowdfield.pupils import list_pupils

        assert set(list_pupils()) == {'circular', 'annular', 'hexagon', 'hst', 'jwst', 'gmt'}

    def test_resolve_kind(self):
        """Names are case-insensitive."""
        from crowdfield.pupils import resolve_kind, PupilKind

        assert resolve_kind('HST') is PupilKind.HST
        assert resolve_kind(PupilKind.GMT) is PupilKind.GMT

    def test_unknown_kind(self):
        """Test error on unknown pupil."""
        from crowdfield.pupils import build
        from crowdfield.errors import UnknownPreset

        with pytest.raises(UnknownPreset):
            build('keck', 10.0)

    def test_native_geometry(self):
        """Presets carry their native size."""
        from crowdfield.pupils import get_geometry

        assert get_geometry('hst').native_diameter == 2.4
        assert get_geometry('hst').native_obscuration == 0.6
        assert get_geometry('jwst').native_diameter == 6.64
        assert get_geometry('gmt').native_diameter == 25.5
        assert get_geometry('circular').native_diameter is None


class TestGenericShapes:
    """Tests for generic pupil shapes."""

    def test_circular_area(self):
        """Filled disk area."""
        from crowdfield.pupils import build

        pupil = build('circular', 8.0, resolution=64)

        assert pupil.area == pytest.approx(math.pi * 16.0, rel=0.01)
        assert pupil.fill_factor == pytest.approx(1.0, rel=0.01)
        assert pupil.sampling == 0.125

    def test_annular_area(self):
        """Disk minus its central obscuration."""
        from crowdfield.pupils import build

        pupil = build('annular', 8.0, resolution=128, obscuration=2.0)

        assert pupil.area == pytest.approx(math.pi * (16.0 - 1.0), rel=0.01)

    def test_hexagon_area(self):
        """Hexagon with a vertex-to-vertex diameter."""
        from crowdfield.pupils import build

        pupil = build('hexagon', 2.0, resolution=128)

        assert pupil.area == pytest.approx(3 * math.sqrt(3) / 8 * 4.0, rel=0.01)

    def test_mask_properties(self):
        """Mask is a read-only transmission in [0, 1]."""
        from crowdfield.pupils import build

        pupil = build('circular', 4.0, resolution=32)

        assert pupil.mask.shape == (32, 32)
        assert pupil.mask.min() >= 0.0
        assert pupil.mask.max() <= 1.0
        with pytest.raises(ValueError):
            pupil.mask[0, 0] = 1.0

    def test_anti_aliased_edges(self):
        """Edge pixels get fractional transmission."""
        from crowdfield.pupils import build

        pupil = build('circular', 4.0, resolution=32, supersampling=4)
        edge = (pupil.mask > 0) & (pupil.mask < 1)

        assert edge.any()

    def test_point_symmetric(self):
        """Centered shapes are symmetric under a half turn."""
        from crowdfield.pupils import build

        mask = build('circular', 8.0, resolution=64).mask
        np.testing.assert_array_equal(mask, mask[::-1, ::-1])


class TestTelescopes:
    """Tests for named telescope pupils."""

    def test_hst(self):
        """HST annulus at native size."""
        from crowdfield.pupils import build

        pupil = build('hst', resolution=128)

        assert pupil.diameter == 2.4
        assert pupil.obscuration == 0.6
        assert pupil.area == pytest.approx(math.pi * (1.2 ** 2 - 0.3 ** 2), rel=0.02)

    def test_hst_scaled(self):
        """Presets scale their obscuration with the diameter."""
        from crowdfield.pupils import build

        pupil = build('hst', 4.8, resolution=32)

        assert pupil.obscuration == pytest.approx(1.2)

    def test_jwst(self):
        """JWST collects through 18 hexagonal segments."""
        from crowdfield.pupils import build
        from crowdfield.pupils.telescopes import jwst_segment_centers, JWST_SEGMENT

        centers = jwst_segment_centers()
        assert len(centers) == 18

        pupil = build('jwst', resolution=128)
        segment_area = math.sqrt(3) / 2 * JWST_SEGMENT ** 2
        assert pupil.area == pytest.approx(18 * segment_area, rel=0.03)

        # Central segment position is empty
        assert pupil.mask[64, 64] == 0.0

    def test_gmt(self):
        """GMT: seven disks, the central one with a hole."""
        from crowdfield.pupils import build
        from crowdfield.pupils.telescopes import (
            gmt_segment_centers, GMT_SEGMENT, GMT_CENTER_HOLE,
        )

        centers = gmt_segment_centers()
        assert len(centers) == 7
        # Outer segments touch the circumscribed circle
        x, y = centers[1]
        assert math.hypot(x, y) + GMT_SEGMENT / 2 == pytest.approx(25.5 / 2)

        pupil = build('gmt', resolution=128)
        expected = 7 * math.pi * (GMT_SEGMENT / 2) ** 2 - math.pi * (GMT_CENTER_HOLE / 2) ** 2
        assert pupil.area == pytest.approx(expected, rel=0.02)

    def test_gmt_segment_layout(self):
        """Outer GMT segments sit 8.5675 m off-axis, 60 degrees apart, without overlap."""
        from crowdfield.pupils.telescopes import gmt_segment_centers, GMT_SEGMENT

        centers = gmt_segment_centers()
        assert centers[0] == (0.0, 0.0)
        for i, (x, y) in enumerate(centers[1:]):
            assert math.hypot(x, y) == pytest.approx(8.5675)
            assert math.degrees(math.atan2(y, x)) % 360 == pytest.approx(60.0 * i, abs=1e-9)

        # Neighbouring outer segments are one radius apart
        (x1, y1), (x2, y2) = centers[1], centers[2]
        assert math.hypot(x2 - x1, y2 - y1) == pytest.approx(8.5675)
        assert 8.5675 > GMT_SEGMENT

        # Scaled geometry keeps the same layout
        scaled = gmt_segment_centers(51.0, 2 * GMT_SEGMENT)
        assert math.hypot(*scaled[1]) == pytest.approx(2 * 8.5675)


class TestValidation:
    """Tests for geometry validation."""

    def test_missing_diameter(self):
        """Generic shapes need a diameter."""
        from crowdfield.pupils import build
        from crowdfield.errors import InvalidGeometry

        with pytest.raises(InvalidGeometry):
            build('circular')

    def test_non_positive_diameter(self):
        """Test error on non-positive diameter."""
        from crowdfield.pupils import build
        from crowdfield.errors import InvalidGeometry

        with pytest.raises(InvalidGeometry):
            build('circular', 0.0)
        with pytest.raises(InvalidGeometry):
            build('circular', -1.0)

    def test_obscuration_too_large(self):
        """Obscuration must be smaller than the aperture."""
        from crowdfield.pupils import build
        from crowdfield.errors import InvalidGeometry

        with pytest.raises(InvalidGeometry):
            build('annular', 4.0, obscuration=4.0)
        with pytest.raises(InvalidGeometry):
            build('annular', 4.0, obscuration=-0.1)

    def test_resolution(self):
        """Resolution must be an integer >= 2."""
        from crowdfield.pupils import build
        from crowdfield.errors import InvalidGeometry

        with pytest.raises(InvalidGeometry):
            build('circular', 4.0, resolution=1)
        with pytest.raises(ValueError):
            build('circular', 4.0, resolution=10.5)
