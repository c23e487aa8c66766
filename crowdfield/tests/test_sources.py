"""
Tests for star field generation.
"""

import math
import os
import tempfile

import numpy as np
import pytest


class TestStar:
    """Tests for Star and StarField value objects."""

    def test_star(self):
        """Positions, distances and flux."""
        from crowdfield.sources import Star
        from crowdfield.physics.photometry import get_band

        star = Star(3.0, 4.0, 10.0)

        assert star.position == (3.0, 4.0)
        assert star.distance == 5.0
        assert star.separation((0.0, 4.0)) == 3.0
        assert star.separation(Star(3.0, 0.0)) == 4.0
        assert star.flux('I', 2.0) == pytest.approx(get_band('I').zeropoint * 1e-4 * 2.0)
        assert star.inside_box(10.0)
        assert not star.inside_box(6.0)

    def test_field_queries(self):
        """Brightest, faintest, closest, furthest."""
        from crowdfield.sources import from_list

        field = from_list([(0.0, 1.0, 15.0), (5.0, 5.0, 12.0), (0.5, 0.0, 18.0)])

        assert field.brightest().magnitude == 12.0
        assert field.faintest().magnitude == 18.0
        assert field.closest().position == (0.5, 0.0)
        assert field.furthest().position == (5.0, 5.0)
        assert field.positions.shape == (3, 2)
        np.testing.assert_array_equal(field.magnitudes, [15.0, 12.0, 18.0])

    def test_field_is_sequence(self):
        """StarField behaves like an immutable sequence."""
        from crowdfield.sources import from_list, StarField

        field = from_list([(0.0, 0.0, 1.0), (1.0, 1.0, 2.0), (2.0, 2.0, 3.0)])

        assert len(field) == 3
        assert field[1].magnitude == 2.0
        assert isinstance(field[:2], StarField)
        assert len(field[:2]) == 2
        assert [s.magnitude for s in field] == [1.0, 2.0, 3.0]
        assert field == from_list(list(field))
        assert hash(field) == hash(from_list(list(field)))

    def test_filter(self):
        """Magnitude and field-of-view cuts."""
        from crowdfield.sources import from_list
        from crowdfield.errors import EmptyField

        field = from_list([(0.0, 0.0, 10.0), (4.0, 0.0, 12.0), (0.0, 1.0, 20.0)])

        assert len(field.filter(magnitude_limit=15.0)) == 2
        assert len(field.filter(field_of_view=4.0)) == 2
        assert len(field.filter(15.0, 4.0)) == 1
        with pytest.raises(EmptyField):
            field.filter(magnitude_limit=5.0)

    def test_empty_field_queries(self):
        """Queries on an empty field raise EmptyField."""
        from crowdfield.sources import StarField
        from crowdfield.errors import EmptyField

        field = StarField([])
        assert len(field) == 0
        with pytest.raises(EmptyField):
            field.brightest()


class TestConstructors:
    """Tests for explicit lists, catalogs and asterisms."""

    def test_from_list_formats(self):
        """Both tuple layouts and Star objects, order kept."""
        from crowdfield.sources import from_list, Star

        field = from_list([((1.0, 2.0), 10.0), (3.0, 4.0, 11.0), Star(5.0, 6.0, 12.0)])

        assert [s.position for s in field] == [(1.0, 2.0), (3.0, 4.0), (5.0, 6.0)]
        assert [s.magnitude for s in field] == [10.0, 11.0, 12.0]

    def test_from_list_errors(self):
        """Empty and malformed lists."""
        from crowdfield.sources import from_list
        from crowdfield.errors import EmptyField, InvalidParameter

        with pytest.raises(EmptyField):
            from_list([])
        with pytest.raises(InvalidParameter):
            from_list([(1.0, 2.0)])
        with pytest.raises(InvalidParameter):
            from_list([(1.0, 2.0, 3.0, 4.0)])

    def test_load_catalog(self):
        """Whitespace catalog with comments."""
        from crowdfield.sources import load_catalog

        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'stars.txt')
            with open(path, 'w') as f:
                f.write("# x y mag\n0.0 0.0 10.0\n1.5 -2.0 12.5\n")

            field = load_catalog(path)

        assert len(field) == 2
        assert field[1].position == (1.5, -2.0)
        assert field[1].magnitude == 12.5

    def test_load_catalog_csv(self):
        """Single-row CSV catalog."""
        from crowdfield.sources import load_catalog

        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'stars.csv')
            with open(path, 'w') as f:
                f.write("0.5,0.25,14.0\n")

            field = load_catalog(path, delimiter=',')

        assert len(field) == 1
        assert field[0].magnitude == 14.0

    def test_load_catalog_columns(self):
        """Catalogs need three columns."""
        from crowdfield.sources import load_catalog
        from crowdfield.errors import InvalidParameter

        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'stars.txt')
            with open(path, 'w') as f:
                f.write("0.0 0.0\n1.0 1.0\n")

            with pytest.raises(InvalidParameter):
                load_catalog(path)

    def test_asterism(self):
        """Concentric rings of guide stars."""
        from crowdfield.sources import asterism

        field = asterism([(7.5, 8, 0.0), (2.5, 6, 30.0)], magnitude=8.0)

        assert len(field) == 15
        assert field[0].position == (0.0, 0.0)
        distances = sorted(round(s.distance, 9) for s in field)
        assert distances.count(7.5) == 8
        assert distances.count(2.5) == 6
        assert field[9].x == pytest.approx(2.5 * math.cos(math.radians(30.0)))
        assert all(s.magnitude == 8.0 for s in field)

        assert len(asterism([(1.0, 4, 0.0)], center_star=False)) == 4


class TestGenerateField:
    """Tests for random fields."""

    def test_reproducible(self):
        """Same seed, same field."""
        from crowdfield.sources import generate_field, Uniform, Normal

        a = generate_field(50, Uniform(10.0), Normal(15.0, 2.0), rng=42)
        b = generate_field(50, Uniform(10.0), Normal(15.0, 2.0), rng=42)
        c = generate_field(50, Uniform(10.0), Normal(15.0, 2.0), rng=43)

        assert a == b
        assert a != c

    def test_generator_threaded(self, rng):
        """A generator is consumed, not reseeded."""
        from crowdfield.sources import generate_field, Uniform, Normal

        a = generate_field(10, Uniform(10.0), Normal(15.0, 2.0), rng=rng)
        b = generate_field(10, Uniform(10.0), Normal(15.0, 2.0), rng=rng)

        assert a != b

    def test_uniform_bounds(self, rng):
        """Uniform draws stay in the square."""
        from crowdfield.sources import generate_field, Uniform, Normal

        field = generate_field(500, Uniform(4.0, center=(1.0, 0.0)), Normal(15.0, 1.0), rng=rng)
        xy = field.positions

        assert len(field) == 500
        assert xy[:, 0].min() >= -1.0 and xy[:, 0].max() <= 3.0
        assert np.abs(xy[:, 1]).max() <= 2.0

    def test_filters(self, rng):
        """Filtering after the draw."""
        from crowdfield.sources import generate_field, Uniform, Normal
        from crowdfield.errors import EmptyField

        field = generate_field(500, Uniform(10.0), Normal(15.0, 2.0), rng=rng,
                               magnitude_limit=15.0, field_of_view=5.0)

        assert 0 < len(field) < 500
        assert field.magnitudes.max() <= 15.0
        assert all(s.inside_box(5.0) for s in field)

        with pytest.raises(EmptyField):
            generate_field(20, Uniform(10.0), Normal(15.0, 0.1), rng=rng, magnitude_limit=5.0)

    def test_zero_and_negative(self):
        """n == 0 is an empty field, n < 0 invalid."""
        from crowdfield.sources import generate_field, Uniform, Normal
        from crowdfield.errors import EmptyField, InvalidParameter

        with pytest.raises(EmptyField):
            generate_field(0, Uniform(1.0), Normal(15.0, 1.0))
        with pytest.raises(InvalidParameter):
            generate_field(-1, Uniform(1.0), Normal(15.0, 1.0))


class TestDistributions:
    """Tests for spatial and magnitude laws."""

    def test_plummer_median(self, rng):
        """Half the stars lie within the Plummer scale."""
        from crowdfield.sources import Plummer

        x, y = Plummer(2.0).sample(20000, rng)
        r = np.hypot(x, y)

        assert np.median(r) == pytest.approx(2.0, rel=0.05)

    def test_globular_center(self, rng):
        """Globular field is centered on its center."""
        from crowdfield.sources import Globular

        x, y = Globular(1.0, center=(5.0, -5.0)).sample(5000, rng)

        assert np.median(x) == pytest.approx(5.0, abs=0.2)
        assert np.median(y) == pytest.approx(-5.0, abs=0.2)

    def test_lorentz_quartiles(self, rng):
        """Cauchy quartiles at +/- scale."""
        from crowdfield.sources import Lorentz

        x, _ = Lorentz(3.0).sample(20000, rng)
        q1, q3 = np.percentile(x, [25, 75])

        assert q1 == pytest.approx(-3.0, rel=0.1)
        assert q3 == pytest.approx(3.0, rel=0.1)

    def test_lognormal_moments(self, rng):
        """Log-normal magnitudes reproduce the requested moments."""
        from crowdfield.sources import LogNormal

        m = LogNormal(offset=10.0, mean=3.0, std=1.0).sample(50000, rng)

        assert m.min() > 10.0
        assert m.mean() == pytest.approx(13.0, abs=0.05)
        assert m.std() == pytest.approx(1.0, abs=0.05)

    def test_powerlaw(self, rng):
        """Power law stays in range and favors faint stars."""
        from crowdfield.sources import PowerLaw

        m = PowerLaw(10.0, 20.0, slope=0.3).sample(10000, rng)

        assert m.min() >= 10.0
        assert m.max() <= 20.0
        assert np.mean(m > 15.0) > 0.8

        flat = PowerLaw(10.0, 20.0, slope=0.0).sample(10000, rng)
        assert flat.mean() == pytest.approx(15.0, abs=0.2)

    def test_factories(self):
        """Laws by name."""
        from crowdfield.sources import get_spatial, get_magnitudes, Plummer, Normal
        from crowdfield.errors import InvalidParameter

        assert isinstance(get_spatial('Plummer', scale=1.0), Plummer)
        assert isinstance(get_magnitudes('normal', mean=15.0, std=1.0), Normal)
        with pytest.raises(InvalidParameter):
            get_spatial('gaussian', scale=1.0)
        with pytest.raises(InvalidParameter):
            get_magnitudes('schechter')

    @pytest.mark.parametrize("name, args", [
        ('Uniform', (0.0,)),
        ('Lorentz', (0.0,)),
        ('Plummer', (-1.0,)),
        ('Normal', (15.0, -1.0)),
        ('LogNormal', (0.0, 0.0, 1.0)),
        ('PowerLaw', (20.0, 10.0)),
    ])
    def test_invalid_parameters(self, name, args):
        """Out-of-range law parameters."""
        from crowdfield import sources
        from crowdfield.errors import InvalidParameter

        with pytest.raises(InvalidParameter):
            getattr(sources, name)(*args)
