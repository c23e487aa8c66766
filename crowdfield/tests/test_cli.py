"""
Tests for the command-line interface.
"""

import os
import tempfile

import pytest


class TestCli:
    """Tests for the crowdfield command."""

    def test_no_command(self, capsys):
        """Help and exit code 1 without a command."""
        from crowdfield.cli import main

        with pytest.raises(SystemExit) as exc:
            main([])

        assert exc.value.code == 1
        assert 'render' in capsys.readouterr().out

    def test_info(self, capsys):
        """Lists bands, pupils and presets."""
        from crowdfield.cli import main

        main(['info'])
        out = capsys.readouterr().out

        assert 'Photometric bands' in out
        assert 'jwst' in out
        assert 'ngao' in out
        assert 'hex' in out

    def test_psf(self, capsys):
        """NGAO PSF report."""
        from crowdfield.cli import main

        main(['psf', '--mode', 'ngao', '--strehl', '0.8', '--band', 'I',
              '--diameter', '8', '--psf-size', '32'])
        out = capsys.readouterr().out

        assert 'Strehl: 0.800 (requested 0.800)' in out
        assert 'Core energy fraction' in out
        assert 'UNDERSAMPLED' not in out

    def test_preset_telescope_diameter(self, capsys):
        """A preset pupil keeps its native diameter unless -D is given."""
        from crowdfield.cli import main

        main(['psf', '--telescope', 'jwst', '--mode', 'diffraction', '--band', 'K',
              '--psf-size', '16'])
        assert '6.640m diameter' in capsys.readouterr().out

        main(['psf', '--telescope', 'jwst', '-D', '13.28', '--mode', 'diffraction',
              '--band', 'K', '--psf-size', '16'])
        assert '13.280m diameter' in capsys.readouterr().out

    def test_psf_output(self, capsys):
        """Kernel saved as .npy."""
        import numpy as np
        from crowdfield.cli import main

        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'psf.npy')
            main(['psf', '--mode', 'diffraction', '--psf-size', '16',
                  '--nyquist-factor', '2', '-o', path])

            kernel = np.load(path)

        assert kernel.shape == (16, 16)
        assert 'UNDERSAMPLED' in capsys.readouterr().out

    def test_render(self, capsys):
        """Render a small field to disk."""
        from crowdfield.cli import main

        with tempfile.TemporaryDirectory() as tmpdir:
            main(['render', '--mode', 'diffraction', '--band', 'I', '--n-pix', '64',
                  '--psf-size', '32', '--n-stars', '5', '--fov', '0.3', '--seed', '1',
                  '--ifu', 'round', '--ifu-size', '0.2', '-j', '2', '-o', tmpdir])

            written = [name for _, _, files in os.walk(tmpdir) for name in files]

        out = capsys.readouterr().out
        assert '5/5 stars rendered' in out
        assert 'throughput' in out
        assert {'image.npy', 'psf.npy', 'observed.npy', 'ifu.npy', 'summary.yaml'} <= set(written)

    def test_error_exit(self, capsys, monkeypatch):
        """Errors print a message and exit 1."""
        from crowdfield.cli import main

        monkeypatch.delenv('CROWDFIELD_DEBUG', raising=False)

        with pytest.raises(SystemExit) as exc:
            main(['render', '--preset', 'vlt'])

        assert exc.value.code == 1
        err = capsys.readouterr().err
        assert err.startswith('Error:')
        assert 'vlt' in err

    def test_debug_reraises(self, monkeypatch):
        """CROWDFIELD_DEBUG re-raises the original error."""
        from crowdfield.cli import main
        from crowdfield.errors import UnknownPreset

        monkeypatch.setenv('CROWDFIELD_DEBUG', '1')

        with pytest.raises(UnknownPreset):
            main(['psf', '--preset', 'vlt'])
