#!/usr/bin/env python3
"""
Command-line interface for crowdfield.

Usage:
    crowdfield render [options]    Render a star field image
    crowdfield psf [options]       Synthesize one PSF and report its metrics
    crowdfield info                List bands, pupils, presets and IFUs
"""

import argparse
import os
import sys


def build_config(args):
    """Configuration from a file and/or preset, overridden by flags."""
    from .config import load_config, apply_preset, Config

    config = load_config(args.config) if args.config else Config()
    if args.preset:
        apply_preset(config, args.preset)

    overrides = {
        'telescope': {'kind': args.telescope, 'diameter': args.diameter},
        'atmosphere': {
            'mode': args.mode,
            'r0': args.r0,
            'zenith_angle': args.zenith_angle,
            'strehl': args.strehl,
            'glao_fraction': args.glao_fraction,
            'asterism_diameter': args.asterism_diameter,
        },
        'observation': {
            'band': args.band,
            'exposure': args.exposure,
            'pixel_scale': args.pixel_scale,
            'nyquist_factor': args.nyquist_factor,
            'n_pix': getattr(args, 'n_pix', None),
            'psf_size': args.psf_size,
        },
    }
    for section, values in overrides.items():
        target = getattr(config, section)
        for key, value in values.items():
            if value is not None:
                setattr(target, key, value)

    # A preset telescope keeps its native size unless -D is given
    if args.telescope and args.diameter is None:
        from .pupils import get_geometry

        if get_geometry(args.telescope).native_diameter is not None:
            config.telescope.diameter = None
            config.telescope.obscuration = None

    return config


def cmd_render(args):
    """Render a star field."""
    from .config import IFU_DEFAULT_SIZES
    from .pipeline import Pipeline
    from .utils.logging import get_logger

    logger = get_logger()
    config = build_config(args)

    if args.n_stars is not None:
        config.stars.n_stars = args.n_stars
    if args.fov is not None:
        config.stars.spatial_params = {'fov': args.fov}
    if args.catalog:
        config.stars.catalog = args.catalog
    if args.seed is not None:
        config.seed = args.seed
    if args.background is not None:
        config.noise.background = args.background
    if args.no_noise:
        config.noise.photon_noise = False
    if args.workers is not None:
        config.render.n_workers = args.workers
    if args.placement:
        config.render.placement = args.placement
    if args.gpu:
        config.render.compute_mode = 'GPU'
    if args.ifu:
        config.ifu.kind = args.ifu
        config.ifu.size = args.ifu_size or IFU_DEFAULT_SIZES[args.ifu]
        config.ifu.length = args.slit_length
    if args.output:
        config.paths.output_dir = args.output
        config.paths.run_dir = os.path.join(args.output, config.paths.run_name)

    result = Pipeline(config).run()
    print(result.summary)
    if result.ifu is not None:
        print(f"{result.ifu.geometry} throughput: {result.ifu.throughput:.3f}")
        if result.ifu.elements is not None:
            print("Individual throughput: " + ", ".join(f"{t:.3f}" for t in result.ifu.elements))

    if args.output:
        result.save(config.paths.run_dir)
        logger.info(f"Results written to {config.paths.run_dir}")


def cmd_psf(args):
    """Synthesize a PSF and report Strehl, FWHM and sampling."""
    import numpy as np
    from .pipeline import Pipeline
    from .psf import core_energy_fraction
    from .utils.compute import init_backend

    config = build_config(args)
    init_backend('GPU' if args.gpu else 'CPU')

    synthesizer = Pipeline(config).build_synthesizer()
    psf = synthesizer.synthesize((args.x, args.y))
    reference = synthesizer.diffraction_limited()

    print(f"Pupil: {synthesizer.pupil}")
    if synthesizer.descriptor is not None:
        print(f"Atmosphere: {synthesizer.descriptor}")
        print(f"Seeing FWHM: {synthesizer.descriptor.seeing_fwhm:.3f}\"")
    print(f"Pixel scale: {psf.pixel_scale:.4g}\" (Nyquist {synthesizer.nyquist_pixel_scale:.4g}\")"
          + (" UNDERSAMPLED" if psf.undersampled else ""))
    print(f"FWHM: {psf.fwhm:.4g}\"")
    print(f"Core energy fraction: {core_energy_fraction(psf, reference):.3f}")
    if psf.requested_strehl is not None:
        print(f"Strehl: {psf.strehl:.3f} (requested {psf.requested_strehl:.3f})")

    if args.output:
        np.save(args.output, psf.kernel)
        print(f"Saved PSF to {args.output}")


def cmd_info(args):
    """List available bands, pupils, presets and IFUs."""
    from .config import SCENARIO_PRESETS, IFU_DEFAULT_SIZES
    from .physics.photometry import BANDS
    from .pupils import list_pupils, get_geometry

    print("crowdfield configuration info")
    print("=" * 50)

    print("\nPhotometric bands:")
    for band in BANDS.values():
        print(f"  - {band.name}: {band.wavelength * 1e6:.3f}um, "
              f"zero-point {band.zeropoint:.3g} ph/s/m^2")

    print("\nPupils:")
    for kind in list_pupils():
        native = get_geometry(kind).native_diameter
        print(f"  - {kind}" + (f" ({native}m)" if native else ""))

    print("\nScenario presets:")
    for name in SCENARIO_PRESETS:
        print(f"  - {name}")

    print("\nIFUs:")
    for kind, size in IFU_DEFAULT_SIZES.items():
        print(f"  - {kind} (default {size}\")")


def _add_observation_arguments(parser):
    parser.add_argument('--config', '-c', help='Configuration file (YAML or JSON)')
    parser.add_argument('--preset', '-p', help='Scenario preset (see `info`)')
    parser.add_argument('--telescope', '-t', help='Pupil kind')
    parser.add_argument('--diameter', '-D', type=float, help='Telescope diameter (m)')
    parser.add_argument('--mode', '-m', choices=['diffraction', 'seeing', 'glao', 'ngao', 'ltao'])
    parser.add_argument('--r0', type=float, help='Fried parameter at 0.55um (m)')
    parser.add_argument('--zenith-angle', '-z', type=float, help='Zenith angle (deg)')
    parser.add_argument('--band', '-b', help='Photometric band')
    parser.add_argument('--strehl', type=float, help='NGAO/LTAO target Strehl ratio')
    parser.add_argument('--glao-fraction', type=float, help='GLAO FWHM reduction')
    parser.add_argument('--asterism-diameter', type=float, help='LTAO asterism diameter (arcsec)')
    parser.add_argument('--exposure', '-e', type=float, help='Exposure time (s)')
    parser.add_argument('--pixel-scale', type=float, help='Pixel scale (arcsec)')
    parser.add_argument('--nyquist-factor', type=float, help='Pixel scale in units of lambda/2D')
    parser.add_argument('--psf-size', type=int, help='PSF kernel size (pixels)')
    parser.add_argument('--gpu', action='store_true', help='Use the GPU backend')


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='crowdfield: star field image simulation through telescopes and AO',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Render command
    render_parser = subparsers.add_parser('render', help='Render a star field image')
    _add_observation_arguments(render_parser)
    render_parser.add_argument('--n-pix', type=int, help='Image size (pixels)')
    render_parser.add_argument('--n-stars', '-n', type=int, help='Number of random stars')
    render_parser.add_argument('--fov', type=float, help='Random field width (arcsec)')
    render_parser.add_argument('--catalog', help='Star catalog (x y magnitude)')
    render_parser.add_argument('--seed', type=int, help='Random seed')
    render_parser.add_argument('--background', type=float, help='Sky level (photons/pixel/s)')
    render_parser.add_argument('--no-noise', action='store_true', help='Skip photon noise')
    render_parser.add_argument('--workers', '-j', type=int, help='Worker threads')
    render_parser.add_argument('--placement', choices=['fourier', 'bilinear'])
    render_parser.add_argument('--ifu', choices=['hex', 'round', 'slit'], help='IFU aperture')
    render_parser.add_argument('--ifu-size', type=float, help='IFU size (arcsec)')
    render_parser.add_argument('--slit-length', type=float, help='Slit length (arcsec)')
    render_parser.add_argument('--output', '-o', help='Output directory')

    # PSF command
    psf_parser = subparsers.add_parser('psf', help='Synthesize one PSF')
    _add_observation_arguments(psf_parser)
    psf_parser.add_argument('--x', type=float, default=0.0, help='Field position x (arcsec)')
    psf_parser.add_argument('--y', type=float, default=0.0, help='Field position y (arcsec)')
    psf_parser.add_argument('--output', '-o', help='Output kernel file (.npy)')

    # Info command
    subparsers.add_parser('info', help='List bands, pupils, presets and IFUs')

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    # Dispatch
    commands = {
        'render': cmd_render,
        'psf': cmd_psf,
        'info': cmd_info,
    }

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if os.environ.get('CROWDFIELD_DEBUG'):
            raise
        sys.exit(1)


if __name__ == '__main__':
    main()
