"""
Named telescope pupils.

Implements the preset apertures:
- HST: 2.4m monolith with a 0.6m central obscuration
- JWST: 18 hexagonal segments (1.32m flat-to-flat) in three rings
- GMT: seven 8.365m circular segments, the central one with a 3.6m hole

Presets are defined at their native size and scaled linearly when built
with another diameter.
"""

from __future__ import annotations

import math

from . import PupilKind, register_pupil
from .generic import annulus_inside, disk_inside, hexagon_inside


# =============================================================================
# HST
# =============================================================================

HST_DIAMETER = 2.4
HST_OBSCURATION = 0.6


@register_pupil(PupilKind.HST, native_diameter=HST_DIAMETER, native_obscuration=HST_OBSCURATION)
def hst(diameter: float, obscuration: float):
    """Annular HST pupil."""
    def inside(X, Y):
        return annulus_inside(X, Y, diameter / 2, obscuration / 2)
    return inside


# =============================================================================
# JWST
# =============================================================================

JWST_DIAMETER = 6.64
JWST_SEGMENT = 1.32  # flat-to-flat (meters)


def jwst_segment_centers(flat_to_flat: float = JWST_SEGMENT):
    """
    Centers of the 18 JWST segments.

    Ring 1: 6 segments at f2f, azimuth 30 + 60i deg
    Ring 2: 6 segments at sqrt(3) f2f, azimuth 60i deg
    Ring 3: 6 segments at 2 f2f, azimuth 30 + 60i deg
    """
    rings = [
        (flat_to_flat, 30.0),
        (3 * flat_to_flat / math.sqrt(3), 0.0),
        (2 * flat_to_flat, 30.0),
    ]
    centers = []
    for radius, offset in rings:
        for i in range(6):
            o = math.radians(offset + 60.0 * i)
            centers.append((radius * math.cos(o), radius * math.sin(o)))
    return centers


@register_pupil(PupilKind.JWST, native_diameter=JWST_DIAMETER)
def jwst(diameter: float, obscuration: float):
    """Segmented JWST pupil (the central segment position is empty)."""
    scale = diameter / JWST_DIAMETER
    flat_to_flat = JWST_SEGMENT * scale
    centers = jwst_segment_centers(flat_to_flat)

    def inside(X, Y):
        mask = hexagon_inside(X, Y, flat_to_flat, *centers[0])
        for cx, cy in centers[1:]:
            mask |= hexagon_inside(X, Y, flat_to_flat, cx, cy)
        if obscuration > 0:
            mask &= ~disk_inside(X, Y, obscuration / 2)
        return mask
    return inside


# =============================================================================
# GMT
# =============================================================================

GMT_DIAMETER = 25.5
GMT_SEGMENT = 8.365
GMT_CENTER_HOLE = 3.6


def gmt_segment_centers(diameter: float = GMT_DIAMETER, segment: float = GMT_SEGMENT):
    """
    Centers of the 7 GMT segments: one on axis and six around it.

    Outer segments sit at azimuth 60i deg, tangent to the circumscribed
    circle.
    """
    radius = 0.5 * (diameter - segment)
    centers = [(0.0, 0.0)]
    for i in range(6):
        o = math.radians(60.0 * i)
        centers.append((radius * math.cos(o), radius * math.sin(o)))
    return centers


@register_pupil(PupilKind.GMT, native_diameter=GMT_DIAMETER, native_obscuration=GMT_CENTER_HOLE)
def gmt(diameter: float, obscuration: float):
    """GMT pupil with the outer segments projected as disks."""
    scale = diameter / GMT_DIAMETER
    segment = GMT_SEGMENT * scale
    centers = gmt_segment_centers(diameter, segment)

    def inside(X, Y):
        mask = annulus_inside(X, Y, segment / 2, obscuration / 2)
        for cx, cy in centers[1:]:
            mask |= disk_inside(X, Y, segment / 2, cx, cy)
        return mask
    return inside
