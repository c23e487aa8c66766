"""
Generic pupil shapes and the geometric primitives shared by presets.

Shapes are inside tests over physical coordinates; they are reused by the
IFU geometries, which apply them in arcseconds on the sky.
"""

from __future__ import annotations

import math

import numpy as np

from . import PupilKind, register_pupil


COS30 = math.cos(math.radians(30.0))
SIN30 = 0.5


# =============================================================================
# Primitives
# =============================================================================

def disk_inside(X, Y, radius: float, cx: float = 0.0, cy: float = 0.0):
    """Points within ``radius`` of (cx, cy)."""
    return np.hypot(X - cx, Y - cy) <= radius


def annulus_inside(X, Y, outer_radius: float, inner_radius: float):
    """Points between the inner and outer radius."""
    R = np.hypot(X, Y)
    return (R >= inner_radius) & (R <= outer_radius)


def hexagon_inside(X, Y, flat_to_flat: float, cx: float = 0.0, cy: float = 0.0):
    """
    Points inside a hexagon with flats parallel to the x axis.

    The point is projected on the y axis and on the two axes at +/-30 deg
    from the x axis; it is inside if every projection is within half the
    flat-to-flat width.
    """
    d = 0.5 * flat_to_flat
    dx = X - cx
    dy = Y - cy
    inside = np.abs(dy) <= d
    for sign in (-1.0, 1.0):
        projection = dx * COS30 + sign * dy * SIN30
        inside &= np.abs(projection) <= d
    return inside


# =============================================================================
# Registered Shapes
# =============================================================================

@register_pupil(PupilKind.CIRCULAR)
def circular(diameter: float, obscuration: float):
    """Filled (or centrally obscured) disk."""
    def inside(X, Y):
        return annulus_inside(X, Y, diameter / 2, obscuration / 2)
    return inside


@register_pupil(PupilKind.ANNULAR)
def annular(diameter: float, obscuration: float):
    """Disk with a central obscuration."""
    def inside(X, Y):
        return annulus_inside(X, Y, diameter / 2, obscuration / 2)
    return inside


@register_pupil(PupilKind.HEXAGON)
def hexagon(diameter: float, obscuration: float):
    """Single hexagon; ``diameter`` is the vertex-to-vertex width."""
    flat_to_flat = diameter * COS30

    def inside(X, Y):
        mask = hexagon_inside(X, Y, flat_to_flat)
        if obscuration > 0:
            mask &= ~disk_inside(X, Y, obscuration / 2)
        return mask
    return inside
