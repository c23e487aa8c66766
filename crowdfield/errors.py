"""
Exception taxonomy.

Construction-time validation failures derive from ``ValueError`` so that
callers catching the builtin keep working; internal-consistency faults
derive from ``RuntimeError``.
"""


class CrowdfieldError(Exception):
    """Base class for all crowdfield errors."""


class InvalidGeometry(CrowdfieldError, ValueError):
    """Pupil or IFU geometry is not physically meaningful."""


class UnknownPreset(CrowdfieldError, ValueError):
    """A named telescope, IFU or scenario preset does not exist."""


class InvalidParameter(CrowdfieldError, ValueError):
    """An atmosphere, AO, sampling or photometry parameter is out of range."""


class EmptyField(CrowdfieldError):
    """No stars are left to render.

    Callers may substitute ``FieldImage.blank`` instead of failing.
    """


class NegativeExpectation(CrowdfieldError, RuntimeError):
    """A noiseless image holds negative or non-finite expected counts."""


class GeometryOutOfBounds(CrowdfieldError, ValueError):
    """The IFU footprint extends beyond the rendered field."""


class RenderCancelled(CrowdfieldError, RuntimeError):
    """A render was cancelled through its cancel token; no image is returned."""
