"""Exceptions raised by the rectification engine."""


class RectifyError(ValueError):
    """Base class for all rectification failures."""


class DegenerateGeometryError(RectifyError):
    """The corner correspondences do not determine a unique projective transform.

    Raised for collinear or coincident corners and for near-singular pivots
    during elimination. Retrying with the same corners fails identically.
    """


class InvalidInputError(RectifyError):
    """Malformed arguments, rejected before any computation starts."""
