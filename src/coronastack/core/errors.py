"""Exception and warning types raised by coronastack.

All errors are raised eagerly at the boundary of the operation that receives
the bad input. They subclass the closest builtin so callers can also catch
them as plain ``ValueError`` / ``IndexError``.
"""


class CoronastackError(Exception):
    """Base class for all coronastack errors."""


class InvalidGeometryError(CoronastackError, ValueError):
    """A radial band does not satisfy ``0 <= rmin < rmax``."""


class ShapeMismatchError(CoronastackError, ValueError):
    """Array shapes or lengths are incompatible (e.g. angles vs. frames)."""


DimensionMismatchError = ShapeMismatchError


class CountMismatchError(CoronastackError, ValueError):
    """The number of per-band matrices does not match the number of bands."""


class OutOfBoundsError(CoronastackError, IndexError):
    """An index falls outside the cube or the band list."""


class PAThresholdWarning(UserWarning):
    """The parallactic-angle threshold was clamped to 90% of the angular range."""
