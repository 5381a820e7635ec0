"""
Error types raised by the cliff detection core.

Every failure is scoped to one call: a rejected setter leaves the previous
configuration in place, a rejected frame leaves the detector ready for the
next one.
"""


class CliffDetectorError(Exception):
    """Base class for all cliff detector errors."""


class InvalidGeometry(CliffDetectorError):
    """Camera model unusable or field of view degenerate."""


class InvalidConfiguration(CliffDetectorError, ValueError):
    """Rejected parameter value. No change was applied."""


class MalformedFrame(CliffDetectorError, ValueError):
    """Depth buffer does not match the calibrated image or has an unknown encoding."""
