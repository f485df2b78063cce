"""Exception types raised by the bottom-camera fusion pipeline.

Every error is fatal to the single-frame call that raised it. Nothing is
retried internally and no partial image is ever returned.
"""


class PoleFuseError(Exception):
    """Base class for all fusion errors."""


class ConfigurationError(PoleFuseError):
    """Rig metadata or configuration cannot resolve the bottom camera pair."""


class MissingResourceError(PoleFuseError):
    """An input image or pole mask is missing, unreadable, or empty."""


class AlignmentError(PoleFuseError):
    """Images handed to motion estimation do not share dimensions."""


class SerializationError(PoleFuseError):
    """A cached motion field or working image is malformed."""


__all__ = [
    "PoleFuseError",
    "ConfigurationError",
    "MissingResourceError",
    "AlignmentError",
    "SerializationError",
]
