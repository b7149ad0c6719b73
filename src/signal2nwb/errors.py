"""
Exception classes for the Signal to NWB conversion.

All conversion failures derive from ConversionError, so the console
script can report them uniformly and exit with a non-zero status.
"""


class ConversionError(Exception):
    """Base class for conversion errors."""

    pass


class UnrecognizedSweepLabelError(ConversionError, ValueError):
    """A sweep label starts with a character that maps to no run category."""

    pass


class UnrecognizedSweepStateError(ConversionError, ValueError):
    """A sweep state code has no stimulus type or description."""

    pass


class PartitionError(ConversionError, ValueError):
    """A grouping layer does not partition the layer below it."""

    pass


class ConfigurationError(ConversionError, ValueError):
    """The dataset configuration file is missing or malformed."""

    pass


class RecordingReadError(ConversionError, IOError):
    """The recording or the slice image could not be read."""

    pass


class ExportError(ConversionError, IOError):
    """The NWB file could not be written."""

    pass
