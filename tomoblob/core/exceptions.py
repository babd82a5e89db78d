"""
Exception hierarchy for TomoBlob

Input errors are fatal for a run, blob fit errors only cost the blob
they occurred in.
"""


class TomoBlobError(Exception):
    """Base class for all TomoBlob errors."""


class ConfigurationError(TomoBlobError, ValueError):
    """Invalid or missing configuration option."""


class InputError(TomoBlobError):
    """Unreadable or malformed input file."""


class SeedFileError(InputError):
    """Seed list or seed marker file cannot be parsed."""

    def __init__(self, path, message, line_number=None):
        self.path = str(path)
        self.line_number = line_number
        location = self.path if line_number is None else f"{self.path}, line {line_number}"
        super().__init__(f"{message} ({location})")


class TomogramNotFoundError(InputError, KeyError):
    """Tomogram name is not part of the tomogram set."""

    def __init__(self, name, source=None):
        self.name = name
        self.source = source
        suffix = f" in {source}" if source else ""
        super().__init__(f"Tomogram '{name}' not found{suffix}")

    def __str__(self):
        return self.args[0]


class BlobFitError(TomoBlobError, RuntimeError):
    """A single blob could not be fitted."""


class DegenerateVolumeError(BlobFitError):
    """Correlation volume has zero (or non-finite) variance."""
