from __future__ import annotations


class ChipIslandsError(Exception):
    """Base class for errors raised by chipislands."""


class InvalidParameterError(ChipIslandsError, ValueError):
    """Raised when a caller-supplied parameter is out of range."""


class EmptyInputError(ChipIslandsError):
    """Raised (strict mode only) when a run has no reads to work with.

    By default an empty read set is not an error: it yields an empty peak list
    and a logged warning.
    """


class FragmentLengthEstimationError(ChipIslandsError):
    """Raised when the fragment length cannot be estimated from the reads."""
