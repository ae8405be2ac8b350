# dynasweep/errors.py
"""
Exception and warning types raised by selection, source resolution and dispatch.
"""


class DynaSweepError(Exception):
    """Base class for dynasweep errors."""


class OptionsError(DynaSweepError, ValueError):
    """Unrecognized option, invalid option value or unsupported request."""


class SelectionError(OptionsError):
    """Invalid data selection request (unknown or unsupported varied range)."""


class UnknownSourceError(DynaSweepError, ValueError):
    """Input source matches none of the recognized source shapes."""


class PostProcessingWarning(UserWarning):
    """A post-processing callable failed for one record."""


__all__ = [
    'DynaSweepError',
    'OptionsError',
    'SelectionError',
    'UnknownSourceError',
    'PostProcessingWarning',
]
