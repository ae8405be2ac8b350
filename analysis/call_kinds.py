# analysis/call_kinds.py
"""
Declared kinds of post-processing callables.
"""

import functools
from enum import Enum
from typing import Callable, Optional

from .naming import func_name


class CallKind(Enum):
    ANALYSIS = 'analysis'
    PLOT = 'plot'


def analysis_function(func: Callable) -> Callable:
    """Mark a callable as returning derived data."""
    func.call_kind = CallKind.ANALYSIS
    return func


def plot_function(func: Callable) -> Callable:
    """Mark a callable as returning a figure."""
    func.call_kind = CallKind.PLOT
    return func


def declared_kind(func: Callable) -> Optional[CallKind]:
    kind = getattr(func, 'call_kind', None)
    if kind is None and isinstance(func, functools.partial):
        return declared_kind(func.func)
    return kind


def infer_kind(func: Callable, explicit: Optional[bool] = None) -> CallKind:
    """
    Classify a callable as plot- or analysis-producing.

    Precedence: explicit flag from the caller, then the declared call_kind,
    then whether the callable's name contains 'plot' (any case).
    """
    if explicit is not None:
        return CallKind.PLOT if explicit else CallKind.ANALYSIS
    kind = declared_kind(func)
    if kind is not None:
        return kind
    return CallKind.PLOT if 'plot' in func_name(func).lower() else CallKind.ANALYSIS
