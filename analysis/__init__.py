# analysis/__init__.py
"""
Post-processing of simulation sweeps: analysis functions and the dispatcher
that applies analysis and plot functions over records and studies.
"""

from .call_kinds import CallKind, analysis_function, plot_function, infer_kind

# Analysis functions (one record in, one dict out)
from .common_utils import (
    select_labels,
    detect_spikes,
    calc_firing_rate,
    calc_power,
    calc_participation_ratio,
    compute_participation_ratio,
    compute_dimensionality_svd
)

# Sweep annotation and file naming
from .naming import (
    add_modifications,
    name_from_varied,
    filename_from_varied
)

# Dispatcher
from .dispatch import analyze, parse_src, eval_fn_with_args, resolve_func

__all__ = [
    'CallKind',
    'analysis_function',
    'plot_function',
    'infer_kind',

    # Analysis functions
    'select_labels',
    'detect_spikes',
    'calc_firing_rate',
    'calc_power',
    'calc_participation_ratio',
    'compute_participation_ratio',
    'compute_dimensionality_svd',

    # Naming
    'add_modifications',
    'name_from_varied',
    'filename_from_varied',

    # Dispatcher
    'analyze',
    'parse_src',
    'eval_fn_with_args',
    'resolve_func'
]
