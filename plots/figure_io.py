# plots/figure_io.py
"""
Writing figures produced by plot functions to disk.
"""

import os
import pickle
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from typing import Any

from dynasweep.options import SAVE_FORMATS


def is_figure(obj: Any) -> bool:
    return isinstance(obj, Figure)


def unwrap_figure(result: Any) -> Any:
    """Plot functions may return {'figure': fig, ...}; return the figure itself."""
    if isinstance(result, dict) and is_figure(result.get('figure')):
        return result['figure']
    return result


def save_figure(fig: Figure, path: str, fmt: str = 'svg') -> str:
    """
    Save a figure in one of SAVE_FORMATS.

    'fig' pickles the Figure object so it can be reopened for editing;
    the other formats are rendered with savefig.
    """
    if fmt not in SAVE_FORMATS:
        raise ValueError(f"Unknown figure format '{fmt}'. Use one of {SAVE_FORMATS}")

    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    if fmt == 'fig':
        with open(path, 'wb') as f:
            pickle.dump(fig, f)
    else:
        fig.savefig(path, format=fmt, bbox_inches='tight')
    return path


def close_figure(fig: Figure):
    plt.close(fig)
