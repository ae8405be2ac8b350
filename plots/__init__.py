# plots/__init__.py
"""
Plot functions for result records and figure saving helpers.
"""

from .figure_io import is_figure, save_figure, close_figure
from .plot_data import plot_data, plot_firing_rates

__all__ = [
    'is_figure',
    'save_figure',
    'close_figure',
    'plot_data',
    'plot_firing_rates'
]
