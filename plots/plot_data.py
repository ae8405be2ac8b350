# plots/plot_data.py
"""
Plot functions for result records: waveforms, rastergrams and power spectra.

Each function returns one matplotlib figure per record so it can be passed to
analysis.dispatch.analyze and saved per simulation run.
"""

import matplotlib.pyplot as plt
from typing import Any, Dict, List, Optional, Sequence, Union

from analysis.call_kinds import plot_function
from analysis.common_utils import calc_firing_rate, calc_power, detect_spikes, select_labels

PLOT_FUNCTION_TYPES = ('waveform', 'rastergram', 'raster', 'power')


def _title(record: Dict[str, Any]) -> str:
    varied = record.get('varied', [])
    if not varied:
        return ''
    return ', '.join(f"{name}={record[name]}" for name in varied)


def _plot_waveform(ax, record, label, max_traces):
    table = record[label]
    n_traces = min(max_traces, table.shape[1])
    ax.plot(record['time'], table[:, :n_traces], linewidth=0.5)
    if table.shape[1] > 1:
        ax.plot(record['time'], table.mean(axis=1), color='k', linewidth=1.0, label='mean')
    ax.set_ylabel(label)


def _plot_raster(ax, record, label, threshold):
    spike_times, cell_ids = detect_spikes(record, label, threshold=threshold)
    ax.scatter(spike_times, cell_ids, s=1, c='k', marker='|')
    ax.set_ylim(-0.5, record[label].shape[1] - 0.5)
    ax.set_ylabel(f"{label} cell")


def _plot_power(ax, record, label, nperseg):
    spectrum = calc_power(record, variable=label, nperseg=nperseg)[label]
    ax.semilogy(spectrum['frequency'], spectrum['population_power'], linewidth=0.8)
    ax.set_ylabel(f"{label} power")


@plot_function
def plot_data(data: Union[Dict[str, Any], List[Dict[str, Any]]],
              plot_type: str = 'waveform',
              variable: Optional[Union[str, Sequence[str]]] = None,
              max_traces: int = 10, threshold: float = 0.0,
              nperseg: int = 256, figsize=(6.0, 2.0)):
    """
    Plot simulated data.

    Args:
        data: Record or list of records
        plot_type: 'waveform', 'rastergram' (alias 'raster') or 'power'
        variable: Label(s) to plot; default all labels
        max_traces: Number of individual cells drawn per waveform panel
        threshold: Spike detection threshold for rastergrams
        nperseg: Welch segment length for power spectra
        figsize: (width, height per panel) in inches

    Returns:
        One Figure for a single record, a list of Figures for a list
    """
    if plot_type not in PLOT_FUNCTION_TYPES:
        raise ValueError(f"Unknown plot_type '{plot_type}'. Use one of {PLOT_FUNCTION_TYPES}")

    if isinstance(data, list):
        return [plot_data(record, plot_type=plot_type, variable=variable,
                          max_traces=max_traces, threshold=threshold,
                          nperseg=nperseg, figsize=figsize) for record in data]

    labels = select_labels(data, variable)
    fig, axes = plt.subplots(len(labels), 1, squeeze=False,
                             figsize=(figsize[0], figsize[1] * max(1, len(labels))),
                             sharex=(plot_type != 'power'))
    axes = axes[:, 0]

    for ax, label in zip(axes, labels):
        if plot_type == 'waveform':
            _plot_waveform(ax, data, label, max_traces)
        elif plot_type in ('rastergram', 'raster'):
            _plot_raster(ax, data, label, threshold)
        else:
            _plot_power(ax, data, label, nperseg)

    axes[-1].set_xlabel('frequency (Hz)' if plot_type == 'power' else 'time (ms)')
    title = _title(data)
    if title:
        axes[0].set_title(title, fontsize=8)
    fig.tight_layout()
    return fig


@plot_function
def plot_firing_rates(data: Dict[str, Any], variable: Optional[Union[str, Sequence[str]]] = None,
                      threshold: float = 0.0, bin_size: float = 5.0, figsize=(6.0, 2.0)):
    """Population firing rate over time (Hz) for each label."""
    rates = calc_firing_rate(data, variable=variable, threshold=threshold, bin_size=bin_size)
    labels = [k for k in rates if isinstance(rates[k], dict)]
    fig, axes = plt.subplots(len(labels), 1, squeeze=False, sharex=True,
                             figsize=(figsize[0], figsize[1] * max(1, len(labels))))
    for ax, label in zip(axes[:, 0], labels):
        ax.plot(rates[label]['bin_centers'], rates[label]['population_rate'], linewidth=0.8)
        ax.set_ylabel(f"{label} (Hz)")
    axes[-1, 0].set_xlabel('time (ms)')
    fig.tight_layout()
    return fig
