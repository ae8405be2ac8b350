# analysis/common_utils.py
"""
Analysis functions applied to one result record at a time.

Every calc_* function takes a record as its first argument plus keyword
options and returns a dict, so it can be dispatched over sweeps with
analysis.dispatch.analyze. Time is in ms, rates and frequencies in Hz.
"""

import numpy as np
from scipy import signal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .call_kinds import analysis_function


def select_labels(record: Dict[str, Any],
                  variable: Optional[Union[str, Sequence[str]]] = None) -> List[str]:
    """
    Labels of a record matching a variable selection.

    A string matches a label exactly or as its suffix ('v' matches 'E_v');
    None selects all labels.
    """
    labels = list(record['labels'])
    if variable is None:
        return labels

    variables = [variable] if isinstance(variable, str) else list(variable)
    selected = [label for label in labels
                if any(label == v or label.endswith('_' + v) for v in variables)]
    if not selected:
        raise ValueError(f"No labels match {variables}. Available labels: {labels}")
    return selected


def sampling_interval(record: Dict[str, Any]) -> float:
    time = record['time']
    if len(time) < 2:
        return np.nan
    return float(np.median(np.diff(time)))


def detect_spikes(record: Dict[str, Any], label: str,
                  threshold: float = 0.0) -> Tuple[np.ndarray, np.ndarray]:
    """
    Upward threshold crossings in one label table.

    Works for voltages (threshold in mV) and for 0/1 spike indicator tables
    (threshold 0). A sample above threshold at the first time point counts
    as a spike.

    Returns:
        Tuple of (spike_times, cell_indices)
    """
    table = record[label]
    previous = np.vstack([np.full((1, table.shape[1]), -np.inf), table[:-1, :]])
    crossings = (previous <= threshold) & (table > threshold)
    rows, cells = np.nonzero(crossings)
    return record['time'][rows], cells


@analysis_function
def calc_firing_rate(data: Dict[str, Any], variable: Optional[Union[str, Sequence[str]]] = None,
                     threshold: float = 0.0, bin_size: float = 5.0) -> Dict[str, Any]:
    """
    Firing rates from threshold crossings.

    Args:
        data: Result record
        variable: Label(s) to analyze (default all)
        threshold: Spike detection threshold
        bin_size: Bin width (ms) for the population rate time course

    Returns:
        Dict keyed by label with 'cell_rates', 'mean_rate', 'bin_centers'
        and 'population_rate'
    """
    time = data['time']
    dt = sampling_interval(data)
    duration = (time[-1] - time[0] + dt) if len(time) > 1 else 0.0
    if duration > 0:
        edges = np.arange(time[0], time[-1] + bin_size, bin_size)
    else:
        edges = np.array([0.0, bin_size])

    result = {}
    for label in select_labels(data, variable):
        spike_times, cells = detect_spikes(data, label, threshold)
        n_cells = data[label].shape[1]

        if duration > 0:
            cell_rates = np.bincount(cells, minlength=n_cells) / (duration / 1000.0)
        else:
            cell_rates = np.zeros(n_cells)
        counts, _ = np.histogram(spike_times, bins=edges)
        population_rate = counts / max(n_cells, 1) / (bin_size / 1000.0)

        result[label] = {
            'cell_rates': cell_rates,
            'mean_rate': float(np.mean(cell_rates)) if n_cells else 0.0,
            'bin_centers': edges[:-1] + bin_size / 2,
            'population_rate': population_rate,
        }
    return result


@analysis_function
def calc_power(data: Dict[str, Any], variable: Optional[Union[str, Sequence[str]]] = None,
               nperseg: int = 256) -> Dict[str, Any]:
    """
    Welch power spectrum of the population mean of each label.

    Returns:
        Dict keyed by label with 'frequency', 'population_power' and
        'peak_frequency' (excluding the DC bin)
    """
    dt = sampling_interval(data)
    fs = 1000.0 / dt if dt and np.isfinite(dt) else 1.0

    result = {}
    for label in select_labels(data, variable):
        trace = data[label].mean(axis=1)
        if len(trace) < 2:
            result[label] = {'frequency': np.array([]), 'population_power': np.array([]),
                             'peak_frequency': np.nan}
            continue

        freqs, power = signal.welch(trace - trace.mean(), fs=fs,
                                    nperseg=min(nperseg, len(trace)))
        peak = float(freqs[1:][np.argmax(power[1:])]) if len(freqs) > 1 else np.nan
        result[label] = {
            'frequency': freqs,
            'population_power': power,
            'peak_frequency': peak,
        }
    return result


@analysis_function
def calc_participation_ratio(data: Dict[str, Any],
                             variable: Optional[Union[str, Sequence[str]]] = None,
                             variance_threshold: float = 0.95) -> Dict[str, Any]:
    """Dimensionality of each label's (time x cells) activity."""
    return {label: compute_dimensionality_svd(data[label], variance_threshold)
            for label in select_labels(data, variable)}


def compute_participation_ratio(eigenvalues: np.ndarray) -> float:
    """
    Compute participation ratio from eigenvalues.

    Formula: PR = (sum(λ))² / sum(λ²)
    """
    if len(eigenvalues) == 0 or np.sum(eigenvalues) == 0:
        return 0.0

    return float((np.sum(eigenvalues) ** 2) / np.sum(eigenvalues ** 2))


def compute_dimensionality_svd(data: np.ndarray, variance_threshold: float = 0.95) -> Dict[str, float]:
    """
    Compute dimensionality metrics using SVD.

    Args:
        data: (n_samples, n_features) array, e.g. (n_timepoints, n_cells)
        variance_threshold: Threshold for cumulative variance

    Returns:
        Dict with participation_ratio, effective_dimensionality,
        intrinsic_dimensionality, total_variance and n_components
    """
    empty = {
        'participation_ratio': 0.0,
        'effective_dimensionality': 0.0,
        'intrinsic_dimensionality': 0.0,
        'total_variance': 0.0,
        'n_components': 0
    }
    if data.shape[0] <= 1:
        return empty

    data_centered = data - data.mean(axis=0)
    try:
        S = np.linalg.svd(data_centered, compute_uv=False)
    except np.linalg.LinAlgError:
        return empty

    # Remove near-zero eigenvalues
    eigenvalues = S ** 2
    eigenvalues = eigenvalues[eigenvalues > 1e-10]
    if len(eigenvalues) == 0:
        return empty

    total_variance = np.sum(eigenvalues)
    normalized_eigenvalues = eigenvalues / total_variance
    effective_dimensionality = np.exp(-np.sum(
        normalized_eigenvalues * np.log(normalized_eigenvalues + 1e-12)
    ))

    sorted_eigenvalues = np.sort(eigenvalues)[::-1]
    cumulative_variance = np.cumsum(sorted_eigenvalues) / total_variance
    intrinsic_dimensionality = min(np.searchsorted(cumulative_variance, variance_threshold) + 1,
                                   len(eigenvalues))

    return {
        'participation_ratio': compute_participation_ratio(eigenvalues),
        'effective_dimensionality': float(effective_dimensionality),
        'intrinsic_dimensionality': float(intrinsic_dimensionality),
        'total_variance': float(total_variance),
        'n_components': len(eigenvalues)
    }
