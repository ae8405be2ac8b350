# dynasweep/selection.py
"""
Select subsets of simulated data along time, cells (ROI) and varied parameters.
"""

import numbers
import numpy as np
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import SelectionError
from .records import check_data, copy_record
from .vary import sanitize_field_name


def _normalize_varied_request(varied: Any) -> List[Tuple[str, Any]]:
    """Turn the accepted request forms into rows of (field_name, values)."""
    if isinstance(varied, dict):
        rows = list(varied.items())
    elif isinstance(varied, (list, tuple)) and varied and isinstance(varied[0], str):
        rows = [tuple(varied)]
    elif isinstance(varied, (list, tuple)):
        rows = [tuple(row) for row in varied]
    else:
        raise SelectionError(f"Unsupported 'varied' specification: {varied!r}")

    normalized = []
    for row in rows:
        if len(row) == 2:
            normalized.append((row[0], row[1]))
        elif len(row) == 3:
            # (population, parameter, values) names the sanitized field
            normalized.append((sanitize_field_name(row[0], row[1]), row[2]))
        else:
            raise SelectionError(f"Invalid 'varied' row {row!r}: expected (name, values)")
    return normalized


def _param_matrix(data: List[dict], varied: List[str]) -> np.ndarray:
    """Runs x varied-parameters matrix; non-numeric parameters stay NaN."""
    param_mat = np.full((len(data), len(varied)), np.nan)
    for j, name in enumerate(varied):
        values = [record[name] for record in data]
        if all(isinstance(v, numbers.Number) and not isinstance(v, bool) for v in values):
            param_mat[:, j] = values
    return param_mat


def _select_varied(data: List[dict], varied: Any) -> List[dict]:
    requests = _normalize_varied_request(varied)
    if len(requests) > 1:
        raise SelectionError(
            "A range on only one varied parameter can be specified per call to select_data")

    desired_param, desired_range = requests[0]
    varied_names = list(data[0].get('varied', []))
    if desired_param not in varied_names:
        raise SelectionError(f"Varied parameter '{desired_param}' not found in data varied list {varied_names}")

    param_mat = _param_matrix(data, varied_names)
    column = param_mat[:, varied_names.index(desired_param)]
    if np.isnan(column).all():
        raise SelectionError(
            f"Varied parameter '{desired_param}' is not numeric; only numeric ranges can be selected")

    if isinstance(desired_range, (set, frozenset)):
        sel = np.isin(column, sorted(desired_range))
    else:
        desired_range = np.atleast_1d(np.asarray(desired_range, dtype=np.float64))
        if len(desired_range) == 2:
            sel = (column >= desired_range[0]) & (column <= desired_range[1])
        else:
            sel = np.isin(column, desired_range)

    return [data[i] for i in np.flatnonzero(sel)]


def _normalize_roi(roi: Any) -> List[Tuple[str, Sequence[float]]]:
    if isinstance(roi, dict):
        return list(roi.items())
    if isinstance(roi, (list, tuple)) and roi and isinstance(roi[0], str):
        return [tuple(roi)]
    if isinstance(roi, (list, tuple)):
        return [tuple(row) for row in roi]
    raise SelectionError(f"Unsupported 'roi' specification: {roi!r}")


def select_data(data: Union[dict, List[dict]],
                time_limits: Sequence[float] = (-np.inf, np.inf),
                varied: Optional[Any] = None,
                roi: Optional[Any] = None) -> List[dict]:
    """
    Select a subset of simulated data.

    Varied-parameter narrowing is applied to the whole sweep first, then time
    and ROI narrowing to every remaining run.

    Args:
        data: Record or list of records
        time_limits: (begin, end) in units of data['time'], inclusive
        varied: Range on one varied parameter, e.g. ('E_gNa', [.3, .5]) for
                values between .3 and .5, ('E', 'gNa', [.3, .5]) for the same
                field, or ('E_gNa', {0, 10}) for exact values. A list with
                any length other than 2 also selects exact values.
        roi: Cell ranges per label, e.g. {'E_v': [0, 3]} for columns 0-3

    Returns:
        New list of narrowed records

    Examples:
        data = select_data(data, time_limits=[20, 80])
        data = select_data(data, varied=('E_gNa', [.3, .5]))
        data = select_data(data, roi={'E_v': [0, 3]})
    """
    data = check_data(data)

    if varied is not None and data:
        data = _select_varied(data, varied)

    if len(time_limits) != 2:
        raise SelectionError(f"'time_limits' must be (begin, end), got {time_limits!r}")
    low, high = time_limits
    roi_rows = _normalize_roi(roi) if roi is not None else []

    selected = []
    for record in data:
        record = copy_record(record)

        time = record['time']
        seltime = (time >= low) & (time <= high)
        record['time'] = time[seltime]
        for label in record['labels']:
            record[label] = record[label][seltime, :]

        for label, borders in roi_rows:
            if label not in record:
                continue
            borders = np.atleast_1d(borders)
            table = record[label]
            inds = np.arange(table.shape[1])
            sel = (inds >= borders[0]) & (inds <= borders[-1])
            record[label] = table[:, sel]

        selected.append(record)

    return selected
