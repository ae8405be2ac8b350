# dynasweep/records.py
"""
Result record helpers.

A result record is a dict holding one simulation run:

    {
        'time': array of shape (n_samples,),
        'labels': ['E_v', 'I_v', ...],
        'E_v': array of shape (n_samples, n_cells),
        'varied': ['E_Iapp', 'I_E_tauD'],       # sweeps only
        'E_Iapp': 10, 'I_E_tauD': 5,           # one entry per varied name
        'simulator_options': {'modifications': [...], 'sim_id': 1},
    }

A sweep is a list of such records sharing labels and varied names.
"""

import copy
import numpy as np
from typing import Any, Dict, List, Union

from .errors import OptionsError

Record = Dict[str, Any]


def is_record(obj: Any) -> bool:
    """True for a record dict or a non-empty list of record dicts."""
    if isinstance(obj, dict):
        return 'time' in obj
    if isinstance(obj, (list, tuple)) and len(obj) > 0:
        return all(isinstance(d, dict) and 'time' in d for d in obj)
    return False


def check_data(data: Union[Record, List[Record]]) -> List[Record]:
    """
    Standardize record(s) into a list of records.

    Label tables become 2-D float64 arrays with one row per time sample,
    missing ``labels`` are inferred from array-valued entries, and
    ``simulator_options`` gets an (empty) modification list.

    Args:
        data: Single record or list of records

    Returns:
        New list of new record dicts (input is not modified)
    """
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, (list, tuple)):
        raise OptionsError(f"Expected a record or list of records, got {type(data).__name__}")

    checked = []
    for record in data:
        if not isinstance(record, dict) or 'time' not in record:
            raise OptionsError("Every record must be a dict with a 'time' entry")

        record = dict(record)
        time = np.asarray(record['time'], dtype=np.float64).ravel()
        record['time'] = time

        if 'labels' not in record:
            record['labels'] = [k for k, v in record.items()
                                if k != 'time' and isinstance(v, np.ndarray)
                                and v.ndim >= 1 and v.shape[0] == len(time)]
        record['labels'] = list(record['labels'])

        for label in record['labels']:
            if label not in record:
                raise OptionsError(f"Label '{label}' has no data in record")
            table = np.asarray(record[label], dtype=np.float64)
            if table.ndim == 1:
                table = table[:, np.newaxis]
            if table.shape[0] != len(time):
                raise OptionsError(
                    f"Label '{label}' has {table.shape[0]} rows but time has {len(time)} samples")
            record[label] = table

        if 'varied' in record:
            record['varied'] = list(record['varied'])
            for name in record['varied']:
                if name not in record:
                    raise OptionsError(f"Varied parameter '{name}' has no value in record")

        sim_options = dict(record.get('simulator_options') or {})
        sim_options['modifications'] = [tuple(m) for m in (sim_options.get('modifications') or [])]
        record['simulator_options'] = sim_options

        checked.append(record)

    return checked


def copy_record(record: Record) -> Record:
    """Copy a record; label tables and time are copied, other entries deep-copied."""
    out = {}
    for key, value in record.items():
        if isinstance(value, np.ndarray):
            out[key] = value.copy()
        else:
            out[key] = copy.deepcopy(value)
    return out


def get_sim_id(record: Record, default: Any = None) -> Any:
    return record.get('simulator_options', {}).get('sim_id', default)


def varied_values(record: Record) -> Dict[str, Any]:
    """Mapping of varied name to this run's value (empty outside sweeps)."""
    return {name: record[name] for name in record.get('varied', [])}
