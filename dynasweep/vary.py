# dynasweep/vary.py
"""
Parameter sweep grids and the field names used to record them.
"""

import itertools
import re
import numpy as np
from typing import Any, List, Sequence, Tuple

_SEPARATORS = re.compile(r'(->)|(<-)|(-)|(\.)')
_BRACKETS = re.compile(r'[\[\]\(\)\{\}]')


def sanitize_field_name(target: str, parameter: str = None) -> str:
    """
    Build a valid identifier for a modified model component.

    Arrows, hyphens and periods become underscores; brackets, braces and
    parentheses are removed, e.g. ('I->E', 'tauD') -> 'I_E_tauD'.
    """
    name = target if parameter is None else f"{target}_{parameter}"
    name = _SEPARATORS.sub('_', name)
    return _BRACKETS.sub('', name)


def vary_to_modifications(vary: Sequence[Tuple[str, str, Sequence[Any]]]) -> List[List[Tuple[str, str, Any]]]:
    """
    Expand a sweep specification into one modification list per run.

    Args:
        vary: Rows of (target, parameter, values), e.g.
              [('E', 'Iapp', [0, 10, 20]), ('I->E', 'tauD', [5, 10, 15])]

    Returns:
        Cartesian product of the rows; each element is a list of
        (target, parameter, value) triples. The last row varies fastest.
    """
    if not vary:
        return [[]]

    rows = []
    for row in vary:
        if len(row) != 3:
            raise ValueError(f"Sweep rows must be (target, parameter, values), got {row!r}")
        target, parameter, values = row
        values = np.atleast_1d(values).tolist() if not isinstance(values, (list, tuple)) else list(values)
        rows.append([(target, parameter, v) for v in values])

    return [list(combo) for combo in itertools.product(*rows)]


def modifications_to_varied(modifications: Sequence[Tuple[str, str, Any]]) -> Tuple[List[str], List[Any]]:
    """Field names and values recorded for a list of modifications."""
    names = [sanitize_field_name(target, parameter) for target, parameter, _ in modifications]
    values = [value for _, _, value in modifications]
    return names, values


def extract_linear(data: List[dict]):
    """
    Linearize a sweep into one column per (run, label).

    Columns loop over runs (outer), populations, then variables (inner).

    Returns:
        Tuple of (data_linear, axis_values, axis_names, time):
        - data_linear: list of 2-D tables, one per column
        - axis_values: one list per axis, each with len(data_linear) entries
        - axis_names: varied names followed by 'populations' and 'variables'
        - time: time vector of the first run
    """
    if isinstance(data, dict):
        data = [data]
    if not data:
        return [], [], [], np.array([])

    varied = list(data[0].get('varied', []))
    axis_names = varied + ['populations', 'variables']
    axis_values = [[] for _ in axis_names]
    data_linear = []

    for record in data:
        for label in record['labels']:
            population, _, variable = label.partition('_')
            data_linear.append(record[label])
            for i, name in enumerate(varied):
                axis_values[i].append(record[name])
            axis_values[-2].append(population)
            axis_values[-1].append(variable or label)

    return data_linear, axis_values, axis_names, data[0]['time']
