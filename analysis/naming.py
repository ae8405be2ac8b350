# analysis/naming.py
"""
Sweep annotation of derived results and file names built from varied parameters.
"""

import functools
import numbers
import os
import numpy as np
from typing import Any, Callable, Dict, List, Optional

from dynasweep.vary import sanitize_field_name


def func_name(func: Callable) -> str:
    """Name of a post-processing callable (unwraps functools.partial)."""
    while isinstance(func, functools.partial):
        func = func.func
    return getattr(func, '__name__', type(func).__name__)


def format_varied_value(value: Any) -> str:
    """
    Encode a parameter value for use in a file name.

    Periods become 'p' and minus signs 'm', so 0.5 -> '0p5' and -2 -> 'm2';
    distinct numbers always give distinct strings.
    """
    if isinstance(value, (bool, np.bool_)):
        text = str(int(value))
    elif isinstance(value, numbers.Integral):
        text = str(int(value))
    elif isinstance(value, numbers.Real):
        value = float(value)
        text = str(int(value)) if value.is_integer() else repr(value)
    else:
        text = sanitize_field_name(str(value)).replace(' ', '')
    return text.replace('-', 'm').replace('.', 'p')


def name_from_varied(record: Dict[str, Any], prefix: Optional[str] = None,
                     filename: str = '') -> str:
    """
    Embed a run's sweep identity in a file name.

    Args:
        record: Record (or annotated result) with 'varied' and value entries
        prefix: String placed first in the name
        filename: Base name; its directory and extension are kept

    Returns:
        '<dir>/<prefix>_<stem>_<name1><value1>_<name2><value2><ext>'
    """
    directory, base = os.path.split(filename)
    stem, ext = os.path.splitext(base)

    parts = [p for p in (prefix, stem) if p]
    for name in record.get('varied', []):
        parts.append(f"{name}{format_varied_value(record[name])}")

    return os.path.join(directory, '_'.join(parts) + ext)


def filename_from_varied(filename: str, func: Callable, record: Dict[str, Any],
                         plot_fn: bool, options, function_options: Optional[Dict[str, Any]] = None) -> str:
    """
    File name for one callable's output on one run.

    The prefix is options.save_prefix when set; otherwise the callable's
    'plot_type' option for plot functions (default options.plot_type), or
    the callable's name for analysis functions.
    """
    if options.save_prefix:
        prefix = options.save_prefix
    elif plot_fn:
        prefix = (function_options or {}).get('plot_type', options.plot_type)
    else:
        prefix = func_name(func)

    return name_from_varied(record, prefix, filename)


def add_modifications(result: Any, data: List[Dict[str, Any]],
                      options: Optional[Dict[str, Any]] = None) -> Any:
    """
    Add sweep information from the source data to derived results.

    If the first source record carries ad-hoc modifications, every result
    gets one entry per modification (sanitized name), a 'varied' list of
    those names and the raw 'modifications'. Otherwise, if a single source
    record with a 'varied' list is given, its varied names and values are
    copied. Every result also gets an 'options' entry (None without options).

    Non-dict results are returned unchanged.
    """
    single = isinstance(result, dict)
    results = [result] if single else result
    if not isinstance(results, list) or not all(isinstance(r, dict) for r in results if r is not None):
        return result

    mods = data[0].get('simulator_options', {}).get('modifications') if data else None

    for res in results:
        if res is None:
            continue
        if mods:
            varied = []
            for target, parameter, value in mods:
                fld = sanitize_field_name(target, parameter)
                res[fld] = value
                varied.append(fld)
            res['varied'] = varied
            res['modifications'] = list(mods)
        elif len(data) == 1 and 'varied' in data[0]:
            res['varied'] = list(data[0]['varied'])
            for name in data[0]['varied']:
                res[name] = data[0][name]

        res['options'] = dict(options) if options else None

    return result
