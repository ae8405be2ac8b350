# analysis/dispatch.py
"""
Apply analysis and plot functions to simulated data, optionally saving the output.

Sources can be a record, a list of records (a sweep), a data file, a
studyinfo file, a studyinfo dict or a study directory. Studies are processed
one simulation run at a time unless load_all_data_flag is set, so memory use
stays at one run regardless of the sweep size.

Usage:
    result = analyze(data, calc_firing_rate, variable='v')
    result = analyze(study_dir, plot_data, save_results_flag=1, format='png')
    result = analyze(study_dir, plot_functions=[plot_data], plot_options=[{'plot_type': 'power'}],
                     analysis_functions=[calc_power], analysis_options=[{}])

Keyword arguments that are not dispatcher options (see AnalyzeOptions) are
passed on to the post-processing functions unless function_options is given.
"""

import importlib
import inspect
import os
import time
import warnings
from itertools import repeat
from typing import Any, Callable, Dict, List, Optional, Tuple

import psutil

from dynasweep.errors import OptionsError, PostProcessingWarning, UnknownSourceError
from dynasweep.options import AnalyzeOptions
from dynasweep.records import check_data, get_sim_id, is_record
from dynasweep.study import check_studyinfo, export_data, import_data, is_studyinfo_path, load_data_file
from plots.figure_io import close_figure, is_figure, save_figure, unwrap_figure

from .call_kinds import CallKind, infer_kind
from .naming import add_modifications, filename_from_varied, func_name

PLOT_DIR = 'postSimPlots'
RESULTS_DIR = 'postSimResults'
RESULT_EXTENSION = '.pkl'


def _vprint(options: AnalyzeOptions, message: str):
    if options.verbose_flag:
        print(message)


def _memory_mb() -> float:
    return psutil.Process().memory_info().rss / 1e6


# ============================================================================
# Source and function parsing
# ============================================================================

def parse_src(src: Any, options: AnalyzeOptions) -> Tuple[List[dict], Optional[Dict[str, Any]]]:
    """
    Normalize a data source.

    Returns:
        Tuple of (data, studyinfo). data is empty when a study is processed
        lazily; studyinfo is None for in-memory data and plain data files.
    """
    if is_record(src):
        return check_data(src), None

    if isinstance(src, dict) and 'simulations' in src:
        if options.load_all_data_flag:
            return import_data(src, sim_ids=options.sim_ids)
        return [], check_studyinfo(src)

    if isinstance(src, (str, os.PathLike)):
        path = os.fspath(src)
        if not os.path.exists(path):
            raise UnknownSourceError(f"Unknown source for first argument: {path} does not exist")

        if os.path.isfile(path) and not is_studyinfo_path(path):
            # a single data file has no studyinfo to load lazily
            data, studyinfo = import_data(path)
        elif options.load_all_data_flag:
            data, studyinfo = import_data(path, sim_ids=options.sim_ids)
        else:
            data, studyinfo = [], check_studyinfo(path)

        if studyinfo is not None:
            if os.path.isfile(path) and is_studyinfo_path(path):
                studyinfo['study_dir'] = os.path.dirname(os.path.abspath(path))
            elif os.path.isdir(path):
                studyinfo['study_dir'] = path
        return data, studyinfo

    raise UnknownSourceError(f"Unknown source for first argument of type {type(src).__name__}")


def _builtin_functions() -> Dict[str, Callable]:
    from analysis.common_utils import calc_firing_rate, calc_power, calc_participation_ratio
    from plots.plot_data import plot_data, plot_firing_rates

    return {
        'calc_firing_rate': calc_firing_rate,
        'calc_power': calc_power,
        'calc_participation_ratio': calc_participation_ratio,
        'plot_data': plot_data,
        'plot_firing_rates': plot_firing_rates,
    }


def resolve_func(func: Any) -> Callable:
    """Callable, built-in function name, or dotted 'module.function' path."""
    if callable(func):
        return func

    if isinstance(func, str):
        builtins = _builtin_functions()
        if func in builtins:
            return builtins[func]

        module_name, _, attr = func.replace(':', '.').rpartition('.')
        if module_name:
            try:
                obj = getattr(importlib.import_module(module_name), attr)
            except (ImportError, AttributeError):
                obj = None
            if callable(obj):
                return obj

    raise OptionsError(f"Post-processing function must be supplied as a callable or "
                       f"function name string, got {func!r}")


def _collect_functions(funcs: Any, options: AnalyzeOptions):
    """
    Functions to run, their per-function options and explicit plot flags.

    Returns:
        Tuple of (functions, function_options or None, plot_flags or None)
    """
    if funcs is None or (isinstance(funcs, (list, tuple)) and len(funcs) == 0):
        if not options.plot_functions and not options.analysis_functions:
            raise OptionsError("No post-processing function given: pass funcs or "
                               "plot_functions/analysis_functions")
        funcs = list(options.plot_functions) + list(options.analysis_functions)
        plot_flags = [True] * len(options.plot_functions) + [False] * len(options.analysis_functions)

        function_options = None
        if options.plot_options or options.analysis_options:
            plot_options = list(options.plot_options) or [{}] * len(options.plot_functions)
            analysis_options = list(options.analysis_options) or [{}] * len(options.analysis_functions)
            if (len(plot_options) != len(options.plot_functions)
                    or len(analysis_options) != len(options.analysis_functions)):
                raise OptionsError("plot_options/analysis_options must have one entry per function")
            function_options = plot_options + analysis_options
    else:
        if not isinstance(funcs, (list, tuple)):
            funcs = [funcs]
        plot_flags = None
        function_options = list(options.function_options) or None

    funcs = [resolve_func(f) for f in funcs]

    if function_options is not None:
        if len(function_options) != len(funcs):
            raise OptionsError(f"function_options has {len(function_options)} entries "
                               f"for {len(funcs)} function(s)")
        for fn_opts in function_options:
            if not isinstance(fn_opts, dict):
                raise OptionsError("Each function_options entry must be a dict of keyword arguments")

    return funcs, function_options, plot_flags


# ============================================================================
# Evaluation
# ============================================================================

def _call_func(func: Callable, record: dict, kwargs: Dict[str, Any]):
    """Run one function on one record; failures are returned, not raised."""
    try:
        return func(record, **kwargs), None
    except Exception as err:
        return None, f"{type(err).__name__}: {err}"


def eval_fn_with_args(func: Callable, data: List[dict], kwargs: Dict[str, Any],
                      options: AnalyzeOptions, executor=None) -> List[Any]:
    """
    Evaluate a function on every record.

    A failing record yields None and a PostProcessingWarning; the other
    records are still processed. With parfor_flag and an executor that is
    already running (e.g. ProcessPoolExecutor or mpi4py's MPIPoolExecutor),
    records are mapped through it; output order always follows data order.
    """
    if options.parfor_flag and executor is not None and len(data) > 1:
        outcomes = list(executor.map(_call_func, repeat(func), data, repeat(kwargs)))
    else:
        if options.parfor_flag and executor is None:
            _vprint(options, '    parfor_flag set but no executor is running; evaluating sequentially')
        outcomes = [_call_func(func, record, kwargs) for record in data]

    results = []
    for index, (result, error) in enumerate(outcomes):
        if error is not None:
            warnings.warn(f"{func_name(func)} failed on data set {index + 1}: {error}",
                          PostProcessingWarning, stacklevel=3)
        results.append(unwrap_figure(result))
    return results


def _accepts_keyword(func: Callable, name: str) -> bool:
    """True when func declares a parameter called name."""
    try:
        parameter = inspect.signature(func).parameters.get(name)
    except (TypeError, ValueError):
        return False
    return parameter is not None and parameter.kind in (
        inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)


def _is_plot_output(kind: CallKind, results: List[Any]) -> bool:
    if kind is CallKind.PLOT:
        return True
    produced = [r for r in results if r is not None]
    return bool(produced) and all(is_figure(r) for r in produced)


# ============================================================================
# Persistence
# ============================================================================

def _write_allowed(path: str, options: AnalyzeOptions) -> bool:
    if os.path.exists(path) and not options.overwrite_flag:
        print(f"Skipping existing file (set overwrite_flag=1 to replace): {path}")
        return False
    return True


def _study_file(studyinfo: Dict[str, Any], subdir: str, base: str, extension: str,
                func: Callable, record: Optional[dict], plot_fn: bool,
                options: AnalyzeOptions, fn_kwargs: Dict[str, Any]) -> str:
    if options.varied_filename_flag and record is not None and 'varied' in record:
        base = filename_from_varied(base, func, record, plot_fn, options, fn_kwargs)

    directory = os.path.join(studyinfo['study_dir'], subdir)
    os.makedirs(directory, exist_ok=True)
    return os.path.join(directory, base + extension)


def _save_plot(fig, path: str, options: AnalyzeOptions, close: bool):
    if not is_figure(fig):
        warnings.warn(f"Not saving {path}: expected a figure, got {type(fig).__name__}",
                      PostProcessingWarning, stacklevel=3)
        return
    if _write_allowed(path, options):
        _vprint(options, f"    Saving plot: {path}")
        save_figure(fig, path, options.format)
    if close:
        close_figure(fig)


def _plot_path(f_ind: int, func: Callable, index: int, sim_id: Any, record: Optional[dict],
               studyinfo, post_sim: bool, result_file: str,
               options: AnalyzeOptions, fn_kwargs: Dict[str, Any]) -> str:
    extension = '.' + options.format
    if not post_sim:
        return result_file + extension

    if studyinfo is not None:
        name = func_name(func)
        prefix = options.save_prefix or name
        base = f"{prefix}_sim{sim_id}_plot{f_ind}_{name}"
        return _study_file(studyinfo, PLOT_DIR, base, extension, func, record, True,
                           options, fn_kwargs)

    directory = os.path.join(os.path.dirname(result_file), PLOT_DIR)
    os.makedirs(directory or '.', exist_ok=True)
    return os.path.join(directory, f"{os.path.basename(result_file)}_page{index + 1}{extension}")


def _analysis_path(f_ind: int, func: Callable, sim_id: Any, record: Optional[dict],
                   studyinfo, options: AnalyzeOptions, fn_kwargs: Dict[str, Any]) -> str:
    name = func_name(func)
    prefix = options.save_prefix or name
    base = f"{prefix}_sim{sim_id}_analysis{f_ind}_{name}"
    return _study_file(studyinfo, RESULTS_DIR, base, RESULT_EXTENSION, func, record, False,
                       options, fn_kwargs)


def _annotate(results: List[Any], data: List[dict], fn_kwargs: Dict[str, Any]):
    """Attach each run's sweep identity to its own result."""
    if len(results) == len(data):
        for result, record in zip(results, data):
            add_modifications(result, [record], fn_kwargs)
    elif data:
        add_modifications(results, data, fn_kwargs)


# ============================================================================
# Main entry point
# ============================================================================

def _run_eager(func, f_ind, kind, fn_kwargs, data, studyinfo, post_sim, result_file,
               options, executor):
    results = eval_fn_with_args(func, data, fn_kwargs, options, executor)
    plot_fn = _is_plot_output(kind, results)

    def sim_id_of(index):
        default = studyinfo['simulations'][index]['sim_id'] if studyinfo is not None \
            and index < len(studyinfo['simulations']) else index + 1
        return get_sim_id(data[index], default) if index < len(data) else default

    if plot_fn:
        if options.save_results_flag:
            for index, fig in enumerate(results):
                if fig is None:
                    _vprint(options, f"Skipping data set {index + 1} since no result.")
                    continue
                record = data[index] if index < len(data) else None
                path = _plot_path(f_ind, func, index, sim_id_of(index), record, studyinfo,
                                  post_sim, result_file, options, fn_kwargs)
                _save_plot(fig, path, options, close=len(results) > 1)
        return results

    _annotate(results, data, fn_kwargs)

    if options.save_results_flag:
        if studyinfo is not None:
            for index, result in enumerate(results):
                if result is None:
                    _vprint(options, f"Skipping data set {index + 1} since no result.")
                    continue
                record = data[index] if index < len(data) else None
                path = _analysis_path(f_ind, func, sim_id_of(index), record, studyinfo,
                                      options, fn_kwargs)
                if _write_allowed(path, options):
                    export_data(result, path, verbose=options.verbose_flag)
        else:
            path = result_file if result_file.endswith(RESULT_EXTENSION) else result_file + RESULT_EXTENSION
            if _write_allowed(path, options):
                export_data(results[0] if len(results) == 1 else results, path,
                            verbose=options.verbose_flag)

    return results


def _record_identity(record: dict) -> dict:
    """The parts of a record needed to annotate and name its results."""
    identity = {'simulator_options': record.get('simulator_options', {})}
    if 'varied' in record:
        identity['varied'] = list(record['varied'])
        for name in record['varied']:
            identity[name] = record[name]
    return identity


def _lazy_call(func: Callable, sim: Dict[str, Any], kwargs: Dict[str, Any]):
    """Load one run and evaluate a function on it (runs in workers too)."""
    if not os.path.isfile(sim['data_file']):
        return None, None, None
    record = load_data_file(sim['data_file'])[0]
    record['simulator_options'].setdefault('sim_id', sim['sim_id'])
    result, error = _call_func(func, record, kwargs)
    return unwrap_figure(result), error, _record_identity(record)


def _run_lazy(func, f_ind, kind, fn_kwargs, studyinfo, options, executor=None):
    """Load, evaluate and save one simulation run at a time."""
    sims = [sim for sim in studyinfo['simulations']
            if options.sim_ids is None or sim['sim_id'] in options.sim_ids]

    if options.parfor_flag and executor is not None and len(sims) > 1:
        outcomes = executor.map(_lazy_call, repeat(func), sims, repeat(fn_kwargs))
    else:
        outcomes = (_lazy_call(func, sim, fn_kwargs) for sim in sims)

    results = []
    for sim, (result, error, record) in zip(sims, outcomes):
        sim_id = sim['sim_id']
        if record is None:
            _vprint(options, f"Skipping simID={sim_id} since no data.")
            continue
        if error is not None:
            warnings.warn(f"{func_name(func)} failed on simID={sim_id}: {error}",
                          PostProcessingWarning, stacklevel=3)

        if _is_plot_output(kind, [result]):
            if options.save_results_flag and result is not None:
                path = _plot_path(f_ind, func, len(results), sim_id, record, studyinfo, True,
                                  options.result_file, options, fn_kwargs)
                _save_plot(result, path, options, close=True)
        else:
            add_modifications(result, [record], fn_kwargs)
            if options.save_results_flag and result is not None:
                path = _analysis_path(f_ind, func, sim_id, record, studyinfo, options, fn_kwargs)
                if _write_allowed(path, options):
                    export_data(result, path, verbose=options.verbose_flag)

        results.append(result)
        _vprint(options, f"    simID={sim_id} done (memory: {_memory_mb():.0f} MB)")

    return results


def analyze(src: Any, funcs: Any = None, executor=None, **kwargs):
    """
    Apply analysis and/or plot functions to simulated data.

    Args:
        src: Record, list of records, data file, studyinfo (dict or file)
             or study directory
        funcs: Function, function name or list of them. Functions are
               classified as plot functions by their declared call_kind, or
               else by 'plot' (any case) in their name. When omitted,
               plot_functions and analysis_functions are used.
        executor: Running concurrent.futures executor used when parfor_flag
                  is set; analyze never starts one itself
        **kwargs: AnalyzeOptions fields; remaining keyword arguments are
                  passed to the functions unless function_options is given

    Returns:
        List with one result per simulation run (None where a function
        failed) for a single function; a list of such lists otherwise
    """
    options, extra = AnalyzeOptions.from_kwargs(kwargs)
    func_list, function_options, plot_flags = _collect_functions(funcs, options)

    data, studyinfo = parse_src(src, options)
    if studyinfo is not None and not os.path.isdir(studyinfo.get('study_dir') or ''):
        studyinfo['study_dir'] = os.getcwd()

    post_sim = studyinfo is not None or len(data) > 1
    lazy = studyinfo is not None and not options.load_all_data_flag

    all_results = []
    for f_ind, func in enumerate(func_list, start=1):
        fn_kwargs = dict(function_options[f_ind - 1]) if function_options is not None else dict(extra)
        kind = infer_kind(func, plot_flags[f_ind - 1] if plot_flags is not None else None)
        if (kind is CallKind.PLOT and 'plot_type' not in fn_kwargs
                and _accepts_keyword(func, 'plot_type')):
            fn_kwargs['plot_type'] = options.plot_type

        result_file = options.result_file
        if options.varied_filename_flag and data and 'varied' in data[0]:
            result_file = filename_from_varied(result_file, func, data[0], kind is CallKind.PLOT,
                                               options, fn_kwargs)

        _vprint(options, f"  Executing post-processing function: {func_name(func)}")
        tstart = time.time()

        if lazy:
            results = _run_lazy(func, f_ind, kind, fn_kwargs, studyinfo, options, executor)
        else:
            results = _run_eager(func, f_ind, kind, fn_kwargs, data, studyinfo, post_sim,
                                 result_file, options, executor)

        _vprint(options, f"    Elapsed time: {time.time() - tstart:.3g} sec")
        all_results.append(results)

    return all_results[0] if len(all_results) == 1 else all_results
