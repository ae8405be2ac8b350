# runners/analyze_runner.py
"""
Post-process a study from the command line.

Usage:
    python -m runners.analyze_runner study --plot_functions plot_data \
        --plot_type rastergram --analysis_functions calc_firing_rate --save
    mpiexec -n 5 python -m mpi4py.futures -m runners.analyze_runner study \
        --analysis_functions calc_power --parallel mpi --load_all
"""

import argparse
import time

from .pool_utils import make_executor, monitor_system_health, EXECUTOR_KINDS

from analysis.dispatch import analyze
from dynasweep.options import SAVE_FORMATS
from plots.plot_data import PLOT_FUNCTION_TYPES


def run_analysis(study_dir: str, plot_functions=None, analysis_functions=None,
                 plot_type: str = None, variable: str = None, format: str = 'svg',
                 save: bool = False, overwrite: bool = False, varied_filename: bool = False,
                 sim_ids=None, load_all: bool = False, parallel: str = 'none',
                 max_workers: int = None, verbose: bool = False):
    """Apply plot and analysis functions to every run of a study."""
    plot_functions = plot_functions or []
    analysis_functions = analysis_functions or []
    if not plot_functions and not analysis_functions:
        raise SystemExit("Give at least one of --plot_functions/--analysis_functions")

    common = {'variable': variable} if variable else {}
    plot_options = [dict(common, **({'plot_type': plot_type} if plot_type else {}))
                    for _ in plot_functions]
    analysis_options = [dict(common) for _ in analysis_functions]

    print("=" * 80)
    print("POST-PROCESSING")
    print("=" * 80)
    print(f"  Study: {study_dir}")
    print(f"  Plot functions: {plot_functions}")
    print(f"  Analysis functions: {analysis_functions}")
    print(f"  Parallel: {parallel}")
    print(f"  System: {monitor_system_health()[1]}")

    start_time = time.time()
    with make_executor(parallel, max_workers) as executor:
        results = analyze(study_dir,
                          plot_functions=plot_functions, plot_options=plot_options,
                          analysis_functions=analysis_functions, analysis_options=analysis_options,
                          executor=executor, parfor_flag=executor is not None,
                          format=format, save_results_flag=save, overwrite_flag=overwrite,
                          varied_filename_flag=varied_filename, sim_ids=sim_ids,
                          load_all_data_flag=load_all, verbose_flag=verbose,
                          plot_type=plot_type or 'waveform')

    if len(plot_functions) + len(analysis_functions) == 1:
        results = [results]
    n_failed = sum(r is None for fn_results in results for r in fn_results)
    print(f"\nCompleted in {time.time() - start_time:.1f}s ({n_failed} failed evaluations)")
    return results


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Apply analysis/plot functions to a study")
    parser.add_argument("study_dir", type=str)
    parser.add_argument("--plot_functions", nargs="+", default=[])
    parser.add_argument("--analysis_functions", nargs="+", default=[])
    parser.add_argument("--plot_type", type=str, default=None, choices=PLOT_FUNCTION_TYPES)
    parser.add_argument("--variable", type=str, default=None)
    parser.add_argument("--format", type=str, default="svg", choices=SAVE_FORMATS)
    parser.add_argument("--save", action="store_true")
    parser.add_argument("--overwrite", action="store_true")
    parser.add_argument("--varied_filename", action="store_true")
    parser.add_argument("--sim_ids", nargs="+", type=int, default=None)
    parser.add_argument("--load_all", action="store_true")
    parser.add_argument("--parallel", type=str, default="none", choices=EXECUTOR_KINDS)
    parser.add_argument("--max_workers", type=int, default=None)
    parser.add_argument("--verbose", action="store_true")
    return parser


def main():
    args = build_parser().parse_args()
    run_analysis(**vars(args))


if __name__ == "__main__":
    main()
