# runners/sweep_runner.py
"""
MPI-parallelized sweep runner: simulates the demo network over a parameter
grid and writes the runs as a study directory.

Usage:
    mpiexec -n 4 python -m runners.sweep_runner --study_dir study \
        --vary E Iapp 0:2:3 --vary "I->E" tauD 5,10,15
"""

import argparse
import os
import time
from typing import Any, Dict, List, Optional

import numpy as np
from mpi4py import MPI

from .pool_utils import (
    distribute_work,
    monitor_system_health,
    recovery_break,
    print_work_distribution
)

from experiments.sweep_experiment import SweepExperiment
from dynasweep.study import write_sim_data, write_studyinfo


def parse_values(text: str) -> List[Any]:
    """
    Sweep values from the command line.

    'start:stop:num' gives numpy.linspace values; otherwise a comma
    separated list where numeric entries become numbers.
    """
    if text.count(':') == 2:
        start, stop, num = text.split(':')
        values = np.linspace(float(start), float(stop), int(num))
        return [float(v) for v in values]

    values = []
    for item in text.split(','):
        item = item.strip()
        try:
            number = float(item)
            values.append(int(number) if number.is_integer() and '.' not in item else number)
        except ValueError:
            values.append(item)
    return values


def execute_run_with_recovery(experiment: SweepExperiment, rank: int, combo: Dict[str, Any],
                              study_dir: str, max_attempts: int = 3) -> Optional[Dict[str, Any]]:
    """Simulate and save one run; returns its studyinfo entry or None after max_attempts."""
    for attempt in range(1, max_attempts + 1):
        healthy, status = monitor_system_health()
        if not healthy:
            print(f"[Rank {rank}] Health issue (attempt {attempt}): {status}")
            recovery_break(rank, 300, status)
            continue

        if attempt > 1:
            print(f"[Rank {rank}] Retry attempt {attempt}")

        try:
            start_time = time.time()
            record = experiment.run_parameter_combination(combo['modifications'],
                                                          combo['varied_modifications'],
                                                          combo['sim_id'])
            sim = write_sim_data(record, study_dir, combo['sim_id'])
            print(f"[Rank {rank}] simID={combo['sim_id']} done ({time.time() - start_time:.1f}s)")
            return sim

        except (ValueError, MemoryError, OSError) as e:
            print(f"[Rank {rank}] Error (attempt {attempt}): {str(e)}")
            if isinstance(e, ValueError):
                # bad parameters do not improve with retries
                break
            recovery_break(rank, 600 if isinstance(e, MemoryError) else 60, type(e).__name__)

    print(f"[Rank {rank}] FAILED simID={combo['sim_id']}")
    return None


def run_mpi_sweep(study_dir: str = "study", vary=None, tspan_ms: float = 200.0,
                  dt: float = 0.1, downsample_factor: int = 1, seed: int = 42,
                  shuffle_seed: Optional[int] = None):
    """Simulate the sweep with runs split across MPI ranks."""
    comm = MPI.COMM_WORLD
    rank = comm.Get_rank()
    size = comm.Get_size()

    vary = [(target, parameter, parse_values(values)) for target, parameter, values in (vary or [])]

    if rank == 0:
        print("=" * 80)
        print("PARAMETER SWEEP")
        print("=" * 80)
        print(f"Configuration:")
        print(f"  MPI processes: {size}")
        for target, parameter, values in vary:
            print(f"  {target} {parameter}: {values}")
        print(f"  Duration: {tspan_ms:.0f} ms")

        study_dir = os.path.abspath(study_dir)
        os.makedirs(study_dir, exist_ok=True)
        print(f"  Study directory: {study_dir}")

    study_dir = comm.bcast(study_dir if rank == 0 else None, root=0)
    comm.Barrier()

    experiment = SweepExperiment(dt=dt, tspan=(0.0, tspan_ms),
                                 downsample_factor=downsample_factor, seed=seed)
    all_combinations = experiment.create_parameter_combinations(vary, shuffle_seed=shuffle_seed)
    total_runs = len(all_combinations)

    if rank == 0:
        print_work_distribution(total_runs, size)

    start_idx, end_idx = distribute_work(total_runs, comm)
    my_combinations = all_combinations[start_idx:end_idx]
    print(f"[Rank {rank}] Processing {len(my_combinations)} runs")

    local_sims = []
    rank_start_time = time.time()
    for i, combo in enumerate(my_combinations):
        print(f"[Rank {rank}] [{i + 1}/{len(my_combinations)}]: {combo['varied_modifications']}")
        sim = execute_run_with_recovery(experiment, rank, combo, study_dir)
        if sim is not None:
            local_sims.append(sim)

    print(f"[Rank {rank}] COMPLETED: {len(local_sims)}/{len(my_combinations)} successful "
          f"({time.time() - rank_start_time:.1f}s)")

    all_sims = comm.gather(local_sims, root=0)

    if rank == 0:
        simulations = sorted((sim for proc_sims in all_sims for sim in proc_sims),
                             key=lambda s: s['sim_id'])
        path = write_studyinfo({'study_dir': study_dir, 'simulations': simulations})
        print(f"\nStudy saved: {path} ({len(simulations)}/{total_runs} runs)")


def main():
    parser = argparse.ArgumentParser(description="Run an MPI parameter sweep into a study directory")
    parser.add_argument("--study_dir", type=str, default="study")
    parser.add_argument("--vary", nargs=3, action="append", metavar=("TARGET", "PARAMETER", "VALUES"),
                        help="Sweep row; VALUES is 'start:stop:num' or a comma separated list")
    parser.add_argument("--tspan_ms", type=float, default=200.0)
    parser.add_argument("--dt", type=float, default=0.1)
    parser.add_argument("--downsample_factor", type=int, default=1)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--shuffle_seed", type=int, default=None)

    args = parser.parse_args()
    run_mpi_sweep(**vars(args))


if __name__ == "__main__":
    main()
