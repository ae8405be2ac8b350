# runners/pool_utils.py - Shared utilities for sweep and analysis runners
"""
Work distribution across MPI ranks, executors for parallel post-processing
and system health monitoring.

Health thresholds can be overridden with environment variables.
"""

import os
import time
from contextlib import contextmanager
from concurrent.futures import ProcessPoolExecutor
from typing import Optional, Tuple

import psutil
from mpi4py import MPI
from mpi4py.futures import MPIPoolExecutor


# ============================================================================
# CONFIGURABLE THRESHOLDS
# ============================================================================

# Temperature threshold (°C), set 5-10°C above the normal maximum
TEMP_THRESHOLD = float(os.getenv('TEMP_THRESHOLD', '100'))

# CPU threshold (%)
CPU_THRESHOLD = float(os.getenv('CPU_THRESHOLD', '98'))

# Memory threshold (%)
MEMORY_THRESHOLD = float(os.getenv('MEMORY_THRESHOLD', '95'))

EXECUTOR_KINDS = ('none', 'process', 'mpi')

# ============================================================================


def distribute_work_for_rank(total_jobs: int, rank: int, size: int) -> Tuple[int, int]:
    """
    Calculate work distribution for a specific MPI rank.

    Args:
        total_jobs: Total number of jobs to distribute
        rank: Rank ID
        size: Total number of ranks

    Returns:
        Tuple of (start_idx, end_idx) for this rank
    """
    jobs_per_proc = total_jobs // size
    remainder = total_jobs % size
    if rank < remainder:
        start_idx = rank * (jobs_per_proc + 1)
        end_idx = start_idx + jobs_per_proc + 1
    else:
        start_idx = rank * jobs_per_proc + remainder
        end_idx = start_idx + jobs_per_proc
    return start_idx, end_idx


def distribute_work(total_jobs: int, comm: MPI.Comm) -> Tuple[int, int]:
    """Work range of the calling rank."""
    return distribute_work_for_rank(total_jobs, comm.Get_rank(), comm.Get_size())


def monitor_system_health() -> Tuple[bool, str]:
    """
    Check temperature, CPU and memory usage against the thresholds.

    Returns:
        Tuple of (is_healthy, status_message)
    """
    max_temp = 0.0
    temp_available = False
    sensors = getattr(psutil, 'sensors_temperatures', None)
    temps = sensors() if sensors is not None else {}
    for entries in (temps or {}).values():
        for entry in entries:
            if entry.current and entry.current > max_temp:
                max_temp = entry.current
                temp_available = True

    cpu_percent = psutil.cpu_percent(interval=0.1)
    memory_percent = psutil.virtual_memory().percent

    critical_issues = []
    if temp_available and max_temp > TEMP_THRESHOLD:
        critical_issues.append(f"Temperature {max_temp:.1f}°C > {TEMP_THRESHOLD:.0f}°C")
    if cpu_percent > CPU_THRESHOLD:
        critical_issues.append(f"CPU {cpu_percent:.1f}% > {CPU_THRESHOLD:.0f}%")
    if memory_percent > MEMORY_THRESHOLD:
        critical_issues.append(f"Memory {memory_percent:.1f}% > {MEMORY_THRESHOLD:.0f}%")

    if critical_issues:
        return False, f"CRITICAL: {'; '.join(critical_issues)}"

    status_parts = [f"CPU: {cpu_percent:.1f}%", f"Memory: {memory_percent:.1f}%"]
    if temp_available:
        status_parts.insert(0, f"Temp: {max_temp:.1f}°C")
    return True, "HEALTHY - " + " | ".join(status_parts)


def recovery_break(rank: int, duration: int = 300, reason: str = "system_stress",
                   poll_interval: int = 30):
    """Pause a rank until the system recovers or the break expires."""
    print(f"[Rank {rank}] RECOVERY BREAK: {reason} ({duration // 60} min)")

    start_time = time.time()
    while time.time() - start_time < duration:
        healthy, _ = monitor_system_health()
        if healthy:
            print(f"[Rank {rank}] System recovered early - resuming work")
            break
        time.sleep(poll_interval)

    print(f"[Rank {rank}] Recovery complete")


def print_work_distribution(total_jobs: int, size: int, max_display: int = 8):
    """Print the number of runs per rank."""
    print("\nWork Distribution:")
    for r in range(min(size, max_display)):
        s, e = distribute_work_for_rank(total_jobs, r, size)
        print(f"  Rank {r:2d}: {e - s:3d} runs")
    if size > max_display:
        print(f"  ... and {size - max_display} more ranks")


@contextmanager
def make_executor(kind: str = 'none', max_workers: Optional[int] = None):
    """
    Executor for parallel post-processing.

    Args:
        kind: 'none' (yields None), 'process' (ProcessPoolExecutor) or
              'mpi' (mpi4py MPIPoolExecutor; launch with mpiexec)
        max_workers: Worker count (default: executor's own default)
    """
    if kind not in EXECUTOR_KINDS:
        raise ValueError(f"Unknown executor kind '{kind}'. Use one of {EXECUTOR_KINDS}")

    if kind == 'none':
        yield None
    elif kind == 'process':
        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            yield executor
    else:
        with MPIPoolExecutor(max_workers=max_workers) as executor:
            yield executor
