# experiments/base_experiment.py
"""
Base experiment class with shared functionality for parameter sweeps.
"""

import numpy as np
import warnings
import random
from typing import Any, Dict, List, Optional, Sequence, Tuple
from abc import ABC, abstractmethod

from dynasweep.vary import vary_to_modifications


class BaseExperiment(ABC):
    """Base class for sweep experiments with common utilities."""

    def __init__(self, dt: float = 0.1):
        """
        Initialize base experiment.

        Args:
            dt: Time step (ms)
        """
        self.dt = dt

    @staticmethod
    def create_parameter_grid(vary: Sequence[Tuple[str, str, Sequence[Any]]]) -> List[List[Tuple[str, str, Any]]]:
        """
        Expand (target, parameter, values) rows into one modification list per run.

        Args:
            vary: Sweep rows, e.g. [('E', 'Iapp', [0, 10]), ('I->E', 'tauD', [5, 10])]

        Returns:
            List of modification lists; the last row varies fastest
        """
        return vary_to_modifications(vary)

    def create_parameter_combinations(self, vary: Sequence[Tuple[str, str, Sequence[Any]]],
                                      modifications: Sequence[Tuple[str, str, Any]] = (),
                                      shuffle_seed: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Generate all runs of a sweep.

        Args:
            vary: Sweep rows
            modifications: Fixed modifications applied to every run before the swept ones
            shuffle_seed: Shuffle the run order reproducibly (balances work across ranks)

        Returns:
            List of dicts with 'combo_idx', 'sim_id', 'varied_modifications'
            and 'modifications'. sim_id follows grid order regardless of shuffling.
        """
        param_combinations = []
        for combo_idx, varied_mods in enumerate(self.create_parameter_grid(vary)):
            param_combinations.append({
                'combo_idx': combo_idx,
                'sim_id': combo_idx + 1,
                'varied_modifications': list(varied_mods),
                'modifications': [tuple(m) for m in modifications] + list(varied_mods),
            })

        if shuffle_seed is not None:
            random.seed(shuffle_seed)
            random.shuffle(param_combinations)

        return param_combinations

    @staticmethod
    def compute_safe_mean(array: np.ndarray) -> float:
        """Compute mean suppressing empty slice warnings."""
        with warnings.catch_warnings():
            warnings.filterwarnings('ignore', category=RuntimeWarning,
                                    message='Mean of empty slice')
            return float(np.nanmean(array))

    @staticmethod
    def compute_safe_std(array: np.ndarray) -> float:
        """Compute std suppressing degrees of freedom warnings."""
        with warnings.catch_warnings():
            warnings.filterwarnings('ignore', category=RuntimeWarning,
                                    message='Degrees of freedom')
            return float(np.nanstd(array))

    @abstractmethod
    def run_parameter_combination(self, modifications: Sequence[Tuple[str, str, Any]],
                                  **kwargs) -> Dict[str, Any]:
        """
        Simulate one run (experiment-specific).

        Must be implemented by subclasses.

        Returns:
            Result record
        """
        pass

    def compute_all_statistics(self, arrays: Dict[str, np.ndarray]) -> Dict[str, float]:
        """
        Compute mean and std for all _values arrays.

        Args:
            arrays: Dictionary of arrays with '_values' suffix

        Returns:
            Dictionary with '_mean' and '_std' for each array
        """
        stats = {}

        for key, array in arrays.items():
            if key.endswith('_values'):
                base_name = key[:-7]
                stats[f'{base_name}_mean'] = self.compute_safe_mean(array)
                stats[f'{base_name}_std'] = self.compute_safe_std(array)

        return stats
