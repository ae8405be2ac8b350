# experiments/sweep_experiment.py
"""
Simulate a parameter sweep, store it as a study and post-process it.
"""

import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from analysis.dispatch import analyze
from dynasweep.lif_population import simulate_lif_population
from dynasweep.records import check_data
from dynasweep.study import save_study
from dynasweep.vary import modifications_to_varied
from .base_experiment import BaseExperiment


class SweepExperiment(BaseExperiment):
    """
    Runs a simulate callable over a sweep grid.

    The callable takes ``modifications`` (list of (target, parameter, value))
    plus keyword options and returns a result record.
    """

    def __init__(self, simulate: Callable[..., Dict[str, Any]] = simulate_lif_population,
                 dt: float = 0.1, verbose_flag: bool = False, **sim_kwargs):
        super().__init__(dt)
        self.simulate = simulate
        self.verbose_flag = verbose_flag
        self.sim_kwargs = sim_kwargs

    def run_parameter_combination(self, modifications: Sequence[Tuple[str, str, Any]],
                                  varied_modifications: Sequence[Tuple[str, str, Any]] = (),
                                  sim_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Simulate one run and annotate it with its sweep identity.

        Args:
            modifications: All modifications of the run
            varied_modifications: The swept subset, recorded as 'varied' fields
            sim_id: Run number stored in simulator_options

        Returns:
            Result record
        """
        record = self.simulate(modifications=list(modifications), dt=self.dt, **self.sim_kwargs)
        record = check_data(record)[0]

        if varied_modifications:
            names, values = modifications_to_varied(varied_modifications)
            record['varied'] = names
            for name, value in zip(names, values):
                record[name] = value

        record['simulator_options']['modifications'] = [tuple(m) for m in modifications]
        if sim_id is not None:
            record['simulator_options']['sim_id'] = sim_id
        return record

    def _run_combo(self, combo: Dict[str, Any]) -> Dict[str, Any]:
        return self.run_parameter_combination(combo['modifications'],
                                              combo['varied_modifications'],
                                              combo['sim_id'])

    def run(self, vary: Sequence[Tuple[str, str, Sequence[Any]]] = (),
            modifications: Sequence[Tuple[str, str, Any]] = (),
            study_dir: Optional[str] = None,
            plot_functions: Optional[List[Any]] = None,
            plot_options: Optional[List[Dict[str, Any]]] = None,
            analysis_functions: Optional[List[Any]] = None,
            analysis_options: Optional[List[Dict[str, Any]]] = None,
            executor=None, **analyze_kwargs):
        """
        Simulate every run of the sweep, then post-process.

        Args:
            vary: Sweep rows (target, parameter, values)
            modifications: Fixed modifications for every run
            study_dir: Save the sweep as a study here (post-processing then
                       reads the study and writes into it)
            plot_functions, plot_options, analysis_functions, analysis_options:
                Post-processing passed to analysis.dispatch.analyze
            executor: Running concurrent.futures executor for the simulations
                      (and for post-processing when parfor_flag is set)
            **analyze_kwargs: Further AnalyzeOptions fields

        Returns:
            Tuple of (data, studyinfo, post_results); studyinfo is None
            without study_dir and post_results is None without functions
        """
        combos = self.create_parameter_combinations(vary, modifications)
        if self.verbose_flag:
            print(f"Simulating {len(combos)} run(s)")

        start_time = time.time()
        if executor is not None and len(combos) > 1:
            data = list(executor.map(self._run_combo, combos))
        else:
            data = []
            for i, combo in enumerate(combos):
                if self.verbose_flag:
                    print(f"  [{i + 1}/{len(combos)}] {combo['varied_modifications']}")
                data.append(self._run_combo(combo))

        if self.verbose_flag:
            print(f"Simulation time: {time.time() - start_time:.1f} sec")

        studyinfo = save_study(data, study_dir, verbose=self.verbose_flag) if study_dir else None

        post_results = None
        if plot_functions or analysis_functions:
            src = studyinfo['study_dir'] if studyinfo is not None else data
            analyze_kwargs.setdefault('verbose_flag', self.verbose_flag)
            post_results = analyze(src,
                                   plot_functions=plot_functions or [],
                                   plot_options=plot_options or [],
                                   analysis_functions=analysis_functions or [],
                                   analysis_options=analysis_options or [],
                                   executor=executor,
                                   **analyze_kwargs)

        return data, studyinfo, post_results

    def summarize_rates(self, rate_results: List[Dict[str, Any]], label: str) -> Dict[str, float]:
        """Mean and std across runs of a label's mean rate from calc_firing_rate results."""
        arrays = {f'{label}_rate_values': np.array(
            [r[label]['mean_rate'] if r is not None else np.nan for r in rate_results])}
        return self.compute_all_statistics(arrays)
