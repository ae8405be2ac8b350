# dynasweep/lif_population.py
"""
Leaky integrate-and-fire E/I network used to generate demo sweeps.

The network is intentionally small: two populations (E, I) with tonic drive,
white noise and exponentially decaying synaptic currents along the
'E->I' and 'I->E' connections. Any population or connection parameter can
be overridden with (target, parameter, value) modifications.
"""

import copy
import numpy as np
from typing import Any, Dict, Sequence, Tuple

from .rng_utils import get_rng

DEFAULT_POPULATIONS = {
    'E': {'size': 80, 'Iapp': 1.5, 'noise': 0.5, 'tau_m': 20.0, 'v_rest': -70.0,
          'v_reset': -80.0, 'v_th': -55.0, 'tau_ref': 2.0},
    'I': {'size': 20, 'Iapp': 1.0, 'noise': 0.5, 'tau_m': 10.0, 'v_rest': -70.0,
          'v_reset': -80.0, 'v_th': -55.0, 'tau_ref': 1.0},
}

DEFAULT_CONNECTIONS = {
    'E->I': {'gSYN': 2.0, 'tauD': 2.0, 'sign': 1.0},
    'I->E': {'gSYN': 2.0, 'tauD': 10.0, 'sign': -1.0},
}


class LIFPopulation:
    """Population of LIF neurons with a shared threshold."""

    def __init__(self, name: str, n_neurons: int, dt: float = 0.1, **params):
        self.name = name
        self.n_neurons = n_neurons
        self.dt = dt

        self.tau_m = params.get('tau_m', 20.0)  # Membrane time constant (ms)
        self.v_rest = params.get('v_rest', -70.0)  # Resting potential (mV)
        self.v_reset = params.get('v_reset', -80.0)  # Reset potential (mV)
        self.v_th = params.get('v_th', -55.0)  # Spike threshold (mV)
        self.tau_ref = params.get('tau_ref', 2.0)  # Refractory period (ms)

        if self.v_th <= self.v_reset:
            raise ValueError(f"Population {name}: threshold {self.v_th} must exceed reset {self.v_reset}")

        self.v_membrane = None
        self.refractory_timer = None

    def initialize_state(self, rng: np.random.Generator):
        """Membrane potentials drawn uniformly between reset and rest."""
        self.v_membrane = rng.uniform(self.v_reset, self.v_rest, self.n_neurons)
        self.refractory_timer = np.zeros(self.n_neurons)

    def update(self, input_current: np.ndarray) -> np.ndarray:
        """Advance one Euler step; returns a boolean spike mask."""
        self.refractory_timer = np.maximum(0, self.refractory_timer - self.dt)
        active_mask = self.refractory_timer <= 0

        dv_dt = (self.v_rest - self.v_membrane) / self.tau_m + input_current
        self.v_membrane[active_mask] += dv_dt[active_mask] * self.dt

        spike_mask = (self.v_membrane >= self.v_th) & active_mask
        if spike_mask.any():
            self.v_membrane[spike_mask] = self.v_reset
            self.refractory_timer[spike_mask] = self.tau_ref

        return spike_mask


def apply_modifications(modifications: Sequence[Tuple[str, str, Any]]) -> Tuple[Dict, Dict]:
    """Default population and connection parameters with modifications applied."""
    populations = copy.deepcopy(DEFAULT_POPULATIONS)
    connections = copy.deepcopy(DEFAULT_CONNECTIONS)

    for target, parameter, value in modifications:
        if target in populations:
            populations[target][parameter] = value
        elif target in connections:
            connections[target][parameter] = value
        else:
            raise ValueError(f"Unknown modification target '{target}'. "
                             f"Use one of {list(populations) + list(connections)}")

    return populations, connections


def simulate_lif_population(modifications: Sequence[Tuple[str, str, Any]] = (),
                            tspan: Tuple[float, float] = (0.0, 200.0),
                            dt: float = 0.1, downsample_factor: int = 1,
                            seed: int = 42) -> Dict[str, Any]:
    """
    Simulate the E/I network and return a result record.

    Args:
        modifications: (target, parameter, value) overrides, e.g. ('E', 'Iapp', 2.0)
        tspan: (start, stop) in ms
        dt: Integration step (ms)
        downsample_factor: Keep every n-th sample in the record
        seed: Base seed; noise also depends on the modifications

    Returns:
        Record with labels E_v, I_v (membrane potential) and E_spikes,
        I_spikes (0/1 spike indicators)
    """
    populations, connections = apply_modifications(modifications)

    pops = {name: LIFPopulation(name, int(p['size']), dt, **p) for name, p in populations.items()}
    for name, pop in pops.items():
        pop.initialize_state(get_rng(seed, f"{name}_initial_state", modifications))
    noise_rng = get_rng(seed, 'noise', modifications)

    time = np.arange(tspan[0], tspan[1] + dt / 2, dt)
    n_steps = len(time)
    keep = np.arange(0, n_steps, max(1, int(downsample_factor)))

    traces = {name: np.zeros((len(keep), pop.n_neurons)) for name, pop in pops.items()}
    spikes = {name: np.zeros((len(keep), pop.n_neurons)) for name, pop in pops.items()}
    gating = {direction: 0.0 for direction in connections}
    last_spikes = {name: np.zeros(pop.n_neurons, dtype=bool) for name, pop in pops.items()}

    row = 0
    for step in range(n_steps):
        for direction, conn in connections.items():
            source, _, _ = direction.partition('->')
            gating[direction] += -gating[direction] / conn['tauD'] * dt + last_spikes[source].mean()

        for name, pop in pops.items():
            current = np.full(pop.n_neurons, float(populations[name]['Iapp']))
            current += populations[name]['noise'] * noise_rng.standard_normal(pop.n_neurons) / np.sqrt(dt)
            for direction, conn in connections.items():
                if direction.partition('->')[2] == name:
                    current += conn['sign'] * conn['gSYN'] * gating[direction]
            last_spikes[name] = pop.update(current)

        if row < len(keep) and keep[row] == step:
            for name, pop in pops.items():
                traces[name][row] = pop.v_membrane
                spikes[name][row] = last_spikes[name]
            row += 1

    record = {'time': time[keep], 'labels': []}
    for name in pops:
        record[f'{name}_v'] = traces[name]
        record['labels'].append(f'{name}_v')
    for name in pops:
        record[f'{name}_spikes'] = spikes[name]
        record['labels'].append(f'{name}_spikes')

    record['simulator_options'] = {
        'modifications': [tuple(m) for m in modifications],
        'tspan': tuple(tspan),
        'dt': dt,
        'downsample_factor': downsample_factor,
        'seed': seed,
    }
    return record
