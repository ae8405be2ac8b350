# tests/test_study.py
"""
Tests for study storage, the demo network, sweep experiments and the
built-in analysis and plot functions.
"""

import sys
import os
import shutil
import tempfile
import numpy as np
import pytest
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

# Add project directories
current_dir = os.path.dirname(__file__)
project_root = os.path.dirname(current_dir) if current_dir else '.'
sys.path.insert(0, project_root)

from dynasweep.errors import UnknownSourceError
from dynasweep.lif_population import apply_modifications, simulate_lif_population
from dynasweep.rng_utils import get_rng, seed_from_modifications
from dynasweep.study import (
    check_studyinfo,
    export_data,
    import_data,
    load_sim_data,
    save_study
)
from analysis.common_utils import (
    calc_firing_rate,
    calc_participation_ratio,
    calc_power,
    compute_participation_ratio,
    detect_spikes
)
from experiments.sweep_experiment import SweepExperiment
from plots.figure_io import save_figure
from plots.plot_data import plot_data, plot_firing_rates


def make_sweep(values=(1, 2, 3)):
    time = np.arange(20, dtype=float)
    return [{
        'time': time,
        'labels': ['E_v'],
        'E_v': np.full((20, 2), float(value)),
        'varied': ['E_Iapp'],
        'E_Iapp': value,
        'simulator_options': {'modifications': [('E', 'Iapp', value)]},
    } for value in values]


def test_study_round_trip():
    print("Testing study save/load...")
    with tempfile.TemporaryDirectory() as tmp:
        study_dir = os.path.join(tmp, 'study')
        studyinfo = save_study(make_sweep(), study_dir)

        assert [s['sim_id'] for s in studyinfo['simulations']] == [1, 2, 3]
        assert os.path.isfile(os.path.join(study_dir, 'studyinfo.pkl'))
        assert os.path.isfile(os.path.join(study_dir, 'data', 'study_sim2_data.pkl'))

        record = load_sim_data(check_studyinfo(study_dir), 2)
        assert record['E_Iapp'] == 2
        assert record['simulator_options']['sim_id'] == 2
        assert load_sim_data(studyinfo, 7) is None

        data, info = import_data(study_dir, sim_ids=[1, 3])
        assert [r['E_Iapp'] for r in data] == [1, 3]
        assert info['study_dir'] == os.path.abspath(study_dir)

        data, _ = import_data(study_dir, varied=('E_Iapp', [2, 3]), time_limits=(0, 4))
        assert [r['E_Iapp'] for r in data] == [2, 3]
        assert data[0]['E_v'].shape == (5, 2)
    print("  ✓ Studies saved and imported")


def test_moved_study_is_relocated():
    print("Testing relocation of a moved study...")
    with tempfile.TemporaryDirectory() as tmp:
        original = os.path.join(tmp, 'original')
        save_study(make_sweep(), original)
        moved = os.path.join(tmp, 'moved')
        shutil.move(original, moved)

        studyinfo = check_studyinfo(moved)
        assert studyinfo['study_dir'] == os.path.abspath(moved)
        for sim in studyinfo['simulations']:
            assert sim['data_file'].startswith(os.path.abspath(moved))
            assert os.path.isfile(sim['data_file'])
    print("  ✓ Data files found in the new location")


def test_study_errors_and_export():
    print("Testing study errors and export...")
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(UnknownSourceError):
            check_studyinfo(tmp)
        with pytest.raises(UnknownSourceError):
            check_studyinfo({'study_dir': tmp})
        with pytest.raises(UnknownSourceError):
            import_data(os.path.join(tmp, 'missing.pkl'))

        path = export_data({'a': 1}, os.path.join(tmp, 'nested', 'dir', 'result.pkl'))
        assert os.path.isfile(path)

        fig = plt.figure()
        assert os.path.isfile(save_figure(fig, os.path.join(tmp, 'fig.fig'), 'fig'))
        with pytest.raises(ValueError):
            save_figure(fig, os.path.join(tmp, 'fig.gif'), 'gif')
        plt.close(fig)
    print("  ✓ Missing studies rejected, exports create directories")


def test_rng_reproducibility():
    print("Testing parameter-dependent RNG...")
    mods = [('E', 'Iapp', 1.0)]
    assert seed_from_modifications(42, 'noise', mods) == seed_from_modifications(42, 'noise', mods)
    assert seed_from_modifications(42, 'noise', mods) != seed_from_modifications(42, 'noise', [('E', 'Iapp', 2.0)])

    a = get_rng(42, 'noise', mods).normal(size=5)
    b = get_rng(42, 'noise', list(reversed(mods))).normal(size=5)
    assert np.array_equal(a, b)
    print("  ✓ Same modifications give the same stream")


def test_lif_simulation():
    print("Testing LIF network simulation...")
    record = simulate_lif_population([('E', 'Iapp', 2.0)], tspan=(0, 50), dt=0.1,
                                     downsample_factor=2)

    assert record['labels'] == ['E_v', 'I_v', 'E_spikes', 'I_spikes']
    n_samples = len(record['time'])
    assert n_samples == 251
    assert record['E_v'].shape == (n_samples, 80)
    assert record['I_spikes'].shape == (n_samples, 20)
    assert set(np.unique(record['E_spikes'])) <= {0.0, 1.0}
    assert record['simulator_options']['modifications'] == [('E', 'Iapp', 2.0)]

    again = simulate_lif_population([('E', 'Iapp', 2.0)], tspan=(0, 50), dt=0.1,
                                    downsample_factor=2)
    assert np.array_equal(record['E_v'], again['E_v'])

    with pytest.raises(ValueError, match="Unknown modification target"):
        apply_modifications([('X', 'Iapp', 1.0)])
    print(f"  ✓ {n_samples} samples, reproducible")


def test_builtin_analysis():
    print("Testing built-in analysis functions...")
    time = np.arange(100, dtype=float)
    spikes = np.zeros((100, 2))
    spikes[::10, 0] = 1.0
    record = {'time': time, 'labels': ['E_spikes', 'E_v'], 'E_spikes': spikes,
              'E_v': np.sin(2 * np.pi * 0.05 * time)[:, np.newaxis] * np.ones((1, 3))}

    spike_times, cells = detect_spikes(record, 'E_spikes', threshold=0.5)
    assert len(spike_times) == 10 and set(cells) == {0}

    rates = calc_firing_rate(record, variable='spikes', threshold=0.5, bin_size=10.0)
    # 10 spikes in 100 ms -> 100 Hz for cell 0, silent cell 1
    assert np.allclose(rates['E_spikes']['cell_rates'], [100.0, 0.0])
    assert np.isclose(rates['E_spikes']['mean_rate'], 50.0)

    power = calc_power(record, variable='v', nperseg=100)
    assert np.isclose(power['E_v']['peak_frequency'], 50.0)

    dims = calc_participation_ratio(record, variable='v')
    assert np.isclose(dims['E_v']['participation_ratio'], 1.0)
    assert compute_participation_ratio(np.array([1.0, 1.0, 1.0])) == pytest.approx(3.0)

    with pytest.raises(ValueError, match="No labels"):
        calc_firing_rate(record, variable='conductance')
    print("  ✓ Rates, spectra and dimensionality")


def test_plot_data():
    print("Testing plot_data...")
    record = simulate_lif_population(tspan=(0, 20), dt=0.5)
    for plot_type in ('waveform', 'rastergram', 'power'):
        fig = plot_data(record, plot_type=plot_type, variable='v')
        assert isinstance(fig, matplotlib.figure.Figure)
        assert len(fig.axes) == 2
        plt.close(fig)

    figs = plot_data([record, record], variable='E_v')
    assert len(figs) == 2
    fig = plot_firing_rates(record, variable='spikes', threshold=0.5)
    assert len(fig.axes) == 2
    plt.close('all')

    with pytest.raises(ValueError, match="plot_type"):
        plot_data(record, plot_type='heatmap')
    print("  ✓ Waveform, rastergram and power figures")


def test_sweep_experiment():
    print("Testing SweepExperiment...")
    experiment = SweepExperiment(tspan=(0, 30), downsample_factor=5)

    combos = experiment.create_parameter_combinations([('E', 'Iapp', [1.0, 3.0])],
                                                      modifications=[('I', 'noise', 0.0)])
    assert [c['sim_id'] for c in combos] == [1, 2]
    assert combos[1]['modifications'] == [('I', 'noise', 0.0), ('E', 'Iapp', 3.0)]

    with tempfile.TemporaryDirectory() as tmp:
        study_dir = os.path.join(tmp, 'study')
        data, studyinfo, post = experiment.run(
            vary=[('E', 'Iapp', [1.0, 3.0])],
            study_dir=study_dir,
            analysis_functions=[calc_firing_rate],
            analysis_options=[{'variable': 'spikes', 'threshold': 0.5}],
            save_results_flag=1)

        assert len(data) == 2
        assert [r['E_Iapp'] for r in data] == [1.0, 3.0]
        assert data[1]['varied'] == ['E_Iapp']
        assert [s['sim_id'] for s in studyinfo['simulations']] == [1, 2]

        assert len(post) == 2
        assert post[0]['E_Iapp'] == 1.0 and post[1]['E_Iapp'] == 3.0
        assert post[1]['E_spikes']['mean_rate'] >= post[0]['E_spikes']['mean_rate']
        assert os.path.isfile(os.path.join(study_dir, 'postSimResults',
                                           'calc_firing_rate_sim2_analysis1_calc_firing_rate.pkl'))

    stats = experiment.summarize_rates(post, 'E_spikes')
    assert 'E_spikes_rate_mean' in stats and 'E_spikes_rate_std' in stats

    data, studyinfo, post = experiment.run()
    assert len(data) == 1 and studyinfo is None and post is None
    assert 'varied' not in data[0]
    print("  ✓ Sweep simulated, saved and post-processed")


def test_work_distribution():
    print("Testing work distribution across ranks...")
    pool_utils = pytest.importorskip('runners.pool_utils')

    ranges = [pool_utils.distribute_work_for_rank(10, rank, 3) for rank in range(3)]
    assert ranges == [(0, 4), (4, 7), (7, 10)]

    with pytest.raises(ValueError):
        with pool_utils.make_executor('threads'):
            pass
    with pool_utils.make_executor('none') as executor:
        assert executor is None

    sweep_runner = pytest.importorskip('runners.sweep_runner')
    assert sweep_runner.parse_values('0:1:3') == [0.0, 0.5, 1.0]
    assert sweep_runner.parse_values('5,10,fast') == [5, 10, 'fast']
    assert sweep_runner.parse_values('0.5') == [0.5]

    analyze_runner = pytest.importorskip('runners.analyze_runner')
    parser = analyze_runner.build_parser()
    assert parser.parse_args(['study', '--plot_type', 'power']).plot_type == 'power'
    with pytest.raises(SystemExit):
        parser.parse_args(['study', '--plot_type', 'rates'])
    print("  ✓ Contiguous rank ranges and CLI value parsing")


def main():
    """Run all study tests."""
    print("=" * 70)
    print("STUDY AND MODEL TESTS")
    print("=" * 70)

    tests = [
        ("Study round trip", test_study_round_trip),
        ("Moved study", test_moved_study_is_relocated),
        ("Study errors and export", test_study_errors_and_export),
        ("RNG reproducibility", test_rng_reproducibility),
        ("LIF simulation", test_lif_simulation),
        ("Built-in analysis", test_builtin_analysis),
        ("plot_data", test_plot_data),
        ("SweepExperiment", test_sweep_experiment),
        ("Work distribution", test_work_distribution),
    ]

    results = []
    for test_name, test_func in tests:
        try:
            test_func()
            results.append((test_name, True))
        except Exception as e:
            print(f"\n✗ {test_name} failed: {e}")
            import traceback
            traceback.print_exc()
            results.append((test_name, False))

    print("\n" + "=" * 70)
    passed = sum(1 for _, ok in results if ok)
    for test_name, ok in results:
        print(f"  {'✓' if ok else '✗'} {test_name}")
    print(f"\n{passed}/{len(results)} tests passed")
    return passed == len(results)


if __name__ == "__main__":
    exit(0 if main() else 1)
