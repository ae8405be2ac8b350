# tests/test_dispatch.py
"""
Tests for dispatching analysis and plot functions over records and studies.
"""

import sys
import os
import io
import pickle
import tempfile
import warnings
from concurrent.futures import ThreadPoolExecutor
from contextlib import redirect_stdout

import numpy as np
import pytest
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

# Add project directories
current_dir = os.path.dirname(__file__)
project_root = os.path.dirname(current_dir) if current_dir else '.'
sys.path.insert(0, project_root)

from dynasweep.errors import OptionsError, PostProcessingWarning, UnknownSourceError
from dynasweep.study import save_study
from analysis.dispatch import analyze, parse_src, resolve_func
from analysis.common_utils import calc_firing_rate
from dynasweep.options import AnalyzeOptions


def make_sweep(values=(0, 5, 10), n_time=50, n_cells=3):
    """Runs varying E_Iapp; E_v is a 0/1 spike table with run-dependent spike counts."""
    time = np.arange(n_time, dtype=float)
    sweep = []
    for run, value in enumerate(values):
        table = np.zeros((n_time, n_cells))
        table[::10 // (run + 1), :] = 1.0
        sweep.append({
            'time': time,
            'labels': ['E_v'],
            'E_v': table,
            'varied': ['E_Iapp'],
            'E_Iapp': value,
            'simulator_options': {'modifications': [('E', 'Iapp', value)]},
        })
    return sweep


def mean_activity(data, scale=1.0):
    return {'mean': float(data['E_v'].mean()) * scale}


def fails_on_five(data):
    if data['E_Iapp'] == 5:
        raise RuntimeError("cannot analyze this run")
    return {'n_samples': len(data['time'])}


def plot_mean(data, **kwargs):
    fig, ax = plt.subplots()
    ax.plot(data['time'], data['E_v'].mean(axis=1))
    return fig


def figure_maker(data):
    fig = plt.figure()
    return {'figure': fig}


def count_warnings(caught):
    return sum(1 for w in caught if issubclass(w.category, PostProcessingWarning))


def test_failure_is_contained():
    """A failing run yields None and one warning; other runs still succeed."""
    print("Testing failure containment...")
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always')
        results = analyze(make_sweep(), fails_on_five)

    assert len(results) == 3
    assert results[0]['n_samples'] == 50
    assert results[1] is None
    assert results[2]['n_samples'] == 50
    assert count_warnings(caught) == 1
    assert 'fails_on_five' in str([w.message for w in caught if issubclass(w.category, PostProcessingWarning)][0])
    print("  ✓ One None, one warning, remaining runs processed")


def test_results_annotated_per_run():
    print("Testing per-run annotation...")
    results = analyze(make_sweep(), mean_activity, scale=2.0)

    assert [r['E_Iapp'] for r in results] == [0, 5, 10]
    assert all(r['varied'] == ['E_Iapp'] for r in results)
    assert results[0]['options'] == {'scale': 2.0}
    print("  ✓ Each result carries its own run's values")


def test_option_forwarding():
    print("Testing option forwarding...")
    sweep = make_sweep()
    plain = analyze(sweep, mean_activity)
    scaled = analyze(sweep, mean_activity, scale=2.0)
    overridden = analyze(sweep, mean_activity, scale=2.0, function_options=[{'scale': 3.0}])

    for p, s, o in zip(plain, scaled, overridden):
        assert np.isclose(s['mean'], 2 * p['mean'])
        assert np.isclose(o['mean'], 3 * p['mean'])
    print("  ✓ Extra keyword arguments forwarded, function_options take precedence")


def test_multiple_functions():
    print("Testing several functions...")
    results = analyze(make_sweep(), [mean_activity, 'calc_firing_rate'],
                      function_options=[{}, {'variable': 'v', 'threshold': 0.5}])

    assert len(results) == 2
    assert len(results[0]) == 3 and len(results[1]) == 3
    rates = [r['E_v']['mean_rate'] for r in results[1]]
    assert rates[0] < rates[1] < rates[2]

    with pytest.raises(OptionsError, match="function_options"):
        analyze(make_sweep(), [mean_activity, calc_firing_rate], function_options=[{}])
    print("  ✓ One result list per function")


def test_function_resolution():
    print("Testing function resolution...")
    assert resolve_func('calc_firing_rate') is calc_firing_rate
    assert resolve_func('numpy.mean') is np.mean
    assert resolve_func(mean_activity) is mean_activity

    with pytest.raises(OptionsError):
        resolve_func('no_such_function')
    with pytest.raises(OptionsError):
        resolve_func(42)
    with pytest.raises(OptionsError, match="No post-processing function"):
        analyze(make_sweep(), None)
    print("  ✓ Callables, built-in names and dotted paths")


def test_unknown_source():
    print("Testing unknown sources...")
    with pytest.raises(UnknownSourceError):
        analyze(42, mean_activity)
    with pytest.raises(UnknownSourceError):
        analyze(os.path.join(tempfile.gettempdir(), 'no_such_study_dir_xyz'), mean_activity)
    print("  ✓ Unknown sources rejected")


def test_plot_saving_for_sweep():
    """Plot functions are recognized by name; sweeps get one page per run."""
    print("Testing plot saving for an in-memory sweep...")
    with tempfile.TemporaryDirectory() as tmp:
        result_file = os.path.join(tmp, 'rates')
        figs = analyze(make_sweep(), plot_mean, save_results_flag=1, format='png',
                       result_file=result_file)

        assert len(figs) == 3
        for page in (1, 2, 3):
            assert os.path.isfile(os.path.join(tmp, 'postSimPlots', f'rates_page{page}.png'))
    plt.close('all')
    print("  ✓ Pages saved under postSimPlots")


def test_plot_saving_single_record():
    print("Testing plot saving for a single record...")
    with tempfile.TemporaryDirectory() as tmp:
        result_file = os.path.join(tmp, 'trace')
        figs = analyze(make_sweep()[0], figure_maker, save_results_flag=1, format='svg',
                       result_file=result_file)

        assert len(figs) == 1
        assert isinstance(figs[0], matplotlib.figure.Figure)
        assert os.path.isfile(result_file + '.svg')
    plt.close('all')
    print("  ✓ Figure returned in a dict treated as a plot")


def test_analysis_saving_without_study():
    print("Testing analysis saving without a study...")
    with tempfile.TemporaryDirectory() as tmp:
        result_file = os.path.join(tmp, 'summary')
        analyze(make_sweep()[0], mean_activity, save_results_flag=1, result_file=result_file)

        with open(result_file + '.pkl', 'rb') as f:
            saved = pickle.load(f)
        assert saved['E_Iapp'] == 0

        analyze(make_sweep(), mean_activity, save_results_flag=1, result_file=result_file,
                overwrite_flag=1)
        with open(result_file + '.pkl', 'rb') as f:
            saved = pickle.load(f)
        assert isinstance(saved, list) and len(saved) == 3
    print("  ✓ Results saved to result_file")


def test_study_lazy_mode():
    """Studies are evaluated run by run and results saved per sim_id."""
    print("Testing lazy study processing...")
    with tempfile.TemporaryDirectory() as tmp:
        study_dir = os.path.join(tmp, 'study')
        save_study(make_sweep(), study_dir)

        results = analyze(study_dir, mean_activity, save_results_flag=1)

        assert [r['E_Iapp'] for r in results] == [0, 5, 10]
        for sim_id in (1, 2, 3):
            path = os.path.join(study_dir, 'postSimResults',
                                f'mean_activity_sim{sim_id}_analysis1_mean_activity.pkl')
            assert os.path.isfile(path)
            with open(path, 'rb') as f:
                assert pickle.load(f)['E_Iapp'] == [0, 5, 10][sim_id - 1]
    print("  ✓ postSimResults/<prefix>_sim<id>_analysis<k>_<name>.pkl")


def test_study_plots_and_analysis_options():
    print("Testing study plots with plot_functions/analysis_functions...")
    with tempfile.TemporaryDirectory() as tmp:
        study_dir = os.path.join(tmp, 'study')
        save_study(make_sweep(), study_dir)

        results = analyze(os.path.join(study_dir, 'studyinfo.pkl'),
                          plot_functions=[plot_mean], plot_options=[{'plot_type': 'power'}],
                          analysis_functions=[mean_activity], analysis_options=[{'scale': 10.0}],
                          save_results_flag=1, format='png', save_prefix='demo')

        assert len(results) == 2
        plot_dir = os.path.join(study_dir, 'postSimPlots')
        for sim_id in (1, 2, 3):
            assert os.path.isfile(os.path.join(plot_dir, f'demo_sim{sim_id}_plot1_plot_mean.png'))
            assert os.path.isfile(os.path.join(study_dir, 'postSimResults',
                                               f'demo_sim{sim_id}_analysis2_mean_activity.pkl'))
        assert results[1][0]['options'] == {'scale': 10.0}
    plt.close('all')
    print("  ✓ Plot functions first, analysis functions second")


def test_study_varied_filenames():
    print("Testing varied file names for study output...")
    with tempfile.TemporaryDirectory() as tmp:
        study_dir = os.path.join(tmp, 'study')
        save_study(make_sweep(values=(0.5, 1.5, -2)), study_dir)

        analyze(study_dir, plot_mean, save_results_flag=1, format='png', varied_filename_flag=1)

        names = sorted(os.listdir(os.path.join(study_dir, 'postSimPlots')))
        assert names == sorted([
            'waveform_plot_mean_sim1_plot1_plot_mean_E_Iapp0p5.png',
            'waveform_plot_mean_sim2_plot1_plot_mean_E_Iapp1p5.png',
            'waveform_plot_mean_sim3_plot1_plot_mean_E_Iappm2.png',
        ])
    plt.close('all')
    print("  ✓ Varied values embedded in file names")


def test_study_missing_data_and_sim_ids():
    print("Testing missing runs and sim_ids...")
    with tempfile.TemporaryDirectory() as tmp:
        study_dir = os.path.join(tmp, 'study')
        studyinfo = save_study(make_sweep(), study_dir)
        os.remove(studyinfo['simulations'][1]['data_file'])

        results = analyze(study_dir, mean_activity)
        assert [r['E_Iapp'] for r in results] == [0, 10]

        results = analyze(study_dir, mean_activity, sim_ids=[3])
        assert [r['E_Iapp'] for r in results] == [10]

        results = analyze(study_dir, mean_activity, load_all_data_flag=1)
        assert [r['E_Iapp'] for r in results] == [0, 10]
    print("  ✓ Missing runs skipped, sim_ids respected")


def test_overwrite_flag():
    print("Testing overwrite protection...")
    with tempfile.TemporaryDirectory() as tmp:
        study_dir = os.path.join(tmp, 'study')
        save_study(make_sweep(), study_dir)
        path = os.path.join(study_dir, 'postSimResults',
                            'mean_activity_sim1_analysis1_mean_activity.pkl')

        analyze(study_dir, mean_activity, save_results_flag=1)
        with open(path, 'wb') as f:
            pickle.dump('sentinel', f)

        analyze(study_dir, mean_activity, save_results_flag=1)
        with open(path, 'rb') as f:
            assert pickle.load(f) == 'sentinel'

        analyze(study_dir, mean_activity, save_results_flag=1, overwrite_flag=1)
        with open(path, 'rb') as f:
            assert pickle.load(f)['E_Iapp'] == 0
    print("  ✓ Existing files kept unless overwrite_flag is set")


def plot_summary(data):
    return {'n': len(data['time'])}


def test_plot_named_function_returning_data():
    """A 'plot' name with non-figure output is evaluated but never saved as a figure."""
    print("Testing plot-named function returning data...")
    with tempfile.TemporaryDirectory() as tmp:
        result_file = os.path.join(tmp, 'summary')
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            results = analyze(make_sweep(), plot_summary, save_results_flag=1, format='png',
                              result_file=result_file)

        assert [r['n'] for r in results] == [50, 50, 50]
        assert count_warnings(caught) == 3
        plot_dir = os.path.join(tmp, 'postSimPlots')
        assert not os.path.isdir(plot_dir) or os.listdir(plot_dir) == []
    print("  ✓ Non-figure output skipped with a warning")


def test_failed_runs_not_saved():
    """Failed runs leave no result file whether or not the study is loaded up front."""
    print("Testing failed runs are not saved...")
    with tempfile.TemporaryDirectory() as tmp:
        study_dir = os.path.join(tmp, 'study')
        save_study(make_sweep(), study_dir)
        results_dir = os.path.join(study_dir, 'postSimResults')

        for load_all in (1, 0):
            output = io.StringIO()
            with warnings.catch_warnings(record=True), redirect_stdout(output):
                warnings.simplefilter('always')
                analyze(study_dir, fails_on_five, save_results_flag=1, overwrite_flag=1,
                        load_all_data_flag=load_all)

            saved = sorted(os.listdir(results_dir))
            assert saved == ['fails_on_five_sim1_analysis1_fails_on_five.pkl',
                             'fails_on_five_sim3_analysis1_fails_on_five.pkl']
            assert 'Results saved' not in output.getvalue()
    print("  ✓ Only successful runs written, silently without verbose_flag")


def test_executor_path():
    """Parallel evaluation preserves order and still contains failures."""
    print("Testing executor evaluation...")
    sweep = make_sweep()
    sequential = analyze(sweep, mean_activity)

    with ThreadPoolExecutor(max_workers=3) as executor:
        parallel = analyze(sweep, mean_activity, executor=executor, parfor_flag=1)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            failed = analyze(sweep, fails_on_five, executor=executor, parfor_flag=1)

        with tempfile.TemporaryDirectory() as tmp:
            study_dir = os.path.join(tmp, 'study')
            save_study(sweep, study_dir)
            lazy = analyze(study_dir, mean_activity, executor=executor, parfor_flag=1)

    assert [r['mean'] for r in parallel] == [r['mean'] for r in sequential]
    assert [r['mean'] for r in lazy] == [r['mean'] for r in sequential]
    assert failed[1] is None and failed[0] is not None
    assert count_warnings(caught) == 1
    print("  ✓ Executor results match sequential results")


def test_parse_src():
    print("Testing source resolution...")
    options, _ = AnalyzeOptions.from_kwargs({})
    data, studyinfo = parse_src(make_sweep(), options)
    assert len(data) == 3 and studyinfo is None

    with tempfile.TemporaryDirectory() as tmp:
        study_dir = os.path.join(tmp, 'study')
        save_study(make_sweep(), study_dir)

        data, studyinfo = parse_src(study_dir, options)
        assert data == [] and studyinfo['study_dir'] == study_dir
        assert len(studyinfo['simulations']) == 3

        options, _ = AnalyzeOptions.from_kwargs({'load_all_data_flag': 1})
        data, studyinfo = parse_src(os.path.join(study_dir, 'studyinfo.pkl'), options)
        assert len(data) == 3
        assert studyinfo['study_dir'] == os.path.abspath(study_dir)

        data, studyinfo = parse_src(studyinfo['simulations'][0]['data_file'], options)
        assert len(data) == 1 and studyinfo is None
    print("  ✓ Records, study directories, studyinfo files and data files")


def main():
    """Run all dispatch tests."""
    print("=" * 70)
    print("DISPATCH TESTS")
    print("=" * 70)

    tests = [
        ("Failure containment", test_failure_is_contained),
        ("Per-run annotation", test_results_annotated_per_run),
        ("Option forwarding", test_option_forwarding),
        ("Several functions", test_multiple_functions),
        ("Function resolution", test_function_resolution),
        ("Unknown source", test_unknown_source),
        ("Sweep plot saving", test_plot_saving_for_sweep),
        ("Single record plot saving", test_plot_saving_single_record),
        ("Analysis saving", test_analysis_saving_without_study),
        ("Lazy study mode", test_study_lazy_mode),
        ("Study plots and options", test_study_plots_and_analysis_options),
        ("Varied file names", test_study_varied_filenames),
        ("Missing runs and sim_ids", test_study_missing_data_and_sim_ids),
        ("Overwrite protection", test_overwrite_flag),
        ("Plot-named data output", test_plot_named_function_returning_data),
        ("Failed runs not saved", test_failed_runs_not_saved),
        ("Executor evaluation", test_executor_path),
        ("Source resolution", test_parse_src),
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
