# dynasweep/study.py
"""
On-disk studies: one pickle per simulation run plus a studyinfo index.

Layout:
    <study_dir>/studyinfo.pkl
    <study_dir>/data/study_sim<id>_data.pkl
"""

import os
import pickle
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import UnknownSourceError
from .records import check_data, get_sim_id
from .selection import select_data

STUDYINFO_FILE = 'studyinfo.pkl'
DATA_SUBDIR = 'data'


def sim_data_filename(sim_id: int) -> str:
    return f"study_sim{sim_id}_data.pkl"


def save_study(data: Union[dict, List[dict]], study_dir: str,
               verbose: bool = False) -> Dict[str, Any]:
    """
    Save a sweep as a study directory.

    Runs without a ``sim_id`` in their simulator options are numbered from 1
    in list order.

    Returns:
        The studyinfo handle that was written
    """
    data = check_data(data)
    simulations = [write_sim_data(record, study_dir, get_sim_id(record, index), verbose)
                   for index, record in enumerate(data, start=1)]

    studyinfo = {'study_dir': study_dir, 'simulations': simulations}
    write_studyinfo(studyinfo)
    return studyinfo


def write_sim_data(record: dict, study_dir: str, sim_id: int,
                   verbose: bool = False) -> Dict[str, Any]:
    """
    Write one run into a study's data directory.

    Returns:
        The run's studyinfo entry
    """
    data_dir = os.path.join(study_dir, DATA_SUBDIR)
    os.makedirs(data_dir, exist_ok=True)

    record['simulator_options']['sim_id'] = sim_id
    data_file = os.path.join(data_dir, sim_data_filename(sim_id))
    with open(data_file, 'wb') as f:
        pickle.dump(record, f)
    if verbose:
        print(f"Data saved: {data_file}")

    return {
        'sim_id': sim_id,
        'data_file': data_file,
        'modifications': list(record['simulator_options']['modifications']),
    }


def write_studyinfo(studyinfo: Dict[str, Any]) -> str:
    os.makedirs(studyinfo['study_dir'], exist_ok=True)
    path = os.path.join(studyinfo['study_dir'], STUDYINFO_FILE)
    with open(path, 'wb') as f:
        pickle.dump(studyinfo, f)
    return path


def is_studyinfo_path(src: Any) -> bool:
    return isinstance(src, (str, os.PathLike)) and 'studyinfo' in os.path.basename(os.fspath(src))


def check_studyinfo(src: Union[str, os.PathLike, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Load and standardize a studyinfo handle.

    Args:
        src: studyinfo dict, path to studyinfo.pkl or study directory

    Returns:
        Handle with 'study_dir' and 'simulations' entries
    """
    if isinstance(src, dict):
        studyinfo = dict(src)
    elif isinstance(src, (str, os.PathLike)):
        path = os.fspath(src)
        if os.path.isdir(path):
            path = os.path.join(path, STUDYINFO_FILE)
        if not os.path.isfile(path):
            raise UnknownSourceError(f"No studyinfo found at {os.fspath(src)}")
        with open(path, 'rb') as f:
            studyinfo = pickle.load(f)
        # the study may have been moved since it was written
        studyinfo['study_dir'] = os.path.dirname(os.path.abspath(path))
    else:
        raise UnknownSourceError(f"Cannot read studyinfo from {type(src).__name__}")

    if 'simulations' not in studyinfo:
        raise UnknownSourceError("studyinfo has no 'simulations' entry")

    study_dir = studyinfo.get('study_dir')
    simulations = []
    for sim in studyinfo['simulations']:
        sim = dict(sim)
        data_file = sim.get('data_file') or sim_data_filename(sim['sim_id'])
        if study_dir and not os.path.isfile(data_file):
            relocated = os.path.join(study_dir, DATA_SUBDIR, os.path.basename(data_file))
            if os.path.isfile(relocated):
                data_file = relocated
        sim['data_file'] = data_file
        sim.setdefault('modifications', [])
        simulations.append(sim)
    studyinfo['simulations'] = simulations
    return studyinfo


def load_data_file(path: Union[str, os.PathLike]) -> List[dict]:
    """Load one pickled record (or list of records)."""
    with open(path, 'rb') as f:
        data = pickle.load(f)
    return check_data(data)


def load_sim_data(studyinfo: Dict[str, Any], sim_id: int) -> Optional[dict]:
    """Load a single run of a study; None when its data file is missing."""
    for sim in studyinfo['simulations']:
        if sim['sim_id'] == sim_id:
            if not os.path.isfile(sim['data_file']):
                return None
            record = load_data_file(sim['data_file'])[0]
            record['simulator_options'].setdefault('sim_id', sim_id)
            return record
    return None


def import_data(src: Any, sim_ids: Optional[Sequence[int]] = None,
                time_limits: Optional[Sequence[float]] = None,
                roi: Optional[Any] = None,
                varied: Optional[Any] = None) -> Tuple[List[dict], Optional[Dict[str, Any]]]:
    """
    Import simulated data from disk.

    Args:
        src: Data file, list of data files, studyinfo file, studyinfo dict
             or study directory
        sim_ids: Restrict a study import to these runs
        time_limits, roi, varied: Optional narrowing passed to select_data

    Returns:
        Tuple of (data, studyinfo); studyinfo is None for plain data files
    """
    studyinfo = None

    if isinstance(src, dict) and 'simulations' in src:
        studyinfo = check_studyinfo(src)
    elif isinstance(src, (list, tuple)) and all(isinstance(s, (str, os.PathLike)) for s in src):
        data = []
        for path in src:
            data.extend(load_data_file(path))
        return _narrow(data, time_limits, roi, varied), None
    elif isinstance(src, (str, os.PathLike)):
        path = os.fspath(src)
        if os.path.isdir(path) or is_studyinfo_path(path):
            studyinfo = check_studyinfo(path)
        elif os.path.isfile(path):
            return _narrow(load_data_file(path), time_limits, roi, varied), None
        else:
            raise UnknownSourceError(f"No data found at {path}")
    else:
        raise UnknownSourceError(f"Unknown data source of type {type(src).__name__}")

    data = []
    for sim in studyinfo['simulations']:
        if sim_ids is not None and sim['sim_id'] not in sim_ids:
            continue
        record = load_sim_data(studyinfo, sim['sim_id'])
        if record is not None:
            data.append(record)

    return _narrow(data, time_limits, roi, varied), studyinfo


def _narrow(data, time_limits, roi, varied):
    if time_limits is None and roi is None and varied is None:
        return data
    kwargs = {'roi': roi, 'varied': varied}
    if time_limits is not None:
        kwargs['time_limits'] = time_limits
    return select_data(data, **kwargs)


def export_data(result: Any, filename: str, verbose: bool = True) -> str:
    """Save a derived result to a pickle file, creating directories as needed."""
    directory = os.path.dirname(os.path.abspath(filename))
    os.makedirs(directory, exist_ok=True)

    with open(filename, 'wb') as f:
        pickle.dump(result, f)

    if verbose:
        print(f"Results saved: {filename}")
    return filename
