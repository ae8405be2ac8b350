# dynasweep/__init__.py
"""
Core data modules: result records, option records, selection and study storage.
"""

from .errors import (
    DynaSweepError,
    OptionsError,
    SelectionError,
    UnknownSourceError,
    PostProcessingWarning
)
from .options import AnalyzeOptions, SAVE_FORMATS, PLOT_TYPES
from .records import is_record, check_data, copy_record, get_sim_id, varied_values
from .vary import sanitize_field_name, vary_to_modifications, modifications_to_varied, extract_linear
from .selection import select_data
from .study import (
    save_study,
    write_sim_data,
    write_studyinfo,
    check_studyinfo,
    import_data,
    load_sim_data,
    export_data
)
from .lif_population import LIFPopulation, simulate_lif_population

__all__ = [
    'DynaSweepError',
    'OptionsError',
    'SelectionError',
    'UnknownSourceError',
    'PostProcessingWarning',
    'AnalyzeOptions',
    'SAVE_FORMATS',
    'PLOT_TYPES',
    'is_record',
    'check_data',
    'copy_record',
    'get_sim_id',
    'varied_values',
    'sanitize_field_name',
    'vary_to_modifications',
    'modifications_to_varied',
    'extract_linear',
    'select_data',
    'save_study',
    'write_sim_data',
    'write_studyinfo',
    'check_studyinfo',
    'import_data',
    'load_sim_data',
    'export_data',
    'LIFPopulation',
    'simulate_lif_population'
]

__version__ = '1.0.0'
