# dynasweep/options.py
"""
Option records for post-processing calls.

Options are collected into an explicit record once per top-level call and
validated before any data is touched. Keyword arguments that are not
dispatcher options are handed back to the caller so they can be forwarded to
the analysis or plot functions.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

from .errors import OptionsError


SAVE_FORMATS = ('svg', 'jpg', 'eps', 'png', 'fig')

# plot_data draws the first four; the rest name plot types of user-supplied plot functions
PLOT_TYPES = ('waveform', 'rastergram', 'raster', 'power', 'rates', 'imagesc',
              'heatmapFR', 'heatmap_sortedFR', 'meanFR', 'meanFRdens', 'FRpanel')


@dataclass
class AnalyzeOptions:
    """Configuration of one ``analyze`` call."""

    result_file: str = 'result'
    save_results_flag: bool = False
    overwrite_flag: bool = False
    format: str = 'svg'
    varied_filename_flag: bool = False
    plot_type: str = 'waveform'
    save_prefix: Optional[str] = None
    function_options: List[Dict[str, Any]] = field(default_factory=list)
    sim_ids: Optional[List[int]] = None
    load_all_data_flag: bool = False
    parfor_flag: bool = False
    verbose_flag: bool = False
    analysis_functions: List[Any] = field(default_factory=list)
    analysis_options: List[Dict[str, Any]] = field(default_factory=list)
    plot_functions: List[Any] = field(default_factory=list)
    plot_options: List[Dict[str, Any]] = field(default_factory=list)

    _flags = ('save_results_flag', 'overwrite_flag', 'varied_filename_flag',
              'load_all_data_flag', 'parfor_flag', 'verbose_flag')
    _allowed = {'format': SAVE_FORMATS, 'plot_type': PLOT_TYPES}
    _lists = ('function_options', 'analysis_functions', 'analysis_options',
              'plot_functions', 'plot_options')

    @classmethod
    def option_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_kwargs(cls, kwargs: Dict[str, Any],
                    strict: bool = False) -> Tuple['AnalyzeOptions', Dict[str, Any]]:
        """
        Split keyword arguments into a validated option record and the rest.

        Args:
            kwargs: Keyword arguments of the top-level call
            strict: Raise on names that are not options instead of returning them

        Returns:
            Tuple of (options, extra) where extra holds unrecognized names
        """
        names = cls.option_names()
        known = {k: v for k, v in kwargs.items() if k in names}
        extra = {k: v for k, v in kwargs.items() if k not in names}

        if strict and extra:
            raise OptionsError(f"Unrecognized option(s): {', '.join(sorted(extra))}")

        options = cls(**known)
        options.validate()
        return options, extra

    def validate(self):
        """Check flags, enumerated values and list-valued options."""
        for name in self._flags:
            value = getattr(self, name)
            if value not in (0, 1, True, False):
                raise OptionsError(f"Option '{name}' must be 0 or 1, got {value!r}")
            setattr(self, name, bool(value))

        for name, allowed in self._allowed.items():
            value = getattr(self, name)
            if value not in allowed:
                raise OptionsError(
                    f"Invalid value {value!r} for option '{name}'. "
                    f"Allowed values: {', '.join(allowed)}")

        for name in self._lists:
            value = getattr(self, name)
            if value is None:
                setattr(self, name, [])
            elif callable(value) or isinstance(value, (str, dict)):
                # a single function or option dict given without a list
                setattr(self, name, [value])
            elif not isinstance(value, (list, tuple)):
                raise OptionsError(f"Option '{name}' must be a list, got {type(value).__name__}")
            else:
                setattr(self, name, list(value))

        if not isinstance(self.result_file, str) or not self.result_file:
            raise OptionsError("Option 'result_file' must be a non-empty string")

        if self.sim_ids is not None:
            if isinstance(self.sim_ids, int):
                self.sim_ids = [self.sim_ids]
            try:
                self.sim_ids = [int(s) for s in self.sim_ids]
            except (TypeError, ValueError):
                raise OptionsError(f"Option 'sim_ids' must be a list of integers, got {self.sim_ids!r}")

        if self.save_prefix is not None and not isinstance(self.save_prefix, str):
            raise OptionsError("Option 'save_prefix' must be a string")

        return self
