# experiments/__init__.py
"""
Experiment coordination and execution modules.
"""
from .base_experiment import BaseExperiment
from .sweep_experiment import SweepExperiment

__all__ = [
    'BaseExperiment',
    'SweepExperiment'
]
