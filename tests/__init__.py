# tests/__init__.py
"""
Test suite for dynasweep.

This package contains tests for:
- Installation verification
- Data selection and sweep helpers
- Options, annotation and file naming
- Dispatching analysis and plot functions
- Study storage, the demo network and sweep experiments
"""
