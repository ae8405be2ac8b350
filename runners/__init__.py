# runners/__init__.py
"""
Command-line runners for simulating sweeps and post-processing studies.
"""
