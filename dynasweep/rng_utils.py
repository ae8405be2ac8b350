# dynasweep/rng_utils.py
"""
Random number generators that depend deterministically on the run parameters.

Runs with the same modifications and seed reproduce the same noise and
initial conditions regardless of which process or sweep order executes them.
"""

import hashlib
import numpy as np
from typing import Any, Sequence, Tuple


def seed_from_modifications(base_seed: int, component: str,
                            modifications: Sequence[Tuple[str, str, Any]] = ()) -> int:
    """Hash the base seed, component name and modifications into a 64-bit seed."""
    mods = ';'.join(f"{t}.{p}={v!r}" for t, p, v in sorted(modifications, key=lambda m: (m[0], m[1])))
    seed_string = f"{base_seed}_{component}_{mods}"

    hash_obj = hashlib.sha256(seed_string.encode('utf-8'))
    return int.from_bytes(hash_obj.digest()[:8], byteorder='big')


def get_rng(base_seed: int, component: str,
            modifications: Sequence[Tuple[str, str, Any]] = ()) -> np.random.Generator:
    """Parameter-dependent generator for one model component."""
    seed_sequence = np.random.SeedSequence(seed_from_modifications(base_seed, component, modifications))
    return np.random.default_rng(seed_sequence)
