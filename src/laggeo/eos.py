"""Gamma-law equation of state with an elastic wave-speed term.

Pressure follows the ideal-gas law ``p = (gamma - 1) rho e``. The sound speed
adds the elastic P-wave modulus ``lam + 2 mu`` so that a solid at rest (zero
internal energy) still has a finite wave speed for the stable-step bound.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np


def gas_pressure(gamma, rho, e):
    return (gamma - 1.0) * rho * e


def gas_sound_speed_sq(gamma, e):
    return gamma * (gamma - 1.0) * e


def compute_material_properties(
    gamma: np.ndarray,
    rho: np.ndarray,
    e: np.ndarray,
    p_modulus: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """Pressure and sound speed at a batch of points.

    ``e`` is clipped at zero first. Points with non-positive density (an
    inverted element) contribute no elastic term, so the result stays finite.
    """
    E = np.maximum(e, 0.0)
    p = gas_pressure(gamma, rho, E)
    cs2 = gas_sound_speed_sq(gamma, E)
    pos = rho > 0.0
    elastic = np.where(pos, p_modulus / np.where(pos, rho, 1.0), 0.0)
    cs = np.sqrt(np.maximum(cs2 + elastic, 0.0))
    return p, cs
