"""Plasticity collaborators.

The driver calls ``return_map`` once per trial step, after the stepper has
integrated the elastic stress rate, on the per-cell stored stress::

    stress_new, pls_new = model.return_map(stress, plastic_strain, zones, dt)

``stress`` is the ``(ne, nstress)`` Voigt array of the state, ``zones`` the
per-cell parameter arrays (:class:`~laggeo.materials.ZoneArrays`) and
``plastic_strain`` the accumulated equivalent plastic strain per cell. Inputs
are never modified in place.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from laggeo.materials import ZoneArrays
from laggeo.numba.kernels_plastic import mohr_coulomb_cells_numba


class PlasticityModel:
    name = "base"

    def return_map(
        self,
        stress: np.ndarray,
        plastic_strain: np.ndarray,
        zones: ZoneArrays,
        dt: float,
    ) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError


class IdentityPlasticity(PlasticityModel):
    """Leaves stress and plastic strain untouched (purely elastic runs)."""

    name = "identity"

    def return_map(self, stress, plastic_strain, zones, dt):
        return np.array(stress, copy=True), np.array(plastic_strain, copy=True)


class MohrCoulombPlasticity(PlasticityModel):
    """Mohr-Coulomb with tension cutoff and linear cohesion softening.

    Parameters
    ----------
    viscoplastic : bool
        When True the per-zone ``plastic_viscosity`` relaxes the plastic
        correction by ``dt / (dt + eta / mu)``; otherwise the return map is
        rate independent.
    """

    name = "mohr_coulomb"

    def __init__(self, viscoplastic: bool = False):
        self.viscoplastic = bool(viscoplastic)
        self.last_failure = np.zeros(0, dtype=np.int64)

    def return_map(self, stress, plastic_strain, zones, dt):
        s = np.ascontiguousarray(stress, dtype=np.float64)
        pls = np.ascontiguousarray(plastic_strain, dtype=np.float64)
        eta = zones.plastic_viscosity if self.viscoplastic else np.zeros_like(zones.plastic_viscosity)
        s_new, pls_new, failure = mohr_coulomb_cells_numba(
            s, pls,
            np.ascontiguousarray(zones.lam), np.ascontiguousarray(zones.mu),
            np.ascontiguousarray(zones.tension_cutoff),
            np.ascontiguousarray(zones.cohesion0), np.ascontiguousarray(zones.cohesion1),
            np.ascontiguousarray(zones.pls0), np.ascontiguousarray(zones.pls1),
            np.ascontiguousarray(zones.friction_angle), np.ascontiguousarray(zones.dilation_angle),
            np.ascontiguousarray(eta, dtype=np.float64),
            float(dt),
        )
        self.last_failure = failure
        return s_new, pls_new
