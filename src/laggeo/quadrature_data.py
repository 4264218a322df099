"""Material-point (quadrature-point) cache.

One record per (element, quadrature point), stored as stacked NumPy arrays
rather than per-point objects so the update kernels can run vectorised or in
Numba ``nopython`` mode.

Two groups of fields with different lifecycles:

- reference geometry, fixed at setup and never mutated afterwards:
  ``jac0inv``, ``rho0_detj0_w``, ``h0``
- per-evaluation data, overwritten by every kernel pass:
  ``stress_flux`` (consumed by force/energy assembly),
  ``stress_rate_flux`` (consumed by the stress-rate projection) and the
  running minimum ``dt_est``.

The cache is owned by exactly one :class:`~laggeo.operator.LagrangianGeoOperator`.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


def reference_length(volume: float, n_cells: int, dim: int, order: int = 1) -> float:
    """Initial mesh size h0 from the global volume and cell count."""
    if dim == 2:
        h0 = np.sqrt(volume / n_cells)
    else:
        h0 = np.cbrt(volume / n_cells)
    return float(h0 / order)


@dataclass
class QuadratureData:
    dim: int
    ne: int
    nq: int
    h0: float = 0.0
    jac0inv: np.ndarray = field(default=None)
    rho0_detj0_w: np.ndarray = field(default=None)
    stress_flux: np.ndarray = field(default=None)
    stress_rate_flux: np.ndarray = field(default=None)
    dt_est: float = np.inf

    def __post_init__(self):
        shape_t = (self.ne, self.nq, self.dim, self.dim)
        if self.jac0inv is None:
            self.jac0inv = np.zeros(shape_t, dtype=float)
        if self.rho0_detj0_w is None:
            self.rho0_detj0_w = np.zeros((self.ne, self.nq), dtype=float)
        if self.stress_flux is None:
            self.stress_flux = np.zeros(shape_t, dtype=float)
        if self.stress_rate_flux is None:
            self.stress_rate_flux = np.zeros(shape_t, dtype=float)

    def reset_estimate(self) -> None:
        self.dt_est = np.inf

    def set_reference(self, jac0inv: np.ndarray, rho0_detj0_w: np.ndarray, h0: float) -> None:
        """Fill the reference-geometry group (setup / after remesh only)."""
        self.jac0inv[...] = jac0inv
        self.rho0_detj0_w[...] = rho0_detj0_w
        self.h0 = float(h0)
