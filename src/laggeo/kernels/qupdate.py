"""Vectorised quadrature-point update (NumPy backend).

For every element and quadrature point this computes

* the current Jacobian ``J``, its determinant and inverse,
* density from the fixed reference mass ``rho0 detJ0 w``,
* pressure and sound speed (:func:`laggeo.eos.compute_material_properties`),
* the velocity gradient ``L = dV J^-1`` split into strain rate ``D`` and spin ``W``,
* the artificial viscosity coefficient (compression-direction length scale,
  cubic smooth step over ``[-eps, eps]``, optional vorticity switch),
* the deviatoric stress rate ``2 mu D - (2 mu / dim) tr(D) I``
  (plus ``W s - s W`` when the corotational option is on),
* the local stable step ``cfl / (cs/h_min + 2.5 visc/(rho h_min^2))``.

Results go to the stress-flux and stress-rate-flux arrays of the cache; the
running minimum stable step is returned. Elements are processed in batches of
``zones_per_batch``; a batch whose smallest determinant is non-positive
forces the estimate to zero so the driver rejects the step.

The compiled twin lives in :mod:`laggeo.numba.kernels_qupdate` and takes the
same arguments.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from laggeo.eos import compute_material_properties
from laggeo.fem.assembly import det_and_inverse, element_jacobians
from laggeo.tensors import voigt_to_tensor

VISC_EPS = 1.0e-12


def smooth_step_01(x, eps):
    """Cubic transition from 0 (x <= -eps) to 1 (x >= eps)."""
    y = np.clip((x + eps) / (2.0 * eps), 0.0, 1.0)
    return (3.0 - 2.0 * y) * y * y


def update_quadrature_numpy(
    x: np.ndarray,
    v: np.ndarray,
    e: np.ndarray,
    s: np.ndarray,
    elems: np.ndarray,
    dN: np.ndarray,
    weights: np.ndarray,
    jac0inv: np.ndarray,
    rho0w: np.ndarray,
    h0: float,
    gamma: np.ndarray,
    lam: np.ndarray,
    mu: np.ndarray,
    order: int,
    cfl: float,
    use_viscosity: bool,
    use_vorticity: bool,
    corotational: bool,
    zones_per_batch: int,
    stress_flux: np.ndarray,
    stress_rate_flux: np.ndarray,
    dt_est: float,
) -> Tuple[float, float]:
    """Refresh the flux arrays in place. Returns ``(dt_est, min_detJ)``."""
    ne = elems.shape[0]
    dim = x.shape[1]
    eye = np.eye(dim)
    w = weights[None, :]
    min_detj_all = np.inf

    for b0 in range(0, ne, zones_per_batch):
        b1 = min(b0 + zones_per_batch, ne)
        el = elems[b0:b1]

        J = element_jacobians(x[el], dN)
        detJ, Jinv = det_and_inverse(J)
        Jinv = np.where(np.isfinite(Jinv), Jinv, 0.0)
        min_detj = float(detJ.min())
        min_detj_all = min(min_detj_all, min_detj)

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            nz = detJ != 0.0
            rho = np.where(nz, rho0w[b0:b1] / np.where(nz, detJ * w, 1.0), 0.0)

            E = e[b0:b1, None]
            p, cs = compute_material_properties(
                gamma[b0:b1, None], rho, E, (lam[b0:b1] + 2.0 * mu[b0:b1])[:, None]
            )

            dV = np.einsum("eai,qaj->eqij", v[el], dN, optimize=True)
            L = dV @ Jinv
            D = 0.5 * (L + np.swapaxes(L, -1, -2))
            W = L - D

            s_cell = voigt_to_tensor(s[b0:b1], dim)[:, None, :, :]
            sigma = s_cell - p[..., None, None] * eye

            visc = np.zeros_like(rho)
            if use_viscosity:
                vort = np.ones_like(rho)
                if use_vorticity:
                    grad_norm = np.sqrt(np.sum(L * L, axis=(-2, -1)))
                    div_v = np.abs(np.trace(L, axis1=-2, axis2=-1))
                    vort = np.where(grad_norm > 0.0, div_v / np.where(grad_norm > 0.0, grad_norm, 1.0), 1.0)

                evals, evecs = np.linalg.eigh(D)
                mu_min = evals[..., 0]
                compr_dir = evecs[..., :, 0]
                Jpi = J @ jac0inv[b0:b1]
                ph_dir = np.einsum("eqij,eqj->eqi", Jpi, compr_dir, optimize=True)
                h = h0 * np.linalg.norm(ph_dir, axis=-1) / np.linalg.norm(compr_dir, axis=-1)

                visc = 2.0 * rho * h * h * np.abs(mu_min)
                visc = visc + 0.5 * rho * h * cs * vort * (
                    1.0 - smooth_step_01(mu_min - 2.0 * VISC_EPS, VISC_EPS)
                )
                sigma = sigma + visc[..., None, None] * D

            trD = np.trace(D, axis1=-2, axis2=-1)
            mu_b = mu[b0:b1, None, None, None]
            tau = 2.0 * mu_b * D - (2.0 * mu_b / dim) * trD[..., None, None] * eye
            if corotational:
                tau = tau + W @ s_cell - s_cell @ W

            if min_detj > 0.0:
                JtJ = np.swapaxes(J, -1, -2) @ J
                sv_min = np.sqrt(np.maximum(np.linalg.eigvalsh(JtJ)[..., 0], 0.0))
                h_min = sv_min / order
                inv_dt = cs / h_min + np.where(rho > 0.0, 2.5 * visc / rho / h_min / h_min, 0.0)
                active = inv_dt > 0.0
                if np.any(active):
                    dt_est = min(dt_est, float(np.min(cfl / inv_dt[active])))
            else:
                dt_est = 0.0

            wdet = w * detJ
            stress_flux[b0:b1] = (sigma @ np.swapaxes(Jinv, -1, -2)) * wdet[..., None, None]
            stress_rate_flux[b0:b1] = tau * (rho * wdet)[..., None, None]

    return dt_est, min_detj_all
