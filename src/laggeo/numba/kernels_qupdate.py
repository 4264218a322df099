"""Numba-compiled quadrature-point update.

Point-by-point twin of :func:`laggeo.kernels.qupdate.update_quadrature_numpy`
with the same argument list and return value, so both can sit in the same
dispatch table.

Notes
-----
* ``nopython`` mode: no Python objects, only contiguous float64 / int64
  arrays and scalars.
* Numba raises on float division by zero, so every division is guarded.
  Guarded points only occur in batches with a non-positive determinant,
  whose stable-step estimate is forced to zero anyway.
"""

from __future__ import annotations

import numpy as np
from numba import njit


@njit(cache=True)
def _smooth_step_01(x: float, eps: float) -> float:
    y = (x + eps) / (2.0 * eps)
    if y < 0.0:
        return 0.0
    if y > 1.0:
        return 1.0
    return (3.0 - 2.0 * y) * y * y


@njit(cache=True)
def _det(J: np.ndarray) -> float:
    if J.shape[0] == 2:
        return J[0, 0] * J[1, 1] - J[0, 1] * J[1, 0]
    return (
        J[0, 0] * (J[1, 1] * J[2, 2] - J[1, 2] * J[2, 1])
        + J[0, 1] * (J[1, 2] * J[2, 0] - J[1, 0] * J[2, 2])
        + J[0, 2] * (J[1, 0] * J[2, 1] - J[1, 1] * J[2, 0])
    )


@njit(cache=True)
def _inverse(J: np.ndarray, det: float, out: np.ndarray) -> None:
    d = J.shape[0]
    if det == 0.0:
        for i in range(d):
            for j in range(d):
                out[i, j] = 0.0
        return
    if d == 2:
        out[0, 0] = J[1, 1] / det
        out[0, 1] = -J[0, 1] / det
        out[1, 0] = -J[1, 0] / det
        out[1, 1] = J[0, 0] / det
        return
    out[0, 0] = (J[1, 1] * J[2, 2] - J[1, 2] * J[2, 1]) / det
    out[0, 1] = (J[0, 2] * J[2, 1] - J[0, 1] * J[2, 2]) / det
    out[0, 2] = (J[0, 1] * J[1, 2] - J[0, 2] * J[1, 1]) / det
    out[1, 0] = (J[1, 2] * J[2, 0] - J[1, 0] * J[2, 2]) / det
    out[1, 1] = (J[0, 0] * J[2, 2] - J[0, 2] * J[2, 0]) / det
    out[1, 2] = (J[0, 2] * J[1, 0] - J[0, 0] * J[1, 2]) / det
    out[2, 0] = (J[1, 0] * J[2, 1] - J[1, 1] * J[2, 0]) / det
    out[2, 1] = (J[0, 1] * J[2, 0] - J[0, 0] * J[2, 1]) / det
    out[2, 2] = (J[0, 0] * J[1, 1] - J[0, 1] * J[1, 0]) / det


@njit(cache=True)
def _voigt_to_tensor(sv: np.ndarray, T: np.ndarray) -> None:
    if T.shape[0] == 2:
        T[0, 0] = sv[0]
        T[1, 1] = sv[1]
        T[0, 1] = sv[2]
        T[1, 0] = sv[2]
        return
    T[0, 0] = sv[0]
    T[1, 1] = sv[1]
    T[2, 2] = sv[2]
    T[0, 1] = sv[3]
    T[1, 0] = sv[3]
    T[1, 2] = sv[4]
    T[2, 1] = sv[4]
    T[0, 2] = sv[5]
    T[2, 0] = sv[5]


@njit(cache=True)
def update_quadrature_numba(
    x, v, e, s, elems, dN, weights, jac0inv, rho0w, h0,
    gamma, lam, mu, order, cfl, use_viscosity, use_vorticity, corotational,
    zones_per_batch, stress_flux, stress_rate_flux, dt_est,
):
    ne = elems.shape[0]
    nen = elems.shape[1]
    nq = weights.shape[0]
    dim = x.shape[1]
    eps = 1.0e-12

    Jb = np.empty((zones_per_batch, nq, dim, dim))
    detb = np.empty((zones_per_batch, nq))
    J = np.empty((dim, dim))
    Jinv = np.empty((dim, dim))
    dV = np.empty((dim, dim))
    L = np.empty((dim, dim))
    D = np.empty((dim, dim))
    W = np.empty((dim, dim))
    sig = np.empty((dim, dim))
    tau = np.empty((dim, dim))
    st = np.zeros((dim, dim))
    JtJ = np.empty((dim, dim))

    min_detj_all = np.inf
    for b0 in range(0, ne, zones_per_batch):
        b1 = min(b0 + zones_per_batch, ne)

        # pass 1: Jacobians and the batch minimum determinant
        min_detj = np.inf
        for z in range(b0, b1):
            for q in range(nq):
                for i in range(dim):
                    for j in range(dim):
                        acc = 0.0
                        for a in range(nen):
                            acc += x[elems[z, a], i] * dN[q, a, j]
                        Jb[z - b0, q, i, j] = acc
                det = _det(Jb[z - b0, q])
                detb[z - b0, q] = det
                if det < min_detj:
                    min_detj = det
        if min_detj < min_detj_all:
            min_detj_all = min_detj

        # pass 2: material update per point
        for z in range(b0, b1):
            _voigt_to_tensor(s[z], st)
            E = max(e[z], 0.0)
            pmod = lam[z] + 2.0 * mu[z]
            g = gamma[z]
            for q in range(nq):
                for i in range(dim):
                    for j in range(dim):
                        J[i, j] = Jb[z - b0, q, i, j]
                det = detb[z - b0, q]
                _inverse(J, det, Jinv)
                wq = weights[q]

                rho = 0.0
                if det != 0.0:
                    rho = rho0w[z, q] / (det * wq)
                p = (g - 1.0) * rho * E
                cs2 = g * (g - 1.0) * E
                if rho > 0.0:
                    cs2 += pmod / rho
                cs = np.sqrt(cs2) if cs2 > 0.0 else 0.0

                for i in range(dim):
                    for j in range(dim):
                        acc = 0.0
                        for a in range(nen):
                            acc += v[elems[z, a], i] * dN[q, a, j]
                        dV[i, j] = acc
                for i in range(dim):
                    for j in range(dim):
                        acc = 0.0
                        for k in range(dim):
                            acc += dV[i, k] * Jinv[k, j]
                        L[i, j] = acc
                trD = 0.0
                for i in range(dim):
                    for j in range(dim):
                        D[i, j] = 0.5 * (L[i, j] + L[j, i])
                        W[i, j] = L[i, j] - D[i, j]
                    trD += D[i, i]

                for i in range(dim):
                    for j in range(dim):
                        sig[i, j] = st[i, j]
                    sig[i, i] -= p

                visc = 0.0
                if use_viscosity:
                    vort = 1.0
                    if use_vorticity:
                        gn = 0.0
                        for i in range(dim):
                            for j in range(dim):
                                gn += L[i, j] * L[i, j]
                        gn = np.sqrt(gn)
                        div_v = 0.0
                        for i in range(dim):
                            div_v += L[i, i]
                        if gn > 0.0:
                            vort = abs(div_v) / gn
                    evals, evecs = np.linalg.eigh(D)
                    mu_min = evals[0]
                    ph2 = 0.0
                    c2 = 0.0
                    for i in range(dim):
                        ph_i = 0.0
                        for k in range(dim):
                            jk = 0.0
                            for l in range(dim):
                                jk += jac0inv[z, q, k, l] * evecs[l, 0]
                            ph_i += J[i, k] * jk
                        ph2 += ph_i * ph_i
                        c2 += evecs[i, 0] * evecs[i, 0]
                    h = h0 * np.sqrt(ph2)
                    if c2 > 0.0:
                        h = h / np.sqrt(c2)
                    visc = 2.0 * rho * h * h * abs(mu_min)
                    visc += 0.5 * rho * h * cs * vort * (1.0 - _smooth_step_01(mu_min - 2.0 * eps, eps))
                    for i in range(dim):
                        for j in range(dim):
                            sig[i, j] += visc * D[i, j]

                for i in range(dim):
                    for j in range(dim):
                        tau[i, j] = 2.0 * mu[z] * D[i, j]
                    tau[i, i] -= (2.0 * mu[z] / dim) * trD
                if corotational:
                    for i in range(dim):
                        for j in range(dim):
                            acc = 0.0
                            for k in range(dim):
                                acc += W[i, k] * st[k, j] - st[i, k] * W[k, j]
                            tau[i, j] += acc

                if min_detj > 0.0:
                    for i in range(dim):
                        for j in range(dim):
                            acc = 0.0
                            for k in range(dim):
                                acc += J[k, i] * J[k, j]
                            JtJ[i, j] = acc
                    lam_min = np.linalg.eigvalsh(JtJ)[0]
                    h_min = np.sqrt(max(lam_min, 0.0)) / order
                    if h_min > 0.0:
                        inv_dt = cs / h_min
                        if rho > 0.0:
                            inv_dt += 2.5 * visc / rho / h_min / h_min
                        if inv_dt > 0.0:
                            dt_est = min(dt_est, cfl / inv_dt)
                    else:
                        dt_est = 0.0

                wdet = wq * det
                for i in range(dim):
                    for j in range(dim):
                        acc = 0.0
                        for k in range(dim):
                            acc += sig[i, k] * Jinv[j, k]
                        stress_flux[z, q, i, j] = acc * wdet
                        stress_rate_flux[z, q, i, j] = tau[i, j] * rho * wdet

        if min_detj <= 0.0:
            dt_est = 0.0

    return dt_est, min_detj_all
