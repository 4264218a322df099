"""Numba kernels for the Mohr-Coulomb return mapping.

These kernels are **stateless** and operate on primitive NumPy arrays so they
compile in ``nopython`` mode. History (accumulated plastic strain) is passed
in and returned explicitly.

Scope
-----
* Mohr-Coulomb shear yield with a tension cutoff, non-associated flow
  (dilation angle ``psi``), evaluated in principal stress space.
* Linear cohesion softening between accumulated plastic strain ``pls0`` and
  ``pls1``.
* Optional viscoplastic relaxation: the plastic correction is scaled by
  ``dt / (dt + eta / mu)``.

Notes
-----
* Compression is negative. Principal values are sorted ascending, so
  ``p[0]`` is the most compressive and ``p[2]`` the most tensile.
* 2-D (plane strain) uses the two in-plane principal stresses with their mean
  as the intermediate value; only the in-plane components are written back.
"""

from __future__ import annotations

import math

import numpy as np
from numba import njit


@njit(cache=True)
def _softened_cohesion(pls: float, c0: float, c1: float, pls0: float, pls1: float) -> float:
    if pls <= pls0:
        return c0
    if pls >= pls1:
        return c1
    return c0 + (c1 - c0) * (pls - pls0) / (pls1 - pls0)


@njit(cache=True)
def mohr_coulomb_return_numba(
    sig: np.ndarray,
    pls: float,
    lam: float,
    mu: float,
    tension_cutoff: float,
    cohesion0: float,
    cohesion1: float,
    pls0: float,
    pls1: float,
    phi_deg: float,
    psi_deg: float,
    eta: float,
    dt: float,
):
    """Return-map one symmetric stress tensor ``sig`` (dim x dim).

    Returns
    -------
    sig_new : (dim, dim) array
    pls_new : float
    failure : int
        0 elastic, 1 shear, 2 tension.
    """
    dim = sig.shape[0]
    w, vecs = np.linalg.eigh(sig)

    p = np.empty(3)
    if dim == 2:
        p[0] = w[0]
        p[1] = 0.5 * (w[0] + w[1])
        p[2] = w[1]
    else:
        p[0] = w[0]
        p[1] = w[1]
        p[2] = w[2]

    coh = _softened_cohesion(pls, cohesion0, cohesion1, pls0, pls1)
    sphi = math.sin(math.radians(phi_deg))
    spsi = math.sin(math.radians(psi_deg))
    anphi = (1.0 + sphi) / (1.0 - sphi)
    anpsi = (1.0 + spsi) / (1.0 - spsi)
    amc = 2.0 * coh * math.sqrt(anphi)

    ten_max = tension_cutoff
    if phi_deg > 0.0:
        ten_max = min(tension_cutoff, coh / math.tan(math.radians(phi_deg)))

    fs = p[0] - p[2] * anphi + amc
    ft = p[2] - ten_max
    if fs > 0.0 and ft < 0.0:
        return sig.copy(), pls, 0

    bulk = lam + 2.0 * mu / 3.0
    a1 = bulk + 4.0 * mu / 3.0
    a2 = bulk - 2.0 * mu / 3.0

    factor = 1.0
    if eta > 0.0 and mu > 0.0:
        factor = dt / (dt + eta / mu)

    pa = math.sqrt(1.0 + anphi * anphi) + anphi
    ps = ten_max * anphi - amc
    h = p[2] - ten_max + pa * (p[0] - ps)

    if h < 0.0:
        failure = 1
        denom = a1 - a2 * anpsi + a1 * anphi * anpsi - a2 * anphi
        if denom == 0.0:
            return sig.copy(), pls, 0
        alam = fs / denom * factor
        p[0] -= alam * (a1 - a2 * anpsi)
        p[1] -= alam * (a2 - a2 * anpsi)
        p[2] -= alam * (a2 - a1 * anpsi)
        d0 = alam
        d1 = 0.0
        d2 = -alam * anpsi
    else:
        failure = 2
        if a1 == 0.0:
            return sig.copy(), pls, 0
        alam = ft / a1 * factor
        p[0] -= alam * a2
        p[1] -= alam * a2
        p[2] -= alam * a1
        d0 = 0.0
        d1 = 0.0
        d2 = alam

    dm = (d0 + d1 + d2) / 3.0
    depls = math.sqrt(2.0 / 3.0 * ((d0 - dm) ** 2 + (d1 - dm) ** 2 + (d2 - dm) ** 2))

    wn = np.empty(dim)
    if dim == 2:
        wn[0] = p[0]
        wn[1] = p[2]
    else:
        wn[0] = p[0]
        wn[1] = p[1]
        wn[2] = p[2]

    sig_new = np.zeros((dim, dim))
    for i in range(dim):
        for j in range(dim):
            acc = 0.0
            for k in range(dim):
                acc += vecs[i, k] * wn[k] * vecs[j, k]
            sig_new[i, j] = acc
    return sig_new, pls + depls, failure


@njit(cache=True)
def mohr_coulomb_cells_numba(
    s: np.ndarray,
    pls: np.ndarray,
    lam: np.ndarray,
    mu: np.ndarray,
    tension_cutoff: np.ndarray,
    cohesion0: np.ndarray,
    cohesion1: np.ndarray,
    pls0: np.ndarray,
    pls1: np.ndarray,
    phi_deg: np.ndarray,
    psi_deg: np.ndarray,
    eta: np.ndarray,
    dt: float,
):
    """Apply the return map to every cell. ``s`` is (ne, nstress) Voigt."""
    ne = s.shape[0]
    ns = s.shape[1]
    dim = 2 if ns == 3 else 3
    s_out = s.copy()
    pls_out = pls.copy()
    failure = np.zeros(ne, dtype=np.int64)
    T = np.zeros((dim, dim))
    for z in range(ne):
        if dim == 2:
            T[0, 0] = s[z, 0]
            T[1, 1] = s[z, 1]
            T[0, 1] = s[z, 2]
            T[1, 0] = s[z, 2]
        else:
            T[0, 0] = s[z, 0]
            T[1, 1] = s[z, 1]
            T[2, 2] = s[z, 2]
            T[0, 1] = s[z, 3]
            T[1, 0] = s[z, 3]
            T[1, 2] = s[z, 4]
            T[2, 1] = s[z, 4]
            T[0, 2] = s[z, 5]
            T[2, 0] = s[z, 5]
        Tn, pn, f = mohr_coulomb_return_numba(
            T, pls[z], lam[z], mu[z], tension_cutoff[z], cohesion0[z], cohesion1[z],
            pls0[z], pls1[z], phi_deg[z], psi_deg[z], eta[z], dt,
        )
        failure[z] = f
        if f == 0:
            continue
        pls_out[z] = pn
        if dim == 2:
            s_out[z, 0] = Tn[0, 0]
            s_out[z, 1] = Tn[1, 1]
            s_out[z, 2] = Tn[0, 1]
        else:
            s_out[z, 0] = Tn[0, 0]
            s_out[z, 1] = Tn[1, 1]
            s_out[z, 2] = Tn[2, 2]
            s_out[z, 3] = Tn[0, 1]
            s_out[z, 4] = Tn[1, 2]
            s_out[z, 5] = Tn[0, 2]
    return s_out, pls_out, failure
