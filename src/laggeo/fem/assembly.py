"""Element geometry, mass matrices and the force operator.

All routines are vectorised over elements and quadrature points. The force
operator is never stored as a matrix: its action ``F 1`` (nodal forces) and
transpose action ``F^T v`` (energy rates) are evaluated directly from the
stress flux cached in :class:`~laggeo.quadrature_data.QuadratureData`.

Notes
-----
* Velocity lives on nodes (Q1, one DOF per node and component); energy and
  stress are cell-wise constant (L2, order 0).
* Index conventions: ``e`` element, ``q`` quadrature point, ``a`` local
  node, ``i``/``j`` spatial components.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
import scipy.sparse as sp


def element_jacobians(coords: np.ndarray, dN: np.ndarray) -> np.ndarray:
    """J[e, q, i, j] = sum_a x[e, a, i] dN[q, a, j]."""
    return np.einsum("eai,qaj->eqij", coords, dN, optimize=True)


def det_and_inverse(J: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Batched determinant and inverse of 2x2 / 3x3 matrices via the adjugate.

    Singular matrices produce inf/nan entries instead of raising; callers
    decide what a non-positive determinant means.
    """
    dim = J.shape[-1]
    adj = np.empty_like(J)
    if dim == 2:
        a, b = J[..., 0, 0], J[..., 0, 1]
        c, d = J[..., 1, 0], J[..., 1, 1]
        det = a * d - b * c
        adj[..., 0, 0] = d
        adj[..., 0, 1] = -b
        adj[..., 1, 0] = -c
        adj[..., 1, 1] = a
    else:
        adj[..., 0, 0] = J[..., 1, 1] * J[..., 2, 2] - J[..., 1, 2] * J[..., 2, 1]
        adj[..., 0, 1] = J[..., 0, 2] * J[..., 2, 1] - J[..., 0, 1] * J[..., 2, 2]
        adj[..., 0, 2] = J[..., 0, 1] * J[..., 1, 2] - J[..., 0, 2] * J[..., 1, 1]
        adj[..., 1, 0] = J[..., 1, 2] * J[..., 2, 0] - J[..., 1, 0] * J[..., 2, 2]
        adj[..., 1, 1] = J[..., 0, 0] * J[..., 2, 2] - J[..., 0, 2] * J[..., 2, 0]
        adj[..., 1, 2] = J[..., 0, 2] * J[..., 1, 0] - J[..., 0, 0] * J[..., 1, 2]
        adj[..., 2, 0] = J[..., 1, 0] * J[..., 2, 1] - J[..., 1, 1] * J[..., 2, 0]
        adj[..., 2, 1] = J[..., 0, 1] * J[..., 2, 0] - J[..., 0, 0] * J[..., 2, 1]
        adj[..., 2, 2] = J[..., 0, 0] * J[..., 1, 1] - J[..., 0, 1] * J[..., 1, 0]
        det = (
            J[..., 0, 0] * adj[..., 0, 0]
            + J[..., 0, 1] * adj[..., 1, 0]
            + J[..., 0, 2] * adj[..., 2, 0]
        )
    with np.errstate(divide="ignore", invalid="ignore"):
        inv = adj / det[..., None, None]
    return det, inv


def velocity_mass_matrix(
    nnode: int,
    elems: np.ndarray,
    N: np.ndarray,
    rho0_detj0_w: np.ndarray,
    lumped: bool = False,
) -> sp.csr_matrix:
    """Scalar nodal mass M_ab = sum_e,q rho0 detJ0 w N_a N_b.

    The same matrix serves every velocity component. With ``lumped=True``
    the row sums are placed on the diagonal.
    """
    Me = np.einsum("eq,qa,qb->eab", rho0_detj0_w, N, N, optimize=True)
    if lumped:
        diag = np.zeros(nnode, dtype=float)
        np.add.at(diag, elems, Me.sum(axis=2))
        return sp.diags(diag, format="csr")

    nen = elems.shape[1]
    rows = np.repeat(elems, nen, axis=1).ravel()
    cols = np.tile(elems, (1, nen)).ravel()
    M = sp.coo_matrix((Me.ravel(), (rows, cols)), shape=(nnode, nnode))
    return M.tocsr()


def force_times_one(stress_flux: np.ndarray, dN: np.ndarray, elems: np.ndarray, nnode: int) -> np.ndarray:
    """Nodal force F.1: f[a, i] = sum_e,q,j SF[e,q,i,j] dN[q,a,j]. Shape (nnode, dim)."""
    loc = np.einsum("eqij,qaj->eai", stress_flux, dN, optimize=True)
    f = np.zeros((nnode, stress_flux.shape[-1]), dtype=float)
    np.add.at(f, elems, loc)
    return f


def force_transpose_times(stress_flux: np.ndarray, dN: np.ndarray, elems: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Energy residual F^T.v per element, shape (ne,)."""
    loc = np.einsum("eqij,qaj->eai", stress_flux, dN, optimize=True)
    return np.einsum("eai,eai->e", loc, v[elems], optimize=True)


class ElementMassArena:
    """Per-element inverse mass matrices of the discontinuous (L2) space.

    The arena holds one small dense inverse per element, indexed by element
    id, shape ``(ne, ndof, ndof)``. It is built once per mesh and rebuilt
    through :meth:`rebuild` when the mesh changes (remesh/remap).
    """

    def __init__(self, rho0_detj0_w: np.ndarray, basis: np.ndarray):
        self.basis = np.asarray(basis, dtype=float)  # (nq, ndof)
        self.inv = np.empty((0, 0, 0), dtype=float)
        self.rebuild(rho0_detj0_w)

    def rebuild(self, rho0_detj0_w: np.ndarray) -> None:
        Me = np.einsum("eq,qk,ql->ekl", rho0_detj0_w, self.basis, self.basis, optimize=True)
        self.inv = np.linalg.inv(Me)

    def solve(self, rhs: np.ndarray) -> np.ndarray:
        """Apply Me^-1 per element. rhs has shape (ne, ndof) or (ne, ndof, ncomp)."""
        if rhs.ndim == 2:
            return np.einsum("ekl,el->ek", self.inv, rhs, optimize=True)
        return np.einsum("ekl,elc->ekc", self.inv, rhs, optimize=True)

    def project(self, qvals: np.ndarray) -> np.ndarray:
        """Project per-point integrals onto the L2 basis: Me^-1 sum_q phi_q qvals[e,q,...]."""
        rhs = np.einsum("qk,eq...->ek...", self.basis, qvals, optimize=True)
        return self.solve(rhs)
