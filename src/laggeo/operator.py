"""Rate evaluator for the Lagrangian elasto-viscoplastic system.

:class:`LagrangianGeoOperator` turns a trial :class:`~laggeo.state.GlobalState`
and a trial step size into the time derivative of every block:

    dx/dt = v
    M_v dv/dt = -F.1 (+ damping, body force, foundation)   (per component, Dirichlet DOFs eliminated)
    M_e de/dt = F^T.v                              (per element)
    M_e ds/dt = sum_q tau_flux                     (per element and stress component)

``F`` is the force operator built from the stress flux in the material-point
cache. The cache is refreshed at most once per submitted trial state: a
private memo flag guards :meth:`update_quadrature_data` and is cleared on
every :meth:`mult` and on :meth:`reset_quadrature_data` (which the driver
calls after a rollback and the steppers call between stages).

The operator never accepts or rejects steps; it only reports the running
minimum stable step through :meth:`get_stable_step_estimate`.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from laggeo.config import LinearSolverType, SolverConfig
from laggeo.errors import ConfigurationError
from laggeo.fem.assembly import (
    ElementMassArena,
    det_and_inverse,
    element_jacobians,
    force_times_one,
    force_transpose_times,
    velocity_mass_matrix,
)
from laggeo.fem.bcs import apply_dirichlet
from laggeo.fem.foundation import WinklerFoundation
from laggeo.fem.mesh import Mesh
from laggeo.fem.shape import reference_element
from laggeo.kernels import select_qupdate
from laggeo.materials import MaterialTable
from laggeo.parallel import global_min, global_sum
from laggeo.quadrature_data import QuadratureData, reference_length
from laggeo.state import GlobalState
from laggeo.tensors import tensor_to_voigt


class _ComponentSolver:
    """Velocity mass solve for one component on its free DOFs."""

    def __init__(self, M: sp.csr_matrix, fixed: np.ndarray, kind: LinearSolverType, lumped: bool,
                 cg_tol: float, cg_max_iter: int):
        self.free, self.M_ff = apply_dirichlet(M, fixed)
        self.kind = kind
        self.lumped = lumped
        self.cg_tol = cg_tol
        self.cg_max_iter = cg_max_iter

        diag = self.M_ff.diagonal()
        if self.free.size and np.any(diag <= 0.0):
            raise ConfigurationError("Velocity mass matrix has a non-positive diagonal entry")
        self._diag_inv = 1.0 / diag if self.free.size else diag
        self._lu = None
        if not lumped and kind is LinearSolverType.DIRECT and self.free.size:
            self._lu = spla.splu(self.M_ff.tocsc())
        self._precond = sp.diags(self._diag_inv) if self.free.size else None

    def solve(self, rhs: np.ndarray) -> np.ndarray:
        out = np.zeros_like(rhs)
        if self.free.size == 0:
            return out
        b = rhs[self.free]
        if self.lumped:
            x = b * self._diag_inv
        elif self._lu is not None:
            x = self._lu.solve(b)
        else:
            x, info = spla.cg(
                self.M_ff, b,
                rtol=self.cg_tol, atol=0.0, maxiter=self.cg_max_iter, M=self._precond,
            )
            if info > 0:
                print(f"[solver] CG did not converge in {self.cg_max_iter} iterations (tol={self.cg_tol:.1e})")
        out[self.free] = x
        return out


class LagrangianGeoOperator:
    """Rate evaluator: ``mult(state, dt) -> rates``.

    Parameters
    ----------
    mesh : Mesh
        Mesh in its initial (reference) configuration.
    materials : MaterialTable
        Zone parameters; expanded to per-cell arrays once.
    ess_nodes : list of arrays
        Fixed-velocity node ids per component (see :func:`laggeo.fem.bcs.essential_nodes`).
    solver : SolverConfig
    q1d : int
        Gauss points per direction (1, 2 or 3).
    order : int
        Velocity polynomial order (1).
    body_acceleration : sequence of float, optional
        Uniform body acceleration added as ``M g`` to the velocity residual
        (with the unscaled mass).
    mass_scale : float
        Factor on the velocity mass matrix only. Density, the stable-step
        estimate and the body force keep the physical mass.
    foundation : WinklerFoundation, optional
        Bottom restoring traction added to the last velocity component.
    comm : optional
        mpi4py communicator for the collective reductions (None: serial).
    """

    def __init__(
        self,
        mesh: Mesh,
        materials: MaterialTable,
        ess_nodes: Sequence[np.ndarray],
        solver: SolverConfig,
        q1d: int = 2,
        order: int = 1,
        body_acceleration: Optional[Sequence[float]] = None,
        mass_scale: float = 1.0,
        foundation: Optional[WinklerFoundation] = None,
        comm=None,
    ):
        if order != 1:
            raise ConfigurationError(f"Unsupported velocity order {order}; only 1 is available")
        try:
            self.linear_solver = LinearSolverType(solver.linear_solver)
        except ValueError:
            raise ConfigurationError(f"Unknown linear solver: {solver.linear_solver!r}") from None
        if solver.zones_per_batch < 1:
            raise ConfigurationError(f"zones_per_batch must be >= 1, got {solver.zones_per_batch}")

        self.cfg = solver
        self.comm = comm
        self.dim = mesh.dim
        self.order = int(order)
        self.ref = reference_element(self.dim, q1d)
        self.variant = select_qupdate(self.dim, q1d, solver.use_numba)
        if body_acceleration is not None:
            body_acceleration = np.asarray(body_acceleration, dtype=float)
            if body_acceleration.shape != (self.dim,):
                raise ConfigurationError(
                    f"body_acceleration needs {self.dim} components, got shape {body_acceleration.shape}"
                )
        self.body_acceleration = body_acceleration
        if mass_scale <= 0.0:
            raise ConfigurationError(f"mass_scale must be positive, got {mass_scale}")
        self.mass_scale = float(mass_scale)
        self.foundation = foundation

        self._qdata_is_current = False
        self.min_detj = np.inf
        self.rebuild(mesh, materials, ess_nodes=ess_nodes)

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------

    def rebuild(
        self,
        mesh: Mesh,
        materials: Optional[MaterialTable] = None,
        density: Optional[np.ndarray] = None,
        ess_nodes: Optional[Sequence[np.ndarray]] = None,
    ) -> None:
        """(Re)build reference geometry, mass matrices, the element mass arena
        and solver factorizations for ``mesh`` in its reference configuration.

        Called at construction and after every remesh. ``density`` (per cell)
        replaces the zone reference density, so a remeshed, already deformed
        body keeps its mass. ``ess_nodes`` replaces the fixed-velocity node
        sets when the node numbering changed; otherwise the current sets are
        kept.
        """
        if materials is None:
            materials = self.materials.with_attributes(mesh.attributes)
        if ess_nodes is not None:
            ess_nodes = [np.asarray(n, dtype=np.int64) for n in ess_nodes]
            if len(ess_nodes) != self.dim:
                raise ConfigurationError(f"ess_nodes needs {self.dim} entries, got {len(ess_nodes)}")
            self.ess_nodes = ess_nodes
        self.mesh = mesh
        self.materials = materials
        self.zones = materials.cell_arrays()
        self.elems = np.ascontiguousarray(mesh.elems, dtype=np.int64)
        ne, nq, dim = mesh.ne, self.ref.nq, self.dim

        J0 = element_jacobians(mesh.nodes[self.elems], self.ref.dN)
        detJ0, jac0inv = det_and_inverse(J0)
        if np.any(detJ0 <= 0.0):
            bad = int(np.flatnonzero((detJ0 <= 0.0).any(axis=1))[0])
            raise ConfigurationError(f"Reference mesh has a non-positive Jacobian in element {bad}")

        detw = detJ0 * self.ref.weights[None, :]
        rho_cells = self.zones.rho if density is None else np.asarray(density, dtype=float)
        if rho_cells.shape != (ne,):
            raise ConfigurationError(f"density needs shape ({ne},), got {rho_cells.shape}")
        rho0w = rho_cells[:, None] * detw

        volume = global_sum(self.comm, float(detw.sum()))
        n_cells = global_sum(self.comm, float(ne))
        h0 = reference_length(volume, int(round(n_cells)), dim, self.order)

        self.qdata = QuadratureData(dim=dim, ne=ne, nq=nq)
        self.qdata.set_reference(jac0inv, rho0w, h0)

        M_phys = velocity_mass_matrix(mesh.nnode, self.elems, self.ref.N, rho0w, lumped=self.cfg.mass_lumping)
        self.nodal_mass = np.asarray(M_phys @ np.ones(mesh.nnode))
        self.Mv = (M_phys * self.mass_scale).tocsr() if self.mass_scale != 1.0 else M_phys
        self.arena = ElementMassArena(rho0w, basis=np.ones((nq, 1)))
        self._solvers = [
            _ComponentSolver(self.Mv, self.ess_nodes[c], self.linear_solver, self.cfg.mass_lumping,
                             self.cfg.cg_tol, self.cfg.cg_max_iter)
            for c in range(dim)
        ]
        if self.foundation is not None:
            self.foundation.set_mesh(mesh)
        self._qdata_is_current = False

    # ------------------------------------------------------------------
    # cache control
    # ------------------------------------------------------------------

    @property
    def quadrature_data_is_current(self) -> bool:
        return self._qdata_is_current

    def reset_quadrature_data(self) -> None:
        self._qdata_is_current = False

    def reset_step_estimate(self) -> None:
        self.qdata.reset_estimate()

    def bind_mesh_nodes(self, state: GlobalState) -> None:
        """Point the mesh node coordinates at ``state.x`` (a view, no copy)."""
        self.mesh.nodes = state.x

    def update_quadrature_data(self, state: GlobalState, dt: float) -> None:
        if self._qdata_is_current:
            return
        self._qdata_is_current = True

        qd = self.qdata
        z = self.zones
        dt_est, min_detj = self.variant.func(
            state.x, state.v, state.e, state.s,
            self.elems, self.ref.dN, self.ref.weights,
            qd.jac0inv, qd.rho0_detj0_w, qd.h0,
            z.gamma, z.lam, z.mu,
            self.order, float(self.cfg.cfl),
            bool(self.cfg.impose_visc), bool(self.cfg.use_vorticity), bool(self.cfg.corotational),
            int(self.cfg.zones_per_batch),
            qd.stress_flux, qd.stress_rate_flux, float(qd.dt_est),
        )
        qd.dt_est = float(dt_est)
        self.min_detj = float(min_detj)

    # ------------------------------------------------------------------
    # sub-solves
    # ------------------------------------------------------------------

    def solve_velocity(self, state: GlobalState, rates: GlobalState, dt: float) -> None:
        self.update_quadrature_data(state, dt)
        rhs = -force_times_one(self.qdata.stress_flux, self.ref.dN, self.elems, state.nnode)

        if self.cfg.damping != 0.0:
            direction = np.where(state.v >= 0.0, 1.0, -1.0)
            rhs -= self.cfg.damping * np.abs(rhs) * direction

        if self.body_acceleration is not None:
            rhs += np.outer(self.nodal_mass, self.body_acceleration)

        if self.foundation is not None:
            rhs[:, self.dim - 1] += self.foundation.nodal_force(state.x)

        dv = rates.v
        for c in range(self.dim):
            dv[:, c] = self._solvers[c].solve(rhs[:, c])

    def solve_energy(self, state: GlobalState, v: np.ndarray, rates: GlobalState, dt: float) -> None:
        self.update_quadrature_data(state, dt)
        e_rhs = force_transpose_times(self.qdata.stress_flux, self.ref.dN, self.elems, v)
        rates.e[:] = self.arena.solve(e_rhs[:, None])[:, 0]

    def solve_stress(self, state: GlobalState, rates: GlobalState, dt: float) -> None:
        self.update_quadrature_data(state, dt)
        tau_q = tensor_to_voigt(self.qdata.stress_rate_flux)  # (ne, nq, nstress)
        rates.s[:] = self.arena.project(tau_q)[:, 0, :]

    # ------------------------------------------------------------------
    # public evaluation
    # ------------------------------------------------------------------

    def mult(self, state: GlobalState, dt: float) -> GlobalState:
        """Time derivative of every block at ``state``."""
        self._qdata_is_current = False
        self.bind_mesh_nodes(state)
        rates = state.zeros_like()
        rates.x[:] = state.v
        self.solve_velocity(state, rates, dt)
        self.solve_energy(state, state.v, rates, dt)
        self.solve_stress(state, rates, dt)
        self._qdata_is_current = False
        return rates

    def get_stable_step_estimate(self, state: GlobalState, dt: float) -> float:
        """Refresh the cache at ``state`` and return the global minimum stable step."""
        self.bind_mesh_nodes(state)
        self._qdata_is_current = False
        self.update_quadrature_data(state, dt)
        return global_min(self.comm, self.qdata.dt_est)

    # ------------------------------------------------------------------
    # diagnostics
    # ------------------------------------------------------------------

    def kinetic_energy(self, state: GlobalState) -> float:
        v = state.v
        ke = 0.5 * sum(float(v[:, c] @ (self.Mv @ v[:, c])) for c in range(self.dim))
        return global_sum(self.comm, ke)

    def internal_energy(self, state: GlobalState) -> float:
        ie = float(np.sum(self.qdata.rho0_detj0_w.sum(axis=1) * state.e))
        return global_sum(self.comm, ie)

    def total_energy(self, state: GlobalState) -> float:
        return self.kinetic_energy(state) + self.internal_energy(state)

    def _current_detw(self, state: GlobalState) -> np.ndarray:
        J = element_jacobians(state.x[self.elems], self.ref.dN)
        detJ, _ = det_and_inverse(J)
        return detJ * self.ref.weights[None, :]

    def total_volume(self, state: GlobalState) -> float:
        return global_sum(self.comm, float(self._current_detw(state).sum()))

    def cell_density(self, state: GlobalState) -> np.ndarray:
        """Cell-average density: reference mass over current volume."""
        return self.qdata.rho0_detj0_w.sum(axis=1) / self._current_detw(state).sum(axis=1)

    def cell_mass(self) -> np.ndarray:
        return self.qdata.rho0_detj0_w.sum(axis=1)
