"""Explicit time integrators.

All steppers share a small API::

    solver.init(operator)
    t_new = solver.step(state, t, dt)   # advances ``state`` in place

``state`` is modified in place so that views held by the caller (e.g. the
driver's mesh binding) stay valid.

Available schemes (codes as used in the run configuration):

1 forward Euler, 2 RK2 midpoint, 3 RK3 SSP, 4 classical RK4
    Generic Butcher-tableau Runge-Kutta using ``operator.mult``.
7 RK2-average (default)
    Two-stage midpoint scheme specialised for the Lagrangian system: the
    energy and position updates use the averaged velocity
    ``V = v0 + dt/2 dv/dt``. With viscosity and plasticity off it conserves
    total energy exactly up to the mass-solve tolerance.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from laggeo.config import ODESolverType
from laggeo.errors import ConfigurationError
from laggeo.state import GlobalState


class ODESolver:
    name = "base"

    def __init__(self):
        self.op = None

    def init(self, operator) -> "ODESolver":
        self.op = operator
        return self

    def step(self, state: GlobalState, t: float, dt: float) -> float:
        raise NotImplementedError


class ExplicitRKSolver(ODESolver):
    """Runge-Kutta scheme given by a lower-triangular Butcher tableau."""

    def __init__(self, a: Sequence[Sequence[float]], b: Sequence[float], c: Sequence[float], name: str):
        super().__init__()
        self.a = [list(row) for row in a]
        self.b = list(b)
        self.c = list(c)
        self.name = name
        if not (len(self.a) == len(self.b) == len(self.c)):
            raise ConfigurationError(f"Inconsistent Butcher tableau for {name}")

    def step(self, state: GlobalState, t: float, dt: float) -> float:
        op = self.op
        k = []
        for i in range(len(self.b)):
            Y = state.copy()
            for j in range(i):
                if self.a[i][j] != 0.0:
                    Y.data += dt * self.a[i][j] * k[j].data
            k.append(op.mult(Y, dt))

        for i, bi in enumerate(self.b):
            if bi != 0.0:
                state.data += dt * bi * k[i].data
        op.reset_quadrature_data()
        op.bind_mesh_nodes(state)
        return t + dt


def forward_euler() -> ExplicitRKSolver:
    return ExplicitRKSolver([[0.0]], [1.0], [0.0], "ForwardEuler")


def rk2_midpoint() -> ExplicitRKSolver:
    return ExplicitRKSolver([[0.0, 0.0], [0.5, 0.0]], [0.0, 1.0], [0.0, 0.5], "RK2")


def rk3_ssp() -> ExplicitRKSolver:
    return ExplicitRKSolver(
        [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.25, 0.25, 0.0]],
        [1.0 / 6.0, 1.0 / 6.0, 2.0 / 3.0],
        [0.0, 1.0, 0.5],
        "RK3SSP",
    )


def rk4() -> ExplicitRKSolver:
    return ExplicitRKSolver(
        [[0.0, 0.0, 0.0, 0.0], [0.5, 0.0, 0.0, 0.0], [0.0, 0.5, 0.0, 0.0], [0.0, 0.0, 1.0, 0.0]],
        [1.0 / 6.0, 1.0 / 3.0, 1.0 / 3.0, 1.0 / 6.0],
        [0.0, 0.5, 0.5, 1.0],
        "RK4",
    )


class RK2AvgSolver(ODESolver):
    name = "RK2Avg"

    def _stage(self, S: GlobalState, v0: np.ndarray, dS: GlobalState, dt: float) -> None:
        op = self.op
        op.bind_mesh_nodes(S)
        op.solve_velocity(S, dS, dt)
        V = v0 + 0.5 * dt * dS.v
        op.solve_energy(S, V, dS, dt)
        op.solve_stress(S, dS, dt)
        dS.x[:] = V

    def step(self, state: GlobalState, t: float, dt: float) -> float:
        op = self.op
        S0 = state.copy()
        v0 = S0.v
        dS = state.zeros_like()

        # 1. rates at S0
        op.reset_quadrature_data()
        self._stage(state, v0, dS, dt)

        # 2. rates at the half step
        state.data[:] = S0.data + 0.5 * dt * dS.data
        op.reset_quadrature_data()
        self._stage(state, v0, dS, dt)

        # 3. full update with the second-stage rates
        state.data[:] = S0.data + dt * dS.data
        op.reset_quadrature_data()
        op.bind_mesh_nodes(state)
        return t + dt


_FACTORIES = {
    ODESolverType.FORWARD_EULER: forward_euler,
    ODESolverType.RK2: rk2_midpoint,
    ODESolverType.RK3_SSP: rk3_ssp,
    ODESolverType.RK4: rk4,
    ODESolverType.RK2_AVG: RK2AvgSolver,
}


def make_ode_solver(code: int) -> ODESolver:
    try:
        kind = ODESolverType(int(code))
    except ValueError:
        raise ConfigurationError(f"Unknown ODE solver type: {code}") from None
    return _FACTORIES[kind]()
