"""Adaptive explicit time loop with rollback.

Each trial step:

1. clip dt so the last step lands exactly on ``t_final``,
2. snapshot state, time and plastic strain,
3. reset the running stable-step minimum and take the step,
4. apply the plasticity return map (if any) and, with a flat Winkler
   foundation, reset the bottom heights,
5. query the stable-step estimate at the new state.

If the estimate is smaller than the dt just taken the step is rejected: dt is
halved, the snapshot restored in place, the material-point cache invalidated
and the same step index retried. Once dt drops below ``dt_floor`` the run
aborts with :class:`~laggeo.errors.StepCollapseError` after flushing the
checkpoint callback with the last accepted state. An estimate comfortably
above dt (``grow_threshold``) lets dt grow slowly (``dt_grow``) for the next
step.

The first step after a remesh is accepted whatever the estimate says.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from laggeo.config import ControlConfig
from laggeo.errors import ConfigurationError, StepCollapseError
from laggeo.output.history import SECONDS_PER_YEAR, StepRecord
from laggeo.parallel import comm_rank
from laggeo.state import GlobalState


@dataclass
class RunResult:
    state: GlobalState
    t: float
    steps: int
    rollbacks: int
    dt: float
    history: List[StepRecord] = field(default_factory=list)
    plastic_strain: Optional[np.ndarray] = None

    @property
    def accepted_dts(self) -> List[float]:
        return [r.dt for r in self.history]


class AdaptiveStepDriver:
    def __init__(
        self,
        operator,
        ode_solver,
        state: GlobalState,
        t_final: float,
        t0: float = 0.0,
        max_steps: int = -1,
        control: Optional[ControlConfig] = None,
        plasticity=None,
        plastic_strain: Optional[np.ndarray] = None,
        remesher=None,
        remesh_steps: int = 0,
        checkpoint: Optional[Callable[[int, float, GlobalState], None]] = None,
        checkpoint_steps: int = 0,
        on_rollback: Optional[Callable[["AdaptiveStepDriver"], None]] = None,
        print_every: int = 0,
        year: bool = False,
        debug_dt: bool = False,
    ):
        self.operator = operator
        self.ode = ode_solver.init(operator)
        self.state = state
        self.t = float(t0)
        self.t_final = float(t_final)
        self.max_steps = int(max_steps)
        self.control = control if control is not None else ControlConfig()
        self.plasticity = plasticity
        if plastic_strain is None:
            plastic_strain = np.zeros(state.ne, dtype=float)
        self.plastic_strain = np.asarray(plastic_strain, dtype=float)
        if self.plastic_strain.shape != (state.ne,):
            raise ConfigurationError(
                f"plastic_strain needs shape ({state.ne},), got {self.plastic_strain.shape}"
            )
        self.remesher = remesher
        self.remesh_steps = int(remesh_steps)
        self.checkpoint = checkpoint
        self.checkpoint_steps = int(checkpoint_steps)
        self.on_rollback = on_rollback
        self.print_every = int(print_every)
        self.year = bool(year)
        self.debug_dt = bool(debug_dt)
        self.flatten_bottom = bool(
            self.control.winkler_foundation and self.control.winkler_flat
            and getattr(operator, "foundation", None) is not None
        )
        # only rank 0 prints
        self.root = comm_rank(getattr(operator, "comm", None)) == 0

        self.dt: Optional[float] = None
        self.steps = 0
        self.rollbacks = 0
        self.mesh_changed = False
        self.history: List[StepRecord] = []

    # ------------------------------------------------------------------

    def _time_str(self, t: float) -> str:
        if self.year:
            return f"{t / SECONDS_PER_YEAR:.4e} yr"
        return f"{t:.4e} s"

    def initial_dt(self) -> float:
        if self.control.init_dt is not None:
            return float(self.control.init_dt)
        op = self.operator
        op.reset_step_estimate()
        dt = op.get_stable_step_estimate(self.state, 0.0)
        if not (np.isfinite(dt) and dt > 0.0):
            raise ConfigurationError(
                f"Cannot derive an initial dt from the stable-step estimate ({dt}); set control.init_dt"
            )
        return float(dt)

    def _snapshot(self):
        return self.state.copy(), self.t, self.plastic_strain.copy()

    def _restore(self, snap) -> None:
        state, t, pls = snap
        self.state.assign(state)
        self.t = t
        self.plastic_strain[:] = pls
        self.operator.reset_quadrature_data()
        self.operator.bind_mesh_nodes(self.state)

    def _record(self, dt: float, dt_est: float, step_rollbacks: int) -> StepRecord:
        op = self.operator
        ke = op.kinetic_energy(self.state)
        ie = op.internal_energy(self.state)
        rec = StepRecord(
            step=self.steps,
            t=self.t,
            dt=dt,
            dt_est=dt_est,
            kinetic=ke,
            internal=ie,
            total=ke + ie,
            rollbacks=step_rollbacks,
            max_pls=float(self.plastic_strain.max()) if self.plastic_strain.size else 0.0,
        )
        self.history.append(rec)
        return rec

    def _remesh(self) -> None:
        op = self.operator
        fields = {
            "plastic_strain": self.plastic_strain,
            "density": op.cell_density(self.state),
        }
        res = self.remesher.remesh(op.mesh, self.state, fields)
        self.state = res.state
        self.plastic_strain = np.asarray(
            res.fields.get("plastic_strain", np.zeros(self.state.ne)), dtype=float
        ).copy()
        op.rebuild(res.mesh, density=res.fields.get("density"), ess_nodes=res.ess_nodes)
        op.bind_mesh_nodes(self.state)
        self.mesh_changed = True
        if self.root:
            print(f"[remesh] step={self.steps:05d} t={self._time_str(self.t)} ne={res.mesh.ne}")

    # ------------------------------------------------------------------

    def run(self) -> RunResult:
        op = self.operator
        ctl = self.control
        if self.dt is None:
            self.dt = self.initial_dt()

        op.bind_mesh_nodes(self.state)
        step_rollbacks = 0
        last_step = False
        while not last_step:
            if 0 <= self.max_steps <= self.steps:
                break
            dt = self.dt
            if self.t + dt >= self.t_final:
                dt = self.t_final - self.t
                last_step = True
            if dt <= 0.0:
                break

            snap = self._snapshot()
            op.reset_step_estimate()
            self.t = self.ode.step(self.state, self.t, dt)

            if self.plasticity is not None:
                # viscoplastic relaxation spans the step just taken; a rejected
                # step is restored from the snapshot so only accepted dts count
                s_new, pls_new = self.plasticity.return_map(self.state.s, self.plastic_strain, op.zones, dt)
                self.state.s[:] = s_new
                self.plastic_strain[:] = pls_new
                op.reset_quadrature_data()

            if self.flatten_bottom:
                op.foundation.flatten(self.state.x, self.state.x0)
                op.reset_quadrature_data()

            dt_est = op.get_stable_step_estimate(self.state, dt)

            if self.mesh_changed:
                # first step on a new mesh is accepted without the estimate
                # check; the estimate still drives the next dt below
                self.mesh_changed = False
            elif dt_est < dt:
                new_dt = dt * ctl.dt_shrink
                if new_dt < ctl.dt_floor:
                    self._restore(snap)
                    if self.checkpoint is not None:
                        self.checkpoint(self.steps, self.t, self.state)
                    raise StepCollapseError(self.steps + 1, self.t, new_dt, ctl.dt_floor)
                self._restore(snap)
                self.dt = new_dt
                self.rollbacks += 1
                step_rollbacks += 1
                last_step = False
                if self.debug_dt and self.root:
                    print(
                        f"[dt] repeating step {self.steps + 1} with dt={new_dt:.6e} "
                        f"(estimate {dt_est:.6e} < {dt:.6e})"
                    )
                if self.on_rollback is not None:
                    self.on_rollback(self)
                continue

            self.steps += 1
            if last_step:
                self.t = self.t_final
            rec = self._record(dt, dt_est, step_rollbacks)
            step_rollbacks = 0

            if dt_est > ctl.grow_threshold * dt:
                self.dt = dt * ctl.dt_grow
                if self.debug_dt and self.root:
                    print(f"[dt] growing to {self.dt:.6e} (estimate {dt_est:.6e})")

            if self.root and (last_step or (self.print_every > 0 and self.steps % self.print_every == 0)):
                print(
                    f"step={self.steps:05d} t={self._time_str(self.t)} dt={dt:.6e} "
                    f"|e|={np.linalg.norm(self.state.e):.4e}  KE={rec.kinetic:.4e}  IE={rec.internal:.4e}"
                )

            if self.checkpoint is not None and self.checkpoint_steps > 0 and self.steps % self.checkpoint_steps == 0:
                self.checkpoint(self.steps, self.t, self.state)

            if (
                not last_step
                and self.remesher is not None
                and self.remesh_steps > 0
                and self.steps % self.remesh_steps == 0
            ):
                self._remesh()

        return RunResult(
            state=self.state,
            t=self.t,
            steps=self.steps,
            rollbacks=self.rollbacks,
            dt=float(self.dt),
            history=self.history,
            plastic_strain=self.plastic_strain,
        )
