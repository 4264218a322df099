"""
Adaptive step driver: acceptance rule, rollback exactness, dt collapse,
inversion guard, determinism and the checkpoint / remesh cadences.
"""

import numpy as np
import pytest

from laggeo.config import ControlConfig, SolverConfig
from laggeo.driver import AdaptiveStepDriver
from laggeo.errors import StepCollapseError
from laggeo.ode import make_ode_solver
from laggeo.plasticity import IdentityPlasticity
from laggeo.remesh import NullRemesher

from conftest import hot_cell_state, make_operator


def _stable_dt(op, state):
    op.reset_step_estimate()
    return op.get_stable_step_estimate(state, 0.0)


def _closed_box_driver(t_final_steps=8.0, init_factor=None, ode=7, **kwargs):
    op, state = make_operator(bc_ids=[1, 1, 2, 2], solver=SolverConfig(linear_solver="direct"))
    hot_cell_state(state)
    dt0 = _stable_dt(op, state)
    control = kwargs.pop("control", ControlConfig())
    if init_factor is not None:
        control.init_dt = init_factor * dt0
    driver = AdaptiveStepDriver(
        op, make_ode_solver(ode), state, t_final=t_final_steps * dt0, control=control, **kwargs
    )
    return driver, dt0


def test_initial_dt_defaults_to_stable_estimate():
    driver, dt0 = _closed_box_driver()
    assert driver.initial_dt() == dt0


def test_accepted_steps_are_stable_and_reach_t_final():
    driver, dt0 = _closed_box_driver(t_final_steps=12.0)
    res = driver.run()

    assert res.steps == len(res.history) > 0
    assert res.t == driver.t_final
    for rec in res.history:
        assert rec.dt_est >= rec.dt
    assert np.isclose(sum(res.accepted_dts), driver.t_final)
    assert [r.step for r in res.history] == list(range(1, res.steps + 1))


def test_max_steps_stops_early():
    driver, _ = _closed_box_driver(t_final_steps=100.0, max_steps=3)
    res = driver.run()
    assert res.steps == 3
    assert res.t < driver.t_final


def test_rollback_restores_exact_snapshot():
    seen = []

    def on_rollback(drv):
        seen.append((drv.state.data.copy(), drv.t, drv.operator.quadrature_data_is_current, drv.dt))

    driver, dt0 = _closed_box_driver(init_factor=4.0, on_rollback=on_rollback)
    initial = driver.state.data.copy()
    res = driver.run()

    assert res.rollbacks >= 1
    assert res.rollbacks == sum(r.rollbacks for r in res.history)
    assert res.history[0].rollbacks >= 1

    data, t, fresh, dt = seen[0]
    assert np.array_equal(data, initial)
    assert t == 0.0
    assert fresh is False
    assert np.isclose(dt, 2.0 * dt0)


def test_step_collapse_flushes_checkpoint():
    calls = []

    def checkpoint(step, t, state):
        calls.append((step, t, state.data.copy()))

    control = ControlConfig()
    op, state = make_operator(nx=1, ny=1, bc_ids=[3, 3, 3, 3], solver=SolverConfig(linear_solver="direct"))
    state.e[:] = 1.0
    initial = state.data.copy()
    # fully clamped box: the state never changes, so any dt above the estimate is rejected
    control.init_dt = 100.0 * _stable_dt(op, state)
    control.dt_floor = 0.3 * control.init_dt
    driver = AdaptiveStepDriver(op, make_ode_solver(7), state, t_final=1.0e6, control=control, checkpoint=checkpoint)

    with pytest.raises(StepCollapseError) as exc:
        driver.run()

    assert exc.value.step == 1
    assert exc.value.dt < control.dt_floor
    assert driver.rollbacks == 1
    assert len(calls) == 1
    assert calls[0][0] == 0
    assert np.array_equal(calls[0][2], initial)


def test_inverting_element_is_rolled_back():
    solver = SolverConfig(linear_solver="direct", impose_visc=False)
    op, state = make_operator(nx=1, ny=1, solver=solver)
    # top-right corner driven hard towards the opposite corner
    state.v[2] = [-10.0, -10.0]
    control = ControlConfig(init_dt=0.2)
    driver = AdaptiveStepDriver(op, make_ode_solver(7), state, t_final=1.0, max_steps=2, control=control)
    res = driver.run()

    assert res.rollbacks >= 1
    assert res.steps == 2
    assert op.min_detj > 0.0


def test_runs_are_bitwise_reproducible():
    r1 = _closed_box_driver(t_final_steps=6.0, init_factor=3.0)[0].run()
    r2 = _closed_box_driver(t_final_steps=6.0, init_factor=3.0)[0].run()
    assert np.array_equal(r1.state.data, r2.state.data)
    assert r1.accepted_dts == r2.accepted_dts
    assert r1.rollbacks == r2.rollbacks


def test_identity_plasticity_changes_nothing():
    plain = _closed_box_driver(t_final_steps=5.0)[0].run()
    ident = _closed_box_driver(t_final_steps=5.0, plasticity=IdentityPlasticity())[0].run()
    assert np.array_equal(plain.state.data, ident.state.data)
    assert plain.accepted_dts == ident.accepted_dts


@pytest.mark.parametrize("ode", [1, 2, 3, 4])
def test_butcher_schemes_run(ode):
    driver, _ = _closed_box_driver(t_final_steps=4.0, ode=ode)
    res = driver.run()
    assert res.t == driver.t_final
    assert np.all(np.isfinite(res.state.data))


def test_checkpoint_and_remesh_cadence():
    steps = []
    remesher = NullRemesher()
    driver, _ = _closed_box_driver(
        t_final_steps=100.0,
        max_steps=5,
        checkpoint=lambda step, t, state: steps.append(step),
        checkpoint_steps=2,
        remesher=remesher,
        remesh_steps=2,
    )
    mass0 = driver.operator.cell_mass().sum()
    res = driver.run()

    assert steps == [2, 4]
    assert remesher.calls == 2
    assert res.steps == 5
    assert np.isclose(driver.operator.cell_mass().sum(), mass0)
    assert np.shares_memory(driver.operator.mesh.nodes, driver.state.data)


def test_step_lines_printed(capsys):
    driver, _ = _closed_box_driver(t_final_steps=3.0, print_every=1, year=True)
    driver.run()
    out = capsys.readouterr().out
    assert "step=00001" in out
    assert " yr " in out


def test_inviscid_run_closes_energy_budget():
    op, state = make_operator(bc_ids=[1, 1, 2, 2], solver=SolverConfig(linear_solver="direct", impose_visc=False))
    hot_cell_state(state)
    e0 = op.total_energy(state)
    dt0 = _stable_dt(op, state)
    control = ControlConfig(init_dt=3.0 * dt0)
    res = AdaptiveStepDriver(op, make_ode_solver(7), state, t_final=15.0 * dt0, control=control).run()

    assert res.rollbacks >= 1
    assert res.history[-1].kinetic > 0.0
    assert np.isclose(op.total_energy(res.state), e0, rtol=1e-9, atol=0.0)
    assert np.isclose(res.history[-1].total, e0, rtol=1e-9, atol=0.0)


def test_remesh_rederives_held_nodes():
    driver, _ = _closed_box_driver(
        t_final_steps=100.0,
        init_factor=0.5,
        max_steps=3,
        remesher=NullRemesher(bc_ids=[3, 3, 3, 3]),
        remesh_steps=2,
    )
    res = driver.run()
    op = driver.operator
    boundary = set(np.concatenate([op.mesh.sides[k] for k in range(4)]).tolist())

    assert res.steps == 3
    for c in range(2):
        assert set(op.ess_nodes[c].tolist()) == boundary
    rates = op.mult(res.state, res.dt)
    assert np.all(rates.v[sorted(boundary)] == 0.0)


class _OversizedStepRemesher(NullRemesher):
    """Hands the driver an oversized dt for the step after the remesh."""

    def __init__(self, next_dt):
        super().__init__()
        self.next_dt = next_dt
        self.driver = None

    def remesh(self, mesh, state, fields):
        self.driver.dt = self.next_dt
        self.driver.remesh_steps = 0
        return super().remesh(mesh, state, fields)


def test_first_step_after_remesh_is_accepted_unchecked():
    op, state = make_operator(bc_ids=[1, 1, 2, 2], solver=SolverConfig(linear_solver="direct"))
    hot_cell_state(state)
    dt0 = _stable_dt(op, state)
    remesher = _OversizedStepRemesher(3.0 * dt0)
    driver = AdaptiveStepDriver(
        op, make_ode_solver(7), state, t_final=100.0 * dt0, max_steps=2,
        control=ControlConfig(init_dt=0.5 * dt0), remesher=remesher, remesh_steps=1,
    )
    remesher.driver = driver
    res = driver.run()

    assert remesher.calls == 1
    assert res.rollbacks == 0
    after = res.history[1]
    assert after.dt == 3.0 * dt0
    assert after.dt_est < after.dt
    assert not driver.mesh_changed


class _RecordingPlasticity(IdentityPlasticity):
    def __init__(self):
        self.dts = []

    def return_map(self, stress, plastic_strain, zones, dt):
        self.dts.append(dt)
        return super().return_map(stress, plastic_strain, zones, dt)


def test_return_map_relaxes_over_the_trial_step():
    plasticity = _RecordingPlasticity()
    driver, dt0 = _closed_box_driver(t_final_steps=6.0, init_factor=2.0, plasticity=plasticity)
    res = driver.run()

    assert res.rollbacks >= 1
    assert plasticity.dts[0] == 2.0 * dt0
    assert len(plasticity.dts) == res.steps + res.rollbacks
    assert set(res.accepted_dts) <= set(plasticity.dts)
