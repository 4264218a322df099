"""
End-to-end: problem builder, initial fields, history output and the CLI.
"""

import numpy as np
import pytest

from laggeo.cli import main
from laggeo.config import RunConfig
from laggeo.errors import ConfigurationError
from laggeo.fem.mesh import structured_quad_mesh
from laggeo.initial import extension_velocity, lithostatic_stress, weak_zone_plastic_strain
from laggeo.output.history import StepRecord, read_history_csv, write_history_csv
from laggeo.plasticity import MohrCoulombPlasticity
from laggeo.problem import build_problem


def _small_config(dim=2):
    cfg = RunConfig()
    cfg.sim.dim = dim
    cfg.sim.max_tsteps = 4
    cfg.sim.print_every = 2
    cfg.mesh.nx, cfg.mesh.ny, cfg.mesh.nz = 4, 2, 2
    cfg.mesh.lx, cfg.mesh.ly, cfg.mesh.lz = 20.0e3, 10.0e3, 10.0e3
    cfg.bc.bc_ids = [1, 1, 2, 0] if dim == 2 else [1, 1, 2, 2, 3, 0]
    return cfg


def test_lithostatic_stress_grows_with_depth():
    mesh = structured_quad_mesh(2.0, 10.0, 1, 5)
    s = lithostatic_stress(mesh, np.full(mesh.ne, 2.0), 10.0, thickness=10.0)
    assert np.allclose(s[:, 0], s[:, 1])
    assert np.all(s[:, 2] == 0.0)
    # bottom cell centroid at depth 9 below the surface
    assert np.isclose(s[0, 0], -9.0 * 2.0 * 10.0)
    assert np.all(np.diff(s[:, 0]) > 0.0)


def test_weak_zone_and_extension_velocity():
    mesh = structured_quad_mesh(4.0, 4.0, 4, 4)
    pls = weak_zone_plastic_strain(mesh, (2.0, 2.0, 0.0), 0.8, 0.5)
    assert np.count_nonzero(pls) == 4
    assert set(pls.tolist()) == {0.0, 0.5}
    assert not weak_zone_plastic_strain(mesh, (2.0, 2.0, 0.0), 0.0, 0.5).any()

    v = extension_velocity(mesh.nodes, 3.0)
    assert np.allclose(v[mesh.sides[0], 0], 0.0)
    assert np.allclose(v[mesh.sides[1], 0], 3.0)
    assert np.all(v[:, 1] == 0.0)


def test_build_problem_wires_initial_fields():
    cfg = _small_config()
    cfg.control.lithostatic = True
    cfg.control.gravity_on = True
    cfg.bc.extension_velocity = 1.0e-9
    cfg.mat.plastic = True
    cfg.mat.weak_rad = 4.0e3
    cfg.mat.weak_x, cfg.mat.weak_y = 10.0e3, 5.0e3
    cfg.mat.ini_pls = 0.3

    problem = build_problem(cfg, verbose=False)
    assert isinstance(problem.plasticity, MohrCoulombPlasticity)
    assert np.all(problem.state.s[:, 0] < 0.0)
    assert problem.state.v[:, 0].max() == pytest.approx(1.0e-9)
    assert problem.plastic_strain.max() == 0.3
    assert np.allclose(problem.operator.body_acceleration, [0.0, -10.0])
    assert problem.driver.plastic_strain is problem.plastic_strain


def test_build_problem_rejects_material_mismatch():
    cfg = _small_config()
    cfg.mesh.layer_ids = [0, 1]
    cfg.mat.rho = [2700.0, 3000.0, 3300.0]
    with pytest.raises(ConfigurationError):
        build_problem(cfg, verbose=False)


@pytest.mark.parametrize("dim", [2, 3])
def test_short_run_with_gravity(dim):
    cfg = _small_config(dim)
    cfg.control.gravity_on = True
    cfg.control.lithostatic = True
    cfg.mat.plastic = True
    cfg.solver.use_numba = dim == 3
    problem = build_problem(cfg, verbose=False)
    res = problem.run()

    assert res.steps == 4
    assert np.all(np.isfinite(res.state.data))
    assert np.all(res.state.v[problem.operator.ess_nodes[0], 0] == 0.0)
    assert res.plastic_strain.shape == (problem.mesh.ne,)


def test_history_csv_roundtrip(tmp_path):
    history = [
        StepRecord(step=1, t=1.0, dt=1.0, dt_est=2.0, kinetic=0.5, internal=3.0, total=3.5, rollbacks=0),
        StepRecord(step=2, t=1.5, dt=0.5, dt_est=0.6, kinetic=0.4, internal=3.1, total=3.5, rollbacks=2, max_pls=0.1),
    ]
    path = tmp_path / "history.csv"
    write_history_csv(history, path)
    assert read_history_csv(path) == history


def test_cli_run_writes_history_and_plot(tmp_path, capsys):
    cfg = _small_config()
    cfg.sim.max_tsteps = 3
    cfg_path = tmp_path / "run.yaml"
    cfg.save_yaml(cfg_path)
    hist = tmp_path / "hist.csv"
    png = tmp_path / "hist.png"

    rc = main([str(cfg_path), "--history", str(hist), "--plot", str(png)])
    out = capsys.readouterr().out
    assert rc == 0
    assert "[run] done  steps=3" in out
    assert len(read_history_csv(hist)) == 3
    assert png.exists() and png.stat().st_size > 0


def test_cli_dry_run_and_bad_config(tmp_path, capsys):
    cfg = _small_config()
    good = tmp_path / "run.json"
    cfg.save_json(good)
    assert main([str(good), "--dry-run"]) == 0
    out = capsys.readouterr().out
    assert "[material] id=0" in out
    assert "2-D box 20 km x 10 km  cells=4x2" in out
    assert "mscale=1  winkler=off" in out

    cfg.solver.ode_solver_type = 9
    bad = tmp_path / "bad.json"
    cfg.save_json(bad)
    assert main([str(bad)]) == 1
    assert "Unknown ODE solver type" in capsys.readouterr().err


def test_prescribed_side_velocity_survives_steps():
    cfg = _small_config()
    cfg.bc.bc_ids = [1, 1, 2, 0]
    cfg.bc.bc_unit = "cm/yr"
    cfg.bc.bc_vxs = [-0.5, 0.5, 0.0, 0.0]
    cfg.sim.max_tsteps = 3
    problem = build_problem(cfg, verbose=False)
    mesh = problem.mesh
    v_right = 0.5 * 0.01 / (365.25 * 24.0 * 3600.0)
    assert np.allclose(problem.state.v[mesh.sides[1], 0], v_right)

    res = problem.run()
    assert res.steps == 3
    assert np.allclose(res.state.v[mesh.sides[0], 0], -v_right)
    assert np.allclose(res.state.v[mesh.sides[1], 0], v_right)
    assert np.all(res.state.v[mesh.sides[2], 1] == 0.0)
    # the box has widened
    assert res.state.x[mesh.sides[1], 0].min() > cfg.mesh.lx


def test_winkler_flat_run_keeps_bottom_heights():
    cfg = _small_config()
    cfg.bc.bc_ids = [1, 1, 0, 0]
    cfg.control.gravity_on = True
    cfg.control.lithostatic = True
    cfg.control.thickness = cfg.mesh.ly
    cfg.control.winkler_foundation = True
    cfg.control.winkler_flat = True
    cfg.control.mscale = 10.0
    problem = build_problem(cfg, verbose=False)
    assert problem.operator.foundation is not None
    assert problem.operator.mass_scale == 10.0
    assert problem.driver.flatten_bottom

    res = problem.run()
    bottom = problem.mesh.sides[2]
    assert res.steps == 4
    assert np.all(res.state.x[bottom, 1] == 0.0)
    assert np.all(np.isfinite(res.state.data))
