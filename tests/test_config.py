"""
RunConfig serialization and validation.

Round-trips through dict/JSON/YAML and checks that every inconsistent or
unknown option aborts with ConfigurationError before any solver is built.
"""

import pytest

from laggeo.config import RunConfig
from laggeo.errors import ConfigurationError, LaggeoError
from laggeo.kernels import QUPDATE_VARIANTS, select_qupdate
from laggeo.materials import MaterialTable
from laggeo.ode import RK2AvgSolver, make_ode_solver


def _custom_config():
    cfg = RunConfig()
    cfg.sim.dim = 2
    cfg.sim.t_final = 3.0e5
    cfg.sim.year = True
    cfg.solver.ode_solver_type = 4
    cfg.solver.linear_solver = "direct"
    cfg.control.init_dt = 0.5
    cfg.mesh.nx = 6
    cfg.mesh.ny = 3
    cfg.mesh.layer_ids = [0, 1, 1]
    cfg.mat.rho = [2700.0, 3300.0]
    cfg.bc.bc_ids = [2, 1, 1, 0]
    return cfg


def test_dict_roundtrip():
    cfg = _custom_config()
    cfg2 = RunConfig.from_dict(cfg.to_dict())
    assert cfg2.to_dict() == cfg.to_dict()
    assert cfg2.mesh.layer_ids == [0, 1, 1]
    assert cfg2.control.init_dt == 0.5


def test_json_and_yaml_roundtrip(tmp_path):
    cfg = _custom_config()
    cfg.save_json(tmp_path / "run.json")
    cfg.save_yaml(tmp_path / "run.yaml")

    from_json = RunConfig.load_json(tmp_path / "run.json")
    from_yaml = RunConfig.load_yaml(tmp_path / "run.yaml")
    assert from_json.to_dict() == cfg.to_dict()
    assert from_yaml.to_dict() == cfg.to_dict()


def test_partial_dict_uses_defaults():
    cfg = RunConfig.from_dict({"solver": {"cfl": 0.1}})
    assert cfg.solver.cfl == 0.1
    assert cfg.solver.ode_solver_type == 7
    assert cfg.control.dt_floor == 1.0e-38
    assert cfg.validate() is cfg


def test_unknown_section_and_option_rejected():
    with pytest.raises(ConfigurationError, match="section"):
        RunConfig.from_dict({"solvr": {}})
    with pytest.raises(ConfigurationError, match="cfll"):
        RunConfig.from_dict({"solver": {"cfll": 0.3}})


@pytest.mark.parametrize(
    "section, key, value",
    [
        ("sim", "dim", 1),
        ("mesh", "quad_1d", 4),
        ("mesh", "order_v", 2),
        ("solver", "ode_solver_type", 5),
        ("solver", "linear_solver", "gmres"),
        ("solver", "cfl", 0.0),
        ("solver", "zones_per_batch", 0),
        ("control", "init_dt", -1.0),
        ("control", "dt_shrink", 1.0),
        ("bc", "bc_ids", [1, 1, 0]),
        ("bc", "bc_ids", [1, 1, 0, 4]),
        ("bc", "bc_vxs", [0.0, 1.0]),
        ("bc", "bc_unit", "km/yr"),
        ("control", "mscale", 0.0),
        ("mesh", "layer_ids", [0, 1]),
    ],
)
def test_validate_rejects(section, key, value):
    cfg = RunConfig()
    setattr(getattr(cfg, section), key, value)
    with pytest.raises(ConfigurationError):
        cfg.validate()


def test_configuration_error_is_value_error():
    assert issubclass(ConfigurationError, ValueError)
    assert issubclass(ConfigurationError, LaggeoError)


def test_ode_factory():
    assert isinstance(make_ode_solver(7), RK2AvgSolver)
    assert make_ode_solver(1).name == "ForwardEuler"
    assert make_ode_solver(4).name == "RK4"
    with pytest.raises(ConfigurationError, match="ODE"):
        make_ode_solver(6)


def test_kernel_table_is_closed():
    assert len(QUPDATE_VARIANTS) == 12
    v = select_qupdate(3, 3, use_numba=True)
    assert (v.dim, v.q1d, v.backend) == (3, 3, "numba")
    with pytest.raises(ConfigurationError):
        select_qupdate(2, 4)
    with pytest.raises(ConfigurationError):
        select_qupdate(1, 2)


def test_material_lists_broadcast_and_match():
    attrs = [0, 0, 1, 1, 2]
    table = MaterialTable.from_lists(attrs, rho=[1.0, 2.0, 3.0], mu=[5.0])
    assert table.ids == [0, 1, 2]
    assert table.zones[2].rho == 3.0
    assert table.zones[1].mu == 5.0

    cells = table.cell_arrays()
    assert cells.rho.tolist() == [1.0, 1.0, 2.0, 2.0, 3.0]
    assert cells.mu.tolist() == [5.0] * 5


def test_material_list_length_mismatch():
    with pytest.raises(ConfigurationError, match="must be 1 or match"):
        MaterialTable.from_lists([0, 1, 2], rho=[1.0, 2.0])
    with pytest.raises(ConfigurationError):
        MaterialTable.from_lists([0, 1], young=[1.0])


def test_material_table_missing_zone():
    table = MaterialTable.from_lists([0, 1], rho=[1.0, 2.0])
    with pytest.raises(ConfigurationError, match="No material zone"):
        table.with_attributes([0, 1, 4])
