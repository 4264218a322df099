"""
Pytest configuration for laggeo tests.

Adds src/ to sys.path so tests can import laggeo without an editable
install, and provides small problem builders shared across test modules.
"""

import os
import sys

import numpy as np
import pytest

repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(repo_root, 'src')

if src_path not in sys.path:
    sys.path.insert(0, src_path)

from laggeo.config import ControlConfig, SolverConfig  # noqa: E402
from laggeo.fem.bcs import essential_nodes  # noqa: E402
from laggeo.fem.mesh import structured_hex_mesh, structured_quad_mesh  # noqa: E402
from laggeo.materials import MaterialTable  # noqa: E402
from laggeo.operator import LagrangianGeoOperator  # noqa: E402
from laggeo.state import GlobalState  # noqa: E402


def make_operator(
    nx=4, ny=4, nz=None, L=1.0, bc_ids=None, solver=None, q1d=2,
    rho=1.0, lam=1.0, mu=1.0, gamma=1.4, body_acceleration=None,
    mass_scale=1.0, foundation=None,
):
    """Unit-box operator with one material and a state at rest."""
    if nz is None:
        mesh = structured_quad_mesh(L, L, nx, ny)
        bc_ids = [0, 0, 0, 0] if bc_ids is None else bc_ids
    else:
        mesh = structured_hex_mesh(L, L, L, nx, ny, nz)
        bc_ids = [0] * 6 if bc_ids is None else bc_ids
    table = MaterialTable.from_lists(mesh.attributes, rho=[rho], lam=[lam], mu=[mu], gamma=[gamma])
    solver = solver if solver is not None else SolverConfig(linear_solver="direct")
    op = LagrangianGeoOperator(
        mesh.copy(), table, essential_nodes(mesh, bc_ids), solver,
        q1d=q1d, body_acceleration=body_acceleration,
        mass_scale=mass_scale, foundation=foundation,
    )
    state = GlobalState.from_mesh(mesh)
    return op, state


def hot_cell_state(state, e_back=1.0, e_hot=4.0):
    """Uniform specific energy with one hotter cell in the middle."""
    state.e[:] = e_back
    state.e[state.ne // 2] = e_hot
    return state


@pytest.fixture
def closed_box():
    """4x4 box, normal velocity fixed on every side, hot central cell."""
    op, state = make_operator(bc_ids=[1, 1, 2, 2], solver=SolverConfig(linear_solver="direct", impose_visc=False))
    return op, hot_cell_state(state)


@pytest.fixture
def control():
    return ControlConfig()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
