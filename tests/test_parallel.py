import numpy as np
import pytest

from laggeo.config import SolverConfig
from laggeo.fem.bcs import essential_nodes
from laggeo.operator import LagrangianGeoOperator
from laggeo.parallel import comm_rank, global_min, global_sum

from conftest import hot_cell_state, make_operator


def test_serial_reductions_are_local():
    assert global_min(None, 3.5) == 3.5
    assert global_sum(None, np.float64(2.0)) == 2.0
    assert comm_rank(None) == 0


def test_single_rank_communicator_matches_serial():
    MPI = pytest.importorskip("mpi4py.MPI")
    comm = MPI.COMM_SELF
    assert global_min(comm, 1.25) == 1.25
    assert global_sum(comm, 4.0) == 4.0
    assert comm_rank(comm) == 0

    serial, s1 = make_operator(solver=SolverConfig(linear_solver="direct"))
    hot_cell_state(s1)
    ref_dt = serial.get_stable_step_estimate(s1, 0.0)

    parallel = LagrangianGeoOperator(
        serial.mesh.copy(), serial.materials, essential_nodes(serial.mesh, [0, 0, 0, 0]),
        SolverConfig(linear_solver="direct"), comm=comm,
    )
    assert parallel.qdata.h0 == serial.qdata.h0
    assert parallel.get_stable_step_estimate(s1, 0.0) == ref_dt
    assert parallel.total_energy(s1) == serial.total_energy(s1)
