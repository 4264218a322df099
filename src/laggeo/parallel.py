"""Collective reductions.

Every rank holds one mesh partition. The only cross-rank coordination the
solver needs is a handful of scalar reductions (stable-dt minimum, energy and
volume sums). ``comm=None`` means a serial run; otherwise ``comm`` is an
mpi4py communicator.
"""

from __future__ import annotations


def _mpi_op(name: str):
    from mpi4py import MPI

    return getattr(MPI, name)


def global_min(comm, value: float) -> float:
    if comm is None:
        return float(value)
    return float(comm.allreduce(float(value), op=_mpi_op("MIN")))


def global_sum(comm, value: float) -> float:
    if comm is None:
        return float(value)
    return float(comm.allreduce(float(value), op=_mpi_op("SUM")))


def comm_rank(comm) -> int:
    return 0 if comm is None else int(comm.Get_rank())
