"""Quadrature update kernel variants.

The supported variants form a closed table keyed by
``(dim, q1d, backend)`` with ``dim`` in {2, 3}, ``q1d`` in {1, 2, 3} and
``backend`` in {"numpy", "numba"}. The operator resolves its variant once at
setup; asking for anything outside the table is a configuration error.
"""

from __future__ import annotations

from typing import Callable, Dict, NamedTuple, Tuple

from laggeo.errors import ConfigurationError
from laggeo.kernels.qupdate import smooth_step_01, update_quadrature_numpy
from laggeo.numba.kernels_qupdate import update_quadrature_numba


class QUpdateVariant(NamedTuple):
    dim: int
    q1d: int
    backend: str
    func: Callable


def _build_table() -> Dict[Tuple[int, int, str], QUpdateVariant]:
    funcs = {"numpy": update_quadrature_numpy, "numba": update_quadrature_numba}
    table = {}
    for dim in (2, 3):
        for q1d in (1, 2, 3):
            for backend, func in funcs.items():
                table[(dim, q1d, backend)] = QUpdateVariant(dim, q1d, backend, func)
    return table


QUPDATE_VARIANTS = _build_table()


def select_qupdate(dim: int, q1d: int, use_numba: bool = False) -> QUpdateVariant:
    key = (int(dim), int(q1d), "numba" if use_numba else "numpy")
    try:
        return QUPDATE_VARIANTS[key]
    except KeyError:
        raise ConfigurationError(
            f"No quadrature update kernel for dim={dim}, q1d={q1d}; "
            f"supported dims (2, 3) and points per direction (1, 2, 3)"
        ) from None


__all__ = [
    "QUpdateVariant",
    "QUPDATE_VARIANTS",
    "select_qupdate",
    "smooth_step_01",
    "update_quadrature_numpy",
    "update_quadrature_numba",
]
