"""Global state block vector.

A single contiguous float64 array holds every evolved field, in order::

    [ x (nnode*dim) | v (nnode*dim) | e (ne) | s (ne*nstress) | x0 (nnode*dim) ]

``x`` is the current position, ``v`` the nodal velocity, ``e`` the specific
internal energy per cell, ``s`` the stored (deviatoric plus initial) stress
per cell in Voigt order, and ``x0`` a frozen copy of the initial position.
Stress Voigt order is ``[xx, yy, xy]`` in 2-D and ``[xx, yy, zz, xy, yz, xz]``
in 3-D.

Rates use the same layout (see :meth:`GlobalState.zeros_like`), which keeps
Runge-Kutta combinations plain array arithmetic on ``data``.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from laggeo.errors import ConfigurationError


def n_stress(dim: int) -> int:
    return 3 * (dim - 1)


class GlobalState:
    def __init__(self, nnode: int, dim: int, ne: int, data: Optional[np.ndarray] = None):
        self.nnode = int(nnode)
        self.dim = int(dim)
        self.ne = int(ne)
        self.nstress = n_stress(self.dim)
        nv = self.nnode * self.dim
        sizes = (nv, nv, self.ne, self.ne * self.nstress, nv)
        self.block_offsets = np.concatenate([[0], np.cumsum(sizes)]).astype(np.int64)
        size = int(self.block_offsets[-1])
        if data is None:
            self.data = np.zeros(size, dtype=float)
        else:
            data = np.asarray(data, dtype=float)
            if data.shape != (size,):
                raise ConfigurationError(f"State vector needs shape ({size},), got {data.shape}")
            self.data = data

    def _block(self, k: int) -> np.ndarray:
        return self.data[self.block_offsets[k]:self.block_offsets[k + 1]]

    @property
    def x(self) -> np.ndarray:
        return self._block(0).reshape(self.nnode, self.dim)

    @property
    def v(self) -> np.ndarray:
        return self._block(1).reshape(self.nnode, self.dim)

    @property
    def e(self) -> np.ndarray:
        return self._block(2)

    @property
    def s(self) -> np.ndarray:
        return self._block(3).reshape(self.ne, self.nstress)

    @property
    def x0(self) -> np.ndarray:
        return self._block(4).reshape(self.nnode, self.dim)

    @property
    def shape_info(self) -> Tuple[int, int, int]:
        return self.nnode, self.dim, self.ne

    def copy(self) -> "GlobalState":
        return GlobalState(self.nnode, self.dim, self.ne, data=self.data.copy())

    def zeros_like(self) -> "GlobalState":
        return GlobalState(self.nnode, self.dim, self.ne)

    def assign(self, other: "GlobalState") -> None:
        """In-place copy (keeps views bound to ``self.data`` valid)."""
        if other.shape_info != self.shape_info:
            raise ConfigurationError(
                f"Cannot assign state of shape {other.shape_info} to {self.shape_info}"
            )
        self.data[:] = other.data

    @classmethod
    def from_mesh(cls, mesh) -> "GlobalState":
        """State on ``mesh`` with x = x0 = node coordinates, all other fields zero."""
        S = cls(mesh.nnode, mesh.dim, mesh.ne)
        S.x[:] = mesh.nodes
        S.x0[:] = mesh.nodes
        return S
