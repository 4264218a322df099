"""Remesh / remap collaborator protocol.

A remesher is any object with::

    remesh(mesh, state, fields) -> RemeshResult

called by the driver between accepted steps at the configured cadence.
``fields`` carries the cell data the new mesh needs (``"plastic_strain"``
and the current ``"density"``). The returned mesh is treated as a new
reference configuration: the driver rebuilds the operator on it with the
remapped density so mass is kept, and with ``ess_nodes`` (fixed-velocity
nodes per component on the new numbering) when the result carries them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from laggeo.fem.bcs import essential_nodes
from laggeo.fem.mesh import Mesh
from laggeo.state import GlobalState


@dataclass
class RemeshResult:
    mesh: Mesh
    state: GlobalState
    fields: Dict[str, np.ndarray] = field(default_factory=dict)
    ess_nodes: Optional[List[np.ndarray]] = None


class Remesher:
    def remesh(self, mesh: Mesh, state: GlobalState, fields: Dict[str, np.ndarray]) -> RemeshResult:
        raise NotImplementedError


class NullRemesher(Remesher):
    """Keeps the topology; the deformed geometry becomes the new reference.

    With ``bc_ids`` the fixed-velocity nodes are re-derived from the box
    sides of the new mesh.
    """

    def __init__(self, bc_ids: Optional[Sequence[int]] = None):
        self.bc_ids = None if bc_ids is None else list(bc_ids)
        self.calls = 0

    def remesh(self, mesh, state, fields):
        self.calls += 1
        new_mesh = mesh.copy()
        new_mesh.nodes = np.array(state.x, copy=True)
        return RemeshResult(
            mesh=new_mesh,
            state=state.copy(),
            fields={k: np.array(v, copy=True) for k, v in fields.items()},
            ess_nodes=None if self.bc_ids is None else essential_nodes(new_mesh, self.bc_ids),
        )
