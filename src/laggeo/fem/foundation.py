"""Winkler foundation on the bottom of the box.

The bottom side (min of the last coordinate) rests on an inviscid substratum
of density ``rho``. Each bottom node receives an upward nodal force equal to
the substratum pressure at its current height times its share of the
horizontally projected bottom area:

    f_i = rho * g * (surface - z_i) * A_i

At rest under lithostatic stress of the same density this balances the
overburden; a node pushed below its reference height gets pushed back up.
"""

from __future__ import annotations

import numpy as np

from laggeo.fem.mesh import Mesh


def bottom_faces(mesh: Mesh) -> np.ndarray:
    """Element faces on the bottom side, shape (nface, 2) in 2-D or (nface, 4) in 3-D.

    Node order follows the element's local order, which for the structured
    meshes is a closed loop around the face.
    """
    dim = mesh.dim
    on_bottom = np.zeros(mesh.nnode, dtype=bool)
    on_bottom[mesh.sides[2 * (dim - 1)]] = True
    nface_nodes = 2 ** (dim - 1)

    mask = on_bottom[mesh.elems]
    rows = np.flatnonzero(mask.sum(axis=1) == nface_nodes)
    faces = [mesh.elems[e][mask[e]] for e in rows]
    if not faces:
        return np.zeros((0, nface_nodes), dtype=np.int64)
    return np.asarray(faces, dtype=np.int64)


def projected_areas(x: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Horizontal projection of each bottom face at positions ``x``."""
    if faces.shape[1] == 2:
        return np.abs(x[faces[:, 1], 0] - x[faces[:, 0], 0])
    px = x[faces, 0]
    py = x[faces, 1]
    # shoelace over the face loop
    return 0.5 * np.abs(np.sum(px * np.roll(py, -1, axis=1) - np.roll(px, -1, axis=1) * py, axis=1))


class WinklerFoundation:
    def __init__(self, mesh: Mesh, rho: float, gravity: float, surface: float):
        self.rho = float(rho)
        self.gravity = float(gravity)
        self.surface = float(surface)
        self.set_mesh(mesh)

    def set_mesh(self, mesh: Mesh) -> None:
        self.dim = mesh.dim
        self.faces = bottom_faces(mesh)
        self.nodes = np.unique(self.faces)

    def nodal_force(self, x: np.ndarray) -> np.ndarray:
        """Upward force on every node (zero away from the bottom), shape (nnode,)."""
        f = np.zeros(x.shape[0], dtype=float)
        if self.faces.size == 0:
            return f
        z = x[:, self.dim - 1]
        share = projected_areas(x, self.faces) / self.faces.shape[1]
        pressure = self.rho * self.gravity * (self.surface - z[self.faces])
        np.add.at(f, self.faces, pressure * share[:, None])
        return f

    def flatten(self, x: np.ndarray, x0: np.ndarray) -> None:
        """Reset the height of the bottom nodes to their reference value."""
        x[self.nodes, self.dim - 1] = x0[self.nodes, self.dim - 1]
