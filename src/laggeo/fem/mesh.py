"""Structured box meshes (Q4 in 2-D, Hex8 in 3-D)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import numpy as np

from laggeo.errors import ConfigurationError


@dataclass
class Mesh:
    """Node coordinates, connectivity and material ids.

    ``nodes`` may be a non-owning view into a state vector: the operator
    rebinds it at the start of every rate evaluation (see
    :meth:`laggeo.operator.LagrangianGeoOperator.bind_mesh_nodes`).

    ``sides`` maps a box side index (x-, x+, y-, y+, z-, z+) to the node ids
    lying on it, taken from the initial geometry.
    """

    nodes: np.ndarray
    elems: np.ndarray
    attributes: np.ndarray
    sides: Dict[int, np.ndarray] = field(default_factory=dict)

    @property
    def dim(self) -> int:
        return int(self.nodes.shape[1])

    @property
    def nnode(self) -> int:
        return int(self.nodes.shape[0])

    @property
    def ne(self) -> int:
        return int(self.elems.shape[0])

    def cell_centroids(self) -> np.ndarray:
        return self.nodes[self.elems].mean(axis=1)

    def copy(self) -> "Mesh":
        return Mesh(
            nodes=np.array(self.nodes, copy=True),
            elems=np.array(self.elems, copy=True),
            attributes=np.array(self.attributes, copy=True),
            sides={k: np.array(v, copy=True) for k, v in self.sides.items()},
        )


def _layer_attributes(n_per_layer: int, n_layers: int, layer_ids: Optional[Sequence[int]]) -> np.ndarray:
    if not layer_ids:
        return np.zeros(n_per_layer * n_layers, dtype=np.int64)
    if len(layer_ids) != n_layers:
        raise ConfigurationError(
            f"layer_ids needs one id per element layer ({n_layers}), got {len(layer_ids)}"
        )
    return np.repeat(np.asarray(layer_ids, dtype=np.int64), n_per_layer)


def _box_sides(nodes: np.ndarray, extents: Sequence[float]) -> Dict[int, np.ndarray]:
    sides = {}
    tol = 1e-12 * max(extents)
    for d, ext in enumerate(extents):
        sides[2 * d] = np.flatnonzero(np.abs(nodes[:, d]) <= tol)
        sides[2 * d + 1] = np.flatnonzero(np.abs(nodes[:, d] - ext) <= tol)
    return sides


def structured_quad_mesh(L: float, H: float, nx: int, ny: int, layer_ids: Optional[Sequence[int]] = None) -> Mesh:
    if nx < 1 or ny < 1:
        raise ConfigurationError(f"Mesh needs at least one element per direction, got nx={nx} ny={ny}")
    xs = np.linspace(0.0, L, nx + 1)
    ys = np.linspace(0.0, H, ny + 1)
    nodes = np.array([[x, y] for y in ys for x in xs], dtype=float)

    def nid(i, j):  # i along x, j along y
        return j * (nx + 1) + i

    elems = []
    for j in range(ny):
        for i in range(nx):
            elems.append([nid(i, j), nid(i + 1, j), nid(i + 1, j + 1), nid(i, j + 1)])
    return Mesh(
        nodes=nodes,
        elems=np.array(elems, dtype=np.int64),
        attributes=_layer_attributes(nx, ny, layer_ids),
        sides=_box_sides(nodes, (L, H)),
    )


def structured_hex_mesh(
    L: float, W: float, H: float, nx: int, ny: int, nz: int,
    layer_ids: Optional[Sequence[int]] = None,
) -> Mesh:
    if nx < 1 or ny < 1 or nz < 1:
        raise ConfigurationError(
            f"Mesh needs at least one element per direction, got nx={nx} ny={ny} nz={nz}"
        )
    xs = np.linspace(0.0, L, nx + 1)
    ys = np.linspace(0.0, W, ny + 1)
    zs = np.linspace(0.0, H, nz + 1)
    nodes = np.array([[x, y, z] for z in zs for y in ys for x in xs], dtype=float)

    def nid(i, j, k):
        return (k * (ny + 1) + j) * (nx + 1) + i

    elems = []
    for k in range(nz):
        for j in range(ny):
            for i in range(nx):
                elems.append([
                    nid(i, j, k), nid(i + 1, j, k), nid(i + 1, j + 1, k), nid(i, j + 1, k),
                    nid(i, j, k + 1), nid(i + 1, j, k + 1), nid(i + 1, j + 1, k + 1), nid(i, j + 1, k + 1),
                ])
    return Mesh(
        nodes=nodes,
        elems=np.array(elems, dtype=np.int64),
        attributes=_layer_attributes(nx * ny, nz, layer_ids),
        sides=_box_sides(nodes, (L, W, H)),
    )
