"""Initial fields: lithostatic stress, weak-zone seed, boundary-driven velocity."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from laggeo.fem.mesh import Mesh


def lithostatic_stress(mesh: Mesh, rho: np.ndarray, gravity: float, thickness: float) -> np.ndarray:
    """Voigt stress with isotropic normal components -|thickness - depth coord| rho g.

    The depth coordinate is the last one (y in 2-D, z in 3-D) of each cell
    centroid. Shear components are zero.
    """
    dim = mesh.dim
    ns = 3 * (dim - 1)
    zc = mesh.cell_centroids()[:, dim - 1]
    sn = -np.abs(thickness - zc) * np.asarray(rho, dtype=float) * gravity
    s = np.zeros((mesh.ne, ns), dtype=float)
    for i in range(dim):
        s[:, i] = sn
    return s


def weak_zone_plastic_strain(
    mesh: Mesh,
    center: Sequence[float],
    radius: float,
    value: float,
) -> np.ndarray:
    """Plastic strain ``value`` in cells whose centroid lies within ``radius`` of ``center``."""
    pls = np.zeros(mesh.ne, dtype=float)
    if radius <= 0.0 or value == 0.0:
        return pls
    c = np.asarray(center, dtype=float)[: mesh.dim]
    d = np.linalg.norm(mesh.cell_centroids() - c, axis=1)
    pls[d <= radius] = value
    return pls


def extension_velocity(nodes: np.ndarray, v_right: float) -> np.ndarray:
    """x-velocity growing linearly from 0 at x=min to ``v_right`` at x=max."""
    v = np.zeros_like(nodes)
    x = nodes[:, 0]
    span = x.max() - x.min()
    if span > 0.0:
        v[:, 0] = v_right * (x - x.min()) / span
    return v
