"""Boundary condition helpers.

Box sides are numbered x-, x+, y-, y+(, z-, z+). Each side carries a
component-selector code that says which velocity components are held at
their prescribed value there:

    2-D: 0 free, 1 x, 2 y, 3 x+y
    3-D: 0 free, 1 x, 2 y, 3 z, 4 x+y+z, 5 x+y, 6 x+z, 7 y+z
"""

from __future__ import annotations
from typing import Dict, List, Optional, Sequence, Tuple
import numpy as np
import scipy.sparse as sp

from laggeo.errors import ConfigurationError
from laggeo.fem.mesh import Mesh
from laggeo.output.history import SECONDS_PER_YEAR

BC_COMPONENTS: Dict[int, Dict[int, Tuple[int, ...]]] = {
    2: {0: (), 1: (0,), 2: (1,), 3: (0, 1)},
    3: {0: (), 1: (0,), 2: (1,), 3: (2,), 4: (0, 1, 2), 5: (0, 1), 6: (0, 2), 7: (1, 2)},
}

# metres per second for one unit of boundary velocity
VELOCITY_UNITS = {
    "m/s": 1.0,
    "m/yr": 1.0 / SECONDS_PER_YEAR,
    "cm/yr": 1.0e-2 / SECONDS_PER_YEAR,
    "mm/yr": 1.0e-3 / SECONDS_PER_YEAR,
}


def constrained_components(code: int, dim: int) -> Tuple[int, ...]:
    try:
        return BC_COMPONENTS[dim][int(code)]
    except KeyError:
        raise ConfigurationError(f"Unknown boundary condition code {code} for dim={dim}") from None


def velocity_unit(name: str) -> float:
    try:
        return VELOCITY_UNITS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown boundary velocity unit {name!r}; expected one of {sorted(VELOCITY_UNITS)}"
        ) from None


def _check_sides(mesh: Mesh, values: Sequence, name: str) -> None:
    if len(values) != 2 * mesh.dim:
        raise ConfigurationError(f"{name} needs {2 * mesh.dim} entries for dim={mesh.dim}, got {len(values)}")


def essential_nodes(mesh: Mesh, bc_ids: Sequence[int]) -> List[np.ndarray]:
    """Fixed-velocity node ids per velocity component."""
    dim = mesh.dim
    _check_sides(mesh, bc_ids, "bc_ids")

    fixed = [[] for _ in range(dim)]
    for side, code in enumerate(bc_ids):
        nodes = mesh.sides.get(side, np.zeros(0, dtype=np.int64))
        for c in constrained_components(code, dim):
            fixed[c].append(nodes)

    out = []
    for c in range(dim):
        if fixed[c]:
            out.append(np.unique(np.concatenate(fixed[c])).astype(np.int64))
        else:
            out.append(np.zeros(0, dtype=np.int64))
    return out


def prescribe_boundary_velocity(
    v: np.ndarray,
    mesh: Mesh,
    bc_ids: Sequence[int],
    side_velocities: Sequence[Optional[Sequence[float]]],
    scale: float = 1.0,
) -> np.ndarray:
    """Write the prescribed side velocities into the constrained components of ``v``.

    ``side_velocities[c][side]`` is the value of component ``c`` on ``side``.
    An empty or None list leaves component ``c`` untouched everywhere. Sides
    are applied in order, so a node shared by two constrained sides takes the
    later side's value.
    """
    dim = mesh.dim
    _check_sides(mesh, bc_ids, "bc_ids")
    table = []
    for c in range(dim):
        vals = side_velocities[c] if c < len(side_velocities) else None
        if vals:
            _check_sides(mesh, vals, f"boundary velocity list for component {c}")
            vals = [float(x) for x in vals]
        table.append(vals)

    for side, code in enumerate(bc_ids):
        nodes = mesh.sides.get(side, np.zeros(0, dtype=np.int64))
        for c in constrained_components(code, dim):
            if table[c]:
                v[nodes, c] = scale * table[c][side]
    return v


def apply_dirichlet(M: sp.csr_matrix, fixed_ids: np.ndarray) -> Tuple[np.ndarray, sp.csr_matrix]:
    """
    Dirichlet handling for rate solves:
    - prescribed DOFs keep a zero rate (the velocity there never changes)
    - the solve is done only on free DOFs: M_ff * a_f = r_f
    """
    ndof = M.shape[0]
    all_ids = np.arange(ndof, dtype=np.int64)
    free = np.setdiff1d(all_ids, np.asarray(fixed_ids, dtype=np.int64))
    M_ff = M[free, :][:, free].tocsr()
    return free, M_ff
