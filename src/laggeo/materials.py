"""Material zone parameters.

Each distinct material id found in the mesh attributes gets one
:class:`MaterialZone`. Parameter lists from the configuration are either of
length 1 (broadcast to every id) or exactly one entry per id; anything else
is a configuration inconsistency and aborts before the time loop.

Kernels never see zones directly: :meth:`MaterialTable.cell_arrays` expands
them to contiguous per-cell arrays (:class:`ZoneArrays`).
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Dict, List, Sequence

import numpy as np

from laggeo.errors import ConfigurationError


@dataclass
class MaterialZone:
    """Parameters of one material id.

    Units are whatever the run uses consistently (SI in the shipped configs).
    Angles are in degrees.
    """

    rho: float = 2700.0
    lam: float = 3.0e10
    mu: float = 3.0e10
    gamma: float = 1.4
    tension_cutoff: float = 0.0
    cohesion0: float = 44.0e6
    cohesion1: float = 4.0e6
    friction_angle: float = 30.0
    dilation_angle: float = 0.0
    pls0: float = 0.0
    pls1: float = 0.5
    plastic_viscosity: float = 0.0


ZONE_KEYS = tuple(f.name for f in fields(MaterialZone))


@dataclass
class ZoneArrays:
    """Per-cell expansion of the zone table (all arrays shape (ne,))."""

    rho: np.ndarray
    lam: np.ndarray
    mu: np.ndarray
    gamma: np.ndarray
    tension_cutoff: np.ndarray
    cohesion0: np.ndarray
    cohesion1: np.ndarray
    friction_angle: np.ndarray
    dilation_angle: np.ndarray
    pls0: np.ndarray
    pls1: np.ndarray
    plastic_viscosity: np.ndarray


class MaterialTable:
    def __init__(self, zones: Dict[int, MaterialZone], attributes: np.ndarray):
        self.zones = dict(zones)
        self.attributes = np.asarray(attributes, dtype=np.int64)
        missing = sorted(set(np.unique(self.attributes).tolist()) - set(self.zones))
        if missing:
            raise ConfigurationError(f"No material zone defined for id(s) {missing}")

    @property
    def ids(self) -> List[int]:
        return sorted(self.zones)

    @classmethod
    def from_lists(cls, attributes: Sequence[int], **lists: Sequence[float]) -> "MaterialTable":
        attributes = np.asarray(attributes, dtype=np.int64)
        ids = np.unique(attributes).tolist()
        n_ids = len(ids)

        per_key = {}
        for key, values in lists.items():
            if key not in ZONE_KEYS:
                raise ConfigurationError(f"Unknown material parameter {key!r}")
            values = list(np.atleast_1d(np.asarray(values, dtype=float)))
            if len(values) == 1:
                values = values * n_ids
            elif len(values) != n_ids:
                raise ConfigurationError(
                    f"The number of {key} values ({len(values)}) must be 1 or match "
                    f"the number of material ids in the mesh ({n_ids})"
                )
            per_key[key] = values

        zones = {}
        for k, mat_id in enumerate(ids):
            zones[mat_id] = MaterialZone(**{key: float(vals[k]) for key, vals in per_key.items()})
        return cls(zones, attributes)

    def per_cell(self, name: str) -> np.ndarray:
        if name not in ZONE_KEYS:
            raise ConfigurationError(f"Unknown material parameter {name!r}")
        values = np.empty(self.attributes.shape[0], dtype=float)
        for mat_id, zone in self.zones.items():
            values[self.attributes == mat_id] = getattr(zone, name)
        return values

    def cell_arrays(self) -> ZoneArrays:
        return ZoneArrays(**{key: self.per_cell(key) for key in ZONE_KEYS})

    def with_attributes(self, attributes: np.ndarray) -> "MaterialTable":
        """Same zones on a new cell numbering (after remesh)."""
        return MaterialTable(self.zones, attributes)
