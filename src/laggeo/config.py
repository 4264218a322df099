"""
Run configuration dataclasses.

Groups the solver inputs into sections (simulation, solver, control, mesh,
material, boundary, remesh) with defaults suited to crustal-scale runs in SI
units. Every section round-trips through plain dictionaries so whole runs
can be stored as JSON or YAML.

Validation happens once, before the time loop, through
:meth:`RunConfig.validate`. Unknown enumerated options raise
:class:`~laggeo.errors.ConfigurationError`; nothing falls back to a default.
"""

from dataclasses import dataclass, field, fields
from typing import List, Optional, Dict, Any
from enum import Enum
import json
import yaml

from laggeo.errors import ConfigurationError
from laggeo.fem.bcs import BC_COMPONENTS, velocity_unit


class LinearSolverType(Enum):
    """Velocity mass-matrix solver"""
    CG = "cg"  # Jacobi-preconditioned conjugate gradient
    DIRECT = "direct"  # sparse LU, factorized once per mesh


class ODESolverType(Enum):
    """Explicit time integrator (numeric codes as used in run files)"""
    FORWARD_EULER = 1
    RK2 = 2
    RK3_SSP = 3
    RK4 = 4
    RK2_AVG = 7


SUPPORTED_QUADRATURE_1D = (1, 2, 3)
SUPPORTED_DIMS = (2, 3)


def _section_from_dict(cls, data: Optional[Dict[str, Any]], section: str):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigurationError(f"[{section}] expected a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"[{section}] unknown option(s): {', '.join(unknown)}")
    return cls(**data)


def _section_to_dict(obj) -> Dict[str, Any]:
    out = {}
    for f in fields(obj):
        val = getattr(obj, f.name)
        if isinstance(val, tuple):
            val = list(val)
        out[f.name] = val
    return out


# ============================================================================
# SIMULATION
# ============================================================================

@dataclass
class SimConfig:
    """Time window and diagnostic output cadence"""
    dim: int = 2
    t_final: float = 1.0e6
    max_tsteps: int = -1  # -1: unlimited
    year: bool = False  # print times in years
    print_every: int = 10  # step diagnostics cadence (0 disables)
    checkpoint_steps: int = 0  # checkpoint callback cadence (0 disables)
    history_csv: Optional[str] = None
    debug_dt: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


# ============================================================================
# SOLVER
# ============================================================================

@dataclass
class SolverConfig:
    """Rate evaluation and linear solve options"""
    ode_solver_type: int = 7
    cfl: float = 0.25
    cg_tol: float = 1.0e-10
    cg_max_iter: int = 300
    linear_solver: str = "cg"  # "cg" | "direct"
    mass_lumping: bool = False
    impose_visc: bool = True  # artificial viscosity
    use_vorticity: bool = False
    corotational: bool = False  # Jaumann spin terms in the stress rate
    zones_per_batch: int = 64
    use_numba: bool = False
    damping: float = 0.0  # velocity-direction damping factor

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


# ============================================================================
# CONTROL
# ============================================================================

@dataclass
class ControlConfig:
    """Adaptive dt control and body forces"""
    init_dt: Optional[float] = None  # None: start from the stable estimate
    dt_floor: float = 1.0e-38
    dt_shrink: float = 0.5
    dt_grow: float = 1.02
    grow_threshold: float = 1.25
    gravity_on: bool = False
    gravity: float = 10.0
    lithostatic: bool = False
    thickness: float = 10.0e3
    mscale: float = 1.0  # velocity-mass scaling factor
    # bottom of the box resting on a substratum of density winkler_rho
    winkler_foundation: bool = False
    winkler_rho: float = 2700.0
    winkler_flat: bool = False  # reset bottom heights after every step

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


# ============================================================================
# MESH
# ============================================================================

@dataclass
class MeshConfig:
    """Structured box mesh (quads in 2-D, hexes in 3-D)"""
    nx: int = 4
    ny: int = 4
    nz: int = 1
    lx: float = 1.0
    ly: float = 1.0
    lz: float = 1.0
    order_v: int = 1
    quad_1d: int = 2  # Gauss points per direction
    # material id per element layer along the last axis, bottom first
    # (empty: every element gets id 0)
    layer_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


# ============================================================================
# MATERIALS
# ============================================================================

@dataclass
class MaterialConfig:
    """Per-material-id parameter lists (length 1 broadcasts)"""
    rho: List[float] = field(default_factory=lambda: [2700.0])
    lam: List[float] = field(default_factory=lambda: [3.0e10])
    mu: List[float] = field(default_factory=lambda: [3.0e10])
    gamma: List[float] = field(default_factory=lambda: [1.4])
    tension_cutoff: List[float] = field(default_factory=lambda: [0.0])
    cohesion0: List[float] = field(default_factory=lambda: [44.0e6])
    cohesion1: List[float] = field(default_factory=lambda: [4.0e6])
    friction_angle: List[float] = field(default_factory=lambda: [30.0])
    dilation_angle: List[float] = field(default_factory=lambda: [0.0])
    pls0: List[float] = field(default_factory=lambda: [0.0])
    pls1: List[float] = field(default_factory=lambda: [0.5])
    plastic_viscosity: List[float] = field(default_factory=lambda: [0.0])

    plastic: bool = False
    viscoplastic: bool = False
    weak_rad: float = 0.0
    weak_x: float = 0.0
    weak_y: float = 0.0
    weak_z: float = 0.0
    ini_pls: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)

    def lists(self) -> Dict[str, List[float]]:
        return {
            "rho": self.rho,
            "lam": self.lam,
            "mu": self.mu,
            "gamma": self.gamma,
            "tension_cutoff": self.tension_cutoff,
            "cohesion0": self.cohesion0,
            "cohesion1": self.cohesion1,
            "friction_angle": self.friction_angle,
            "dilation_angle": self.dilation_angle,
            "pls0": self.pls0,
            "pls1": self.pls1,
            "plastic_viscosity": self.plastic_viscosity,
        }


# ============================================================================
# BOUNDARY CONDITIONS / REMESH
# ============================================================================

@dataclass
class BoundaryConfig:
    """Velocity boundary conditions per box side: [x-, x+, y-, y+(, z-, z+)]

    ``bc_ids`` selects the held velocity components of each side
    (2-D: 1 x, 2 y, 3 x+y; 3-D: 1 x, 2 y, 3 z, 4 all, 5 x+y, 6 x+z, 7 y+z;
    0 leaves the side free). ``bc_vxs``/``bc_vys``/``bc_vzs`` give the held
    value of each component per side in ``bc_unit`` (an empty list keeps
    the initial velocity of that component, zero unless
    ``extension_velocity`` is set).
    """
    bc_ids: List[int] = field(default_factory=lambda: [1, 1, 0, 0])
    bc_unit: str = "m/s"  # m/s | m/yr | cm/yr | mm/yr
    bc_vxs: List[float] = field(default_factory=list)
    bc_vys: List[float] = field(default_factory=list)
    bc_vzs: List[float] = field(default_factory=list)
    # initial x-velocity growing linearly from the x- to the x+ side, in bc_unit
    extension_velocity: float = 0.0

    def side_velocities(self) -> List[List[float]]:
        return [self.bc_vxs, self.bc_vys, self.bc_vzs]

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


@dataclass
class RemeshConfig:
    """Remesh cadence (0 disables)"""
    remesh_steps: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return _section_to_dict(self)


# ============================================================================
# FULL RUN
# ============================================================================

@dataclass
class RunConfig:
    """Complete run configuration"""
    sim: SimConfig = field(default_factory=SimConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    control: ControlConfig = field(default_factory=ControlConfig)
    mesh: MeshConfig = field(default_factory=MeshConfig)
    mat: MaterialConfig = field(default_factory=MaterialConfig)
    bc: BoundaryConfig = field(default_factory=BoundaryConfig)
    remesh: RemeshConfig = field(default_factory=RemeshConfig)

    _SECTIONS = {
        "sim": SimConfig,
        "solver": SolverConfig,
        "control": ControlConfig,
        "mesh": MeshConfig,
        "mat": MaterialConfig,
        "bc": BoundaryConfig,
        "remesh": RemeshConfig,
    }

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name).to_dict() for name in self._SECTIONS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RunConfig':
        """Construct from dictionary (inverse of to_dict)"""
        data = data or {}
        unknown = sorted(set(data) - set(cls._SECTIONS))
        if unknown:
            raise ConfigurationError(f"unknown config section(s): {', '.join(unknown)}")
        kwargs = {
            name: _section_from_dict(sec_cls, data.get(name), name)
            for name, sec_cls in cls._SECTIONS.items()
        }
        return cls(**kwargs)

    def save_json(self, filepath: str):
        """Save to JSON file"""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def save_yaml(self, filepath: str):
        """Save to YAML file"""
        with open(filepath, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)

    @classmethod
    def load_json(cls, filepath: str) -> 'RunConfig':
        """Load from JSON file"""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def load_yaml(cls, filepath: str) -> 'RunConfig':
        """Load from YAML file"""
        with open(filepath, 'r') as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data)

    def validate(self) -> 'RunConfig':
        """Check enumerations and ranges. Raises ConfigurationError."""
        dim = self.sim.dim
        if dim not in SUPPORTED_DIMS:
            raise ConfigurationError(f"Unsupported dimension dim={dim}; expected one of {SUPPORTED_DIMS}")
        if self.mesh.order_v != 1:
            raise ConfigurationError(f"Unsupported velocity order order_v={self.mesh.order_v}; only 1 is available")
        if self.mesh.quad_1d not in SUPPORTED_QUADRATURE_1D:
            raise ConfigurationError(
                f"Unsupported quadrature quad_1d={self.mesh.quad_1d}; expected one of {SUPPORTED_QUADRATURE_1D}"
            )
        try:
            ODESolverType(self.solver.ode_solver_type)
        except ValueError:
            raise ConfigurationError(f"Unknown ODE solver type: {self.solver.ode_solver_type}") from None
        try:
            LinearSolverType(self.solver.linear_solver)
        except ValueError:
            raise ConfigurationError(f"Unknown linear solver: {self.solver.linear_solver!r}") from None
        if self.solver.cfl <= 0.0:
            raise ConfigurationError(f"cfl must be positive, got {self.solver.cfl}")
        if self.solver.zones_per_batch < 1:
            raise ConfigurationError(f"zones_per_batch must be >= 1, got {self.solver.zones_per_batch}")
        if self.sim.t_final <= 0.0:
            raise ConfigurationError(f"t_final must be positive, got {self.sim.t_final}")
        if self.control.init_dt is not None and self.control.init_dt <= 0.0:
            raise ConfigurationError(f"init_dt must be positive, got {self.control.init_dt}")
        if not (0.0 < self.control.dt_shrink < 1.0):
            raise ConfigurationError(f"dt_shrink must lie in (0, 1), got {self.control.dt_shrink}")
        n_sides = 2 * dim
        if len(self.bc.bc_ids) != n_sides:
            raise ConfigurationError(
                f"bc_ids needs {n_sides} entries for dim={dim}, got {len(self.bc.bc_ids)}"
            )
        for code in self.bc.bc_ids:
            if code not in BC_COMPONENTS[dim]:
                raise ConfigurationError(f"Unknown boundary condition code: {code}")
        for name, vals in zip(("bc_vxs", "bc_vys", "bc_vzs"), self.bc.side_velocities()):
            if vals and len(vals) != n_sides:
                raise ConfigurationError(f"{name} needs {n_sides} entries for dim={dim}, got {len(vals)}")
        if dim == 2 and self.bc.bc_vzs:
            raise ConfigurationError("bc_vzs is only used in 3-D runs")
        velocity_unit(self.bc.bc_unit)
        if self.control.mscale <= 0.0:
            raise ConfigurationError(f"mscale must be positive, got {self.control.mscale}")
        if self.control.winkler_foundation and self.control.winkler_rho <= 0.0:
            raise ConfigurationError(f"winkler_rho must be positive, got {self.control.winkler_rho}")
        n_layers = self.mesh.nz if dim == 3 else self.mesh.ny
        if self.mesh.layer_ids and len(self.mesh.layer_ids) != n_layers:
            raise ConfigurationError(
                f"layer_ids needs one id per element layer ({n_layers}), got {len(self.mesh.layer_ids)}"
            )
        return self
