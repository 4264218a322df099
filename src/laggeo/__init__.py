"""laggeo: explicit Lagrangian elasto-viscoplastic solver for long-term tectonics."""

from .errors import LaggeoError, ConfigurationError, StepCollapseError
from .config import RunConfig, SimConfig, SolverConfig, ControlConfig, MeshConfig, MaterialConfig
from .state import GlobalState
from .materials import MaterialTable, MaterialZone
from .operator import LagrangianGeoOperator
from .ode import make_ode_solver, RK2AvgSolver
from .driver import AdaptiveStepDriver, RunResult
from .problem import Problem, build_problem

__all__ = [
    "LaggeoError", "ConfigurationError", "StepCollapseError",
    "RunConfig", "SimConfig", "SolverConfig", "ControlConfig", "MeshConfig", "MaterialConfig",
    "GlobalState",
    "MaterialTable", "MaterialZone",
    "LagrangianGeoOperator",
    "make_ode_solver", "RK2AvgSolver",
    "AdaptiveStepDriver", "RunResult",
    "Problem", "build_problem",
]
