"""Assemble a runnable problem from a :class:`~laggeo.config.RunConfig`.

Order of construction:

1. validate the configuration (hard abort on any inconsistency),
2. structured mesh and material table (per-material lists checked against
   the ids present in the mesh),
3. essential velocity DOFs from the box-side component selectors,
4. operator (kernel variant resolved here, once; mass scaling and the
   optional Winkler foundation attached),
5. initial state: positions, extension profile and prescribed side
   velocities (in ``bc_unit``), lithostatic stress,
6. plasticity model and weak-zone seed,
7. stepper and adaptive driver.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from laggeo.config import RunConfig
from laggeo.driver import AdaptiveStepDriver
from laggeo.fem.bcs import essential_nodes, prescribe_boundary_velocity, velocity_unit
from laggeo.fem.foundation import WinklerFoundation
from laggeo.fem.mesh import Mesh, structured_hex_mesh, structured_quad_mesh
from laggeo.initial import extension_velocity, lithostatic_stress, weak_zone_plastic_strain
from laggeo.materials import MaterialTable
from laggeo.ode import make_ode_solver
from laggeo.operator import LagrangianGeoOperator
from laggeo.plasticity import MohrCoulombPlasticity, PlasticityModel
from laggeo.remesh import NullRemesher
from laggeo.state import GlobalState
from laggeo.utils.run_info import print_material_summary, print_solver_summary


@dataclass
class Problem:
    config: RunConfig
    mesh: Mesh
    materials: MaterialTable
    operator: LagrangianGeoOperator
    state: GlobalState
    plastic_strain: np.ndarray
    plasticity: Optional[PlasticityModel]
    driver: AdaptiveStepDriver

    def run(self):
        return self.driver.run()


def build_mesh(cfg: RunConfig) -> Mesh:
    m = cfg.mesh
    if cfg.sim.dim == 2:
        return structured_quad_mesh(m.lx, m.ly, m.nx, m.ny, layer_ids=m.layer_ids)
    return structured_hex_mesh(m.lx, m.ly, m.lz, m.nx, m.ny, m.nz, layer_ids=m.layer_ids)


def build_problem(
    cfg: RunConfig,
    comm=None,
    verbose: bool = True,
    checkpoint: Optional[Callable] = None,
    remesher=None,
) -> Problem:
    cfg.validate()
    dim = cfg.sim.dim

    mesh = build_mesh(cfg)
    materials = MaterialTable.from_lists(mesh.attributes, **cfg.mat.lists())
    ess = essential_nodes(mesh, cfg.bc.bc_ids)

    body = None
    if cfg.control.gravity_on:
        body = np.zeros(dim)
        body[dim - 1] = -cfg.control.gravity

    foundation = None
    if cfg.control.winkler_foundation:
        foundation = WinklerFoundation(
            mesh, cfg.control.winkler_rho, cfg.control.gravity, cfg.control.thickness
        )

    operator = LagrangianGeoOperator(
        mesh.copy(), materials, ess, cfg.solver,
        q1d=cfg.mesh.quad_1d, order=cfg.mesh.order_v,
        body_acceleration=body, mass_scale=cfg.control.mscale,
        foundation=foundation, comm=comm,
    )

    v_unit = velocity_unit(cfg.bc.bc_unit)
    state = GlobalState.from_mesh(mesh)
    if cfg.bc.extension_velocity != 0.0:
        state.v[:] = extension_velocity(mesh.nodes, v_unit * cfg.bc.extension_velocity)
    prescribe_boundary_velocity(state.v, mesh, cfg.bc.bc_ids, cfg.bc.side_velocities(), v_unit)
    if cfg.control.lithostatic:
        rho = materials.per_cell("rho")
        state.s[:] = lithostatic_stress(mesh, rho, cfg.control.gravity, cfg.control.thickness)

    plasticity = None
    if cfg.mat.plastic:
        plasticity = MohrCoulombPlasticity(viscoplastic=cfg.mat.viscoplastic)
    pls = weak_zone_plastic_strain(
        mesh, (cfg.mat.weak_x, cfg.mat.weak_y, cfg.mat.weak_z), cfg.mat.weak_rad, cfg.mat.ini_pls
    )

    if remesher is None and cfg.remesh.remesh_steps > 0:
        remesher = NullRemesher(bc_ids=cfg.bc.bc_ids)

    driver = AdaptiveStepDriver(
        operator,
        make_ode_solver(cfg.solver.ode_solver_type),
        state,
        t_final=cfg.sim.t_final,
        max_steps=cfg.sim.max_tsteps,
        control=cfg.control,
        plasticity=plasticity,
        plastic_strain=pls,
        remesher=remesher,
        remesh_steps=cfg.remesh.remesh_steps,
        checkpoint=checkpoint,
        checkpoint_steps=cfg.sim.checkpoint_steps,
        print_every=cfg.sim.print_every,
        year=cfg.sim.year,
        debug_dt=cfg.sim.debug_dt,
    )

    if verbose:
        print_solver_summary(cfg, mesh.ne, mesh.nnode)
        print_material_summary(materials, plastic=cfg.mat.plastic, viscoplastic=cfg.mat.viscoplastic)

    return Problem(
        config=cfg,
        mesh=mesh,
        materials=materials,
        operator=operator,
        state=state,
        plastic_strain=pls,
        plasticity=plasticity,
        driver=driver,
    )


__all__ = ["Problem", "build_mesh", "build_problem"]
