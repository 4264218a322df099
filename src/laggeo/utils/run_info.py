"""Setup summaries printed before the time loop."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from laggeo.config import ODESolverType, RunConfig
from laggeo.materials import MaterialTable

_PREFIXES = ((1e9, "G"), (1e6, "M"), (1e3, "k"))


def _eng(x: float, unit: str) -> str:
    x = float(x)
    for scale, prefix in _PREFIXES:
        if abs(x) >= scale:
            return f"{x / scale:.3g} {prefix}{unit}"
    return f"{x:.3g} {unit}"


def _onoff(flag: bool) -> str:
    return "on" if flag else "off"


def print_run_header(tag: str, cfg: RunConfig) -> None:
    m = cfg.mesh
    if cfg.sim.dim == 2:
        box = f"{_eng(m.lx, 'm')} x {_eng(m.ly, 'm')}"
        cells = f"{m.nx}x{m.ny}"
    else:
        box = f"{_eng(m.lx, 'm')} x {_eng(m.ly, 'm')} x {_eng(m.lz, 'm')}"
        cells = f"{m.nx}x{m.ny}x{m.nz}"
    ts = datetime.now(ZoneInfo("Europe/Berlin")).strftime("%Y-%m-%d %H:%M:%S %Z")
    print(f"\n[run] {tag}  {cfg.sim.dim}-D box {box}  cells={cells}  t_final={cfg.sim.t_final:.4g} s  ({ts})")


def print_solver_summary(cfg: RunConfig, ne: int, nnode: int) -> None:
    s = cfg.solver
    c = cfg.control
    print(
        f"[run] elements={ne}  nodes={nnode}  quad_1d={cfg.mesh.quad_1d}"
        f"  ode={ODESolverType(s.ode_solver_type).name}  cfl={s.cfl:.3g}"
    )
    mass = "lumped" if s.mass_lumping else "consistent"
    print(
        f"[solver] linear={s.linear_solver}  mass={mass}  cg_tol={s.cg_tol:.1e}  cg_max_iter={s.cg_max_iter}"
        f"  viscosity={_onoff(s.impose_visc)}  corotational={_onoff(s.corotational)}  damping={s.damping:.3g}"
    )
    print(
        f"[control] gravity={_onoff(c.gravity_on)} ({c.gravity:.3g})  lithostatic={_onoff(c.lithostatic)}"
        f"  mscale={c.mscale:.3g}  winkler={_onoff(c.winkler_foundation)}"
        + (f" (rho={c.winkler_rho:.4g}, flat={_onoff(c.winkler_flat)})" if c.winkler_foundation else "")
    )
    print(f"[numba] requested={'yes' if s.use_numba else 'no'}  zones_per_batch={s.zones_per_batch}")


def print_material_summary(table: MaterialTable, plastic: bool = False, viscoplastic: bool = False) -> None:
    for mat_id in table.ids:
        z = table.zones[mat_id]
        print(
            f"[material] id={mat_id}  rho={z.rho:.4g}  lambda={_eng(z.lam, 'Pa')}  mu={_eng(z.mu, 'Pa')}"
            f"  gamma={z.gamma:.3g}"
        )
        if plastic:
            print(
                f"[material] id={mat_id}  (mohr-coulomb) c0={_eng(z.cohesion0, 'Pa')}  c1={_eng(z.cohesion1, 'Pa')}"
                f"  phi={z.friction_angle:.3g} deg  psi={z.dilation_angle:.3g} deg"
                f"  T={_eng(z.tension_cutoff, 'Pa')}  pls=[{z.pls0:.3g}, {z.pls1:.3g}]"
                + (f"  eta={z.plastic_viscosity:.3g}" if viscoplastic else "")
            )
