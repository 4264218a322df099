"""
Command-line runner.

Usage:
    laggeo-run run.yaml
    laggeo-run run.json --history history.csv --plot history.png
    laggeo-run run.yaml --t-final 1e5 --max-steps 200 --dry-run
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from laggeo.config import RunConfig
from laggeo.errors import LaggeoError
from laggeo.output.history import write_history_csv
from laggeo.problem import build_problem
from laggeo.utils.run_info import print_run_header


def load_config(path) -> RunConfig:
    path = Path(path)
    if path.suffix.lower() in (".yaml", ".yml"):
        return RunConfig.load_yaml(path)
    return RunConfig.load_json(path)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="laggeo-run",
        description="Explicit Lagrangian elasto-viscoplastic solver",
    )
    parser.add_argument("config", help="Run configuration (.yaml/.yml or .json)")
    parser.add_argument("--t-final", type=float, default=None, help="Override sim.t_final")
    parser.add_argument("--max-steps", type=int, default=None, help="Override sim.max_tsteps")
    parser.add_argument("--history", default=None, help="Write the per-step history as CSV")
    parser.add_argument("--plot", default=None, help="Write an energy/dt history plot (PNG)")
    parser.add_argument("--dry-run", action="store_true", help="Build the problem but do not step")
    parser.add_argument("--quiet", action="store_true", help="Suppress the setup summary")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args.config)
        if args.t_final is not None:
            cfg.sim.t_final = args.t_final
        if args.max_steps is not None:
            cfg.sim.max_tsteps = args.max_steps

        print_run_header(Path(args.config).stem, cfg)
        problem = build_problem(cfg, verbose=not args.quiet)
        if args.dry_run:
            print("[run] dry run, solver not executed")
            return 0

        t0 = time.perf_counter()
        result = problem.run()
        wall = time.perf_counter() - t0
    except LaggeoError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 1

    print(
        f"[run] done  steps={result.steps}  rollbacks={result.rollbacks}"
        f"  t={result.t:.4e}  dt={result.dt:.4e}  wall={wall:.2f}s"
    )

    history_csv = args.history or cfg.sim.history_csv
    if history_csv:
        write_history_csv(result.history, history_csv)
        print(f"[output] history -> {history_csv}")
    if args.plot:
        from laggeo.output.plotting import plot_history

        plot_history(result.history, args.plot, year=cfg.sim.year, title=Path(args.config).stem)
        print(f"[output] plot -> {args.plot}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
