"""Per-step run history (accepted steps only) and CSV export."""

from __future__ import annotations

import csv
from dataclasses import asdict, dataclass
from typing import Dict, List

SECONDS_PER_YEAR = 365.25 * 24.0 * 3600.0


@dataclass
class StepRecord:
    """Diagnostics of one accepted step n -> n+1."""

    step: int           # accepted step number (1-based)
    t: float            # time after the step
    dt: float           # step size taken
    dt_est: float       # stable-step estimate at the accepted state
    kinetic: float      # kinetic energy at t
    internal: float     # internal energy at t
    total: float        # kinetic + internal
    rollbacks: int      # rejected attempts before this step was accepted
    max_pls: float = 0.0


def record_to_dict(rec: StepRecord) -> Dict[str, float]:
    return asdict(rec)


def write_history_csv(history: List[StepRecord], filename: str) -> None:
    """Write step history to CSV file."""
    if len(history) == 0:
        return

    with open(filename, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=record_to_dict(history[0]).keys())
        writer.writeheader()
        for rec in history:
            writer.writerow(record_to_dict(rec))


def read_history_csv(filename: str) -> List[StepRecord]:
    out = []
    with open(filename, 'r', newline='') as f:
        for row in csv.DictReader(f):
            out.append(StepRecord(
                step=int(row["step"]),
                t=float(row["t"]),
                dt=float(row["dt"]),
                dt_est=float(row["dt_est"]),
                kinetic=float(row["kinetic"]),
                internal=float(row["internal"]),
                total=float(row["total"]),
                rollbacks=int(row["rollbacks"]),
                max_pls=float(row["max_pls"]),
            ))
    return out
