"""
Plotting Module

Functions for visualizing run histories (step size and energies).
"""

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt

from laggeo.output.history import SECONDS_PER_YEAR


def plot_history(history, filename, year=False, title=None):
    """
    Save a two-panel figure: accepted dt and stable estimate (top),
    kinetic / internal / total energy (bottom).

    Args:
        history: List of StepRecord
        filename: Output image path
        year: Plot time in years instead of seconds
        title: Optional figure title
    """
    scale = 1.0 / SECONDS_PER_YEAR if year else 1.0
    t = [r.t * scale for r in history]

    fig, (ax_dt, ax_e) = plt.subplots(2, 1, sharex=True, figsize=(7, 6))
    ax_dt.semilogy(t, [r.dt * scale for r in history], color="#1f77b4", marker="o", ms=3, label="dt")
    ax_dt.semilogy(t, [r.dt_est * scale for r in history], color="#ff7f0e", linestyle="--", label="stable estimate")
    ax_dt.set_ylabel("step size [yr]" if year else "step size [s]")
    ax_dt.legend(loc="best")

    ax_e.plot(t, [r.kinetic for r in history], color="#2ca02c", label="kinetic")
    ax_e.plot(t, [r.internal for r in history], color="#d62728", label="internal")
    ax_e.plot(t, [r.total for r in history], color="#7f7f7f", linestyle="-", label="total")
    ax_e.set_xlabel("time [yr]" if year else "time [s]")
    ax_e.set_ylabel("energy [J]")
    ax_e.legend(loc="best")

    if title:
        fig.suptitle(title)
    fig.tight_layout()
    fig.savefig(filename, dpi=120)
    plt.close(fig)
    return filename
