"""Exception types raised by laggeo."""

from __future__ import annotations


class LaggeoError(Exception):
    """Base class for all solver errors."""


class ConfigurationError(LaggeoError, ValueError):
    """Inconsistent or unsupported input detected before the time loop.

    Raised for per-material lists whose length disagrees with the mesh,
    unknown enumerated options (ODE scheme, kernel variant, boundary code)
    and malformed arrays. Never recovered from.
    """


class StepCollapseError(LaggeoError, RuntimeError):
    """The adaptive driver halved dt below its absolute floor."""

    def __init__(self, step: int, t: float, dt: float, dt_floor: float):
        self.step = int(step)
        self.t = float(t)
        self.dt = float(dt)
        self.dt_floor = float(dt_floor)
        super().__init__(
            f"Step collapse at step={self.step} t={self.t:.6e}: "
            f"dt={self.dt:.3e} fell below floor {self.dt_floor:.1e}"
        )
