"""Output and post-processing utilities."""

from laggeo.output.history import StepRecord, write_history_csv, read_history_csv

__all__ = [
    "StepRecord",
    "write_history_csv",
    "read_history_csv",
]
