"""Voigt <-> tensor conversion for symmetric stresses.

Ordering: ``[xx, yy, xy]`` in 2-D, ``[xx, yy, zz, xy, yz, xz]`` in 3-D.
Shear entries are tensor components (no engineering factor of 2).
"""

from __future__ import annotations

import numpy as np

VOIGT_PAIRS = {
    2: ((0, 0), (1, 1), (0, 1)),
    3: ((0, 0), (1, 1), (2, 2), (0, 1), (1, 2), (0, 2)),
}


def voigt_to_tensor(s: np.ndarray, dim: int) -> np.ndarray:
    """(..., nstress) -> (..., dim, dim)"""
    s = np.asarray(s, dtype=float)
    T = np.zeros(s.shape[:-1] + (dim, dim), dtype=float)
    for k, (i, j) in enumerate(VOIGT_PAIRS[dim]):
        T[..., i, j] = s[..., k]
        T[..., j, i] = s[..., k]
    return T


def tensor_to_voigt(T: np.ndarray) -> np.ndarray:
    """(..., dim, dim) -> (..., nstress), reading the upper triangle."""
    dim = T.shape[-1]
    pairs = VOIGT_PAIRS[dim]
    out = np.empty(T.shape[:-2] + (len(pairs),), dtype=float)
    for k, (i, j) in enumerate(pairs):
        out[..., k] = T[..., i, j]
    return out
