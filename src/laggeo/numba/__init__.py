"""Numba-compiled kernels.

This subpackage contains small, *stateless* computational kernels that run in
Numba's ``nopython`` mode. The quadrature update has a NumPy twin in
:mod:`laggeo.kernels.qupdate`; select the compiled one with
``solver.use_numba = True``.
"""
