"""Finite-element building blocks: shape functions, meshes, BCs, assembly."""
