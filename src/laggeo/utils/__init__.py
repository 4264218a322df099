"""Small helpers shared by runners."""
