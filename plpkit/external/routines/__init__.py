"""Routines executed inside an external session (run by path, not imported)."""
