"""Brevet API - course management backend."""

__version__ = "0.1.0"
