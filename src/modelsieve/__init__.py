"""Saved-filter evaluation engine with run history."""

__version__ = "0.1.0"
