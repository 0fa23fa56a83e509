"""Cthulhu Companion unified card store."""

__version__ = "0.1.0"
