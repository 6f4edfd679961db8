"""Scallop lending protocol."""
from .adapter import ScallopAdapter

__all__ = ["ScallopAdapter"]
