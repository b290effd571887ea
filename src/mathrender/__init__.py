"""Incremental TeX math pre-rendering for static HTML trees."""

from .version import __version__

__all__ = ["__version__"]
