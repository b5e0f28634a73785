"""Storyboard asset export service."""

from storyexport.version import __version__

__all__ = ["__version__"]
