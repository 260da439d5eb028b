"""Remote target discovery and capture layer injection for Android devices."""

from .__version__ import __version__


__all__ = ["__version__"]
