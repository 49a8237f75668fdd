"""stratrun: dependency-aware multi-step image-generation strategy runner."""

from stratrun.version import __version__

__all__ = ["__version__"]
