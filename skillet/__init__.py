"""Skillet - a package manager for AI agent skills."""

__version__ = "0.1.0"

from skillet.config import Config

__all__ = ["Config", "__version__"]
