"""Configuration file discovery and loading."""
from .loader import ConfigLoader, load_configuration

__all__ = ["ConfigLoader", "load_configuration"]
