"""Version information for tfmkit."""

__version__ = "0.1.0"
