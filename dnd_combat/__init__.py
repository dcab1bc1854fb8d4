"""D&D combat engine: initiative, action economy and action resolution."""

__version__ = "0.1.0"
