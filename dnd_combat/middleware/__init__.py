"""Middleware package for the D&D Combat Engine."""

from dnd_combat.middleware.error_handler import setup_error_handlers

__all__ = [
    "setup_error_handlers",
]
