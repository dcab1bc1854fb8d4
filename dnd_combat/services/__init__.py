"""
Services package for D&D Combat Engine.

Provides combat narration.
"""

from .combat_narrator import CombatNarrator
from .narration_fallbacks import get_combat_fallback, get_encounter_fallback

__all__ = [
    'CombatNarrator',
    'get_combat_fallback',
    'get_encounter_fallback',
]
