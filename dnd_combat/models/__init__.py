# Ingestion Models

from .combatant import (
    CombatantSnapshot,
    ItemData,
    SpellData,
)

__all__ = [
    "CombatantSnapshot",
    "ItemData",
    "SpellData",
]
