"""
Shared storage for active combat sessions.

In-process registry of running encounters, keyed by combat id, so the
route handlers and the narrator can find the same CombatManager.
Persistence is left to callers.
"""
from typing import Any, Dict, Optional
import logging

from dnd_combat.core.combat_engine import CombatManager
from dnd_combat.core.errors import NotFoundError

logger = logging.getLogger(__name__)


# combat_id -> CombatManager
active_combats: Dict[str, CombatManager] = {}
narrators: Dict[str, Any] = {}  # combat_id -> CombatNarrator


def register_combat(manager: CombatManager) -> str:
    """Store a started encounter and return its id."""
    if manager.state is None:
        raise ValueError("Cannot register a manager with no encounter")
    combat_id = manager.state.id
    active_combats[combat_id] = manager
    logger.debug(f"Registered combat {combat_id} ({len(active_combats)} active)")
    return combat_id


def find_combat(combat_id: str) -> Optional[CombatManager]:
    return active_combats.get(combat_id)


def get_combat(combat_id: str) -> CombatManager:
    """
    Look up an encounter.

    Raises:
        NotFoundError: If no encounter has this id
    """
    manager = active_combats.get(combat_id)
    if manager is None:
        raise NotFoundError("Combat", combat_id)
    return manager


def remove_combat(combat_id: str) -> bool:
    """Drop an encounter. Returns False if it wasn't registered."""
    if active_combats.pop(combat_id, None) is None:
        return False
    narrators.pop(combat_id, None)
    logger.debug(f"Removed combat {combat_id}")
    return True


def clear_combats() -> None:
    active_combats.clear()
    narrators.clear()
