"""Enums shared by the combat validator and the combat engine."""
from enum import Enum


class CombatStatus(str, Enum):
    """Lifecycle of an encounter."""
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ActionType(str, Enum):
    """Things a combatant can spend a turn resource on."""
    ATTACK = "attack"
    CAST = "cast"
    USE_ITEM = "use_item"
    DASH = "dash"
    DODGE = "dodge"
    DISENGAGE = "disengage"
    MOVE = "move"
    BONUS_ACTION = "bonus_action"
    REACTION = "reaction"


# Which per-turn flag each action type consumes
ACTION_RESOURCES = {
    ActionType.ATTACK: "has_action",
    ActionType.CAST: "has_action",
    ActionType.USE_ITEM: "has_action",
    ActionType.DASH: "has_action",
    ActionType.DODGE: "has_action",
    ActionType.DISENGAGE: "has_action",
    ActionType.MOVE: "has_movement",
    ActionType.BONUS_ACTION: "has_bonus_action",
    ActionType.REACTION: "has_reaction",
}

RESOURCE_NAMES = {
    "has_action": "action",
    "has_bonus_action": "bonus action",
    "has_reaction": "reaction",
    "has_movement": "movement",
}
