"""
Reactions System.

Handles the reaction economy outside a combatant's own turn:
- Opportunity Attacks when a hostile leaves reach without disengaging

A reaction spends the reactor's has_reaction flag, which only comes back
when the reactor's own next turn starts.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from dnd_combat.core.combatant import Combatant, Item
from dnd_combat.core.initiative import InitiativeEntry


class ReactionType(str, Enum):
    """Types of reactions available."""
    OPPORTUNITY_ATTACK = "opportunity_attack"


class ReactionTrigger(str, Enum):
    """What triggers a reaction."""
    ENEMY_LEAVES_REACH = "enemy_leaves_reach"


@dataclass
class ReactionResult:
    """Result of using a reaction."""
    reaction_type: ReactionType
    trigger: ReactionTrigger
    reactor_id: str
    target_id: str
    description: str
    hit: bool = False
    critical: bool = False
    damage_dealt: int = 0
    target_defeated: bool = False
    extra_data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reaction_type": self.reaction_type.value,
            "trigger": self.trigger.value,
            "reactor_id": self.reactor_id,
            "target_id": self.target_id,
            "description": self.description,
            "hit": self.hit,
            "critical": self.critical,
            "damage_dealt": self.damage_dealt,
            "target_defeated": self.target_defeated,
            "extra_data": self.extra_data,
        }


def opportunity_attack_weapon(combatant: Combatant) -> Optional[Item]:
    """First equipped melee weapon. None means the reactor strikes unarmed."""
    for weapon in combatant.equipped_weapons():
        if not weapon.has_property("ranged"):
            return weapon
    return None


def reactors_in_order(entries: Iterable[InitiativeEntry], reactor_ids: Iterable[str]) -> List[InitiativeEntry]:
    """The named entries, in initiative order, each at most once."""
    wanted = set(reactor_ids)
    return [entry for entry in entries if entry.id in wanted]
