"""
Effect Ledger.

Temporary effects (buffs, poisons, spell conditions) with durations,
indexed per combatant. The ledger only counts time down; it reports which
effects ran out and leaves removal to the caller, so the combat manager
can log the expiry and drop any condition tag the effect granted.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Any, Tuple
import uuid


class EffectType(str, Enum):
    """What an effect does while active."""
    HEALING = "healing"
    DAMAGE = "damage"
    STATUS = "status"
    MODIFIER = "modifier"


@dataclass
class ActiveEffect:
    """
    A temporary effect on one combatant.

    Attributes:
        name: Display name, and the condition tag for STATUS effects
        source: Spell or item that produced it
        value: Amount for healing/damage/modifier effects
        remaining_duration: Owner turns left before it expires
        applied_round: Round the effect was applied in
    """
    name: str
    source: str = ""
    effect_type: EffectType = EffectType.STATUS
    value: Any = None
    remaining_duration: int = 1
    applied_round: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def expired(self) -> bool:
        return self.remaining_duration <= 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "source": self.source,
            "effect_type": self.effect_type.value,
            "value": self.value,
            "remaining_duration": self.remaining_duration,
            "applied_round": self.applied_round,
        }


class EffectLedger:
    """Active effects per combatant id."""

    def __init__(self):
        self._effects: Dict[str, List[ActiveEffect]] = {}

    def register(self, combatant_id: str, effect: ActiveEffect) -> ActiveEffect:
        """Attach an existing effect to a combatant."""
        self.get_active_effects(combatant_id).append(effect)
        return effect

    def add_effect(
        self,
        combatant_id: str,
        name: str,
        source: str = "",
        effect_type: EffectType = EffectType.STATUS,
        value: Any = None,
        duration: int = 1,
        applied_round: int = 0,
    ) -> ActiveEffect:
        """Create and attach a new effect."""
        effect = ActiveEffect(
            name=name,
            source=source,
            effect_type=effect_type,
            value=value,
            remaining_duration=duration,
            applied_round=applied_round,
        )
        return self.register(combatant_id, effect)

    def get_active_effects(self, combatant_id: str) -> List[ActiveEffect]:
        """
        Live list of a combatant's effects.

        The same list object is returned on every call, so initiative
        entries can hold it as their view of the ledger.
        """
        return self._effects.setdefault(combatant_id, [])

    def find_effect(self, combatant_id: str, effect_id: str) -> Optional[ActiveEffect]:
        for effect in self._effects.get(combatant_id, []):
            if effect.id == effect_id:
                return effect
        return None

    def remove_effect(self, combatant_id: str, effect_id: str) -> bool:
        """Remove one effect. Returns False when it isn't there."""
        effect = self.find_effect(combatant_id, effect_id)
        if effect is None:
            return False
        self._effects[combatant_id].remove(effect)
        return True

    def advance_time(
        self,
        units: int = 1,
        combatant_id: Optional[str] = None,
    ) -> List[Tuple[str, ActiveEffect]]:
        """
        Count durations down by `units`.

        Args:
            units: Turns elapsed
            combatant_id: Only tick this combatant's effects; all when None

        Returns:
            (combatant_id, effect) pairs that are now expired. They stay in
            the ledger until the caller removes them.
        """
        if units < 0:
            raise ValueError("Time cannot run backwards")

        owners = [combatant_id] if combatant_id is not None else list(self._effects)
        expired = []
        for owner in owners:
            for effect in self._effects.get(owner, []):
                effect.remaining_duration = max(0, effect.remaining_duration - units)
                if effect.expired:
                    expired.append((owner, effect))
        return expired

    def clear(self, combatant_id: str) -> int:
        """Drop every effect on a combatant. Returns how many were removed."""
        effects = self._effects.get(combatant_id)
        if not effects:
            return 0
        count = len(effects)
        effects.clear()
        return count

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            owner: [e.to_dict() for e in effects]
            for owner, effects in self._effects.items()
            if effects
        }
