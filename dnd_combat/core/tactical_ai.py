"""
Tactical AI - NPC decision making.

Implements utility-based decision making for NPC turns. Each legal
action is scored by its expected value and the highest-scoring action
is selected. Ties go to the candidate generated first, so the same
battlefield always produces the same decision.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, TYPE_CHECKING

from dnd_combat.core.combat_types import ActionType
from dnd_combat.core.combatant import Item, Spell
from dnd_combat.core.dice import parse_dice_notation
from dnd_combat.core.initiative import InitiativeEntry

if TYPE_CHECKING:
    from dnd_combat.core.combat_engine import CombatManager

# Share of max HP below which an NPC looks after itself first
SELF_HEAL_THRESHOLD = 0.5
# Share of max HP below which dodging becomes attractive
DODGE_THRESHOLD = 0.3


@dataclass
class TacticalDecision:
    """Result of tactical AI decision-making process."""
    action_type: ActionType
    target_id: Optional[str] = None
    weapon_name: Optional[str] = None
    spell_name: Optional[str] = None
    spell_level: Optional[int] = None
    item_id: Optional[str] = None
    score: float = 0.0
    reasoning: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "action_type": self.action_type.value,
            "target_id": self.target_id,
            "weapon_name": self.weapon_name,
            "spell_name": self.spell_name,
            "spell_level": self.spell_level,
            "item_id": self.item_id,
            "score": self.score,
            "reasoning": self.reasoning,
        }


def average_roll(notation: Optional[str], modifier: int = 0) -> float:
    """Expected total of a notation string plus a flat modifier."""
    if not notation:
        return 0.0
    parsed = parse_dice_notation(notation)
    return parsed.num_dice * (parsed.die_size + 1) / 2 + parsed.modifier + modifier


class TacticalAI:
    """
    Tactical AI for one NPC in a running encounter.

    Reads the encounter through the manager and checks every candidate
    with the manager's validator, so a decision is always legal when it
    is made.
    """

    def __init__(self, manager: "CombatManager", combatant_id: str):
        self.manager = manager
        self.combatant_id = combatant_id

    @property
    def entry(self) -> InitiativeEntry:
        return self.manager.state.initiative_tracker.get_entry(self.combatant_id)

    def decide_action(self) -> TacticalDecision:
        """
        Main decision entry point.

        Evaluates the battlefield, generates candidate actions,
        scores them, and returns the best action.
        """
        situation = self._assess_battlefield()

        critical = self._check_critical_conditions(situation)
        if critical:
            return critical

        candidates = self._generate_action_candidates(situation)
        if not candidates:
            return TacticalDecision(
                action_type=ActionType.DODGE,
                reasoning="No valid actions available",
            )

        for candidate in candidates:
            candidate.score = self._score_action(candidate, situation)
        return max(candidates, key=lambda c: c.score)

    def decide_bonus_action(self) -> Optional[TacticalDecision]:
        """Heal the most wounded ally (itself included) with a bonus-action spell."""
        if not self.entry.has_bonus_action:
            return None

        situation = self._assess_battlefield()
        wounded = [a for a in situation["allies"] if a["hp_percent"] < SELF_HEAL_THRESHOLD]
        if not wounded:
            return None

        target = min(wounded, key=lambda a: a["hp_percent"])
        for spell in self._castable_spells(target["id"], bonus_action=True):
            if spell.healing:
                return TacticalDecision(
                    action_type=ActionType.BONUS_ACTION,
                    target_id=target["id"],
                    spell_name=spell.name,
                    spell_level=spell.level,
                    reasoning=f"Healing {target['name']} with a bonus action",
                )
        return None

    # =========================================================================
    # SITUATION
    # =========================================================================

    def _assess_battlefield(self) -> Dict[str, Any]:
        tracker = self.manager.state.initiative_tracker
        me = self.entry

        def describe(entry: InitiativeEntry) -> Dict[str, Any]:
            combatant = entry.combatant
            return {
                "id": entry.id,
                "name": entry.name,
                "hp": combatant.current_hp,
                "max_hp": combatant.max_hp,
                "hp_percent": combatant.current_hp / max(1, combatant.max_hp),
                "armor_class": combatant.armor_class,
            }

        return {
            "my_hp_percent": me.combatant.current_hp / max(1, me.combatant.max_hp),
            "enemies": [describe(e) for e in tracker.get_living(is_player=not me.is_player)],
            "allies": [describe(e) for e in tracker.get_living(is_player=me.is_player)],
        }

    def _check_critical_conditions(self, situation: Dict[str, Any]) -> Optional[TacticalDecision]:
        """Badly hurt NPCs drink a potion or heal themselves before anything else."""
        hp_percent = situation["my_hp_percent"]
        if hp_percent >= SELF_HEAL_THRESHOLD:
            return None

        item = self._get_healing_item()
        if item is not None:
            return TacticalDecision(
                action_type=ActionType.USE_ITEM,
                target_id=self.combatant_id,
                item_id=item.id,
                reasoning=f"Self-healing - HP at {hp_percent * 100:.0f}%",
            )

        for spell in self._castable_spells(self.combatant_id, bonus_action=False):
            if spell.healing:
                return TacticalDecision(
                    action_type=ActionType.CAST,
                    target_id=self.combatant_id,
                    spell_name=spell.name,
                    spell_level=spell.level,
                    reasoning=f"Self-healing - HP at {hp_percent * 100:.0f}%",
                )
        return None

    def _get_healing_item(self) -> Optional[Item]:
        for item in self.entry.combatant.inventory:
            if item.healing and item.combat_usable and item.quantity > 0:
                return item
        return None

    def _castable_spells(self, target_id: str, bonus_action: bool) -> Iterator[Spell]:
        """Known spells of the given casting time that could be cast at target_id right now."""
        entry = self.entry
        validator = self.manager.validator
        for spell in entry.combatant.spells:
            if spell.is_bonus_action != bonus_action:
                continue
            if validator.validate_spell(entry, spell.name, spell.level, [target_id], self.manager.state):
                yield spell

    # =========================================================================
    # CANDIDATES
    # =========================================================================

    def _generate_action_candidates(self, situation: Dict[str, Any]) -> List[TacticalDecision]:
        entry = self.entry
        tracker = self.manager.state.initiative_tracker
        candidates = []

        for enemy in situation["enemies"]:
            if self.manager.validator.validate_attack(entry, tracker.get_entry(enemy["id"])):
                candidates.append(TacticalDecision(
                    action_type=ActionType.ATTACK,
                    target_id=enemy["id"],
                    reasoning=f"Attack {enemy['name']}",
                ))

            for spell in self._castable_spells(enemy["id"], bonus_action=False):
                if spell.damage:
                    candidates.append(TacticalDecision(
                        action_type=ActionType.CAST,
                        target_id=enemy["id"],
                        spell_name=spell.name,
                        spell_level=spell.level,
                        reasoning=f"Cast {spell.name} at {enemy['name']}",
                    ))

        if situation["my_hp_percent"] < DODGE_THRESHOLD:
            candidates.append(TacticalDecision(
                action_type=ActionType.DODGE,
                reasoning="Dodging - low HP",
            ))

        return candidates

    # =========================================================================
    # SCORING
    # =========================================================================

    def _score_action(self, action: TacticalDecision, situation: Dict[str, Any]) -> float:
        """
        Score an action based on expected utility.

        Higher scores indicate better actions.
        """
        if action.action_type == ActionType.ATTACK:
            return self._score_damage(action, situation, self._estimate_weapon_damage())
        if action.action_type == ActionType.CAST:
            spell = self.entry.combatant.find_spell(action.spell_name)
            # Spending a slot costs a little; cantrips are free
            return self._score_damage(action, situation, average_roll(spell.damage)) - 5 * spell.level
        if action.action_type == ActionType.DODGE:
            return self._score_dodge(situation)
        return 0.0

    def _score_damage(self, action: TacticalDecision, situation: Dict[str, Any], estimated_damage: float) -> float:
        target = next((t for t in situation["enemies"] if t["id"] == action.target_id), None)
        if target is None:
            return 0.0

        score = 50.0 + estimated_damage

        # Big bonus for a likely kill
        if target["hp"] <= estimated_damage:
            score += 40

        # Up to 20 points for wounded targets
        score += (1 - target["hp_percent"]) * 20
        return score

    def _score_dodge(self, situation: Dict[str, Any]) -> float:
        score = 10.0
        if situation["my_hp_percent"] < DODGE_THRESHOLD:
            score += 40
        score += len(situation["enemies"]) * 10
        return score

    def _estimate_weapon_damage(self) -> float:
        combatant = self.entry.combatant
        weapon = self.manager.default_weapon(combatant)
        notation = weapon.damage or self.manager.settings.UNARMED_DAMAGE
        return average_roll(notation, combatant.weapon_ability_modifier(weapon) + weapon.damage_bonus)
