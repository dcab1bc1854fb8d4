"""
Combat Validator.

Pure checks over combat state and a proposed action. Nothing here mutates
state. Every check returns a ValidationResult; a rejected action carries
the one human-readable reason shown to the player and an ErrorCode for
callers that branch on it.
"""
from dataclasses import dataclass
from typing import Any, List, Optional

from dnd_combat.core.combat_types import (
    ActionType,
    CombatStatus,
    ACTION_RESOURCES,
    RESOURCE_NAMES,
)
from dnd_combat.core.condition_effects import DISENGAGED, is_incapacitated, movement_multiplier
from dnd_combat.core.errors import ErrorCode
from dnd_combat.core.initiative import InitiativeEntry

MIN_SPELL_LEVEL = 0
MAX_SPELL_LEVEL = 9


@dataclass
class ValidationResult:
    """Outcome of a validation check."""
    is_valid: bool
    entity: Any = None
    error_message: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    @classmethod
    def ok(cls, entity: Any = None) -> "ValidationResult":
        return cls(is_valid=True, entity=entity)

    @classmethod
    def fail(cls, message: str, code: ErrorCode) -> "ValidationResult":
        return cls(is_valid=False, error_message=message, error_code=code)

    def __bool__(self) -> bool:
        return self.is_valid


class CombatValidator:
    """
    Validates combat actions against the current encounter.

    The state argument is a CombatState (see combat_engine); only its
    status and initiative tracker are read.
    """

    def validate_active_combat(self, state) -> ValidationResult:
        """The encounter must exist and be running."""
        if state is None:
            return ValidationResult.fail("No active combat encounter", ErrorCode.COMBAT_NOT_ACTIVE)
        if state.status != CombatStatus.ACTIVE:
            return ValidationResult.fail(
                f"Combat is not active (current status: {state.status.value})",
                ErrorCode.COMBAT_NOT_ACTIVE,
            )
        return ValidationResult.ok(state)

    def validate_participant(self, participant_id: Optional[str], state) -> ValidationResult:
        """The id must belong to someone in this encounter."""
        if not participant_id:
            return ValidationResult.fail("No participant ID provided", ErrorCode.VALIDATION_ERROR)

        entry = state.initiative_tracker.get_entry(participant_id)
        if entry is None:
            return ValidationResult.fail(
                f"Participant with ID {participant_id} not found in combat",
                ErrorCode.NOT_FOUND,
            )
        return ValidationResult.ok(entry)

    def validate_participant_turn(self, participant_id: Optional[str], state) -> ValidationResult:
        """
        The participant must exist and be the one whose turn it is.

        Raises:
            InvalidCombatStateError: If the turn index points outside the order
        """
        result = self.validate_participant(participant_id, state)
        if not result:
            return result

        entry = result.entity
        current = state.initiative_tracker.get_current_entry()
        if current is None or current.id != entry.id:
            return ValidationResult.fail(f"It's not {entry.name}'s turn", ErrorCode.COMBAT_NOT_YOUR_TURN)
        return result

    def validate_target(self, target_id: Optional[str], state) -> ValidationResult:
        """The target must be in this encounter and still standing."""
        if not target_id:
            return ValidationResult.fail("No target ID provided", ErrorCode.VALIDATION_ERROR)

        entry = state.initiative_tracker.get_entry(target_id)
        if entry is None:
            return ValidationResult.fail(
                f"Target with ID {target_id} not found in combat",
                ErrorCode.NOT_FOUND,
            )
        if entry.is_defeated:
            return ValidationResult.fail(
                f"{entry.name} is already defeated and cannot be targeted",
                ErrorCode.COMBAT_TARGET_INVALID,
            )
        return ValidationResult.ok(entry)

    def validate_action(self, entry: InitiativeEntry, action_type: ActionType) -> ValidationResult:
        """The entry must be able to act and still hold the resource this action spends."""
        incapacitated, reasons = is_incapacitated(entry.conditions)
        if incapacitated:
            return ValidationResult.fail(
                f"{entry.name} cannot act ({', '.join(reasons)})",
                ErrorCode.COMBAT_INVALID_ACTION,
            )

        resource = ACTION_RESOURCES[action_type]
        if not getattr(entry, resource):
            return ValidationResult.fail(
                f"{entry.name} has already used their {RESOURCE_NAMES[resource]} this turn",
                ErrorCode.COMBAT_RESOURCE_EXHAUSTED,
            )

        if action_type == ActionType.CAST:
            combatant = entry.combatant
            if entry.is_player and not combatant.spells:
                return ValidationResult.fail(
                    f"{entry.name} doesn't have any spells available",
                    ErrorCode.COMBAT_INVALID_ACTION,
                )
            if not entry.is_player and not combatant.can_cast_spells:
                return ValidationResult.fail(f"{entry.name} can't cast spells", ErrorCode.COMBAT_INVALID_ACTION)

        return ValidationResult.ok(entry)

    def validate_attack(
        self,
        attacker: InitiativeEntry,
        defender: InitiativeEntry,
        weapon_name: Optional[str] = None,
    ) -> ValidationResult:
        """
        Attack-specific checks.

        Returns the named weapon as the entity when one was given.
        """
        result = self.validate_action(attacker, ActionType.ATTACK)
        if not result:
            return result

        if defender.is_defeated:
            return ValidationResult.fail(
                f"{defender.name} is already defeated and cannot be targeted",
                ErrorCode.COMBAT_TARGET_INVALID,
            )

        if weapon_name:
            weapon = attacker.combatant.find_equipped(weapon_name)
            if weapon is None:
                return ValidationResult.fail(
                    f"{attacker.name} doesn't have {weapon_name} equipped",
                    ErrorCode.COMBAT_INVALID_ACTION,
                )
            return ValidationResult.ok(weapon)

        return ValidationResult.ok()

    def validate_spell(
        self,
        caster: InitiativeEntry,
        spell_name: str,
        level: int,
        target_ids: List[str],
        state,
    ) -> ValidationResult:
        """
        Spell-specific checks. Returns the known Spell as the entity.

        Bonus-action spells spend the bonus action instead of the action.
        """
        spell = caster.combatant.find_spell(spell_name or "")
        action_type = ActionType.BONUS_ACTION if spell and spell.is_bonus_action else ActionType.CAST
        result = self.validate_action(caster, action_type)
        if not result:
            return result

        if spell is None:
            return ValidationResult.fail(
                f"{caster.name} doesn't know the spell {spell_name}",
                ErrorCode.COMBAT_INVALID_ACTION,
            )
        if not caster.combatant.can_cast_spells:
            return ValidationResult.fail(f"{caster.name} can't cast spells", ErrorCode.COMBAT_INVALID_ACTION)

        if not isinstance(level, int) or isinstance(level, bool) or not MIN_SPELL_LEVEL <= level <= MAX_SPELL_LEVEL:
            return ValidationResult.fail(
                f"Invalid spell level: {level} (must be between {MIN_SPELL_LEVEL} and {MAX_SPELL_LEVEL})",
                ErrorCode.VALIDATION_ERROR,
            )

        if spell.level == 0 and level != 0:
            return ValidationResult.fail(
                f"{spell.name} is a cantrip and can't be cast with a spell slot",
                ErrorCode.VALIDATION_ERROR,
            )

        if level < spell.level:
            return ValidationResult.fail(
                f"{spell.name} can't be cast below level {spell.level}",
                ErrorCode.VALIDATION_ERROR,
            )

        if spell.level >= 1:
            remaining = caster.combatant.remaining_slots(level)
            if remaining is not None and remaining <= 0:
                return ValidationResult.fail(
                    f"{caster.name} has no level {level} spell slots remaining",
                    ErrorCode.COMBAT_RESOURCE_EXHAUSTED,
                )

        for target_id in target_ids:
            target_result = self.validate_target(target_id, state)
            if not target_result:
                return target_result

        return ValidationResult.ok(spell)

    def validate_item(
        self,
        user: InitiativeEntry,
        item_id: str,
        target_id: Optional[str],
        state,
    ) -> ValidationResult:
        """Item-specific checks. Returns the inventory Item as the entity."""
        result = self.validate_action(user, ActionType.USE_ITEM)
        if not result:
            return result

        item = user.combatant.find_inventory_item(item_id)
        if item is None or item.quantity <= 0:
            return ValidationResult.fail(f"{user.name} doesn't have that item", ErrorCode.NOT_FOUND)

        if not item.combat_usable:
            return ValidationResult.fail(f"{item.name} cannot be used in combat", ErrorCode.COMBAT_INVALID_ACTION)

        if target_id:
            target_result = self.validate_target(target_id, state)
            if not target_result:
                return target_result

        return ValidationResult.ok(item)

    def validate_movement(self, entry: InitiativeEntry, distance: int) -> ValidationResult:
        """Movement must be available, positive and within speed (doubled after a Dash)."""
        result = self.validate_action(entry, ActionType.MOVE)
        if not result:
            return result

        if distance <= 0:
            return ValidationResult.fail("Movement distance must be positive", ErrorCode.VALIDATION_ERROR)

        speed = entry.combatant.speed * movement_multiplier(entry.conditions)
        if distance > speed:
            return ValidationResult.fail(
                f"Movement distance ({distance}) exceeds speed ({speed})",
                ErrorCode.VALIDATION_ERROR,
            )

        return ValidationResult.ok(entry)

    def validate_opportunity_attack(self, reactor: InitiativeEntry, mover: InitiativeEntry) -> ValidationResult:
        """
        Can `reactor` spend its reaction on an opportunity attack against `mover`?

        Only hostiles react, only with a reaction left, and never against
        someone who disengaged this turn.
        """
        if reactor.id == mover.id or reactor.is_player == mover.is_player:
            return ValidationResult.fail(
                f"{reactor.name} is not hostile to {mover.name}",
                ErrorCode.COMBAT_TARGET_INVALID,
            )
        if reactor.is_defeated:
            return ValidationResult.fail(f"{reactor.name} is defeated", ErrorCode.COMBAT_INVALID_ACTION)

        result = self.validate_action(reactor, ActionType.REACTION)
        if not result:
            return result

        if DISENGAGED in mover.conditions:
            return ValidationResult.fail(
                f"{mover.name} disengaged and provokes no opportunity attacks",
                ErrorCode.COMBAT_INVALID_ACTION,
            )
        return ValidationResult.ok(reactor)
