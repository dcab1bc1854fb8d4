"""
Combat Engine.

Core state machine for managing combat encounters.
Handles the encounter lifecycle, turn advancement, and resolution of
attacks, spells, items and movement.

Player-facing rejections (not your turn, target already down, no slots
left) come back as ActionResult(success=False) with the validator's
message and leave the state untouched. A broken invariant raises
InvalidCombatStateError instead.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any, Callable, Tuple
import logging
import uuid

from dnd_combat.config import Settings, get_settings
from dnd_combat.core.catalogs import WeaponCatalog, get_weapon_catalog
from dnd_combat.core.combat_types import ActionType, CombatStatus
from dnd_combat.core.combat_validator import CombatValidator, ValidationResult
from dnd_combat.core.combatant import (
    Ability,
    Combatant,
    Item,
    Spell,
    SpellResolution,
)
from dnd_combat.core.condition_effects import (
    DASHED,
    DODGING,
    DISENGAGED,
    SURPRISED,
    UNCONSCIOUS,
    AttackModifiers,
    get_attack_modifiers,
    is_incapacitated,
)
from dnd_combat.core.dice import DiceRoller, D20CheckResult
from dnd_combat.core.effects import ActiveEffect, EffectLedger, EffectType
from dnd_combat.core.errors import (
    CombatAlreadyActiveError,
    CombatNotActiveError,
    ErrorCode,
    InvalidCombatStateError,
    NotYourTurnError,
    ValidationError,
)
from dnd_combat.core.initiative import InitiativeEntry, InitiativeTracker
from dnd_combat.core.reactions import (
    ReactionResult,
    ReactionTrigger,
    ReactionType,
    opportunity_attack_weapon,
    reactors_in_order,
)
from dnd_combat.core.tactical_ai import TacticalAI, TacticalDecision

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Result of taking an action in combat."""
    success: bool
    action_type: str
    description: str
    actor_id: Optional[str] = None
    target_id: Optional[str] = None
    damage_dealt: int = 0
    healing_done: int = 0
    hit: Optional[bool] = None
    critical: bool = False
    effects_applied: List[str] = field(default_factory=list)
    error_code: Optional[ErrorCode] = None
    extra_data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "action_type": self.action_type,
            "description": self.description,
            "actor_id": self.actor_id,
            "target_id": self.target_id,
            "damage_dealt": self.damage_dealt,
            "healing_done": self.healing_done,
            "hit": self.hit,
            "critical": self.critical,
            "effects_applied": self.effects_applied,
            "error_code": self.error_code.value if self.error_code else None,
            "extra_data": self.extra_data,
        }


@dataclass
class WeaponAttackRoll:
    """One weapon attack rolled against one target, before damage is applied."""
    weapon: Item
    roll: D20CheckResult
    modifiers: AttackModifiers
    hit: bool
    critical: bool
    damage: int = 0
    damage_rolls: List[int] = field(default_factory=list)
    damage_type: str = ""


@dataclass
class CombatEvent:
    """An event that occurred during combat, for narration and replay."""
    event_type: str
    round_number: int
    combatant_id: Optional[str]
    description: str
    target_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "round_number": self.round_number,
            "combatant_id": self.combatant_id,
            "target_id": self.target_id,
            "description": self.description,
            "data": self.data,
        }


@dataclass
class CombatState:
    """
    Complete state of a combat encounter.

    combat_log holds the human-readable lines; event_log holds the same
    story as structured CombatEvents for the narrator.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: CombatStatus = CombatStatus.NOT_STARTED
    initiative_tracker: InitiativeTracker = field(default_factory=InitiativeTracker)
    combat_log: List[str] = field(default_factory=list)
    event_log: List[CombatEvent] = field(default_factory=list)
    location: str = ""
    is_player_initiated: bool = False
    is_npc_initiated: bool = False
    experience_awarded: bool = False
    outcome: Optional[str] = None  # "victory", "defeat" or "fled"
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def round(self) -> int:
        return self.initiative_tracker.current_round

    @property
    def current_turn_index(self) -> int:
        return self.initiative_tracker.current_turn_index

    @property
    def initiative_order(self) -> List[InitiativeEntry]:
        return self.initiative_tracker.entries

    def log(self, message: str) -> None:
        self.combat_log.append(message)

    def add_event(
        self,
        event_type: str,
        description: str,
        combatant_id: Optional[str] = None,
        target_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None
    ) -> CombatEvent:
        """Add an event to the event log."""
        event = CombatEvent(
            event_type=event_type,
            round_number=self.round,
            combatant_id=combatant_id,
            description=description,
            target_id=target_id,
            data=data or {}
        )
        self.event_log.append(event)
        return event


EventListener = Callable[[CombatEvent], None]


class CombatManager:
    """
    Main combat manager that owns one encounter at a time.

    Handles:
    - Combat initialization and teardown
    - Turn and round management
    - Action resolution (attack, cast, use item, move, dodge, disengage, dash)
    - Opportunity attacks when a combatant moves out of reach
    - NPC turns driven by the tactical AI
    - Effect bookkeeping and experience awards

    Collaborators are injected so tests can script the dice.
    """

    def __init__(
        self,
        dice: Optional[DiceRoller] = None,
        validator: Optional[CombatValidator] = None,
        effects: Optional[EffectLedger] = None,
        weapons: Optional[WeaponCatalog] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings if settings is not None else get_settings()
        self.dice = dice if dice is not None else DiceRoller()
        self.validator = validator if validator is not None else CombatValidator()
        self.effects = effects if effects is not None else EffectLedger()
        self.weapons = weapons if weapons is not None else get_weapon_catalog()
        self.state: Optional[CombatState] = None
        self._listeners: List[EventListener] = []

    # =========================================================================
    # EVENTS
    # =========================================================================

    def add_listener(self, listener: EventListener) -> None:
        """Register a callback for every CombatEvent. Listeners must not block."""
        self._listeners.append(listener)

    def _emit(
        self,
        event_type: str,
        description: str,
        combatant_id: Optional[str] = None,
        target_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> CombatEvent:
        event = self.state.add_event(event_type, description, combatant_id, target_id, data)
        for listener in self._listeners:
            listener(event)
        return event

    # =========================================================================
    # COMBAT LIFECYCLE
    # =========================================================================

    def initiate_combat(
        self,
        participants: List[Combatant],
        location: str = "",
        is_player_initiated: bool = False,
        is_npc_initiated: bool = False,
    ) -> CombatState:
        """
        Start a new combat encounter.

        Args:
            participants: Players and NPCs, in submission order
            location: Where the fight happens, for the log
            is_player_initiated: Players ambushed; hostiles start surprised
            is_npc_initiated: Hostiles ambushed; players who fail to notice
                them (passive Perception below the lowest Stealth roll)
                start surprised

        Returns:
            The new, active CombatState

        Raises:
            CombatAlreadyActiveError: If an encounter is still running
            ValidationError: Empty or duplicate participants, nobody able to
                fight, or both sides claiming the ambush
        """
        if self.state is not None and self.state.status == CombatStatus.ACTIVE:
            raise CombatAlreadyActiveError(self.state.id)

        if is_player_initiated and is_npc_initiated:
            raise ValidationError("is_npc_initiated", "Only one side can initiate combat")

        if not participants:
            raise ValidationError("participants", "Combat needs at least one participant")

        seen = set()
        for combatant in participants:
            if combatant.id in seen:
                raise ValidationError("participants", f"Duplicate participant ID: {combatant.id}", combatant.id)
            seen.add(combatant.id)

        if all(c.current_hp <= 0 for c in participants):
            raise ValidationError("participants", "No participant is able to fight")

        state = CombatState(
            location=location,
            is_player_initiated=is_player_initiated,
            is_npc_initiated=is_npc_initiated,
        )
        self.state = state
        state.log(f"Combat started at {location}." if location else "Combat started.")

        tracker = state.initiative_tracker
        results = tracker.roll_all_initiative(participants, self.dice)

        for entry in tracker.entries:
            self.effects.clear(entry.id)
            entry.temporary_effects = self.effects.get_active_effects(entry.id)
            if entry.combatant.current_hp <= 0:
                entry.mark_defeated()

        if is_player_initiated:
            state.log("Players initiated combat with surprise!")
            for entry in tracker.entries:
                if not entry.is_player:
                    entry.conditions.add(SURPRISED)
        elif is_npc_initiated:
            self._roll_ambush(tracker)

        state.log("Initiative order: " + ", ".join(f"{r.combatant_name} ({r.total})" for r in results) + ".")

        state.status = CombatStatus.ACTIVE
        state.started_at = datetime.utcnow()
        tracker.current_turn_index = tracker.first_active_index()

        current = tracker.get_current_entry()
        current.start_turn()

        logger.info(f"Combat {state.id} started with {len(participants)} participants at {location or 'unknown location'}")
        self._emit(
            "combat_started",
            state.combat_log[0],
            data={
                "location": location,
                "is_player_initiated": is_player_initiated,
                "is_npc_initiated": is_npc_initiated,
                "initiative": [r.__dict__ for r in results],
            },
        )

        state.log(f"{current.name}'s turn started.")
        self._emit("turn_started", f"{current.name}'s turn started.", combatant_id=current.id)

        return state

    def _roll_ambush(self, tracker: InitiativeTracker) -> None:
        """Hostiles roll Stealth; players whose passive Perception falls short are surprised."""
        hostiles = tracker.get_living(is_player=False)
        if not hostiles:
            return

        stealth = min(self.dice.roll_d20_check(e.dexterity_modifier).total for e in hostiles)
        surprised = [
            e for e in tracker.get_living(is_player=True)
            if e.combatant.passive_perception < stealth
        ]
        for entry in surprised:
            entry.conditions.add(SURPRISED)

        if surprised:
            self.state.log(f"{', '.join(e.name for e in surprised)} {'was' if len(surprised) == 1 else 'were'} surprised!")
        else:
            self.state.log("The ambush was spotted!")
        logger.debug(f"Ambush stealth {stealth}: surprised {[e.id for e in surprised]}")

    def flee(self, reason: str = "fled") -> CombatState:
        """
        Abort the encounter (the party flees or everyone disengages).

        Raises:
            CombatNotActiveError: If no encounter is running
        """
        self._require_active()

        self.state.status = CombatStatus.ABORTED
        self.state.outcome = "fled"
        self.state.ended_at = datetime.utcnow()
        self.state.log(f"Combat ended. The party {reason}." if reason == "fled" else f"Combat aborted: {reason}.")

        logger.info(f"Combat {self.state.id} aborted after {self.state.round} rounds: {reason}")
        self._emit("combat_ended", self.state.combat_log[-1], data={"outcome": "fled", "reason": reason})
        return self.state

    abort_combat = flee

    def check_encounter_end(self) -> CombatStatus:
        """
        Complete the encounter once either side has nobody standing.

        A wiped party is a defeat even if the last enemy fell too. Players
        earn experience on victory, exactly once.

        Returns:
            The encounter status after the check
        """
        if self.state is None:
            raise CombatNotActiveError()
        if self.state.status != CombatStatus.ACTIVE:
            return self.state.status

        tracker = self.state.initiative_tracker
        players_down = not tracker.get_living(is_player=True)
        hostiles_down = not tracker.get_living(is_player=False)
        if not (players_down or hostiles_down):
            return self.state.status

        self._end_combat(victory=not players_down)
        return self.state.status

    def _end_combat(self, victory: bool) -> None:
        state = self.state
        state.status = CombatStatus.COMPLETED
        state.outcome = "victory" if victory else "defeat"
        state.ended_at = datetime.utcnow()
        state.log(f"Combat ended. {'Players were victorious!' if victory else 'Players were defeated!'}")

        xp_per_player = self._award_experience() if victory else 0

        logger.info(f"Combat {state.id} completed: {state.outcome} after {state.round} rounds")
        self._emit(
            "combat_ended",
            f"Combat ended: {state.outcome}",
            data={"outcome": state.outcome, "rounds": state.round, "xp_per_player": xp_per_player},
        )

    def _award_experience(self) -> int:
        """Split defeated hostiles' XP evenly between players. Returns XP per player."""
        state = self.state
        if state.experience_awarded:
            return 0

        entries = state.initiative_tracker.entries
        defeated = [e for e in entries if not e.is_player and e.is_defeated]
        players = [e for e in entries if e.is_player]
        if not defeated or not players:
            return 0

        total_xp = sum(e.combatant.experience_value for e in defeated)
        xp_per_player = total_xp // len(players)
        for entry in players:
            entry.combatant.experience_points += xp_per_player

        state.experience_awarded = True
        state.log(f"Experience awarded: {xp_per_player} XP per player.")
        return xp_per_player

    # =========================================================================
    # TURN MANAGEMENT
    # =========================================================================

    def advance_turn(self) -> Optional[InitiativeEntry]:
        """
        End the current turn and start the next living combatant's turn.

        Returns:
            The entry whose turn it now is, or None if the encounter is over

        Raises:
            CombatNotActiveError: If combat has not started
            InvalidCombatStateError: If the turn order is corrupt
        """
        if self.state is None:
            raise CombatNotActiveError()
        if self.state.status in (CombatStatus.COMPLETED, CombatStatus.ABORTED):
            return None
        if self.state.status != CombatStatus.ACTIVE:
            raise CombatNotActiveError(self.state.status.value)

        tracker = self.state.initiative_tracker
        # Nobody left on either side: end the fight instead of looking for a next turn
        if not tracker.get_living(is_player=True) and not tracker.get_living(is_player=False):
            self.check_encounter_end()
            return None

        try:
            current = tracker.get_current_entry()
            if current is None:
                raise InvalidCombatStateError("Active combat has no current turn")

            self._expire_effects(current)
            self._emit("turn_ended", f"{current.name}'s turn ended.", combatant_id=current.id)

            next_entry, new_round = tracker.advance_turn()
        except InvalidCombatStateError as e:
            logger.error(f"Combat {self.state.id} is in an invalid state: {e.message}")
            raise

        if new_round:
            self._start_round()

        self.state.log(f"{next_entry.name}'s turn started.")
        self._emit("turn_started", f"{next_entry.name}'s turn started.", combatant_id=next_entry.id)

        if self.check_encounter_end() != CombatStatus.ACTIVE:
            return None
        return next_entry

    def _start_round(self) -> None:
        round_number = self.state.round
        self.state.log(f"Round {round_number} started.")
        # Surprise only lasts for the first round
        for entry in self.state.initiative_tracker.entries:
            entry.conditions.discard(SURPRISED)
        self._emit("round_started", f"Round {round_number} started.", data={"round": round_number})

    def _expire_effects(self, entry: InitiativeEntry) -> None:
        """Tick the finished turn's effects and remove the ones that ran out."""
        for owner_id, effect in self.effects.advance_time(1, combatant_id=entry.id):
            self.remove_effect(owner_id, effect.id)

    def get_current_participant(self) -> Optional[InitiativeEntry]:
        """Get the entry whose turn it is."""
        if self.state is None or self.state.status == CombatStatus.NOT_STARTED:
            return None
        return self.state.initiative_tracker.get_current_entry()

    def get_available_actions(self) -> List[ActionType]:
        """What the current combatant can still do this turn."""
        if self.state is None or self.state.status != CombatStatus.ACTIVE:
            return []

        entry = self.get_current_participant()
        if entry is None:
            return []
        incapacitated, _ = is_incapacitated(entry.conditions)
        if incapacitated:
            return []

        actions = []
        if entry.has_action:
            actions.extend([ActionType.ATTACK, ActionType.DASH, ActionType.DISENGAGE, ActionType.DODGE])
            if entry.combatant.can_cast_spells:
                actions.append(ActionType.CAST)
            if any(i.combat_usable and i.quantity > 0 for i in entry.combatant.inventory):
                actions.append(ActionType.USE_ITEM)
        if entry.has_bonus_action and entry.combatant.can_cast_spells:
            if any(s.is_bonus_action for s in entry.combatant.spells):
                actions.append(ActionType.BONUS_ACTION)
        if entry.has_movement:
            actions.append(ActionType.MOVE)
        return actions

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def _require_active(self) -> None:
        if self.state is None:
            raise CombatNotActiveError()
        if self.state.status != CombatStatus.ACTIVE:
            raise CombatNotActiveError(self.state.status.value)

    def _reject(
        self,
        action_type: ActionType,
        result: ValidationResult,
        actor_id: Optional[str] = None,
        target_id: Optional[str] = None,
    ) -> ActionResult:
        logger.debug(f"Rejected {action_type.value} by {actor_id}: {result.error_message}")
        return ActionResult(
            success=False,
            action_type=action_type.value,
            description=result.error_message,
            actor_id=actor_id,
            target_id=target_id,
            error_code=result.error_code,
        )

    def _validate_turn(
        self,
        action_type: ActionType,
        actor_id: str,
    ) -> Tuple[Optional[InitiativeEntry], Optional[ActionResult]]:
        """Active combat, known actor, actor's turn. Returns (entry, rejection)."""
        check = self.validator.validate_active_combat(self.state)
        if not check:
            return None, self._reject(action_type, check, actor_id)

        check = self.validator.validate_participant_turn(actor_id, self.state)
        if not check:
            return None, self._reject(action_type, check, actor_id)

        return check.entity, None

    def _settle_after_action(self, actor: InitiativeEntry) -> None:
        """
        An actor who went down during its own turn cannot finish it.

        Ends the encounter if that emptied a side, otherwise passes the turn on.
        """
        if not actor.is_defeated or self.state.status != CombatStatus.ACTIVE:
            return
        if self.check_encounter_end() != CombatStatus.ACTIVE:
            return
        if self.state.initiative_tracker.get_current_entry() is actor:
            self.advance_turn()

    def resolve_attack(
        self,
        attacker_id: str,
        target_id: str,
        weapon_name: Optional[str] = None,
    ) -> ActionResult:
        """
        Make a weapon attack.

        A natural 20 always hits and doubles the damage dice; a natural 1
        always misses. Finesse weapons use the better of STR and DEX,
        ranged weapons use DEX, everything else STR.
        """
        attacker, rejection = self._validate_turn(ActionType.ATTACK, attacker_id)
        if rejection:
            return rejection

        check = self.validator.validate_target(target_id, self.state)
        if not check:
            return self._reject(ActionType.ATTACK, check, attacker_id, target_id)
        target = check.entity

        check = self.validator.validate_attack(attacker, target, weapon_name)
        if not check:
            return self._reject(ActionType.ATTACK, check, attacker_id, target_id)

        weapon = check.entity or self.default_weapon(attacker.combatant)
        self.dice.check_notation(weapon.damage or self.settings.UNARMED_DAMAGE, critical=True)

        attack = self._roll_weapon_attack(attacker, target, weapon)
        roll, modifiers = attack.roll, attack.modifiers
        hit, critical = attack.hit, attack.critical
        damage_total, damage_rolls, damage_type = attack.damage, attack.damage_rolls, attack.damage_type

        attacker.has_action = False

        if hit:
            description = (
                f"{attacker.name} attacked {target.name} with {weapon.name} "
                f"for {damage_total} {damage_type} damage."
            )
            if critical:
                description += " Critical hit!"
        else:
            description = f"{attacker.name} attacked {target.name} with {weapon.name} and missed."
            if roll.critical == "failure":
                description += " Critical miss!"
        self.state.log(description)

        self._emit(
            "attack",
            description,
            combatant_id=attacker.id,
            target_id=target.id,
            data={
                "hit": hit,
                "critical": critical,
                "damage": damage_total,
                "damage_type": damage_type,
                "weapon": weapon.name,
                "killing_blow": hit and damage_total >= target.combatant.current_hp,
            },
        )

        target_defeated = self._apply_damage(target, damage_total) if hit else False

        return ActionResult(
            success=True,
            action_type=ActionType.ATTACK.value,
            description=description,
            actor_id=attacker.id,
            target_id=target.id,
            damage_dealt=damage_total,
            hit=hit,
            critical=critical,
            extra_data={
                "attack_roll": roll.total,
                "natural_roll": roll.roll,
                "rolls": roll.rolls,
                "modifier": roll.modifier,
                "target_ac": target.combatant.armor_class,
                "advantage": roll.advantage,
                "disadvantage": roll.disadvantage,
                "modifier_reasons": modifiers.reasons,
                "weapon": weapon.name,
                "damage_type": damage_type,
                "damage_rolls": damage_rolls,
                "target_hp": target.combatant.current_hp,
                "target_defeated": target_defeated,
            },
        )

    def resolve_spell(
        self,
        caster_id: str,
        spell_name: str,
        level: Optional[int] = None,
        target_ids: Optional[List[str]] = None,
    ) -> ActionResult:
        """
        Cast a known spell.

        Args:
            caster_id: Who is casting
            spell_name: Name of a spell the caster knows
            level: Slot level; defaults to the spell's own level
            target_ids: Targets; beneficial spells with none target the caster
        """
        caster, rejection = self._validate_turn(ActionType.CAST, caster_id)
        if rejection:
            return rejection

        target_ids = list(target_ids or [])
        if level is None:
            known = caster.combatant.find_spell(spell_name or "")
            level = known.level if known else 0

        check = self.validator.validate_spell(caster, spell_name, level, target_ids, self.state)
        if not check:
            return self._reject(ActionType.CAST, check, caster_id)
        spell: Spell = check.entity

        if not target_ids:
            if spell.damage:
                return self._reject(
                    ActionType.CAST,
                    self.validator.validate_target(None, self.state),
                    caster_id,
                )
            target_ids = [caster.id]

        # Bad dice data must fail before the slot and action are spent
        may_crit = spell.resolution == SpellResolution.ATTACK
        if spell.damage:
            self.dice.check_notation(spell.damage, critical=may_crit)
        if spell.upcast_damage:
            self.dice.check_notation(spell.upcast_damage, critical=may_crit)
        if spell.healing:
            self.dice.check_notation(spell.healing)

        if spell.level >= 1 and caster.combatant.spell_slots is not None:
            caster.combatant.spell_slots[level] -= 1

        if spell.is_bonus_action:
            caster.has_bonus_action = False
        else:
            caster.has_action = False

        cast_line = f"{caster.name} cast {spell.name}" + (f" at level {level}." if level > spell.level else ".")
        self.state.log(cast_line)

        outcomes = []
        tracker = self.state.initiative_tracker
        for target_id in target_ids:
            outcomes.append(self._resolve_spell_on_target(caster, spell, level, tracker.get_entry(target_id)))

        total_damage = sum(o["damage"] for o in outcomes)
        total_healing = sum(o["healing"] for o in outcomes)

        self._emit(
            "spell",
            cast_line,
            combatant_id=caster.id,
            target_id=target_ids[0] if len(target_ids) == 1 else None,
            data={"spell": spell.name, "level": level, "targets": outcomes},
        )
        self._settle_after_action(caster)

        return ActionResult(
            success=True,
            action_type=ActionType.CAST.value,
            description=" ".join([cast_line] + [o["description"] for o in outcomes if o["description"]]),
            actor_id=caster.id,
            target_id=target_ids[0] if len(target_ids) == 1 else None,
            damage_dealt=total_damage,
            healing_done=total_healing,
            hit=any(o["hit"] for o in outcomes),
            critical=any(o["critical"] for o in outcomes),
            effects_applied=[spell.condition] if spell.condition and any(o["condition_applied"] for o in outcomes) else [],
            extra_data={
                "spell": spell.name,
                "level": level,
                "targets": outcomes,
                "slots_remaining": caster.combatant.remaining_slots(level),
            },
        )

    def _resolve_spell_on_target(
        self,
        caster: InitiativeEntry,
        spell: Spell,
        level: int,
        target: InitiativeEntry,
    ) -> Dict[str, Any]:
        """Resolve one spell against one target and apply the results."""
        outcome = {
            "target_id": target.id,
            "hit": True,
            "critical": False,
            "saved": None,
            "damage": 0,
            "healing": 0,
            "condition_applied": False,
            "defeated": False,
            "description": "",
        }

        if spell.resolution == SpellResolution.ATTACK:
            modifiers = get_attack_modifiers(caster.conditions, target.conditions, is_melee=False)
            roll = self.dice.roll_d20_check(
                caster.combatant.spell_attack_bonus,
                advantage=modifiers.advantage,
                disadvantage=modifiers.disadvantage,
                dc=target.combatant.armor_class,
            )
            outcome["hit"] = self._is_hit(roll)
            outcome["critical"] = outcome["hit"] and roll.critical == "success"
            outcome["attack_roll"] = roll.total
            outcome["natural_roll"] = roll.roll
        elif spell.resolution == SpellResolution.SAVE:
            save_ability = spell.save_ability or Ability.DEXTERITY
            roll = self.dice.roll_d20_check(
                target.combatant.ability_modifier(save_ability),
                dc=caster.combatant.spell_save_dc,
            )
            outcome["saved"] = roll.success
            outcome["save_roll"] = roll.total

        lands = outcome["hit"] and not outcome["saved"]
        half_damage = bool(outcome["saved"]) and spell.half_on_save

        if spell.damage and (lands or half_damage):
            damage = self.dice.roll_damage(spell.damage, critical=outcome["critical"]).total
            if spell.upcast_damage and level > spell.level >= 1:
                for _ in range(level - spell.level):
                    damage += self.dice.roll_damage(spell.upcast_damage, critical=outcome["critical"]).total
            if half_damage:
                damage //= 2
            outcome["damage"] = damage
            damage_type = f" {spell.damage_type}" if spell.damage_type else ""
            if half_damage:
                outcome["description"] = f"{target.name} resisted {spell.name} and took {damage}{damage_type} damage."
            else:
                outcome["description"] = f"{spell.name} hit {target.name} for {damage}{damage_type} damage."
                if outcome["critical"]:
                    outcome["description"] += " Critical hit!"
            self.state.log(outcome["description"])
            outcome["defeated"] = self._apply_damage(target, damage)
        elif spell.damage or outcome["saved"]:
            verb = "resisted" if outcome["saved"] else "dodged"
            outcome["description"] = f"{target.name} {verb} {spell.name}."
            self.state.log(outcome["description"])

        if spell.healing and lands:
            amount = max(1, self.dice.roll_dice(spell.healing).total + caster.combatant.spellcasting_modifier)
            healed = self._apply_healing(target, amount)
            outcome["healing"] = healed
            outcome["description"] = f"{spell.name} restored {healed} hit points to {target.name}."
            self.state.log(outcome["description"])

        if spell.condition and lands and not target.is_defeated:
            self.add_effect(
                target.id,
                ActiveEffect(
                    name=spell.condition,
                    source=spell.name,
                    effect_type=EffectType.STATUS,
                    remaining_duration=spell.duration or 1,
                ),
            )
            outcome["condition_applied"] = True

        return outcome

    def resolve_item_use(
        self,
        user_id: str,
        item_id: str,
        target_id: Optional[str] = None,
    ) -> ActionResult:
        """
        Use a combat-usable inventory item.

        Healing items with no target heal the user. Consumables are used up.
        """
        user, rejection = self._validate_turn(ActionType.USE_ITEM, user_id)
        if rejection:
            return rejection

        check = self.validator.validate_item(user, item_id, target_id, self.state)
        if not check:
            return self._reject(ActionType.USE_ITEM, check, user_id, target_id)
        item: Item = check.entity

        target = self.state.initiative_tracker.get_entry(target_id) if target_id else user
        on_target = "" if target is user else f" on {target.name}"

        damage_dealt = 0
        healing_done = 0
        effects_applied = []
        target_defeated = False

        if item.healing:
            self.dice.check_notation(item.healing)
        elif item.damage:
            self.dice.check_notation(item.damage)

        user.has_action = False

        if item.healing:
            amount = self.dice.roll_dice(item.healing).total
            healing_done = self._apply_healing(target, amount)
            description = f"{user.name} used {item.name}{on_target}, restoring {healing_done} hit points."
        elif item.damage:
            damage_dealt = self.dice.roll_damage(item.damage, modifier=item.damage_bonus).total
            damage_type = f" {item.damage_type}" if item.damage_type else ""
            description = f"{user.name} used {item.name}{on_target} for {damage_dealt}{damage_type} damage."
        else:
            description = f"{user.name} used {item.name}{on_target}."
        self.state.log(description)

        if damage_dealt:
            target_defeated = self._apply_damage(target, damage_dealt)

        if item.effect_name and not target.is_defeated:
            self.add_effect(
                target.id,
                ActiveEffect(
                    name=item.effect_name,
                    source=item.name,
                    effect_type=EffectType.STATUS,
                    remaining_duration=item.effect_duration or 1,
                ),
            )
            effects_applied.append(item.effect_name)

        if item.consumable:
            item.quantity -= 1
            if item.quantity <= 0:
                user.combatant.inventory.remove(item)

        self._emit(
            "item_used",
            description,
            combatant_id=user.id,
            target_id=target.id,
            data={"item": item.name, "healing": healing_done, "damage": damage_dealt},
        )
        self._settle_after_action(user)

        return ActionResult(
            success=True,
            action_type=ActionType.USE_ITEM.value,
            description=description,
            actor_id=user.id,
            target_id=target.id,
            damage_dealt=damage_dealt,
            healing_done=healing_done,
            effects_applied=effects_applied,
            extra_data={
                "item": item.name,
                "quantity_remaining": item.quantity,
                "target_hp": target.combatant.current_hp,
                "target_defeated": target_defeated,
            },
        )

    def resolve_movement(
        self,
        participant_id: str,
        distance: int,
        leaving_ids: Optional[List[str]] = None,
    ) -> ActionResult:
        """
        Spend this turn's movement.

        Args:
            participant_id: Who is moving
            distance: Feet moved, up to speed (twice that after a Dash)
            leaving_ids: Combatants whose reach the mover leaves. Each hostile
                among them with a reaction left gets an opportunity attack,
                in initiative order, unless the mover disengaged. A mover
                dropped by one of those attacks does not move.
        """
        entry, rejection = self._validate_turn(ActionType.MOVE, participant_id)
        if rejection:
            return rejection

        check = self.validator.validate_movement(entry, distance)
        if not check:
            return self._reject(ActionType.MOVE, check, participant_id)

        leaving_ids = list(leaving_ids or [])
        for reactor_id in leaving_ids:
            check = self.validator.validate_participant(reactor_id, self.state)
            if not check:
                return self._reject(ActionType.MOVE, check, participant_id, reactor_id)

        entry.has_movement = False
        reactions = self._resolve_opportunity_attacks(entry, leaving_ids)

        if entry.is_defeated:
            description = f"{entry.name} was cut down before moving away."
        else:
            description = f"{entry.name} moved {distance} feet."
            self._emit("move", description, combatant_id=entry.id, data={"distance": distance})
        self.state.log(description)
        self._settle_after_action(entry)

        return ActionResult(
            success=True,
            action_type=ActionType.MOVE.value,
            description=description,
            actor_id=entry.id,
            damage_dealt=sum(r.damage_dealt for r in reactions),
            extra_data={
                "distance": distance if not entry.is_defeated else 0,
                "speed": entry.combatant.speed,
                "reactions": [r.to_dict() for r in reactions],
            },
        )

    def _resolve_opportunity_attacks(self, mover: InitiativeEntry, reactor_ids: List[str]) -> List[ReactionResult]:
        """Let every eligible hostile strike the mover once, stopping if the mover drops."""
        results = []
        for reactor in reactors_in_order(self.state.initiative_tracker.entries, reactor_ids):
            if mover.is_defeated:
                break
            check = self.validator.validate_opportunity_attack(reactor, mover)
            if not check:
                logger.debug(f"No opportunity attack by {reactor.id}: {check.error_message}")
                continue

            reactor.has_reaction = False
            weapon = opportunity_attack_weapon(reactor.combatant) or self.weapons.unarmed_strike()
            attack = self._roll_weapon_attack(reactor, mover, weapon)

            if attack.hit:
                description = (
                    f"{reactor.name} makes an opportunity attack against {mover.name} with {weapon.name} "
                    f"for {attack.damage} {attack.damage_type} damage."
                )
                if attack.critical:
                    description += " Critical hit!"
            else:
                description = f"{reactor.name} makes an opportunity attack against {mover.name} and misses."
            self.state.log(description)
            self._emit(
                "opportunity_attack",
                description,
                combatant_id=reactor.id,
                target_id=mover.id,
                data={"hit": attack.hit, "critical": attack.critical, "damage": attack.damage, "weapon": weapon.name},
            )

            defeated = self._apply_damage(mover, attack.damage) if attack.hit else False
            results.append(ReactionResult(
                reaction_type=ReactionType.OPPORTUNITY_ATTACK,
                trigger=ReactionTrigger.ENEMY_LEAVES_REACH,
                reactor_id=reactor.id,
                target_id=mover.id,
                description=description,
                hit=attack.hit,
                critical=attack.critical,
                damage_dealt=attack.damage,
                target_defeated=defeated,
                extra_data={"attack_roll": attack.roll.total, "weapon": weapon.name, "damage_type": attack.damage_type},
            ))
        return results

    def resolve_dodge(self, participant_id: str) -> ActionResult:
        """Attacks against the dodger have disadvantage until their next turn."""
        return self._resolve_simple_action(
            ActionType.DODGE,
            participant_id,
            DODGING,
            "{name} takes the Dodge action.",
        )

    def resolve_disengage(self, participant_id: str) -> ActionResult:
        """No opportunity attacks for the rest of the turn."""
        return self._resolve_simple_action(
            ActionType.DISENGAGE,
            participant_id,
            DISENGAGED,
            "{name} disengages.",
        )

    def resolve_dash(self, participant_id: str) -> ActionResult:
        """The rest of this turn's movement may cover twice the mover's speed."""
        return self._resolve_simple_action(
            ActionType.DASH,
            participant_id,
            DASHED,
            "{name} dashes, gaining extra movement.",
        )

    def _resolve_simple_action(
        self,
        action_type: ActionType,
        participant_id: str,
        condition: Optional[str],
        template: str,
    ) -> ActionResult:
        entry, rejection = self._validate_turn(action_type, participant_id)
        if rejection:
            return rejection

        check = self.validator.validate_action(entry, action_type)
        if not check:
            return self._reject(action_type, check, participant_id)

        entry.has_action = False
        if condition:
            entry.conditions.add(condition)

        description = template.format(name=entry.name)
        self.state.log(description)
        self._emit(action_type.value, description, combatant_id=entry.id)

        return ActionResult(
            success=True,
            action_type=action_type.value,
            description=description,
            actor_id=entry.id,
            effects_applied=[condition] if condition else [],
        )

    # =========================================================================
    # NPC TURNS
    # =========================================================================

    def run_npc_turn(self) -> List[ActionResult]:
        """
        Play the current NPC's turn with the tactical AI, then end it.

        A decision the engine turns down falls back to Dodge. An
        incapacitated NPC just passes.

        Returns:
            The results of everything the NPC did, in order

        Raises:
            CombatNotActiveError: If no encounter is running
            NotYourTurnError: If it is a player's turn
        """
        self._require_active()
        tracker = self.state.initiative_tracker
        entry = tracker.get_current_entry()
        if entry.is_player:
            raise NotYourTurnError(entry.name)

        results: List[ActionResult] = []
        incapacitated, reasons = is_incapacitated(entry.conditions)
        if incapacitated:
            message = f"{entry.name} is unable to act."
            self.state.log(message)
            self._emit("npc_skipped", message, combatant_id=entry.id, data={"reasons": reasons})
        else:
            ai = TacticalAI(self, entry.id)
            decision = ai.decide_action()
            logger.debug(f"{entry.id} chose {decision.action_type.value}: {decision.reasoning}")

            result = self._execute_decision(entry, decision)
            if not result.success:
                self.state.log(f"{entry.name} changes tactics.")
                result = self.resolve_dodge(entry.id)
            results.append(result)

            if self._still_acting(entry):
                bonus = ai.decide_bonus_action()
                if bonus is not None:
                    results.append(self._execute_decision(entry, bonus))

        if self._still_acting(entry):
            self.advance_turn()
        return results

    def run_npc_turns(self) -> List[ActionResult]:
        """Play NPC turns until a player is up or the encounter ends."""
        self._require_active()
        results: List[ActionResult] = []
        while self.state.status == CombatStatus.ACTIVE:
            current = self.state.initiative_tracker.get_current_entry()
            if current.is_player:
                break
            results.extend(self.run_npc_turn())
        return results

    def _still_acting(self, entry: InitiativeEntry) -> bool:
        return (
            self.state.status == CombatStatus.ACTIVE
            and self.state.initiative_tracker.get_current_entry() is entry
        )

    def _execute_decision(self, entry: InitiativeEntry, decision: TacticalDecision) -> ActionResult:
        if decision.action_type == ActionType.ATTACK:
            return self.resolve_attack(entry.id, decision.target_id, decision.weapon_name)
        if decision.action_type in (ActionType.CAST, ActionType.BONUS_ACTION):
            targets = [decision.target_id] if decision.target_id else []
            return self.resolve_spell(entry.id, decision.spell_name, decision.spell_level, targets)
        if decision.action_type == ActionType.USE_ITEM:
            return self.resolve_item_use(entry.id, decision.item_id, decision.target_id)
        if decision.action_type == ActionType.DISENGAGE:
            return self.resolve_disengage(entry.id)
        if decision.action_type == ActionType.DASH:
            return self.resolve_dash(entry.id)
        return self.resolve_dodge(entry.id)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _is_hit(roll: D20CheckResult) -> bool:
        if roll.critical == "success":
            return True
        if roll.critical == "failure":
            return False
        return roll.success

    def default_weapon(self, combatant: Combatant) -> Item:
        """First equipped weapon, or an unarmed strike."""
        weapons = combatant.equipped_weapons()
        return weapons[0] if weapons else self.weapons.unarmed_strike()

    def _roll_weapon_attack(
        self,
        attacker: InitiativeEntry,
        target: InitiativeEntry,
        weapon: Item,
    ) -> WeaponAttackRoll:
        """Roll to hit and, on a hit, roll damage. Applies nothing."""
        ability_mod = attacker.combatant.weapon_ability_modifier(weapon)
        is_melee = not weapon.has_property("ranged")

        modifiers = get_attack_modifiers(attacker.conditions, target.conditions, is_melee=is_melee)
        roll = self.dice.roll_d20_check(
            ability_mod + weapon.attack_bonus,
            attacker.combatant.proficiency_bonus,
            advantage=modifiers.advantage,
            disadvantage=modifiers.disadvantage,
            dc=target.combatant.armor_class,
        )

        hit = self._is_hit(roll)
        attack = WeaponAttackRoll(
            weapon=weapon,
            roll=roll,
            modifiers=modifiers,
            hit=hit,
            critical=hit and (roll.critical == "success" or modifiers.auto_critical),
            damage_type=weapon.damage_type or self.settings.UNARMED_DAMAGE_TYPE,
        )
        if hit:
            damage = self.dice.roll_damage(
                weapon.damage or self.settings.UNARMED_DAMAGE,
                modifier=ability_mod + weapon.damage_bonus,
                critical=attack.critical,
            )
            attack.damage = damage.total
            attack.damage_rolls = damage.rolls
        return attack

    def _apply_damage(self, entry: InitiativeEntry, amount: int) -> bool:
        """
        Apply damage to an entry, clamping HP at 0.

        Returns:
            True if this damage defeated the entry
        """
        combatant = entry.combatant
        combatant.current_hp = max(0, combatant.current_hp - amount)

        if combatant.current_hp > 0 or entry.is_defeated:
            return False

        entry.mark_defeated()
        if entry.is_player:
            entry.conditions.add(UNCONSCIOUS)
            message = f"{entry.name} was knocked unconscious!"
        else:
            message = f"{entry.name} was defeated!"
        self.state.log(message)
        self._emit("defeated", message, combatant_id=entry.id)
        return True

    def _apply_healing(self, entry: InitiativeEntry, amount: int) -> int:
        """Heal up to max HP. Defeated entries stay down. Returns HP restored."""
        if entry.is_defeated:
            return 0
        combatant = entry.combatant
        before = combatant.current_hp
        combatant.current_hp = min(combatant.max_hp, combatant.current_hp + amount)
        return combatant.current_hp - before

    # =========================================================================
    # EFFECTS
    # =========================================================================

    def add_effect(self, target_id: str, effect: ActiveEffect) -> bool:
        """
        Attach a temporary effect to a combatant.

        STATUS effects also add their name as a condition tag.

        Returns:
            False if there is no encounter or no such combatant
        """
        if self.state is None:
            return False
        entry = self.state.initiative_tracker.get_entry(target_id)
        if entry is None:
            return False

        effect.applied_round = self.state.round
        self.effects.register(target_id, effect)
        if effect.effect_type == EffectType.STATUS:
            entry.conditions.add(effect.name.lower())

        message = f"{entry.name} is affected by {effect.name}."
        self.state.log(message)
        self._emit("effect_added", message, target_id=entry.id, data=effect.to_dict())
        return True

    def remove_effect(self, target_id: str, effect_id: str) -> bool:
        """
        Remove a temporary effect, dropping its condition tag if nothing else grants it.

        Returns:
            False if the combatant or effect is not found
        """
        if self.state is None:
            return False
        entry = self.state.initiative_tracker.get_entry(target_id)
        if entry is None:
            return False
        effect = self.effects.find_effect(target_id, effect_id)
        if effect is None:
            return False

        self.effects.remove_effect(target_id, effect_id)
        if effect.effect_type == EffectType.STATUS:
            tag = effect.name.lower()
            still_granted = any(
                e.effect_type == EffectType.STATUS and e.name.lower() == tag
                for e in self.effects.get_active_effects(target_id)
            )
            if not still_granted:
                entry.conditions.discard(tag)

        message = f"{effect.name} effect ended for {entry.name}."
        self.state.log(message)
        self._emit("effect_removed", message, target_id=entry.id, data=effect.to_dict())
        return True

    # =========================================================================
    # STATE ACCESS
    # =========================================================================

    def get_combat_log(self) -> List[str]:
        """Copy of the human-readable combat log."""
        return list(self.state.combat_log) if self.state else []

    def get_recent_events(self, count: int = 10) -> List[Dict[str, Any]]:
        """The last `count` structured events."""
        if self.state is None:
            return []
        return [e.to_dict() for e in self.state.event_log[-count:]]

    def get_combat_state(self) -> Dict[str, Any]:
        """Get the full combat state for serialization/display."""
        if self.state is None:
            return {"status": CombatStatus.NOT_STARTED.value}

        state = self.state
        current = self.get_current_participant() if state.status == CombatStatus.ACTIVE else None
        return {
            "id": state.id,
            "status": state.status.value,
            "round": state.round,
            "current_turn_index": state.current_turn_index,
            "current_combatant": current.to_dict() if current else None,
            "initiative_order": state.initiative_tracker.get_initiative_order(),
            "combatants": [e.combatant.to_dict() for e in state.initiative_order],
            "available_actions": [a.value for a in self.get_available_actions()],
            "location": state.location,
            "is_player_initiated": state.is_player_initiated,
            "is_npc_initiated": state.is_npc_initiated,
            "experience_awarded": state.experience_awarded,
            "outcome": state.outcome,
            "combat_log": list(state.combat_log),
            "event_count": len(state.event_log),
        }
