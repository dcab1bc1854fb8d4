"""
Initiative System.

Handles turn order tracking for combat encounters: initiative rolls,
deterministic tie-breaks, per-turn resource flags and turn advancement.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Iterable, Set, Tuple

from dnd_combat.core.combatant import Combatant, CombatantKind
from dnd_combat.core.condition_effects import (
    DEFEATED,
    TURN_SCOPED_CONDITIONS,
    is_defeated,
)
from dnd_combat.core.dice import DiceRoller
from dnd_combat.core.effects import ActiveEffect
from dnd_combat.core.errors import InvalidCombatStateError


@dataclass
class InitiativeEntry:
    """
    A combatant's slot in the initiative order.

    Attributes:
        combatant: The combatant this entry tracks
        initiative: Rolled initiative (d20 + DEX modifier)
        order: Position in the submitted participant list, last tie-break
        has_action / has_bonus_action / has_reaction / has_movement:
            Per-turn resources; set true only when this entry's turn starts
        conditions: Condition tags in effect for this encounter
        temporary_effects: Live view of this combatant's effects in the ledger
    """
    combatant: Combatant
    initiative: int = 0
    order: int = 0
    has_action: bool = False
    has_bonus_action: bool = False
    has_reaction: bool = False
    has_movement: bool = False
    conditions: Set[str] = field(default_factory=set)
    temporary_effects: List[ActiveEffect] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.combatant.id

    @property
    def name(self) -> str:
        return self.combatant.name

    @property
    def is_player(self) -> bool:
        return self.combatant.kind == CombatantKind.PLAYER

    @property
    def dexterity_modifier(self) -> int:
        return self.combatant.dexterity_modifier

    @property
    def is_defeated(self) -> bool:
        return is_defeated(self.conditions)

    def start_turn(self) -> None:
        """Refresh resources at the start of this entry's turn."""
        if self.is_defeated:
            return
        self.has_action = True
        self.has_bonus_action = True
        self.has_reaction = True
        self.has_movement = True
        self.conditions -= TURN_SCOPED_CONDITIONS

    def end_turn(self) -> None:
        """Clear turn-scoped resources. The reaction stays until the next turn starts."""
        self.has_action = False
        self.has_bonus_action = False
        self.has_movement = False

    def mark_defeated(self) -> None:
        """Defeat is permanent for the encounter: no resources ever again."""
        self.conditions.add(DEFEATED)
        self.has_action = False
        self.has_bonus_action = False
        self.has_reaction = False
        self.has_movement = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "initiative": self.initiative,
            "is_player": self.is_player,
            "current_hp": self.combatant.current_hp,
            "max_hp": self.combatant.max_hp,
            "armor_class": self.combatant.armor_class,
            "has_action": self.has_action,
            "has_bonus_action": self.has_bonus_action,
            "has_reaction": self.has_reaction,
            "has_movement": self.has_movement,
            "conditions": sorted(self.conditions),
            "temporary_effects": [e.to_dict() for e in self.temporary_effects],
        }


@dataclass
class InitiativeResult:
    """Result of an initiative roll for display."""
    combatant_id: str
    combatant_name: str
    roll: int
    modifier: int
    total: int


def sort_initiative_order(entries: Iterable[InitiativeEntry]) -> List[InitiativeEntry]:
    """
    Order entries for play.

    Highest initiative first; ties go to the higher DEX modifier, then to
    whoever was submitted first.
    """
    return sorted(entries, key=lambda e: (-e.initiative, -e.dexterity_modifier, e.order))


def next_turn_index(order: List[InitiativeEntry], current: int) -> Tuple[int, bool]:
    """
    Find the next entry able to take a turn.

    Args:
        order: Entries in initiative order
        current: Index of the entry whose turn just ended

    Returns:
        (index, wrapped) where wrapped is True if the search passed the end
        of the order, i.e. a new round begins

    Raises:
        InvalidCombatStateError: If the order is empty or everyone is defeated
    """
    if not order:
        raise InvalidCombatStateError("Initiative order is empty")
    if not 0 <= current < len(order):
        raise InvalidCombatStateError(
            f"Turn index {current} out of range",
            details={"current_turn_index": current, "participants": len(order)},
        )

    index = current
    wrapped = False
    for _ in range(len(order)):
        index += 1
        if index >= len(order):
            index = 0
            wrapped = True
        if not order[index].is_defeated:
            return index, wrapped

    raise InvalidCombatStateError("No combatant is able to take a turn")


@dataclass
class InitiativeTracker:
    """
    Manages initiative order for a combat encounter.

    Handles:
    - Rolling initiative for all combatants
    - Sorting by initiative (with DEX and submission-order tiebreakers)
    - Tracking current turn and round
    - Advancing turns, skipping defeated entries
    """
    entries: List[InitiativeEntry] = field(default_factory=list)
    current_round: int = 0
    current_turn_index: int = 0
    combat_started: bool = False

    def roll_all_initiative(
        self,
        combatants: List[Combatant],
        dice: DiceRoller,
    ) -> List[InitiativeResult]:
        """
        Roll initiative for every combatant and sort the order.

        Returns:
            One InitiativeResult per combatant, in turn order
        """
        results: Dict[str, InitiativeResult] = {}
        entries = []

        for position, combatant in enumerate(combatants):
            modifier = combatant.dexterity_modifier
            roll = dice.roll_die(20)
            entries.append(InitiativeEntry(
                combatant=combatant,
                initiative=roll + modifier,
                order=position,
                conditions=set(c.lower() for c in combatant.conditions),
            ))
            results[combatant.id] = InitiativeResult(
                combatant_id=combatant.id,
                combatant_name=combatant.name,
                roll=roll,
                modifier=modifier,
                total=roll + modifier,
            )

        self.entries = sort_initiative_order(entries)
        self.combat_started = True
        self.current_round = 1
        self.current_turn_index = 0

        return [results[e.id] for e in self.entries]

    def get_entry(self, combatant_id: str) -> Optional[InitiativeEntry]:
        """Get an entry by combatant ID."""
        for entry in self.entries:
            if entry.id == combatant_id:
                return entry
        return None

    def get_current_entry(self) -> Optional[InitiativeEntry]:
        """Get the entry whose turn it is."""
        if not self.combat_started or not self.entries:
            return None
        if not 0 <= self.current_turn_index < len(self.entries):
            raise InvalidCombatStateError(
                f"Turn index {self.current_turn_index} out of range",
                details={"current_turn_index": self.current_turn_index, "participants": len(self.entries)},
            )
        return self.entries[self.current_turn_index]

    def first_active_index(self) -> int:
        """Index of the first entry that is not defeated."""
        for index, entry in enumerate(self.entries):
            if not entry.is_defeated:
                return index
        raise InvalidCombatStateError("No combatant is able to take a turn")

    def advance_turn(self) -> Tuple[InitiativeEntry, bool]:
        """
        End the current turn and start the next one.

        Returns:
            (next entry, whether a new round started)
        """
        current = self.get_current_entry()
        if current is None:
            raise InvalidCombatStateError("Combat has no turn to advance")

        current.end_turn()

        index, wrapped = next_turn_index(self.entries, self.current_turn_index)
        if wrapped:
            self.current_round += 1
        self.current_turn_index = index

        next_entry = self.entries[index]
        next_entry.start_turn()
        return next_entry, wrapped

    def get_living(self, is_player: bool) -> List[InitiativeEntry]:
        return [e for e in self.entries if e.is_player == is_player and not e.is_defeated]

    def get_initiative_order(self) -> List[Dict[str, Any]]:
        """Current initiative order for display."""
        order = []
        for i, entry in enumerate(self.entries):
            data = entry.to_dict()
            data["position"] = i + 1
            data["is_current"] = i == self.current_turn_index
            order.append(data)
        return order

    def is_combat_over(self) -> bool:
        """Combat ends once either side has nobody left standing."""
        if not self.combat_started:
            return False
        return not self.get_living(is_player=True) or not self.get_living(is_player=False)

    def get_combat_result(self) -> Optional[str]:
        """
        Get the result of combat if it's over.

        Returns:
            "victory" if players won, "defeat" if the party fell, None if ongoing
        """
        if not self.is_combat_over():
            return None
        # A wiped party is a defeat even if the last enemy fell too
        return "victory" if self.get_living(is_player=True) else "defeat"
