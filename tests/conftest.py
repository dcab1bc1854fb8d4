"""
D&D Combat Engine - Test Configuration and Fixtures
Shared test utilities and fixtures for pytest.
"""
import random
import sys
import os
from typing import Iterable, List

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dnd_combat.core.combatant import (
    Ability,
    AbilityScore,
    Combatant,
    CombatantKind,
    Item,
    Spell,
    SpellResolution,
)
from dnd_combat.core.combat_engine import CombatManager
from dnd_combat.core.combat_storage import clear_combats
from dnd_combat.core.dice import DiceRoller


# ==================== Dice Fixtures ====================

class SequenceRandom(random.Random):
    """Random source that returns scripted values from randint, in order."""

    def __init__(self, values: Iterable[int] = ()):
        super().__init__(0)
        self.values: List[int] = list(values)
        self.calls: List[tuple] = []

    def push(self, *values: int) -> None:
        self.values.extend(values)

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        if not self.values:
            raise AssertionError(f"SequenceRandom ran out of values (randint({a}, {b}))")
        value = self.values.pop(0)
        assert a <= value <= b, f"Scripted value {value} outside d{b}"
        return value


@pytest.fixture
def make_dice():
    """Factory: DiceRoller whose dice come up as the given values."""
    def _make(*values: int) -> DiceRoller:
        return DiceRoller(rng=SequenceRandom(values))
    return _make


@pytest.fixture
def make_manager(make_dice):
    """Factory: CombatManager with scripted dice."""
    def _make(*values: int) -> CombatManager:
        return CombatManager(dice=make_dice(*values))
    return _make


# ==================== Combatant Fixtures ====================

def abilities(**scores: int):
    return {Ability.parse(name): AbilityScore(score) for name, score in scores.items()}


@pytest.fixture
def longsword() -> Item:
    return Item(
        id="longsword-1",
        name="Longsword",
        properties=["weapon", "versatile"],
        equipped=True,
        damage="1d8",
        damage_type="slashing",
    )


@pytest.fixture
def healing_potion() -> Item:
    return Item(
        id="potion-1",
        name="Potion of Healing",
        properties=["usable", "consumable"],
        healing="2d4+2",
        quantity=2,
    )


@pytest.fixture
def player(longsword, healing_potion) -> Combatant:
    """A level 1 fighter: STR +3, DEX +1, AC 16."""
    return Combatant(
        id="player-1",
        name="Player",
        kind=CombatantKind.PLAYER,
        max_hp=20,
        current_hp=20,
        armor_class=16,
        abilities=abilities(str=16, dex=12, con=14),
        equipment=[longsword],
        inventory=[healing_potion],
    )


@pytest.fixture
def goblin() -> Combatant:
    """Standard goblin: 7 HP, AC 15, DEX +2."""
    return Combatant(
        id="goblin-1",
        name="Goblin",
        kind=CombatantKind.NPC,
        max_hp=7,
        current_hp=7,
        armor_class=15,
        abilities=abilities(str=8, dex=14),
        equipment=[Item(
            id="scimitar-1",
            name="Scimitar",
            properties=["weapon", "finesse", "light"],
            equipped=True,
            damage="1d6",
            damage_type="slashing",
        )],
        experience_value=50,
    )


@pytest.fixture
def second_goblin(goblin) -> Combatant:
    return Combatant(
        id="goblin-2",
        name="Goblin Archer",
        kind=CombatantKind.NPC,
        max_hp=7,
        current_hp=7,
        armor_class=13,
        abilities=abilities(str=8, dex=14),
        experience_value=50,
    )


@pytest.fixture
def magic_missile() -> Spell:
    return Spell(
        name="Magic Missile",
        level=1,
        damage="3d4+3",
        damage_type="force",
        resolution=SpellResolution.AUTOMATIC,
        upcast_damage="1d4",
    )


@pytest.fixture
def wizard(magic_missile) -> Combatant:
    """A level 1 wizard who knows only Magic Missile, with two 1st-level slots."""
    return Combatant(
        id="wizard-1",
        name="Wizard",
        kind=CombatantKind.PLAYER,
        max_hp=8,
        current_hp=8,
        armor_class=12,
        abilities=abilities(int=16, dex=14),
        spells=[magic_missile],
        spellcasting_ability=Ability.INTELLIGENCE,
        spell_slots={1: 2},
    )


# ==================== Registry Cleanup ====================

@pytest.fixture(autouse=True)
def reset_combat_registry():
    """Each test starts with no registered encounters."""
    clear_combats()
    yield
    clear_combats()
