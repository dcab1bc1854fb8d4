"""
Combatant model.

Single canonical shape for everything that fights: player characters and
NPCs share one dataclass, distinguished by `kind`. Registry data is
normalized into this shape once, in dnd_combat.models.combatant.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Any


class CombatantKind(str, Enum):
    """Which side of the player/NPC split a combatant is on."""
    PLAYER = "player"
    NPC = "npc"


class Ability(str, Enum):
    """The six ability scores."""
    STRENGTH = "strength"
    DEXTERITY = "dexterity"
    CONSTITUTION = "constitution"
    INTELLIGENCE = "intelligence"
    WISDOM = "wisdom"
    CHARISMA = "charisma"

    @classmethod
    def parse(cls, value: str) -> "Ability":
        """Accept full names or the usual three-letter short forms."""
        key = value.strip().lower()
        for ability in cls:
            if key == ability.value or key == ability.value[:3]:
                return ability
        raise ValueError(f"Unknown ability: {value}")


@dataclass
class AbilityScore:
    """An ability score and its derived modifier."""
    score: int = 10

    @property
    def modifier(self) -> int:
        return (self.score - 10) // 2


@dataclass
class Item:
    """
    Equipment or inventory item.

    Attributes:
        properties: Tags such as "weapon", "finesse", "ranged", "usable", "consumable"
        damage: Damage notation for weapons or damaging items
        healing: Healing notation for potions and the like
        effect_name: Timed effect applied on use (e.g. "blessed")
        effect_duration: Rounds the effect lasts
    """
    id: str
    name: str
    properties: List[str] = field(default_factory=list)
    equipped: bool = False
    damage: Optional[str] = None
    damage_type: str = ""
    attack_bonus: int = 0
    damage_bonus: int = 0
    healing: Optional[str] = None
    effect_name: Optional[str] = None
    effect_duration: int = 0
    quantity: int = 1

    def has_property(self, name: str) -> bool:
        return name.lower() in (p.lower() for p in self.properties)

    @property
    def is_weapon(self) -> bool:
        return self.has_property("weapon") or self.damage is not None

    @property
    def combat_usable(self) -> bool:
        return self.has_property("usable")

    @property
    def consumable(self) -> bool:
        return self.has_property("consumable")


class CastingTime(str, Enum):
    """Which turn resource casting a spell spends."""
    ACTION = "action"
    BONUS_ACTION = "bonus_action"


class SpellResolution(str, Enum):
    """How a spell decides whether it lands."""
    ATTACK = "attack"
    SAVE = "save"
    AUTOMATIC = "automatic"


@dataclass
class Spell:
    """A known spell, in the subset of fields combat needs."""
    name: str
    level: int = 0
    damage: Optional[str] = None
    damage_type: str = ""
    healing: Optional[str] = None
    resolution: SpellResolution = SpellResolution.AUTOMATIC
    save_ability: Optional[Ability] = None
    half_on_save: bool = False
    condition: Optional[str] = None
    duration: int = 0
    upcast_damage: Optional[str] = None  # Extra dice per slot level above base
    casting_time: CastingTime = CastingTime.ACTION

    @property
    def is_bonus_action(self) -> bool:
        return self.casting_time == CastingTime.BONUS_ACTION


@dataclass
class Combatant:
    """
    A participant in combat.

    Attributes:
        id: Unique identifier
        name: Display name
        kind: Player or NPC
        abilities: Ability -> AbilityScore; missing abilities read as 10
        spells: Spells this combatant knows
        equipment: Worn/held items; only `equipped` ones count for attacks
        inventory: Carried items, including combat consumables
        spellcasting_ability: Casting ability; NPCs without one cannot cast
        spell_slots: Remaining slots by level, or None when slots are not tracked
        experience_value: XP this combatant is worth when defeated
        conditions: Condition tags carried into combat
    """
    id: str
    name: str
    kind: CombatantKind = CombatantKind.NPC
    max_hp: int = 10
    current_hp: int = 10
    armor_class: int = 10
    speed: int = 30
    abilities: Dict[Ability, AbilityScore] = field(default_factory=dict)
    proficiency_bonus: int = 2
    level: int = 1
    spells: List[Spell] = field(default_factory=list)
    equipment: List[Item] = field(default_factory=list)
    inventory: List[Item] = field(default_factory=list)
    spellcasting_ability: Optional[Ability] = None
    spell_slots: Optional[Dict[int, int]] = None
    experience_points: int = 0
    experience_value: int = 0
    conditions: List[str] = field(default_factory=list)

    @property
    def is_player(self) -> bool:
        return self.kind == CombatantKind.PLAYER

    def ability_modifier(self, ability: Ability) -> int:
        """Single accessor for ability modifiers."""
        score = self.abilities.get(ability)
        return score.modifier if score else 0

    @property
    def dexterity_modifier(self) -> int:
        return self.ability_modifier(Ability.DEXTERITY)

    def find_equipped(self, name: str) -> Optional[Item]:
        """Equipped item whose name matches, ignoring case."""
        wanted = name.strip().lower()
        for item in self.equipment:
            if item.equipped and item.name.lower() == wanted:
                return item
        return None

    def equipped_weapons(self) -> List[Item]:
        return [item for item in self.equipment if item.equipped and item.is_weapon]

    def weapon_ability_modifier(self, weapon: Item) -> int:
        """Finesse weapons use the better of STR and DEX, ranged weapons DEX, the rest STR."""
        strength = self.ability_modifier(Ability.STRENGTH)
        if weapon.has_property("finesse"):
            return max(strength, self.dexterity_modifier)
        if weapon.has_property("ranged"):
            return self.dexterity_modifier
        return strength

    def find_inventory_item(self, item_id: str) -> Optional[Item]:
        for item in self.inventory:
            if item.id == item_id:
                return item
        return None

    def find_spell(self, name: str) -> Optional[Spell]:
        wanted = name.strip().lower()
        for spell in self.spells:
            if spell.name.lower() == wanted:
                return spell
        return None

    @property
    def can_cast_spells(self) -> bool:
        # Players need a spell list; NPCs need a casting ability
        if self.is_player:
            return bool(self.spells)
        return self.spellcasting_ability is not None and bool(self.spells)

    @property
    def spellcasting_modifier(self) -> int:
        if self.spellcasting_ability is None:
            return 0
        return self.ability_modifier(self.spellcasting_ability)

    @property
    def spell_save_dc(self) -> int:
        return 8 + self.proficiency_bonus + self.spellcasting_modifier

    @property
    def spell_attack_bonus(self) -> int:
        return self.proficiency_bonus + self.spellcasting_modifier

    @property
    def passive_perception(self) -> int:
        return 10 + self.ability_modifier(Ability.WISDOM)

    def remaining_slots(self, level: int) -> Optional[int]:
        """Remaining slots at a level, or None when slots are untracked."""
        if self.spell_slots is None:
            return None
        return self.spell_slots.get(level, 0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "current_hp": self.current_hp,
            "max_hp": self.max_hp,
            "armor_class": self.armor_class,
            "speed": self.speed,
            "level": self.level,
            "abilities": {a.value: s.score for a, s in self.abilities.items()},
            "spells": [s.name for s in self.spells],
            "equipment": [i.name for i in self.equipment if i.equipped],
            "inventory": [{"id": i.id, "name": i.name, "quantity": i.quantity} for i in self.inventory],
            "spell_slots": dict(self.spell_slots) if self.spell_slots is not None else None,
            "experience_points": self.experience_points,
        }
