"""
Combatant snapshot models.

Character and monster registries disagree on field names (hp vs
current_hp, ac vs armor_class, abilityScores vs abilities) and on whether
an ability is a bare score or a {score, modifier} pair. These pydantic
models accept every variant and produce the one canonical Combatant the
combat engine works with.
"""
from typing import Dict, List, Optional, Union, Any
import uuid

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from dnd_combat.config import get_settings
from dnd_combat.core.catalogs import SpellCatalog, WeaponCatalog, get_spell_catalog, get_weapon_catalog
from dnd_combat.core.combatant import (
    Ability,
    AbilityScore,
    CastingTime,
    Combatant,
    CombatantKind,
    Item,
    Spell,
    SpellResolution,
)
from dnd_combat.core.dice import is_valid_dice_notation
from dnd_combat.core.errors import ValidationError

# XP an NPC is worth per level when the registry doesn't say
XP_PER_NPC_LEVEL = 100


def _dice_notation(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_dice_notation(value):
        raise ValueError(f"Invalid dice notation: {value!r}")
    return value


class ItemData(BaseModel):
    """An equipment or inventory item as registries describe it."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    properties: List[str] = Field(default_factory=list)
    equipped: bool = False
    damage: Optional[str] = Field(default=None, validation_alias=AliasChoices("damage", "damage_dice"))
    damage_type: str = ""
    attack_bonus: int = 0
    damage_bonus: int = 0
    healing: Optional[str] = None
    effect_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("effect_name", "effect"))
    effect_duration: int = 0
    quantity: int = Field(default=1, ge=0)

    @field_validator("damage", "healing")
    @classmethod
    def check_notation(cls, value: Optional[str]) -> Optional[str]:
        return _dice_notation(value)

    def to_item(self) -> Item:
        return Item(
            id=self.id,
            name=self.name,
            properties=list(self.properties),
            equipped=self.equipped,
            damage=self.damage,
            damage_type=self.damage_type,
            attack_bonus=self.attack_bonus,
            damage_bonus=self.damage_bonus,
            healing=self.healing,
            effect_name=self.effect_name,
            effect_duration=self.effect_duration,
            quantity=self.quantity,
        )


class SpellData(BaseModel):
    """A fully described spell."""
    name: str
    level: int = Field(default=0, ge=0, le=9)
    damage: Optional[str] = None
    damage_type: str = ""
    healing: Optional[str] = None
    resolution: SpellResolution = SpellResolution.AUTOMATIC
    save_ability: Optional[Ability] = None
    half_on_save: bool = False
    condition: Optional[str] = None
    duration: int = 0
    upcast_damage: Optional[str] = None
    casting_time: CastingTime = CastingTime.ACTION

    @field_validator("damage", "healing", "upcast_damage")
    @classmethod
    def check_notation(cls, value: Optional[str]) -> Optional[str]:
        return _dice_notation(value)

    @field_validator("save_ability", mode="before")
    @classmethod
    def parse_save_ability(cls, value: Any) -> Any:
        return Ability.parse(value) if isinstance(value, str) else value

    def to_spell(self) -> Spell:
        return Spell(
            name=self.name,
            level=self.level,
            damage=self.damage,
            damage_type=self.damage_type,
            healing=self.healing,
            resolution=self.resolution,
            save_ability=self.save_ability,
            half_on_save=self.half_on_save,
            condition=self.condition,
            duration=self.duration,
            upcast_damage=self.upcast_damage,
            casting_time=self.casting_time,
        )


class CombatantSnapshot(BaseModel):
    """
    A combatant as handed over by a character or monster registry.

    Spells and equipment may be given by name; names are completed from
    the spell and weapon catalogs.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    kind: CombatantKind = Field(default=CombatantKind.NPC, validation_alias=AliasChoices("kind", "type"))
    current_hp: int = Field(validation_alias=AliasChoices("current_hp", "hp", "hit_points"))
    max_hp: Optional[int] = None
    armor_class: int = Field(default=10, validation_alias=AliasChoices("armor_class", "ac"))
    speed: Optional[int] = None
    level: int = Field(default=1, ge=1)
    proficiency_bonus: Optional[int] = None
    abilities: Dict[Ability, int] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("abilities", "ability_scores", "abilityScores"),
    )
    spells: List[Union[str, SpellData]] = Field(default_factory=list)
    equipment: List[Union[str, ItemData]] = Field(default_factory=list)
    inventory: List[ItemData] = Field(default_factory=list)
    spellcasting_ability: Optional[Ability] = None
    spell_slots: Optional[Dict[int, int]] = None
    experience_points: int = 0
    experience_value: Optional[int] = None
    conditions: List[str] = Field(default_factory=list)

    @field_validator("abilities", mode="before")
    @classmethod
    def normalize_abilities(cls, value: Any) -> Dict[Ability, int]:
        """Accept str/short keys and either bare scores or {score, modifier}."""
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("abilities must be a mapping")

        normalized = {}
        for key, raw in value.items():
            ability = key if isinstance(key, Ability) else Ability.parse(str(key))
            if isinstance(raw, dict):
                if "score" in raw:
                    score = raw["score"]
                elif "modifier" in raw:
                    # Only the modifier is known: pick the lowest matching score
                    score = 10 + 2 * int(raw["modifier"])
                else:
                    raise ValueError(f"{key} needs a score or a modifier")
            else:
                score = raw
            normalized[ability] = int(score)
        return normalized

    @field_validator("spellcasting_ability", mode="before")
    @classmethod
    def parse_spellcasting_ability(cls, value: Any) -> Any:
        return Ability.parse(value) if isinstance(value, str) else value

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in ("pc", "character", "player"):
            return CombatantKind.PLAYER
        if isinstance(value, str) and value.lower() in ("enemy", "monster", "hostile", "npc"):
            return CombatantKind.NPC
        return value

    def to_combatant(
        self,
        spell_catalog: Optional[SpellCatalog] = None,
        weapon_catalog: Optional[WeaponCatalog] = None,
    ) -> Combatant:
        """
        Build the canonical Combatant.

        Raises:
            ValidationError: If a spell or weapon given by name is unknown
        """
        settings = get_settings()
        spell_catalog = spell_catalog if spell_catalog is not None else get_spell_catalog()
        weapon_catalog = weapon_catalog if weapon_catalog is not None else get_weapon_catalog()

        spells = []
        for spell in self.spells:
            if isinstance(spell, SpellData):
                spells.append(spell.to_spell())
                continue
            known = spell_catalog.get(spell)
            if known is None:
                raise ValidationError("spells", f"Unknown spell: {spell}", spell)
            spells.append(known)

        equipment = []
        for item in self.equipment:
            if isinstance(item, ItemData):
                equipment.append(item.to_item())
                continue
            weapon = weapon_catalog.get(item)
            if weapon is None:
                raise ValidationError("equipment", f"Unknown weapon: {item}", item)
            equipment.append(weapon.to_item(item_id=f"{self.id}:{weapon.id}"))

        is_player = self.kind == CombatantKind.PLAYER
        experience_value = self.experience_value
        if experience_value is None:
            experience_value = 0 if is_player else self.level * XP_PER_NPC_LEVEL

        return Combatant(
            id=self.id,
            name=self.name,
            kind=self.kind,
            max_hp=self.max_hp if self.max_hp is not None else max(self.current_hp, 1),
            current_hp=self.current_hp,
            armor_class=self.armor_class,
            speed=self.speed if self.speed is not None else settings.DEFAULT_SPEED,
            abilities={a: AbilityScore(score) for a, score in self.abilities.items()},
            proficiency_bonus=(
                self.proficiency_bonus if self.proficiency_bonus is not None
                else 2 + (self.level - 1) // 4
            ),
            level=self.level,
            spells=spells,
            equipment=equipment,
            inventory=[i.to_item() for i in self.inventory],
            spellcasting_ability=self.spellcasting_ability,
            spell_slots=dict(self.spell_slots) if self.spell_slots is not None else None,
            experience_points=self.experience_points,
            experience_value=experience_value,
            conditions=[c.lower() for c in self.conditions],
        )
