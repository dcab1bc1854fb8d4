"""
Weapon and spell reference catalogs.

Read-only lookups loaded from the JSON files in dnd_combat/data. Snapshots
that name a weapon or spell without full stats are completed from here,
and the unarmed strike comes from settings rather than the data files.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any
import json
import logging

from dnd_combat.config import get_settings
from dnd_combat.core.combatant import Ability, CastingTime, Item, Spell, SpellResolution

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent / "data"


def _catalog_key(value: str) -> str:
    return value.strip().lower().replace(" ", "_").replace("-", "_")


def _load_json(filename: str) -> Dict[str, Any]:
    path = DATA_DIR / filename
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load {path}: {e}")
        raise


@dataclass
class WeaponData:
    """Catalog entry for a weapon."""
    id: str
    name: str
    damage: str
    damage_type: str
    properties: List[str] = field(default_factory=list)
    category: str = ""

    def to_item(self, item_id: Optional[str] = None, equipped: bool = True) -> Item:
        props = list(self.properties)
        if "weapon" not in props:
            props.append("weapon")
        return Item(
            id=item_id or self.id,
            name=self.name,
            properties=props,
            equipped=equipped,
            damage=self.damage,
            damage_type=self.damage_type,
        )


class WeaponCatalog:
    """Weapons indexed by id and by name."""

    def __init__(self, weapons: Optional[Dict[str, WeaponData]] = None):
        self._weapons: Dict[str, WeaponData] = weapons if weapons is not None else {}

    @classmethod
    def load(cls) -> "WeaponCatalog":
        data = _load_json("weapons.json")
        weapons = {}
        # Index all weapons by ID
        for category, entries in data.get("weapons", {}).items():
            for entry in entries:
                weapons[entry["id"]] = WeaponData(
                    id=entry["id"],
                    name=entry["name"],
                    damage=entry["damage"],
                    damage_type=entry.get("damage_type", ""),
                    properties=entry.get("properties", []),
                    category=category,
                )
        logger.debug(f"Loaded {len(weapons)} weapons")
        return cls(weapons)

    def get(self, name_or_id: str) -> Optional[WeaponData]:
        return self._weapons.get(_catalog_key(name_or_id))

    def __contains__(self, name_or_id: str) -> bool:
        return self.get(name_or_id) is not None

    def __len__(self) -> int:
        return len(self._weapons)

    def unarmed_strike(self) -> Item:
        """The configured unarmed/improvised attack."""
        settings = get_settings()
        return Item(
            id="unarmed_strike",
            name="Unarmed Strike",
            properties=["weapon"],
            equipped=True,
            damage=settings.UNARMED_DAMAGE,
            damage_type=settings.UNARMED_DAMAGE_TYPE,
        )


class SpellCatalog:
    """Spells indexed by id and by name."""

    def __init__(self, spells: Optional[Dict[str, Spell]] = None):
        self._spells: Dict[str, Spell] = spells if spells is not None else {}

    @classmethod
    def load(cls) -> "SpellCatalog":
        data = _load_json("spells.json")
        spells = {}
        for entry in data.get("spells", []):
            save_ability = entry.get("save_ability")
            spells[entry["id"]] = Spell(
                name=entry["name"],
                level=entry.get("level", 0),
                damage=entry.get("damage"),
                damage_type=entry.get("damage_type", ""),
                healing=entry.get("healing"),
                resolution=SpellResolution(entry.get("resolution", "automatic")),
                save_ability=Ability.parse(save_ability) if save_ability else None,
                half_on_save=entry.get("half_on_save", False),
                condition=entry.get("condition"),
                duration=entry.get("duration", 0),
                upcast_damage=entry.get("upcast_damage"),
                casting_time=CastingTime(entry.get("casting_time", "action")),
            )
        logger.debug(f"Loaded {len(spells)} spells")
        return cls(spells)

    def get(self, name_or_id: str) -> Optional[Spell]:
        return self._spells.get(_catalog_key(name_or_id))

    def __contains__(self, name_or_id: str) -> bool:
        return self.get(name_or_id) is not None

    def __len__(self) -> int:
        return len(self._spells)


_weapon_catalog: Optional[WeaponCatalog] = None
_spell_catalog: Optional[SpellCatalog] = None


def get_weapon_catalog() -> WeaponCatalog:
    """Get the cached weapon catalog, loading it on first use."""
    global _weapon_catalog
    if _weapon_catalog is None:
        _weapon_catalog = WeaponCatalog.load()
    return _weapon_catalog


def get_spell_catalog() -> SpellCatalog:
    """Get the cached spell catalog, loading it on first use."""
    global _spell_catalog
    if _spell_catalog is None:
        _spell_catalog = SpellCatalog.load()
    return _spell_catalog
