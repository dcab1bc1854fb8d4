"""
Pre-written combat narration for when AI is unavailable.

Template-based narration used when the Claude API is unavailable,
narration is disabled, or a request fails.
"""
from typing import Dict, List, Optional
import random


# =============================================================================
# ACTION NARRATION
# =============================================================================

COMBAT_NARRATION: Dict[str, List[str]] = {
    "hit_kill": [
        "{actor} delivers a devastating blow to {target}, ending the fight decisively!",
        "With deadly precision, {actor} strikes true. {target} falls!",
        "{target} collapses under {actor}'s relentless assault.",
    ],
    "hit_critical": [
        "{actor} lands a critical strike on {target}! The blow is devastating!",
        "{actor} finds a weak point in {target}'s defenses. A critical hit!",
    ],
    "hit": [
        "{actor} lands a solid strike on {target}.",
        "The blow finds its mark, and {target} staggers from the impact.",
        "{actor} strikes {target} with a well-aimed attack.",
    ],
    "miss": [
        "{actor}'s attack goes wide, missing {target}.",
        "{target} narrowly avoids {actor}'s strike.",
        "{actor} swings but finds only air.",
    ],
    "miss_critical": [
        "{actor}'s attack goes wildly astray!",
        "A fumble! {actor}'s strike completely misses the mark.",
    ],
    "healing": [
        "{actor}'s healing magic washes over {target}, mending wounds.",
        "{target} feels renewed as {actor}'s healing takes effect.",
    ],
    "spell_damage": [
        "Arcane energy erupts from {actor}, striking {target} with magical force!",
        "{actor}'s spell crashes into {target} with devastating effect.",
    ],
    "spell_miss": [
        "{target} resists {actor}'s spell, shaking off the magical effect.",
        "{actor}'s magic fails to take hold on {target}.",
    ],
    "item": [
        "{actor} reaches for a pouch and puts {item} to use.",
        "Quick hands: {actor} uses {item} in the thick of the fight.",
    ],
}


# =============================================================================
# ENCOUNTER NARRATION
# =============================================================================

ENCOUNTER_NARRATION: Dict[str, List[str]] = {
    "combat_started": [
        "Steel rings out as weapons are drawn. Battle is joined!",
        "The air grows tense as your enemies ready their weapons.",
    ],
    "combat_started_surprise": [
        "You strike from the shadows before your foes can react!",
        "Your ambush catches the enemy completely off guard!",
    ],
    "round_started": [
        "The battle rages on.",
        "Combatants circle one another, looking for an opening.",
    ],
    "defeated": [
        "{actor} falls and does not rise.",
        "{actor} crumples to the ground.",
    ],
    "victory": [
        "The last of your foes falls. Victory is yours!",
        "Silence settles over the battlefield. You have prevailed.",
    ],
    "defeat": [
        "Darkness closes in as the last of the party falls...",
        "Your enemies stand over your fallen party.",
    ],
    "fled": [
        "You break away and flee the fight.",
        "Discretion wins out over valor. The party escapes.",
    ],
}


def get_combat_fallback(
    actor_name: str,
    target_name: str,
    hit: bool,
    is_kill: bool = False,
    is_critical: bool = False,
    is_healing: bool = False,
    is_spell: bool = False,
) -> str:
    """
    Get fallback narration for an attack, spell or heal.

    Args:
        actor_name: Name of the attacker/healer
        target_name: Name of the target
        hit: Whether the attack hit
        is_kill: Whether this was a killing blow
        is_critical: Whether this was a critical hit/miss
        is_healing: Whether this is healing
        is_spell: Whether this is a spell

    Returns:
        A formatted combat narration string
    """
    if is_healing:
        key = "healing"
    elif hit:
        if is_kill:
            key = "hit_kill"
        elif is_critical:
            key = "hit_critical"
        elif is_spell:
            key = "spell_damage"
        else:
            key = "hit"
    else:
        if is_critical:
            key = "miss_critical"
        elif is_spell:
            key = "spell_miss"
        else:
            key = "miss"

    template = random.choice(COMBAT_NARRATION[key])
    return template.format(actor=actor_name, target=target_name)


def get_item_fallback(actor_name: str, item_name: str) -> str:
    return random.choice(COMBAT_NARRATION["item"]).format(actor=actor_name, item=item_name)


def get_encounter_fallback(key: str, actor_name: Optional[str] = None) -> Optional[str]:
    """
    Get fallback narration for an encounter-level moment.

    Returns:
        Narration text, or None when there is no template for `key`
    """
    templates = ENCOUNTER_NARRATION.get(key)
    if not templates:
        return None
    return random.choice(templates).format(actor=actor_name or "The combatant")
