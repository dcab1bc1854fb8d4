"""
Condition Effects System.

Condition tags carried on initiative entries and what they mean in combat:
- Advantage/disadvantage on attack rolls
- Whether a combatant is incapacitated (no actions, no reactions)
- Auto-critical melee hits against helpless targets
- Which tags expire at the start of the owner's next turn
- Movement allowance (Dash)
"""
from dataclasses import dataclass, field
from typing import Dict, List, Iterable, Optional, Any, Tuple


# Tags the engine itself applies
DEFEATED = "defeated"
DEAD = "dead"
UNCONSCIOUS = "unconscious"
SURPRISED = "surprised"
DODGING = "dodging"
DISENGAGED = "disengaged"
DASHED = "dashed"

# Any of these means the combatant is out of the fight
DEFEATED_CONDITIONS = frozenset({DEFEATED, DEAD})

# Cleared when the owner's next turn starts
TURN_SCOPED_CONDITIONS = frozenset({DODGING, DISENGAGED, DASHED})


@dataclass
class ConditionData:
    """A condition and its mechanical effects."""
    id: str
    name: str
    description: str
    effects: Dict[str, Any] = field(default_factory=dict)


CONDITIONS: Dict[str, ConditionData] = {
    c.id: c for c in [
        ConditionData(
            id=DEFEATED,
            name="Defeated",
            description="Reduced to 0 hit points. Out of the fight for good.",
            effects={"incapacitated": True},
        ),
        ConditionData(
            id=DEAD,
            name="Dead",
            description="Dead.",
            effects={"incapacitated": True},
        ),
        ConditionData(
            id=UNCONSCIOUS,
            name="Unconscious",
            description="Incapacitated, drops prone, attacks have advantage, hits within 5ft are critical.",
            effects={
                "incapacitated": True,
                "attacks_against_advantage": True,
                "melee_hits_are_critical": True,
            },
        ),
        ConditionData(
            id="stunned",
            name="Stunned",
            description="Incapacitated, can't move, attacks have advantage.",
            effects={
                "incapacitated": True,
                "attacks_against_advantage": True,
            },
        ),
        ConditionData(
            id="paralyzed",
            name="Paralyzed",
            description="Incapacitated, attacks have advantage, hits within 5ft are critical.",
            effects={
                "incapacitated": True,
                "attacks_against_advantage": True,
                "melee_hits_are_critical": True,
            },
        ),
        ConditionData(
            id="petrified",
            name="Petrified",
            description="Transformed to stone. Incapacitated, attacks have advantage.",
            effects={
                "incapacitated": True,
                "attacks_against_advantage": True,
            },
        ),
        ConditionData(
            id="incapacitated",
            name="Incapacitated",
            description="Can't take actions or reactions.",
            effects={"incapacitated": True},
        ),
        ConditionData(
            id=SURPRISED,
            name="Surprised",
            description="Caught off guard in the first round. Attacks against have advantage.",
            effects={"attacks_against_advantage": True},
        ),
        ConditionData(
            id=DODGING,
            name="Dodging",
            description="Attacks against have disadvantage until the start of the next turn.",
            effects={"attacks_against_disadvantage": True},
        ),
        ConditionData(
            id=DISENGAGED,
            name="Disengaged",
            description="Movement doesn't provoke opportunity attacks this turn.",
            effects={"no_opportunity_attacks": True},
        ),
        ConditionData(
            id=DASHED,
            name="Dashed",
            description="Can move up to twice its speed this turn.",
            effects={"movement_multiplier": 2},
        ),
        ConditionData(
            id="poisoned",
            name="Poisoned",
            description="Disadvantage on attack rolls and ability checks.",
            effects={"attack_disadvantage": True},
        ),
        ConditionData(
            id="blinded",
            name="Blinded",
            description="Attack rolls have disadvantage, attacks against have advantage.",
            effects={
                "attack_disadvantage": True,
                "attacks_against_advantage": True,
            },
        ),
        ConditionData(
            id="prone",
            name="Prone",
            description="Attack disadvantage, melee advantage against, ranged disadvantage against.",
            effects={
                "attack_disadvantage": True,
                "melee_attacks_against_advantage": True,
                "ranged_attacks_against_disadvantage": True,
            },
        ),
        ConditionData(
            id="restrained",
            name="Restrained",
            description="Attack disadvantage, attacks have advantage.",
            effects={
                "attack_disadvantage": True,
                "attacks_against_advantage": True,
            },
        ),
        ConditionData(
            id="invisible",
            name="Invisible",
            description="Attack advantage, attacks against have disadvantage.",
            effects={
                "attack_advantage": True,
                "attacks_against_disadvantage": True,
            },
        ),
    ]
}


def get_condition(condition_id: str) -> Optional[ConditionData]:
    """Look up a condition by tag; unknown tags have no mechanical effect."""
    return CONDITIONS.get(condition_id.lower())


@dataclass
class AttackModifiers:
    """Advantage/disadvantage from conditions, with reasons for the log."""
    advantage: bool = False
    disadvantage: bool = False
    auto_critical: bool = False
    reasons: List[str] = field(default_factory=list)


def get_attack_modifiers(
    attacker_conditions: Iterable[str],
    target_conditions: Iterable[str],
    is_melee: bool = True,
) -> AttackModifiers:
    """
    Calculate attack advantage/disadvantage based on conditions.

    Args:
        attacker_conditions: Conditions on the attacker
        target_conditions: Conditions on the target
        is_melee: True for melee attacks, False for ranged

    Returns:
        AttackModifiers with advantage, disadvantage, and reasons
    """
    result = AttackModifiers()

    for cond_id in attacker_conditions:
        cond = get_condition(cond_id)
        if not cond:
            continue

        if cond.effects.get("attack_disadvantage"):
            result.disadvantage = True
            result.reasons.append(f"Attacker is {cond.name} (disadvantage)")

        if cond.effects.get("attack_advantage"):
            result.advantage = True
            result.reasons.append(f"Attacker is {cond.name} (advantage)")

    for cond_id in target_conditions:
        cond = get_condition(cond_id)
        if not cond:
            continue

        effects = cond.effects

        if effects.get("attacks_against_advantage"):
            result.advantage = True
            result.reasons.append(f"Target is {cond.name} (advantage)")

        if effects.get("attacks_against_disadvantage"):
            result.disadvantage = True
            result.reasons.append(f"Target is {cond.name} (disadvantage)")

        if is_melee and effects.get("melee_attacks_against_advantage"):
            result.advantage = True
            result.reasons.append(f"Target is {cond.name} (melee advantage)")

        if not is_melee and effects.get("ranged_attacks_against_disadvantage"):
            result.disadvantage = True
            result.reasons.append(f"Target is {cond.name} (ranged disadvantage)")

        if is_melee and effects.get("melee_hits_are_critical"):
            result.auto_critical = True
            result.reasons.append(f"Target is {cond.name} (auto-crit on hit)")

    return result


def is_incapacitated(conditions: Iterable[str]) -> Tuple[bool, List[str]]:
    """
    Check if a combatant is incapacitated.

    Incapacitated creatures cannot take actions or reactions.

    Returns:
        Tuple of (is_incapacitated, reasons)
    """
    reasons = []

    for cond_id in conditions:
        cond = get_condition(cond_id)
        if cond and cond.effects.get("incapacitated"):
            reasons.append(f"{cond.name}: incapacitated")

    return bool(reasons), reasons


def is_defeated(conditions: Iterable[str]) -> bool:
    """True when any tag marks the combatant as out of the fight."""
    return any(c.lower() in DEFEATED_CONDITIONS for c in conditions)


def movement_multiplier(conditions: Iterable[str]) -> int:
    """How many times its speed a combatant may move this turn."""
    multiplier = 1
    for cond_id in conditions:
        cond = get_condition(cond_id)
        if cond:
            multiplier = max(multiplier, cond.effects.get("movement_multiplier", 1))
    return multiplier
