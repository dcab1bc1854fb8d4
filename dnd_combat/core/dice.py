"""
Dice rolling system for D&D 5e mechanics.

Handles all dice operations including:
- Standard dice notation parsing (2d6+3, 1d20, 4d8-2)
- Advantage and disadvantage on d20 checks
- Critical success / failure classification with configurable thresholds
- Exact outcome distributions for small dice pools

Every roll goes through a DiceRoller so tests can inject a seeded or
scripted random.Random. The module-level functions use a shared default
roller built from the application settings.
"""
import random
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dnd_combat.config import get_settings
from dnd_combat.core.errors import (
    InvalidNotationError,
    InvalidDieSizeError,
    InvalidDiceCountError,
    TooManyDiceError,
    DieTooLargeError,
)


# NdS with an optional signed flat modifier; the count is mandatory
DICE_NOTATION = re.compile(r"(\d+)d(\d+)(?:([+-])(\d+))?", re.IGNORECASE)

# Pools up to this size get an exact distribution
EXACT_DISTRIBUTION_MAX_DICE = 10
EXACT_DISTRIBUTION_MAX_SIDES = 20


@dataclass
class DiceRollResult:
    """Result of rolling a notation string."""
    total: int
    rolls: List[int]
    modifier: int
    notation: str
    num_dice: int
    die_size: int


@dataclass
class D20CheckResult:
    """Result of a d20 check (attack roll, save or ability check)."""
    roll: int  # The d20 value used after advantage/disadvantage selection
    rolls: List[int]  # All dice rolled (2 if advantage/disadvantage)
    total: int
    modifier: int
    success: bool
    critical: Optional[str] = None  # "success", "failure" or None
    dc: int = 10
    advantage: bool = False
    disadvantage: bool = False

    @property
    def natural_20(self) -> bool:
        return self.critical == "success"

    @property
    def natural_1(self) -> bool:
        return self.critical == "failure"


@dataclass
class DamageResult:
    """Result of a damage roll."""
    rolls: List[int]  # Individual dice results
    modifier: int
    total: int
    dice_notation: str  # Original notation (e.g., "2d6+3")
    is_critical: bool = False  # If true, dice were doubled


@dataclass
class DiceProbabilities:
    """Summary statistics for a notation string."""
    min: int
    max: int
    mean: float
    median: float
    distribution: Optional[Dict[int, int]] = field(default=None)  # total -> number of ways

    @property
    def outcomes(self) -> int:
        """Total number of equally likely outcomes in the distribution."""
        return sum(self.distribution.values()) if self.distribution else 0


@dataclass
class ParsedNotation:
    """Components of a notation string."""
    num_dice: int
    die_size: int
    modifier: int
    notation: str


def parse_dice_notation(notation: str) -> ParsedNotation:
    """
    Parse dice notation into components.

    Args:
        notation: Dice notation like "2d6+3", "1d20" or "3d4-1"

    Returns:
        ParsedNotation with count, die size and signed modifier

    Raises:
        InvalidNotationError: If notation does not match NdS[+/-M]
    """
    if not isinstance(notation, str) or not notation:
        raise InvalidNotationError(notation)

    match = DICE_NOTATION.fullmatch(notation)
    if not match:
        raise InvalidNotationError(notation)

    num_dice = int(match.group(1))
    die_size = int(match.group(2))
    modifier = int(match.group(4)) if match.group(4) else 0
    if match.group(3) == "-":
        modifier = -modifier

    return ParsedNotation(
        num_dice=num_dice,
        die_size=die_size,
        modifier=modifier,
        notation=notation,
    )


def is_valid_dice_notation(notation: str) -> bool:
    """Check whether a string is valid dice notation."""
    if not isinstance(notation, str) or not notation:
        return False
    return DICE_NOTATION.fullmatch(notation) is not None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class DiceRoller:
    """
    Rolls dice against an injectable random source.

    Limits default to the MAX_DICE_COUNT / MAX_DIE_SIZE settings and the
    critical thresholds to CRITICAL_SUCCESS / CRITICAL_FAILURE.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        max_dice_count: Optional[int] = None,
        max_die_size: Optional[int] = None,
        critical_success: Optional[int] = None,
        critical_failure: Optional[int] = None,
    ):
        settings = get_settings()
        self.rng = rng if rng is not None else random.Random()
        self.max_dice_count = max_dice_count if max_dice_count is not None else settings.MAX_DICE_COUNT
        self.max_die_size = max_die_size if max_die_size is not None else settings.MAX_DIE_SIZE
        self.critical_success = critical_success if critical_success is not None else settings.CRITICAL_SUCCESS
        self.critical_failure = critical_failure if critical_failure is not None else settings.CRITICAL_FAILURE

    # =========================================================================
    # BASIC ROLLS
    # =========================================================================

    def roll_die(self, sides: int) -> int:
        """Roll a single die with the given number of sides."""
        if not _is_int(sides) or sides < 1:
            raise InvalidDieSizeError(sides)
        return self.rng.randint(1, sides)

    def roll_multiple_dice(
        self,
        count: int,
        sides: int,
        max_dice_count: Optional[int] = None,
        max_die_size: Optional[int] = None,
    ) -> List[int]:
        """
        Roll `count` dice of the same size.

        Args:
            count: Number of dice to roll
            sides: Number of sides on each die
            max_dice_count: Override for the dice count cap
            max_die_size: Override for the die size cap

        Returns:
            List of individual results

        Raises:
            InvalidDiceCountError, TooManyDiceError, InvalidDieSizeError, DieTooLargeError
        """
        self._check_limits(count, sides, max_dice_count, max_die_size)
        return [self.roll_die(sides) for _ in range(count)]

    def _check_limits(
        self,
        count: int,
        sides: int,
        max_dice_count: Optional[int] = None,
        max_die_size: Optional[int] = None,
    ) -> None:
        dice_cap = max_dice_count if max_dice_count is not None else self.max_dice_count
        size_cap = max_die_size if max_die_size is not None else self.max_die_size

        if not _is_int(count) or count < 1:
            raise InvalidDiceCountError(count)
        if count > dice_cap:
            raise TooManyDiceError(count, dice_cap)
        if not _is_int(sides) or sides < 1:
            raise InvalidDieSizeError(sides)
        if sides > size_cap:
            raise DieTooLargeError(sides, size_cap)

    def check_notation(self, notation: str, critical: bool = False) -> ParsedNotation:
        """
        Parse a notation and check it against this roller's limits without rolling.

        Args:
            notation: Dice notation like "2d6+3"
            critical: Check the doubled dice count a critical hit would roll

        Raises:
            InvalidNotationError, InvalidDiceCountError, TooManyDiceError,
            InvalidDieSizeError, DieTooLargeError
        """
        parsed = parse_dice_notation(notation)
        count = parsed.num_dice * 2 if critical else parsed.num_dice
        self._check_limits(count, parsed.die_size)
        return parsed

    def roll_dice(self, notation: str) -> DiceRollResult:
        """
        Parse a notation string and roll it.

        Examples:
            roll_dice("2d6+3") -> two d6 plus 3
            roll_dice("1D20")  -> case-insensitive
        """
        parsed = parse_dice_notation(notation)
        rolls = self.roll_multiple_dice(parsed.num_dice, parsed.die_size)

        return DiceRollResult(
            total=sum(rolls) + parsed.modifier,
            rolls=rolls,
            modifier=parsed.modifier,
            notation=notation,
            num_dice=parsed.num_dice,
            die_size=parsed.die_size,
        )

    # =========================================================================
    # D20 CHECKS
    # =========================================================================

    def roll_d20_check(
        self,
        ability_modifier: int = 0,
        proficiency_bonus: int = 0,
        advantage: bool = False,
        disadvantage: bool = False,
        dc: int = 10,
        critical_success: Optional[int] = None,
        critical_failure: Optional[int] = None,
    ) -> D20CheckResult:
        """
        Roll a d20 check with optional advantage/disadvantage.

        Args:
            ability_modifier: Ability modifier for the check
            proficiency_bonus: Proficiency bonus, if proficient
            advantage: Roll twice and take the higher
            disadvantage: Roll twice and take the lower
            dc: Difficulty class the total is compared against
            critical_success: Natural roll at or above which the check is a critical success
            critical_failure: Natural roll at or below which the check is a critical failure

        Returns:
            D20CheckResult with the selected roll, total and critical classification

        Note: If both advantage and disadvantage are True, they cancel out
              and a single die is rolled (per D&D 5e rules).
        """
        if advantage and disadvantage:
            advantage = False
            disadvantage = False

        if advantage or disadvantage:
            rolls = [self.roll_die(20), self.roll_die(20)]
        else:
            rolls = [self.roll_die(20)]

        if advantage:
            roll = max(rolls)
        elif disadvantage:
            roll = min(rolls)
        else:
            roll = rolls[0]

        success_threshold = critical_success if critical_success is not None else self.critical_success
        failure_threshold = critical_failure if critical_failure is not None else self.critical_failure

        critical = None
        if roll >= success_threshold:
            critical = "success"
        elif roll <= failure_threshold:
            critical = "failure"

        modifier = ability_modifier + proficiency_bonus
        total = roll + modifier

        return D20CheckResult(
            roll=roll,
            rolls=rolls,
            total=total,
            modifier=modifier,
            success=total >= dc,
            critical=critical,
            dc=dc,
            advantage=advantage,
            disadvantage=disadvantage,
        )

    def roll_initiative(self, dexterity_modifier: int = 0) -> int:
        """Roll initiative (d20 + DEX modifier)."""
        return self.roll_die(20) + dexterity_modifier

    # =========================================================================
    # DAMAGE
    # =========================================================================

    def roll_damage(self, notation: str, modifier: int = 0, critical: bool = False) -> DamageResult:
        """
        Roll damage dice from notation.

        Args:
            notation: Dice notation like "2d6" or "1d8+2"
            modifier: Additional modifier to add (weapon/ability bonus)
            critical: If True, double the number of dice rolled

        Returns:
            DamageResult with all roll information

        Examples:
            roll_damage("1d8", modifier=3) -> rolls 1d8+3
            roll_damage("2d6", critical=True) -> rolls 4d6 (doubled for crit)
        """
        parsed = parse_dice_notation(notation)
        num_dice = parsed.num_dice * 2 if critical else parsed.num_dice
        rolls = self.roll_multiple_dice(num_dice, parsed.die_size)

        total = sum(rolls) + parsed.modifier + modifier

        # Damage never drops below 1 once an attack lands
        total = max(1, total)

        return DamageResult(
            rolls=rolls,
            modifier=parsed.modifier + modifier,
            total=total,
            dice_notation=notation,
            is_critical=critical,
        )


# =============================================================================
# PROBABILITIES
# =============================================================================

def _convolve_distribution(num_dice: int, die_size: int) -> Dict[int, int]:
    """Outcome counts for the sum of `num_dice` dice of `die_size` sides."""
    distribution = {0: 1}
    for _ in range(num_dice):
        next_distribution: Dict[int, int] = {}
        for subtotal, ways in distribution.items():
            for face in range(1, die_size + 1):
                next_distribution[subtotal + face] = next_distribution.get(subtotal + face, 0) + ways
        distribution = next_distribution
    return distribution


def _median_from_distribution(distribution: Dict[int, int]) -> float:
    """Median of a discrete distribution given as value -> count."""
    outcomes = sum(distribution.values())
    lower_rank = (outcomes - 1) // 2
    upper_rank = outcomes // 2

    lower = upper = None
    seen = 0
    for value in sorted(distribution):
        seen += distribution[value]
        if lower is None and seen > lower_rank:
            lower = value
        if seen > upper_rank:
            upper = value
            break

    return (lower + upper) / 2


def calculate_dice_probabilities(
    notation: str,
    max_dice_count: Optional[int] = None,
    max_die_size: Optional[int] = None,
) -> DiceProbabilities:
    """
    Calculate min, max, mean and median for a notation string.

    Pools of up to 10 dice with up to 20 sides also get the exact
    outcome-count distribution; the median then comes from it. Larger
    pools use the mean as the median and omit the distribution.

    Raises:
        InvalidNotationError / TooManyDiceError / DieTooLargeError
    """
    settings = get_settings()
    dice_cap = max_dice_count if max_dice_count is not None else settings.MAX_DICE_COUNT
    size_cap = max_die_size if max_die_size is not None else settings.MAX_DIE_SIZE

    parsed = parse_dice_notation(notation)
    if parsed.num_dice < 1:
        raise InvalidDiceCountError(parsed.num_dice)
    if parsed.num_dice > dice_cap:
        raise TooManyDiceError(parsed.num_dice, dice_cap)
    if parsed.die_size < 1:
        raise InvalidDieSizeError(parsed.die_size)
    if parsed.die_size > size_cap:
        raise DieTooLargeError(parsed.die_size, size_cap)

    minimum = parsed.num_dice + parsed.modifier
    maximum = parsed.num_dice * parsed.die_size + parsed.modifier
    mean = parsed.num_dice * (parsed.die_size + 1) / 2 + parsed.modifier

    if parsed.num_dice <= EXACT_DISTRIBUTION_MAX_DICE and parsed.die_size <= EXACT_DISTRIBUTION_MAX_SIDES:
        distribution = {
            total + parsed.modifier: ways
            for total, ways in _convolve_distribution(parsed.num_dice, parsed.die_size).items()
        }
        median = _median_from_distribution(distribution)
    else:
        distribution = None
        median = mean

    return DiceProbabilities(
        min=minimum,
        max=maximum,
        mean=mean,
        median=median,
        distribution=distribution,
    )


# =============================================================================
# MODULE-LEVEL CONVENIENCE FUNCTIONS
# =============================================================================

_default_roller: Optional[DiceRoller] = None


def get_default_roller() -> DiceRoller:
    """Get the shared roller used by the module-level functions."""
    global _default_roller
    if _default_roller is None:
        _default_roller = DiceRoller()
    return _default_roller


def roll_die(sides: int) -> int:
    """Roll a single die with the given number of sides."""
    return get_default_roller().roll_die(sides)


def roll_multiple_dice(count: int, sides: int, **limits) -> List[int]:
    """Roll several dice of the same size."""
    return get_default_roller().roll_multiple_dice(count, sides, **limits)


def roll_dice(notation: str) -> DiceRollResult:
    """Roll a notation string such as "2d6+3"."""
    return get_default_roller().roll_dice(notation)


def roll_d20_check(ability_modifier: int = 0, proficiency_bonus: int = 0, **options) -> D20CheckResult:
    """Roll a d20 check. See DiceRoller.roll_d20_check for options."""
    return get_default_roller().roll_d20_check(ability_modifier, proficiency_bonus, **options)


def roll_damage(notation: str, modifier: int = 0, critical: bool = False) -> DamageResult:
    """Roll damage dice from notation."""
    return get_default_roller().roll_damage(notation, modifier=modifier, critical=critical)


def roll_initiative(dexterity_modifier: int = 0) -> int:
    """Roll initiative (d20 + DEX modifier)."""
    return get_default_roller().roll_initiative(dexterity_modifier)
