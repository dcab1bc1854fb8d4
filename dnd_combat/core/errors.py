"""
D&D Combat Engine - Custom Error Types
Structured exceptions for dice and combat errors with recovery hints.
"""
from typing import Dict, Any, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the combat engine."""
    # General errors
    UNKNOWN = "UNKNOWN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # Dice errors
    DICE_INVALID_NOTATION = "DICE_INVALID_NOTATION"
    DICE_INVALID_DIE_SIZE = "DICE_INVALID_DIE_SIZE"
    DICE_INVALID_COUNT = "DICE_INVALID_COUNT"
    DICE_TOO_MANY = "DICE_TOO_MANY"
    DICE_DIE_TOO_LARGE = "DICE_DIE_TOO_LARGE"

    # Combat errors
    COMBAT_NOT_ACTIVE = "COMBAT_NOT_ACTIVE"
    COMBAT_ALREADY_ACTIVE = "COMBAT_ALREADY_ACTIVE"
    COMBAT_INVALID_ACTION = "COMBAT_INVALID_ACTION"
    COMBAT_NOT_YOUR_TURN = "COMBAT_NOT_YOUR_TURN"
    COMBAT_TARGET_INVALID = "COMBAT_TARGET_INVALID"
    COMBAT_RESOURCE_EXHAUSTED = "COMBAT_RESOURCE_EXHAUSTED"
    COMBAT_INVALID_STATE = "COMBAT_INVALID_STATE"

    # AI errors
    AI_SERVICE_UNAVAILABLE = "AI_SERVICE_UNAVAILABLE"
    AI_RATE_LIMITED = "AI_RATE_LIMITED"
    AI_GENERATION_FAILED = "AI_GENERATION_FAILED"


class GameError(Exception):
    """
    Base exception for all game-related errors.

    Provides structured error information with:
    - Error code for programmatic handling
    - Human-readable message
    - Additional context details
    - Recovery hints for the caller
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.UNKNOWN,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
        recovery_hint: Optional[str] = None,
        http_status: int = 500
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint
        self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON response."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "recoverable": self.recoverable,
                "recovery_hint": self.recovery_hint
            }
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


# =============================================================================
# Dice Errors
# =============================================================================

class DiceRollError(GameError):
    """Malformed dice requests. Raised immediately, never retried."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.DICE_INVALID_NOTATION,
        message: str = "Invalid dice roll",
        **kwargs
    ):
        super().__init__(code=code, message=message, http_status=400, **kwargs)


class InvalidNotationError(DiceRollError):
    """Raised when dice notation does not match NdS[+/-M]."""

    def __init__(self, notation: Any):
        super().__init__(
            code=ErrorCode.DICE_INVALID_NOTATION,
            message=f"Invalid dice notation: {notation}",
            details={"notation": str(notation)},
            recovery_hint="Use notation like '2d6+3' or '1d20'"
        )


class InvalidDieSizeError(DiceRollError):
    """Raised when a die has fewer than one side or a non-integer size."""

    def __init__(self, sides: Any):
        super().__init__(
            code=ErrorCode.DICE_INVALID_DIE_SIZE,
            message=f"Invalid die: d{sides}",
            details={"sides": str(sides)},
            recovery_hint="Die size must be a positive integer"
        )


class InvalidDiceCountError(DiceRollError):
    """Raised when fewer than one die is requested."""

    def __init__(self, count: Any):
        super().__init__(
            code=ErrorCode.DICE_INVALID_COUNT,
            message=f"Invalid dice count: {count}",
            details={"count": str(count)},
            recovery_hint="Roll at least one die"
        )


class TooManyDiceError(DiceRollError):
    """Raised when a pool exceeds the configured dice count cap."""

    def __init__(self, count: int, maximum: int):
        super().__init__(
            code=ErrorCode.DICE_TOO_MANY,
            message=f"Too many dice: {count} (maximum {maximum})",
            details={"count": count, "maximum": maximum},
            recovery_hint=f"Roll at most {maximum} dice at once"
        )


class DieTooLargeError(DiceRollError):
    """Raised when a die exceeds the configured size cap."""

    def __init__(self, sides: int, maximum: int):
        super().__init__(
            code=ErrorCode.DICE_DIE_TOO_LARGE,
            message=f"Die too large: d{sides} (maximum d{maximum})",
            details={"sides": sides, "maximum": maximum},
            recovery_hint=f"Use dice with at most {maximum} sides"
        )


# =============================================================================
# Combat Errors
# =============================================================================

class CombatError(GameError):
    """Combat-related errors."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.COMBAT_INVALID_ACTION,
        message: str = "Invalid combat action",
        **kwargs
    ):
        kwargs.setdefault("http_status", 400)
        super().__init__(code=code, message=message, **kwargs)


class NotYourTurnError(CombatError):
    """Raised when attempting action outside your turn."""

    def __init__(self, current_combatant: Optional[str] = None):
        details = {}
        if current_combatant:
            details["current_turn"] = current_combatant
        super().__init__(
            code=ErrorCode.COMBAT_NOT_YOUR_TURN,
            message="It's not your turn",
            details=details,
            recovery_hint="Wait for your turn in the initiative order"
        )


class CombatNotActiveError(CombatError):
    """Raised when combat action is attempted outside combat."""

    def __init__(self, status: Optional[str] = None):
        details = {}
        if status:
            details["status"] = status
        super().__init__(
            code=ErrorCode.COMBAT_NOT_ACTIVE,
            message="No active combat",
            details=details,
            recovery_hint="Start an encounter to enter combat"
        )


class CombatAlreadyActiveError(CombatError):
    """Raised when starting an encounter while another is still running."""

    def __init__(self, combat_id: Optional[str] = None):
        details = {}
        if combat_id:
            details["combat_id"] = combat_id
        super().__init__(
            code=ErrorCode.COMBAT_ALREADY_ACTIVE,
            message="Combat already in progress",
            details=details,
            http_status=409,
            recovery_hint="Finish or flee the current encounter first"
        )


class InvalidCombatStateError(CombatError):
    """
    Raised when combat state breaks an invariant (e.g. turn index out of range).

    This is a programming error rather than a player mistake, so it is not
    recoverable and is never turned into a rejected ActionResult.
    """

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ErrorCode.COMBAT_INVALID_STATE,
            message=reason,
            details=details or {},
            recoverable=False,
            http_status=500
        )


# =============================================================================
# AI Service Errors
# =============================================================================

class AIError(GameError):
    """AI service errors (Claude API)."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.AI_SERVICE_UNAVAILABLE,
        message: str = "AI service error",
        **kwargs
    ):
        kwargs.setdefault("http_status", 503)
        super().__init__(code=code, message=message, **kwargs)


class AIServiceUnavailableError(AIError):
    """Raised when AI service is unavailable."""

    def __init__(self):
        super().__init__(
            code=ErrorCode.AI_SERVICE_UNAVAILABLE,
            message="AI service is temporarily unavailable",
            recovery_hint="Try again in a few moments"
        )


class AIGenerationError(AIError):
    """Raised when AI generation fails."""

    def __init__(self, reason: str = "AI generation failed"):
        super().__init__(
            code=ErrorCode.AI_GENERATION_FAILED,
            message=reason,
            recovery_hint="Narration will fall back to templates"
        )


# =============================================================================
# Validation Error
# =============================================================================

class ValidationError(GameError):
    """Input validation errors."""

    def __init__(self, field: str, message: str, value: Any = None):
        details = {"field": field}
        if value is not None:
            details["value"] = str(value)
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details=details,
            http_status=400,
            recovery_hint=f"Check the value for '{field}'"
        )


class NotFoundError(GameError):
    """Generic not found error."""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        details = {"resource": resource}
        if identifier:
            details["identifier"] = identifier
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{resource} not found",
            details=details,
            http_status=404
        )
