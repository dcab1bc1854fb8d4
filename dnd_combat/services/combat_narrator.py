"""
Combat Narrator Service.

Turns structured CombatEvents into short dramatic narration. Uses the
Claude API when a key is configured and narration is enabled, otherwise
(or when a request fails) falls back to pre-written templates.

The combat manager calls listeners synchronously, so the narrator only
queues events there; narration happens later in async code.
"""
from collections import deque
from typing import Any, Deque, Dict, List, Optional
import asyncio
import logging

import anthropic

from dnd_combat.config import Settings, get_settings
from dnd_combat.core.combat_engine import CombatEvent, CombatManager
from dnd_combat.core.errors import AIError, AIGenerationError, AIServiceUnavailableError
from dnd_combat.services.narration_fallbacks import (
    get_combat_fallback,
    get_encounter_fallback,
    get_item_fallback,
)

logger = logging.getLogger(__name__)

NARRATED_EVENTS = {
    "combat_started",
    "attack",
    "opportunity_attack",
    "spell",
    "item_used",
    "defeated",
    "combat_ended",
}

SYSTEM_PROMPT = """You are an expert Dungeon Master for D&D 5e narrating a fight.
- Keep it to 1-2 vivid sentences
- Never mention dice rolls, numbers, or game mechanics directly
- Focus on sensory details and dramatic tension"""


class CombatNarrator:
    """Narrates combat events with Claude, falling back to templates."""

    def __init__(self, client: Optional[Any] = None, settings: Optional[Settings] = None):
        settings = settings if settings is not None else get_settings()
        self._model = settings.AI_MODEL
        self._max_tokens = settings.NARRATION_MAX_TOKENS
        self._client = client
        self._manager: Optional[CombatManager] = None
        self._pending: Deque[CombatEvent] = deque()

        if self._client is None and settings.NARRATION_ENABLED and settings.ANTHROPIC_API_KEY:
            self._client = anthropic.Anthropic(api_key=settings.ANTHROPIC_API_KEY)
            logger.info("Combat narrator initialized with Claude API")

    @property
    def is_ai_enabled(self) -> bool:
        return self._client is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def attach(self, manager: CombatManager) -> None:
        """Listen to a manager's events and resolve names through it."""
        self._manager = manager
        manager.add_listener(self.enqueue)

    def enqueue(self, event: CombatEvent) -> None:
        if event.event_type in NARRATED_EVENTS:
            self._pending.append(event)

    async def narrate_pending(self) -> List[str]:
        """Narrate and drain every queued event, oldest first."""
        narrations = []
        while self._pending:
            narrations.append(await self.narrate(self._pending.popleft()))
        return narrations

    async def narrate(self, event: CombatEvent) -> str:
        """
        Narrate one event.

        Events without dramatic weight come back as their log description.
        """
        if event.event_type not in NARRATED_EVENTS:
            return event.description

        if self._client:
            try:
                return await self._call_claude(self._build_prompt(event))
            except AIError as e:
                logger.warning(f"Narration for {event.event_type} fell back to templates: {e.message}")

        logger.debug(f"Using fallback for {event.event_type} narration")
        return self._fallback(event)

    async def _call_claude(self, prompt: str) -> str:
        """
        Make API call to Claude.

        Returns:
            Generated text

        Raises:
            AIServiceUnavailableError: If the API cannot be reached
            AIGenerationError: If the API rejects the request or returns no text
        """
        try:
            # Use sync client in async context via thread pool
            loop = asyncio.get_running_loop()
            message = await loop.run_in_executor(
                None,
                lambda: self._client.messages.create(
                    model=self._model,
                    max_tokens=self._max_tokens,
                    system=SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": prompt}]
                )
            )
        except anthropic.APIConnectionError as e:
            logger.error(f"Claude API unreachable: {e}")
            raise AIServiceUnavailableError() from e
        except anthropic.APIError as e:
            logger.error(f"Claude API error: {e}")
            raise AIGenerationError(f"Claude API error: {e}") from e

        text = message.content[0].text if message.content else ""
        if not text:
            raise AIGenerationError("Claude returned an empty narration")
        return text

    def _name(self, combatant_id: Optional[str], default: str) -> str:
        if not combatant_id or self._manager is None or self._manager.state is None:
            return default
        entry = self._manager.state.initiative_tracker.get_entry(combatant_id)
        return entry.name if entry else default

    def _build_prompt(self, event: CombatEvent) -> str:
        """Build prompt for one event."""
        actor = self._name(event.combatant_id, "The combatant")
        target = self._name(event.target_id, "the enemy")
        data = event.data

        lines = [
            "Narrate this combat moment dramatically:",
            "",
            f"Round: {event.round_number}",
            f"What happened: {event.description}",
        ]
        if event.event_type in ("attack", "opportunity_attack"):
            lines.append(f"Actor: {actor}")
            lines.append(f"Target: {target}")
            lines.append(f"Result: {'hit' if data.get('hit') else 'missed'}")
            if data.get("killing_blow"):
                lines.append("KILLING BLOW!")
        elif event.event_type == "combat_ended":
            lines.append(f"Outcome: {data.get('outcome', 'unknown')}")

        lines.append("")
        lines.append("Write 1-2 sentences of dramatic narration. Don't mention dice, numbers, or game mechanics.")
        return "\n".join(lines)

    def _fallback(self, event: CombatEvent) -> str:
        actor = self._name(event.combatant_id, "The combatant")
        target = self._name(event.target_id, "the enemy")
        data: Dict[str, Any] = event.data

        if event.event_type in ("attack", "opportunity_attack"):
            return get_combat_fallback(
                actor_name=actor,
                target_name=target,
                hit=bool(data.get("hit")),
                is_kill=bool(data.get("killing_blow")),
                is_critical=bool(data.get("critical")),
            )

        if event.event_type == "spell":
            targets = data.get("targets", [])
            healing = any(t.get("healing") for t in targets)
            if targets and event.target_id is None:
                target = self._name(targets[0].get("target_id"), target)
            return get_combat_fallback(
                actor_name=actor,
                target_name=target,
                hit=any(t.get("hit") and not t.get("saved") for t in targets),
                is_kill=any(t.get("defeated") for t in targets),
                is_critical=any(t.get("critical") for t in targets),
                is_healing=healing,
                is_spell=True,
            )

        if event.event_type == "item_used":
            return get_item_fallback(actor, data.get("item", "an item"))

        if event.event_type == "combat_started":
            key = "combat_started_surprise" if data.get("is_player_initiated") else "combat_started"
        elif event.event_type == "combat_ended":
            key = data.get("outcome", "")
        else:
            key = event.event_type

        return get_encounter_fallback(key, actor) or event.description
