"""
Combat API Routes.

Thin command surface over the combat manager:
- Start and flee combat
- Take actions (attack, cast, use item, move, dodge, disengage, dash)
- End turns and play NPC turns
- Query state, log and events

Rejected actions come back as 200 with success=false and the reason;
unknown combat ids and illegal lifecycle calls raise GameErrors that the
error handlers turn into JSON errors.
"""
from fastapi import APIRouter, Query
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
import logging

from dnd_combat.core.combat_engine import ActionResult, CombatManager
from dnd_combat.core.combat_types import CombatStatus
from dnd_combat.core.combat_storage import (
    get_combat,
    narrators,
    register_combat,
    remove_combat,
)
from dnd_combat.core.combatant import CombatantKind
from dnd_combat.models.combatant import CombatantSnapshot
from dnd_combat.services.combat_narrator import CombatNarrator

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class StartCombatRequest(BaseModel):
    """Request to start combat."""
    players: List[CombatantSnapshot]
    enemies: List[CombatantSnapshot]
    location: str = ""
    is_player_initiated: bool = False
    is_npc_initiated: bool = False
    narrate: bool = False


class StartCombatResponse(BaseModel):
    """Response from starting combat."""
    combat_id: str
    initiative_order: List[Dict[str, Any]]
    current_combatant: Optional[Dict[str, Any]]
    combat_log: List[str]
    narration: Optional[str] = None


class AttackRequest(BaseModel):
    attacker_id: str
    target_id: str
    weapon_name: Optional[str] = None


class CastRequest(BaseModel):
    caster_id: str
    spell_name: str
    level: Optional[int] = None
    target_ids: List[str] = Field(default_factory=list)


class UseItemRequest(BaseModel):
    user_id: str
    item_id: str
    target_id: Optional[str] = None


class MoveRequest(BaseModel):
    participant_id: str
    distance: int
    leaving_ids: List[str] = Field(default_factory=list)


class ParticipantRequest(BaseModel):
    """Request for actions that only need the actor."""
    participant_id: str


class FleeRequest(BaseModel):
    reason: str = "fled"


class ActionResponse(BaseModel):
    """Response from taking an action."""
    success: bool
    action_type: str
    description: str
    error_code: Optional[str] = None
    actor_id: Optional[str] = None
    target_id: Optional[str] = None
    damage_dealt: int = 0
    healing_done: int = 0
    hit: Optional[bool] = None
    critical: bool = False
    effects_applied: List[str] = Field(default_factory=list)
    extra_data: Dict[str, Any] = Field(default_factory=dict)
    narration: Optional[str] = None
    combat_state: Dict[str, Any]


class EndTurnResponse(BaseModel):
    """Response from ending a turn."""
    status: str
    round: int
    current_combatant: Optional[Dict[str, Any]]
    combat_over: bool
    outcome: Optional[str] = None
    narration: Optional[str] = None
    combat_state: Dict[str, Any]


class NPCTurnsResponse(BaseModel):
    """Response from playing NPC turns."""
    results: List[Dict[str, Any]]
    status: str
    round: int
    current_combatant: Optional[Dict[str, Any]]
    combat_over: bool
    outcome: Optional[str] = None
    narration: Optional[str] = None
    combat_state: Dict[str, Any]


# =============================================================================
# Helpers
# =============================================================================

async def _narrate(combat_id: str) -> Optional[str]:
    narrator = narrators.get(combat_id)
    if narrator is None:
        return None
    texts = await narrator.narrate_pending()
    return " ".join(texts) if texts else None


async def _action_response(combat_id: str, manager: CombatManager, result: ActionResult) -> ActionResponse:
    data = result.to_dict()
    return ActionResponse(
        **data,
        narration=await _narrate(combat_id) if result.success else None,
        combat_state=manager.get_combat_state(),
    )


# =============================================================================
# Lifecycle
# =============================================================================

@router.post("/start", response_model=StartCombatResponse)
async def start_combat(request: StartCombatRequest):
    """
    Start a new combat encounter.

    Normalizes the snapshots, rolls initiative and registers the encounter.
    """
    participants = [
        p.model_copy(update={"kind": CombatantKind.PLAYER}).to_combatant() for p in request.players
    ] + [
        e.model_copy(update={"kind": CombatantKind.NPC}).to_combatant() for e in request.enemies
    ]

    manager = CombatManager()
    narrator = None
    if request.narrate:
        narrator = CombatNarrator()
        narrator.attach(manager)

    state = manager.initiate_combat(
        participants,
        location=request.location,
        is_player_initiated=request.is_player_initiated,
        is_npc_initiated=request.is_npc_initiated,
    )
    combat_id = register_combat(manager)
    if narrator is not None:
        narrators[combat_id] = narrator

    current = manager.get_current_participant()
    return StartCombatResponse(
        combat_id=combat_id,
        initiative_order=state.initiative_tracker.get_initiative_order(),
        current_combatant=current.to_dict() if current else None,
        combat_log=manager.get_combat_log(),
        narration=await _narrate(combat_id),
    )


@router.get("/{combat_id}/state")
async def get_combat_state(combat_id: str):
    """Get current combat state."""
    return get_combat(combat_id).get_combat_state()


@router.post("/{combat_id}/flee")
async def flee_combat(combat_id: str, request: FleeRequest = FleeRequest()):
    """Abort the encounter."""
    manager = get_combat(combat_id)
    manager.flee(request.reason)
    return {
        "status": manager.state.status.value,
        "outcome": manager.state.outcome,
        "narration": await _narrate(combat_id),
        "combat_state": manager.get_combat_state(),
    }


@router.delete("/{combat_id}")
async def delete_combat(combat_id: str):
    """Forget an encounter."""
    get_combat(combat_id)
    remove_combat(combat_id)
    return {"deleted": combat_id}


# =============================================================================
# Actions
# =============================================================================

@router.post("/{combat_id}/attack", response_model=ActionResponse)
async def attack(combat_id: str, request: AttackRequest):
    manager = get_combat(combat_id)
    result = manager.resolve_attack(request.attacker_id, request.target_id, request.weapon_name)
    return await _action_response(combat_id, manager, result)


@router.post("/{combat_id}/cast", response_model=ActionResponse)
async def cast_spell(combat_id: str, request: CastRequest):
    manager = get_combat(combat_id)
    result = manager.resolve_spell(request.caster_id, request.spell_name, request.level, request.target_ids)
    return await _action_response(combat_id, manager, result)


@router.post("/{combat_id}/use-item", response_model=ActionResponse)
async def use_item(combat_id: str, request: UseItemRequest):
    manager = get_combat(combat_id)
    result = manager.resolve_item_use(request.user_id, request.item_id, request.target_id)
    return await _action_response(combat_id, manager, result)


@router.post("/{combat_id}/move", response_model=ActionResponse)
async def move(combat_id: str, request: MoveRequest):
    manager = get_combat(combat_id)
    result = manager.resolve_movement(request.participant_id, request.distance, request.leaving_ids)
    return await _action_response(combat_id, manager, result)


@router.post("/{combat_id}/dodge", response_model=ActionResponse)
async def dodge(combat_id: str, request: ParticipantRequest):
    manager = get_combat(combat_id)
    return await _action_response(combat_id, manager, manager.resolve_dodge(request.participant_id))


@router.post("/{combat_id}/disengage", response_model=ActionResponse)
async def disengage(combat_id: str, request: ParticipantRequest):
    manager = get_combat(combat_id)
    return await _action_response(combat_id, manager, manager.resolve_disengage(request.participant_id))


@router.post("/{combat_id}/dash", response_model=ActionResponse)
async def dash(combat_id: str, request: ParticipantRequest):
    manager = get_combat(combat_id)
    return await _action_response(combat_id, manager, manager.resolve_dash(request.participant_id))


@router.post("/{combat_id}/end-turn", response_model=EndTurnResponse)
async def end_turn(combat_id: str):
    """
    End the current turn.

    Advances to the next living combatant and reports whether the
    encounter finished.
    """
    manager = get_combat(combat_id)
    next_entry = manager.advance_turn()
    state = manager.state

    if next_entry is None:
        logger.info(f"Combat {combat_id} over: {state.outcome}")

    return EndTurnResponse(
        status=state.status.value,
        round=state.round,
        current_combatant=next_entry.to_dict() if next_entry else None,
        combat_over=next_entry is None,
        outcome=state.outcome,
        narration=await _narrate(combat_id),
        combat_state=manager.get_combat_state(),
    )


@router.post("/{combat_id}/npc-turns", response_model=NPCTurnsResponse)
async def run_npc_turns(combat_id: str):
    """
    Play NPC turns until a player is up or the encounter ends.

    Calling this on a player's turn does nothing.
    """
    manager = get_combat(combat_id)
    results = manager.run_npc_turns()
    state = manager.state
    current = manager.get_current_participant() if state.status == CombatStatus.ACTIVE else None

    return NPCTurnsResponse(
        results=[r.to_dict() for r in results],
        status=state.status.value,
        round=state.round,
        current_combatant=current.to_dict() if current else None,
        combat_over=state.status != CombatStatus.ACTIVE,
        outcome=state.outcome,
        narration=await _narrate(combat_id),
        combat_state=manager.get_combat_state(),
    )


# =============================================================================
# Queries
# =============================================================================

@router.get("/{combat_id}/log")
async def get_combat_log(combat_id: str):
    return {"combat_log": get_combat(combat_id).get_combat_log()}


@router.get("/{combat_id}/events")
async def get_combat_events(combat_id: str, count: int = Query(20, ge=1, le=200)):
    """Get recent structured combat events."""
    return {"events": get_combat(combat_id).get_recent_events(count)}


@router.get("/{combat_id}/actions")
async def get_available_actions(combat_id: str):
    """What the current combatant can still do this turn."""
    manager = get_combat(combat_id)
    current = manager.get_current_participant()
    return {
        "combatant_id": current.id if current else None,
        "actions": [a.value for a in manager.get_available_actions()],
    }
