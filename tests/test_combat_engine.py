"""Tests for the combat engine."""
import pytest

from dnd_combat.core.combat_engine import CombatManager, CombatState
from dnd_combat.core.combat_types import ActionType, CombatStatus
from dnd_combat.core.combatant import Ability, CastingTime, Item, Spell, SpellResolution
from dnd_combat.core.effects import ActiveEffect, EffectType
from dnd_combat.core.errors import (
    CombatAlreadyActiveError,
    CombatNotActiveError,
    ErrorCode,
    InvalidCombatStateError,
    InvalidNotationError,
    NotYourTurnError,
    ValidationError,
)


class TestCombatStart:
    """Tests for starting an encounter."""

    def test_initiative_order_and_state(self, make_manager, player, goblin):
        """Player (18) goes before Goblin (9)."""
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin], location="Cave")

        assert isinstance(state, CombatState)
        assert [e.id for e in state.initiative_order] == ["player-1", "goblin-1"]
        assert [e.initiative for e in state.initiative_order] == [18, 9]
        assert state.status == CombatStatus.ACTIVE
        assert state.round == 1
        assert state.current_turn_index == 0
        assert state.combat_log[0] == "Combat started at Cave."
        assert "Player's turn started." in state.combat_log

    def test_rejects_second_encounter(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        manager.initiate_combat([player, goblin])
        with pytest.raises(CombatAlreadyActiveError):
            manager.initiate_combat([player, goblin])

    def test_rejects_empty_participants(self, make_manager):
        with pytest.raises(ValidationError):
            make_manager().initiate_combat([])

    def test_rejects_duplicate_ids(self, make_manager, player):
        with pytest.raises(ValidationError) as exc_info:
            make_manager(10, 10).initiate_combat([player, player])
        assert "Duplicate participant ID" in exc_info.value.message

    def test_zero_hp_enters_defeated(self, make_manager, player, goblin, second_goblin):
        """A combatant at 0 HP starts defeated and never gets a turn."""
        goblin.current_hp = 0
        manager = make_manager(5, 19, 7)
        state = manager.initiate_combat([player, goblin, second_goblin])

        entry = state.initiative_tracker.get_entry("goblin-1")
        assert entry.is_defeated
        assert manager.get_current_participant().id != "goblin-1"

    def test_player_initiated_surprise(self, make_manager, player, goblin):
        """Hostiles start surprised; surprise ends when round 2 begins."""
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin], is_player_initiated=True)

        assert "Players initiated combat with surprise!" in state.combat_log
        assert "surprised" in state.initiative_tracker.get_entry("goblin-1").conditions
        assert "surprised" not in state.initiative_tracker.get_entry("player-1").conditions

        manager.advance_turn()
        assert "surprised" in state.initiative_tracker.get_entry("goblin-1").conditions
        manager.advance_turn()
        assert state.round == 2
        assert "Round 2 started." in state.combat_log
        assert "surprised" not in state.initiative_tracker.get_entry("goblin-1").conditions

    def test_surprised_target_grants_advantage(self, make_manager, player, goblin):
        manager = make_manager(17, 7, 3, 16, 5)
        manager.initiate_combat([player, goblin], is_player_initiated=True)

        result = manager.resolve_attack("player-1", "goblin-1")
        assert result.extra_data["advantage"] is True
        assert result.extra_data["natural_roll"] == 16
        assert result.hit is True

    def test_npc_ambush_surprises_unwary_players(self, make_manager, player, goblin):
        """Goblin Stealth 17 beats the player's passive Perception of 10."""
        manager = make_manager(17, 7, 15)
        state = manager.initiate_combat([player, goblin], is_npc_initiated=True)

        assert state.is_npc_initiated is True
        assert "Player was surprised!" in state.combat_log
        assert "surprised" in state.initiative_tracker.get_entry("player-1").conditions
        assert "surprised" not in state.initiative_tracker.get_entry("goblin-1").conditions

        manager.advance_turn()
        manager.advance_turn()
        assert "surprised" not in state.initiative_tracker.get_entry("player-1").conditions

    def test_spotted_ambush(self, make_manager, player, goblin):
        """Goblin Stealth 7 is below passive Perception 10."""
        manager = make_manager(17, 7, 5)
        state = manager.initiate_combat([player, goblin], is_npc_initiated=True)

        assert "The ambush was spotted!" in state.combat_log
        assert "surprised" not in state.initiative_tracker.get_entry("player-1").conditions

    def test_rejects_ambush_from_both_sides(self, make_manager, player, goblin):
        with pytest.raises(ValidationError):
            make_manager(17, 7).initiate_combat([player, goblin], is_player_initiated=True, is_npc_initiated=True)


class TestGoblinScenario:
    """Player vs Goblin from first roll to victory."""

    def test_player_defeats_goblin(self, make_manager, player, goblin):
        """Forced hit defeats the Goblin; the next advance ends the encounter."""
        manager = make_manager(17, 7, 15, 5)
        state = manager.initiate_combat([player, goblin], location="Cave")

        result = manager.resolve_attack("player-1", "goblin-1")

        assert result.success is True
        assert result.hit is True
        assert result.damage_dealt == 8
        assert result.extra_data["attack_roll"] == 20
        assert goblin.current_hp == 0
        goblin_entry = state.initiative_tracker.get_entry("goblin-1")
        assert "defeated" in goblin_entry.conditions
        assert not any([
            goblin_entry.has_action,
            goblin_entry.has_bonus_action,
            goblin_entry.has_reaction,
            goblin_entry.has_movement,
        ])
        assert "Player attacked Goblin with Longsword for 8 slashing damage." in state.combat_log
        assert "Goblin was defeated!" in state.combat_log

        assert manager.advance_turn() is None
        assert state.round == 2
        assert state.current_turn_index == 0
        assert manager.check_encounter_end() == CombatStatus.COMPLETED
        assert state.outcome == "victory"
        assert "Combat ended. Players were victorious!" in state.combat_log
        assert "Experience awarded: 50 XP per player." in state.combat_log
        assert player.experience_points == 50

    def test_experience_awarded_once_and_split(self, make_manager, player, wizard, goblin):
        manager = make_manager(17, 10, 2, 15, 5)
        state = manager.initiate_combat([player, wizard, goblin])

        manager.resolve_attack("player-1", "goblin-1")
        assert manager.advance_turn() is None
        assert manager.check_encounter_end() == CombatStatus.COMPLETED

        assert state.experience_awarded is True
        assert player.experience_points == 25
        assert wizard.experience_points == 25
        assert sum("Experience awarded" in line for line in state.combat_log) == 1


class TestAttacks:
    """Tests for attack resolution."""

    def test_miss_uses_action(self, make_manager, player, goblin):
        manager = make_manager(17, 7, 2)
        manager.initiate_combat([player, goblin])

        result = manager.resolve_attack("player-1", "goblin-1")
        assert result.success is True
        assert result.hit is False
        assert goblin.current_hp == 7
        assert manager.get_combat_log()[-1] == "Player attacked Goblin with Longsword and missed."

        again = manager.resolve_attack("player-1", "goblin-1")
        assert again.success is False
        assert again.description == "Player has already used their action this turn"
        assert again.error_code == ErrorCode.COMBAT_RESOURCE_EXHAUSTED

    def test_natural_20_doubles_dice(self, make_manager, player, goblin):
        goblin.current_hp = goblin.max_hp = 30
        manager = make_manager(17, 7, 20, 4, 4)
        manager.initiate_combat([player, goblin])

        result = manager.resolve_attack("player-1", "goblin-1")
        assert result.critical is True
        assert result.damage_dealt == 11
        assert result.description.endswith("Critical hit!")

    def test_natural_1_always_misses(self, make_manager, player, goblin):
        goblin.armor_class = 1
        manager = make_manager(17, 7, 1)
        manager.initiate_combat([player, goblin])

        result = manager.resolve_attack("player-1", "goblin-1")
        assert result.hit is False
        assert result.description.endswith("Critical miss!")

    def test_not_your_turn_changes_nothing(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        manager.initiate_combat([player, goblin])
        before = manager.get_combat_state()

        result = manager.resolve_attack("goblin-1", "player-1")

        assert result.success is False
        assert result.description == "It's not Goblin's turn"
        assert result.error_code == ErrorCode.COMBAT_NOT_YOUR_TURN
        assert manager.get_combat_state() == before

    def test_unarmed_strike(self, make_manager, player, goblin):
        """No weapon: configured 1d1 plus STR."""
        player.equipment = []
        manager = make_manager(17, 7, 15, 1)
        manager.initiate_combat([player, goblin])

        result = manager.resolve_attack("player-1", "goblin-1")
        assert result.extra_data["weapon"] == "Unarmed Strike"
        assert result.damage_dealt == 4

    def test_unequipped_named_weapon(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        manager.initiate_combat([player, goblin])

        result = manager.resolve_attack("player-1", "goblin-1", weapon_name="Greataxe")
        assert result.success is False
        assert result.description == "Player doesn't have Greataxe equipped"

    def test_finesse_uses_dexterity(self, make_manager, player, goblin):
        """Goblin's scimitar uses DEX +2 over STR -1."""
        manager = make_manager(2, 19, 12, 3)
        manager.initiate_combat([player, goblin])

        result = manager.resolve_attack("goblin-1", "player-1", weapon_name="Scimitar")
        assert result.extra_data["modifier"] == 4
        assert result.hit is True
        assert result.damage_dealt == 5
        assert player.current_hp == 15

    def test_dodge_imposes_disadvantage_until_next_turn(self, make_manager, player, goblin):
        manager = make_manager(17, 7, 18, 3)
        state = manager.initiate_combat([player, goblin])
        player_entry = state.initiative_tracker.get_entry("player-1")

        assert manager.resolve_dodge("player-1").success
        assert "dodging" in player_entry.conditions

        manager.advance_turn()
        result = manager.resolve_attack("goblin-1", "player-1")
        assert result.extra_data["disadvantage"] is True
        assert result.extra_data["natural_roll"] == 3
        assert result.hit is False

        manager.advance_turn()
        assert "dodging" not in player_entry.conditions

    def test_party_wipe_is_defeat(self, make_manager, player, goblin):
        player.current_hp = 1
        manager = make_manager(2, 19, 15, 3)
        state = manager.initiate_combat([player, goblin])

        manager.resolve_attack("goblin-1", "player-1")
        player_entry = state.initiative_tracker.get_entry("player-1")
        assert {"unconscious", "defeated"} <= player_entry.conditions
        assert "Player was knocked unconscious!" in state.combat_log

        assert manager.check_encounter_end() == CombatStatus.COMPLETED
        assert state.outcome == "defeat"
        assert "Combat ended. Players were defeated!" in state.combat_log
        assert state.experience_awarded is False


class TestSpells:
    """Tests for spell resolution."""

    def test_magic_missile(self, make_manager, wizard, goblin):
        manager = make_manager(19, 2, 1, 1, 1)
        manager.initiate_combat([wizard, goblin])

        result = manager.resolve_spell("wizard-1", "Magic Missile", 1, ["goblin-1"])

        assert result.success is True
        assert result.damage_dealt == 6
        assert goblin.current_hp == 1
        assert wizard.spell_slots[1] == 1
        assert "Magic Missile hit Goblin for 6 force damage." in manager.get_combat_log()

    def test_upcast_adds_dice(self, make_manager, wizard, goblin):
        wizard.spell_slots = {1: 2, 2: 1}
        manager = make_manager(19, 2, 1, 1, 1, 2)
        manager.initiate_combat([wizard, goblin])

        result = manager.resolve_spell("wizard-1", "Magic Missile", 2, ["goblin-1"])

        assert result.damage_dealt == 8
        assert wizard.spell_slots == {1: 2, 2: 0}
        assert result.extra_data["targets"][0]["defeated"] is True

    def test_unknown_spell(self, make_manager, wizard, goblin):
        """Fireball is rejected when only Magic Missile is known."""
        manager = make_manager(19, 2)
        manager.initiate_combat([wizard, goblin])

        result = manager.resolve_spell("wizard-1", "Fireball", 3, ["goblin-1"])

        assert result.success is False
        assert "doesn't know the spell Fireball" in result.description
        assert wizard.spell_slots == {1: 2}

    def test_out_of_slots(self, make_manager, wizard, goblin):
        wizard.spell_slots = {1: 0}
        manager = make_manager(19, 2)
        manager.initiate_combat([wizard, goblin])

        result = manager.resolve_spell("wizard-1", "Magic Missile", 1, ["goblin-1"])
        assert result.description == "Wizard has no level 1 spell slots remaining"

    def test_damage_spell_needs_a_target(self, make_manager, wizard, goblin):
        manager = make_manager(19, 2)
        manager.initiate_combat([wizard, goblin])

        result = manager.resolve_spell("wizard-1", "Magic Missile")
        assert result.success is False
        assert result.description == "No target ID provided"

    def test_caster_and_last_enemy_fall_together(self, make_manager, wizard, goblin):
        """Both sides wiped by one spell: defeat, and no turn left to advance to."""
        wizard.current_hp = 5
        manager = make_manager(19, 2, 4, 4, 4, 4, 4, 4)
        state = manager.initiate_combat([wizard, goblin])

        result = manager.resolve_spell("wizard-1", "Magic Missile", 1, ["goblin-1", "wizard-1"])

        assert result.success is True
        assert [t["defeated"] for t in result.extra_data["targets"]] == [True, True]
        assert state.status == CombatStatus.COMPLETED
        assert state.outcome == "defeat"
        assert state.experience_awarded is False
        assert manager.advance_turn() is None

    def test_caster_downed_by_own_spell_passes_the_turn(self, make_manager, wizard, player, goblin):
        wizard.current_hp = 5
        manager = make_manager(19, 10, 2, 4, 4, 4)
        state = manager.initiate_combat([wizard, player, goblin])

        manager.resolve_spell("wizard-1", "Magic Missile", 1, ["wizard-1"])

        assert state.status == CombatStatus.ACTIVE
        assert manager.get_current_participant().id == "player-1"
        assert manager.advance_turn().id == "goblin-1"
        assert manager.advance_turn().id == "player-1"
        assert state.round == 2

    def test_cantrip_cannot_use_a_slot(self, make_manager, wizard, goblin):
        wizard.spells.append(Spell(name="Fire Bolt", level=0, damage="1d10", resolution=SpellResolution.ATTACK))
        manager = make_manager(19, 2)
        state = manager.initiate_combat([wizard, goblin])

        result = manager.resolve_spell("wizard-1", "Fire Bolt", 1, ["goblin-1"])

        assert result.success is False
        assert result.description == "Fire Bolt is a cantrip and can't be cast with a spell slot"
        assert wizard.spell_slots == {1: 2}
        assert state.initiative_tracker.get_entry("wizard-1").has_action is True

    def test_spell_attack_uses_spell_attack_bonus(self, make_manager, wizard, goblin):
        """d20 10 + proficiency 2 + INT 3 reaches the goblin's AC 15."""
        wizard.spells.append(Spell(name="Fire Bolt", level=0, damage="1d10", resolution=SpellResolution.ATTACK))
        manager = make_manager(19, 2, 10, 5)
        manager.initiate_combat([wizard, goblin])

        result = manager.resolve_spell("wizard-1", "Fire Bolt", target_ids=["goblin-1"])

        assert result.extra_data["targets"][0]["attack_roll"] == 15
        assert result.hit is True
        assert result.damage_dealt == 5
        assert "Wizard cast Fire Bolt." in manager.get_combat_log()

    def test_bonus_action_spell_keeps_the_action(self, make_manager, wizard, goblin):
        wizard.current_hp = 3
        wizard.spells.append(Spell(name="Healing Word", level=1, healing="1d4", casting_time=CastingTime.BONUS_ACTION))
        manager = make_manager(19, 2, 2)
        state = manager.initiate_combat([wizard, goblin])
        entry = state.initiative_tracker.get_entry("wizard-1")
        assert ActionType.BONUS_ACTION in manager.get_available_actions()

        result = manager.resolve_spell("wizard-1", "Healing Word")

        assert result.healing_done == 5
        assert wizard.current_hp == 8
        assert entry.has_bonus_action is False
        assert entry.has_action is True
        assert wizard.spell_slots == {1: 1}
        assert ActionType.BONUS_ACTION not in manager.get_available_actions()
        assert ActionType.CAST in manager.get_available_actions()

        again = manager.resolve_spell("wizard-1", "Healing Word")
        assert again.success is False
        assert again.description == "Wizard has already used their bonus action this turn"

    def test_bad_spell_dice_spend_nothing(self, make_manager, wizard, goblin):
        wizard.spells.append(Spell(name="Chaos Bolt", level=1, damage="2d8 fire"))
        manager = make_manager(19, 2)
        state = manager.initiate_combat([wizard, goblin])

        with pytest.raises(InvalidNotationError):
            manager.resolve_spell("wizard-1", "Chaos Bolt", 1, ["goblin-1"])

        assert wizard.spell_slots == {1: 2}
        assert state.initiative_tracker.get_entry("wizard-1").has_action is True
        assert goblin.current_hp == 7

    def test_save_for_half(self, make_manager, wizard, goblin):
        """Goblin saves (17 vs DC 13) and takes half of 12."""
        wizard.spells.append(Spell(
            name="Burning Hands",
            level=1,
            damage="3d6",
            damage_type="fire",
            resolution=SpellResolution.SAVE,
            save_ability=Ability.DEXTERITY,
            half_on_save=True,
        ))
        manager = make_manager(19, 2, 15, 4, 4, 4)
        manager.initiate_combat([wizard, goblin])

        result = manager.resolve_spell("wizard-1", "Burning Hands", 1, ["goblin-1"])

        assert result.damage_dealt == 6
        assert result.extra_data["targets"][0]["saved"] is True
        assert "Goblin resisted Burning Hands and took 6 fire damage." in manager.get_combat_log()

    def test_condition_spell_expires(self, make_manager, wizard, goblin):
        """A failed save paralyzes for one of the goblin's turns."""
        wizard.spells.append(Spell(
            name="Hold Person",
            level=2,
            resolution=SpellResolution.SAVE,
            save_ability=Ability.WISDOM,
            condition="paralyzed",
            duration=1,
        ))
        wizard.spell_slots = {1: 2, 2: 1}
        manager = make_manager(19, 2, 3)
        state = manager.initiate_combat([wizard, goblin])
        goblin_entry = state.initiative_tracker.get_entry("goblin-1")

        result = manager.resolve_spell("wizard-1", "Hold Person", 2, ["goblin-1"])
        assert result.effects_applied == ["paralyzed"]
        assert "paralyzed" in goblin_entry.conditions
        assert len(goblin_entry.temporary_effects) == 1

        manager.advance_turn()
        assert manager.get_available_actions() == []

        manager.advance_turn()
        assert "paralyzed" not in goblin_entry.conditions
        assert goblin_entry.temporary_effects == []
        assert "paralyzed effect ended for Goblin." in state.combat_log


class TestItemsAndMovement:
    """Tests for items, movement and simple actions."""

    def test_healing_potion(self, make_manager, player, goblin, healing_potion):
        player.current_hp = 10
        manager = make_manager(17, 7, 3, 3)
        manager.initiate_combat([player, goblin])

        result = manager.resolve_item_use("player-1", "potion-1")

        assert result.success is True
        assert result.healing_done == 8
        assert player.current_hp == 18
        assert healing_potion.quantity == 1
        assert "Player used Potion of Healing, restoring 8 hit points." in manager.get_combat_log()

    def test_healing_caps_and_last_potion_is_used_up(self, make_manager, player, goblin, healing_potion):
        player.current_hp = 19
        healing_potion.quantity = 1
        manager = make_manager(17, 7, 3, 3)
        manager.initiate_combat([player, goblin])

        result = manager.resolve_item_use("player-1", "potion-1")

        assert result.healing_done == 1
        assert player.current_hp == 20
        assert player.inventory == []

    def test_movement(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        manager.initiate_combat([player, goblin])

        assert manager.resolve_movement("player-1", 35).description == "Movement distance (35) exceeds speed (30)"
        assert manager.resolve_movement("player-1", 25).success is True
        again = manager.resolve_movement("player-1", 5)
        assert again.description == "Player has already used their movement this turn"

    def test_dash_doubles_speed(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin])
        entry = state.initiative_tracker.get_entry("player-1")

        assert manager.resolve_dash("player-1").success is True
        assert "dashed" in entry.conditions
        assert entry.has_action is False

        result = manager.resolve_movement("player-1", 61)
        assert result.success is False
        assert result.description == "Movement distance (61) exceeds speed (60)"

        assert manager.resolve_movement("player-1", 60).success is True
        assert entry.has_movement is False

    def test_dash_after_moving_does_not_restore_movement(self, make_manager, player, goblin):
        """Movement is spent once per turn; only the turn start refreshes it."""
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin])
        entry = state.initiative_tracker.get_entry("player-1")

        manager.resolve_movement("player-1", 30)
        assert manager.resolve_dash("player-1").success is True
        assert entry.has_movement is False
        assert manager.resolve_movement("player-1", 30).success is False

        manager.advance_turn()
        manager.advance_turn()
        assert "dashed" not in entry.conditions
        assert entry.has_movement is True

    def test_disengage(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin])

        result = manager.resolve_disengage("player-1")
        assert result.success is True
        assert "disengaged" in state.initiative_tracker.get_entry("player-1").conditions

    def test_available_actions(self, make_manager, player, goblin):
        manager = make_manager(17, 7, 2)
        manager.initiate_combat([player, goblin])

        assert manager.get_available_actions() == [
            ActionType.ATTACK,
            ActionType.DASH,
            ActionType.DISENGAGE,
            ActionType.DODGE,
            ActionType.USE_ITEM,
            ActionType.MOVE,
        ]
        manager.resolve_attack("player-1", "goblin-1")
        assert manager.get_available_actions() == [ActionType.MOVE]

    def test_caster_can_cast(self, make_manager, wizard, goblin):
        manager = make_manager(19, 2)
        manager.initiate_combat([wizard, goblin])
        assert ActionType.CAST in manager.get_available_actions()
        assert ActionType.BONUS_ACTION not in manager.get_available_actions()

    def test_damage_item_with_bad_dice_changes_nothing(self, make_manager, player, goblin):
        """Unreadable dice fail before the action or the item is spent."""
        flask = Item(
            id="flask-1",
            name="Alchemist's Fire",
            properties=["usable", "consumable"],
            damage="1d4 fire",
            quantity=1,
        )
        player.inventory.append(flask)
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin])
        entry = state.initiative_tracker.get_entry("player-1")

        with pytest.raises(InvalidNotationError):
            manager.resolve_item_use("player-1", "flask-1", "goblin-1")

        assert entry.has_action is True
        assert flask.quantity == 1
        assert flask in player.inventory
        assert goblin.current_hp == 7


class TestTurnsAndLifecycle:
    """Tests for turn advancement, fleeing and corrupt state."""

    def test_full_cycle_increments_round(self, make_manager, player, goblin, second_goblin):
        manager = make_manager(17, 7, 5)
        state = manager.initiate_combat([player, goblin, second_goblin])
        start = state.current_turn_index

        for _ in range(3):
            manager.advance_turn()

        assert state.current_turn_index == start
        assert state.round == 2

    def test_reaction_kept_until_own_turn(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin])
        entry = state.initiative_tracker.get_entry("player-1")

        manager.advance_turn()
        assert entry.has_reaction is True
        assert entry.has_action is False

    def test_advance_before_start(self):
        with pytest.raises(CombatNotActiveError):
            CombatManager().advance_turn()

    def test_flee(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin])

        manager.flee()

        assert state.status == CombatStatus.ABORTED
        assert state.outcome == "fled"
        assert manager.advance_turn() is None
        with pytest.raises(CombatNotActiveError):
            manager.flee()

    def test_actions_rejected_after_combat(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        manager.initiate_combat([player, goblin])
        manager.flee()

        result = manager.resolve_attack("player-1", "goblin-1")
        assert result.success is False
        assert result.error_code == ErrorCode.COMBAT_NOT_ACTIVE

    def test_new_encounter_after_previous_ends(self, make_manager, player, goblin):
        manager = make_manager(17, 7, 10, 10)
        manager.initiate_combat([player, goblin])
        manager.flee()
        assert manager.initiate_combat([player, goblin]).status == CombatStatus.ACTIVE

    def test_advance_with_both_sides_down_ends_in_defeat(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin])
        for entry in state.initiative_tracker.entries:
            entry.mark_defeated()

        assert manager.advance_turn() is None
        assert state.status == CombatStatus.COMPLETED
        assert state.outcome == "defeat"

    def test_corrupt_turn_index_raises(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin])
        state.initiative_tracker.current_turn_index = 9

        with pytest.raises(InvalidCombatStateError) as exc_info:
            manager.advance_turn()
        assert exc_info.value.recoverable is False


class TestEffectsAndEvents:
    """Tests for effects and event listeners."""

    def test_add_and_remove_status_effect(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin])
        entry = state.initiative_tracker.get_entry("goblin-1")
        effect = ActiveEffect(name="Poisoned", source="Dart", effect_type=EffectType.STATUS, remaining_duration=3)

        assert manager.add_effect("goblin-1", effect) is True
        assert "poisoned" in entry.conditions
        assert "Goblin is affected by Poisoned." in state.combat_log

        assert manager.remove_effect("goblin-1", effect.id) is True
        assert "poisoned" not in entry.conditions
        assert "Poisoned effect ended for Goblin." in state.combat_log

    def test_effect_on_unknown_target(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        manager.initiate_combat([player, goblin])
        assert manager.add_effect("ghost", ActiveEffect(name="Blessed")) is False
        assert manager.remove_effect("goblin-1", "missing") is False

    def test_listener_receives_events(self, make_manager, player, goblin):
        events = []
        manager = make_manager(17, 7, 15, 5)
        manager.add_listener(events.append)

        manager.initiate_combat([player, goblin])
        manager.resolve_attack("player-1", "goblin-1")

        types = [e.event_type for e in events]
        assert types[:2] == ["combat_started", "turn_started"]
        assert "attack" in types
        assert "defeated" in types
        attack = next(e for e in events if e.event_type == "attack")
        assert attack.data["killing_blow"] is True

    def test_combat_state_dict(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        manager.initiate_combat([player, goblin], location="Cave")

        state = manager.get_combat_state()
        assert state["status"] == "active"
        assert state["round"] == 1
        assert state["current_combatant"]["id"] == "player-1"
        assert state["location"] == "Cave"
        assert [e["id"] for e in state["initiative_order"]] == ["player-1", "goblin-1"]


class TestOpportunityAttacks:
    """Tests for reactions when a combatant moves out of reach."""

    @staticmethod
    def _round_two(manager, player, goblin):
        """Player (18) then Goblin (9); both have had a turn once round 2 starts."""
        state = manager.initiate_combat([player, goblin])
        manager.advance_turn()
        manager.advance_turn()
        return state

    def test_leaving_reach_provokes(self, make_manager, player, goblin):
        manager = make_manager(17, 7, 15, 3)
        state = self._round_two(manager, player, goblin)
        goblin_entry = state.initiative_tracker.get_entry("goblin-1")

        result = manager.resolve_movement("player-1", 30, leaving_ids=["goblin-1"])

        assert result.success is True
        assert result.damage_dealt == 5
        assert player.current_hp == 15
        assert goblin_entry.has_reaction is False
        reaction = result.extra_data["reactions"][0]
        assert reaction["reaction_type"] == "opportunity_attack"
        assert reaction["reactor_id"] == "goblin-1"
        assert reaction["hit"] is True
        assert "Goblin makes an opportunity attack against Player with Scimitar for 5 slashing damage." in state.combat_log
        assert "Player moved 30 feet." in state.combat_log

    def test_miss_still_spends_the_reaction(self, make_manager, player, goblin):
        manager = make_manager(17, 7, 2)
        state = self._round_two(manager, player, goblin)

        result = manager.resolve_movement("player-1", 30, leaving_ids=["goblin-1"])

        assert result.extra_data["reactions"][0]["hit"] is False
        assert state.initiative_tracker.get_entry("goblin-1").has_reaction is False
        assert "Goblin makes an opportunity attack against Player and misses." in state.combat_log

    def test_disengage_prevents_opportunity_attacks(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        state = self._round_two(manager, player, goblin)

        manager.resolve_disengage("player-1")
        result = manager.resolve_movement("player-1", 30, leaving_ids=["goblin-1"])

        assert result.success is True
        assert result.extra_data["reactions"] == []
        assert state.initiative_tracker.get_entry("goblin-1").has_reaction is True

    def test_no_reaction_before_first_turn(self, make_manager, player, goblin):
        """The goblin has not acted yet in round 1, so it has no reaction to spend."""
        manager = make_manager(17, 7)
        manager.initiate_combat([player, goblin])

        result = manager.resolve_movement("player-1", 30, leaving_ids=["goblin-1"])

        assert result.success is True
        assert result.extra_data["reactions"] == []
        assert player.current_hp == 20

    def test_allies_do_not_react(self, make_manager, player, wizard, goblin):
        manager = make_manager(17, 10, 2)
        state = manager.initiate_combat([player, wizard, goblin])
        for _ in range(3):
            manager.advance_turn()

        result = manager.resolve_movement("player-1", 30, leaving_ids=["wizard-1"])

        assert result.extra_data["reactions"] == []
        assert state.initiative_tracker.get_entry("wizard-1").has_reaction is True

    def test_mover_dropped_before_moving(self, make_manager, player, goblin):
        player.current_hp = 1
        manager = make_manager(17, 7, 15, 3)
        state = self._round_two(manager, player, goblin)

        result = manager.resolve_movement("player-1", 30, leaving_ids=["goblin-1"])

        assert result.success is True
        assert result.extra_data["distance"] == 0
        assert "Player was cut down before moving away." in state.combat_log
        assert "Player moved 30 feet." not in state.combat_log
        assert state.status == CombatStatus.COMPLETED
        assert state.outcome == "defeat"

    def test_unknown_reactor_rejected(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        state = manager.initiate_combat([player, goblin])

        result = manager.resolve_movement("player-1", 30, leaving_ids=["troll-9"])

        assert result.success is False
        assert result.error_code == ErrorCode.NOT_FOUND
        assert state.initiative_tracker.get_entry("player-1").has_movement is True


class TestNPCTurns:
    """Tests for NPC turns played by the tactical AI."""

    def test_npc_attacks_and_ends_turn(self, make_manager, player, goblin):
        """Goblin (21) goes first, hits with 15 + 4 and deals 3 + 2."""
        manager = make_manager(2, 19, 15, 3)
        state = manager.initiate_combat([player, goblin])

        results = manager.run_npc_turn()

        assert [r.action_type for r in results] == ["attack"]
        assert results[0].target_id == "player-1"
        assert player.current_hp == 15
        assert manager.get_current_participant().id == "player-1"
        assert state.round == 1

    def test_wounded_npc_drinks_a_potion(self, make_manager, player, goblin):
        goblin.current_hp = 3
        goblin.inventory.append(Item(
            id="potion-g",
            name="Potion of Healing",
            properties=["usable", "consumable"],
            healing="2d4+2",
        ))
        manager = make_manager(2, 19, 1, 1)
        manager.initiate_combat([player, goblin])

        results = manager.run_npc_turn()

        assert results[0].action_type == "use_item"
        assert results[0].healing_done == 4
        assert goblin.current_hp == 7
        assert goblin.inventory == []

    def test_incapacitated_npc_is_skipped(self, make_manager, player, goblin):
        manager = make_manager(2, 19)
        state = manager.initiate_combat([player, goblin])
        state.initiative_tracker.get_entry("goblin-1").conditions.add("paralyzed")

        assert manager.run_npc_turn() == []
        assert "Goblin is unable to act." in state.combat_log
        assert manager.get_current_participant().id == "player-1"

    def test_refuses_player_turn(self, make_manager, player, goblin):
        manager = make_manager(17, 7)
        manager.initiate_combat([player, goblin])

        with pytest.raises(NotYourTurnError):
            manager.run_npc_turn()

    def test_runs_every_npc_until_a_player_is_up(self, make_manager, player, goblin, second_goblin):
        """Goblin hits for 5; the unarmed Goblin Archer misses."""
        manager = make_manager(2, 19, 18, 15, 3, 5)
        manager.initiate_combat([player, goblin, second_goblin])

        results = manager.run_npc_turns()

        assert [r.actor_id for r in results] == ["goblin-1", "goblin-2"]
        assert results[1].hit is False
        assert player.current_hp == 15
        assert manager.get_current_participant().id == "player-1"
        assert manager.run_npc_turns() == []
