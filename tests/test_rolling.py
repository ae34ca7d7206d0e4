"""Tests for rolling, applying the dice result and selecting pieces.

Critical scenarios tested:
- Only the current player may roll, once per roll window
- No movable piece passes the turn
- A single movable piece is selected automatically
- Several movable pieces wait for a selection
- Rolling a 6 grants another roll after the move
"""

from app.schemas.ludo import PlayerAction, PlayerColor, Position
from app.services.ludo.results import DiceOutcome
from app.services.ludo.store import GameStateStore

from .conftest import (
    PLAYER_1_ID,
    PLAYER_2_ID,
    PLAYER_3_ID,
    ScriptedDice,
    create_started_game,
    create_waiting_game,
    roll_and_apply,
    set_piece_position,
)


class TestRollDice:
    def test_roll_stores_value(self, store: GameStateStore, dice: ScriptedDice):
        game_id = create_started_game(store)
        dice.push(4)

        result = store.roll_dice(game_id, PLAYER_1_ID)

        assert result.success
        assert result.dice_value == 4
        game = store.get_game_state(game_id)
        assert game.dice_value == 4
        assert not game.can_roll_dice
        assert game.players[0].action == PlayerAction.ROLLING
        assert game.players[0].dice_value == 4

    def test_not_your_turn(self, store: GameStateStore):
        game_id = create_started_game(store)
        result = store.roll_dice(game_id, PLAYER_2_ID)
        assert result.error_code == "NOT_YOUR_TURN"

    def test_cannot_roll_twice(self, store: GameStateStore):
        game_id = create_started_game(store)
        assert store.roll_dice(game_id, PLAYER_1_ID).success
        assert store.roll_dice(game_id, PLAYER_1_ID).error_code == "CANNOT_ROLL"

    def test_game_not_started(self, store: GameStateStore):
        game_id = create_waiting_game(store)
        assert store.roll_dice(game_id, PLAYER_1_ID).error_code == "GAME_NOT_PLAYING"

    def test_reroll_replaces_value(self, store: GameStateStore, dice: ScriptedDice):
        game_id = create_started_game(store)
        dice.push(2, 5)
        store.roll_dice(game_id, PLAYER_1_ID)

        result = store.reroll_dice(game_id, PLAYER_1_ID)

        assert result.dice_value == 5
        assert store.get_game_state(game_id).dice_value == 5

    def test_reroll_requires_rolling(self, store: GameStateStore):
        game_id = create_started_game(store)
        assert store.reroll_dice(game_id, PLAYER_1_ID).error_code == "NOT_ROLLING"


class TestApplyDiceResult:
    def test_no_movable_piece_passes_turn(self, store: GameStateStore, dice: ScriptedDice):
        game_id = create_started_game(store)

        result = roll_and_apply(store, dice, game_id, PLAYER_1_ID, 3)

        assert result.outcome == DiceOutcome.PASSED
        game = store.get_game_state(game_id)
        assert game.current_player == 1
        assert game.can_roll_dice
        assert not game.can_move_piece
        assert game.players[0].action is None
        assert game.players[0].dice_value is None
        assert game.players[1].action == PlayerAction.ROLL_DICE

    def test_six_from_start_zone_auto_selects_first_piece(
        self, store: GameStateStore, dice: ScriptedDice
    ):
        game_id = create_started_game(store)

        result = roll_and_apply(store, dice, game_id, PLAYER_1_ID, 6)

        assert result.outcome == DiceOutcome.AUTO_SELECTED
        assert result.movable_piece_ids == [0]
        game = store.get_game_state(game_id)
        assert game.selected_piece_id == 0
        assert game.can_move_piece
        assert game.players[0].action == PlayerAction.MOVE_PIECE

    def test_several_movable_pieces_wait_for_selection(
        self, store: GameStateStore, dice: ScriptedDice
    ):
        game_id = create_started_game(store)
        set_piece_position(store, game_id, PlayerColor.RED, 0, Position.board(10))
        set_piece_position(store, game_id, PlayerColor.RED, 1, Position.board(20))

        result = roll_and_apply(store, dice, game_id, PLAYER_1_ID, 3)

        assert result.outcome == DiceOutcome.AWAITING_SELECTION
        assert result.movable_piece_ids == [0, 1]
        game = store.get_game_state(game_id)
        assert game.selected_piece_id is None
        assert game.players[0].action == PlayerAction.SELECT_PIECE
        assert store.get_movable_pieces(game_id) == [0, 1]

    def test_requires_roll_in_progress(self, store: GameStateStore):
        game_id = create_started_game(store)
        result = store.apply_dice_result(game_id)
        assert result.error_code == "NOT_ROLLING"

    def test_applied_twice_is_rejected(self, store: GameStateStore, dice: ScriptedDice):
        game_id = create_started_game(store)
        roll_and_apply(store, dice, game_id, PLAYER_1_ID, 3)
        version = store.get_game_version(game_id)

        assert not store.apply_dice_result(game_id).success
        assert store.get_game_version(game_id) == version


class TestSelectPiece:
    def setup_selection(self, store: GameStateStore, dice: ScriptedDice, value: int = 3) -> str:
        game_id = create_started_game(store)
        set_piece_position(store, game_id, PlayerColor.RED, 0, Position.board(10))
        set_piece_position(store, game_id, PlayerColor.RED, 1, Position.board(20))
        roll_and_apply(store, dice, game_id, PLAYER_1_ID, value)
        return game_id

    def test_select_then_move(self, store: GameStateStore, dice: ScriptedDice):
        game_id = self.setup_selection(store, dice)

        assert store.select_piece(game_id, PLAYER_1_ID, 1).success
        game = store.get_game_state(game_id)
        assert game.selected_piece_id == 1
        assert game.players[0].action == PlayerAction.MOVE_PIECE

        result = store.move_piece(game_id, PLAYER_1_ID)
        assert result.success
        game = store.get_game_state(game_id)
        assert game.players[0].get_piece(1).position == Position.board(23)
        assert game.current_player == 1

    def test_piece_not_movable(self, store: GameStateStore, dice: ScriptedDice):
        game_id = self.setup_selection(store, dice)
        result = store.select_piece(game_id, PLAYER_1_ID, 2)
        assert result.error_code == "PIECE_NOT_MOVABLE"

    def test_unknown_piece(self, store: GameStateStore, dice: ScriptedDice):
        game_id = self.setup_selection(store, dice)
        assert store.select_piece(game_id, PLAYER_1_ID, 7).error_code == "PIECE_NOT_FOUND"

    def test_other_player_cannot_select(self, store: GameStateStore, dice: ScriptedDice):
        game_id = self.setup_selection(store, dice)
        assert store.select_piece(game_id, PLAYER_2_ID, 0).error_code == "NOT_YOUR_TURN"

    def test_any_start_zone_piece_accepted_on_six(
        self, store: GameStateStore, dice: ScriptedDice
    ):
        game_id = self.setup_selection(store, dice, value=6)
        assert store.get_movable_pieces(game_id) == [0, 1, 2]

        assert store.select_piece(game_id, PLAYER_1_ID, 3).success
        store.move_piece(game_id, PLAYER_1_ID)
        assert store.get_game_state(game_id).players[0].get_piece(3).position == Position.board(1)


class TestExtraRoll:
    def test_six_gives_same_player_another_roll(self, store: GameStateStore, dice: ScriptedDice):
        game_id = create_started_game(store)
        roll_and_apply(store, dice, game_id, PLAYER_1_ID, 6)

        result = store.move_piece(game_id, PLAYER_1_ID)

        assert result.success
        game = store.get_game_state(game_id)
        assert game.players[0].get_piece(0).position == Position.board(1)
        assert game.current_player == 0
        assert game.can_roll_dice
        assert game.players[0].action == PlayerAction.ROLL_DICE

    def test_other_values_pass_turn(self, store: GameStateStore, dice: ScriptedDice):
        game_id = create_started_game(store)
        set_piece_position(store, game_id, PlayerColor.RED, 0, Position.board(10))
        roll_and_apply(store, dice, game_id, PLAYER_1_ID, 4)

        store.move_piece(game_id, PLAYER_1_ID)

        game = store.get_game_state(game_id)
        assert game.current_player == 1
        assert game.players[0].action is None
        assert game.players[1].action == PlayerAction.ROLL_DICE

    def test_turn_order_wraps(self, store: GameStateStore, dice: ScriptedDice):
        game_id = create_started_game(store, 3)
        roll_and_apply(store, dice, game_id, PLAYER_1_ID, 1)
        roll_and_apply(store, dice, game_id, PLAYER_2_ID, 1)
        roll_and_apply(store, dice, game_id, PLAYER_3_ID, 1)
        assert store.get_game_state(game_id).current_player == 0
