"""Game State Store: authoritative in-memory state and the Ludo rules engine.

Every mutating operation works on a deep copy of the stored game and
commits it in one step, so a rejected operation never leaves a partial
change behind and each accepted one bumps the version exactly once.
"""

import logging
import random
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from app.config import Settings
from app.schemas.ludo import (
    GamePhase,
    LastMove,
    LudoGameState,
    Piece,
    PieceMove,
    Player,
    PlayerAction,
    PlayerColor,
    Segment,
)

from .board import MAX_FACE, PIECES_PER_PLAYER
from .captures import capture_pieces_at, to_captured_refs
from .errors import GameInvariantError
from .legal_moves import can_move_piece, get_movable_pieces
from .movement import get_destination
from .results import DiceOutcome, OperationResult

logger = logging.getLogger(__name__)

MIN_PLAYERS = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GameStateStore:
    """Owns every active game and exposes the game operations.

    Operations return OperationResult and never raise for rule violations.
    GameInvariantError signals a defect.
    """

    def __init__(
        self,
        decision_duration_ms: int = 30000,
        dice_min: int = 1,
        dice_max: int = MAX_FACE,
        end_path_advance: bool = False,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._games: dict[str, LudoGameState] = {}
        self._decision_duration_ms = decision_duration_ms
        self._dice_min = dice_min
        self._dice_max = dice_max
        self._end_path_advance = end_path_advance
        self._rng = rng or random.Random()
        self._clock = clock or _utcnow

        logger.info(
            "GameStateStore initialized: dice=%d..%d, decision_window=%dms, end_path_advance=%s",
            dice_min,
            dice_max,
            decision_duration_ms,
            end_path_advance,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "GameStateStore":
        return cls(
            decision_duration_ms=settings.DECISION_DURATION_MS,
            dice_min=settings.DICE_MIN_VALUE,
            dice_max=settings.DICE_MAX_VALUE,
            end_path_advance=settings.END_PATH_ADVANCE,
            **kwargs,
        )

    def now(self) -> datetime:
        return self._clock()

    # ===== Internal helpers =====

    def _load(self, game_id: str) -> LudoGameState | None:
        """Working copy of a stored game, or None."""
        game = self._games.get(game_id)
        if game is None:
            return None
        return game.model_copy(deep=True)

    def _commit(self, game: LudoGameState) -> None:
        """Store a modified working copy, bumping version and last_updated."""
        stored = self._games.get(game.game_id)
        if stored is not None and stored.version != game.version:
            raise GameInvariantError(
                f"Stale write for game {game.game_id}: "
                f"stored version {stored.version}, working copy {game.version}"
            )

        new_version = game.version + 1
        if stored is not None and new_version <= stored.version:
            raise GameInvariantError(f"Version of game {game.game_id} did not increase")

        now = self.now()
        game.version = new_version
        game.last_updated = max(now, game.last_updated)
        self._games[game.game_id] = game
        logger.debug("Game %s committed at version %d", game.game_id, game.version)

    def _open_decision_window(self, game: LudoGameState) -> None:
        game.decision_start_time = self.now()

    def _draw_dice(self) -> int:
        return self._rng.randint(self._dice_min, self._dice_max)

    def _pass_turn(self, game: LudoGameState) -> Player:
        """Move the turn to the next player in join order and open a roll window."""
        game.current_player = (game.current_player + 1) % len(game.players)
        game.can_roll_dice = True
        game.can_move_piece = False
        game.selected_piece_id = None
        next_player = game.players[game.current_player]
        next_player.action = PlayerAction.ROLL_DICE
        self._open_decision_window(game)
        return next_player

    def _validate_turn(
        self, game: LudoGameState | None, game_id: str, player_id: str
    ) -> OperationResult | None:
        """Common checks for in-turn actions. Returns a failure or None."""
        if game is None:
            return OperationResult.failure("GAME_NOT_FOUND", "Game not found")

        if game.game_phase != GamePhase.PLAYING:
            logger.warning(
                "Rejected action: GAME_NOT_PLAYING, game=%s, phase=%s",
                game_id,
                game.game_phase.value,
            )
            return OperationResult.failure("GAME_NOT_PLAYING", "The game is not in progress")

        current = game.get_current_player()
        if current is None or current.id != player_id:
            logger.warning(
                "Rejected action: NOT_YOUR_TURN, game=%s, current=%s, attempted=%s",
                game_id,
                current.id[:8] if current else None,
                player_id[:8],
            )
            return OperationResult.failure("NOT_YOUR_TURN", "It's not your turn")

        return None

    # ===== Lifecycle =====

    def create_game(self) -> LudoGameState:
        """Create an empty game waiting for players, at version 1."""
        now = self.now()
        game = LudoGameState(
            game_id=str(uuid.uuid4()),
            decision_duration=self._decision_duration_ms,
            last_updated=now,
            version=1,
        )
        self._games[game.game_id] = game
        logger.info("Game created: %s", game.game_id)
        return game.model_copy(deep=True)

    def join_game(
        self,
        game_id: str,
        name: str,
        color: PlayerColor | str,
        player_id: str,
    ) -> OperationResult:
        game = self._load(game_id)
        if game is None:
            return OperationResult.failure("GAME_NOT_FOUND", "Game not found")

        if game.game_phase != GamePhase.WAITING:
            return OperationResult.failure("GAME_NOT_WAITING", "The game has already started")

        if game.is_full:
            return OperationResult.failure("GAME_FULL", "The game is full")

        try:
            color = PlayerColor(color)
        except ValueError:
            return OperationResult.failure("INVALID_COLOR", f"Unknown color: {color}")

        if color not in game.available_colors:
            return OperationResult.failure("COLOR_UNAVAILABLE", "Color not available")

        if game.find_player(player_id) is not None:
            return OperationResult.failure(
                "PLAYER_ALREADY_JOINED", "You have already joined this game"
            )

        game.players.append(
            Player(
                id=player_id,
                name=name,
                color=color,
                pieces=[Piece(id=i) for i in range(PIECES_PER_PLAYER)],
            )
        )
        game.available_colors = [c for c in game.available_colors if c != color]
        self._commit(game)

        logger.info(
            "Player joined: game=%s, player=%s, name=%s, color=%s, players=%d",
            game_id,
            player_id,
            name,
            color.value,
            len(game.players),
        )
        return OperationResult.ok(
            "Joined the game successfully",
            game_id=game_id,
            player_id=player_id,
            player_name=name,
            player_color=color,
        )

    def rejoin_game(self, game_id: str, player_id: str) -> OperationResult:
        """Look up an existing player so a client can resume its session."""
        game = self._games.get(game_id)
        if game is None:
            return OperationResult.failure("GAME_NOT_FOUND", "Game not found")

        player = game.find_player(player_id)
        if player is None:
            return OperationResult.failure("PLAYER_NOT_FOUND", "Player not found in this game")

        return OperationResult.ok(
            "Player found",
            game_id=game_id,
            player_id=player_id,
            player_name=player.name,
            player_color=player.color,
        )

    def start_game(self, game_id: str) -> OperationResult:
        game = self._load(game_id)
        if game is None:
            return OperationResult.failure("GAME_NOT_FOUND", "Game not found")

        if game.game_phase != GamePhase.WAITING:
            return OperationResult.failure("GAME_NOT_WAITING", "The game has already started")

        if len(game.players) < MIN_PLAYERS:
            return OperationResult.failure(
                "NOT_ENOUGH_PLAYERS", f"At least {MIN_PLAYERS} players are required"
            )

        game.game_phase = GamePhase.PLAYING
        game.current_player = 0
        game.can_roll_dice = True
        game.can_move_piece = False
        game.selected_piece_id = None
        first = game.players[0]
        first.action = PlayerAction.ROLL_DICE
        self._open_decision_window(game)
        self._commit(game)

        logger.info(
            "Game started: game=%s, players=%d, first=%s",
            game_id,
            len(game.players),
            first.id,
        )
        return OperationResult.ok("Game started", game_id=game_id, player_id=first.id)

    # ===== Turn actions =====

    def roll_dice(self, game_id: str, player_id: str) -> OperationResult:
        """Draw a dice value for the current player.

        The value is only stored; pieces are evaluated by apply_dice_result
        once the roll animation is over.
        """
        game = self._load(game_id)
        failure = self._validate_turn(game, game_id, player_id)
        if failure:
            return failure

        if not game.can_roll_dice:
            logger.warning("Rejected roll: CANNOT_ROLL, game=%s, player=%s", game_id, player_id[:8])
            return OperationResult.failure("CANNOT_ROLL", "You cannot roll the dice right now")

        dice_value = self._draw_dice()
        player = game.get_current_player()
        game.dice_value = dice_value
        game.can_roll_dice = False
        game.can_move_piece = False
        game.selected_piece_id = None
        player.action = PlayerAction.ROLLING
        player.dice_value = dice_value
        self._open_decision_window(game)
        self._commit(game)

        logger.info("Dice rolled: game=%s, player=%s, value=%d", game_id, player_id, dice_value)
        return OperationResult.ok(
            "Rolling dice...", game_id=game_id, player_id=player_id, dice_value=dice_value
        )

    def reroll_dice(self, game_id: str, player_id: str) -> OperationResult:
        """Draw a fresh value for a player whose roll was never applied."""
        game = self._load(game_id)
        failure = self._validate_turn(game, game_id, player_id)
        if failure:
            return failure

        player = game.get_current_player()
        if player.action != PlayerAction.ROLLING:
            return OperationResult.failure("NOT_ROLLING", "No dice roll is in progress")

        dice_value = self._draw_dice()
        game.dice_value = dice_value
        player.dice_value = dice_value
        self._open_decision_window(game)
        self._commit(game)

        logger.info("Dice re-rolled: game=%s, player=%s, value=%d", game_id, player_id, dice_value)
        return OperationResult.ok(
            "Dice re-rolled", game_id=game_id, player_id=player_id, dice_value=dice_value
        )

    def apply_dice_result(self, game_id: str) -> OperationResult:
        """Resolve the stored dice value against the current player's pieces.

        - No movable piece: the turn passes to the next player
        - One movable piece: it is selected automatically
        - Several: the player must select one
        """
        game = self._load(game_id)
        if game is None:
            return OperationResult.failure("GAME_NOT_FOUND", "Game not found")

        if game.game_phase != GamePhase.PLAYING:
            return OperationResult.failure("GAME_NOT_PLAYING", "The game is not in progress")

        player = game.get_current_player()
        if player is None or player.action != PlayerAction.ROLLING:
            logger.debug("apply_dice_result ignored: no roll in progress, game=%s", game_id)
            return OperationResult.failure("NOT_ROLLING", "No dice roll is in progress")

        dice_value = game.dice_value
        movable = get_movable_pieces(player, dice_value, self._end_path_advance)
        movable_ids = [p.id for p in movable]
        logger.debug(
            "Movable pieces: game=%s, player=%s, dice=%d, pieces=%s",
            game_id,
            player.id[:8],
            dice_value,
            movable_ids or "none",
        )

        if not movable:
            player.reset_turn_fields()
            next_player = self._pass_turn(game)
            self._commit(game)
            logger.info(
                "No movable pieces: game=%s, player=%s, dice=%d, next=%s",
                game_id,
                player.id,
                dice_value,
                next_player.id,
            )
            return OperationResult.ok(
                "No piece can move, turn passed",
                game_id=game_id,
                player_id=player.id,
                dice_value=dice_value,
                outcome=DiceOutcome.PASSED,
            )

        game.can_move_piece = True
        if len(movable) == 1:
            game.selected_piece_id = movable[0].id
            player.action = PlayerAction.MOVE_PIECE
            outcome = DiceOutcome.AUTO_SELECTED
            message = "Only one piece can move, it was selected"
        else:
            game.selected_piece_id = None
            player.action = PlayerAction.SELECT_PIECE
            outcome = DiceOutcome.AWAITING_SELECTION
            message = "Select a piece to move"
        self._open_decision_window(game)
        self._commit(game)

        logger.info(
            "Dice result applied: game=%s, player=%s, dice=%d, outcome=%s",
            game_id,
            player.id,
            dice_value,
            outcome.value,
        )
        return OperationResult.ok(
            message,
            game_id=game_id,
            player_id=player.id,
            dice_value=dice_value,
            outcome=outcome,
            movable_piece_ids=movable_ids,
        )

    def select_piece(self, game_id: str, player_id: str, piece_id: int) -> OperationResult:
        game = self._load(game_id)
        failure = self._validate_turn(game, game_id, player_id)
        if failure:
            return failure

        if not game.can_move_piece:
            return OperationResult.failure(
                "CANNOT_SELECT", "You cannot select a piece right now"
            )

        player = game.get_current_player()
        piece = player.get_piece(piece_id)
        if piece is None:
            return OperationResult.failure("PIECE_NOT_FOUND", "Piece not found")

        if not can_move_piece(piece, game.dice_value, self._end_path_advance):
            logger.warning(
                "Rejected selection: PIECE_NOT_MOVABLE, game=%s, piece=%d, dice=%d",
                game_id,
                piece_id,
                game.dice_value,
            )
            return OperationResult.failure("PIECE_NOT_MOVABLE", "This piece cannot move")

        game.selected_piece_id = piece_id
        player.action = PlayerAction.MOVE_PIECE
        self._open_decision_window(game)
        self._commit(game)

        logger.info("Piece selected: game=%s, player=%s, piece=%d", game_id, player_id, piece_id)
        return OperationResult.ok("Piece selected", game_id=game_id, player_id=player_id)

    def move_piece(self, game_id: str, player_id: str) -> OperationResult:
        """Move the selected piece by the stored dice value.

        Resolves captures, records the LastMove, checks for a winner and
        hands the turn on (same player again after the maximum face).
        """
        game = self._load(game_id)
        failure = self._validate_turn(game, game_id, player_id)
        if failure:
            return failure

        if not game.can_move_piece or game.selected_piece_id is None:
            return OperationResult.failure("NO_PIECE_SELECTED", "No piece selected to move")

        player = game.get_current_player()
        piece = player.get_piece(game.selected_piece_id)
        if piece is None:
            raise GameInvariantError(
                f"Selected piece {game.selected_piece_id} missing for player {player.id}"
            )

        dice_value = game.dice_value
        from_position = piece.position
        to_position, move_type = get_destination(
            piece, dice_value, player.color, self._end_path_advance
        )
        piece.position = to_position

        capture_moves: list[PieceMove] = []
        if to_position.segment == Segment.BOARD:
            capture_moves = capture_pieces_at(to_position.index, player.color, game.players)

        primary = PieceMove(
            piece_id=piece.id,
            player_color=player.color,
            from_position=from_position,
            to_position=to_position,
            move_type=move_type,
            captured=to_captured_refs(capture_moves),
        )
        game.last_move = LastMove(
            move_id=str(uuid.uuid4()),
            moves=[primary, *capture_moves],
            player_color=player.color,
            dice_value=dice_value,
            timestamp=self.now(),
        )
        logger.info(
            "Piece moved: game=%s, player=%s, piece=%d, %s -> %s, captures=%d",
            game_id,
            player.id,
            piece.id,
            from_position.label(piece.id),
            to_position.label(piece.id),
            len(capture_moves),
        )

        if self.is_player_winner(player):
            self._finish_game(game, player)
            self._commit(game)
            logger.info("Game finished: game=%s, winner=%s", game_id, player.id)
            return OperationResult.ok(
                f"{player.name} has won!",
                game_id=game_id,
                player_id=player.id,
                dice_value=dice_value,
                last_move=game.last_move,
                winner_id=player.id,
            )

        player.reset_turn_fields()
        game.selected_piece_id = None
        game.can_move_piece = False

        if dice_value == MAX_FACE:
            game.can_roll_dice = True
            player.action = PlayerAction.ROLL_DICE
            self._open_decision_window(game)
            logger.debug("Maximum face: player=%s rolls again", player.id[:8])
        else:
            self._pass_turn(game)

        self._commit(game)
        return OperationResult.ok(
            "Piece moved successfully",
            game_id=game_id,
            player_id=player.id,
            dice_value=dice_value,
            last_move=game.last_move,
        )

    def _finish_game(self, game: LudoGameState, winner: Player) -> None:
        game.winner = winner.id
        game.game_phase = GamePhase.FINISHED
        game.can_roll_dice = False
        game.can_move_piece = False
        game.selected_piece_id = None
        game.decision_start_time = None
        for player in game.players:
            player.reset_turn_fields()

    @staticmethod
    def is_player_winner(player: Player) -> bool:
        """All four pieces on the last End Path square."""
        return all(piece.is_finished for piece in player.pieces)

    # ===== Queries =====

    def get_game_state(self, game_id: str) -> LudoGameState | None:
        """Snapshot of a game; changes to it do not affect the store."""
        game = self._games.get(game_id)
        if game is None:
            return None
        return game.model_copy(deep=True)

    def get_game_version(self, game_id: str) -> int | None:
        game = self._games.get(game_id)
        return game.version if game else None

    def get_game_versions(self) -> dict[str, int]:
        """Current version of every game, without copying state."""
        return {game_id: game.version for game_id, game in self._games.items()}

    def has_game(self, game_id: str) -> bool:
        return game_id in self._games

    def get_all_games(self) -> list[LudoGameState]:
        return [game.model_copy(deep=True) for game in self._games.values()]

    def get_available_games(self) -> list[LudoGameState]:
        """Games still waiting for players and not full."""
        return [
            game.model_copy(deep=True)
            for game in self._games.values()
            if game.game_phase == GamePhase.WAITING and not game.is_full
        ]

    def get_movable_pieces(self, game_id: str) -> list[int]:
        """Ids of the current player's pieces movable with the stored dice value."""
        game = self._games.get(game_id)
        if game is None or game.game_phase != GamePhase.PLAYING:
            return []
        player = game.get_current_player()
        if player is None or game.dice_value == 0:
            return []
        return [p.id for p in get_movable_pieces(player, game.dice_value, self._end_path_advance)]

    def get_decision_ms_left(self, game: LudoGameState) -> float | None:
        """Milliseconds left in the open decision window, clamped to 0."""
        if game.decision_start_time is None:
            return None

        elapsed_ms = (self.now() - game.decision_start_time).total_seconds() * 1000
        return max(0.0, game.decision_duration - elapsed_ms)

    def get_decision_time_left(self, game: LudoGameState) -> int | None:
        """Percentage (0-100) of the decision window left, None when no window is open."""
        remaining = self.get_decision_ms_left(game)
        if remaining is None:
            return None
        return round(remaining / game.decision_duration * 100)

    def update_player_action_times(self, game: LudoGameState) -> None:
        """Project the time left onto every player with a pending action."""
        time_left = self.get_decision_time_left(game)
        for player in game.players:
            player.action_time_left = time_left if player.action else None

    def refresh_action_times(self, game_id: str) -> int | None:
        """Update the stored game's per-player time left.

        Display-only fields: the version is not bumped.
        """
        game = self._games.get(game_id)
        if game is None:
            return None
        self.update_player_action_times(game)
        return self.get_decision_time_left(game)

    def delete_game(self, game_id: str) -> bool:
        deleted = self._games.pop(game_id, None) is not None
        if deleted:
            logger.info("Game deleted: %s", game_id)
        return deleted

    def clear(self) -> None:
        """Drop every game."""
        self._games.clear()
