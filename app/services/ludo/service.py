"""Ludo orchestration: wires store, timers and watchdog together.

The store applies the rules; this layer decides what happens around each
accepted operation:
- Records domain events in the watchdog history
- Schedules the dice animation delay after a roll
- Starts the decision-timeout watcher for whoever must act next
- Moves a piece right after it is selected (selection commits the move)
"""

import logging
import random
import uuid
from collections.abc import Callable
from datetime import datetime

from app.config import Settings, get_settings
from app.schemas.api import GameInfo
from app.schemas.ludo import GamePhase, LudoGameState, PlayerColor

from .events import WatchdogEvent, WatchdogEventType
from .results import DiceOutcome, OperationResult
from .store import GameStateStore
from .timers import TurnTimerController
from .watchdog import SubscriptionCallback, WatchdogService

logger = logging.getLogger(__name__)


class LudoService:
    """Entry point for every Ludo operation used by the HTTP layer and the timers."""

    def __init__(
        self,
        settings: Settings | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        settings = settings or get_settings()
        self._store = GameStateStore.from_settings(settings, rng=rng, clock=clock)
        self._watchdog = WatchdogService(
            self._store,
            poll_interval_ms=settings.WATCHDOG_POLL_INTERVAL_MS,
            max_events_per_game=settings.WATCHDOG_MAX_EVENTS_PER_GAME,
            event_ttl_seconds=settings.WATCHDOG_EVENT_TTL_SECONDS,
            cleanup_interval_seconds=settings.WATCHDOG_CLEANUP_INTERVAL_SECONDS,
            clock=self._store.now,
        )
        self._timers = TurnTimerController(
            self._store,
            self,
            dice_animation_delay_ms=settings.DICE_ANIMATION_DELAY_MS,
            decision_check_interval_ms=settings.DECISION_CHECK_INTERVAL_MS,
            rng=rng,
        )

    @property
    def store(self) -> GameStateStore:
        return self._store

    @property
    def watchdog(self) -> WatchdogService:
        return self._watchdog

    @property
    def timers(self) -> TurnTimerController:
        return self._timers

    async def start(self) -> None:
        await self._watchdog.start()

    async def stop(self) -> None:
        await self._timers.cancel_all()
        await self._watchdog.stop()

    def _record(
        self,
        event_type: WatchdogEventType,
        game_id: str,
        player_id: str | None = None,
        **data,
    ) -> None:
        self._watchdog.record_event(
            WatchdogEvent(
                type=event_type,
                game_id=game_id,
                player_id=player_id,
                data=data,
                timestamp=self._store.now(),
            )
        )

    def _watch_current_player(self, game_id: str) -> None:
        game = self._store.get_game_state(game_id)
        if game is None or game.game_phase != GamePhase.PLAYING:
            return
        current = game.get_current_player()
        self._timers.watch_decision(game_id, current.id)

    # ===== Game management =====

    def create_game(self) -> LudoGameState:
        game = self._store.create_game()
        self._record(WatchdogEventType.GAME_CREATED, game.game_id)
        return game

    def join_game(self, game_id: str, name: str, color: PlayerColor | str) -> OperationResult:
        """Join with a freshly generated player id."""
        player_id = str(uuid.uuid4())
        result = self._store.join_game(game_id, name=name, color=color, player_id=player_id)
        if not result.success:
            logger.warning(
                "Join failed: game=%s, code=%s, message=%s",
                game_id,
                result.error_code,
                result.message,
            )
            return result

        self._record(
            WatchdogEventType.PLAYER_JOINED,
            game_id,
            player_id,
            name=name,
            color=result.player_color.value,
        )
        return result

    def rejoin_game(self, game_id: str, player_id: str) -> OperationResult:
        return self._store.rejoin_game(game_id, player_id)

    def start_game(self, game_id: str) -> OperationResult:
        result = self._store.start_game(game_id)
        if not result.success:
            logger.warning("Start failed: game=%s, code=%s", game_id, result.error_code)
            return result

        game = self._store.get_game_state(game_id)
        self._record(
            WatchdogEventType.GAME_STARTED,
            game_id,
            result.player_id,
            player_order=[p.id for p in game.players],
        )
        self._timers.watch_decision(game_id, result.player_id)
        return result

    def delete_game(self, game_id: str) -> OperationResult:
        self._timers.cancel_game(game_id)
        if not self._store.delete_game(game_id):
            return OperationResult.failure("GAME_NOT_FOUND", "Game not found")

        self._watchdog.unsubscribe_game(game_id)
        self._record(WatchdogEventType.GAME_DELETED, game_id)
        return OperationResult.ok("Game deleted", game_id=game_id)

    def get_game_info(self, game_id: str, player_id: str | None = None) -> GameInfo | None:
        """Snapshot with per-player time left and the decision-window percentage.

        When `player_id` is given, turn-only fields are hidden from players
        whose turn it is not.
        """
        game = self._store.get_game_state(game_id)
        if game is None:
            return None

        self._store.update_player_action_times(game)
        info = GameInfo(
            **game.model_dump(exclude={"game_started"}),
            decision_time_left=self._store.get_decision_time_left(game),
        )
        if player_id is not None:
            current = game.get_current_player()
            is_turn = current is not None and current.id == player_id
            info.is_player_turn = is_turn
            if not is_turn:
                info.can_roll_dice = False
                info.can_move_piece = False
                info.selected_piece_id = None
        return info

    def get_available_games(self) -> list[LudoGameState]:
        return self._store.get_available_games()

    def get_all_games(self) -> list[LudoGameState]:
        return self._store.get_all_games()

    # ===== Turn actions =====

    def roll_dice(self, game_id: str, player_id: str, automatic: bool = False) -> OperationResult:
        result = self._store.roll_dice(game_id, player_id)
        if not result.success:
            return result

        if automatic:
            self._record(
                WatchdogEventType.DECISION_TIMEOUT, game_id, player_id, action="roll_dice"
            )
        self._record(
            WatchdogEventType.DICE_ROLLED,
            game_id,
            player_id,
            value=result.dice_value,
            automatic=automatic,
        )
        self._timers.schedule_dice_result(game_id)
        self._timers.watch_decision(game_id, player_id)
        return result

    def reroll_dice(self, game_id: str, player_id: str) -> OperationResult:
        """Timeout action for a roll whose result was never applied."""
        result = self._store.reroll_dice(game_id, player_id)
        if not result.success:
            return result

        self._record(WatchdogEventType.DECISION_TIMEOUT, game_id, player_id, action="rolling")
        self._record(
            WatchdogEventType.DICE_ROLLED,
            game_id,
            player_id,
            value=result.dice_value,
            automatic=True,
        )
        self._timers.schedule_dice_result(game_id)
        self._timers.watch_decision(game_id, player_id)
        return result

    def apply_dice_result(self, game_id: str) -> OperationResult:
        result = self._store.apply_dice_result(game_id)
        if not result.success:
            return result

        self._record(
            WatchdogEventType.DICE_APPLIED,
            game_id,
            result.player_id,
            value=result.dice_value,
            outcome=result.outcome.value,
            movable_piece_ids=result.movable_piece_ids,
        )

        if result.outcome == DiceOutcome.PASSED:
            game = self._store.get_game_state(game_id)
            next_player = game.get_current_player()
            self._record(
                WatchdogEventType.TURN_PASSED,
                game_id,
                result.player_id,
                reason="no_movable_pieces",
                next_player_id=next_player.id,
            )
            self._timers.watch_decision(game_id, next_player.id)

        elif result.outcome == DiceOutcome.AUTO_SELECTED:
            self.move_selected_piece(game_id, result.player_id)

        else:
            self._timers.watch_decision(game_id, result.player_id)

        return result

    def select_piece(
        self,
        game_id: str,
        player_id: str,
        piece_id: int,
        automatic: bool = False,
    ) -> OperationResult:
        """Select a piece and move it."""
        result = self._store.select_piece(game_id, player_id, piece_id)
        if not result.success:
            return result

        if automatic:
            self._record(
                WatchdogEventType.DECISION_TIMEOUT, game_id, player_id, action="select_piece"
            )
        self._record(
            WatchdogEventType.PIECE_SELECTED,
            game_id,
            player_id,
            piece_id=piece_id,
            automatic=automatic,
        )
        return self.move_selected_piece(game_id, player_id)

    def move_selected_piece(
        self, game_id: str, player_id: str, automatic: bool = False
    ) -> OperationResult:
        result = self._store.move_piece(game_id, player_id)
        if not result.success:
            return result

        if automatic:
            self._record(
                WatchdogEventType.DECISION_TIMEOUT, game_id, player_id, action="move_piece"
            )

        primary, *captures = result.last_move.moves
        self._record(
            WatchdogEventType.PIECE_MOVED,
            game_id,
            player_id,
            move_id=result.last_move.move_id,
            piece_id=primary.piece_id,
            from_position=primary.from_position.label(primary.piece_id),
            to_position=primary.to_position.label(primary.piece_id),
            move_type=primary.move_type.value,
            dice_value=result.dice_value,
        )
        for capture in captures:
            self._record(
                WatchdogEventType.PIECE_CAPTURED,
                game_id,
                player_id,
                captured_color=capture.player_color.value,
                captured_piece_id=capture.piece_id,
                from_position=capture.from_position.label(capture.piece_id),
            )

        if result.winner_id is not None:
            self._record(WatchdogEventType.GAME_FINISHED, game_id, result.winner_id)
            self._timers.cancel_game(game_id)
        else:
            self._watch_current_player(game_id)

        return result

    # ===== Watchdog =====

    def subscribe(
        self,
        game_id: str,
        player_id: str,
        callback: SubscriptionCallback | None = None,
    ) -> str:
        if callback is None:

            def callback(game: LudoGameState) -> None:
                logger.debug(
                    "State update for game %s (version %d) to player %s",
                    game.game_id,
                    game.version,
                    player_id[:8],
                )

        return self._watchdog.subscribe(game_id, player_id, callback)

    def unsubscribe(self, subscription_id: str) -> bool:
        return self._watchdog.unsubscribe(subscription_id)

    def unsubscribe_player(self, game_id: str, player_id: str) -> int:
        return self._watchdog.unsubscribe_player(game_id, player_id)

    def get_game_event_history(self, game_id: str, limit: int = 50) -> list[WatchdogEvent]:
        return self._watchdog.get_game_event_history(game_id, limit)

    def get_watchdog_stats(self) -> dict:
        stats = self._watchdog.get_watchdog_stats()
        stats["active_timers"] = self._timers.active_watchers + self._timers.pending_dice_results
        return stats

    def cleanup_old_data(self) -> None:
        self._watchdog.cleanup_old_data()


# Global service instance (initialized in lifespan)
_ludo_service: LudoService | None = None


def get_ludo_service() -> LudoService:
    """Get the global LudoService instance."""
    global _ludo_service
    if _ludo_service is None:
        _ludo_service = LudoService()
    return _ludo_service


def set_ludo_service(service: LudoService | None) -> None:
    """Set the global LudoService instance."""
    global _ludo_service
    _ludo_service = service
