"""Turn timers: dice-animation delay and decision timeouts.

Both run as asyncio tasks and act only through the orchestration layer,
which calls the store's public operations. A timer that fires after the
game moved on finds the store's preconditions unmet and does nothing.
"""

import asyncio
import logging
import random
from typing import TYPE_CHECKING

from app.schemas.ludo import GamePhase, LudoGameState, Player, PlayerAction

from .store import GameStateStore

if TYPE_CHECKING:
    from .service import LudoService

logger = logging.getLogger(__name__)


class TurnTimerController:
    """Owns the timer tasks of every game.

    Local storage:
        - _dice_tasks: pending animation-delay tasks (fire-and-forget)
        - _watchers: game_id -> decision-timeout task (at most one per game)
    """

    def __init__(
        self,
        store: GameStateStore,
        actions: "LudoService",
        dice_animation_delay_ms: int = 1500,
        decision_check_interval_ms: int = 500,
        rng: random.Random | None = None,
    ):
        self._store = store
        self._actions = actions
        self._dice_delay = dice_animation_delay_ms / 1000
        self._check_interval = decision_check_interval_ms / 1000
        self._rng = rng or random.Random()

        self._dice_tasks: set[asyncio.Task] = set()
        self._watchers: dict[str, asyncio.Task] = {}

    @property
    def active_watchers(self) -> int:
        return sum(1 for task in self._watchers.values() if not task.done())

    @property
    def pending_dice_results(self) -> int:
        return len(self._dice_tasks)

    def is_watching(self, game_id: str) -> bool:
        task = self._watchers.get(game_id)
        return task is not None and not task.done()

    # ===== Dice animation delay =====

    def schedule_dice_result(self, game_id: str) -> asyncio.Task:
        """Apply the rolled value once the roll animation is over."""
        task = asyncio.create_task(self._apply_after_delay(game_id))
        self._dice_tasks.add(task)
        task.add_done_callback(self._dice_tasks.discard)
        logger.debug("Dice result scheduled: game=%s, delay=%.3fs", game_id, self._dice_delay)
        return task

    async def _apply_after_delay(self, game_id: str) -> None:
        await asyncio.sleep(self._dice_delay)
        if not self._store.has_game(game_id):
            logger.debug("Dice timer fired for deleted game %s", game_id)
            return
        try:
            result = self._actions.apply_dice_result(game_id)
        except Exception:
            logger.exception("Error applying dice result for game %s", game_id)
            return
        if not result.success:
            logger.debug("Stale dice timer for game %s: %s", game_id, result.error_code)

    # ===== Decision timeout =====

    def watch_decision(self, game_id: str, player_id: str) -> asyncio.Task:
        """Track the decision window of `player_id`, replacing any previous watcher."""
        previous = self._watchers.get(game_id)
        if previous is not None and not previous.done() and previous is not asyncio.current_task():
            previous.cancel()

        task = asyncio.create_task(self._watch(game_id, player_id))
        self._watchers[game_id] = task
        task.add_done_callback(lambda t: self._forget_watcher(game_id, t))
        logger.debug("Watching decision: game=%s, player=%s", game_id, player_id[:8])
        return task

    def _forget_watcher(self, game_id: str, task: asyncio.Task) -> None:
        if self._watchers.get(game_id) is task:
            del self._watchers[game_id]

    async def _watch(self, game_id: str, player_id: str) -> None:
        while True:
            await asyncio.sleep(self._check_interval)
            try:
                if self.check_decision(game_id, player_id):
                    return
            except Exception:
                logger.exception("Error in decision watcher for game %s", game_id)
                return

    def check_decision(self, game_id: str, player_id: str) -> bool:
        """One tick of the decision watcher.

        Returns:
            True when the watcher should stop.
        """
        game = self._store.get_game_state(game_id)
        if game is None:
            logger.debug("Decision watcher stopping: game %s deleted", game_id)
            return True

        if game.game_phase != GamePhase.PLAYING:
            return True

        player = game.get_current_player()
        if player is None or player.id != player_id:
            logger.debug("Decision watcher stopping: turn moved on in game %s", game_id)
            return True

        ms_left = self._store.get_decision_ms_left(game)
        if ms_left is None:
            return True

        if ms_left > 0:
            self._store.refresh_action_times(game_id)
            return False

        logger.info(
            "Decision window elapsed: game=%s, player=%s, action=%s",
            game_id,
            player_id,
            player.action.value if player.action else None,
        )
        self._auto_act(game, player)
        return True

    def _auto_act(self, game: LudoGameState, player: Player) -> None:
        """Perform the pending action on the player's behalf."""
        game_id = game.game_id

        if player.action == PlayerAction.ROLLING:
            self._actions.reroll_dice(game_id, player.id)

        elif player.action == PlayerAction.ROLL_DICE:
            self._actions.roll_dice(game_id, player.id, automatic=True)

        elif player.action == PlayerAction.SELECT_PIECE:
            movable = self._store.get_movable_pieces(game_id)
            if not movable:
                logger.warning("No movable piece to auto-select in game %s", game_id)
                return
            piece_id = self._rng.choice(movable)
            self._actions.select_piece(game_id, player.id, piece_id, automatic=True)

        elif player.action == PlayerAction.MOVE_PIECE:
            self._actions.move_selected_piece(game_id, player.id, automatic=True)

    # ===== Cancellation =====

    def cancel_game(self, game_id: str) -> None:
        task = self._watchers.pop(game_id, None)
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Decision watcher cancelled for game %s", game_id)

    async def cancel_all(self) -> None:
        """Cancel every pending timer and wait for the tasks to finish."""
        tasks = [*self._watchers.values(), *self._dice_tasks]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._watchers.clear()
        self._dice_tasks.clear()
        logger.info("Cancelled %d timer tasks", len(tasks))
