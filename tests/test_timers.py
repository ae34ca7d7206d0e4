"""Tests for the dice-animation delay and decision timeouts.

Timers run on real asyncio tasks with millisecond settings.
"""

import asyncio

import pytest

from app.schemas.ludo import PlayerAction, PlayerColor, Position
from app.services.ludo.events import WatchdogEventType
from app.services.ludo.service import LudoService

from .conftest import (
    FakeClock,
    ScriptedDice,
    event_types,
    fast_settings,
    set_piece_position,
    slow_settings,
    wait_until,
)


def start_two_player_game(service: LudoService) -> tuple[str, str, str]:
    game_id = service.create_game().game_id
    red = service.join_game(game_id, "Ana", PlayerColor.RED).player_id
    blue = service.join_game(game_id, "Ben", PlayerColor.BLUE).player_id
    assert service.start_game(game_id).success
    return game_id, red, blue


def timeout_actions(service: LudoService, game_id: str) -> list[str]:
    return [
        e.data["action"]
        for e in service.get_game_event_history(game_id, limit=100)
        if e.type == WatchdogEventType.DECISION_TIMEOUT
    ]


class TestDiceAnimationDelay:
    @pytest.mark.asyncio
    async def test_result_applied_after_delay(self):
        dice = ScriptedDice(3)
        service = LudoService(fast_settings(), rng=dice)
        game_id, red, _ = start_two_player_game(service)

        assert service.roll_dice(game_id, red).success
        game = service.store.get_game_state(game_id)
        assert game.players[0].action == PlayerAction.ROLLING

        await wait_until(lambda: service.store.get_game_state(game_id).current_player == 1)

        types = event_types(service, game_id)
        assert "dice_applied" in types
        assert "turn_passed" in types
        await service.stop()

    @pytest.mark.asyncio
    async def test_deleted_game_is_ignored(self):
        service = LudoService(fast_settings(), rng=ScriptedDice(3))
        game_id, red, _ = start_two_player_game(service)
        service.roll_dice(game_id, red)

        service.delete_game(game_id)
        await wait_until(lambda: service.timers.pending_dice_results == 0)

        assert not service.store.has_game(game_id)
        assert not service.timers.is_watching(game_id)
        await service.stop()


class TestDecisionTimeout:
    @pytest.mark.asyncio
    async def test_idle_player_rolls_automatically(self):
        service = LudoService(fast_settings(), rng=ScriptedDice(3, 3, 3))
        game_id, red, _ = start_two_player_game(service)

        await wait_until(lambda: "roll_dice" in timeout_actions(service, game_id))
        await wait_until(lambda: service.store.get_game_state(game_id).current_player == 1)

        rolled = [
            e
            for e in service.get_game_event_history(game_id, limit=100)
            if e.type == WatchdogEventType.DICE_ROLLED
        ]
        assert rolled[0].player_id == red
        assert rolled[0].data["automatic"] is True
        await service.stop()

    @pytest.mark.asyncio
    async def test_idle_selection_moves_a_random_movable_piece(self):
        service = LudoService(fast_settings(), rng=ScriptedDice(3))
        game_id, red, _ = start_two_player_game(service)
        set_piece_position(service.store, game_id, PlayerColor.RED, 0, Position.board(10))
        set_piece_position(service.store, game_id, PlayerColor.RED, 1, Position.board(20))

        service.roll_dice(game_id, red)
        await wait_until(lambda: "select_piece" in timeout_actions(service, game_id))

        red_pieces = service.store.get_game_state(game_id).players[0].pieces
        positions = {red_pieces[0].position, red_pieces[1].position}
        assert positions in (
            {Position.board(13), Position.board(20)},
            {Position.board(10), Position.board(23)},
        )
        assert "piece_moved" in event_types(service, game_id)
        assert service.store.get_game_state(game_id).current_player == 1
        await service.stop()

    @pytest.mark.asyncio
    async def test_expired_window_triggers_pending_action(self):
        clock = FakeClock()
        settings = slow_settings(DECISION_DURATION_MS=1000)
        service = LudoService(settings, rng=ScriptedDice(4), clock=clock)
        game_id, red, _ = start_two_player_game(service)

        clock.advance(ms=999)
        assert service.timers.check_decision(game_id, red) is False

        clock.advance(ms=1)
        assert service.timers.check_decision(game_id, red) is True

        game = service.store.get_game_state(game_id)
        assert game.players[0].action == PlayerAction.ROLLING
        assert game.dice_value == 4
        assert timeout_actions(service, game_id) == ["roll_dice"]
        await service.stop()

    @pytest.mark.asyncio
    async def test_rolling_timeout_rerolls(self):
        clock = FakeClock()
        settings = slow_settings(DECISION_DURATION_MS=1000)
        service = LudoService(settings, rng=ScriptedDice(2, 5), clock=clock)
        game_id, red, _ = start_two_player_game(service)
        service.roll_dice(game_id, red)

        clock.advance(seconds=2)
        assert service.timers.check_decision(game_id, red)

        assert service.store.get_game_state(game_id).dice_value == 5
        assert timeout_actions(service, game_id) == ["rolling"]
        await service.stop()

    @pytest.mark.asyncio
    async def test_watcher_stops_when_turn_moved_on(self):
        clock = FakeClock()
        service = LudoService(slow_settings(), rng=ScriptedDice(3), clock=clock)
        game_id, red, blue = start_two_player_game(service)

        service.roll_dice(game_id, red)
        service.apply_dice_result(game_id)

        assert service.timers.check_decision(game_id, red) is True
        assert service.timers.check_decision(game_id, blue) is False

        service.delete_game(game_id)
        assert service.timers.check_decision(game_id, blue) is True
        await service.stop()

    @pytest.mark.asyncio
    async def test_one_watcher_per_game(self):
        service = LudoService(slow_settings(), rng=ScriptedDice(3))
        game_id, red, _ = start_two_player_game(service)
        first = service.timers.watch_decision(game_id, red)
        second = service.timers.watch_decision(game_id, red)
        await asyncio.sleep(0.01)

        assert first.cancelled()
        assert not second.done()
        assert service.timers.active_watchers == 1
        await service.stop()


class TestCancellation:
    @pytest.mark.asyncio
    async def test_stop_cancels_every_timer(self):
        service = LudoService(slow_settings(), rng=ScriptedDice(3))
        game_id, red, _ = start_two_player_game(service)
        service.roll_dice(game_id, red)
        assert service.get_watchdog_stats()["active_timers"] == 2

        await service.stop()

        assert service.timers.active_watchers == 0
        assert service.timers.pending_dice_results == 0
