"""Shared fixtures for Ludo tests."""

import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest

from app.config import Settings
from app.schemas.ludo import PlayerColor, Position
from app.services.ludo.store import GameStateStore

# Fixed player ids for deterministic testing
PLAYER_1_ID = "00000000-0000-0000-0000-000000000001"
PLAYER_2_ID = "00000000-0000-0000-0000-000000000002"
PLAYER_3_ID = "00000000-0000-0000-0000-000000000003"
PLAYER_4_ID = "00000000-0000-0000-0000-000000000004"

PLAYER_IDS = [PLAYER_1_ID, PLAYER_2_ID, PLAYER_3_ID, PLAYER_4_ID]
JOIN_ORDER = [PlayerColor.RED, PlayerColor.BLUE, PlayerColor.YELLOW, PlayerColor.GREEN]

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, ms: int = 0, seconds: float = 0) -> None:
        self.current += timedelta(milliseconds=ms, seconds=seconds)


class ScriptedDice(random.Random):
    """Random source whose dice values are queued by the test.

    Falls back to a seeded draw once the queue is empty.
    """

    def __init__(self, *values: int):
        super().__init__(1234)
        self.values = list(values)

    def push(self, *values: int) -> None:
        self.values.extend(values)

    def randint(self, a: int, b: int) -> int:
        if self.values:
            return self.values.pop(0)
        return super().randint(a, b)


def fast_settings(**overrides) -> Settings:
    """Settings with short timers for async tests."""
    values = {
        "DECISION_DURATION_MS": 300,
        "DICE_ANIMATION_DELAY_MS": 20,
        "DECISION_CHECK_INTERVAL_MS": 10,
        "WATCHDOG_POLL_INTERVAL_MS": 10,
    }
    values.update(overrides)
    return Settings(**values)


def slow_settings(**overrides) -> Settings:
    """Settings whose timers never fire during a test."""
    values = {
        "DECISION_DURATION_MS": 600000,
        "DICE_ANIMATION_DELAY_MS": 600000,
        "DECISION_CHECK_INTERVAL_MS": 600000,
        "WATCHDOG_POLL_INTERVAL_MS": 600000,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dice() -> ScriptedDice:
    return ScriptedDice()


@pytest.fixture
def store(clock: FakeClock, dice: ScriptedDice) -> GameStateStore:
    return GameStateStore(decision_duration_ms=30000, rng=dice, clock=clock)


def create_waiting_game(store: GameStateStore, player_count: int = 2) -> str:
    """Create a game and join `player_count` players in color order."""
    game_id = store.create_game().game_id
    for i in range(player_count):
        result = store.join_game(game_id, f"Player {i + 1}", JOIN_ORDER[i], PLAYER_IDS[i])
        assert result.success, result.message
    return game_id


def create_started_game(store: GameStateStore, player_count: int = 2) -> str:
    """Create a game in the playing phase with player 1 (red) to act."""
    game_id = create_waiting_game(store, player_count)
    assert store.start_game(game_id).success
    return game_id


def set_piece_position(
    store: GameStateStore,
    game_id: str,
    color: PlayerColor,
    piece_id: int,
    position: Position,
) -> None:
    """Place a piece directly, bypassing the rules."""
    game = store._games[game_id]
    player = next(p for p in game.players if p.color == color)
    player.get_piece(piece_id).position = position


def roll_and_apply(store: GameStateStore, dice: ScriptedDice, game_id: str, player_id: str, value: int):
    """Roll a scripted value and resolve it, as the animation timer would."""
    dice.push(value)
    rolled = store.roll_dice(game_id, player_id)
    assert rolled.success, rolled.message
    return store.apply_dice_result(game_id)


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll `predicate` on the running loop until it holds or `timeout` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)


def event_types(service, game_id: str) -> list[str]:
    return [e.type.value for e in service.get_game_event_history(game_id, limit=100)]
