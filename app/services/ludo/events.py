"""Domain events kept in the watchdog's per-game history.

Events describe what happened in a game so late subscribers and the
rendering client can catch up:
- Lobby activity (created, joined, started)
- Turn activity (dice, selection, moves, captures, timeouts)
- Game end and deletion
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class WatchdogEventType(str, Enum):
    GAME_CREATED = "game_created"
    PLAYER_JOINED = "player_joined"
    GAME_STARTED = "game_started"
    DICE_ROLLED = "dice_rolled"
    DICE_APPLIED = "dice_applied"
    TURN_PASSED = "turn_passed"
    PIECE_SELECTED = "piece_selected"
    PIECE_MOVED = "piece_moved"
    PIECE_CAPTURED = "piece_captured"
    DECISION_TIMEOUT = "decision_timeout"
    GAME_FINISHED = "game_finished"
    GAME_DELETED = "game_deleted"


class WatchdogEvent(BaseModel):
    """One recorded domain event."""

    type: WatchdogEventType
    game_id: str
    player_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
