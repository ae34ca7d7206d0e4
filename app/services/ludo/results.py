"""OperationResult pattern for store and service operations.

Rule violations are expected outcomes, so they come back as a failed result
with an error code instead of an exception.
"""

from dataclasses import dataclass, field
from enum import Enum

from app.schemas.ludo import LastMove, PlayerColor


class DiceOutcome(str, Enum):
    """What applying a dice result did to the turn."""

    PASSED = "passed"
    AUTO_SELECTED = "auto_selected"
    AWAITING_SELECTION = "awaiting_selection"


@dataclass
class OperationResult:
    """Result of a game operation.

    Operation-specific payload fields stay None when they do not apply.
    """

    success: bool = True
    message: str = ""
    error_code: str | None = None
    game_id: str | None = None
    player_id: str | None = None
    dice_value: int | None = None
    outcome: DiceOutcome | None = None
    movable_piece_ids: list[int] = field(default_factory=list)
    last_move: LastMove | None = None
    winner_id: str | None = None
    player_name: str | None = None
    player_color: PlayerColor | None = None

    @classmethod
    def ok(cls, message: str, **payload) -> "OperationResult":
        """Create a successful result with an optional payload."""
        return cls(success=True, message=message, **payload)

    @classmethod
    def failure(cls, code: str, message: str) -> "OperationResult":
        """Create a failure result with error details."""
        return cls(success=False, message=message, error_code=code)
