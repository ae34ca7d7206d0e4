"""Board topology: fixed squares for each color on the 52-square ring.

Pure data and functions, no game state. Every color enters the ring at its
start square and leaves it into its private Color Path right after its entry
square, two squares behind the start.
"""

from app.schemas.ludo import (
    BOARD_SIZE,
    COLOR_PATH_LENGTH,
    END_PATH_LENGTH,
    PIECES_PER_PLAYER,
    PlayerColor,
)

__all__ = [
    "BOARD_SIZE",
    "COLOR_PATH_LENGTH",
    "END_PATH_LENGTH",
    "PIECES_PER_PLAYER",
    "MAX_FACE",
    "START_BOARD_POSITIONS",
    "COLOR_PATH_ENTRY_POSITIONS",
    "SAFE_POSITIONS",
    "start_index",
    "entry_index",
    "is_safe",
    "steps_to_entry",
]

# Rolling the maximum face lets a piece leave the Start Zone and grants another roll
MAX_FACE = 6

START_BOARD_POSITIONS: dict[PlayerColor, int] = {
    PlayerColor.RED: 1,
    PlayerColor.BLUE: 14,
    PlayerColor.YELLOW: 27,
    PlayerColor.GREEN: 40,
}

# Last ring square before the piece turns into its Color Path
COLOR_PATH_ENTRY_POSITIONS: dict[PlayerColor, int] = {
    PlayerColor.RED: 51,
    PlayerColor.BLUE: 12,
    PlayerColor.YELLOW: 25,
    PlayerColor.GREEN: 38,
}

_STAR_POSITIONS = (9, 22, 35, 48)

SAFE_POSITIONS: frozenset[int] = frozenset(
    (*START_BOARD_POSITIONS.values(), *_STAR_POSITIONS)
)


def start_index(color: PlayerColor) -> int:
    return START_BOARD_POSITIONS[PlayerColor(color)]


def entry_index(color: PlayerColor) -> int:
    return COLOR_PATH_ENTRY_POSITIONS[PlayerColor(color)]


def is_safe(board_index: int) -> bool:
    """Captures never happen on start squares or star squares."""
    return board_index in SAFE_POSITIONS


def steps_to_entry(color: PlayerColor, board_index: int) -> int:
    """Squares a piece of `color` at `board_index` must travel to reach its entry.

    Measured around the ring, so colors whose entry square is numerically
    below their start square behave like red.
    """
    return (entry_index(color) - board_index) % BOARD_SIZE
