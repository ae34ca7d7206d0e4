"""Segment transitions for a single piece.

A piece moves Start Zone -> Board -> Color Path -> End Path and never goes
back except when captured. Destinations are computed here; captures are
resolved by the caller once the piece has landed on the Board.
"""

import logging

from app.schemas.ludo import MoveType, Piece, PlayerColor, Position, Segment

from .board import (
    BOARD_SIZE,
    COLOR_PATH_LENGTH,
    END_PATH_LENGTH,
    MAX_FACE,
    start_index,
    steps_to_entry,
)
from .errors import GameInvariantError

logger = logging.getLogger(__name__)


def get_destination(
    piece: Piece,
    dice_value: int,
    color: PlayerColor,
    end_path_advance: bool = False,
) -> tuple[Position, MoveType]:
    """Compute where `piece` lands with `dice_value`.

    Args:
        piece: The piece to move (not modified).
        dice_value: The dice value being applied.
        color: The owner's color.
        end_path_advance: Whether End Path pieces may keep advancing.

    Returns:
        The destination position and the kind of move.

    Raises:
        GameInvariantError: If the move is illegal. Callers must only move
            pieces that passed the movable-piece check.
    """
    position = piece.position

    if position.segment == Segment.START_ZONE:
        if dice_value != MAX_FACE:
            raise GameInvariantError(
                f"Piece {piece.id} cannot leave the Start Zone with {dice_value}"
            )
        return Position.board(start_index(color)), MoveType.START_TO_BOARD

    if position.segment == Segment.BOARD:
        return _board_destination(position.index, dice_value, color)

    if position.segment == Segment.COLOR_PATH:
        target = position.index + dice_value
        if target <= COLOR_PATH_LENGTH:
            return Position.color_path(target), MoveType.COLOR_MOVE
        end_index = target - COLOR_PATH_LENGTH
        if end_index <= END_PATH_LENGTH:
            return Position.end_path(end_index), MoveType.COLOR_TO_END
        raise GameInvariantError(
            f"Piece {piece.id} overshoots the End Path from cp{position.index} with {dice_value}"
        )

    # Segment.END_PATH
    target = position.index + dice_value
    if not end_path_advance or target > END_PATH_LENGTH:
        raise GameInvariantError(
            f"Piece {piece.id} cannot move from ep{position.index} with {dice_value}"
        )
    return Position.end_path(target), MoveType.END_MOVE


def _board_destination(
    board_index: int, dice_value: int, color: PlayerColor
) -> tuple[Position, MoveType]:
    steps = steps_to_entry(color, board_index)
    past_entry = dice_value - steps

    if past_entry <= 0:
        # Lands before or exactly on the entry square
        return Position.board((board_index + dice_value) % BOARD_SIZE), MoveType.BOARD_MOVE

    if past_entry <= COLOR_PATH_LENGTH:
        return Position.color_path(past_entry), MoveType.BOARD_TO_COLOR

    # Overshoots the whole Color Path: stays on the ring for another lap
    logger.debug(
        "Piece of %s overshoots entry from p%d with %d",
        color.value,
        board_index,
        dice_value,
    )
    return Position.board((board_index + dice_value) % BOARD_SIZE), MoveType.BOARD_MOVE
