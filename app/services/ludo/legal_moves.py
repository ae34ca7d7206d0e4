"""Movable-piece calculation for a dice value."""

from app.schemas.ludo import Piece, Player, Segment

from .board import COLOR_PATH_LENGTH, END_PATH_LENGTH, MAX_FACE


def can_move_piece(piece: Piece, dice_value: int, end_path_advance: bool = False) -> bool:
    """Check whether a single piece may move by `dice_value`.

    - Start Zone: only with the maximum face
    - Board: always
    - Color Path: only if it does not overshoot the last End Path square
    - End Path: never, unless the end-path advance house rule is on, in which
      case it may advance without passing the last square
    """
    segment = piece.position.segment

    if segment == Segment.START_ZONE:
        return dice_value == MAX_FACE

    if segment == Segment.BOARD:
        return True

    if segment == Segment.COLOR_PATH:
        return piece.position.index + dice_value <= COLOR_PATH_LENGTH + END_PATH_LENGTH

    # Segment.END_PATH
    if not end_path_advance:
        return False
    return piece.position.index + dice_value <= END_PATH_LENGTH


def get_movable_pieces(
    player: Player, dice_value: int, end_path_advance: bool = False
) -> list[Piece]:
    """Distinct moves available to `player` with `dice_value`, in id order.

    Start Zone pieces are interchangeable, so only the lowest-id one is
    listed; leaving home with any of them is the same move.
    """
    movable: list[Piece] = []
    start_zone_listed = False
    for piece in player.pieces:
        if not can_move_piece(piece, dice_value, end_path_advance):
            continue
        if piece.position.segment == Segment.START_ZONE:
            if start_zone_listed:
                continue
            start_zone_listed = True
        movable.append(piece)
    return movable
