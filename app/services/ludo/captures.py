"""Capture detection and resolution on the shared Board."""

import logging

from app.schemas.ludo import (
    CapturedPiece,
    MoveType,
    PieceMove,
    Player,
    PlayerColor,
    Position,
    Segment,
)

from .board import is_safe

logger = logging.getLogger(__name__)


def find_capturable_pieces(
    board_index: int,
    moving_color: PlayerColor,
    players: list[Player],
) -> list[tuple[Player, int]]:
    """Find enemy pieces on the Board at `board_index`.

    Only Board pieces are considered; Color Path and End Path are private.
    Returns nothing on safe squares.

    Returns:
        List of (owner, piece_id) tuples.
    """
    if is_safe(board_index):
        logger.debug("Safe square: no capture at p%d", board_index)
        return []

    targets: list[tuple[Player, int]] = []
    for player in players:
        # Never capture own pieces
        if player.color == moving_color:
            continue
        for piece in player.pieces:
            if piece.position.segment == Segment.BOARD and piece.position.index == board_index:
                targets.append((player, piece.id))
    return targets


def capture_pieces_at(
    board_index: int,
    moving_color: PlayerColor,
    players: list[Player],
) -> list[PieceMove]:
    """Send every enemy piece at `board_index` back to its Start Zone.

    Mutates the captured pieces in place.

    Returns:
        One captured_to_start move per captured piece, in player order.
    """
    moves: list[PieceMove] = []
    for owner, piece_id in find_capturable_pieces(board_index, moving_color, players):
        piece = owner.get_piece(piece_id)
        from_position = piece.position
        piece.position = Position.start_zone()
        moves.append(
            PieceMove(
                piece_id=piece_id,
                player_color=owner.color,
                from_position=from_position,
                to_position=piece.position,
                move_type=MoveType.CAPTURED_TO_START,
            )
        )
        logger.info(
            "Capture: %s piece %d sent home from p%d by %s",
            owner.color.value,
            piece_id,
            board_index,
            PlayerColor(moving_color).value,
        )
    return moves


def to_captured_refs(capture_moves: list[PieceMove]) -> list[CapturedPiece]:
    return [
        CapturedPiece(player_color=m.player_color, piece_id=m.piece_id)
        for m in capture_moves
    ]
