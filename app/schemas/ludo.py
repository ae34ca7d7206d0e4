from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

# Segment sizes shared by the position type and the board topology
BOARD_SIZE = 52
COLOR_PATH_LENGTH = 5
END_PATH_LENGTH = 4
PIECES_PER_PLAYER = 4


# Game phases
class GamePhase(str, Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class PlayerColor(str, Enum):
    RED = "red"
    BLUE = "blue"
    YELLOW = "yellow"
    GREEN = "green"


# Pending action of a player, shown to clients
class PlayerAction(str, Enum):
    ROLL_DICE = "roll_dice"
    ROLLING = "rolling"
    SELECT_PIECE = "select_piece"
    MOVE_PIECE = "move_piece"


# Mutually exclusive zones a piece can occupy
class Segment(str, Enum):
    START_ZONE = "start_zone"
    BOARD = "board"
    COLOR_PATH = "color_path"
    END_PATH = "end_path"


class MoveType(str, Enum):
    START_TO_BOARD = "start_to_board"
    BOARD_MOVE = "board_move"
    BOARD_TO_COLOR = "board_to_color"
    COLOR_MOVE = "color_move"
    COLOR_TO_END = "color_to_end"
    END_MOVE = "end_move"
    CAPTURED_TO_START = "captured_to_start"


_SEGMENT_BOUNDS: dict[Segment, tuple[int, int]] = {
    Segment.BOARD: (0, BOARD_SIZE - 1),
    Segment.COLOR_PATH: (1, COLOR_PATH_LENGTH),
    Segment.END_PATH: (1, END_PATH_LENGTH),
}

_SEGMENT_PREFIX: dict[Segment, str] = {
    Segment.BOARD: "p",
    Segment.COLOR_PATH: "cp",
    Segment.END_PATH: "ep",
}


class Position(BaseModel):
    """Where a piece is: a segment plus its sub-index.

    Start Zone positions carry no index. Board indices are absolute on the
    shared ring; Color Path and End Path indices are 1-based and private to
    the owner's color.
    """

    model_config = ConfigDict(frozen=True)

    segment: Segment
    index: int | None = None

    @model_validator(mode="after")
    def check_index(self) -> "Position":
        if self.segment == Segment.START_ZONE:
            if self.index is not None:
                raise ValueError("Start Zone positions have no index")
            return self
        low, high = _SEGMENT_BOUNDS[self.segment]
        if self.index is None or not low <= self.index <= high:
            raise ValueError(
                f"{self.segment.value} index must be within {low}..{high}, got {self.index}"
            )
        return self

    @classmethod
    def start_zone(cls) -> "Position":
        return cls(segment=Segment.START_ZONE)

    @classmethod
    def board(cls, index: int) -> "Position":
        return cls(segment=Segment.BOARD, index=index)

    @classmethod
    def color_path(cls, index: int) -> "Position":
        return cls(segment=Segment.COLOR_PATH, index=index)

    @classmethod
    def end_path(cls, index: int) -> "Position":
        return cls(segment=Segment.END_PATH, index=index)

    def label(self, piece_id: int) -> str:
        """Client label: sp1-sp4, p0-p51, cp1-cp5, ep1-ep4."""
        if self.segment == Segment.START_ZONE:
            return f"sp{piece_id + 1}"
        return f"{_SEGMENT_PREFIX[self.segment]}{self.index}"


class Piece(BaseModel):
    id: int = Field(..., ge=0, lt=PIECES_PER_PLAYER)
    position: Position = Field(default_factory=Position.start_zone)

    @computed_field
    @property
    def label(self) -> str:
        return self.position.label(self.id)

    @computed_field
    @property
    def is_in_start_zone(self) -> bool:
        return self.position.segment == Segment.START_ZONE

    @computed_field
    @property
    def is_in_board(self) -> bool:
        return self.position.segment == Segment.BOARD

    @computed_field
    @property
    def is_in_color_path(self) -> bool:
        return self.position.segment == Segment.COLOR_PATH

    @computed_field
    @property
    def is_in_end_path(self) -> bool:
        return self.position.segment == Segment.END_PATH

    @property
    def is_finished(self) -> bool:
        return self.is_in_end_path and self.position.index == END_PATH_LENGTH


class Player(BaseModel):
    id: str
    name: str
    color: PlayerColor
    pieces: list[Piece]
    action: PlayerAction | None = None
    action_time_left: int | None = Field(
        None, ge=0, le=100, description="Percentage of the decision window left"
    )
    dice_value: int | None = None

    def get_piece(self, piece_id: int) -> Piece | None:
        return next((p for p in self.pieces if p.id == piece_id), None)

    def reset_turn_fields(self) -> None:
        self.action = None
        self.action_time_left = None
        self.dice_value = None


class CapturedPiece(BaseModel):
    player_color: PlayerColor
    piece_id: int


class PieceMove(BaseModel):
    """One piece relocation inside a LastMove."""

    piece_id: int
    player_color: PlayerColor
    from_position: Position
    to_position: Position
    move_type: MoveType
    captured: list[CapturedPiece] = []


class LastMove(BaseModel):
    """Every relocation caused by one dice resolution, for client replay."""

    move_id: str
    moves: list[PieceMove]
    player_color: PlayerColor
    dice_value: int
    timestamp: datetime


class LudoGameState(BaseModel):
    """Authoritative state of one game.

    `version` increases by one on every accepted mutation and
    `last_updated` is refreshed with it; the watchdog relies on both.
    """

    game_id: str
    players: list[Player] = []
    current_player: int = 0
    dice_value: int = 0
    game_phase: GamePhase = GamePhase.WAITING
    winner: str | None = None
    available_colors: list[PlayerColor] = Field(default_factory=lambda: list(PlayerColor))
    can_roll_dice: bool = False
    can_move_piece: bool = False
    selected_piece_id: int | None = None
    decision_start_time: datetime | None = None
    decision_duration: int = Field(..., gt=0, description="Decision window in milliseconds")
    last_move: LastMove | None = None
    last_updated: datetime
    version: int = 1

    @computed_field
    @property
    def game_started(self) -> bool:
        return self.game_phase != GamePhase.WAITING

    @property
    def is_full(self) -> bool:
        return len(self.players) >= len(PlayerColor)

    def get_current_player(self) -> Player | None:
        if not self.players:
            return None
        return self.players[self.current_player]

    def find_player(self, player_id: str) -> Player | None:
        return next((p for p in self.players if p.id == player_id), None)
