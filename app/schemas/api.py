"""Pydantic schemas for the Ludo HTTP endpoints."""

from pydantic import BaseModel, Field

from app.schemas.ludo import LudoGameState, PlayerColor


class GameInfo(LudoGameState):
    """Game snapshot as served to clients."""

    decision_time_left: int | None = Field(
        None, description="Percentage of the current decision window left"
    )
    is_player_turn: bool | None = Field(
        None, description="Set when the request names a player"
    )


class CreateGameResponse(BaseModel):
    game_id: str
    message: str


class JoinGameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=32)
    color: PlayerColor


class SelectPieceRequest(BaseModel):
    piece_id: int = Field(..., ge=0, le=3)


class ActionResponse(BaseModel):
    """Structured outcome of a game action; rule violations are not HTTP errors."""

    success: bool
    message: str
    error_code: str | None = None
    game_id: str | None = None
    player_id: str | None = None
    dice_value: int | None = None


class RejoinResponse(BaseModel):
    success: bool
    message: str
    name: str | None = None
    color: PlayerColor | None = None


class SubscribeResponse(BaseModel):
    subscription_id: str
    message: str


class WatchdogStats(BaseModel):
    active_subscriptions: int
    total_games: int
    total_events: int
    is_running: bool
    active_timers: int = 0
