"""REST endpoints for Ludo games.

Endpoints are async so every game operation runs on the event loop that
owns the timers and the watchdog, one at a time.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from app.schemas.api import (
    ActionResponse,
    CreateGameResponse,
    GameInfo,
    JoinGameRequest,
    RejoinResponse,
    SelectPieceRequest,
    SubscribeResponse,
    WatchdogStats,
)
from app.schemas.ludo import LudoGameState
from app.services.ludo.events import WatchdogEvent
from app.services.ludo.results import OperationResult
from app.services.ludo.service import get_ludo_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ludo", tags=["ludo"])


def _to_action_response(result: OperationResult) -> ActionResponse:
    return ActionResponse(
        success=result.success,
        message=result.message,
        error_code=result.error_code,
        game_id=result.game_id,
        player_id=result.player_id,
        dice_value=result.dice_value,
    )


# ===== Game management =====


@router.post("/games", response_model=CreateGameResponse, status_code=status.HTTP_201_CREATED)
async def create_game():
    game = get_ludo_service().create_game()
    logger.info("POST /ludo/games - created %s", game.game_id)
    return CreateGameResponse(game_id=game.game_id, message="Game created")


@router.get("/games", response_model=list[LudoGameState])
async def get_available_games():
    """Games still waiting for players."""
    return get_ludo_service().get_available_games()


@router.get("/games/all", response_model=list[LudoGameState])
async def get_all_games():
    return get_ludo_service().get_all_games()


@router.get("/games/{game_id}", response_model=GameInfo)
async def get_game(game_id: str, player_id: str | None = Query(None)):
    """Full game snapshot, with turn-only fields hidden from other players."""
    service = get_ludo_service()
    info = service.get_game_info(game_id, player_id)
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")
    if player_id is not None and info.find_player(player_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Player not found in this game"
        )
    return info


@router.delete("/games/{game_id}", response_model=ActionResponse)
async def delete_game(game_id: str):
    result = get_ludo_service().delete_game(game_id)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)
    return _to_action_response(result)


# ===== Players =====


@router.post("/games/{game_id}/join", response_model=ActionResponse)
async def join_game(game_id: str, request: JoinGameRequest):
    logger.info(
        "POST /ludo/games/%s/join - name: %s, color: %s",
        game_id,
        request.name,
        request.color.value,
    )
    result = get_ludo_service().join_game(game_id, name=request.name, color=request.color)
    return _to_action_response(result)


@router.get("/games/{game_id}/rejoin/{player_id}", response_model=RejoinResponse)
async def rejoin_game(game_id: str, player_id: str):
    result = get_ludo_service().rejoin_game(game_id, player_id)
    return RejoinResponse(
        success=result.success,
        message=result.message,
        name=result.player_name,
        color=result.player_color,
    )


# ===== Game actions =====


@router.post("/games/{game_id}/start", response_model=ActionResponse)
async def start_game(game_id: str):
    return _to_action_response(get_ludo_service().start_game(game_id))


@router.post("/games/{game_id}/players/{player_id}/roll", response_model=ActionResponse)
async def roll_dice(game_id: str, player_id: str):
    return _to_action_response(get_ludo_service().roll_dice(game_id, player_id))


@router.post("/games/{game_id}/players/{player_id}/select", response_model=ActionResponse)
async def select_piece(game_id: str, player_id: str, request: SelectPieceRequest):
    result = get_ludo_service().select_piece(game_id, player_id, request.piece_id)
    return _to_action_response(result)


# ===== Watchdog =====


@router.post("/games/{game_id}/subscribe/{player_id}", response_model=SubscribeResponse)
async def subscribe(game_id: str, player_id: str):
    """Create a polling handle; clients fetch the game when its version changes."""
    subscription_id = get_ludo_service().subscribe(game_id, player_id)
    return SubscribeResponse(
        subscription_id=subscription_id,
        message="Subscription created. Poll the game for updates.",
    )


@router.delete("/subscriptions/{subscription_id}", response_model=ActionResponse)
async def unsubscribe(subscription_id: str):
    success = get_ludo_service().unsubscribe(subscription_id)
    return ActionResponse(
        success=success,
        message="Subscription cancelled" if success else "Subscription not found",
        error_code=None if success else "SUBSCRIPTION_NOT_FOUND",
    )


@router.get("/games/{game_id}/events", response_model=list[WatchdogEvent])
async def get_game_events(game_id: str, limit: int = Query(50, ge=1, le=100)):
    return get_ludo_service().get_game_event_history(game_id, limit)


@router.get("/watchdog/stats", response_model=WatchdogStats)
async def get_watchdog_stats():
    return WatchdogStats(**get_ludo_service().get_watchdog_stats())


@router.post("/watchdog/cleanup", response_model=ActionResponse)
async def cleanup_old_data():
    get_ludo_service().cleanup_old_data()
    return ActionResponse(success=True, message="Old data cleanup complete")
