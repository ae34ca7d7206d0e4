"""Ludo game module.

Provides:
- Board topology and movement rules (board, legal_moves, movement, captures)
- The in-memory rules engine (store)
- Turn timers and the change-notification watchdog (timers, watchdog)
- The orchestration service used by the HTTP layer (service)

Usage:
    from app.services.ludo import get_ludo_service

    service = get_ludo_service()
    game = service.create_game()
    result = service.join_game(game.game_id, name="Ana", color="red")
    if not result.success:
        print(f"Error: {result.error_code} - {result.message}")
"""

from .errors import GameInvariantError
from .events import WatchdogEvent, WatchdogEventType
from .results import DiceOutcome, OperationResult
from .service import LudoService, get_ludo_service, set_ludo_service
from .store import GameStateStore
from .timers import TurnTimerController
from .watchdog import WatchdogService, WatchdogSubscription

__all__ = [
    # Results
    "OperationResult",
    "DiceOutcome",
    "GameInvariantError",
    # Components
    "GameStateStore",
    "TurnTimerController",
    "WatchdogService",
    "WatchdogSubscription",
    "WatchdogEvent",
    "WatchdogEventType",
    # Orchestration
    "LudoService",
    "get_ludo_service",
    "set_ludo_service",
]
