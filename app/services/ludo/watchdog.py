import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.schemas.ludo import LudoGameState

from .events import WatchdogEvent
from .store import GameStateStore

logger = logging.getLogger(__name__)

SubscriptionCallback = Callable[[LudoGameState], None]


@dataclass
class WatchdogSubscription:
    """A subscriber waiting for new versions of one game."""

    id: str
    game_id: str
    player_id: str
    callback: SubscriptionCallback
    last_version: int = 0
    is_active: bool = True


class WatchdogService:
    """Detects game version changes by polling and notifies subscribers.

    Local storage:
        - _subscriptions: subscription_id -> WatchdogSubscription
        - _game_versions: game_id -> last version pushed to subscribers
        - _event_history: game_id -> bounded deque of WatchdogEvent
    """

    def __init__(
        self,
        store: GameStateStore,
        poll_interval_ms: int = 500,
        max_events_per_game: int = 100,
        event_ttl_seconds: int = 3600,
        cleanup_interval_seconds: int = 300,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._poll_interval = poll_interval_ms / 1000
        self._max_events = max_events_per_game
        self._event_ttl = timedelta(seconds=event_ttl_seconds)
        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._subscriptions: dict[str, WatchdogSubscription] = {}
        self._game_versions: dict[str, int] = {}
        self._event_history: dict[str, deque[WatchdogEvent]] = {}

        self._poll_task: asyncio.Task | None = None

        logger.info(
            "WatchdogService initialized: poll=%dms, max_events=%d, ttl=%ds",
            poll_interval_ms,
            max_events_per_game,
            event_ttl_seconds,
        )

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # ===== Subscriptions =====

    def subscribe(self, game_id: str, player_id: str, callback: SubscriptionCallback) -> str:
        """Register a callback for a game and push the current snapshot right away.

        Returns:
            The subscription id.
        """
        subscription_id = f"{game_id}-{player_id}-{uuid.uuid4().hex[:12]}"
        subscription = WatchdogSubscription(
            id=subscription_id,
            game_id=game_id,
            player_id=player_id,
            callback=callback,
            last_version=self._game_versions.get(game_id, 0),
        )
        self._subscriptions[subscription_id] = subscription
        logger.info("New subscription %s for game %s", subscription_id, game_id)

        snapshot = self._store.get_game_state(game_id)
        if snapshot is not None:
            self._deliver(subscription, snapshot)

        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is None:
            logger.debug("Subscription %s not found for unsubscribe", subscription_id)
            return False
        subscription.is_active = False
        logger.info("Subscription cancelled: %s", subscription_id)
        return True

    def unsubscribe_player(self, game_id: str, player_id: str) -> int:
        """Cancel every subscription of a player in a game."""
        matching = [
            sub_id
            for sub_id, sub in self._subscriptions.items()
            if sub.game_id == game_id and sub.player_id == player_id
        ]
        for sub_id in matching:
            self._subscriptions.pop(sub_id).is_active = False
        logger.info(
            "Cancelled %d subscriptions for player %s in game %s",
            len(matching),
            player_id,
            game_id,
        )
        return len(matching)

    def unsubscribe_game(self, game_id: str) -> int:
        """Cancel every subscription of a game."""
        matching = [
            sub_id for sub_id, sub in self._subscriptions.items() if sub.game_id == game_id
        ]
        for sub_id in matching:
            self._subscriptions.pop(sub_id).is_active = False
        if matching:
            logger.info("Cancelled %d subscriptions for game %s", len(matching), game_id)
        return len(matching)

    def cleanup_inactive_subscriptions(self) -> int:
        inactive = [sub_id for sub_id, sub in self._subscriptions.items() if not sub.is_active]
        for sub_id in inactive:
            del self._subscriptions[sub_id]
        if inactive:
            logger.info("Removed %d inactive subscriptions", len(inactive))
        return len(inactive)

    def get_game_subscriptions(self, game_id: str) -> list[WatchdogSubscription]:
        return [
            sub for sub in self._subscriptions.values() if sub.game_id == game_id and sub.is_active
        ]

    def is_player_subscribed(self, game_id: str, player_id: str) -> bool:
        return any(
            sub.game_id == game_id and sub.player_id == player_id and sub.is_active
            for sub in self._subscriptions.values()
        )

    # ===== Change detection =====

    def check_for_changes(self) -> int:
        """Run one poll: notify subscribers of every game whose version increased.

        Returns:
            Number of games whose subscribers were notified.
        """
        changed = 0
        for game_id, version in self._store.get_game_versions().items():
            if version <= self._game_versions.get(game_id, 0):
                continue

            snapshot = self._store.get_game_state(game_id)
            if snapshot is None:
                # Deleted between the version read and the snapshot
                continue

            self._game_versions[game_id] = snapshot.version
            logger.debug("Game %s changed to version %d", game_id, snapshot.version)
            self._notify_subscribers(snapshot)
            changed += 1
        return changed

    def force_notify_game(self, game_id: str) -> bool:
        """Push the current snapshot of a game to its subscribers regardless of version."""
        snapshot = self._store.get_game_state(game_id)
        if snapshot is None:
            return False
        self._notify_subscribers(snapshot)
        return True

    def _notify_subscribers(self, snapshot: LudoGameState) -> None:
        for subscription in self.get_game_subscriptions(snapshot.game_id):
            self._deliver(subscription, snapshot.model_copy(deep=True))

    def _deliver(self, subscription: WatchdogSubscription, snapshot: LudoGameState) -> None:
        """Invoke one callback; a failing subscriber is deactivated, others are unaffected."""
        try:
            subscription.callback(snapshot)
            subscription.last_version = snapshot.version
        except Exception:
            logger.exception(
                "Error notifying subscription %s, deactivating it", subscription.id
            )
            subscription.is_active = False

    # ===== Event history =====

    def record_event(self, event: WatchdogEvent) -> None:
        """Append to the game's history, dropping the oldest entry when full."""
        events = self._event_history.get(event.game_id)
        if events is None:
            events = deque(maxlen=self._max_events)
            self._event_history[event.game_id] = events
        events.append(event)
        logger.debug("Event recorded: %s for game %s", event.type.value, event.game_id)

    def get_game_event_history(self, game_id: str, limit: int = 50) -> list[WatchdogEvent]:
        """The most recent `limit` events of a game, oldest first."""
        events = self._event_history.get(game_id)
        if not events or limit <= 0:
            return []
        return list(events)[-limit:]

    # ===== Maintenance =====

    def cleanup_old_data(self) -> None:
        """Drop expired events and forget games that no longer exist."""
        cutoff = self._clock() - self._event_ttl

        for game_id in list(self._event_history.keys()):
            recent = [e for e in self._event_history[game_id] if e.timestamp > cutoff]
            if recent:
                self._event_history[game_id] = deque(recent, maxlen=self._max_events)
            else:
                del self._event_history[game_id]

        for game_id in list(self._game_versions.keys()):
            if not self._store.has_game(game_id):
                del self._game_versions[game_id]

        for sub in self._subscriptions.values():
            if sub.is_active and not self._store.has_game(sub.game_id):
                sub.is_active = False
        self.cleanup_inactive_subscriptions()

        logger.info("Old watchdog data cleanup complete")

    def get_watchdog_stats(self) -> dict:
        return {
            "active_subscriptions": sum(1 for s in self._subscriptions.values() if s.is_active),
            "total_games": len(self._store.get_game_versions()),
            "total_events": sum(len(events) for events in self._event_history.values()),
            "is_running": self.is_running,
        }

    # ===== Background loop =====

    async def start(self) -> None:
        """Start the periodic poll task."""
        if self._poll_task is not None:
            logger.warning("Watchdog already running")
            return

        async def poll_loop():
            logger.info("Starting Ludo watchdog with interval %.3fs", self._poll_interval)
            loop = asyncio.get_running_loop()
            last_cleanup = loop.time()
            while True:
                try:
                    await asyncio.sleep(self._poll_interval)
                    self.check_for_changes()
                    if loop.time() - last_cleanup >= self._cleanup_interval:
                        self.cleanup_old_data()
                        last_cleanup = loop.time()
                except asyncio.CancelledError:
                    logger.info("Watchdog poll task cancelled")
                    raise
                except Exception:
                    logger.exception("Error in watchdog poll loop")

        self._poll_task = asyncio.create_task(poll_loop())

    async def stop(self) -> None:
        """Stop the periodic poll task."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
            logger.info("Watchdog stopped")
