"""Tournament event publisher and achievement hooks.

Services queue events on the session while they work; the queue is flushed to
subscribers only after the session commits, and dropped on rollback, so
listeners never hear about state that was rolled back.

With no subscribers the publisher runs in dry-run mode and only logs.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import event
from sqlmodel import Session

logger = logging.getLogger(__name__)

EVENT_TOURNAMENT_STARTED = "tournament.started"
EVENT_ENROLLMENT_CHANGED = "tournament.enrollment.changed"
EVENT_MATCH_COMPLETED = "tournament.match.completed"
EVENT_TOURNAMENT_COMPLETED = "tournament.completed"

_PENDING_EVENTS_KEY = "rally_pending_events"
_PENDING_PLAYERS_KEY = "rally_pending_achievement_players"

Subscriber = Callable[[str, Dict[str, Any]], None]
AchievementHook = Callable[[int], None]


class EventPublisher:
    """
    Fan-out of structured tournament events to in-process subscribers.

    A subscriber is any callable taking (event_name, payload). Transport
    (websockets, push, etc.) is the subscriber's concern.
    """

    def __init__(self):
        self.subscribers: List[Subscriber] = []
        self.achievement_hooks: List[AchievementHook] = []

    @property
    def dry_run(self) -> bool:
        return not self.subscribers

    def subscribe(self, callback: Subscriber) -> None:
        self.subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self.subscribers:
            self.subscribers.remove(callback)

    def register_achievement_hook(self, hook: AchievementHook) -> None:
        self.achievement_hooks.append(hook)

    def clear(self) -> None:
        self.subscribers.clear()
        self.achievement_hooks.clear()

    def publish(self, name: str, payload: Dict[str, Any]) -> int:
        """Deliver one event. Returns the number of subscribers that accepted it."""
        payload = {**payload, "published_at": datetime.now(timezone.utc).isoformat()}
        if self.dry_run:
            logger.info(f"[DRY RUN] event {name}: {payload}")
            return 0
        delivered = 0
        for callback in list(self.subscribers):
            try:
                callback(name, payload)
                delivered += 1
            except Exception:
                logger.exception(f"Subscriber failed for event {name}")
        return delivered

    def check_achievements(self, player_id: int) -> None:
        for hook in list(self.achievement_hooks):
            try:
                hook(player_id)
            except Exception:
                logger.exception(f"Achievement hook failed for player {player_id}")


_publisher: Optional[EventPublisher] = None


def get_event_publisher() -> EventPublisher:
    """Get or create the singleton EventPublisher instance."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher


def queue_event(session: Session, name: str, **payload: Any) -> None:
    session.info.setdefault(_PENDING_EVENTS_KEY, []).append((name, payload))


def queue_achievement_check(session: Session, *player_ids: Optional[int]) -> None:
    pending = session.info.setdefault(_PENDING_PLAYERS_KEY, [])
    for player_id in player_ids:
        if player_id is not None and player_id not in pending:
            pending.append(player_id)


@event.listens_for(Session, "after_commit")
def _publish_after_commit(session) -> None:
    events = session.info.pop(_PENDING_EVENTS_KEY, [])
    players = session.info.pop(_PENDING_PLAYERS_KEY, [])
    publisher = get_event_publisher()
    for name, payload in events:
        publisher.publish(name, payload)
    for player_id in players:
        publisher.check_achievements(player_id)


@event.listens_for(Session, "after_rollback")
def _drop_after_rollback(session) -> None:
    dropped = session.info.pop(_PENDING_EVENTS_KEY, [])
    session.info.pop(_PENDING_PLAYERS_KEY, None)
    if dropped:
        logger.debug(f"Dropped {len(dropped)} queued event(s) on rollback")
