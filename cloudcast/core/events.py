"""
Session-change events.

The directory emits an event whenever the authenticated session changes
(sign-in, sign-out, token refresh, ...). Session stores subscribe to these
events and keep their state in step with the directory.
"""

from __future__ import annotations

import fnmatch
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from cloudcast.core.models import Session

logger = logging.getLogger(__name__)

# Type for event handlers
SessionEventHandler = Callable[["SessionEvent"], Awaitable[None]]


class SessionEventType(str, Enum):
    """Kinds of session change the directory reports."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


@dataclass(frozen=True)
class SessionEvent:
    """
    A change of the authenticated session.

    `session` is None when there is no longer an authenticated identity
    (sign-out, expired session on startup).
    """

    event_type: SessionEventType
    session: Session | None = None

    # Tracing
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_session(self) -> bool:
        return self.session is not None

    def to_dict(self) -> dict:
        """Serialize event to dictionary (tokens are never included)."""
        return {
            "id": self.id,
            "event_type": self.event_type.value,
            "user_id": self.session.principal.id if self.session else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Subscription:
    """A subscription to session events matching a pattern."""

    pattern: str  # e.g., "SIGNED_*" or "*"
    handler: SessionEventHandler

    def matches(self, event: SessionEvent) -> bool:
        return fnmatch.fnmatch(event.event_type.value, self.pattern)


class SessionEventBus:
    """
    In-memory fan-out of session events.

    Handlers run one after another; a failing handler is logged and does
    not stop the others.
    """

    def __init__(self, max_history: int = 1000):
        self._subscriptions: list[Subscription] = []
        self._history: list[SessionEvent] = []
        self._max_history = max_history

    def subscribe(
        self,
        handler: SessionEventHandler,
        pattern: str = "*",
    ) -> Callable[[], None]:
        """
        Subscribe to events matching a pattern.

        Returns:
            A callable that removes the subscription. Calling it more
            than once is harmless.
        """
        subscription = Subscription(pattern=pattern, handler=handler)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, event: SessionEvent) -> None:
        """Deliver an event to every matching subscriber."""
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        # Copy: handlers may unsubscribe while we iterate
        for subscription in [s for s in self._subscriptions if s.matches(event)]:
            try:
                await subscription.handler(event)
            except Exception:
                logger.exception(f"Error in session handler for {event.event_type.value}")

    def get_history(self, event_type: str | None = None, limit: int = 100) -> list[SessionEvent]:
        """Query event history with an optional type pattern."""
        results = self._history
        if event_type:
            results = [e for e in results if fnmatch.fnmatch(e.event_type.value, event_type)]
        return results[-limit:]
