"""Integration notifications.

Callers subscribe handlers per event type on an ``EventChannel`` they own and
pass around explicitly; there is no process-wide dispatcher.
"""
from __future__ import annotations
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, DefaultDict, Dict, List, Optional, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntegrationConnected:
    integration_id: str
    team_id: str
    user_id: Optional[str]
    platform: str
    platform_username: Optional[str]


@dataclass(frozen=True)
class IntegrationDisconnected:
    integration_id: str
    team_id: str
    user_id: Optional[str]
    platform: str


@dataclass(frozen=True)
class ContentPublished:
    integration_id: str
    content_piece_id: str
    platform_post_id: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PublishingFailed:
    integration_id: str
    content_piece_id: str
    error: BaseException


Handler = Callable[[Any], None]


class EventChannel:
    def __init__(self):
        self._handlers: DefaultDict[Type, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: Type, handler: Handler) -> None:
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    def emit(self, event: Any) -> None:
        for handler in list(self._handlers[type(event)]):
            try:
                handler(event)
            except Exception:
                # subscriber errors are logged, not raised
                logger.exception("event handler %r failed for %s", handler, type(event).__name__)


def log_activity(event: Any) -> None:
    """Default subscriber: write an activity line for every integration event."""
    if isinstance(event, PublishingFailed):
        logger.warning(
            "activity: %s integration=%s content=%s error=%s",
            type(event).__name__, event.integration_id, event.content_piece_id, event.error,
        )
    else:
        logger.info("activity: %s %s", type(event).__name__, event)


def subscribe_activity_log(channel: EventChannel) -> EventChannel:
    for event_type in (IntegrationConnected, IntegrationDisconnected, ContentPublished, PublishingFailed):
        channel.subscribe(event_type, log_activity)
    return channel
