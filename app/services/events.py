"""Notification events emitted by committed transitions, and the dispatchers that consume them."""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol

from app.models.enums import RequestStatus
from app.services.transitions import Audience

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkflowEvent:
    """Something happened to a request and `audience` should be told."""
    request_id: int
    from_status: Optional[RequestStatus]
    to_status: RequestStatus
    actor_id: str
    audience: Audience
    club_id: Optional[int] = None


class EventDispatcher(Protocol):
    def dispatch(self, events: Iterable[WorkflowEvent]) -> None:
        ...


class LoggingDispatcher:
    """Default dispatcher: delivery is external, so just record what would be sent."""

    def dispatch(self, events: Iterable[WorkflowEvent]) -> None:
        for event in events:
            logger.info(
                "Notify %s: request %s %s -> %s by %s%s",
                event.audience.value,
                event.request_id,
                event.from_status.value if event.from_status else "-",
                event.to_status.value,
                event.actor_id,
                f" (club {event.club_id})" if event.club_id else "",
            )


def publish(dispatcher: Optional[EventDispatcher], events: List[WorkflowEvent]) -> None:
    """Hand events to the dispatcher. A delivery failure never reaches the caller."""
    if dispatcher is None or not events:
        return
    try:
        dispatcher.dispatch(events)
    except Exception as e:
        logger.warning(
            "Failed to dispatch %d event(s) for request %s: %s",
            len(events), events[0].request_id, e, exc_info=True,
        )
