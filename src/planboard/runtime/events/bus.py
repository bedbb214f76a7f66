"""Event bus wrapper that persists mutation events."""

from __future__ import annotations

import logging
from typing import Any

from ..storage.interfaces import EventRepository

logger = logging.getLogger(__name__)


class EventBus:
    """Append plan and task mutation events to the event log."""

    def __init__(self, repo: EventRepository) -> None:
        self._repo = repo

    def emit(self, *, channel: str, event_type: str, entity_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Append an event to storage.

        Args:
            channel (str): Channel for this call.
            event_type (str): Event type for this call.
            entity_id (str): Identifier for the related entity.
            payload (dict[str, Any]): Serialized payload consumed by this operation.

        Returns:
            dict[str, Any]: Persisted event envelope.
        """
        event = self._repo.append(channel=channel, event_type=event_type, entity_id=entity_id, payload=payload)
        logger.debug("event %s %s %s", channel, event_type, entity_id)
        return event
