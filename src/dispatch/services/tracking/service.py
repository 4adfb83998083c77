"""Append-only trail of machine position reports per order."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ...models.domain import TrackingEvent
from ...persistence.base import TrackingStore

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TrackingLedger:
    def __init__(self, store: TrackingStore) -> None:
        self.store = store

    def report_tracking(
        self,
        order_id: str,
        machine_id: str | None,
        latitude: float,
        longitude: float,
    ) -> TrackingEvent:
        event = self.store.append_event(order_id, machine_id, latitude, longitude)
        logger.debug(f"Tracking event {event.id} for order {order_id} at ({latitude}, {longitude})")
        return event

    def get_tracking(self, order_id: str, since: datetime | None = None) -> list[TrackingEvent]:
        """Events recorded strictly after ``since``, oldest first.

        ``None`` and the epoch both mean "everything"; naive datetimes are
        read as UTC.
        """
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        if since is not None and since <= EPOCH:
            since = None
        return list(self.store.list_events(order_id, since))
