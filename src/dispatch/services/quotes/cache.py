"""Process-local store of priced route options awaiting redemption."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

from ...errors import QuoteExpiredOrConsumedError
from ..routing.models import RouteOption

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuoteCache:
    """Quote id -> route option, each redeemable at most once.

    One instance lives for the whole process and is handed to the services
    that need it. All access goes through ``_lock``; ``redeem`` looks up and
    deletes under the same acquisition, so a quote can never be handed out
    twice. Entries expire ``ttl`` after they were put; nothing survives a
    restart.
    """

    def __init__(self, ttl: timedelta, clock: Callable[[], datetime] = _utcnow) -> None:
        if ttl <= timedelta(0):
            raise ValueError("Quote TTL must be positive.")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, RouteOption] = {}
        self._lock = threading.Lock()

    def now(self) -> datetime:
        return self._clock()

    def expiry_for(self, issued_at: datetime) -> datetime:
        return issued_at + self.ttl

    def put(self, option: RouteOption) -> str:
        with self._lock:
            self._purge_expired_locked(self._clock())
            if option.id in self._entries:
                raise ValueError(f"Route option '{option.id}' is already cached.")
            self._entries[option.id] = option
        return option.id

    def redeem(self, quote_id: str) -> RouteOption:
        with self._lock:
            option = self._entries.pop(quote_id, None)
        if option is None:
            raise QuoteExpiredOrConsumedError(quote_id, "not found or already used")
        if option.expires_at <= self._clock():
            logger.info(f"Quote {quote_id} expired at {option.expires_at.isoformat()}")
            raise QuoteExpiredOrConsumedError(quote_id, "expired")
        return option

    def peek(self, quote_id: str) -> RouteOption | None:
        """Return a live entry without consuming it."""
        with self._lock:
            option = self._entries.get(quote_id)
        if option is None or option.expires_at <= self._clock():
            return None
        return option

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired_locked(self._clock())

    def _purge_expired_locked(self, now: datetime) -> int:
        stale = [quote_id for quote_id, option in self._entries.items() if option.expires_at <= now]
        for quote_id in stale:
            del self._entries[quote_id]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, quote_id: object) -> bool:
        with self._lock:
            return quote_id in self._entries
