"""
Cache freshness tracking.

Keeps the time of the last successful sync for every
(entity kind, organization, project) triple.  Timestamps live only for the
lifetime of the process; after a restart every scope is treated as never
synced and therefore stale.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from config import settings
from connectors.models import ENTITY_KINDS

logger = logging.getLogger(__name__)

DEFAULT_TTL: timedelta = timedelta(minutes=5)


def _cache_key(entity_kind: str, organization: str, project: str) -> str:
    return f"{entity_kind}:{organization}:{project}"


class CacheFreshnessTracker:
    """In-process map of last-sync times with a TTL staleness check."""

    def __init__(
        self,
        ttl: Optional[timedelta] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.ttl: timedelta = DEFAULT_TTL if ttl is None else ttl
        self._clock: Callable[[], datetime] = clock or datetime.utcnow
        self._timestamps: dict[str, datetime] = {}

    def now(self) -> datetime:
        return self._clock()

    def is_stale(
        self,
        entity_kind: str,
        organization: str,
        project: str,
        ttl: Optional[timedelta] = None,
    ) -> bool:
        """True when the scope was never synced or its last sync is ``ttl`` old or older."""
        last_synced: Optional[datetime] = self._timestamps.get(
            _cache_key(entity_kind, organization, project)
        )
        if last_synced is None:
            return True
        return self.now() - last_synced >= (self.ttl if ttl is None else ttl)

    def record_sync(self, entity_kind: str, organization: str, project: str) -> datetime:
        synced_at: datetime = self.now()
        self._timestamps[_cache_key(entity_kind, organization, project)] = synced_at
        logger.debug(
            "Recorded %s sync for %s/%s at %s", entity_kind, organization, project, synced_at
        )
        return synced_at

    def get(self, entity_kind: str, organization: str, project: str) -> Optional[datetime]:
        return self._timestamps.get(_cache_key(entity_kind, organization, project))

    def clear(self, organization: str, project: str) -> None:
        """Forget every timestamp belonging to one organization/project scope."""
        for entity_kind in ENTITY_KINDS:
            self._timestamps.pop(_cache_key(entity_kind, organization, project), None)

    def snapshot(self, organization: str, project: str) -> dict[str, Optional[datetime]]:
        return {
            entity_kind: self.get(entity_kind, organization, project)
            for entity_kind in ENTITY_KINDS
        }


# Process-wide tracker, created on first use
_tracker: Optional[CacheFreshnessTracker] = None


def get_tracker() -> CacheFreshnessTracker:
    global _tracker
    if _tracker is None:
        _tracker = CacheFreshnessTracker(ttl=timedelta(seconds=settings.CACHE_TTL_SECONDS))
    return _tracker
