from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from tube2mp3.errors import FreshnessProbeError
from tube2mp3.logging_utils import get_logger
from tube2mp3.models import ObjectMetadata, object_key_for
from tube2mp3.repositories import ObjectStore
from tube2mp3 import metrics as app_metrics


logger = get_logger(__name__)


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    ABSENT = "absent"


@dataclass(frozen=True)
class FreshnessCheck:
    state: Freshness
    key: str
    metadata: Optional[ObjectMetadata] = None

    @property
    def reusable(self) -> bool:
        return self.state is Freshness.FRESH


class FreshnessCache:
    """Decides whether a published MP3 is recent enough to hand out again."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        window: timedelta = timedelta(hours=12),
        key_prefix: str = "mp3s",
    ) -> None:
        self._store = store
        self._window = window
        self._key_prefix = key_prefix

    @property
    def window(self) -> timedelta:
        return self._window

    def key_for(self, video_id: str) -> str:
        return object_key_for(video_id, self._key_prefix)

    def check(self, video_id: str, now: Optional[datetime] = None) -> FreshnessCheck:
        key = self.key_for(video_id)
        try:
            metadata = self._store.head(key)
        except Exception as exc:
            logger.error("Freshness probe failed for %s: %s", key, exc, exc_info=True)
            raise FreshnessProbeError(f"head {key} failed: {exc}") from exc

        if metadata is None:
            logger.info("MP3 %s doesn't exist in storage. Continuing with download.", key)
            app_metrics.record_cache_lookup(Freshness.ABSENT.value)
            return FreshnessCheck(state=Freshness.ABSENT, key=key)

        now = now or datetime.now(timezone.utc)
        age = now - metadata.last_modified
        hours = age.total_seconds() / 3600.0
        if age < self._window:
            logger.info("Found existing MP3 in storage; reusing - File: %s Age: %.1fh", key, hours)
            state = Freshness.FRESH
        else:
            logger.info("Found existing MP3 but it is stale; regenerating - File: %s Age: %.1fh", key, hours)
            state = Freshness.STALE

        app_metrics.record_cache_lookup(state.value)
        return FreshnessCheck(state=state, key=key, metadata=metadata)
