from __future__ import annotations

from pathlib import Path
from typing import Protocol

from tube2mp3.models import EgressProxy, MediaInfo


class MediaFetcher(Protocol):
    """Interface for fetching remote media through an egress proxy.

    Both calls block and are run off the event loop by the pipeline.
    ``probe`` must not transfer media bytes; the pipeline uses it to
    enforce the duration cap before ``download`` is called.
    """

    def probe(self, video_id: str, proxy: EgressProxy) -> MediaInfo:
        """Return title and duration for the given video."""

    def download(self, video_id: str, proxy: EgressProxy, dest: Path) -> Path:
        """Save the media stream to ``dest`` and return the written path."""
