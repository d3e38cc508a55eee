from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yt_dlp
from yt_dlp.utils import DownloadError

from tube2mp3.errors import FetchError
from tube2mp3.logging_utils import get_logger
from tube2mp3.models import EgressProxy, MediaInfo

from .base import MediaFetcher


logger = get_logger(__name__)


WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


class YtDlpFetcher(MediaFetcher):
    """MediaFetcher backed by yt-dlp, with every request routed through the proxy."""

    def __init__(self, *, format_spec: str = "bestaudio[ext=m4a]/bestaudio/best") -> None:
        self._format_spec = format_spec

    def _options(self, proxy: EgressProxy, **extra: Any) -> Dict[str, Any]:
        opts: Dict[str, Any] = {
            "format": self._format_spec,
            "proxy": proxy.url,
            "noplaylist": True,
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
        }
        opts.update(extra)
        return opts

    def probe(self, video_id: str, proxy: EgressProxy) -> MediaInfo:
        url = WATCH_URL.format(video_id=video_id)
        logger.info("Fetching metadata for %s via %s", video_id, proxy.redacted)
        try:
            with yt_dlp.YoutubeDL(self._options(proxy)) as ydl:
                info = ydl.extract_info(url, download=False)
        except DownloadError as exc:
            raise FetchError(
                f"metadata fetch failed for {video_id}: {exc}",
                user_message="Error fetching video metadata.",
            ) from exc

        if not info:
            raise FetchError(
                f"no metadata returned for {video_id}",
                user_message="Error fetching video metadata.",
            )

        duration = info.get("duration")
        if duration is None:
            # Live streams and premieres report no duration; the cap cannot be checked.
            raise FetchError(
                f"no duration reported for {video_id}",
                user_message="Could not determine video length, live streams are not supported.",
            )

        return MediaInfo(
            video_id=video_id,
            title=info.get("title") or video_id,
            duration_seconds=float(duration),
        )

    def download_options(self, proxy: EgressProxy, dest: Path) -> Dict[str, Any]:
        # outtmpl is a template; a literal % in the path must not expand.
        return self._options(
            proxy, outtmpl=str(dest).replace("%", "%%"), overwrites=True
        )

    def download(self, video_id: str, proxy: EgressProxy, dest: Path) -> Path:
        url = WATCH_URL.format(video_id=video_id)
        opts = self.download_options(proxy, dest)
        logger.info("Downloading %s to %s via %s", video_id, dest, proxy.redacted)
        try:
            with yt_dlp.YoutubeDL(opts) as ydl:
                ydl.download([url])
        except DownloadError as exc:
            raise FetchError(f"download failed for {video_id}: {exc}") from exc

        if not dest.exists() or dest.stat().st_size == 0:
            raise FetchError(f"yt-dlp wrote no data to {dest}")

        logger.info("Downloaded %s (%d bytes)", dest, dest.stat().st_size)
        return dest
