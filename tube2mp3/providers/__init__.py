from .base import MediaFetcher
from .ytdlp_fetcher import YtDlpFetcher

__all__ = [
    "MediaFetcher",
    "YtDlpFetcher",
]
