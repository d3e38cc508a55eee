from __future__ import annotations

from tube2mp3.errors import InvalidLinkError


WATCH_MARKER = "youtube.com/watch?v="
SHORT_MARKER = "youtu.be/"


def parse_link(link: str) -> str:
    """Extract the video id from a YouTube link.

    Two shapes are accepted:

    - ``https://www.youtube.com/watch?v=<id>``
    - ``https://youtu.be/<id>`` with an optional ``?si=...`` suffix

    Playlist parameters on watch links are not stripped; everything after
    the first ``=`` is taken as the id.
    """
    text = (link or "").strip()

    if WATCH_MARKER in text:
        _, _, video_id = text.partition("=")
    elif SHORT_MARKER in text:
        _, _, rest = text.partition(SHORT_MARKER)
        video_id, _, _ = rest.partition("?")
    else:
        raise InvalidLinkError(f"Invalid link format: {text!r}")

    if not video_id:
        raise InvalidLinkError(f"Link carries no video id: {text!r}")
    # The id names local files and the object key.
    if "/" in video_id or "\\" in video_id or video_id in (".", ".."):
        raise InvalidLinkError(f"Video id is not a plain name: {video_id!r}")
    return video_id
